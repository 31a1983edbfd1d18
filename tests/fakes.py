from __future__ import annotations

import httpx


def skill_md(name: str | None = None, description: str | None = None, body: str = "Body\n") -> str:
    lines = ["---"]
    if name is not None:
        lines.append(f"name: {name}")
    if description is not None:
        lines.append(f"description: {description}")
    lines.append("---")
    return "\n".join(lines) + "\n" + body


class FakeGitHub:
    """
    In-memory stand-in for api.github.com (tree listings) and
    raw.githubusercontent.com (file content), served through httpx.MockTransport.
    """

    def __init__(
        self,
        files: dict[tuple[str, str, str, str], str | bytes] | None = None,
        *,
        truncated: set[tuple[str, str, str]] | None = None,
        rate_limit_remaining: int | None = None,
        rate_limit_reset: int | None = None,
        broken_repos: set[tuple[str, str]] | None = None,
        broken_files: set[str] | None = None,
    ) -> None:
        self.files = dict(files or {})
        self.truncated = set(truncated or ())
        self.rate_limit_remaining = rate_limit_remaining
        self.rate_limit_reset = rate_limit_reset
        self.broken_repos = set(broken_repos or ())
        self.broken_files = set(broken_files or ())
        self.tree_calls: list[tuple[str, str, str]] = []
        self.raw_calls: list[str] = []
        self.auth_headers: list[str | None] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def _tree(self, owner: str, repo: str, ref: str) -> list[dict[str, str]]:
        paths = sorted(p for (o, r, b, p) in self.files if (o, r, b) == (owner, repo, ref))
        dirs: set[str] = set()
        for p in paths:
            parts = p.split("/")[:-1]
            for i in range(1, len(parts) + 1):
                dirs.add("/".join(parts[:i]))
        entries = [{"path": d, "type": "tree", "mode": "040000"} for d in sorted(dirs)]
        entries += [{"path": p, "type": "blob", "mode": "100644"} for p in paths]
        return entries

    def handler(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path.strip("/").split("/")
        if request.url.host == "api.github.com":
            self.auth_headers.append(request.headers.get("authorization"))
            # /repos/{owner}/{repo}/git/trees/{ref}
            owner, repo, ref = parts[1], parts[2], "/".join(parts[5:])
            self.tree_calls.append((owner, repo, ref))
            if (owner, repo) in self.broken_repos:
                return httpx.Response(500, text="boom")
            tree = self._tree(owner, repo, ref)
            if not tree:
                return httpx.Response(404, json={"message": "Not Found"})
            headers = {}
            if self.rate_limit_remaining is not None:
                headers["x-ratelimit-remaining"] = str(self.rate_limit_remaining)
            if self.rate_limit_reset is not None:
                headers["x-ratelimit-reset"] = str(self.rate_limit_reset)
            payload = {"sha": "abc", "tree": tree, "truncated": (owner, repo, ref) in self.truncated}
            return httpx.Response(200, json=payload, headers=headers)

        if request.url.host == "raw.githubusercontent.com":
            owner, repo, ref, path = parts[0], parts[1], parts[2], "/".join(parts[3:])
            self.raw_calls.append(path)
            if path in self.broken_files:
                return httpx.Response(500, text="boom")
            content = self.files.get((owner, repo, ref, path))
            if content is None:
                return httpx.Response(404, text="404: Not Found")
            if isinstance(content, str):
                content = content.encode("utf-8")
            return httpx.Response(200, content=content)

        return httpx.Response(418)
