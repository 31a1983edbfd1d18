from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from .config import DEFAULT_TIMEOUT_S

API_BASE_URL = "https://api.github.com"
RAW_BASE_URL = "https://raw.githubusercontent.com"
API_VERSION = "2022-11-28"
RATE_LIMIT_LOW_WATER = 10


class AgentSkillsError(RuntimeError):
    pass


@dataclass(frozen=True)
class GitHubHTTPError(AgentSkillsError):
    status_code: int
    url: str
    body: str = ""

    def __str__(self) -> str:  # pragma: no cover
        return f"HTTP {self.status_code}: {self.url}"


@dataclass(frozen=True)
class RepositoryNotFoundError(GitHubHTTPError):
    owner: str = ""
    repo: str = ""
    ref: str = ""

    def __str__(self) -> str:
        return f"Repository or branch not found: {self.owner}/{self.repo}@{self.ref}"


@dataclass(frozen=True)
class TreeEntry:
    path: str
    type: str  # "blob" or "tree"

    @property
    def is_file(self) -> bool:
        return self.type == "blob"


@dataclass(frozen=True)
class TreeListing:
    entries: tuple[TreeEntry, ...]
    truncated: bool = False
    rate_limit_remaining: int | None = None
    rate_limit_reset: int | None = None  # epoch seconds


def _int_header(headers: httpx.Headers, name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_tree(obj: Any) -> tuple[tuple[TreeEntry, ...], bool]:
    if not isinstance(obj, dict):
        raise AgentSkillsError("Unexpected tree listing payload (expected an object).")
    items = obj.get("tree")
    entries: list[TreeEntry] = []
    if isinstance(items, list):
        for item in items:
            if not isinstance(item, dict):
                continue
            path = item.get("path")
            kind = item.get("type")
            if isinstance(path, str) and isinstance(kind, str):
                entries.append(TreeEntry(path=path, type=kind))
    return tuple(entries), bool(obj.get("truncated", False))


def rate_limit_warning(listing: TreeListing) -> str | None:
    remaining = listing.rate_limit_remaining
    if remaining is None or remaining >= RATE_LIMIT_LOW_WATER:
        return None
    if listing.rate_limit_reset:
        resets = datetime.fromtimestamp(listing.rate_limit_reset).strftime("%H:%M:%S")
    else:
        resets = datetime.now().strftime("%H:%M:%S")
    return f"GitHub API rate limit low ({remaining} remaining). Resets at {resets}"


class GitHubClient:
    """
    Read-only access to the two GitHub endpoints skill discovery needs: the
    recursive git tree listing and raw file content.

    Only the listing goes through the rate-limited REST API; raw content is
    served from raw.githubusercontent.com.
    """

    def __init__(
        self,
        *,
        token: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        api_base_url: str = API_BASE_URL,
        raw_base_url: str = RAW_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.timeout_s = timeout_s
        self.api_base_url = api_base_url.rstrip("/")
        self.raw_base_url = raw_base_url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout_s, follow_redirects=True, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _api_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get(self, url: str, *, headers: dict[str, str] | None = None, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            return await self._http.get(url, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise AgentSkillsError(f"Request failed: {e}") from e

    async def fetch_tree(self, owner: str, repo: str, ref: str) -> TreeListing:
        url = f"{self.api_base_url}/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/git/trees/{quote(ref, safe='/')}"
        resp = await self._get(url, headers=self._api_headers(), params={"recursive": "1"})
        if resp.status_code == 404:
            raise RepositoryNotFoundError(404, url, resp.text, owner=owner, repo=repo, ref=ref)
        if resp.status_code >= 400:
            raise GitHubHTTPError(resp.status_code, url, resp.text)

        try:
            payload = resp.json()
        except ValueError as e:
            raise AgentSkillsError(f"Invalid JSON from {url}: {e}") from e
        entries, truncated = _parse_tree(payload)
        return TreeListing(
            entries=entries,
            truncated=truncated,
            rate_limit_remaining=_int_header(resp.headers, "x-ratelimit-remaining"),
            rate_limit_reset=_int_header(resp.headers, "x-ratelimit-reset"),
        )

    async def fetch_raw(self, owner: str, repo: str, ref: str, path: str) -> bytes:
        url = f"{self.raw_base_url}/{quote(owner, safe='')}/{quote(repo, safe='')}/{quote(ref, safe='/')}/{quote(path, safe='/')}"
        resp = await self._get(url)
        if resp.status_code >= 400:
            raise GitHubHTTPError(resp.status_code, url, resp.text)
        return resp.content
