from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import textwrap
from dataclasses import replace
from pathlib import Path

from ._version import __version__
from .aggregator import Aggregator
from .catalog import Catalog, group_by_source
from .config import Config, apply_env, load_config, redact_token, save_config
from .github import AgentSkillsError, GitHubHTTPError, RepositoryNotFoundError
from .installed import DEFAULT_INSTALL_ROOTS, SkillInstaller, installed_names, scan, uninstall
from .models import FetchResult, RepositoryDescriptor, Skill
from .resolver import RepositoryResolver


def _merge_cfg(base: Config, args: argparse.Namespace) -> Config:
    # Env overrides config; CLI overrides both.
    cfg = apply_env(base)
    token = getattr(args, "token", None) or cfg.github_token
    timeout_s = getattr(args, "timeout_s", None)
    if timeout_s is None:
        timeout_s = cfg.timeout_s
    return replace(cfg, github_token=token, timeout_s=float(timeout_s))


def _runtime_cfg(args: argparse.Namespace) -> Config:
    return _merge_cfg(load_config(), args)


def _make_aggregator() -> Aggregator:
    return Aggregator()


def _install_roots(cfg: Config) -> tuple[str, ...]:
    return (cfg.install_location, *(r for r in DEFAULT_INSTALL_ROOTS if r != cfg.install_location))


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _shorten(text: str, limit: int = 60) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _parse_repo_arg(value: str) -> tuple[str, str]:
    raw = value.strip().strip("/")
    if raw.count("/") != 1:
        raise AgentSkillsError(f"Invalid repository {value!r}. Expected <owner>/<repo>.")
    owner, repo = (p.strip() for p in raw.split("/", 1))
    if not owner or not repo:
        raise AgentSkillsError(f"Invalid repository {value!r}. Expected <owner>/<repo>.")
    return owner, repo


def _report(result: FetchResult) -> None:
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    if result.diagnostic:
        print(f"warning: {result.diagnostic}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="agentskills",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Browse and install Agent Skills published in GitHub repositories.",
        epilog=textwrap.dedent(
            """\
            Environment variables:
              AGENTSKILLS_CONFIG_PATH, AGENTSKILLS_GITHUB_TOKEN (or GITHUB_TOKEN),
              AGENTSKILLS_CACHE_TIMEOUT_S, AGENTSKILLS_TIMEOUT_S
            """
        ),
    )

    def _add_runtime_overrides(parser: argparse.ArgumentParser) -> None:
        # Accepted both before and after the subcommand.
        parser.add_argument("--token", default=argparse.SUPPRESS, help="GitHub token (overrides config/env)")
        parser.add_argument("--timeout-s", type=float, default=argparse.SUPPRESS, help="HTTP timeout in seconds")

    def _add_workspace(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--workspace", default=".", help="Workspace directory (default: current directory)")

    _add_runtime_overrides(p)
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging on stderr")
    p.add_argument("--version", action="version", version=f"agentskills {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # config
    cfg = sub.add_parser("config", help="Manage local config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show config (token redacted)")
    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--github-token", help='GitHub token ("" clears it)')
    cfg_set.add_argument("--cache-timeout-s", type=float)
    cfg_set.add_argument("--install-location", help="Workspace-relative install directory")
    cfg_set.add_argument("--timeout-s", type=float)

    # repos
    repos = sub.add_parser("repos", help="Manage skill repositories")
    repos_sub = repos.add_subparsers(dest="subcmd", required=True)
    repos_list = repos_sub.add_parser("list", help="List configured repositories")
    repos_list.add_argument("--json", action="store_true", help="Output JSON")
    repos_add = repos_sub.add_parser("add", help="Add a repository")
    repos_add.add_argument("repo", help="Repository in form owner/repo")
    repos_add.add_argument("--path", default="skills", help="Directory to search (default: skills)")
    repos_add.add_argument("--branch", default="main", help="Branch (default: main)")
    repos_add.add_argument("--single-skill", action="store_true", help="--path is one skill's directory")
    repos_remove = repos_sub.add_parser("remove", aliases=["rm"], help="Remove a repository")
    repos_remove.add_argument("repo", help="Repository in form owner/repo")
    repos_remove.add_argument("--path", help="Only remove the entry with this path")

    # skills
    skills = sub.add_parser("skills", help="Marketplace skills")
    skills_sub = skills.add_subparsers(dest="subcmd", required=True)
    skills_list = skills_sub.add_parser("list", aliases=["ls"], help="Fetch skills from all repositories")
    _add_runtime_overrides(skills_list)
    _add_workspace(skills_list)
    skills_list.add_argument("--search", "-q", default="", help="Filter by name or description")
    skills_list.add_argument("--group-by-source", action="store_true", help="Group by owner/repo")
    skills_list.add_argument("--json", action="store_true", help="Output JSON")
    skills_show = skills_sub.add_parser("show", help="Show one skill's metadata and SKILL.md body")
    _add_runtime_overrides(skills_show)
    skills_show.add_argument("name")
    skills_show.add_argument("--source", help="owner/repo when several repositories publish the name")
    skills_show.add_argument("--json", action="store_true", help="Output JSON")

    # installed
    inst = sub.add_parser("installed", help="List skills installed in the workspace")
    _add_workspace(inst)
    inst.add_argument("--json", action="store_true", help="Output JSON")

    # install / uninstall
    install = sub.add_parser("install", aliases=["i"], help="Install a marketplace skill into the workspace")
    _add_runtime_overrides(install)
    _add_workspace(install)
    install.add_argument("name", help="Skill name")
    install.add_argument("--source", help="owner/repo when several repositories publish the name")
    install.add_argument("--force", action="store_true", help="Overwrite an existing install")

    uninstall_p = sub.add_parser("uninstall", aliases=["remove", "rm"], help="Remove an installed skill")
    _add_workspace(uninstall_p)
    uninstall_p.add_argument("name", help="Installed skill name")

    return p


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        from .config import config_path

        print(str(config_path()))
        return 0

    if args.subcmd == "show":
        cfg = load_config()
        d = cfg.to_dict()
        d["github_token"] = redact_token(cfg.github_token)
        print(json.dumps(d, indent=2, sort_keys=True))
        return 0

    if args.subcmd == "set":
        cfg = load_config()
        token = cfg.github_token
        if args.github_token is not None:
            token = args.github_token or None
        new_cfg = replace(
            cfg,
            github_token=token,
            cache_timeout_s=args.cache_timeout_s if args.cache_timeout_s is not None else cfg.cache_timeout_s,
            install_location=args.install_location or cfg.install_location,
            timeout_s=args.timeout_s if args.timeout_s is not None else cfg.timeout_s,
        )
        path = save_config(new_cfg)
        print(f"Saved: {path}")
        return 0

    raise AssertionError("unreachable")


def cmd_repos(args: argparse.Namespace) -> int:
    cfg = load_config()

    if args.subcmd == "list":
        if args.json:
            print(json.dumps([r.to_dict() for r in cfg.repositories], indent=2, sort_keys=True))
            return 0
        rows = [["REPOSITORY", "BRANCH", "PATH", "MODE"]]
        for r in cfg.repositories:
            rows.append([r.key, r.branch, r.path or "/", "single" if r.single_skill else "multi"])
        _print_table(rows)
        return 0

    owner, repo = _parse_repo_arg(args.repo)

    if args.subcmd == "add":
        descriptor = RepositoryDescriptor(
            owner=owner,
            repo=repo,
            path=args.path.strip().strip("/"),
            branch=args.branch.strip() or "main",
            single_skill=args.single_skill,
        )
        if descriptor in cfg.repositories:
            print(f"Already configured: {descriptor.label}")
            return 0
        path = save_config(replace(cfg, repositories=cfg.repositories + (descriptor,)))
        print(f"Added {descriptor.label}")
        print(f"Saved: {path}")
        return 0

    if args.subcmd in ("remove", "rm"):
        wanted_path = args.path.strip("/") if args.path is not None else None
        kept = tuple(
            r
            for r in cfg.repositories
            if not (r.owner == owner and r.repo == repo and (wanted_path is None or r.path == wanted_path))
        )
        if len(kept) == len(cfg.repositories):
            raise AgentSkillsError(f"Repository not configured: {owner}/{repo}")
        path = save_config(replace(cfg, repositories=kept))
        print(f"Removed {len(cfg.repositories) - len(kept)} entr{'y' if len(cfg.repositories) - len(kept) == 1 else 'ies'}")
        print(f"Saved: {path}")
        return 0

    raise AssertionError("unreachable")


async def _fetch(aggregator: Aggregator, cfg: Config) -> Catalog:
    catalog = Catalog(aggregator, config_loader=lambda: cfg)
    await catalog.refresh()
    return catalog


def _pick(skills: tuple[Skill, ...] | list[Skill], name: str, source: str | None) -> Skill:
    matches = [s for s in skills if s.name == name]
    if source:
        owner, repo = _parse_repo_arg(source)
        matches = [s for s in matches if s.source.owner == owner and s.source.repo == repo]
    if not matches:
        raise AgentSkillsError(f"Skill not found: {name}")
    if len(matches) > 1:
        sources = ", ".join(sorted({s.source.key for s in matches}))
        raise AgentSkillsError(f"Skill {name!r} is published by several repositories ({sources}). Pass --source.")
    return matches[0]


def cmd_skills(args: argparse.Namespace) -> int:
    cfg = _runtime_cfg(args)
    catalog = asyncio.run(_fetch(_make_aggregator(), cfg))
    result = catalog.last_result
    _report(result)
    if result.diagnostic:
        return 1

    if args.subcmd in ("list", "ls"):
        catalog.set_installed(installed_names(scan(Path(args.workspace), _install_roots(cfg))))
        skills = catalog.search(args.search)

        if args.json:
            items = []
            for s in skills:
                d = s.to_dict()
                d["installed"] = catalog.is_installed(s)
                items.append(d)
            print(json.dumps(items, indent=2, sort_keys=True))
            return 0

        if not skills:
            print(f'No results for "{args.search}"' if args.search else "No skills available")
            return 0

        def _rows(group: list[Skill], with_source: bool) -> list[list[str]]:
            header = ["NAME", "SOURCE", "INSTALLED", "DESCRIPTION"] if with_source else ["NAME", "INSTALLED", "DESCRIPTION"]
            rows = [header]
            for s in group:
                row = [s.name, s.source.key] if with_source else [s.name]
                row += ["yes" if catalog.is_installed(s) else "", _shorten(s.description)]
                rows.append(row)
            return rows

        if args.group_by_source:
            for key, group in group_by_source(skills).items():
                print(f"{key} ({len(group)} skill{'s' if len(group) != 1 else ''})")
                _print_table(_rows(group, with_source=False))
                print("")
        else:
            _print_table(_rows(skills, with_source=True))
        return 0

    if args.subcmd == "show":
        skill = _pick(result.skills, args.name, args.source)
        if args.json:
            d = skill.to_dict()
            d["content"] = skill.full_content
            print(json.dumps(d, indent=2, sort_keys=True))
            return 0
        print(f"name: {skill.name}")
        print(f"description: {skill.description}")
        if skill.license:
            print(f"license: {skill.license}")
        if skill.compatibility:
            print(f"compatibility: {skill.compatibility}")
        print(f"source: {skill.source.key}@{skill.source.branch}")
        print(f"path: {skill.skill_path}")
        print("")
        print(skill.body_content.strip())
        return 0

    raise AssertionError("unreachable")


def cmd_installed(args: argparse.Namespace) -> int:
    cfg = load_config()
    found = sorted(scan(Path(args.workspace), _install_roots(cfg)), key=lambda s: (s.location, s.name))

    if args.json:
        print(json.dumps([s.to_dict() for s in found], indent=2, sort_keys=True))
        return 0
    if not found:
        print("No skills installed")
        return 0
    rows = [["NAME", "LOCATION", "SOURCE", "DESCRIPTION"]]
    for s in found:
        rows.append([s.name, s.location, s.source.key if s.source else "", _shorten(s.description)])
    _print_table(rows)
    return 0


async def _install(aggregator: Aggregator, cfg: Config, args: argparse.Namespace) -> tuple[FetchResult, str | None]:
    result = (await _fetch(aggregator, cfg)).last_result
    if result.diagnostic:
        return result, None
    skill = _pick(result.skills, args.name, args.source)
    async with aggregator.client(token=cfg.github_token, timeout_s=cfg.timeout_s) as client:
        resolver = RepositoryResolver(client, aggregator.cache, cache_timeout_s=cfg.cache_timeout_s)
        installer = SkillInstaller(workspace=Path(args.workspace), resolver=resolver, install_location=cfg.install_location)
        outcome = await installer.install(skill, overwrite=args.force)
    if not outcome.installed:
        if outcome.reason == "already installed":
            raise AgentSkillsError(f'Skill "{skill.name}" is already installed at {outcome.location}. Use --force to overwrite.')
        raise AgentSkillsError(f"Install of {skill.name!r} did not complete: {outcome.reason}")
    return result, f'Installed skill "{skill.name}" ({outcome.file_count} files) to {outcome.location}'


def cmd_install(args: argparse.Namespace) -> int:
    cfg = _runtime_cfg(args)
    result, message = asyncio.run(_install(_make_aggregator(), cfg, args))
    _report(result)
    if message is None:
        return 1
    print(message)
    return 0


def cmd_uninstall(args: argparse.Namespace) -> int:
    cfg = load_config()
    workspace = Path(args.workspace)
    matches = [s for s in scan(workspace, _install_roots(cfg)) if s.name == args.name]
    if not matches:
        raise AgentSkillsError(f"Skill is not installed: {args.name}")

    for s in matches:
        uninstall(workspace, s)
        print(f"Uninstalled {s.name} ({s.location})")
    return 0


def _format_http_error(err: GitHubHTTPError) -> str:
    if isinstance(err, RepositoryNotFoundError):
        return str(err)
    if err.status_code == 401:
        return "HTTP 401 Unauthorized. The GitHub token is missing or invalid."
    if err.status_code == 403:
        return "HTTP 403 Forbidden. The GitHub API rate limit may be exhausted; configure a token."
    if err.status_code == 404:
        return f"HTTP 404 Not Found: {err.url}"
    return f"HTTP {err.status_code}: {err.url}"


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        if args.cmd == "config":
            return cmd_config(args)
        if args.cmd == "repos":
            return cmd_repos(args)
        if args.cmd == "skills":
            return cmd_skills(args)
        if args.cmd == "installed":
            return cmd_installed(args)
        if args.cmd in ("install", "i"):
            return cmd_install(args)
        if args.cmd in ("uninstall", "remove", "rm"):
            return cmd_uninstall(args)
        raise AssertionError("unreachable")
    except GitHubHTTPError as e:
        print(f"error: {_format_http_error(e)}", file=sys.stderr)
        return 1
    except AgentSkillsError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
