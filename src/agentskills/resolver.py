from __future__ import annotations

import asyncio
import logging
import posixpath

from .cache import DEFAULT_CACHE_TIMEOUT_S, TTLCache, raw_key, tree_key
from .github import AgentSkillsError, GitHubClient, TreeListing, rate_limit_warning
from .manifest import parse_manifest
from .models import MANIFEST_FILENAME, NO_DESCRIPTION, RepositoryDescriptor, Resolution, Skill, SkillFile

logger = logging.getLogger(__name__)


def _basename(path: str) -> str:
    return posixpath.basename(path.rstrip("/")) or path


def find_skill_dirs(listing: TreeListing, prefix: str) -> list[str]:
    """
    Skill directories under `prefix`: parents of every manifest file at or
    below `prefix + "/"`. An empty prefix searches the whole repository.
    """
    base = prefix.strip("/")
    scope = f"{base}/" if base else ""
    dirs: list[str] = []
    for entry in listing.entries:
        if not entry.is_file or not entry.path.startswith(scope):
            continue
        if entry.path == MANIFEST_FILENAME:
            # Only a root-level manifest of an unscoped search has no parent dir.
            continue
        if entry.path.endswith("/" + MANIFEST_FILENAME):
            dirs.append(entry.path[: -len(MANIFEST_FILENAME) - 1])
    return dirs


class RepositoryResolver:
    """
    Turns one repository descriptor into the skills it publishes.

    Discovery costs one listing call per repository+branch (cached); manifests
    and skill files come from the raw content endpoint, one request per file,
    all issued concurrently.
    """

    def __init__(
        self,
        client: GitHubClient,
        cache: TTLCache,
        *,
        cache_timeout_s: float = DEFAULT_CACHE_TIMEOUT_S,
    ) -> None:
        self.client = client
        self.cache = cache
        self.cache_timeout_s = cache_timeout_s

    async def _listing(self, owner: str, repo: str, ref: str, warnings: list[str] | None = None) -> TreeListing:
        key = tree_key(owner, repo, ref)
        cached = self.cache.get(key, self.cache_timeout_s)
        if cached is not None:
            return cached

        listing = await self.client.fetch_tree(owner, repo, ref)
        notes: list[str] = []
        if listing.truncated:
            notes.append(f"Tree for {owner}/{repo} was truncated. Some skills may be missing.")
        low = rate_limit_warning(listing)
        if low:
            notes.append(low)
        for note in notes:
            logger.warning(note)
        if warnings is not None:
            warnings.extend(notes)

        self.cache.set(key, listing)
        return listing

    async def _raw(self, owner: str, repo: str, ref: str, path: str) -> bytes:
        key = raw_key(owner, repo, ref, path)
        cached = self.cache.get(key, self.cache_timeout_s)
        if cached is not None:
            return cached
        content = await self.client.fetch_raw(owner, repo, ref, path)
        self.cache.set(key, content)
        return content

    async def fetch_manifest(self, descriptor: RepositoryDescriptor, skill_path: str) -> Skill:
        manifest_path = f"{skill_path}/{MANIFEST_FILENAME}" if skill_path else MANIFEST_FILENAME
        raw = await self._raw(descriptor.owner, descriptor.repo, descriptor.branch, manifest_path)
        text = raw.decode("utf-8", errors="replace")
        metadata, body = parse_manifest(text)
        return Skill(
            name=metadata.name or _basename(skill_path) or descriptor.repo,
            description=metadata.description or NO_DESCRIPTION,
            license=metadata.license,
            compatibility=metadata.compatibility,
            source=descriptor,
            skill_path=skill_path,
            full_content=text,
            body_content=body,
        )

    async def _try_manifest(self, descriptor: RepositoryDescriptor, skill_path: str) -> Skill | None:
        try:
            return await self.fetch_manifest(descriptor, skill_path)
        except AgentSkillsError as e:
            logger.debug("No %s for %s in %s: %s", MANIFEST_FILENAME, skill_path, descriptor.key, e)
            return None

    async def resolve(self, descriptor: RepositoryDescriptor) -> Resolution:
        if descriptor.single_skill:
            skill = await self._try_manifest(descriptor, descriptor.path.strip("/"))
            if skill is None:
                return Resolution(skills=(), dropped=(descriptor.path,))
            return Resolution(skills=(skill,))

        warnings: list[str] = []
        listing = await self._listing(descriptor.owner, descriptor.repo, descriptor.branch, warnings)
        skill_dirs = find_skill_dirs(listing, descriptor.path)

        results = await asyncio.gather(*(self._try_manifest(descriptor, d) for d in skill_dirs))
        skills = tuple(s for s in results if s is not None)
        dropped = tuple(d for d, s in zip(skill_dirs, results) if s is None)
        return Resolution(skills=skills, warnings=tuple(warnings), dropped=dropped)

    async def fetch_skill_files(self, skill: Skill) -> list[SkillFile]:
        """
        Every file under the skill's directory, paths relative to it.

        Reuses the listing discovery already cached for the same repository and
        branch, so installing right after a refresh costs no listing call.
        """
        src = skill.source
        listing = await self._listing(src.owner, src.repo, src.branch)
        prefix = skill.skill_path.strip("/")
        scope = f"{prefix}/" if prefix else ""
        paths = [e.path for e in listing.entries if e.is_file and e.path.startswith(scope)]
        if not paths:
            raise AgentSkillsError(f"No files found for skill {skill.name!r} at {src.key}/{prefix}")

        contents = await asyncio.gather(*(self._raw(src.owner, src.repo, src.branch, p) for p in paths))
        return [SkillFile(path=p[len(scope):], content=c) for p, c in zip(paths, contents)]
