from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MANIFEST_FILENAME = "SKILL.md"
NO_DESCRIPTION = "No description available"


@dataclass(frozen=True)
class RepositoryDescriptor:
    owner: str
    repo: str
    path: str
    branch: str = "main"
    single_skill: bool = False

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def label(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}:{self.path}"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "RepositoryDescriptor":
        owner = str(raw.get("owner", "")).strip()
        repo = str(raw.get("repo", "")).strip()
        if not owner or not repo:
            raise ValueError(f"Repository entry needs owner and repo: {raw!r}")
        single = raw.get("single_skill", raw.get("singleSkill", False))
        return cls(
            owner=owner,
            repo=repo,
            path=str(raw.get("path", "")).strip().strip("/"),
            branch=str(raw.get("branch") or "main").strip(),
            single_skill=bool(single),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "repo": self.repo,
            "path": self.path,
            "branch": self.branch,
            "single_skill": self.single_skill,
        }


@dataclass(frozen=True)
class ManifestMetadata:
    name: str = ""
    description: str = ""
    license: str | None = None
    compatibility: str | None = None
    allowed_tools: str | None = None
    extra: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Skill:
    name: str
    description: str
    source: RepositoryDescriptor
    skill_path: str
    license: str | None = None
    compatibility: str | None = None
    full_content: str = ""
    body_content: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "license": self.license,
            "compatibility": self.compatibility,
            "source": self.source.to_dict(),
            "skill_path": self.skill_path,
        }


@dataclass(frozen=True)
class InstalledSkill:
    name: str
    description: str
    location: str
    installed_at: str  # observed at scan time, not the real install time
    source: RepositoryDescriptor | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "installed_at": self.installed_at,
            "source": self.source.to_dict() if self.source else None,
        }


@dataclass(frozen=True)
class SkillFile:
    path: str
    content: bytes


@dataclass(frozen=True)
class Resolution:
    skills: tuple[Skill, ...]
    warnings: tuple[str, ...] = ()
    dropped: tuple[str, ...] = ()


@dataclass(frozen=True)
class RepositoryFailure:
    descriptor: RepositoryDescriptor
    reason: str

    def __str__(self) -> str:
        return f"{self.descriptor.key}: {self.reason}"


@dataclass(frozen=True)
class FetchResult:
    skills: tuple[Skill, ...]
    failures: tuple[RepositoryFailure, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def diagnostic(self) -> str | None:
        """
        Single operator-facing message when every repository failed.

        Partial results count as success, so this is None as soon as any skill
        was resolved.
        """
        if self.skills or not self.failures:
            return None
        first = self.failures[0]
        more = len(self.failures) - 1
        suffix = f" (+{more} more)" if more > 0 else ""
        return f"Failed to fetch skills: {first}{suffix}"


@dataclass(frozen=True)
class InstallResult:
    installed: bool
    name: str
    location: str
    file_count: int = 0
    reason: str | None = None
