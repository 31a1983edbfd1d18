from __future__ import annotations

import asyncio
import json
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .config import DEFAULT_INSTALL_LOCATION
from .github import AgentSkillsError
from .manifest import parse_manifest
from .models import MANIFEST_FILENAME, NO_DESCRIPTION, InstallResult, InstalledSkill, RepositoryDescriptor, Skill
from .resolver import RepositoryResolver

DEFAULT_INSTALL_ROOTS = (".github/skills", ".claude/skills")
INSTALL_META_FILENAME = ".agentskills-meta.json"


def _read_install_meta(skill_dir: Path) -> dict[str, Any] | None:
    meta_path = skill_dir / INSTALL_META_FILENAME
    if not meta_path.is_file():
        return None
    try:
        data = json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def _source_from_meta(meta: dict[str, Any] | None) -> RepositoryDescriptor | None:
    if not meta or not isinstance(meta.get("source"), dict):
        return None
    try:
        return RepositoryDescriptor.from_dict(meta["source"])
    except ValueError:
        return None


def scan(workspace: Path, roots: Iterable[str] = DEFAULT_INSTALL_ROOTS) -> list[InstalledSkill]:
    """
    Installed skills found directly under each root, relative to `workspace`.

    A subdirectory without a readable manifest is not a skill and is skipped.
    Missing roots are fine. No network access, no ordering guarantee.
    """
    workspace = Path(workspace).expanduser()
    observed_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    found: list[InstalledSkill] = []

    for root in roots:
        root_rel = root.strip("/")
        root_dir = workspace / root_rel
        try:
            children = list(root_dir.iterdir())
        except OSError:
            continue

        for child in children:
            if not child.is_dir():
                continue
            try:
                text = (child / MANIFEST_FILENAME).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            metadata, _ = parse_manifest(text)
            found.append(
                InstalledSkill(
                    name=metadata.name or child.name,
                    description=metadata.description or NO_DESCRIPTION,
                    location=f"{root_rel}/{child.name}",
                    installed_at=observed_at,
                    source=_source_from_meta(_read_install_meta(child)),
                )
            )
    return found


def installed_names(installed: Iterable[InstalledSkill]) -> set[str]:
    return {s.name for s in installed}


def _write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)


def _safe_target(base: Path, rel: str) -> Path:
    if not rel or rel.startswith("/"):
        raise AgentSkillsError(f"Invalid file path in skill: {rel!r}")
    target = (base / rel).resolve()
    resolved = base.resolve()
    if not str(target).startswith(str(resolved) + os.sep):
        raise AgentSkillsError(f"Skill file escapes the skill directory: {rel!r}")
    return target


class SkillInstaller:
    """
    Copies a marketplace skill into `<workspace>/<install_location>/<name>`.

    Files are staged in a temporary directory next to the destination and
    swapped in at the end, so a cancelled or failed install leaves nothing
    behind and keeps any previous copy.
    """

    def __init__(
        self,
        *,
        workspace: Path,
        resolver: RepositoryResolver,
        install_location: str = DEFAULT_INSTALL_LOCATION,
    ) -> None:
        self.workspace = Path(workspace).expanduser().resolve()
        self.resolver = resolver
        self.install_location = install_location.strip("/")

    @property
    def install_dir(self) -> Path:
        return self.workspace / self.install_location

    def _dest(self, name: str) -> Path:
        name = name.strip()
        if not name or name in {".", ".."} or "/" in name or "\\" in name:
            raise AgentSkillsError(f"Skill name cannot be used as a folder name: {name!r}")
        return self.install_dir / name

    def _write_meta(self, skill_dir: Path, skill: Skill) -> None:
        meta = {
            "name": skill.name,
            "skill_path": skill.skill_path,
            "source": skill.source.to_dict(),
            "installed_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        _write_json_atomic(skill_dir / INSTALL_META_FILENAME, meta)

    async def install(
        self,
        skill: Skill,
        *,
        overwrite: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> InstallResult:
        dest = self._dest(skill.name)
        location = f"{self.install_location}/{dest.name}"
        if dest.exists() and not overwrite:
            return InstallResult(installed=False, name=skill.name, location=location, reason="already installed")

        def _cancelled() -> bool:
            return cancel is not None and cancel.is_set()

        if _cancelled():
            return InstallResult(installed=False, name=skill.name, location=location, reason="cancelled")

        files = await self.resolver.fetch_skill_files(skill)
        if _cancelled():
            return InstallResult(installed=False, name=skill.name, location=location, reason="cancelled")

        self.install_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=".agentskills-", dir=self.install_dir) as td:
            staging = Path(td) / dest.name
            staging.mkdir()
            for f in files:
                if _cancelled():
                    return InstallResult(installed=False, name=skill.name, location=location, reason="cancelled")
                target = _safe_target(staging, f.path)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(f.content)
                # Let other tasks run (and set the cancel flag) between writes.
                await asyncio.sleep(0)
            self._write_meta(staging, skill)

            backup = dest.with_name(dest.name + ".agentskills-backup")
            had_existing = dest.exists()
            if backup.exists():
                shutil.rmtree(backup, ignore_errors=True)
            if had_existing:
                dest.rename(backup)
            try:
                shutil.move(str(staging), str(dest))
            except Exception:
                if dest.exists():
                    shutil.rmtree(dest, ignore_errors=True)
                if had_existing and backup.exists():
                    backup.rename(dest)
                raise
            finally:
                if backup.exists():
                    shutil.rmtree(backup, ignore_errors=True)

        return InstallResult(installed=True, name=skill.name, location=location, file_count=len(files))

    def uninstall(self, installed: InstalledSkill) -> Path:
        return uninstall(self.workspace, installed)


def uninstall(workspace: Path, installed: InstalledSkill) -> Path:
    workspace = Path(workspace).expanduser().resolve()
    skill_dir = (workspace / installed.location).resolve()
    if not str(skill_dir).startswith(str(workspace) + os.sep):
        raise AgentSkillsError(f"Refusing to remove a path outside the workspace: {installed.location}")
    if not skill_dir.is_dir():
        raise AgentSkillsError(f"Skill is not installed at {installed.location}")
    shutil.rmtree(skill_dir)
    return skill_dir
