from __future__ import annotations

import json
import logging
import os
import stat
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from platformdirs import user_config_path

from .cache import DEFAULT_CACHE_TIMEOUT_S
from .models import RepositoryDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0
DEFAULT_INSTALL_LOCATION = ".github/skills"
DEFAULT_REPOSITORIES = (
    RepositoryDescriptor(owner="anthropics", repo="skills", path="skills", branch="main"),
)


@dataclass(frozen=True)
class Config:
    repositories: tuple[RepositoryDescriptor, ...] = DEFAULT_REPOSITORIES
    cache_timeout_s: float = DEFAULT_CACHE_TIMEOUT_S
    github_token: str | None = None
    install_location: str = DEFAULT_INSTALL_LOCATION
    timeout_s: float = DEFAULT_TIMEOUT_S

    def to_dict(self) -> dict[str, Any]:
        return {
            "repositories": [r.to_dict() for r in self.repositories],
            "cache_timeout_s": self.cache_timeout_s,
            "github_token": self.github_token,
            "install_location": self.install_location,
            "timeout_s": self.timeout_s,
        }


def config_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv("AGENTSKILLS_CONFIG_PATH"):
        return Path(env).expanduser()
    return user_config_path("agentskills") / "config.json"


def _float_or(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _repositories_from_list(items: list[Any]) -> tuple[RepositoryDescriptor, ...]:
    repos: list[RepositoryDescriptor] = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("Ignoring repository entry that is not an object: %r", item)
            continue
        try:
            repos.append(RepositoryDescriptor.from_dict(item))
        except ValueError as e:
            logger.warning("Ignoring repository entry: %s", e)
    return tuple(repos)


def config_from_dict(raw: dict[str, Any]) -> Config:
    base = Config()
    repos = base.repositories
    if isinstance(raw.get("repositories"), list):
        repos = _repositories_from_list(raw["repositories"])

    token = raw.get("github_token")
    install_location = raw.get("install_location")
    return Config(
        repositories=repos,
        cache_timeout_s=_float_or(raw.get("cache_timeout_s"), base.cache_timeout_s),
        github_token=token if isinstance(token, str) and token else None,
        install_location=install_location if isinstance(install_location, str) and install_location else base.install_location,
        timeout_s=_float_or(raw.get("timeout_s"), base.timeout_s),
    )


def load_config(path_override: str | Path | None = None) -> Config:
    path = config_path(path_override)
    if not path.exists():
        return Config()

    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        return Config()
    return config_from_dict(raw)


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(cfg.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)

    # The file may hold a GitHub token.
    try:
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
    except OSError:
        pass

    return path


def apply_env(cfg: Config) -> Config:
    token = os.getenv("AGENTSKILLS_GITHUB_TOKEN") or os.getenv("GITHUB_TOKEN") or cfg.github_token
    cache_timeout_s = _float_or(os.getenv("AGENTSKILLS_CACHE_TIMEOUT_S"), cfg.cache_timeout_s)
    timeout_s = _float_or(os.getenv("AGENTSKILLS_TIMEOUT_S"), cfg.timeout_s)
    return replace(cfg, github_token=token, cache_timeout_s=cache_timeout_s, timeout_s=timeout_s)


def redact_token(token: str | None) -> str | None:
    if not token:
        return token
    if len(token) <= 10:
        return token[:2] + "..." + token[-2:]
    return token[:6] + "..." + token[-4:]
