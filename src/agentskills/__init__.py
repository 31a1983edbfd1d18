from ._version import __version__
from .aggregator import Aggregator
from .cache import TTLCache
from .catalog import Catalog
from .config import Config, load_config, save_config
from .github import AgentSkillsError, GitHubClient, GitHubHTTPError, RepositoryNotFoundError
from .installed import SkillInstaller, scan
from .manifest import parse_manifest
from .models import FetchResult, InstalledSkill, ManifestMetadata, RepositoryDescriptor, RepositoryFailure, Skill
from .resolver import RepositoryResolver

__all__ = [
    "__version__",
    "Aggregator",
    "AgentSkillsError",
    "Catalog",
    "Config",
    "FetchResult",
    "GitHubClient",
    "GitHubHTTPError",
    "InstalledSkill",
    "ManifestMetadata",
    "RepositoryDescriptor",
    "RepositoryFailure",
    "RepositoryNotFoundError",
    "RepositoryResolver",
    "Skill",
    "SkillInstaller",
    "TTLCache",
    "load_config",
    "parse_manifest",
    "save_config",
    "scan",
]
