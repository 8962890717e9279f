"""Mercurial target resolution for package managers."""

from .config import ResolverConfig, load_config
from .exceptions import (
    CleanupError,
    CommandError,
    ConfigError,
    NoMatchingTargetError,
    ResolverError,
    ToolUnavailableError,
)
from .resolvers import (
    BranchResolution,
    CommitResolution,
    DecEndpoint,
    HgBackend,
    HgResolver,
    ResolverServices,
    TagResolution,
    VersionResolution,
    default_services,
)

__all__ = [
    "BranchResolution",
    "CleanupError",
    "CommandError",
    "CommitResolution",
    "ConfigError",
    "DecEndpoint",
    "HgBackend",
    "HgResolver",
    "NoMatchingTargetError",
    "ResolverConfig",
    "ResolverError",
    "ResolverServices",
    "TagResolution",
    "ToolUnavailableError",
    "VersionResolution",
    "default_services",
    "load_config",
]
