"""Resolvers for version-control sources."""

from .backend import VcsBackend
from .base import Resolver
from .cache import RefCache, ResolverServices, ShallowCapabilityTracker, TTLStore, default_services
from .engine import ResolutionEngine
from .hg import HgBackend, HgResolver
from .metadata import RepositoryMetadataProvider
from .models import (
    BranchResolution,
    CommitResolution,
    DecEndpoint,
    Resolution,
    TagResolution,
    VersionEntry,
    VersionResolution,
)
from .vcs import VcsResolver
from .working_copy import ProgressReporter, WorkingCopyManager

__all__ = [
    "BranchResolution",
    "CommitResolution",
    "DecEndpoint",
    "HgBackend",
    "HgResolver",
    "ProgressReporter",
    "RefCache",
    "RepositoryMetadataProvider",
    "Resolution",
    "ResolutionEngine",
    "Resolver",
    "ResolverServices",
    "ShallowCapabilityTracker",
    "TTLStore",
    "TagResolution",
    "VcsBackend",
    "VcsResolver",
    "VersionEntry",
    "VersionResolution",
    "WorkingCopyManager",
    "default_services",
]
