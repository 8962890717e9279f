"""Cached tag, branch and version listings of a repository."""

from __future__ import annotations

import logging
from typing import Dict, List, Union

from ..constants import RefKind
from ..versioning import semver
from .backend import VcsBackend
from .cache import RefCache
from .models import DEREF_MARKER, VersionEntry, parse_ref_line

logger = logging.getLogger(__name__)


def _parse_refs(lines: List[str], exclude_deref: bool = False) -> Dict[str, str]:
    refs: Dict[str, str] = {}
    for line in lines:
        parsed = parse_ref_line(line)
        if parsed is None:
            continue
        name, commit = parsed
        if exclude_deref and name.endswith(DEREF_MARKER):
            continue
        refs[name] = commit
    return refs


class RepositoryMetadataProvider:
    """Queries a repository for refs through a backend, behind a ``RefCache``.

    Every query is single-flight per location: concurrent callers share one
    tool invocation, and a failed invocation is not remembered.
    """

    def __init__(self, backend: VcsBackend, cache: RefCache):
        self._backend = backend
        self._cache = cache

    async def refs(self, location: str) -> List[str]:
        """Normalized raw tag listing lines."""

        async def load() -> List[str]:
            lines = await self._backend.list_tags(location)
            logger.debug("Fetched %d ref lines for %s", len(lines), location)
            return lines

        return await self._cache.load(RefKind.REFS, location, load)

    async def tags(self, location: str) -> Dict[str, str]:
        """Map of tag name to commit id."""

        async def load() -> Dict[str, str]:
            return _parse_refs(await self.refs(location), exclude_deref=True)

        return await self._cache.load(RefKind.TAGS, location, load)

    async def branches(self, location: str) -> Dict[str, str]:
        """Map of branch name to head commit id."""

        async def load() -> Dict[str, str]:
            lines = await self._backend.list_branches(location)
            return _parse_refs(lines)

        return await self._cache.load(RefKind.BRANCHES, location, load)

    async def versions(
        self, location: str, include_details: bool = False
    ) -> Union[List[VersionEntry], List[str]]:
        """Semantic-version tags sorted highest first.

        Args:
            location: Repository location.
            include_details: Return ``VersionEntry`` objects instead of bare
                version strings.
        """

        async def load() -> List[VersionEntry]:
            tags = await self.tags(location)
            entries = []
            for tag, commit in tags.items():
                version = semver.clean(tag)
                if version:
                    entries.append(VersionEntry(version=version, tag=tag, commit=commit))
            return semver.sort_desc(entries, key=lambda entry: entry.version)

        entries = await self._cache.load(RefKind.VERSIONS, location, load)
        if include_details:
            return list(entries)
        return [entry.version for entry in entries]
