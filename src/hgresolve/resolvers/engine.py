"""Target matching: turn a user target into a concrete resolution.

Decision order, first match wins:

1. a full 40 character hex string is a commit, no query needed;
2. a valid semver range picks the highest satisfying version tag
   (releases preferred over pre-releases); ``*`` on a repository without
   version tags falls back to the default branch; otherwise an exact
   tag or branch name is tried;
3. anything else is looked up as an exact tag, then branch, then accepted
   as a commit id (12-40 hex chars, optional ``N:`` revision prefix).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from ..common.logging_utils import ResolverLogger
from ..constants import Constants
from ..exceptions import NoMatchingTargetError
from ..versioning import semver
from .metadata import RepositoryMetadataProvider
from .models import (
    COMMIT_ID_RE,
    FULL_COMMIT_RE,
    BranchResolution,
    CommitResolution,
    Resolution,
    TagResolution,
    VersionResolution,
)

logger = logging.getLogger(__name__)


class ResolutionEngine:
    """Resolves targets against the refs of one repository location."""

    def __init__(
        self,
        metadata: RepositoryMetadataProvider,
        resolver_logger: ResolverLogger,
        source: str,
        default_branch: str = Constants.DEFAULT_BRANCH,
    ):
        self._metadata = metadata
        self._logger = resolver_logger
        self._source = source
        self._default_branch = default_branch

    async def resolve(self, location: str, target: Optional[str] = None) -> Resolution:
        """Resolve ``target`` (default ``*``) using refs found at ``location``.

        Raises:
            NoMatchingTargetError: If nothing satisfies the target.
        """
        target = target or Constants.DEFAULT_TARGET

        if FULL_COMMIT_RE.match(target):
            return CommitResolution(commit=target)

        if semver.valid_range(target):
            return await self._resolve_range(location, target)

        return await self._resolve_name(location, target)

    async def _resolve_range(self, location: str, target: str) -> Resolution:
        versions = await self._metadata.versions(location, include_details=True)

        if not versions and target == Constants.DEFAULT_TARGET:
            logger.debug("No version tags in %s, using branch %s", location, self._default_branch)
            return await self._resolve_name(location, self._default_branch)

        index = semver.max_satisfying_index([v.version for v in versions], target, strict=True)
        if index != -1:
            entry = versions[index]
            return VersionResolution(tag=entry.tag, commit=entry.commit)

        branches, tags = await self._branches_and_tags(location)
        resolution = self._match_name(target, branches, tags)
        if resolution is not None:
            return resolution

        if versions:
            details = "Available versions: " + ", ".join(v.version for v in versions)
        else:
            details = f"No versions found in {self._source}"
        raise NoMatchingTargetError(
            f"No tag found that was able to satisfy {target}", target, details
        )

    async def _resolve_name(self, location: str, target: str) -> Resolution:
        branches, tags = await self._branches_and_tags(location)
        resolution = self._match_name(target, branches, tags)
        if resolution is not None:
            return resolution

        match = COMMIT_ID_RE.match(target)
        if match:
            if len(match.group(2)) < 40:
                self._logger.warn(
                    "short-sha",
                    "Consider using longer commit SHA to avoid conflicts",
                    {"target": target},
                )
            return CommitResolution(commit=target)

        raise NoMatchingTargetError(
            f"Tag/branch {target} does not exist",
            target,
            self._available_refs(list(tags), list(branches)),
        )

    async def _branches_and_tags(self, location: str):
        branches, tags = await asyncio.gather(
            self._metadata.branches(location), self._metadata.tags(location)
        )
        return branches, tags

    @staticmethod
    def _match_name(
        target: str, branches: Dict[str, str], tags: Dict[str, str]
    ) -> Optional[Resolution]:
        if target in tags:
            return TagResolution(tag=target, commit=tags[target])
        if target in branches:
            return BranchResolution(branch=target, commit=branches[target])
        return None

    def _available_refs(self, tags: List[str], branches: List[str]) -> str:
        if tags:
            details = "Available tags: " + ", ".join(tags)
        else:
            details = f"No tags found in {self._source}"
        details += "\n"
        if branches:
            details += "Available branches: " + ", ".join(branches)
        else:
            details += f"No branches found in {self._source}"
        return details
