"""Resolver flows shared by version-control backends.

Both public flows run the same sequence on one temporary directory, which
is allocated at most once per resolver instance:

* ``resolve``: clone, resolve the target, check it out, always clean up;
* ``has_new``: clone, resolve the target, compare with a previous resolution.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from ..common.logging_utils import ResolverLogger
from ..config import ResolverConfig
from ..constants import Constants
from ..exceptions import ToolUnavailableError
from ..versioning import semver
from .backend import VcsBackend
from .base import Resolver
from .cache import ResolverServices, default_services
from .engine import ResolutionEngine
from .metadata import RepositoryMetadataProvider
from .models import (
    DecEndpoint,
    Resolution,
    VersionEntry,
    VersionResolution,
    resolution_from_dict,
    resolution_to_dict,
)
from .working_copy import WorkingCopyManager

logger = logging.getLogger(__name__)


class VcsResolver(Resolver):
    """Resolver backed by a version-control repository."""

    def __init__(
        self,
        dec_endpoint: DecEndpoint,
        backend: VcsBackend,
        config: Optional[ResolverConfig] = None,
        resolver_logger: Optional[ResolverLogger] = None,
        services: Optional[ResolverServices] = None,
    ):
        super().__init__(dec_endpoint, config, resolver_logger)
        if not backend.is_available():
            raise ToolUnavailableError(backend.executable)
        self._backend = backend
        self._services = services or default_services()
        self._host: Optional[str] = None
        self._resolution: Optional[Resolution] = None
        self._working_copy: Optional[WorkingCopyManager] = None
        self._temp_dir_task: Optional[asyncio.Future] = None
        self._metadata = RepositoryMetadataProvider(backend, self._services.ref_cache)

    @property
    def resolution(self) -> Optional[Resolution]:
        return self._resolution

    @property
    def host(self) -> Optional[str]:
        return self._host

    @property
    def working_copy(self) -> WorkingCopyManager:
        if self._working_copy is None:
            self._working_copy = WorkingCopyManager(
                self._backend,
                self._source,
                self._host,
                self._create_temp_dir,
                self._services.shallow_tracker,
                self._logger,
                self._config.progress_delay,
                self._config.progress_interval,
                self._config.shallow_clone_args,
            )
            self._working_copy.work_dir = self._temp_dir
        return self._working_copy

    @property
    def engine(self) -> ResolutionEngine:
        return ResolutionEngine(
            self._metadata, self._logger, self._source, self._config.default_branch
        )

    # -----------------

    async def has_new(self, pkg_meta: Dict[str, Any]) -> bool:
        old = resolution_from_dict(pkg_meta.get("_resolution"))

        await self.working_copy.ensure_clone()
        resolution = await self._find_resolution()

        if old is None or old.type != resolution.type:
            return True

        if isinstance(resolution, VersionResolution) and semver.neq(resolution.tag, old.tag):
            return True

        return resolution.commit != old.commit

    async def _resolve(self) -> None:
        try:
            await self.working_copy.ensure_clone()
            resolution = await self._find_resolution()
            await self.working_copy.checkout(resolution)
        finally:
            await self.working_copy.cleanup()

    async def materialize(self, resolution: Resolution) -> str:
        """Fetch a known resolution into a temporary directory without resolving."""
        if self._working:
            raise RuntimeError("Already working")
        self._working = True
        try:
            temp_dir = await self._create_temp_dir()
            self._resolution = resolution
            try:
                await self.working_copy.fast_clone(resolution)
            finally:
                await self.working_copy.cleanup()
            self.persist_metadata(self._read_manifest(temp_dir))
            return temp_dir
        finally:
            self._working = False

    async def _find_resolution(self, target: Optional[str] = None) -> Resolution:
        location = await self.working_copy.ensure_dir()
        self._resolution = await self.engine.resolve(location, target or self._target)
        logger.debug("Resolved %s to %s", target or self._target, self._resolution)
        return self._resolution

    async def _create_temp_dir(self) -> str:
        # One directory per instance, shared by has_new and resolve
        if self._temp_dir is not None:
            return self._temp_dir
        if self._temp_dir_task is None:
            # Concurrent flows join the allocation already in flight
            self._temp_dir_task = asyncio.ensure_future(super()._create_temp_dir())
        try:
            temp_dir = await asyncio.shield(self._temp_dir_task)
        except Exception:
            self._temp_dir_task = None
            raise
        if self._working_copy is not None:
            self._working_copy.work_dir = temp_dir
        return temp_dir

    def persist_metadata(self, meta: Dict[str, Any]) -> Dict[str, Any]:
        resolution = self._resolution
        if resolution is None:
            raise RuntimeError("Cannot persist metadata before a resolution exists")

        version = None
        if isinstance(resolution, VersionResolution):
            version = semver.clean(resolution.tag)
            declared = meta.get("version")
            if isinstance(declared, str) and semver.neq(declared, version):
                self._logger.warn(
                    "mismatch",
                    f"Version declared in the json ({declared}) is different "
                    f"than the resolved one ({version})",
                    {"resolution": resolution_to_dict(resolution), "pkgMeta": dict(meta)},
                )
            meta["version"] = version
        else:
            meta.pop("version", None)

        # Branches are never stored as the release, it must identify one ref
        meta["_release"] = (
            version
            or getattr(resolution, "tag", None)
            or resolution.commit[: Constants.RELEASE_COMMIT_CHARS]
        )
        meta["_resolution"] = resolution_to_dict(resolution)

        return super().persist_metadata(meta)

    # ------------------------------

    @classmethod
    def _default_backend(cls, config: Optional[ResolverConfig] = None) -> VcsBackend:
        raise NotImplementedError("_default_backend not implemented")

    @classmethod
    def _provider(
        cls, services: Optional[ResolverServices], backend: Optional[VcsBackend]
    ) -> RepositoryMetadataProvider:
        services = services or default_services()
        return RepositoryMetadataProvider(backend or cls._default_backend(), services.ref_cache)

    @classmethod
    async def list_tags(
        cls,
        location: str,
        services: Optional[ResolverServices] = None,
        backend: Optional[VcsBackend] = None,
    ) -> Dict[str, str]:
        return await cls._provider(services, backend).tags(location)

    @classmethod
    async def list_branches(
        cls,
        location: str,
        services: Optional[ResolverServices] = None,
        backend: Optional[VcsBackend] = None,
    ) -> Dict[str, str]:
        return await cls._provider(services, backend).branches(location)

    @classmethod
    async def list_versions(
        cls,
        location: str,
        include_details: bool = False,
        services: Optional[ResolverServices] = None,
        backend: Optional[VcsBackend] = None,
    ) -> Union[List[VersionEntry], List[str]]:
        return await cls._provider(services, backend).versions(location, include_details)

    @classmethod
    def reset_cache(cls, services: Optional[ResolverServices] = None) -> None:
        """Forget cached refs and shallow-clone capabilities."""
        (services or default_services()).reset()
