"""Generic resolver lifecycle shared by every source type."""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, Optional

from ..common.fs import create_temp_dir
from ..common.logging_utils import ResolverLogger
from ..config import ResolverConfig
from ..constants import Constants
from .models import DecEndpoint

logger = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


class Resolver:
    """Resolves a dependency declaration into a directory on disk.

    Subclasses implement ``_resolve`` (fill the temporary directory) and may
    implement ``has_new``. ``resolve`` drives allocation, resolution and
    metadata persistence.
    """

    def __init__(
        self,
        dec_endpoint: DecEndpoint,
        config: Optional[ResolverConfig] = None,
        resolver_logger: Optional[ResolverLogger] = None,
    ):
        self._source = dec_endpoint.source
        self._target = dec_endpoint.target or Constants.DEFAULT_TARGET
        self._name = dec_endpoint.name or self._guess_name(dec_endpoint.source)
        self._guessed_name = not dec_endpoint.name
        self._config = config or ResolverConfig()
        self._logger = resolver_logger or ResolverLogger(source=dec_endpoint.source)
        self._temp_dir: Optional[str] = None
        self._pkg_meta: Optional[Dict[str, Any]] = None
        self._working = False

    @property
    def source(self) -> str:
        return self._source

    @property
    def target(self) -> str:
        return self._target

    @property
    def name(self) -> str:
        return self._name

    @property
    def temp_dir(self) -> Optional[str]:
        return self._temp_dir

    @staticmethod
    def _guess_name(source: str) -> str:
        return os.path.basename(source.rstrip("/\\")) or source

    async def has_new(self, pkg_meta: Dict[str, Any]) -> bool:
        """Whether the source has content newer than ``pkg_meta`` describes."""
        raise NotImplementedError("has_new not implemented")

    async def resolve(self) -> str:
        """Resolve into a temporary directory and return its path."""
        if self._working:
            raise RuntimeError("Already working")
        self._working = True
        try:
            temp_dir = await self._create_temp_dir()
            await self._resolve()
            meta = self._read_manifest(temp_dir)
            self.persist_metadata(meta)
            return temp_dir
        finally:
            self._working = False

    async def _resolve(self) -> None:
        raise NotImplementedError("_resolve not implemented")

    async def _create_temp_dir(self) -> str:
        prefix = _UNSAFE_NAME_RE.sub("-", self._name) + "-"
        self._temp_dir = await create_temp_dir(self._config.tmp_dir, prefix)
        logger.debug("Created temporary directory %s", self._temp_dir)
        return self._temp_dir

    def _read_manifest(self, directory: str) -> Dict[str, Any]:
        path = os.path.join(directory, Constants.MANIFEST_FILENAME)
        meta: Dict[str, Any] = {}
        if os.path.isfile(path):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    meta = data
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable manifest %s: %s", path, exc)
        meta.setdefault("name", self._name)
        return meta

    def persist_metadata(self, meta: Dict[str, Any]) -> Dict[str, Any]:
        """Write ``meta`` next to the resolved files and return it."""
        if self._temp_dir is None:
            raise RuntimeError("No temporary directory to save package metadata in")
        meta.setdefault("name", self._name)
        path = os.path.join(self._temp_dir, Constants.META_FILENAME)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=2, sort_keys=True)
        self._pkg_meta = meta
        return meta
