"""Mercurial backend and resolver."""

from __future__ import annotations

import dataclasses
import logging
import re
import shutil
from typing import List, Optional, Sequence
from urllib.parse import urlsplit

from ..common.cmd import CommandResult, CommandRunner, ProgressCallback, run_command
from ..common.logging_utils import ResolverLogger
from ..config import ResolverConfig
from ..constants import Constants
from .backend import VcsBackend
from .cache import ResolverServices
from .models import DecEndpoint
from .vcs import VcsResolver

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"[\t ]+")
_LINES_RE = re.compile(r"[\r\n]+")


def split_output(stdout: str) -> List[str]:
    """Trim output, standardize spacing and split it into lines."""
    text = _WHITESPACE_RE.sub(" ", stdout.strip())
    return [line for line in _LINES_RE.split(text) if line]


class HgBackend(VcsBackend):
    """Runs ``hg`` with ``HGPLAIN`` set so user config cannot alter output."""

    metadata_dir = Constants.HG_METADATA_DIR
    shallow_unsupported_pattern = Constants.SHALLOW_UNSUPPORTED_PATTERN
    ref_not_found_pattern = Constants.REF_NOT_FOUND_PATTERN

    def __init__(
        self,
        executable: str = Constants.HG_EXECUTABLE,
        runner: CommandRunner = run_command,
        timeout: Optional[float] = None,
    ):
        self._executable = executable
        self._runner = runner
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: ResolverConfig, runner: CommandRunner = run_command) -> "HgBackend":
        return cls(config.hg_executable, runner, config.command_timeout)

    @property
    def executable(self) -> str:
        return self._executable

    def is_available(self) -> bool:
        return shutil.which(self._executable) is not None

    async def _hg(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CommandResult:
        return await self._runner(
            self._executable,
            list(args),
            cwd=cwd,
            env=Constants.HG_ENV,
            on_progress=on_progress,
            timeout=self._timeout,
        )

    async def identify(self, work_dir: str) -> str:
        stdout, _ = await self._hg(["identify", "-R", work_dir])
        return stdout

    def is_valid_identity(self, output: str) -> bool:
        return bool(re.match(Constants.VALID_REPO_PATTERN, output.strip()))

    async def clone(
        self, source: str, work_dir: str, on_progress: Optional[ProgressCallback] = None
    ) -> CommandResult:
        return await self._hg(["clone", "-v", source, "."], cwd=work_dir, on_progress=on_progress)

    async def clone_ref(
        self, source: str, work_dir: str, ref: str, shallow_args: Sequence[str] = ()
    ) -> CommandResult:
        args = ["clone", "-v", "-r", ref, *shallow_args, source, "."]
        return await self._hg(args, cwd=work_dir)

    async def checkout(self, work_dir: str, ref: str) -> CommandResult:
        return await self._hg(["checkout", ref], cwd=work_dir)

    async def list_tags(self, location: str) -> List[str]:
        stdout, _ = await self._hg(["tags"], cwd=location)
        return split_output(stdout)

    async def list_branches(self, location: str) -> List[str]:
        stdout, _ = await self._hg(["branches"], cwd=location)
        return split_output(stdout)


def strip_protocol(source: str) -> str:
    """Drop the ``hg+`` marker used to route a source to this resolver."""
    if source.startswith(Constants.HG_PROTOCOL_PREFIX):
        return source[len(Constants.HG_PROTOCOL_PREFIX):]
    return source


def host_of(source: str) -> Optional[str]:
    """Network location of a source, reading scheme-less sources as ssh."""
    if "://" not in source:
        source = "ssh://" + source
    try:
        return urlsplit(source).netloc or None
    except ValueError:
        return None


class HgResolver(VcsResolver):
    """Resolves Mercurial sources such as ``hg+https://host/repo``."""

    def __init__(
        self,
        dec_endpoint: DecEndpoint,
        config: Optional[ResolverConfig] = None,
        resolver_logger: Optional[ResolverLogger] = None,
        services: Optional[ResolverServices] = None,
        backend: Optional[HgBackend] = None,
    ):
        config = config or ResolverConfig()
        dec_endpoint = dataclasses.replace(dec_endpoint, source=strip_protocol(dec_endpoint.source))
        super().__init__(
            dec_endpoint,
            backend or HgBackend.from_config(config),
            config,
            resolver_logger,
            services,
        )

        if not self._source.startswith("file://"):
            self._source = self._source.rstrip("/")

        if self._guessed_name:
            self._name = self._guess_name(self._source)
            if self._name.endswith(Constants.HG_NAME_SUFFIX):
                self._name = self._name[: -len(Constants.HG_NAME_SUFFIX)]

        if ":" in self._name:
            # Drop a port picked up from a bare host:port source
            self._name = self._name[: self._name.index(":")]

        self._host = host_of(self._source)

    @classmethod
    def _default_backend(cls, config: Optional[ResolverConfig] = None) -> VcsBackend:
        return HgBackend.from_config(config or ResolverConfig())
