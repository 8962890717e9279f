"""Lifecycle of the temporary working copy used by one resolver.

The manager detects an existing clone, clones (fully, or restricted to one
ref with an optional shallow optimization), checks out a resolution and
finally strips version-control metadata from the directory.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence

from ..common.cmd import CommandResult
from ..common.fs import chmod_recursive, remove_tree
from ..common.logging_utils import ResolverLogger, Timer
from ..constants import Constants
from ..exceptions import CleanupError, CommandError
from .backend import VcsBackend
from .cache import ShallowCapabilityTracker
from .models import CommitResolution, Resolution, commit_hash

logger = logging.getLogger(__name__)

_PROGRESS_SPLIT_RE = re.compile(r"[\r\n]+")
_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")


class ProgressReporter:
    """Forwards tool progress lines to a logger, at most once per interval.

    Nothing is forwarded until ``delay`` seconds after ``start`` so fast
    operations stay quiet. Only the latest chunk received since the previous
    report is emitted.
    """

    def __init__(
        self,
        resolver_logger: ResolverLogger,
        delay: float,
        interval: float,
        pattern: str = Constants.PROGRESS_LINE_PATTERN,
    ):
        self._logger = resolver_logger
        self._delay = delay
        self._interval = interval
        self._pattern = re.compile(pattern)
        self._pending: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def feed(self, data: str) -> None:
        self._pending = data

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    def flush(self) -> None:
        data, self._pending = self._pending, None
        if not data:
            return
        for line in _PROGRESS_SPLIT_RE.split(data):
            line = _ANSI_RE.sub("", line).strip()
            if line and self._pattern.search(line):
                self._logger.info("progress", line)

    async def _run(self) -> None:
        await asyncio.sleep(self._delay)
        # Drop output produced during the grace period
        self._pending = None
        while True:
            await asyncio.sleep(self._interval)
            self.flush()


@asynccontextmanager
async def report_progress(
    resolver_logger: ResolverLogger, delay: float, interval: float
) -> AsyncIterator[ProgressReporter]:
    """Run a ``ProgressReporter`` for the duration of the block."""
    reporter = ProgressReporter(resolver_logger, delay, interval)
    reporter.start()
    try:
        yield reporter
    finally:
        await reporter.stop()


class WorkingCopyManager:
    """Owns the clone in one resolver's temporary directory."""

    def __init__(
        self,
        backend: VcsBackend,
        source: str,
        host: Optional[str],
        allocate_dir: Callable[[], Awaitable[str]],
        shallow_tracker: ShallowCapabilityTracker,
        resolver_logger: ResolverLogger,
        progress_delay: float,
        progress_interval: float,
        shallow_args: Sequence[str] = (),
    ):
        self._backend = backend
        self._source = source
        self._host = host
        self._allocate_dir = allocate_dir
        self._shallow_tracker = shallow_tracker
        self._logger = resolver_logger
        self._progress_delay = progress_delay
        self._progress_interval = progress_interval
        self._shallow_args: List[str] = list(shallow_args)
        self.work_dir: Optional[str] = None
        self._allocation: Optional[asyncio.Future] = None
        self._clone_lock: Optional[asyncio.Lock] = None

    async def ensure_dir(self) -> str:
        """Allocate the working directory once, however many callers race for it."""
        if self.work_dir is not None:
            return self.work_dir
        if self._allocation is None:
            self._allocation = asyncio.ensure_future(self._allocate_dir())
        try:
            work_dir = await asyncio.shield(self._allocation)
        except Exception:
            self._allocation = None
            raise
        self.work_dir = work_dir
        return work_dir

    def _lock(self) -> asyncio.Lock:
        # Created on first use so it binds to the running loop
        if self._clone_lock is None:
            self._clone_lock = asyncio.Lock()
        return self._clone_lock

    async def has_usable_clone(self) -> bool:
        """Whether the working directory already holds a valid repository."""
        if self.work_dir is None:
            return False
        try:
            output = await self._backend.identify(self.work_dir)
        except CommandError as exc:
            logger.debug("No usable clone in %s: %s", self.work_dir, exc.details)
            return False
        return self._backend.is_valid_identity(output)

    async def ensure_clone(self) -> None:
        """Clone into the working directory unless a usable clone is there.

        Concurrent callers are serialized so only the first one clones.
        """
        async with self._lock():
            if await self.has_usable_clone():
                return
            await self.ensure_dir()
            await self.clone()

    async def clone(self) -> CommandResult:
        """Full clone with throttled progress reporting."""
        work_dir = await self.ensure_dir()
        self._logger.action("clone", self._source, {"to": work_dir})
        with Timer() as t:
            async with report_progress(
                self._logger, self._progress_delay, self._progress_interval
            ) as reporter:
                result = await self._backend.clone(
                    self._source, work_dir, on_progress=reporter.feed
                )
        self._logger.debug("Clone finished", duration_ms=t.duration_ms())
        return result

    async def fast_clone(self, resolution: Resolution) -> None:
        """Clone only the resolution's tag or branch, shallow when the host allows.

        Commit resolutions cannot be cloned by name and fall back to a full
        clone followed by a checkout of the commit.
        """
        work_dir = await self.ensure_dir()
        if isinstance(resolution, CommitResolution):
            async with self._lock():
                await self.clone()
            await self._backend.checkout(work_dir, commit_hash(resolution.commit))
            return

        shallow = bool(self._shallow_args) and not self._shallow_tracker.is_known_unsupported(
            self._host
        )
        async with self._lock():
            await self._clone_ref(resolution, work_dir, shallow)

    async def _clone_ref(self, resolution: Resolution, work_dir: str, shallow: bool) -> None:
        ref = resolution.ref
        self._logger.action("clone", ref, {"resolution": resolution, "to": work_dir, "shallow": shallow})
        try:
            _, stderr = await self._backend.clone_ref(
                self._source, work_dir, ref, self._shallow_args if shallow else ()
            )
        except CommandError as exc:
            pattern = self._backend.shallow_unsupported_pattern
            if shallow and pattern and re.search(pattern, exc.details or "", re.IGNORECASE):
                self._shallow_tracker.mark_unsupported(self._host)
                await remove_tree(os.path.join(work_dir, self._backend.metadata_dir))
                await self._clone_ref(resolution, work_dir, shallow=False)
                return
            raise

        pattern = self._backend.ref_not_found_pattern
        if pattern and re.search(pattern, stderr, re.IGNORECASE):
            self._logger.warn(
                "old-hg",
                f"It seems you are using an old version of {self._backend.executable}, "
                "it will be slower and propitious to errors!",
            )
            await self._backend.checkout(work_dir, commit_hash(resolution.commit))

    async def checkout(self, resolution: Resolution) -> None:
        """Update the working copy to the resolution's tag, branch or commit."""
        work_dir = await self.ensure_dir()
        if isinstance(resolution, CommitResolution):
            ref = commit_hash(resolution.commit)
        else:
            ref = resolution.ref
        self._logger.action("checkout", ref, {"resolution": resolution, "to": work_dir})
        await self._backend.checkout(work_dir, ref)

    async def cleanup(self) -> None:
        """Remove the version-control metadata directory.

        Raises:
            CleanupError: If the directory exists but cannot be removed.
        """
        if self.work_dir is None:
            return
        metadata_dir = os.path.join(self.work_dir, self._backend.metadata_dir)
        try:
            if sys.platform == "win32":
                # Read-only metadata files block deletion on Windows
                try:
                    await chmod_recursive(metadata_dir, 0o777)
                except FileNotFoundError:
                    return
            await remove_tree(metadata_dir)
        except OSError as exc:
            raise CleanupError(metadata_dir, str(exc)) from exc
