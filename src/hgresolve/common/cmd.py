"""Asynchronous execution of external tools.

``run_command`` is the single seam through which resolvers talk to the
version-control executable. It captures both output streams, forwards every
chunk to an optional progress callback as it arrives, and raises
``CommandError`` on spawn failure, non-zero exit or an exceeded deadline.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..exceptions import CommandError
from .logging_utils import Timer, extra_context, is_debug_enabled

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
CommandResult = Tuple[str, str]


class CommandRunner(Protocol):
    """Callable signature shared by ``run_command`` and test doubles."""

    def __call__(
        self,
        executable: str,
        args: Sequence[str],
        *,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        on_progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> Awaitable[CommandResult]:
        ...


async def _pump(
    stream: Optional[asyncio.StreamReader],
    sink: List[str],
    on_progress: Optional[ProgressCallback],
) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        text = chunk.decode("utf-8", errors="replace")
        sink.append(text)
        if on_progress is not None:
            on_progress(text)


async def run_command(
    executable: str,
    args: Sequence[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    on_progress: Optional[ProgressCallback] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    """Run an external command and capture its output.

    Args:
        executable: Program to run.
        args: Program arguments.
        cwd: Working directory.
        env: Variables added on top of the current environment.
        on_progress: Receives each decoded output chunk as it arrives.
        timeout: Seconds before the process is killed; ``None`` waits forever.

    Returns:
        Tuple of (stdout, stderr).

    Raises:
        CommandError: If the process cannot be spawned, exits non-zero or
            exceeds ``timeout``.
    """
    full_env = {**os.environ, **env} if env else None
    if is_debug_enabled(logger):
        logger.debug(
            "Command start",
            extra=extra_context(
                event="command_start",
                component="cmd",
                action=executable,
                target=" ".join(args),
                cwd=cwd,
            ),
        )

    try:
        proc = await asyncio.create_subprocess_exec(
            executable,
            *args,
            cwd=cwd,
            env=full_env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise CommandError(executable, args, None, details=str(exc)) from exc

    stdout_parts: List[str] = []
    stderr_parts: List[str] = []
    waiter = asyncio.gather(
        _pump(proc.stdout, stdout_parts, on_progress),
        _pump(proc.stderr, stderr_parts, on_progress),
        proc.wait(),
    )

    with Timer() as t:
        try:
            if timeout is not None:
                await asyncio.wait_for(waiter, timeout)
            else:
                await waiter
        except asyncio.TimeoutError as exc:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise CommandError(
                executable,
                args,
                None,
                "".join(stdout_parts),
                "".join(stderr_parts),
                details=f"Timed out after {timeout} seconds",
            ) from exc
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
            raise

    stdout = "".join(stdout_parts)
    stderr = "".join(stderr_parts)

    if is_debug_enabled(logger):
        logger.debug(
            "Command finished",
            extra=extra_context(
                event="command_finish",
                component="cmd",
                action=executable,
                outcome="success" if proc.returncode == 0 else "failure",
                exit_code=proc.returncode,
                duration_ms=t.duration_ms(),
            ),
        )

    if proc.returncode != 0:
        raise CommandError(executable, args, proc.returncode, stdout, stderr)

    return stdout, stderr
