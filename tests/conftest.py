"""Shared fixtures: a scripted stand-in for the hg executable."""

import asyncio
import os
from typing import Dict, List, Optional

import pytest

from hgresolve.config import ResolverConfig
from hgresolve.exceptions import CommandError
from hgresolve.resolvers.cache import ResolverServices, default_services
from hgresolve.resolvers.hg import HgBackend


def _listing(refs: Dict[str, str]) -> str:
    return "".join(f"{name:<30} {commit}\n" for name, commit in refs.items())


class FakeHg:
    """Records every invocation and answers from in-memory refs.

    ``failures`` maps a sub-command to errors raised by its next calls.
    """

    def __init__(
        self,
        tags: Optional[Dict[str, str]] = None,
        branches: Optional[Dict[str, str]] = None,
    ):
        self.tags = {"tip": "7:ffffffffffff"} if tags is None else tags
        self.branches = {"default": "7:ffffffffffff"} if branches is None else branches
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[Exception]] = {}
        self.clone_stderr = ""
        self.progress_chunks: List[str] = []
        self.delay = 0.0
        self.cloned_dirs = set()

    def fail(self, command: str, stderr: str, exit_code: int = 255) -> None:
        self.failures.setdefault(command, []).append(
            CommandError("hg", [command], exit_code, stderr=stderr)
        )

    def count(self, command: str) -> int:
        return sum(1 for call in self.calls if call[0] == command)

    def args_of(self, command: str) -> List[List[str]]:
        return [call[1] for call in self.calls if call[0] == command]

    async def __call__(self, executable, args, *, cwd=None, env=None, on_progress=None, timeout=None):
        command = args[0]
        self.calls.append((command, list(args), cwd, dict(env or {})))
        if self.delay:
            await asyncio.sleep(self.delay)

        pending = self.failures.get(command)
        if pending:
            raise pending.pop(0)

        if command == "identify":
            work_dir = args[2]
            if work_dir in self.cloned_dirs:
                return "abcdef123456 tip\n", ""
            raise CommandError(executable, args, 255, stderr=f"abort: repository {work_dir} not found")
        if command == "clone":
            os.makedirs(os.path.join(cwd, ".hg"), exist_ok=True)
            self.cloned_dirs.add(cwd)
            for chunk in self.progress_chunks:
                if on_progress is not None:
                    on_progress(chunk)
            return "", self.clone_stderr
        if command == "checkout":
            return "1 files updated, 0 files merged\n", ""
        if command == "tags":
            return _listing(self.tags), ""
        if command == "branches":
            return _listing(self.branches), ""
        raise AssertionError(f"unexpected hg command {args}")


@pytest.fixture
def fake_hg():
    return FakeHg()


@pytest.fixture
def backend(fake_hg, monkeypatch):
    monkeypatch.setattr(HgBackend, "is_available", lambda self: True)
    return HgBackend(runner=fake_hg)


@pytest.fixture
def services():
    """Isolated caches for each test."""
    return ResolverServices()


@pytest.fixture
def config(tmp_path):
    return ResolverConfig(tmp_dir=str(tmp_path / "tmp"), progress_delay=0.0, progress_interval=0.01)


@pytest.fixture(autouse=True)
def _reset_default_services():
    default_services().reset()
    yield
    default_services().reset()
