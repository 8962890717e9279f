"""Filesystem helpers run off the event loop."""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile


def _chmod_tree(path: str, mode: int) -> None:
    # Raise FileNotFoundError for a missing root, like chmod itself would
    os.chmod(path, mode)
    for root, dirs, files in os.walk(path):
        for name in dirs + files:
            full = os.path.join(root, name)
            if not os.path.islink(full):
                os.chmod(full, mode)


def _make_temp_dir(base_dir: str, prefix: str) -> str:
    os.makedirs(base_dir, exist_ok=True)
    return tempfile.mkdtemp(prefix=prefix, dir=base_dir)


async def create_temp_dir(base_dir: str, prefix: str) -> str:
    """Create a fresh, empty directory under ``base_dir``."""
    return await asyncio.to_thread(_make_temp_dir, base_dir, prefix)


async def remove_tree(path: str) -> None:
    """Recursively delete ``path``; an absent path is not an error."""
    if not os.path.lexists(path):
        return
    await asyncio.to_thread(shutil.rmtree, path)


async def chmod_recursive(path: str, mode: int) -> None:
    """Apply ``mode`` to ``path`` and everything below it."""
    await asyncio.to_thread(_chmod_tree, path, mode)
