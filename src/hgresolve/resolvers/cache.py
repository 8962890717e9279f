"""Process-wide caches shared by resolver instances.

``TTLStore`` is a size- and time-bounded map whose cells are either pending
(an in-flight ``asyncio.Future`` late callers can await) or resolved.
``RefCache`` keeps one store per query kind; ``ShallowCapabilityTracker``
remembers hosts that rejected shallow clones. Both live in a
``ResolverServices`` object built once and injected into resolvers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..config import ResolverConfig
from ..constants import Constants, RefKind

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class _Cell:
    """A single cache slot: pending while ``future`` is set, resolved otherwise."""

    future: Optional[asyncio.Future] = None
    value: Any = None
    expires_at: float = 0.0

    @property
    def pending(self) -> bool:
        return self.future is not None


class _LoadAbandoned(Exception):
    """The caller running a load was cancelled before the load settled."""


class TTLStore:
    """Bounded map with per-entry expiry and least-recently-used eviction.

    Pending cells never expire; they are replaced once their load settles.
    """

    def __init__(
        self,
        max_entries: int = Constants.CACHE_MAX_ENTRIES,
        ttl: float = Constants.CACHE_TTL_SEC,
        clock: Clock = time.monotonic,
    ):
        self._max_entries = max_entries
        self._ttl = ttl
        self._clock = clock
        self._cells: "OrderedDict[str, _Cell]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._cells)

    def _lookup(self, key: str) -> Optional[_Cell]:
        cell = self._cells.get(key)
        if cell is None:
            return None
        if not cell.pending and self._clock() >= cell.expires_at:
            del self._cells[key]
            return None
        self._cells.move_to_end(key)
        return cell

    def _store(self, key: str, cell: _Cell) -> None:
        self._cells[key] = cell
        self._cells.move_to_end(key)
        while len(self._cells) > self._max_entries:
            # Oldest resolved entry first; in-flight loads stay joinable
            evicted = next(
                (k for k, c in self._cells.items() if k != key and not c.pending), None
            )
            if evicted is None:
                break
            del self._cells[evicted]
            logger.debug("Evicted cache entry %s", evicted)

    def get(self, key: str) -> Union[None, asyncio.Future, Any]:
        """Return the cached value, the pending future, or None on a miss."""
        cell = self._lookup(key)
        if cell is None:
            return None
        return cell.future if cell.pending else cell.value

    def set(self, key: str, value: Any) -> None:
        """Store a value, or a future that becomes the pending cell for ``key``."""
        if isinstance(value, asyncio.Future):
            self._store(key, _Cell(future=value))
        else:
            self._store(key, _Cell(value=value, expires_at=self._clock() + self._ttl))

    def reset(self) -> None:
        self._cells.clear()

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the value for ``key``, running ``loader`` at most once at a time.

        The pending future is stored before ``loader`` is awaited so concurrent
        callers join it. A failed load is removed from the store and re-raised
        to every waiter; failures are never cached. If the caller running the
        load is cancelled, waiters start a load of their own instead.
        """
        while True:
            cell = self._lookup(key)
            if cell is None:
                break
            if not cell.pending:
                return cell.value
            try:
                return await asyncio.shield(cell.future)
            except _LoadAbandoned:
                continue

        future = asyncio.get_running_loop().create_future()
        cell = _Cell(future=future)
        self._store(key, cell)

        try:
            value = await loader()
        except asyncio.CancelledError:
            self._discard(key, cell)
            future.set_exception(_LoadAbandoned(key))
            future.exception()
            raise
        except Exception as exc:
            self._discard(key, cell)
            future.set_exception(exc)
            # Mark retrieved so an unjoined failure does not warn at shutdown
            future.exception()
            raise

        if self._cells.get(key) is cell:
            cell.future = None
            cell.value = value
            cell.expires_at = self._clock() + self._ttl
        future.set_result(value)
        return value

    def _discard(self, key: str, cell: _Cell) -> None:
        if self._cells.get(key) is cell:
            del self._cells[key]


class RefCache:
    """One ``TTLStore`` per ref query kind, keyed by repository location."""

    def __init__(
        self,
        max_entries: int = Constants.CACHE_MAX_ENTRIES,
        ttl: float = Constants.CACHE_TTL_SEC,
        clock: Clock = time.monotonic,
    ):
        self._stores: Dict[RefKind, TTLStore] = {
            kind: TTLStore(max_entries, ttl, clock) for kind in RefKind
        }

    def get(self, kind: RefKind, location: str) -> Any:
        return self._stores[kind].get(location)

    def set(self, kind: RefKind, location: str, value: Any) -> None:
        self._stores[kind].set(location, value)

    async def load(self, kind: RefKind, location: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        return await self._stores[kind].get_or_load(location, loader)

    def reset(self) -> None:
        """Clear every kind at once."""
        for store in self._stores.values():
            store.reset()


class ShallowCapabilityTracker:
    """Hosts known to reject shallow clones, remembered for the cache TTL."""

    def __init__(
        self,
        max_entries: int = Constants.CACHE_MAX_ENTRIES,
        ttl: float = Constants.CACHE_TTL_SEC,
        clock: Clock = time.monotonic,
    ):
        self._hosts = TTLStore(max_entries, ttl, clock)

    def is_known_unsupported(self, host: Optional[str]) -> bool:
        if not host:
            return False
        return bool(self._hosts.get(host))

    def mark_unsupported(self, host: Optional[str]) -> None:
        if not host:
            return
        logger.info("Host %s does not support shallow clones", host)
        self._hosts.set(host, True)

    def reset(self) -> None:
        self._hosts.reset()


@dataclass
class ResolverServices:
    """State shared by every resolver in the process."""

    ref_cache: RefCache = field(default_factory=RefCache)
    shallow_tracker: ShallowCapabilityTracker = field(default_factory=ShallowCapabilityTracker)

    @classmethod
    def from_config(cls, config: ResolverConfig, clock: Clock = time.monotonic) -> "ResolverServices":
        return cls(
            ref_cache=RefCache(config.cache_max_entries, config.cache_ttl, clock),
            shallow_tracker=ShallowCapabilityTracker(
                config.cache_max_entries, config.cache_ttl, clock
            ),
        )

    def reset(self) -> None:
        self.ref_cache.reset()
        self.shallow_tracker.reset()


_default_services: Optional[ResolverServices] = None


def default_services() -> ResolverServices:
    """The process-wide services instance, created on first use."""
    global _default_services  # pylint: disable=global-statement
    if _default_services is None:
        _default_services = ResolverServices()
    return _default_services
