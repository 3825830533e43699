"""Bounded in-memory result cache with TTL expiry and LRU eviction."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger("note_parser.cache")

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """Cached value plus its insertion and last-access timestamps."""

    value: V
    inserted_at: float
    accessed_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0


class ResultCache(Generic[V]):
    """LRU map of key -> value whose entries expire ``ttl`` seconds after insertion.

    Recency is tracked by the order of the underlying ``OrderedDict``: a hit
    or a set moves the key to the end, eviction pops from the front. Expired
    entries are dropped lazily by :meth:`get` and eagerly by a periodic sweep
    started with :meth:`start`. Mutations never suspend, so concurrent
    tasks on one event loop need no lock.
    """

    def __init__(
        self,
        capacity: int,
        ttl: float,
        sweep_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._capacity = capacity
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._sweeper: Optional[asyncio.Task] = None
        self.stats = CacheStats()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def _expire_if_stale(self, key: str, now: float) -> bool:
        """Remove ``key`` when its TTL elapsed; shared by reads and the sweep."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if now - entry.inserted_at >= self._ttl:
            del self._entries[key]
            self.stats.expirations += 1
            return True
        return False

    def get(self, key: str) -> Optional[V]:
        now = self._clock()
        if key not in self._entries or self._expire_if_stale(key, now):
            self.stats.misses += 1
            return None
        entry = self._entries[key]
        entry.accessed_at = now
        self._entries.move_to_end(key)
        self.stats.hits += 1
        return entry.value

    def set(self, key: str, value: V) -> None:
        now = self._clock()
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._capacity:
            evicted, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug("Evicted least recently used entry %s", evicted)
        self._entries[key] = CacheEntry(value=value, inserted_at=now, accessed_at=now)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        removed = sum(1 for key in list(self._entries) if self._expire_if_stale(key, now))
        if removed:
            logger.debug("Swept %d expired cache entries", removed)
        return removed

    # Lifecycle --------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.purge_expired()

    def start(self) -> None:
        """Schedule the background sweep on the running event loop."""
        if self.running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is None:
            return
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper

    async def __aenter__(self) -> "ResultCache[V]":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
