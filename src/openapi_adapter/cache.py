"""In-memory TTL cache with lazy expiry and a background sweeper."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class TTLCache(Generic[T]):
    """Keyed store where every entry expires independently.

    Reads of stale entries are misses and remove the entry. ``start()`` runs
    a sweep every ``sweep_interval`` seconds so entries that are never read
    again do not accumulate; ``stop()`` shuts the sweeper down. The map is
    guarded by a lock, so the cache may be shared between tasks, threads
    and the sweeper. There is no size bound.
    """

    def __init__(
        self,
        default_ttl: float = 300,
        sweep_interval: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task[None]] = None
        self._shutdown: Optional[asyncio.Event] = None

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(value=value, inserted_at=self._clock(), ttl=ttl)
        with self._lock:
            self._entries[key] = entry
        logger.debug("Cache set: %s ttl=%s", key, entry.ttl)

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Cache miss: %s", key)
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                logger.debug("Cache expired: %s", key)
                return None
        logger.debug("Cache hit: %s", key)
        return entry.value

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug("Cache deleted: %s", key)
        return removed

    def clear(self) -> None:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
        logger.info("Cache cleared entries_removed=%s", size)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Cache sweep removed %s entries", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.expired(self._clock())

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        if self.running:
            return
        self._shutdown = asyncio.Event()
        self._sweeper = asyncio.create_task(self._sweep_loop(self._shutdown))

    async def stop(self) -> None:
        if self._sweeper is None or self._shutdown is None:
            return
        self._shutdown.set()
        await self._sweeper
        self._sweeper = None
        self._shutdown = None

    async def _sweep_loop(self, shutdown: asyncio.Event) -> None:
        while not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=self.sweep_interval)
            except asyncio.TimeoutError:
                self.sweep()
