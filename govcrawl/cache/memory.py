"""In-process LRU cache store with per-entry TTL."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from govcrawl.core.interfaces import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 1800.0


@dataclass(frozen=True)
class CacheStats:
    """Hit/miss counters for a cache store."""

    hits: int
    misses: int
    evictions: int
    size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class MemoryCacheStore:
    """LRU cache bounded by entry count, safe for concurrent tasks.

    Expired entries are dropped lazily on read and in bulk by ``purge_expired``.

    Args:
        max_entries: Least recently used entries are evicted beyond this bound
        default_ttl: TTL in seconds when ``set`` gets none
        clock: Wall clock returning epoch seconds
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    async def get(self, key: str) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        now = self._clock()
        entry = CacheEntry(
            value=value,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            created_at=now,
        )
        async with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Evicted cache entry: %s", evicted)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def purge_expired(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        async with self._lock:
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            size=len(self._entries),
        )
