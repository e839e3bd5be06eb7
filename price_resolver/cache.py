"""
TTL Cache.

============================================================
PURPOSE
============================================================
Key -> (value, expires_at) store read against an injected clock.

- Entries older than the TTL are never returned
- Writes are last-write-wins
- get_or_load() collapses concurrent misses for one key into a
  single upstream lookup

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from core.clock import ClockFactory, ClockProtocol


logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """Cached value with its expiry."""

    value: V
    created_at: float
    expires_at: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def age_seconds(self, now: float) -> float:
        return now - self.created_at


class TTLCache(Generic[V]):
    """In-process TTL cache keyed by string."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Optional[ClockProtocol] = None,
        name: str = "cache",
        max_entries: int = 10_000,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock or ClockFactory.get_clock()
        self._name = name
        self._max_entries = max_entries

        self._entries: Dict[str, CacheEntry[V]] = {}
        self._inflight: Dict[str, "asyncio.Future[V]"] = {}

        self._hits = 0
        self._misses = 0
        self._loads = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[V]:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        now = self._clock.timestamp()

        if entry is None or entry.is_expired(now):
            self._misses += 1
            return None

        entry.hits += 1
        self._hits += 1
        return entry.value

    def set(self, key: str, value: V) -> None:
        now = self._clock.timestamp()
        self._entries[key] = CacheEntry(
            value=value,
            created_at=now,
            expires_at=now + self._ttl,
        )

        if len(self._entries) > self._max_entries:
            self._clean()

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        logger.info(f"[{self._name}] Cache cleared")

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[V]],
    ) -> V:
        """
        Return the cached value or load, cache and return a fresh one.

        Concurrent callers that miss on the same key share one load.
        The shared load is shielded, so a caller that times out does
        not cancel it for the others.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._load(key, loader))
            self._inflight[key] = future

        return await asyncio.shield(future)

    async def _load(self, key: str, loader: Callable[[], Awaitable[V]]) -> V:
        try:
            self._loads += 1
            value = await loader()
            self.set(key, value)
            return value
        finally:
            self._inflight.pop(key, None)

    def _clean(self) -> None:
        now = self._clock.timestamp()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        logger.debug(f"[{self._name}] Cleaned {len(expired)} expired entries")

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock.timestamp())

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0

        return {
            "name": self._name,
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "loads": self._loads,
            "hit_rate_percent": round(hit_rate, 2),
        }
