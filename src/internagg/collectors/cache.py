"""Short-lived in-memory cache for raw provider responses."""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CacheEntry:
    """Cache entry with TTL support."""

    def __init__(self, data: Any, ttl_seconds: float, now: float):
        self.data = data
        self.created_at = now
        self.ttl = ttl_seconds

    def is_expired(self, now: float) -> bool:
        """Check if the cache entry has expired."""
        return now - self.created_at > self.ttl


class ResponseCache:
    """Process-wide TTL cache shared by all source adapters.

    One instance is created per process and handed to every adapter, so
    tests can build an isolated cache per case. Reads and writes are
    coroutines guarded by a lock.

    Example:
        cache = ResponseCache(ttl_seconds=1800)
        await cache.set("linkedin:scrape:data science:{}", listings)
        cached = await cache.get("linkedin:scrape:data science:{}")
    """

    # Default cache TTL in seconds (30 minutes)
    DEFAULT_TTL = 1800

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None if missing or expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            logger.debug(f"Cache hit: {key}")
            return entry.data

    async def set(self, key: str, data: Any, ttl_seconds: float | None = None) -> None:
        """Store a value under key."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        async with self._lock:
            self._entries[key] = CacheEntry(data, ttl, self._clock())
        logger.debug(f"Cached: {key}")

    async def clear(self) -> None:
        """Clear all cached results."""
        async with self._lock:
            self._entries.clear()
        logger.debug("Cache cleared")

    def __len__(self) -> int:
        return len(self._entries)
