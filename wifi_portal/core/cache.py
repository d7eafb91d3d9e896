from typing import Any, Optional, Dict, Callable, Awaitable
import asyncio
import logging
import time

logger = logging.getLogger(__name__)

class CacheEntry:
    def __init__(self, value: Any, ttl_seconds: float):
        self.value = value
        self.expires_at = time.monotonic() + ttl_seconds

    def is_expired(self) -> bool:
        return time.monotonic() > self.expires_at

class InMemoryCache:
    def __init__(self):
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._cache[key]
                return None
            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: float = 300):
        async with self._lock:
            self._cache[key] = CacheEntry(value, ttl_seconds)

    async def clear_pattern(self, pattern: str):
        """Delete all keys that start with pattern"""
        async with self._lock:
            for key in [k for k in self._cache if k.startswith(pattern)]:
                del self._cache[key]

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl_seconds: float = 300
    ) -> Any:
        """Get from cache or compute and cache the value"""
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await factory()
        await self.set(key, value, ttl_seconds)
        return value

# Global cache instance
cache = InMemoryCache()
