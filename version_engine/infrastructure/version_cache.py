"""
Read cache for latest-draft / published / metrics lookups.
Advisory only: every mutation invalidates its scope and correctness-sensitive reads bypass it.
Redis when REDIS_URL is set (errors degrade to misses), bounded in-memory TTL cache otherwise.
"""
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Iterable, Optional, Tuple

from version_engine.config import Settings
from version_engine.logging_config import get_logger

logger = get_logger(__name__)

CACHE_PREFIX = "version_cache:"


class VersionCache(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete_many(self, keys: Iterable[str]) -> None:
        ...

    async def evict_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        return 0

    async def close(self) -> None:
        return None


class InMemoryVersionCache(VersionCache):
    """TTL + LRU bounded dict. Expired entries are also dropped lazily on get."""

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 1024) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()

    @property
    def size(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= time.monotonic():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        self._entries[key] = (time.monotonic() + ttl, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def delete_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._entries.pop(key, None)

    async def evict_expired(self) -> int:
        now = time.monotonic()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)


class RedisVersionCache(VersionCache):
    """redis.asyncio backend; TTL handled by Redis."""

    def __init__(self, redis_url: str, ttl_seconds: int = 300) -> None:
        from redis.asyncio import Redis

        self.ttl_seconds = ttl_seconds
        self._client = Redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(CACHE_PREFIX + key)
        except Exception as e:
            logger.warning("cache_get.error", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            await self._client.setex(CACHE_PREFIX + key, ttl_seconds or self.ttl_seconds, value)
        except Exception as e:
            logger.warning("cache_set.error", key=key, error=str(e))

    async def delete_many(self, keys: Iterable[str]) -> None:
        prefixed = [CACHE_PREFIX + key for key in keys]
        if not prefixed:
            return
        try:
            await self._client.delete(*prefixed)
        except Exception as e:
            logger.warning("cache_delete.error", keys=prefixed, error=str(e))

    async def close(self) -> None:
        await self._client.aclose()


def build_version_cache(settings: Settings) -> VersionCache:
    if settings.redis_url:
        return RedisVersionCache(settings.redis_url, ttl_seconds=settings.cache_ttl_seconds)
    return InMemoryVersionCache(
        ttl_seconds=settings.cache_ttl_seconds,
        max_entries=settings.cache_max_entries,
    )
