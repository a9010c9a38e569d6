"""
Cache strategies for link snapshots (Strategy Pattern).

Entries are opaque strings under `link:{code}` keys, written with a TTL
that the resolver already capped at the link's expiry. Every backend fails
open: an unreachable cache behaves like a miss, because the cache only
ever sits in front of the link store, never instead of it.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Optional, Tuple

import redis

logger = logging.getLogger(__name__)


class CacheStrategy(ABC):
    """
    Interface the resolver and the invalidation paths talk to.

    All methods are async because cache operations involve I/O (network for Redis).
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Cached value, or None on a miss or an unavailable backend."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        """
        Store a value for `ttl` seconds.

        Returns:
            True if the entry was written
        """

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Drop entries. Returns how many existed."""

    @abstractmethod
    async def clear(self) -> bool:
        pass


class RedisCache(CacheStrategy):
    """
    Shared between API instances, so an owner edit handled by one instance
    invalidates the snapshot for all of them.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def get(self, key: str) -> Optional[str]:
        try:
            value = self.redis.get(key)
        except redis.RedisError as e:
            logger.warning("Redis get failed for %s: %s", key, e)
            return None
        return value.decode("utf-8") if value else None

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        try:
            return bool(self.redis.setex(key, ttl, value))
        except redis.RedisError as e:
            logger.warning("Redis set failed for %s: %s", key, e)
            return False

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self.redis.delete(*keys))
        except redis.RedisError as e:
            # A missed invalidation is bounded by the entry TTL
            logger.warning("Redis delete failed for %s: %s", ", ".join(keys), e)
            return 0

    async def clear(self) -> bool:
        try:
            self.redis.flushdb()
        except redis.RedisError as e:
            logger.warning("Redis clear failed: %s", e)
            return False
        return True


class InMemoryCache(CacheStrategy):
    """
    Per-process LRU with TTL enforcement.

    Pros:
    - Very fast (no network overhead)
    - No external service

    Cons:
    - Not distributed: an edit on one process is only seen by the others
      once their copy of the entry expires
    - Lost on restart

    Expired entries are dropped lazily on read; the least recently used
    entry is evicted once `max_entries` is reached.
    """

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic):
        self._entries: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()
        self.max_entries = max_entries
        self._clock = clock

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        self._entries[key] = (value, self._clock() + ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    async def clear(self) -> bool:
        self._entries.clear()
        return True


class NullCache(CacheStrategy):
    """Null Object: every read misses. Used when caching is switched off."""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        return True

    async def delete(self, *keys: str) -> int:
        return 0

    async def clear(self) -> bool:
        return True
