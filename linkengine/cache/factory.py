"""
Builds the process-wide snapshot cache from settings.
"""

import logging
from enum import Enum

import redis

from .strategies import CacheStrategy, RedisCache, InMemoryCache, NullCache
from linkengine.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(Enum):
    REDIS = "redis"
    MEMORY = "memory"
    NULL = "null"


def _connect_redis() -> CacheStrategy:
    """Redis if it answers a PING, otherwise a per-process fallback."""
    client = redis.from_url(
        settings.redis_url,
        decode_responses=False,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning("Redis unreachable at %s (%s), using in-memory snapshot cache", settings.redis_url, e)
        return InMemoryCache()
    return RedisCache(client)


class CacheFactory:
    """
    One cache per process (Singleton), chosen by `settings.cache_backend`.
    """

    _instance: CacheStrategy = None

    _builders = {
        CacheBackend.REDIS: _connect_redis,
        CacheBackend.MEMORY: InMemoryCache,
        CacheBackend.NULL: NullCache,
    }

    @classmethod
    def create(cls, backend: CacheBackend) -> CacheStrategy:
        if cls._instance is not None:
            return cls._instance

        builder = cls._builders.get(backend)
        if builder is None:
            raise ValueError(f"Unknown cache backend: {backend}")

        cls._instance = builder()
        logger.info("Snapshot cache ready: %s", type(cls._instance).__name__)
        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Forget the cached instance (tests)"""
        cls._instance = None
