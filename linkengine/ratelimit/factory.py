"""
Builds the process-wide rate limiter from settings.
"""

import logging
from enum import Enum

import redis

from .strategies import RateLimitStrategy, RedisRateLimiter, InMemoryRateLimiter, NullRateLimiter
from linkengine.config import settings

logger = logging.getLogger(__name__)


class RateLimitBackend(Enum):
    REDIS = "redis"
    MEMORY = "memory"
    NULL = "null"


def _connect_redis() -> RateLimitStrategy:
    client = redis.from_url(settings.redis_url, socket_connect_timeout=2, socket_timeout=2)
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning("Redis unreachable at %s (%s), rate limits are per process", settings.redis_url, e)
        return InMemoryRateLimiter()
    return RedisRateLimiter(client)


class RateLimiterFactory:
    """One limiter per process, chosen by `settings.rate_limit_backend`."""

    _instance: RateLimitStrategy = None

    _builders = {
        RateLimitBackend.REDIS: _connect_redis,
        RateLimitBackend.MEMORY: InMemoryRateLimiter,
        RateLimitBackend.NULL: NullRateLimiter,
    }

    @classmethod
    def create(cls, backend: RateLimitBackend) -> RateLimitStrategy:
        if cls._instance is None:
            cls._instance = cls._builders[backend]()
            logger.info("Rate limiter ready: %s", type(cls._instance).__name__)
        return cls._instance

    @classmethod
    def clear_instance(cls):
        cls._instance = None
