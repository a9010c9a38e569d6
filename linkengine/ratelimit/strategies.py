"""
Fixed-window rate limiting strategies.

A window is `window_seconds` long and aligned to the epoch, so every
backend (and every API instance sharing Redis) agrees on where the
current window ends. Like the cache, the limiter fails open: if Redis is
unreachable requests are let through and a warning is logged.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Tuple

import redis

logger = logging.getLogger(__name__)


def window_bounds(now: float, window_seconds: int) -> Tuple[int, int]:
    """(index of the current window, whole seconds until it ends)"""
    index = int(now // window_seconds)
    retry_after = max(1, int((index + 1) * window_seconds - now))
    return index, retry_after


class RateLimitStrategy(ABC):

    @abstractmethod
    async def hit(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
        """
        Count one request against `key`.

        Returns:
            (allowed, seconds until the current window resets)
        """


class RedisRateLimiter(RateLimitStrategy):
    """INCR + EXPIRE on one key per client and window"""

    def __init__(self, redis_client: redis.Redis, clock: Callable[[], float] = time.time):
        self.redis = redis_client
        self._clock = clock

    async def hit(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
        index, retry_after = window_bounds(self._clock(), window_seconds)
        redis_key = f"ratelimit:{key}:{index}"
        try:
            pipe = self.redis.pipeline()
            pipe.incr(redis_key)
            pipe.expire(redis_key, window_seconds)
            count, _ = pipe.execute()
        except redis.RedisError as e:
            logger.warning("Rate limit check failed for %s, letting request through: %s", key, e)
            return True, 0
        return int(count) <= limit, retry_after


class InMemoryRateLimiter(RateLimitStrategy):
    """
    Per-process counters. Each API process enforces its own budget, so
    behind N processes a client effectively gets N times the limit.
    """

    def __init__(self, clock: Callable[[], float] = time.time, max_keys: int = 100000):
        self._windows: Dict[str, Tuple[int, int]] = {}
        self._clock = clock
        self.max_keys = max_keys

    async def hit(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
        index, retry_after = window_bounds(self._clock(), window_seconds)

        window, count = self._windows.get(key, (index, 0))
        if window != index:
            count = 0
        count += 1
        self._windows[key] = (index, count)

        if len(self._windows) > self.max_keys:
            self._prune(index)

        return count <= limit, retry_after

    def _prune(self, index: int) -> None:
        stale = [key for key, (window, _) in self._windows.items() if window != index]
        for key in stale:
            del self._windows[key]


class NullRateLimiter(RateLimitStrategy):
    """Null Object: never limits."""

    async def hit(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
        return True, 0
