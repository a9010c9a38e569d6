"""
Per-client request budgets.
Same Strategy/Factory layout as the snapshot cache.
"""

from .strategies import RateLimitStrategy, RedisRateLimiter, InMemoryRateLimiter, NullRateLimiter
from .factory import RateLimiterFactory, RateLimitBackend

__all__ = [
    "RateLimitStrategy",
    "RedisRateLimiter",
    "InMemoryRateLimiter",
    "NullRateLimiter",
    "RateLimiterFactory",
    "RateLimitBackend",
]
