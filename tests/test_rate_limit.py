"""
Tests for per-client rate limiting backends and the limiter factory.
"""

import asyncio

import redis

from linkengine.ratelimit.factory import RateLimitBackend, RateLimiterFactory
from linkengine.ratelimit.strategies import (
    InMemoryRateLimiter,
    NullRateLimiter,
    RedisRateLimiter,
    window_bounds,
)


class FakeClock:
    def __init__(self, now=6000.0):
        self.now = now

    def __call__(self):
        return self.now


def hit(limiter, key="redirect:203.0.113.7", limit=3, window=60):
    return asyncio.run(limiter.hit(key, limit, window))


class TestWindowBounds:

    def test_retry_after_counts_down_to_window_end(self):
        assert window_bounds(6000.0, 60) == (100, 60)
        assert window_bounds(6045.5, 60) == (100, 14)
        assert window_bounds(6059.9, 60) == (100, 1)


class TestInMemoryRateLimiter:

    def test_allows_up_to_limit(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())

        assert [hit(limiter)[0] for _ in range(4)] == [True, True, True, False]

    def test_new_window_resets_budget(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        for _ in range(4):
            hit(limiter)

        clock.now += 60

        assert hit(limiter) == (True, 60)

    def test_clients_are_counted_separately(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        for _ in range(3):
            hit(limiter, key="redirect:203.0.113.7")

        assert hit(limiter, key="redirect:203.0.113.8")[0] is True
        assert hit(limiter, key="create:203.0.113.7")[0] is True

    def test_stale_windows_are_pruned(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock, max_keys=2)
        hit(limiter, key="a")
        hit(limiter, key="b")

        clock.now += 60
        hit(limiter, key="c")

        assert list(limiter._windows) == ["c"]

    def test_null_limiter_never_limits(self):
        limiter = NullRateLimiter()

        assert all(hit(limiter, limit=1)[0] for _ in range(5))


class FakePipeline:
    def __init__(self, store):
        self.store = store
        self.commands = []

    def incr(self, key):
        self.commands.append(("incr", key))

    def expire(self, key, seconds):
        self.commands.append(("expire", key, seconds))

    def execute(self):
        results = []
        for command in self.commands:
            if command[0] == "incr":
                self.store[command[1]] = self.store.get(command[1], 0) + 1
                results.append(self.store[command[1]])
            else:
                results.append(True)
        return results


class FakeRedis:
    def __init__(self):
        self.store = {}

    def pipeline(self):
        return FakePipeline(self.store)


class BrokenRedis:
    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("connection refused")

    pipeline = ping = _fail


class TestRedisRateLimiter:

    def test_counts_per_window_key(self):
        client = FakeRedis()
        limiter = RedisRateLimiter(client, clock=FakeClock())

        assert [hit(limiter)[0] for _ in range(4)] == [True, True, True, False]
        assert client.store == {"ratelimit:redirect:203.0.113.7:100": 4}

    def test_fails_open(self):
        limiter = RedisRateLimiter(BrokenRedis(), clock=FakeClock())

        assert hit(limiter, limit=0) == (True, 0)


class TestRateLimiterFactory:

    def setup_method(self):
        RateLimiterFactory.clear_instance()

    def teardown_method(self):
        RateLimiterFactory.clear_instance()

    def test_memory_backend_is_singleton(self):
        first = RateLimiterFactory.create(RateLimitBackend.MEMORY)

        assert isinstance(first, InMemoryRateLimiter)
        assert RateLimiterFactory.create(RateLimitBackend.MEMORY) is first

    def test_unreachable_redis_falls_back_to_memory(self, monkeypatch):
        monkeypatch.setattr(redis, "from_url", lambda *args, **kwargs: BrokenRedis())

        assert isinstance(RateLimiterFactory.create(RateLimitBackend.REDIS), InMemoryRateLimiter)
