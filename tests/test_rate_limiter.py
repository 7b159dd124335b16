import pytest

from cyclofit.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter


def test_memory_rate_limiter_allows_then_blocks():
    rl = InMemoryRateLimiter()
    key = "submit:rider-1"
    assert rl.allow(key, max_requests=2, window_seconds=60) is True
    assert rl.allow(key, max_requests=2, window_seconds=60) is True
    assert rl.allow(key, max_requests=2, window_seconds=60) is False
    # other callers have their own window
    assert rl.allow("submit:rider-2", max_requests=2, window_seconds=60) is True


def test_memory_rate_limiter_window_expires(monkeypatch):
    from cyclofit.infrastructure.rate_limit import memory_rate_limiter as mod

    clock = [1000.0]
    monkeypatch.setattr(mod.time, "monotonic", lambda: clock[0])
    rl = InMemoryRateLimiter()
    assert rl.allow("k", 1, 60) is True
    assert rl.allow("k", 1, 60) is False
    clock[0] += 61
    assert rl.allow("k", 1, 60) is True


def test_redis_rate_limiter_with_fake():
    pytest.importorskip("redis")
    from cyclofit.infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter

    class FakePipe:
        def __init__(self, client):
            self.client = client
            self.ops = []

        def set(self, k, v, ex=None, nx=False):
            self.ops.append(("set", k, v, ex, nx))
            return self

        def incr(self, k, n):
            self.ops.append(("incr", k, n))
            return self

        def execute(self):
            results = []
            for op in self.ops:
                if op[0] == "set":
                    if op[4] and op[1] in self.client.store:
                        results.append(None)
                        continue
                    self.client.store[op[1]] = op[2]
                    self.client.expiries[op[1]] = op[3]
                    results.append(True)
                else:
                    self.client.store[op[1]] = self.client.store.get(op[1], 0) + op[2]
                    results.append(self.client.store[op[1]])
            return results

    class FakeRedis:
        def __init__(self):
            self.store = {}
            self.expiries = {}

        def pipeline(self):
            return FakePipe(self)

    client = FakeRedis()
    rl = RedisRateLimiter(client=client)

    assert rl.allow("k1", 2, 60) is True
    assert rl.allow("k1", 2, 60) is True
    assert rl.allow("k1", 2, 60) is False
    assert client.store == {"cyclofit:rl:k1:60": 3}
    assert client.expiries == {"cyclofit:rl:k1:60": 60}


def test_memory_rate_limiter_forgets_idle_keys(monkeypatch):
    from cyclofit.infrastructure.rate_limit import memory_rate_limiter as mod

    clock = [1000.0]
    monkeypatch.setattr(mod.time, "monotonic", lambda: clock[0])
    rl = InMemoryRateLimiter()
    for i in range(50):
        rl.allow(f"ip:10.0.0.{i}", 5, 60)
    assert len(rl._hits) == 50

    clock[0] += mod.SWEEP_INTERVAL_SECONDS + 61
    rl.allow("ip:10.0.0.200", 5, 60)

    assert set(rl._hits) == {"ip:10.0.0.200"}
