import redis

from ...application.ports.rate_limiter import RateLimiter


class RedisRateLimiter(RateLimiter):
    """Fixed window counter shared by every worker pointed at the same Redis."""

    def __init__(self, url: str = None, prefix: str = "cyclofit:rl:", client=None) -> None:
        self.client = client or redis.Redis.from_url(url)
        self.prefix = prefix

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        rk = f"{self.prefix}{key}:{window_seconds}"
        pipe = self.client.pipeline()
        # SET NX EX opens the window once; INCR never touches the expiry
        pipe.set(rk, 0, ex=window_seconds, nx=True)
        pipe.incr(rk, 1)
        _, count = pipe.execute()
        return int(count) <= int(max_requests)
