from typing import Protocol


class RateLimiter(Protocol):
    """Sliding or fixed window counter. `allow` records the attempt when it returns True."""

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        ...
