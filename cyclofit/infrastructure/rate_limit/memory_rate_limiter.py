import threading
import time
from collections import deque
from typing import Deque, Dict

from ...application.ports.rate_limiter import RateLimiter

SWEEP_INTERVAL_SECONDS = 60


class InMemoryRateLimiter(RateLimiter):
    """Sliding window per key. Only suitable for a single worker process."""

    def __init__(self) -> None:
        self._hits: Dict[str, Deque[float]] = {}
        self._windows: Dict[str, int] = {}
        self._lock = threading.Lock()
        self._last_sweep = time.monotonic()

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        now = time.monotonic()
        with self._lock:
            if now - self._last_sweep >= SWEEP_INTERVAL_SECONDS:
                self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            self._windows[key] = window_seconds
            self._expire(hits, now - window_seconds)
            if len(hits) >= max_requests:
                return False
            hits.append(now)
            return True

    @staticmethod
    def _expire(hits: Deque[float], window_start: float) -> None:
        while hits and hits[0] <= window_start:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        """Forget keys that have been idle for a whole window."""
        for key in list(self._hits):
            hits = self._hits[key]
            self._expire(hits, now - self._windows.get(key, 0))
            if not hits:
                del self._hits[key]
                self._windows.pop(key, None)
        self._last_sweep = now
