"""Token-bucket rate limiting for backend dispatch."""

from __future__ import annotations

import threading
import time
from typing import Callable, Protocol


class RateLimiter(Protocol):
    def consume(self, tokens: int = 1) -> bool: ...


class TokenBucketRateLimiter:
    """Allows ``rate_per_minute`` requests on average with bursts up to ``burst``."""

    def __init__(
        self,
        rate_per_minute: int = 60,
        burst: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute must be positive")
        self.rate_per_second = rate_per_minute / 60.0
        self.capacity = float(burst if burst is not None else rate_per_minute)
        self._clock = clock
        self._tokens = self.capacity
        self._updated = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate_per_second)
        self._updated = now

    def consume(self, tokens: int = 1) -> bool:
        """Take ``tokens`` if available. Never blocks."""
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False


class UnlimitedRateLimiter:
    def consume(self, tokens: int = 1) -> bool:
        return True
