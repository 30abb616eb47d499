"""
In-process sliding window rate limiter.

Guards outbound calls to providers with a hard request budget. Rejections are
raised as ``RateLimitExceeded`` carrying the number of seconds until the
oldest request in the window falls out of it.
"""

import math
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from .errors import RateLimitExceeded


class SlidingWindowRateLimiter:
    """Allow at most ``limit`` acquisitions per rolling ``window_seconds``."""

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60,
        *,
        name: str = "default",
        clock: Optional[Callable[[], float]] = None,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock or time.monotonic
        self._hits: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        window_start = now - self.window_seconds
        while self._hits and self._hits[0] <= window_start:
            self._hits.popleft()

    def retry_after(self) -> int:
        """Seconds until another request would be admitted (0 if one is now)."""
        now = self._clock()
        self._prune(now)
        if len(self._hits) < self.limit:
            return 0
        wait = self._hits[0] + self.window_seconds - now
        return max(1, min(int(self.window_seconds), math.ceil(wait)))

    def acquire(self) -> None:
        """Record one request, or raise if the window is already full."""
        now = self._clock()
        self._prune(now)

        if len(self._hits) >= self.limit:
            raise RateLimitExceeded(
                f"Rate limit exceeded: {self.limit} requests per {int(self.window_seconds)}s",
                retry_after=self.retry_after(),
                details={"limiter": self.name, "limit": self.limit, "window_seconds": self.window_seconds},
            )

        self._hits.append(now)

    def remaining(self) -> int:
        self._prune(self._clock())
        return max(0, self.limit - len(self._hits))

    def snapshot(self) -> Dict[str, float]:
        return {
            "limit": self.limit,
            "window_seconds": self.window_seconds,
            "remaining": self.remaining(),
        }


__all__ = ["SlidingWindowRateLimiter"]
