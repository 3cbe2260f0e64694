"""Fixed-window request limiter for the grade service.

Counts requests per client key. Only counts and window deadlines are kept in
memory; no grade data passes through here.
"""
from __future__ import annotations

import threading
import time
import typing as t
from dataclasses import dataclass


@dataclass
class RateLimitDecision:
    """Outcome of one ``RateLimiter.hit`` call."""
    allowed: bool
    remaining: int
    retry_after: float  # seconds until the window resets


class RateLimiter:
    """Allow ``max_requests`` per ``window_seconds`` for each key.

    Args:
        max_requests: Requests allowed per window and key
        window_seconds: Window length in seconds
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: t.Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (count, reset_at)
        self._windows: dict[str, tuple[int, float]] = {}

    def hit(self, key: str) -> RateLimitDecision:
        """Record a request for ``key`` and say whether it may proceed."""
        with self._lock:
            now = self._clock()
            count, reset_at = self._windows.get(key, (0, now))
            if now >= reset_at:
                count, reset_at = 0, now + self.window_seconds
                self._prune(now)

            if count >= self.max_requests:
                self._windows[key] = (count, reset_at)
                return RateLimitDecision(False, 0, reset_at - now)

            count += 1
            self._windows[key] = (count, reset_at)
            return RateLimitDecision(True, self.max_requests - count, reset_at - now)

    def reset(self) -> None:
        """Forget all counters."""
        with self._lock:
            self._windows.clear()

    def _prune(self, now: float) -> None:
        # Caller holds the lock.
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            del self._windows[key]
