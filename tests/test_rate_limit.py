"""Tests for the fixed-window rate limiter."""
import threading

import pytest

from services.grade_service.rate_limit import RateLimiter


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_the_limit_then_blocks() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_requests=3, window_seconds=60, clock=clock)

    decisions = [limiter.hit("1.2.3.4") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]


def test_blocked_request_reports_time_until_reset() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
    limiter.hit("client")

    clock.now += 15
    decision = limiter.hit("client")

    assert decision.allowed is False
    assert decision.retry_after == pytest.approx(45)


def test_window_resets_after_expiry() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
    assert limiter.hit("client").allowed
    assert not limiter.hit("client").allowed

    clock.now += 60

    assert limiter.hit("client").allowed


def test_keys_are_counted_separately() -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())

    assert limiter.hit("alice").allowed
    assert limiter.hit("bob").allowed
    assert not limiter.hit("alice").allowed


def test_reset_forgets_counters() -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
    limiter.hit("client")

    limiter.reset()

    assert limiter.hit("client").allowed


def test_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        RateLimiter(max_requests=0, window_seconds=60)
    with pytest.raises(ValueError):
        RateLimiter(max_requests=1, window_seconds=0)


def test_concurrent_hits_never_exceed_the_limit() -> None:
    """Many threads hitting one key only get max_requests through."""
    limiter = RateLimiter(max_requests=25, window_seconds=60, clock=FakeClock())
    allowed: list[bool] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(10):
            decision = limiter.hit("shared")
            with lock:
                allowed.append(decision.allowed)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(allowed) == 100
    assert sum(allowed) == 25
