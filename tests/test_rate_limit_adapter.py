"""Unit tests for the in-memory fixed-window rate limiter."""

import threading
from unittest.mock import Mock

import pytest

from examguard.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter


def test_allows_up_to_limit_in_same_window() -> None:
    limiter = InMemoryFixedWindowRateLimiter(clock=Mock(return_value=0))

    for _ in range(2):
        assert limiter.check_limit("k", max_requests=3, window_ms=60_000).allowed is True
    result = limiter.check_limit("k", max_requests=3, window_ms=60_000)
    assert result.allowed is True
    assert result.count == 3
    assert result.remaining == 0
    assert result.retry_after_seconds is None


def test_blocks_every_call_after_limit_until_rollover() -> None:
    limiter = InMemoryFixedWindowRateLimiter()

    for t in range(2):
        assert limiter.check_limit("k", max_requests=2, window_ms=10_000, now=t).allowed

    for t in (2, 500, 9_999, 10_000):
        blocked = limiter.check_limit("k", max_requests=2, window_ms=10_000, now=t)
        assert blocked.allowed is False
        assert blocked.remaining == 0

    # Rejected requests are still counted
    assert limiter.get_entry("k").count == 6


def test_three_requests_per_minute_scenario() -> None:
    limiter = InMemoryFixedWindowRateLimiter()

    def check(now: int):
        return limiter.check_limit("A", max_requests=3, window_ms=60_000, now=now)

    assert check(0).allowed is True
    assert check(1_000).allowed is True
    assert check(2_000).allowed is True

    rejected = check(3_000)
    assert rejected.allowed is False
    assert rejected.retry_after_seconds == 57

    renewed = check(60_001)
    assert renewed.allowed is True
    assert renewed.count == 1
    assert limiter.get_entry("A").window_reset_at == 120_001


def test_window_boundary_is_inclusive() -> None:
    limiter = InMemoryFixedWindowRateLimiter()

    assert limiter.check_limit("k", max_requests=1, window_ms=1_000, now=0).allowed
    # now == window_reset_at still belongs to the current window
    at_boundary = limiter.check_limit("k", max_requests=1, window_ms=1_000, now=1_000)
    assert at_boundary.allowed is False
    assert at_boundary.retry_after_seconds == 0

    assert limiter.check_limit("k", max_requests=1, window_ms=1_000, now=1_001).allowed


def test_retry_after_is_non_increasing_towards_reset() -> None:
    limiter = InMemoryFixedWindowRateLimiter()
    limiter.check_limit("k", max_requests=1, window_ms=60_000, now=0)

    hints = [
        limiter.check_limit("k", max_requests=1, window_ms=60_000, now=t).retry_after_seconds
        for t in range(0, 60_001, 1_500)
    ]

    assert all(h is not None and h >= 0 for h in hints)
    assert hints == sorted(hints, reverse=True)
    assert hints[0] == 60
    assert hints[-1] == 0


def test_window_is_not_extended_by_later_requests() -> None:
    limiter = InMemoryFixedWindowRateLimiter()

    first = limiter.check_limit("k", max_requests=10, window_ms=5_000, now=100)
    later = limiter.check_limit("k", max_requests=10, window_ms=5_000, now=4_000)

    assert first.reset_at == later.reset_at == 5_100


def test_isolated_by_key() -> None:
    limiter = InMemoryFixedWindowRateLimiter(clock=Mock(return_value=0))

    assert limiter.check_limit("k1", max_requests=1).allowed is True
    assert limiter.check_limit("k1", max_requests=1).allowed is False

    assert limiter.check_limit("k2", max_requests=1).allowed is True


def test_interleaved_keys_share_nothing() -> None:
    limiter = InMemoryFixedWindowRateLimiter(clock=Mock(return_value=0))

    results = []
    for _ in range(5):
        results.append(limiter.check_limit("A", max_requests=5, window_ms=60_000))
        results.append(limiter.check_limit("B", max_requests=5, window_ms=60_000))

    assert all(r.allowed for r in results)
    assert limiter.get_entry("A").count == 5
    assert limiter.get_entry("B").count == 5


def test_uses_defaults_of_100_per_minute() -> None:
    clock = Mock(return_value=0)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock)

    results = [limiter.check_limit("k") for _ in range(101)]

    assert all(r.allowed for r in results[:100])
    assert results[100].allowed is False
    assert results[100].limit == 100
    assert results[100].reset_at == 60_000


def test_sweeps_expired_entries_of_other_keys() -> None:
    limiter = InMemoryFixedWindowRateLimiter()
    limiter.check_limit("old", window_ms=1_000, now=0)
    limiter.check_limit("fresh", window_ms=10_000, now=500)
    assert len(limiter) == 2

    limiter.check_limit("new", window_ms=1_000, now=1_001)

    assert limiter.get_entry("old") is None
    assert limiter.get_entry("fresh") is not None
    assert len(limiter) == 2


def test_reset_single_key_and_all() -> None:
    limiter = InMemoryFixedWindowRateLimiter(clock=Mock(return_value=0))
    limiter.check_limit("a")
    limiter.check_limit("b")

    limiter.reset("a")
    assert limiter.get_entry("a") is None
    assert limiter.get_entry("b") is not None

    limiter.reset()
    assert len(limiter) == 0


def test_default_clock_is_used_when_now_omitted() -> None:
    clock = Mock(return_value=42_000)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock)

    result = limiter.check_limit("k", window_ms=1_000)

    clock.assert_called_once()
    assert result.reset_at == 43_000


def test_concurrent_checks_never_over_admit() -> None:
    limiter = InMemoryFixedWindowRateLimiter(clock=Mock(return_value=0))
    allowed: list[bool] = []
    lock = threading.Lock()

    def _worker() -> None:
        for _ in range(10):
            result = limiter.check_limit("shared", max_requests=50, window_ms=60_000)
            with lock:
                allowed.append(result.allowed)

    threads = [threading.Thread(target=_worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(allowed) == 200
    assert sum(allowed) == 50
    assert limiter.get_entry("shared").count == 200


@pytest.mark.parametrize(
    "kwargs",
    [
        {"key": "", "max_requests": 1, "window_ms": 1},
        {"key": "k", "max_requests": 0, "window_ms": 60_000},
        {"key": "k", "max_requests": 1, "window_ms": 0},
        {"key": "k", "max_requests": -5, "window_ms": 60_000},
    ],
)
def test_invalid_arguments_fail_fast(kwargs: dict) -> None:
    limiter = InMemoryFixedWindowRateLimiter()

    with pytest.raises(ValueError):
        limiter.check_limit(now=0, **kwargs)

    assert len(limiter) == 0
