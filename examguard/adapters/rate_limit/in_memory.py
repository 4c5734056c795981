"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around the sweep and the per-key update.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from examguard.adapters.rate_limit.base import (
    DEFAULT_MAX_REQUESTS,
    DEFAULT_WINDOW_MS,
    AbstractRateLimiter,
    RateLimitEntry,
    RateLimitResult,
)


def epoch_ms() -> int:
    """Wall clock in UNIX epoch milliseconds."""
    return time.time_ns() // 1_000_000


@dataclass
class _WindowState:
    count: int
    window_reset_at: int


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    A key's window opens on the first request seen for it and lasts
    ``window_ms``. Every request in the window is counted, including the
    rejected ones, so once a client passes ``max_requests`` it stays blocked
    until the window rolls over.

    Expired entries of every key are swept at the start of each check, which
    keeps memory bounded without a background timer.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(self, *, clock: Callable[[], int] = epoch_ms) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            clock: Time source returning UNIX time in milliseconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def _sweep_expired_locked(self, now: int) -> None:
        expired = [k for k, s in self._state_by_key.items() if s.window_reset_at < now]
        for key in expired:
            del self._state_by_key[key]

    def _get_or_reset_state(self, key: str, now: int, window_ms: int) -> _WindowState:
        """Get the live state for key, opening a new window when needed.

        Args:
            key: Rate limit key.
            now: Current epoch milliseconds.
            window_ms: Window length used if a new window is opened.

        Returns:
            The current window state for this key.
        """
        state = self._state_by_key.get(key)
        if state is None or state.window_reset_at < now:
            state = _WindowState(count=0, window_reset_at=now + window_ms)
            self._state_by_key[key] = state
        return state

    def check_limit(
        self,
        key: str,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        now: int | None = None,
    ) -> RateLimitResult:
        """Count a request for ``key`` and decide whether it is admitted.

        Args:
            key: Unique identifier for rate limiting (e.g., client IP).
            max_requests: Requests admitted per window.
            window_ms: Window length in milliseconds.
            now: Current epoch milliseconds; defaults to the clock.

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty or the limits are not positive.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        if now is None:
            now = self._clock()

        with self._lock:
            self._sweep_expired_locked(now)
            state = self._get_or_reset_state(key, now, window_ms)
            state.count += 1
            count = state.count
            reset_at = state.window_reset_at

        remaining = max(0, max_requests - count)
        if count <= max_requests:
            return RateLimitResult(
                allowed=True,
                limit=max_requests,
                count=count,
                remaining=remaining,
                reset_at=reset_at,
                retry_after_seconds=None,
            )

        return RateLimitResult(
            allowed=False,
            limit=max_requests,
            count=count,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=max(0, math.ceil((reset_at - now) / 1000)),
        )

    def get_entry(self, key: str) -> RateLimitEntry | None:
        """Return a snapshot of the stored entry for key, if any.

        Stale entries that have not been swept yet are returned as stored.
        """
        with self._lock:
            state = self._state_by_key.get(key)
            if state is None:
                return None
            return RateLimitEntry(
                key=key,
                count=state.count,
                window_reset_at=state.window_reset_at,
            )

    def reset(self, key: str | None = None) -> None:
        """Forget the counter for one key, or for every key when None."""
        with self._lock:
            if key is None:
                self._state_by_key.clear()
            else:
                self._state_by_key.pop(key, None)
