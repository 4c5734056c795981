"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis with atomic INCR) with
minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

DEFAULT_MAX_REQUESTS = 100
DEFAULT_WINDOW_MS = 60_000


@dataclass(frozen=True)
class RateLimitEntry:
    """Snapshot of the counter tracked for a single client key.

    Attributes:
        key: Opaque client identifier.
        count: Requests evaluated in the current window, rejected ones included.
        window_reset_at: UNIX epoch milliseconds when the window ends.
    """

    key: str
    count: int
    window_reset_at: int


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        count: Requests counted in the current window, this one included.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch milliseconds when the current window resets.
        retry_after_seconds: Wait time in seconds when blocked, else None.
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check_limit(
        self,
        key: str,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        now: int | None = None,
    ) -> RateLimitResult:
        """Count a request for ``key`` and decide whether it is admitted.

        Args:
            key: Unique client identifier (e.g., IP address).
            max_requests: Requests admitted per window.
            window_ms: Window length in milliseconds.
            now: Current time in epoch milliseconds; defaults to the
                limiter's clock.

        Returns:
            RateLimitResult describing the decision. Exceeding the limit is
            reported through ``allowed=False``, never raised.
        """
        raise NotImplementedError
