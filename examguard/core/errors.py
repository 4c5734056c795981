"""Application-level exception types.

This module defines domain errors used across the HTTP layer, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    retry_after: int
    limit: int
    policy: str


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


@dataclass
class RateLimitAppError(AppError):
    """Raised by the HTTP layer when a client exhausts its window budget.

    The limiter itself never raises for this case; the dependency converts a
    rejected result into this error so the handler can render a 429.
    """

    retry_after_seconds: int = 0
    headers: dict[str, str] | None = None
