"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: routes declare ``Depends(rate_limit("upload"))`` only.
- Swap-friendly: the limiter is any AbstractRateLimiter stored on
  ``app.state.rate_limiter`` by the application factory.
- Independent budgets: limiter keys are namespaced by policy, so exhausting
  the upload budget does not block password resets.

Client identity is the originating address: the first hop of
``X-Forwarded-For``, then ``X-Real-IP``, then the socket peer, then
``"unknown"``.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request

from examguard.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from examguard.core.config import settings
from examguard.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS


@dataclass(frozen=True)
class RateLimitPolicy:
    """Named request budget applied to a family of endpoints."""

    name: str
    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")


DEFAULT_POLICY_NAME = "default"

# Budgets for the abuse-prone endpoints; "default" is read from settings.
POLICIES: dict[str, RateLimitPolicy] = {
    "register": RateLimitPolicy("register", max_requests=5, window_ms=_HOUR_MS),
    "forgot_password": RateLimitPolicy("forgot_password", max_requests=3, window_ms=_HOUR_MS),
    "reset_password": RateLimitPolicy("reset_password", max_requests=5, window_ms=_HOUR_MS),
    "verify_reset_token": RateLimitPolicy("verify_reset_token", max_requests=10, window_ms=_MINUTE_MS),
    "upload": RateLimitPolicy("upload", max_requests=5, window_ms=_MINUTE_MS),
    "exam_full_text": RateLimitPolicy("exam_full_text", max_requests=20, window_ms=_MINUTE_MS),
}


def get_policy(name: str) -> RateLimitPolicy:
    """Resolve a policy by name.

    Raises:
        KeyError: If no policy with that name exists.
    """
    if name == DEFAULT_POLICY_NAME:
        return RateLimitPolicy(
            DEFAULT_POLICY_NAME,
            max_requests=settings.rate_limit.max_requests,
            window_ms=settings.rate_limit.window_ms,
        )
    return POLICIES[name]


def list_policies() -> list[RateLimitPolicy]:
    """Return every policy, the settings-driven default first."""
    return [get_policy(DEFAULT_POLICY_NAME), *POLICIES.values()]


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter owned by the running application.

    Raises:
        RuntimeError: If the app was built without a limiter.
    """
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise RuntimeError("app.state.rate_limiter is not configured; build the app with create_app()")
    return limiter


def get_client_identifier(request: Request) -> str:
    """Derive a stable per-client identifier from connection metadata."""
    if settings.rate_limit.trust_proxy_headers:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
        real_ip = request.headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def _hash_client(client: str) -> str:
    """Hash the client identifier for logging without exposing addresses."""
    return hashlib.sha256(client.encode()).hexdigest()[:16]


def _throttle_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at // 1000),
    }


def enforce_rate_limit(request: Request, policy: RateLimitPolicy) -> RateLimitResult | None:
    """Count the current request against ``policy``.

    Returns:
        The limiter result, or None when rate limiting is disabled.

    Raises:
        RateLimitAppError: When the client has exhausted its window budget.
    """
    if not settings.rate_limit.enabled:
        return None

    limiter = get_rate_limiter(request)
    client = get_client_identifier(request)
    result = limiter.check_limit(
        f"{policy.name}:{client}",
        max_requests=policy.max_requests,
        window_ms=policy.window_ms,
    )

    log_extra = {
        "policy": policy.name,
        "client_hash": _hash_client(client),
        "limit": result.limit,
        "count": result.count,
        "window_ms": policy.window_ms,
    }

    if result.allowed:
        logger.debug("rate_limit.allowed", extra=log_extra)
        return result

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={**log_extra, "retry_after_s": retry_after},
    )

    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
        details={"retry_after": retry_after, "limit": result.limit, "policy": policy.name},
        retry_after_seconds=retry_after,
        headers=_throttle_headers(result) if settings.rate_limit.include_headers else None,
    )


def rate_limit(policy: str | RateLimitPolicy = DEFAULT_POLICY_NAME) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing ``policy``.

    Usage:
        @router.post("/upload", dependencies=[Depends(rate_limit("upload"))])
        async def upload(): ...

    Args:
        policy: Policy name from POLICIES, "default", or an explicit policy.

    Raises:
        KeyError: At declaration time if the policy name is unknown.
    """
    if isinstance(policy, str):
        # Fail at import time for typos; "default" is re-read per request.
        if policy != DEFAULT_POLICY_NAME:
            get_policy(policy)
        policy_name: str | None = policy
    else:
        policy_name = None

    async def _dependency(request: Request) -> None:
        resolved = get_policy(policy_name) if policy_name is not None else policy
        enforce_rate_limit(request, resolved)

    return _dependency
