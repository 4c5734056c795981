"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the process-wide rate limiter, which is handed to request handlers
through ``app.state`` instead of a module global.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from examguard.adapters.rate_limit.base import AbstractRateLimiter
from examguard.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from examguard.api.routes import health_router, limits_router
from examguard.core.config import settings
from examguard.core.exception_handlers import setup_exception_handlers
from examguard.core.logging import configure_logging
from examguard.core.middleware import request_id_middleware

logger = logging.getLogger(__name__)


def create_app(*, rate_limiter: AbstractRateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiter: Limiter shared by every request of this app. A fresh
            in-memory limiter is created when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Exam Analysis API",
        description=(
            "Edge services for the exam analysis platform. Abuse-prone "
            "endpoints are protected by a per-client fixed-window rate limiter "
            "that answers 429 with Retry-After when a budget is exhausted."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    if rate_limiter is None:
        rate_limiter = InMemoryFixedWindowRateLimiter()
    app.state.rate_limiter = rate_limiter

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(limits_router, prefix="/v1")
    app.include_router(health_router)

    logger.info(
        "app.created",
        extra={
            "app_env": settings.app_env,
            "rate_limit_enabled": settings.rate_limit.enabled,
            "rate_limiter": type(app.state.rate_limiter).__name__,
        },
    )
    return app
