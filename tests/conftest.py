"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so settings never read a developer's local .env file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")

from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from fastapi import APIRouter, Depends, FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from examguard.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter  # noqa: E402
from examguard.core.app_factory import create_app  # noqa: E402
from examguard.core.rate_limit import rate_limit  # noqa: E402

FIXED_NOW_MS = 1_700_000_000_000


@pytest.fixture
def clock() -> Mock:
    """Controllable epoch-millisecond clock."""
    return Mock(return_value=FIXED_NOW_MS)


@pytest.fixture
def limiter(clock: Mock) -> InMemoryFixedWindowRateLimiter:
    return InMemoryFixedWindowRateLimiter(clock=clock)


@pytest.fixture
def app(limiter: InMemoryFixedWindowRateLimiter) -> FastAPI:
    """Application with a few guarded routes standing in for real endpoints."""
    application = create_app(rate_limiter=limiter)

    guarded = APIRouter()

    @guarded.post("/auth/register", dependencies=[Depends(rate_limit("register"))])
    async def register() -> dict:
        return {"registered": True}

    @guarded.post("/upload", dependencies=[Depends(rate_limit("upload"))])
    async def upload() -> dict:
        return {"uploaded": True}

    application.include_router(guarded, prefix="/test")
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
