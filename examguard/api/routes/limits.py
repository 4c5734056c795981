from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from examguard.core.config import settings
from examguard.core.rate_limit import list_policies, rate_limit

router = APIRouter(tags=["Rate limit"])


class PolicyOut(BaseModel):
    name: str
    max_requests: int = Field(..., ge=1)
    window_ms: int = Field(..., ge=1)


class PoliciesResponse(BaseModel):
    enabled: bool
    policies: list[PolicyOut]


@router.get(
    "/rate-limit/policies",
    response_model=PoliciesResponse,
    dependencies=[Depends(rate_limit())],
)
async def get_policies() -> PoliciesResponse:
    """List the request budgets enforced by this service.

    Lets clients size their retry strategy before hitting a 429.
    """
    return PoliciesResponse(
        enabled=settings.rate_limit.enabled,
        policies=[
            PolicyOut(name=p.name, max_requests=p.max_requests, window_ms=p.window_ms)
            for p in list_policies()
        ],
    )
