"""Budget status and administrative routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from govgate.api.deps import get_gateway
from govgate.gateway import GovernanceGateway

router = APIRouter()
logger = structlog.get_logger()


class BudgetStatusItem(BaseModel):
    category: str
    tier: int
    bucket: str
    window: str
    limit: float
    spend: float
    held: float
    remaining: float
    utilization_pct: float
    state: str


class ResetRequest(BaseModel):
    actor: str
    note: str = ""


class ResetResponse(BaseModel):
    category: str
    tier: int
    state: str = "open"


class OverrideRequest(BaseModel):
    actor: str
    amount: float = Field(gt=0)


class OverrideResponse(BaseModel):
    category: str
    tier: int
    amount: float
    token: str


@router.get("/budgets", response_model=list[BudgetStatusItem])
def list_budgets(
    category: str | None = Query(default=None),
    tier: int | None = Query(default=None),
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> list[BudgetStatusItem]:
    return [BudgetStatusItem(**s.to_dict()) for s in gateway.budget.status(category, tier)]


@router.post(
    "/budgets/{category}/{tier}/reset",
    response_model=ResetResponse,
    status_code=status.HTTP_200_OK,
)
def reset_budget(
    category: str,
    tier: int,
    body: ResetRequest,
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> ResetResponse:
    """Administrative reset; clears spend and any Shutdown."""
    gateway.budget.reset(category, tier, body.actor, body.note)
    return ResetResponse(category=category, tier=tier)


@router.post(
    "/budgets/{category}/{tier}/overrides",
    response_model=OverrideResponse,
    status_code=status.HTTP_201_CREATED,
)
def grant_override(
    category: str,
    tier: int,
    body: OverrideRequest,
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> OverrideResponse:
    token = gateway.budget.grant_override(category, tier, body.amount, body.actor)
    return OverrideResponse(category=category, tier=tier, amount=body.amount, token=token)
