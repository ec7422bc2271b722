from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from govgate.api.deps import get_gateway
from govgate.gateway import GovernanceGateway

router = APIRouter()


class ReloadRequest(BaseModel):
    actor: str
    policy_path: str | None = None
    budget_path: str | None = None


class ReloadResponse(BaseModel):
    source: str
    generation: int
    tiers: list[int]


@router.post("/config/reload", response_model=ReloadResponse)
def reload_config(
    body: ReloadRequest,
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> ReloadResponse:
    """Swap in new policy/budget files; omitted paths fall back to settings."""
    settings = gateway.settings
    config = gateway.reload_config(
        body.policy_path or settings.policy_config_path,
        body.budget_path or settings.budget_config_path,
        actor=body.actor,
    )
    return ReloadResponse(
        source=config.source,
        generation=gateway.config.generation,
        tiers=sorted(config.rules),
    )
