from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from govgate.api.deps import get_gateway
from govgate.gateway import GovernanceGateway

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str = "0.1.0"
    audit_records: int
    audit_halted: bool
    config_generation: int


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
def health_check(
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> HealthResponse:
    """Reports degraded while the audit log refuses appends."""
    return HealthResponse(
        status="degraded" if gateway.audit.halted else "healthy",
        audit_records=len(gateway.audit),
        audit_halted=gateway.audit.halted,
        config_generation=gateway.config.generation,
    )
