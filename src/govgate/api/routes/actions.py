from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from govgate.api.deps import get_gateway
from govgate.gateway import GovernanceGateway
from govgate.policies.models import ActionDescriptor

router = APIRouter()
logger = structlog.get_logger()


class ActionRequest(BaseModel):
    action_id: str
    category: str
    requested_tier: int
    scope: list[str] = Field(default_factory=list)
    requester_identity: str
    cost_estimate: float = 0.0
    capability: str | None = None
    task_id: str | None = None
    session_id: str | None = None
    override_token: str | None = None
    justification: str | None = None

    def to_descriptor(self) -> ActionDescriptor:
        return ActionDescriptor(
            action_id=self.action_id,
            category=self.category,
            requested_tier=self.requested_tier,
            scope=frozenset(self.scope),
            requester_identity=self.requester_identity,
            cost_estimate=self.cost_estimate,
            capability=self.capability,
            task_id=self.task_id,
            session_id=self.session_id,
            override_token=self.override_token,
            justification=self.justification,
        )


class SubmissionResponse(BaseModel):
    verdict: str
    reason_code: str
    message: str
    audit_ref: int


@router.post("/actions", response_model=SubmissionResponse, status_code=status.HTTP_200_OK)
def submit_action(
    payload: ActionRequest,
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> SubmissionResponse:
    """Evaluate an action. Denied and Pending verdicts are normal responses."""
    result = gateway.submit_action(payload.to_descriptor())
    return SubmissionResponse(**result.to_dict())
