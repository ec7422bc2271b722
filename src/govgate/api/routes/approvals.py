"""Approval collection routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from govgate.api.deps import get_gateway
from govgate.approvals.models import ApprovalDecision, ApprovalRequest, ApproverSignature
from govgate.gateway import GovernanceGateway

router = APIRouter()
logger = structlog.get_logger()


# -- Request / Response Models --


class SignatureItem(BaseModel):
    approver_identity: str
    role: str
    decision: str
    timestamp: str | None


class ApprovalResponse(BaseModel):
    action_id: str
    status: str
    status_reason: str | None
    required_count: int
    approve_count: int
    approver_roles: list[str]
    requester: str | None
    created_at: str
    expires_at: str
    collected: list[SignatureItem]

    @classmethod
    def from_request(cls, request: ApprovalRequest) -> ApprovalResponse:
        return cls(**request.to_dict())


class SignatureRequest(BaseModel):
    approver_identity: str
    role: str
    decision: ApprovalDecision
    proof: str


class SignatureResponse(BaseModel):
    action_id: str
    status: str


class WithdrawRequest(BaseModel):
    requester: str


# -- Endpoints --


@router.get("/approvals", response_model=list[ApprovalResponse])
def list_pending_approvals(
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> list[ApprovalResponse]:
    """Approval requests still waiting for sign-off."""
    return [ApprovalResponse.from_request(r) for r in gateway.approvals.list_pending()]


@router.get("/approvals/{action_id}", response_model=ApprovalResponse)
def get_approval(
    action_id: str,
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> ApprovalResponse:
    request = gateway.approvals.get(action_id)
    if request is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No approval request for action {action_id}",
        )
    return ApprovalResponse.from_request(request)


@router.post(
    "/approvals/{action_id}/signatures",
    response_model=SignatureResponse,
    status_code=status.HTTP_200_OK,
)
def submit_signature(
    action_id: str,
    body: SignatureRequest,
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> SignatureResponse:
    """Record one approver's vote; refusals map to 403/404."""
    result = gateway.approvals.submit(
        action_id,
        ApproverSignature(
            approver_identity=body.approver_identity,
            role=body.role,
            decision=body.decision,
            proof=body.proof,
        ),
    )
    return SignatureResponse(action_id=action_id, status=result.value)


@router.post("/approvals/{action_id}/withdraw", response_model=ApprovalResponse)
def withdraw_approval(
    action_id: str,
    body: WithdrawRequest,
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> ApprovalResponse:
    request = gateway.approvals.withdraw(action_id, body.requester)
    logger.info("approval_withdrawn", action_id=action_id, requester=body.requester)
    return ApprovalResponse.from_request(request)
