"""Multi-party human approval workflow."""

from govgate.approvals.engine import ApprovalSweeper, ApprovalWorkflowEngine
from govgate.approvals.models import (
    TERMINAL_STATUSES,
    ApprovalDecision,
    ApprovalRequest,
    ApprovalStatus,
    ApproverSignature,
)
from govgate.approvals.verifiers import AnyOfVerifier, HmacSignatureVerifier, SignatureVerifier

__all__ = [
    "AnyOfVerifier",
    "ApprovalDecision",
    "ApprovalRequest",
    "ApprovalStatus",
    "ApprovalSweeper",
    "ApprovalWorkflowEngine",
    "ApproverSignature",
    "HmacSignatureVerifier",
    "SignatureVerifier",
    "TERMINAL_STATUSES",
]
