"""
Approval domain models.

Requests are immutable snapshots; the engine replaces a request as a whole
on every transition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    SATISFIED = "satisfied"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {ApprovalStatus.SATISFIED, ApprovalStatus.REJECTED, ApprovalStatus.EXPIRED}
)


class ApprovalDecision(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class ApproverSignature:
    """One approver's vote on one action."""

    approver_identity: str
    role: str
    decision: ApprovalDecision
    proof: str = field(repr=False)
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "approver_identity": self.approver_identity,
            "role": self.role,
            "decision": self.decision.value,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ApprovalRequest:
    """Tracked sign-off collection for one action."""

    action_id: str
    required_count: int
    approver_roles: frozenset[str]
    status: ApprovalStatus
    created_at: str
    expires_at: str
    deadline: float = field(repr=False)
    requester: str | None = None
    veto_roles: frozenset[str] | None = None
    collected: tuple[ApproverSignature, ...] = ()
    status_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def approve_count(self) -> int:
        return sum(1 for s in self.collected if s.decision == ApprovalDecision.APPROVE)

    def has_signed(self, approver: str) -> bool:
        return any(s.approver_identity == approver for s in self.collected)

    def can_veto(self, role: str) -> bool:
        if self.veto_roles is None:
            return role in self.approver_roles
        return role in self.veto_roles

    @property
    def vetoes(self) -> tuple[ApproverSignature, ...]:
        return tuple(
            s
            for s in self.collected
            if s.decision == ApprovalDecision.REJECT and self.can_veto(s.role)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "required_count": self.required_count,
            "approver_roles": sorted(self.approver_roles),
            "status": self.status.value,
            "status_reason": self.status_reason,
            "requester": self.requester,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "approve_count": self.approve_count,
            "collected": [s.to_dict() for s in self.collected],
        }
