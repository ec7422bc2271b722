"""
Policy domain models.

An ActionDescriptor is what upstream connectors submit; a Decision is what
the policy engine hands back.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from govgate.approvals.models import ApprovalRequest
from govgate.budget.models import BudgetLedgerEntry
from govgate.core.errors import ValidationError
from govgate.core.reasons import ReasonCode, Verdict

_DESCRIPTOR_FIELDS = frozenset(
    {
        "action_id",
        "category",
        "requested_tier",
        "scope",
        "requester_identity",
        "cost_estimate",
        "capability",
        "task_id",
        "session_id",
        "override_token",
        "justification",
    }
)


@dataclass(frozen=True)
class ActionDescriptor:
    """
    A request to perform one engineering operation.

    Attributes:
        action_id: Caller-chosen unique id; resubmitting the same id polls
            its approval and never spends twice
        category: Budget category the cost is charged to
        requested_tier: Risk tier (0-3)
        scope: Resources the action touches
        requester_identity: Who submitted the action
        cost_estimate: Amount reserved against the budget cap
        capability: Optional named capability (checked against denylist/catalog)
        task_id: Bucket for task-window caps
        session_id: Bucket for session-window caps
        override_token: Grant token for explicit-only caps
    """

    action_id: str
    category: str
    requested_tier: int
    scope: frozenset[str]
    requester_identity: str
    cost_estimate: float
    capability: str | None = None
    task_id: str | None = None
    session_id: str | None = None
    override_token: str | None = field(default=None, repr=False)
    justification: str | None = None

    def problems(self) -> list[str]:
        """Semantic defects that make the descriptor unevaluable."""
        problems = []
        if not self.action_id:
            problems.append("action_id is empty")
        if not self.category:
            problems.append("category is empty")
        if not self.requester_identity:
            problems.append("requester_identity is empty")
        if not math.isfinite(self.cost_estimate):
            problems.append("cost_estimate is not a finite number")
        elif self.cost_estimate < 0:
            problems.append("cost_estimate is negative")
        return problems

    def summary(self) -> dict[str, Any]:
        """Fields recorded with every evaluation."""
        return {
            "category": self.category,
            "requested_tier": self.requested_tier,
            "scope": sorted(self.scope),
            "cost_estimate": (
                self.cost_estimate if math.isfinite(self.cost_estimate) else str(self.cost_estimate)
            ),
            "capability": self.capability,
            "task_id": self.task_id,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionDescriptor:
        """
        Build a descriptor from plain data (YAML file, JSON body).

        Raises:
            ValidationError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise ValidationError("Action descriptor must be a mapping")
        unknown = set(data) - _DESCRIPTOR_FIELDS
        if unknown:
            raise ValidationError(
                "Unknown action descriptor fields", {"fields": sorted(unknown)}
            )
        missing = [
            name
            for name in ("action_id", "category", "requested_tier", "requester_identity")
            if data.get(name) is None
        ]
        if missing:
            raise ValidationError("Missing action descriptor fields", {"fields": missing})

        tier = data["requested_tier"]
        if isinstance(tier, bool) or not isinstance(tier, int):
            raise ValidationError("requested_tier must be an integer", {"value": tier})
        cost = data.get("cost_estimate", 0)
        if isinstance(cost, bool) or not isinstance(cost, (int, float)):
            raise ValidationError("cost_estimate must be a number", {"value": cost})
        scope = data.get("scope", [])
        if isinstance(scope, str):
            scope = [scope]
        if not isinstance(scope, (list, tuple, set, frozenset)):
            raise ValidationError("scope must be a list of strings")

        return cls(
            action_id=str(data["action_id"]),
            category=str(data["category"]),
            requested_tier=tier,
            scope=frozenset(str(s) for s in scope),
            requester_identity=str(data["requester_identity"]),
            cost_estimate=float(cost),
            capability=data.get("capability"),
            task_id=data.get("task_id"),
            session_id=data.get("session_id"),
            override_token=data.get("override_token"),
            justification=data.get("justification"),
        )


@dataclass(frozen=True)
class Decision:
    """
    Verdict for one evaluation.

    ``audit_ref`` is the sequence number of the evaluation record, so every
    caller can point at exactly one entry in the trail.
    """

    verdict: Verdict
    reason_code: ReasonCode
    message: str
    audit_ref: int
    approval: ApprovalRequest | None = None
    ledger_entry: BudgetLedgerEntry | None = None

    @property
    def allowed(self) -> bool:
        return self.verdict == Verdict.ALLOWED

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "reason_code": self.reason_code.value,
            "message": self.message,
            "audit_ref": self.audit_ref,
            "approval": self.approval.to_dict() if self.approval else None,
            "ledger_entry": self.ledger_entry.to_dict() if self.ledger_entry else None,
        }
