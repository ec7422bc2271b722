"""
Policy Engine.

Orchestrates one authorization attempt:

1. descriptor sanity          -> Denied("invalid_action")
2. capability denylist        -> Denied("denylisted")
3. capability catalog tier    -> Denied("tier_mismatch")
4. tier rule lookup           -> Denied("unknown_tier" / "disabled_tier")
5. scope check                -> Denied("scope_violation")
6. idempotent resubmission    -> Allowed("already_committed")
7. approvals (if required)    -> Pending / Denied("approval_failed")
8. budget reserve             -> Denied("budget_exceeded" / ...)
9. audit, then commit         -> Allowed

Each attempt appends exactly one evaluation record. The engine keeps no
state of its own beyond per-action locks; the verdict depends only on the
configuration snapshot, approval state, budget state and the descriptor.
"""

from __future__ import annotations

import threading
from typing import Any

import structlog

from govgate.approvals.engine import ApprovalWorkflowEngine
from govgate.approvals.models import ApprovalRequest, ApprovalStatus
from govgate.audit.models import AuditEntry, AuditEventType
from govgate.audit.store import AuditLogStore
from govgate.budget.tracker import BudgetTracker
from govgate.config.holder import GatewayConfigHolder
from govgate.core.reasons import ReasonCode, Verdict
from govgate.policies.models import ActionDescriptor, Decision

logger = structlog.get_logger()


class PolicyEngine:
    """Renders Allowed / Denied / Pending for action descriptors."""

    def __init__(
        self,
        config: GatewayConfigHolder,
        approvals: ApprovalWorkflowEngine,
        budget: BudgetTracker,
        audit: AuditLogStore,
    ) -> None:
        self.config = config
        self.approvals = approvals
        self.budget = budget
        self.audit = audit
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, action_id: str) -> threading.Lock:
        with self._registry_lock:
            if action_id not in self._locks:
                self._locks[action_id] = threading.Lock()
            return self._locks[action_id]

    def evaluate(self, descriptor: ActionDescriptor) -> Decision:
        """
        Evaluate one submission of an action.

        Concurrent submissions of the same action_id are serialized so an
        action is never charged twice.

        Raises:
            AuditIntegrityError: If the audit log refuses the evaluation record
        """
        with self._lock_for(descriptor.action_id):
            decision = self._evaluate(descriptor)
        logger.info(
            "action_evaluated",
            action_id=descriptor.action_id,
            verdict=decision.verdict.value,
            reason=decision.reason_code.value,
            audit_ref=decision.audit_ref,
        )
        return decision

    def _evaluate(self, descriptor: ActionDescriptor) -> Decision:
        config = self.config.current

        problems = descriptor.problems()
        if problems:
            return self._deny(
                descriptor,
                ReasonCode.INVALID_ACTION,
                "Malformed action descriptor: " + "; ".join(problems),
                {"problems": problems},
            )

        capability = descriptor.capability
        if capability is not None and capability in config.denylist:
            return self._deny(
                descriptor, ReasonCode.DENYLISTED, f"Capability {capability!r} is denylisted"
            )
        if capability is not None and capability in config.capabilities:
            catalog_tier = config.capabilities[capability]
            if catalog_tier != descriptor.requested_tier:
                return self._deny(
                    descriptor,
                    ReasonCode.TIER_MISMATCH,
                    f"Capability {capability!r} is tier {catalog_tier}, "
                    f"requested tier {descriptor.requested_tier}",
                    {"catalog_tier": catalog_tier},
                )

        rule = config.rule_for(descriptor.requested_tier)
        if rule is None:
            return self._deny(
                descriptor,
                ReasonCode.UNKNOWN_TIER,
                f"No policy rule for tier {descriptor.requested_tier}",
            )
        if not rule.enabled:
            return self._deny(
                descriptor, ReasonCode.DISABLED_TIER, f"Tier {rule.tier} is disabled"
            )
        if not rule.admits_scope(descriptor.scope):
            outside = sorted(descriptor.scope - rule.allowed_scopes)
            return self._deny(
                descriptor,
                ReasonCode.SCOPE_VIOLATION,
                f"Scope {outside} not allowed for tier {rule.tier}",
                {"outside_scope": outside},
            )

        committed = self.budget.committed_entry(descriptor.action_id)
        if committed is not None:
            record = self._record(
                descriptor,
                Verdict.ALLOWED,
                ReasonCode.ALREADY_COMMITTED,
                "Action already authorized",
                {"ledger_entry": committed.to_dict()},
            )
            return Decision(
                verdict=Verdict.ALLOWED,
                reason_code=ReasonCode.ALREADY_COMMITTED,
                message="Action already authorized",
                audit_ref=record,
                ledger_entry=committed,
            )

        approval: ApprovalRequest | None = None
        if rule.required_approvals > 0:
            approval = self.approvals.open(
                descriptor.action_id,
                rule.required_approvals,
                rule.approver_roles,
                rule.approval_ttl_seconds,
                requester=descriptor.requester_identity,
                veto_roles=rule.veto_roles,
                audit=False,
            )
            if approval.status == ApprovalStatus.PENDING:
                message = (
                    f"Awaiting approvals: {approval.approve_count}/{approval.required_count}"
                )
                record = self._record(
                    descriptor,
                    Verdict.PENDING,
                    ReasonCode.APPROVAL_PENDING,
                    message,
                    {"expires_at": approval.expires_at},
                )
                return Decision(
                    verdict=Verdict.PENDING,
                    reason_code=ReasonCode.APPROVAL_PENDING,
                    message=message,
                    audit_ref=record,
                    approval=approval,
                )
            if approval.status != ApprovalStatus.SATISFIED:
                return self._deny(
                    descriptor,
                    ReasonCode.APPROVAL_FAILED,
                    f"Approval {approval.status.value} ({approval.status_reason})",
                    {
                        "approval_status": approval.status.value,
                        "approval_reason": approval.status_reason,
                        "approval_expires_at": approval.expires_at,
                    },
                    approval=approval,
                )

        result = self.budget.reserve(
            descriptor.category,
            descriptor.requested_tier,
            descriptor.cost_estimate,
            action_id=descriptor.action_id,
            task_id=descriptor.task_id,
            session_id=descriptor.session_id,
            override_token=descriptor.override_token,
        )
        if not result or result.reservation is None:
            return self._deny(
                descriptor,
                result.reason or ReasonCode.BUDGET_EXCEEDED,
                result.message,
                {"limit": result.limit, "spend": result.spend, "held": result.held},
                approval=approval,
            )

        reservation = result.reservation
        try:
            record = self._record(
                descriptor,
                Verdict.ALLOWED,
                ReasonCode.ALLOWED,
                result.message,
                {
                    "limit": result.limit,
                    "spend_before": result.spend,
                    "reserved": reservation.amount,
                    "bucket": reservation.bucket,
                },
            )
        except Exception:
            self.budget.release(reservation)
            raise
        entry = self.budget.commit(reservation)
        return Decision(
            verdict=Verdict.ALLOWED,
            reason_code=ReasonCode.ALLOWED,
            message=result.message,
            audit_ref=record,
            approval=approval,
            ledger_entry=entry,
        )

    def _record(
        self,
        descriptor: ActionDescriptor,
        verdict: Verdict,
        reason: ReasonCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> int:
        record = self.audit.append(
            AuditEntry(
                action_id=descriptor.action_id,
                verdict=verdict,
                reason=reason.value,
                actor=descriptor.requester_identity,
                event_type=AuditEventType.EVALUATION,
                details={**descriptor.summary(), "message": message, **(details or {})},
            )
        )
        return record.sequence_no

    def _deny(
        self,
        descriptor: ActionDescriptor,
        reason: ReasonCode,
        message: str,
        details: dict[str, Any] | None = None,
        approval: ApprovalRequest | None = None,
    ) -> Decision:
        audit_ref = self._record(descriptor, Verdict.DENIED, reason, message, details)
        return Decision(
            verdict=Verdict.DENIED,
            reason_code=reason,
            message=message,
            audit_ref=audit_ref,
            approval=approval,
        )
