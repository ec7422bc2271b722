"""
Approval Workflow Engine.

State machine per action:

    Pending -> Satisfied            (enough eligible Approve votes, no veto)
    Pending -> Rejected("vetoed")   (any Reject from a veto-capable role)
    Pending -> Rejected("withdrawn")(submitter cancellation)
    Pending -> Expired              (past ttl, checked lazily and by sweep)

Every terminal state is final. Transitions for one action_id are
serialized by a per-action lock, so exactly one caller performs (and
audits) each transition. Waiting for humans is a pollable status; no call
blocks on it.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import timedelta
from typing import Iterable

import structlog

from govgate.approvals.models import (
    ApprovalDecision,
    ApprovalRequest,
    ApprovalStatus,
    ApproverSignature,
)
from govgate.approvals.verifiers import SignatureVerifier
from govgate.audit.models import AuditEntry, AuditEventType
from govgate.audit.store import AuditLogStore
from govgate.config.holder import GatewayConfigHolder
from govgate.core.clock import Clock, SystemClock, isoformat
from govgate.core.errors import (
    ApprovalError,
    ApprovalNotFoundError,
    GovGateError,
    InvalidSignatureError,
    NotSubmitterError,
    UnauthorizedApproverError,
    ValidationError,
)
from govgate.core.reasons import ReasonCode, Verdict

logger = structlog.get_logger()


class ApprovalWorkflowEngine:
    """Collects multi-party sign-off for actions."""

    def __init__(
        self,
        config: GatewayConfigHolder,
        verifier: SignatureVerifier,
        audit: AuditLogStore | None = None,
        clock: Clock | None = None,
        default_ttl_seconds: float = 86400.0,
    ) -> None:
        self.config = config
        self.verifier = verifier
        self.audit = audit
        self.clock = clock or SystemClock()
        self.default_ttl_seconds = default_ttl_seconds
        self._requests: dict[str, ApprovalRequest] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, action_id: str) -> threading.Lock:
        with self._registry_lock:
            if action_id not in self._locks:
                self._locks[action_id] = threading.Lock()
            return self._locks[action_id]

    def _record(
        self,
        action_id: str,
        reason: str,
        actor: str | None,
        event_type: AuditEventType,
        details: dict,
        verdict: Verdict | None = None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.append(
            AuditEntry(
                action_id=action_id,
                verdict=verdict,
                reason=reason,
                actor=actor,
                event_type=event_type,
                details=details,
            )
        )

    def _refuse(self, error: ApprovalError, action_id: str, actor: str | None) -> ApprovalError:
        """Audit a refusal before it reaches the caller."""
        self._record(
            action_id,
            error.reason_code,
            actor,
            AuditEventType.APPROVAL_SIGNATURE,
            {"message": error.message, **error.details},
            verdict=Verdict.DENIED,
        )
        logger.info(
            "approval_refused",
            action_id=action_id,
            actor=actor,
            reason=error.reason_code,
        )
        return error

    def _transition(
        self,
        request: ApprovalRequest,
        status: ApprovalStatus,
        reason: str,
        actor: str | None,
        audit: bool = True,
    ) -> ApprovalRequest:
        """
        Audit then apply a transition. Caller holds the action lock.

        With audit=False the caller records the transition in its own entry.
        """
        updated = replace(request, status=status, status_reason=reason)
        if audit:
            self._record(
                request.action_id,
                reason,
                actor,
                AuditEventType.APPROVAL_TRANSITION,
                {
                    "from": request.status.value,
                    "to": status.value,
                    "approve_count": updated.approve_count,
                    "required_count": updated.required_count,
                },
            )
        self._requests[request.action_id] = updated
        logger.info(
            "approval_transitioned",
            action_id=request.action_id,
            status=status.value,
            reason=reason,
        )
        return updated

    def _expire_if_due(self, request: ApprovalRequest, audit: bool = True) -> ApprovalRequest:
        if request.is_terminal or self.clock.monotonic() < request.deadline:
            return request
        return self._transition(
            request, ApprovalStatus.EXPIRED, ReasonCode.EXPIRED.value, None, audit=audit
        )

    def open(
        self,
        action_id: str,
        required_count: int,
        approver_roles: Iterable[str],
        ttl: float | None = None,
        *,
        requester: str | None = None,
        veto_roles: Iterable[str] | None = None,
        audit: bool = True,
    ) -> ApprovalRequest:
        """
        Get the request for an action, creating it if none exists.

        An existing request is returned unchanged whatever its status; a
        terminal request keeps blocking its action_id. A request past its
        deadline expires here; pass audit=False when the caller writes the
        audit record covering that expiry.

        Raises:
            ValidationError: If required_count < 1 or ttl <= 0
        """
        if required_count < 1:
            raise ValidationError("required_count must be at least 1", {"action_id": action_id})
        ttl_seconds = self.default_ttl_seconds if ttl is None else ttl
        if ttl_seconds <= 0:
            raise ValidationError("ttl must be positive", {"action_id": action_id})

        with self._lock_for(action_id):
            existing = self._requests.get(action_id)
            if existing is not None:
                return self._expire_if_due(existing, audit=audit)

            now = self.clock.now()
            request = ApprovalRequest(
                action_id=action_id,
                required_count=required_count,
                approver_roles=frozenset(approver_roles),
                status=ApprovalStatus.PENDING,
                created_at=isoformat(now),
                expires_at=isoformat(now + timedelta(seconds=ttl_seconds)),
                deadline=self.clock.monotonic() + ttl_seconds,
                requester=requester,
                veto_roles=frozenset(veto_roles) if veto_roles is not None else None,
            )
            self._requests[action_id] = request

        logger.info(
            "approval_opened",
            action_id=action_id,
            required_count=required_count,
            ttl_seconds=ttl_seconds,
        )
        return request

    def get(self, action_id: str) -> ApprovalRequest | None:
        """Current request for an action (expiry applied), or None."""
        with self._lock_for(action_id):
            request = self._requests.get(action_id)
            if request is None:
                return None
            return self._expire_if_due(request)

    def status(self, action_id: str) -> ApprovalStatus:
        """
        Raises:
            ApprovalNotFoundError: If no request exists for the action
        """
        request = self.get(action_id)
        if request is None:
            raise ApprovalNotFoundError(
                f"No approval request for action {action_id}", {"action_id": action_id}
            )
        return request.status

    def submit(self, action_id: str, signature: ApproverSignature) -> ApprovalStatus:
        """
        Record one approver's vote.

        Duplicate votes from the same approver, and votes on a terminal
        request, are no-ops returning the current status.

        Raises:
            ApprovalNotFoundError: If no request exists for the action
            UnauthorizedApproverError: If the role is ineligible for the request
            InvalidSignatureError: If the proof does not verify
        """
        approver = signature.approver_identity
        with self._lock_for(action_id):
            request = self._requests.get(action_id)
            if request is None:
                raise self._refuse(
                    ApprovalNotFoundError(
                        f"No approval request for action {action_id}", {"action_id": action_id}
                    ),
                    action_id,
                    approver,
                )

            request = self._expire_if_due(request)
            if request.is_terminal or request.has_signed(approver):
                return request.status

            self._check_eligible(request, signature)
            if not self.verifier.verify(approver, action_id, signature.proof):
                raise self._refuse(
                    InvalidSignatureError(
                        "Approver proof failed verification",
                        {"approver": approver, "role": signature.role},
                    ),
                    action_id,
                    approver,
                )

            stamped = replace(signature, timestamp=isoformat(self.clock.now()))
            self._record(
                action_id,
                f"signature_{stamped.decision.value}",
                approver,
                AuditEventType.APPROVAL_SIGNATURE,
                stamped.to_dict(),
            )
            request = replace(request, collected=request.collected + (stamped,))
            self._requests[action_id] = request

            if stamped.decision == ApprovalDecision.REJECT and request.can_veto(stamped.role):
                request = self._transition(
                    request, ApprovalStatus.REJECTED, ReasonCode.VETOED.value, approver
                )
            elif request.approve_count >= request.required_count and not request.vetoes:
                request = self._transition(
                    request, ApprovalStatus.SATISFIED, "satisfied", approver
                )
            return request.status

    def _check_eligible(self, request: ApprovalRequest, signature: ApproverSignature) -> None:
        approver = signature.approver_identity
        reason = None
        if signature.role not in request.approver_roles:
            reason = f"Role {signature.role!r} may not approve this action"
        elif request.requester is not None and approver == request.requester:
            reason = "Submitters may not approve their own actions"
        else:
            allowed = self.config.current.roles_for(approver)
            if allowed is not None and signature.role not in allowed:
                reason = f"{approver} does not hold role {signature.role!r}"
        if reason is not None:
            raise self._refuse(
                UnauthorizedApproverError(reason, {"approver": approver, "role": signature.role}),
                request.action_id,
                approver,
            )

    def withdraw(self, action_id: str, requester: str) -> ApprovalRequest:
        """
        Submitter cancellation of a pending request.

        Raises:
            ApprovalNotFoundError: If no request exists for the action
            NotSubmitterError: If the caller did not submit the action
        """
        with self._lock_for(action_id):
            request = self._requests.get(action_id)
            if request is None:
                raise self._refuse(
                    ApprovalNotFoundError(
                        f"No approval request for action {action_id}", {"action_id": action_id}
                    ),
                    action_id,
                    requester,
                )
            if request.requester is None or request.requester != requester:
                raise self._refuse(
                    NotSubmitterError(
                        "Only the submitter may withdraw an approval request",
                        {"requester": requester},
                    ),
                    action_id,
                    requester,
                )
            request = self._expire_if_due(request)
            if request.is_terminal:
                return request
            return self._transition(
                request, ApprovalStatus.REJECTED, ReasonCode.WITHDRAWN.value, requester
            )

    def sweep_expired(self) -> list[ApprovalRequest]:
        """Expire every overdue pending request; each expiry is audited."""
        expired = []
        with self._registry_lock:
            action_ids = list(self._requests)
        for action_id in action_ids:
            with self._lock_for(action_id):
                request = self._requests[action_id]
                if request.is_terminal:
                    continue
                updated = self._expire_if_due(request)
                if updated.status == ApprovalStatus.EXPIRED:
                    expired.append(updated)
        if expired:
            logger.info("approval_sweep_completed", expired=len(expired))
        return expired

    def list_pending(self) -> list[ApprovalRequest]:
        with self._registry_lock:
            action_ids = list(self._requests)
        pending = []
        for action_id in action_ids:
            request = self.get(action_id)
            if request is not None and request.status == ApprovalStatus.PENDING:
                pending.append(request)
        return pending


class ApprovalSweeper:
    """Runs ``sweep_expired`` on a daemon thread at a fixed interval."""

    def __init__(self, engine: ApprovalWorkflowEngine, interval_seconds: float = 60.0) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="govgate-approval-sweeper", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.engine.sweep_expired()
            except GovGateError:
                logger.error("approval_sweep_failed", exc_info=True)
