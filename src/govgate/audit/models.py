"""
Audit domain models.

Immutable records of authorization decisions, approval events, and
administrative budget mutations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from govgate.core.reasons import Verdict


class AuditEventType(StrEnum):
    """Kind of event an audit record documents."""

    EVALUATION = "evaluation"
    APPROVAL_SIGNATURE = "approval_signature"
    APPROVAL_TRANSITION = "approval_transition"
    BUDGET_ADMIN = "budget_admin"
    INTEGRITY = "integrity"
    CONFIG = "config"


@dataclass(frozen=True)
class AuditEntry:
    """An audit record before the store assigns sequence, time, and hashes."""

    action_id: str | None
    verdict: Verdict | None
    reason: str
    actor: str | None
    event_type: AuditEventType = AuditEventType.EVALUATION
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditRecord:
    """A persisted, hash-chained audit record.

    ``record_hash`` covers ``prior_hash`` and every field returned by
    ``body()``; see ``govgate.audit.chain`` for the exact construction.
    """

    sequence_no: int
    timestamp: str
    action_id: str | None
    verdict: Verdict | None
    reason: str
    actor: str | None
    event_type: AuditEventType
    details: dict[str, Any]
    prior_hash: str
    record_hash: str

    @property
    def occurred_at(self) -> datetime:
        return datetime.fromisoformat(self.timestamp)

    def body(self) -> dict[str, Any]:
        """Hashed fields, in plain JSON types."""
        return {
            "sequence_no": self.sequence_no,
            "timestamp": self.timestamp,
            "action_id": self.action_id,
            "verdict": self.verdict.value if self.verdict is not None else None,
            "reason": self.reason,
            "actor": self.actor,
            "event_type": self.event_type.value,
            "details": self.details,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.body(), "prior_hash": self.prior_hash, "record_hash": self.record_hash}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditRecord:
        verdict = data.get("verdict")
        return cls(
            sequence_no=int(data["sequence_no"]),
            timestamp=data["timestamp"],
            action_id=data.get("action_id"),
            verdict=Verdict(verdict) if verdict is not None else None,
            reason=data["reason"],
            actor=data.get("actor"),
            event_type=AuditEventType(data["event_type"]),
            details=dict(data.get("details") or {}),
            prior_hash=data["prior_hash"],
            record_hash=data["record_hash"],
        )


@dataclass(frozen=True)
class AuditFilter:
    """
    Filter parameters for querying the audit log.

    All fields are optional. Omitting a field means no restriction on that
    dimension. ``since`` is inclusive, ``until`` exclusive.
    """

    action_id: str | None = None
    verdict: Verdict | None = None
    actor: str | None = None
    event_type: AuditEventType | None = None
    since: datetime | None = None
    until: datetime | None = None

    def matches(self, record: AuditRecord) -> bool:
        if self.action_id is not None and record.action_id != self.action_id:
            return False
        if self.verdict is not None and record.verdict != self.verdict:
            return False
        if self.actor is not None and record.actor != self.actor:
            return False
        if self.event_type is not None and record.event_type != self.event_type:
            return False
        if self.since is not None and record.occurred_at < self.since:
            return False
        if self.until is not None and record.occurred_at >= self.until:
            return False
        return True


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of re-walking the hash chain.

    Truthy when the chain is intact. ``first_divergence`` is the sequence
    position of the first record that fails to link or hash.
    """

    valid: bool
    checked: int
    first_divergence: int | None = None
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.valid
