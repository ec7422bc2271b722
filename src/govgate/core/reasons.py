"""Verdicts and machine-readable reason codes."""

from __future__ import annotations

from enum import StrEnum


class Verdict(StrEnum):
    """Outcome of a policy evaluation."""

    ALLOWED = "allowed"
    DENIED = "denied"
    PENDING = "pending"


class ReasonCode(StrEnum):
    """Reason codes attached to every verdict and refusal."""

    ALLOWED = "allowed"
    ALREADY_COMMITTED = "already_committed"
    APPROVAL_PENDING = "approval_pending"
    UNKNOWN_TIER = "unknown_tier"
    DISABLED_TIER = "disabled_tier"
    SCOPE_VIOLATION = "scope_violation"
    APPROVAL_FAILED = "approval_failed"
    BUDGET_EXCEEDED = "budget_exceeded"
    NO_BUDGET_CAP = "no_budget_cap"
    OVERRIDE_REQUIRED = "override_required"
    DENYLISTED = "denylisted"
    TIER_MISMATCH = "tier_mismatch"
    INVALID_ACTION = "invalid_action"
    UNAUTHORIZED_APPROVER = "unauthorized_approver"
    INVALID_SIGNATURE = "invalid_signature"
    NOT_SUBMITTER = "not_submitter"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"
    VETOED = "vetoed"
