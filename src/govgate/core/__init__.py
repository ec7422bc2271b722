"""Core modules - centralized definitions and utilities."""

from govgate.core.clock import Clock, SystemClock
from govgate.core.errors import (
    ApprovalError,
    ApprovalNotFoundError,
    AuditIntegrityError,
    BudgetError,
    ConfigurationError,
    ExitCode,
    GovGateError,
    InvalidSignatureError,
    NotSubmitterError,
    ReservationError,
    UnauthorizedApproverError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)
from govgate.core.reasons import ReasonCode, Verdict
from govgate.core.tiers import (
    TIER_DEFAULTS,
    VALID_TIERS,
    RiskTier,
    TierDefaults,
    get_tier_defaults,
    is_valid_tier,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    # Errors
    "ExitCode",
    "GovGateError",
    "ConfigurationError",
    "ValidationError",
    "AuditIntegrityError",
    "ApprovalError",
    "ApprovalNotFoundError",
    "UnauthorizedApproverError",
    "InvalidSignatureError",
    "NotSubmitterError",
    "BudgetError",
    "ReservationError",
    "main_with_error_handling",
    "format_error_message",
    # Reasons
    "ReasonCode",
    "Verdict",
    # Tiers
    "RiskTier",
    "TierDefaults",
    "TIER_DEFAULTS",
    "VALID_TIERS",
    "get_tier_defaults",
    "is_valid_tier",
]
