"""
Centralized risk tier definitions.

This module is the single source of truth for the built-in tier defaults.
Risk tiers classify engineering actions and drive approval and budget policy.

Tiers:
- 0 (read-only): code search, repository analysis. No approvals.
- 1 (low risk): pull requests, docs, tests. One approval.
- 2 (operational): CI changes, staging deploys. Two approvals.
- 3 (production): production deploys, infrastructure writes. Three approvals.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class RiskTier(IntEnum):
    """Risk tier levels."""

    TIER0_READONLY = 0
    TIER1_LOWRISK = 1
    TIER2_OPERATIONAL = 2
    TIER3_PRODUCTION = 3


VALID_TIERS: frozenset[int] = frozenset(int(t) for t in RiskTier)


@dataclass(frozen=True)
class TierDefaults:
    """Built-in defaults for a risk tier.

    Attributes:
        tier: Tier number (0-3)
        display_name: Human-readable name
        enabled: Whether actions of this tier are accepted by default
        required_approvals: Number of approvals needed
        approver_roles: Roles eligible to sign off
        budget_category: Default budget category for the tier
        budget_window: Default budget window for the tier
    """

    tier: int
    display_name: str
    enabled: bool
    required_approvals: int
    approver_roles: tuple[str, ...]
    budget_category: str
    budget_window: str


TIER_DEFAULTS: dict[int, TierDefaults] = {
    0: TierDefaults(
        tier=0,
        display_name="Tier 0 - Read Only",
        enabled=True,
        required_approvals=0,
        approver_roles=(),
        budget_category="tier0_session",
        budget_window="session",
    ),
    1: TierDefaults(
        tier=1,
        display_name="Tier 1 - Low Risk",
        enabled=True,
        required_approvals=1,
        approver_roles=("AI Engineering Steward", "GitHub Maintainer"),
        budget_category="tier1_task",
        budget_window="task",
    ),
    2: TierDefaults(
        tier=2,
        display_name="Tier 2 - Operational",
        enabled=False,
        required_approvals=2,
        approver_roles=("AI Engineering Steward", "Security Council"),
        budget_category="tier2_window",
        budget_window="rolling-window",
    ),
    3: TierDefaults(
        tier=3,
        display_name="Tier 3 - Production",
        enabled=False,
        required_approvals=3,
        approver_roles=("Security Council", "DAO Safe Transaction", "Time Delay Satisfied"),
        budget_category="tier3_explicit",
        budget_window="explicit-only",
    ),
}


def is_valid_tier(tier: object) -> bool:
    """Check if a value names a known tier (bools are rejected)."""
    return isinstance(tier, int) and not isinstance(tier, bool) and tier in VALID_TIERS


def get_tier_defaults(tier: int) -> TierDefaults:
    """Get built-in defaults for a tier.

    Raises:
        ValueError: If tier is invalid
    """
    if not is_valid_tier(tier):
        raise ValueError(f"Invalid tier: {tier}. Valid tiers: 0, 1, 2, 3")
    return TIER_DEFAULTS[tier]
