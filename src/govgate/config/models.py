"""
Immutable gateway configuration.

A GatewayConfig is built once by the loader and never mutated; hot reload
replaces the whole object (see ``govgate.config.holder``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Mapping


class BudgetWindow(StrEnum):
    """Accounting window for a budget cap."""

    SESSION = "session"
    TASK = "task"
    ROLLING_WINDOW = "rolling-window"
    EXPLICIT_ONLY = "explicit-only"


WILDCARD_SCOPE = "*"


@dataclass(frozen=True)
class PolicyRule:
    """Policy for one risk tier.

    Attributes:
        tier: Tier number (0-3)
        enabled: Disabled tiers deny every action
        required_approvals: Approve votes needed before budget is checked
        allowed_scopes: Scopes an action may touch ("*" admits any)
        approver_roles: Roles eligible to sign off
        approval_ttl_seconds: Lifetime of an approval request (None = settings default)
        veto_roles: Roles whose Reject vetoes the request (None = every eligible role)
    """

    tier: int
    enabled: bool
    required_approvals: int
    allowed_scopes: frozenset[str]
    approver_roles: frozenset[str]
    approval_ttl_seconds: float | None = None
    veto_roles: frozenset[str] | None = None

    def admits_scope(self, scope: frozenset[str]) -> bool:
        if WILDCARD_SCOPE in self.allowed_scopes:
            return True
        return scope <= self.allowed_scopes


@dataclass(frozen=True)
class BudgetCapConfig:
    """Configured spending limit for a category/tier/window combination."""

    category: str
    tier: int
    limit: float
    window: BudgetWindow
    window_seconds: float | None = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.category, self.tier)


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class GatewayConfig:
    """Process-wide policy and budget configuration."""

    rules: Mapping[int, PolicyRule]
    caps: Mapping[tuple[str, int], BudgetCapConfig]
    alert_threshold: float = 0.8
    denylist: frozenset[str] = frozenset()
    capabilities: Mapping[str, int] = field(default_factory=dict)
    approvers: Mapping[str, frozenset[str]] = field(default_factory=dict)
    source: str = "defaults"

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", _freeze(self.rules))
        object.__setattr__(self, "caps", _freeze(self.caps))
        object.__setattr__(self, "capabilities", _freeze(self.capabilities))
        object.__setattr__(self, "approvers", _freeze(self.approvers))

    def rule_for(self, tier: int) -> PolicyRule | None:
        return self.rules.get(tier)

    def cap_for(self, category: str, tier: int) -> BudgetCapConfig | None:
        return self.caps.get((category, tier))

    def roles_for(self, approver: str) -> frozenset[str] | None:
        """Roles an identity may claim, or None when no directory is configured."""
        if not self.approvers:
            return None
        return self.approvers.get(approver, frozenset())
