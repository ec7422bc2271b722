"""
Budget domain models.

Ledger entries are append-only; reservations are provisional holds that
are either committed into the ledger or released without a trace.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from govgate.config.models import BudgetWindow
from govgate.core.reasons import ReasonCode


class CapState(StrEnum):
    """Health of a budget cap."""

    OPEN = "open"
    ALERTING = "alerting"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class BudgetLedgerEntry:
    """One committed spend."""

    category: str
    tier: int
    amount: float
    running_total_after: float
    timestamp: str
    action_id: str | None
    bucket: str
    recorded_at: float = field(default=0.0, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "tier": self.tier,
            "amount": self.amount,
            "running_total_after": self.running_total_after,
            "timestamp": self.timestamp,
            "action_id": self.action_id,
            "bucket": self.bucket,
        }


@dataclass(frozen=True)
class Reservation:
    """A provisional hold on cap capacity."""

    reservation_id: str
    category: str
    tier: int
    amount: float
    bucket: str
    action_id: str | None = None
    override_token: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ReservationResult:
    """Outcome of ``BudgetTracker.reserve``. Truthy when capacity was held."""

    accepted: bool
    reservation: Reservation | None
    reason: ReasonCode | None
    message: str
    limit: float | None = None
    spend: float = 0.0
    held: float = 0.0
    state: CapState | None = None

    def __bool__(self) -> bool:
        return self.accepted


@dataclass(frozen=True)
class BudgetStatus:
    """Point-in-time view of one cap bucket."""

    category: str
    tier: int
    bucket: str
    window: BudgetWindow
    limit: float
    spend: float
    held: float
    state: CapState
    override_available: float = 0.0

    @property
    def remaining(self) -> float:
        if self.window == BudgetWindow.EXPLICIT_ONLY:
            return self.override_available
        return max(self.limit - self.spend - self.held, 0.0)

    @property
    def utilization_pct(self) -> float:
        if self.limit <= 0:
            return 0.0
        return self.spend / self.limit * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "tier": self.tier,
            "bucket": self.bucket,
            "window": self.window.value,
            "limit": self.limit,
            "spend": self.spend,
            "held": self.held,
            "remaining": self.remaining,
            "utilization_pct": round(self.utilization_pct, 1),
            "state": self.state.value,
        }


@dataclass(frozen=True)
class BudgetAlert:
    """Raised when a cap crosses the alert threshold or its limit."""

    category: str
    tier: int
    bucket: str
    state: CapState
    spend: float
    limit: float

    @property
    def utilization_pct(self) -> float:
        return self.spend / self.limit * 100 if self.limit > 0 else 0.0
