"""Budget caps, ledger, and alerting."""

from govgate.budget.models import (
    BudgetAlert,
    BudgetLedgerEntry,
    BudgetStatus,
    CapState,
    Reservation,
    ReservationResult,
)
from govgate.budget.notifiers import (
    BudgetAlertNotifier,
    LogNotifier,
    NotificationError,
    SlackBudgetNotifier,
)
from govgate.budget.tracker import BudgetTracker

__all__ = [
    "BudgetAlert",
    "BudgetAlertNotifier",
    "BudgetLedgerEntry",
    "BudgetStatus",
    "BudgetTracker",
    "CapState",
    "LogNotifier",
    "NotificationError",
    "Reservation",
    "ReservationResult",
    "SlackBudgetNotifier",
]
