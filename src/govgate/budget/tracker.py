"""
Budget Tracker.

Tracks spend per (category, tier) cap with a two-phase protocol:
``reserve`` holds capacity, ``commit`` writes the hold into the ledger,
``release`` drops it with no ledger write. All three are linearized per
(category, tier) key; distinct keys never contend.

Window semantics:
- session: spend is bucketed per session id and cleared by ``end_session``
- task: spend is bucketed per task id
- rolling-window: entries older than ``window_seconds`` drop out of the sum
- explicit-only: limit 0; spend needs an override token from ``grant_override``

Shutdown is sticky: it never clears as rolling spend ages out, only via
``reset``.
"""

from __future__ import annotations

import hashlib
import math
import secrets
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field

import structlog

from govgate.audit.models import AuditEntry, AuditEventType
from govgate.audit.store import AuditLogStore
from govgate.budget.models import (
    BudgetAlert,
    BudgetLedgerEntry,
    BudgetStatus,
    CapState,
    Reservation,
    ReservationResult,
)
from govgate.budget.notifiers import BudgetAlertNotifier, LogNotifier, NotificationError
from govgate.config.holder import GatewayConfigHolder
from govgate.config.models import BudgetCapConfig, BudgetWindow
from govgate.core.clock import Clock, SystemClock, isoformat
from govgate.core.errors import ReservationError, ValidationError
from govgate.core.reasons import ReasonCode

logger = structlog.get_logger()

DEFAULT_BUCKET = "default"
SHARED_BUCKET = "*"


@dataclass
class _Bucket:
    spend: float = 0.0
    held: float = 0.0
    state: CapState = CapState.OPEN
    window_entries: deque[BudgetLedgerEntry] = field(default_factory=deque)


@dataclass
class _Grant:
    amount: float
    held: float = 0.0
    issued_by: str = ""

    @property
    def available(self) -> float:
        return self.amount - self.held


@dataclass
class _CapLedger:
    lock: threading.Lock = field(default_factory=threading.Lock)
    buckets: dict[str, _Bucket] = field(default_factory=dict)
    holds: dict[str, Reservation] = field(default_factory=dict)
    grants: dict[str, _Grant] = field(default_factory=dict)
    entries: list[BudgetLedgerEntry] = field(default_factory=list)

    def bucket(self, name: str) -> _Bucket:
        if name not in self.buckets:
            self.buckets[name] = _Bucket()
        return self.buckets[name]


def bucket_for(window: BudgetWindow, task_id: str | None, session_id: str | None) -> str:
    if window == BudgetWindow.TASK:
        return task_id or DEFAULT_BUCKET
    if window == BudgetWindow.SESSION:
        return session_id or DEFAULT_BUCKET
    return SHARED_BUCKET


def _fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]


class BudgetTracker:
    """Per-cap spend accounting with reserve/commit/release."""

    def __init__(
        self,
        config: GatewayConfigHolder,
        audit: AuditLogStore | None = None,
        notifiers: list[BudgetAlertNotifier] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.audit = audit
        self.notifiers = notifiers if notifiers is not None else [LogNotifier()]
        self.clock = clock or SystemClock()
        self._ledgers: dict[tuple[str, int], _CapLedger] = {}
        self._registry_lock = threading.Lock()
        self._committed: dict[str, BudgetLedgerEntry] = {}

    def _ledger(self, category: str, tier: int) -> _CapLedger:
        key = (category, tier)
        with self._registry_lock:
            if key not in self._ledgers:
                self._ledgers[key] = _CapLedger()
            return self._ledgers[key]

    def _prune(self, cap: BudgetCapConfig, bucket: _Bucket) -> None:
        """Age out rolling-window spend. Shutdown stays sticky."""
        if cap.window != BudgetWindow.ROLLING_WINDOW or cap.window_seconds is None:
            return
        horizon = self.clock.monotonic() - cap.window_seconds
        while bucket.window_entries and bucket.window_entries[0].recorded_at <= horizon:
            aged = bucket.window_entries.popleft()
            bucket.spend = max(bucket.spend - aged.amount, 0.0)
        if bucket.state == CapState.ALERTING and bucket.spend < cap.limit * self._threshold():
            bucket.state = CapState.OPEN

    def _threshold(self) -> float:
        return self.config.current.alert_threshold

    def reserve(
        self,
        category: str,
        tier: int,
        amount: float,
        *,
        action_id: str | None = None,
        task_id: str | None = None,
        session_id: str | None = None,
        override_token: str | None = None,
    ) -> ReservationResult:
        """
        Provisionally hold capacity.

        A refused reservation changes nothing; in particular a request larger
        than the whole limit leaves the cap Open.

        Raises:
            ValidationError: If amount is negative or not finite
        """
        if not math.isfinite(amount) or amount < 0:
            raise ValidationError(
                "Reservation amount must be a finite non-negative number", {"amount": amount}
            )

        cap = self.config.current.cap_for(category, tier)
        if cap is None:
            return ReservationResult(
                accepted=False,
                reservation=None,
                reason=ReasonCode.NO_BUDGET_CAP,
                message=f"No budget cap configured for {category}/tier {tier}",
            )

        ledger = self._ledger(category, tier)
        name = bucket_for(cap.window, task_id, session_id)
        with ledger.lock:
            bucket = ledger.bucket(name)
            self._prune(cap, bucket)

            if cap.window == BudgetWindow.EXPLICIT_ONLY:
                grant = ledger.grants.get(override_token) if override_token else None
                if grant is None or grant.available < amount:
                    return self._refused(
                        cap, bucket, ReasonCode.OVERRIDE_REQUIRED,
                        f"{category}/tier {tier} accepts only spend backed by an override grant",
                    )
                grant.held += amount
            else:
                if bucket.state == CapState.SHUTDOWN:
                    return self._refused(
                        cap, bucket, ReasonCode.BUDGET_EXCEEDED,
                        f"{category}/tier {tier} is shut down pending administrative reset",
                    )
                if bucket.spend + bucket.held + amount > cap.limit:
                    return self._refused(
                        cap, bucket, ReasonCode.BUDGET_EXCEEDED,
                        f"Budget exceeded for {category}/tier {tier}: requested {amount:.2f}, "
                        f"remaining {cap.limit - bucket.spend - bucket.held:.2f}",
                    )

            bucket.held += amount
            reservation = Reservation(
                reservation_id=str(uuid.uuid4()),
                category=category,
                tier=tier,
                amount=amount,
                bucket=name,
                action_id=action_id,
                override_token=override_token if cap.window == BudgetWindow.EXPLICIT_ONLY else None,
            )
            ledger.holds[reservation.reservation_id] = reservation
            spend, held, state = bucket.spend, bucket.held, bucket.state

        logger.debug(
            "budget_reserved",
            category=category,
            tier=tier,
            bucket=name,
            amount=amount,
            reservation_id=reservation.reservation_id,
        )
        return ReservationResult(
            accepted=True,
            reservation=reservation,
            reason=None,
            message=f"Reserved {amount:.2f} in {category}/tier {tier}",
            limit=cap.limit,
            spend=spend,
            held=held,
            state=state,
        )

    def _refused(
        self, cap: BudgetCapConfig, bucket: _Bucket, reason: ReasonCode, message: str
    ) -> ReservationResult:
        logger.info(
            "budget_reservation_refused",
            category=cap.category,
            tier=cap.tier,
            reason=reason.value,
        )
        return ReservationResult(
            accepted=False,
            reservation=None,
            reason=reason,
            message=message,
            limit=cap.limit,
            spend=bucket.spend,
            held=bucket.held,
            state=bucket.state,
        )

    def commit(self, reservation: Reservation) -> BudgetLedgerEntry:
        """
        Finalize a hold into the ledger.

        Raises:
            ReservationError: If the reservation is unknown or already settled
        """
        cap = self.config.current.cap_for(reservation.category, reservation.tier)
        ledger = self._ledger(reservation.category, reservation.tier)
        alert: BudgetAlert | None = None

        with ledger.lock:
            if ledger.holds.pop(reservation.reservation_id, None) is None:
                raise ReservationError(
                    "Unknown or already settled reservation",
                    {"reservation_id": reservation.reservation_id},
                )
            bucket = ledger.bucket(reservation.bucket)
            bucket.held -= reservation.amount
            if cap is not None:
                self._prune(cap, bucket)
            bucket.spend += reservation.amount

            entry = BudgetLedgerEntry(
                category=reservation.category,
                tier=reservation.tier,
                amount=reservation.amount,
                running_total_after=bucket.spend,
                timestamp=isoformat(self.clock.now()),
                action_id=reservation.action_id,
                bucket=reservation.bucket,
                recorded_at=self.clock.monotonic(),
            )
            ledger.entries.append(entry)
            bucket.window_entries.append(entry)
            if reservation.action_id is not None:
                self._committed[reservation.action_id] = entry

            if reservation.override_token is not None:
                grant = ledger.grants[reservation.override_token]
                grant.held -= reservation.amount
                grant.amount -= reservation.amount
                if grant.amount <= 0:
                    del ledger.grants[reservation.override_token]
            elif cap is not None:
                alert = self._transition(cap, reservation.bucket, bucket)

        logger.info(
            "budget_committed",
            category=entry.category,
            tier=entry.tier,
            amount=entry.amount,
            running_total=entry.running_total_after,
            action_id=entry.action_id,
        )
        if alert is not None:
            self._notify(alert)
        return entry

    def _transition(self, cap: BudgetCapConfig, name: str, bucket: _Bucket) -> BudgetAlert | None:
        if cap.limit <= 0 or bucket.state == CapState.SHUTDOWN:
            return None
        previous = bucket.state
        if bucket.spend >= cap.limit:
            bucket.state = CapState.SHUTDOWN
        elif bucket.spend >= cap.limit * self._threshold():
            bucket.state = CapState.ALERTING
        if bucket.state == previous:
            return None
        logger.warning(
            "budget_state_changed",
            category=cap.category,
            tier=cap.tier,
            bucket=name,
            previous=previous.value,
            state=bucket.state.value,
        )
        return BudgetAlert(
            category=cap.category,
            tier=cap.tier,
            bucket=name,
            state=bucket.state,
            spend=bucket.spend,
            limit=cap.limit,
        )

    def _notify(self, alert: BudgetAlert) -> None:
        for notifier in self.notifiers:
            try:
                notifier.notify(alert)
            except NotificationError:
                logger.warning(
                    "budget_alert_delivery_failed",
                    notifier=type(notifier).__name__,
                    exc_info=True,
                )

    def release(self, reservation: Reservation) -> None:
        """
        Return a hold without writing the ledger.

        Raises:
            ReservationError: If the reservation is unknown or already settled
        """
        ledger = self._ledger(reservation.category, reservation.tier)
        with ledger.lock:
            if ledger.holds.pop(reservation.reservation_id, None) is None:
                raise ReservationError(
                    "Unknown or already settled reservation",
                    {"reservation_id": reservation.reservation_id},
                )
            ledger.bucket(reservation.bucket).held -= reservation.amount
            if reservation.override_token is not None:
                grant = ledger.grants.get(reservation.override_token)
                if grant is not None:
                    grant.held -= reservation.amount
        logger.debug("budget_released", reservation_id=reservation.reservation_id)

    def committed_entry(self, action_id: str) -> BudgetLedgerEntry | None:
        """Ledger entry already committed for an action, if any."""
        return self._committed.get(action_id)

    def ledger(self, category: str, tier: int) -> list[BudgetLedgerEntry]:
        """Copy of every ledger entry ever committed for a cap."""
        ledger = self._ledger(category, tier)
        with ledger.lock:
            return list(ledger.entries)

    # -- Administrative operations (audited) --

    def _audit_admin(self, reason: str, actor: str, details: dict) -> None:
        if self.audit is None:
            return
        self.audit.append(
            AuditEntry(
                action_id=None,
                verdict=None,
                reason=reason,
                actor=actor,
                event_type=AuditEventType.BUDGET_ADMIN,
                details=details,
            )
        )

    def reset(self, category: str, tier: int, actor: str, note: str = "") -> None:
        """Clear spend on every bucket of a cap and return it to Open."""
        ledger = self._ledger(category, tier)
        with ledger.lock:
            self._audit_admin(
                "budget_reset",
                actor,
                {
                    "category": category,
                    "tier": tier,
                    "note": note,
                    "cleared": {
                        name: {"spend": b.spend, "state": b.state.value}
                        for name, b in ledger.buckets.items()
                    },
                },
            )
            for bucket in ledger.buckets.values():
                bucket.spend = 0.0
                bucket.state = CapState.OPEN
                bucket.window_entries.clear()
        logger.warning("budget_reset", category=category, tier=tier, actor=actor)

    def end_session(self, session_id: str, actor: str) -> None:
        """Drop session-window spend for a session. A Shutdown still needs ``reset``."""
        config = self.config.current
        for cap in config.caps.values():
            if cap.window != BudgetWindow.SESSION:
                continue
            ledger = self._ledger(cap.category, cap.tier)
            with ledger.lock:
                bucket = ledger.buckets.get(session_id)
                if bucket is None:
                    continue
                self._audit_admin(
                    "budget_session_ended",
                    actor,
                    {
                        "category": cap.category,
                        "tier": cap.tier,
                        "session_id": session_id,
                        "spend": bucket.spend,
                    },
                )
                bucket.spend = 0.0
                bucket.window_entries.clear()
                if bucket.state == CapState.ALERTING:
                    bucket.state = CapState.OPEN

    def grant_override(self, category: str, tier: int, amount: float, actor: str) -> str:
        """
        Issue a single-cap override token for an explicit-only cap.

        Raises:
            ValidationError: If the cap is unknown, not explicit-only, or amount <= 0
        """
        cap = self.config.current.cap_for(category, tier)
        if cap is None or cap.window != BudgetWindow.EXPLICIT_ONLY:
            raise ValidationError(
                "Overrides can only be granted on explicit-only caps",
                {"category": category, "tier": tier},
            )
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationError(
                "Override amount must be a finite positive number", {"amount": amount}
            )

        token = secrets.token_urlsafe(24)
        ledger = self._ledger(category, tier)
        with ledger.lock:
            self._audit_admin(
                "budget_override_granted",
                actor,
                {
                    "category": category,
                    "tier": tier,
                    "amount": amount,
                    "token_fingerprint": _fingerprint(token),
                },
            )
            ledger.grants[token] = _Grant(amount=amount, issued_by=actor)
        logger.info("budget_override_granted", category=category, tier=tier, amount=amount)
        return token

    def status(self, category: str | None = None, tier: int | None = None) -> list[BudgetStatus]:
        """Snapshot of every configured cap, one row per known bucket."""
        statuses = []
        config = self.config.current
        for (cap_category, cap_tier), cap in sorted(config.caps.items()):
            if category is not None and cap_category != category:
                continue
            if tier is not None and cap_tier != tier:
                continue
            ledger = self._ledger(cap_category, cap_tier)
            with ledger.lock:
                buckets = ledger.buckets or {
                    bucket_for(cap.window, None, None): _Bucket()
                }
                override_available = sum(g.available for g in ledger.grants.values())
                for name, bucket in sorted(buckets.items()):
                    self._prune(cap, bucket)
                    statuses.append(
                        BudgetStatus(
                            category=cap_category,
                            tier=cap_tier,
                            bucket=name,
                            window=cap.window,
                            limit=cap.limit,
                            spend=bucket.spend,
                            held=bucket.held,
                            state=bucket.state,
                            override_available=override_available,
                        )
                    )
        return statuses
