"""Root test configuration."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog
from govgate.approvals import ApprovalWorkflowEngine, HmacSignatureVerifier
from govgate.audit import AuditLogStore, MemoryAuditBackend
from govgate.budget import BudgetTracker
from govgate.config import (
    BudgetCapConfig,
    BudgetWindow,
    GatewayConfig,
    GatewayConfigHolder,
    PolicyRule,
    Settings,
)
from govgate.gateway import GovernanceGateway
from govgate.policies import PolicyEngine

STEWARD = "AI Engineering Steward"
MAINTAINER = "GitHub Maintainer"
COUNCIL = "Security Council"
SECRET = "test-approval-secret"


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class ManualClock:
    """Clock whose monotonic and wall readings only move when told to."""

    def __init__(self) -> None:
        self._monotonic = 1000.0
        self._now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return self._monotonic

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._monotonic += seconds
        self._now += timedelta(seconds=seconds)

    def skew_wall(self, seconds: float) -> None:
        """Move only the wall clock (e.g. NTP step backwards)."""
        self._now += timedelta(seconds=seconds)


class RecordingNotifier:
    def __init__(self) -> None:
        self.alerts = []

    def notify(self, alert) -> None:
        self.alerts.append(alert)


def make_config(
    rules: list[PolicyRule] | None = None,
    caps: list[BudgetCapConfig] | None = None,
    **kwargs,
) -> GatewayConfig:
    """Scenario configuration: docs category, tiers 0-2."""
    if rules is None:
        rules = [
            PolicyRule(
                tier=0,
                enabled=True,
                required_approvals=0,
                allowed_scopes=frozenset({"docs", "tests"}),
                approver_roles=frozenset(),
            ),
            PolicyRule(
                tier=1,
                enabled=True,
                required_approvals=1,
                allowed_scopes=frozenset({"docs"}),
                approver_roles=frozenset({STEWARD, MAINTAINER}),
                approval_ttl_seconds=3600,
            ),
            PolicyRule(
                tier=2,
                enabled=False,
                required_approvals=2,
                allowed_scopes=frozenset({"*"}),
                approver_roles=frozenset({STEWARD, COUNCIL}),
            ),
        ]
    if caps is None:
        caps = [
            BudgetCapConfig(category="docs", tier=0, limit=10, window=BudgetWindow.SESSION),
            BudgetCapConfig(category="docs", tier=1, limit=100, window=BudgetWindow.TASK),
        ]
    return GatewayConfig(
        rules={r.tier: r for r in rules},
        caps={c.key: c for c in caps},
        **kwargs,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def verifier():
    return HmacSignatureVerifier(SECRET)


@pytest.fixture
def audit(clock):
    return AuditLogStore(MemoryAuditBackend(), clock)


@pytest.fixture
def holder():
    return GatewayConfigHolder(make_config())


@pytest.fixture
def tracker(holder, audit, notifier, clock):
    return BudgetTracker(holder, audit, [notifier], clock)


@pytest.fixture
def approvals(holder, verifier, audit, clock):
    return ApprovalWorkflowEngine(holder, verifier, audit, clock, default_ttl_seconds=600)


@pytest.fixture
def engine(holder, approvals, tracker, audit):
    return PolicyEngine(holder, approvals, tracker, audit)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        audit_backend="memory",
        audit_log_path=str(tmp_path / "audit.jsonl"),
        approval_secret=SECRET,
    )


@pytest.fixture
def gateway(settings, audit, verifier, notifier, clock):
    gw = GovernanceGateway(make_config(), audit, verifier, [notifier], clock, settings)
    yield gw
    gw.close()
