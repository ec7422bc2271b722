"""
Governance gateway facade.

Wires the audit log, budget tracker, approval engine and policy engine
from Settings, and exposes the submission interface used by connectors,
the HTTP API and the CLI.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from govgate.approvals.engine import ApprovalSweeper, ApprovalWorkflowEngine
from govgate.approvals.verifiers import HmacSignatureVerifier
from govgate.audit.backends import (
    AuditBackend,
    JsonlAuditBackend,
    MemoryAuditBackend,
    SqlAuditBackend,
)
from govgate.audit.models import AuditEntry, AuditEventType
from govgate.audit.store import AuditLogStore
from govgate.budget.notifiers import BudgetAlertNotifier, LogNotifier, SlackBudgetNotifier
from govgate.budget.tracker import BudgetTracker
from govgate.config.holder import GatewayConfigHolder
from govgate.config.loader import load_gateway_config
from govgate.config.models import GatewayConfig
from govgate.config.settings import Settings, get_settings
from govgate.core.clock import Clock, SystemClock
from govgate.core.errors import ConfigurationError
from govgate.core.reasons import ReasonCode, Verdict
from govgate.policies.engine import PolicyEngine
from govgate.policies.models import ActionDescriptor, Decision

logger = structlog.get_logger()


@dataclass(frozen=True)
class SubmissionResult:
    """What a submitting connector gets back."""

    verdict: Verdict
    reason_code: ReasonCode
    message: str
    audit_ref: int

    @classmethod
    def from_decision(cls, decision: Decision) -> SubmissionResult:
        return cls(
            verdict=decision.verdict,
            reason_code=decision.reason_code,
            message=decision.message,
            audit_ref=decision.audit_ref,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "reason_code": self.reason_code.value,
            "message": self.message,
            "audit_ref": self.audit_ref,
        }


def create_audit_backend(settings: Settings) -> AuditBackend:
    """
    Raises:
        ConfigurationError: If ``audit_backend`` is not memory, jsonl or sql
    """
    backend = settings.audit_backend.lower()
    if backend == "memory":
        return MemoryAuditBackend()
    if backend == "jsonl":
        return JsonlAuditBackend(settings.audit_log_path)
    if backend == "sql":
        from govgate.db.session import init_session_factory

        return SqlAuditBackend(init_session_factory(settings))
    raise ConfigurationError(
        f"Unsupported audit backend: {settings.audit_backend}",
        {"valid": ["memory", "jsonl", "sql"]},
    )


class GovernanceGateway:
    """The authorization pipeline as one object."""

    def __init__(
        self,
        config: GatewayConfig,
        audit: AuditLogStore,
        verifier: HmacSignatureVerifier,
        notifiers: list[BudgetAlertNotifier] | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.config = GatewayConfigHolder(config)
        self.audit = audit
        self.verifier = verifier
        self.budget = BudgetTracker(self.config, audit, notifiers, self.clock)
        self.approvals = ApprovalWorkflowEngine(
            self.config,
            verifier,
            audit,
            self.clock,
            default_ttl_seconds=self.settings.approval_default_ttl_seconds,
        )
        self.policy = PolicyEngine(self.config, self.approvals, self.budget, audit)
        self.sweeper: ApprovalSweeper | None = None

    def evaluate(self, descriptor: ActionDescriptor) -> Decision:
        return self.policy.evaluate(descriptor)

    def submit_action(self, descriptor: ActionDescriptor) -> SubmissionResult:
        """Evaluate an action and return its verdict with the audit reference."""
        return SubmissionResult.from_decision(self.policy.evaluate(descriptor))

    def reload_config(
        self,
        policy_path: str | Path | None,
        budget_path: str | Path | None,
        actor: str = "system",
    ) -> GatewayConfig:
        """
        Load configuration files and swap them in as one object.

        The reload is recorded before the swap. A ConfigurationError
        propagates and leaves the running configuration in place.
        """
        config = load_gateway_config(policy_path, budget_path, self.settings)
        previous = self.config.current
        self.audit.append(
            AuditEntry(
                action_id=None,
                verdict=None,
                reason="config_reloaded",
                actor=actor,
                event_type=AuditEventType.CONFIG,
                details={
                    "previous_source": previous.source,
                    "source": config.source,
                    "tiers": sorted(config.rules),
                    "caps": [f"{category}/{tier}" for category, tier in sorted(config.caps)],
                },
            )
        )
        self.config.swap(config)
        return config

    def start_sweeper(self, interval_seconds: float | None = None) -> ApprovalSweeper:
        if self.sweeper is None:
            interval = interval_seconds or self.settings.approval_sweep_interval_seconds
            self.sweeper = ApprovalSweeper(self.approvals, interval)
            self.sweeper.start()
        return self.sweeper

    def close(self) -> None:
        if self.sweeper is not None:
            self.sweeper.stop()
            self.sweeper = None
        self.audit.close()
        logger.info("gateway_closed")


def build_gateway(
    settings: Settings | None = None,
    clock: Clock | None = None,
    start_sweeper: bool = True,
) -> GovernanceGateway:
    """
    Build a gateway from settings.

    Raises:
        ConfigurationError: If configuration files are missing or malformed
    """
    cfg = settings or get_settings()
    config = load_gateway_config(cfg.policy_config_path, cfg.budget_config_path, cfg)

    secret = cfg.approval_secret
    if secret is None:
        logger.warning("approval_secret_generated")
        secret = secrets.token_hex(32)
    verifier = HmacSignatureVerifier(secret)

    notifiers: list[BudgetAlertNotifier] = [LogNotifier()]
    if cfg.slack_webhook_url:
        notifiers.append(SlackBudgetNotifier(cfg.slack_webhook_url))

    clock = clock or SystemClock()
    audit = AuditLogStore(create_audit_backend(cfg), clock)
    gateway = GovernanceGateway(config, audit, verifier, notifiers, clock, cfg)
    if start_sweeper:
        gateway.start_sweeper()

    logger.info(
        "gateway_started",
        audit_backend=cfg.audit_backend,
        config_source=config.source,
        audit_records=len(audit),
    )
    return gateway
