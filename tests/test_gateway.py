"""
Tests for the gateway facade and its wiring from settings.
"""

import pytest
import yaml
from govgate.audit import AuditEventType, JsonlAuditBackend, MemoryAuditBackend, SqlAuditBackend
from govgate.config import Settings
from govgate.core.errors import ConfigurationError
from govgate.core.reasons import ReasonCode, Verdict
from govgate.gateway import SubmissionResult, build_gateway, create_audit_backend
from govgate.policies import ActionDescriptor


def _docs_action(action_id="act-1", tier=0, cost=1.0):
    return ActionDescriptor(
        action_id=action_id,
        category="docs",
        requested_tier=tier,
        scope=frozenset({"docs"}),
        requester_identity="copilot-bot",
        cost_estimate=cost,
        session_id="s1",
    )


class TestSubmitAction:
    """Tests for the connector-facing submission call."""

    def test_returns_verdict_and_audit_ref(self, gateway):
        result = gateway.submit_action(_docs_action())

        assert isinstance(result, SubmissionResult)
        assert result.verdict == Verdict.ALLOWED
        assert result.audit_ref == gateway.audit.head().sequence_no
        assert result.to_dict() == {
            "verdict": "allowed",
            "reason_code": "allowed",
            "message": result.message,
            "audit_ref": result.audit_ref,
        }

    def test_pending_action(self, gateway):
        result = gateway.submit_action(_docs_action(tier=1))

        assert result.verdict == Verdict.PENDING
        assert result.reason_code == ReasonCode.APPROVAL_PENDING


class TestReloadConfig:
    """Tests for audited hot reload."""

    @pytest.fixture
    def policy_file(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text(
            yaml.safe_dump(
                {"tiers": [{"tier": 0, "enabled": False, "allowed_scopes": ["docs"]}]}
            )
        )
        return path

    @pytest.fixture
    def budget_file(self, tmp_path):
        path = tmp_path / "budgets.yaml"
        path.write_text(
            yaml.safe_dump({"budgets": {"docs": {0: {"limit": 10, "window": "session"}}}})
        )
        return path

    def test_reload_is_audited_then_applied(self, gateway, policy_file, budget_file):
        config = gateway.reload_config(policy_file, budget_file, actor="admin")

        record = gateway.audit.head()
        assert record.event_type == AuditEventType.CONFIG
        assert record.reason == "config_reloaded"
        assert record.actor == "admin"
        assert record.details["tiers"] == [0]
        assert gateway.config.current is config
        assert gateway.submit_action(_docs_action()).reason_code == ReasonCode.DISABLED_TIER

    def test_failed_reload_is_not_applied(self, gateway, tmp_path, budget_file):
        before = gateway.config.current
        records = len(gateway.audit)

        with pytest.raises(ConfigurationError):
            gateway.reload_config(tmp_path / "missing.yaml", budget_file)

        assert gateway.config.current is before
        assert len(gateway.audit) == records


class TestCreateAuditBackend:
    """Tests for backend selection."""

    def test_memory(self, settings):
        assert isinstance(create_audit_backend(settings), MemoryAuditBackend)

    def test_jsonl(self, tmp_path):
        settings = Settings(
            _env_file=None, audit_backend="jsonl", audit_log_path=str(tmp_path / "a.jsonl")
        )

        backend = create_audit_backend(settings)

        assert isinstance(backend, JsonlAuditBackend)
        backend.close()

    def test_sql(self):
        settings = Settings(_env_file=None, audit_backend="sql", database_url="sqlite://")

        assert isinstance(create_audit_backend(settings), SqlAuditBackend)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_audit_backend(Settings(_env_file=None, audit_backend="s3"))


class TestBuildGateway:
    """Tests for building a gateway from settings alone."""

    def test_builtin_defaults(self, settings):
        gateway = build_gateway(settings, start_sweeper=False)
        try:
            action = ActionDescriptor(
                action_id="read-1",
                category="tier0_session",
                requested_tier=0,
                scope=frozenset({"repo"}),
                requester_identity="copilot-bot",
                cost_estimate=1.0,
            )
            assert gateway.submit_action(action).verdict == Verdict.ALLOWED
            assert gateway.sweeper is None
        finally:
            gateway.close()

    def test_generates_secret_when_unset(self):
        settings = Settings(_env_file=None, audit_backend="memory", approval_secret=None)

        gateway = build_gateway(settings, start_sweeper=False)
        try:
            proof = gateway.verifier.sign("alice", "act-1")
            assert gateway.verifier.verify("alice", "act-1", proof)
        finally:
            gateway.close()

    def test_sweeper_started_and_stopped(self, settings):
        gateway = build_gateway(settings)

        assert gateway.sweeper is not None
        gateway.close()
        assert gateway.sweeper is None

    def test_bad_config_path_fails_fast(self, tmp_path):
        settings = Settings(
            _env_file=None,
            audit_backend="memory",
            policy_config_path=str(tmp_path / "missing.yaml"),
        )

        with pytest.raises(ConfigurationError):
            build_gateway(settings, start_sweeper=False)
