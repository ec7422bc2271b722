"""Tests for config/loader.py and config/holder.py.

Tests for policy and budget file loading, validation, defaults and hot reload.
"""

import threading

import pytest
import yaml
from govgate.config import (
    BudgetWindow,
    GatewayConfigHolder,
    Settings,
    get_settings,
    load_gateway_config,
    parse_budgets,
    parse_policy,
    read_config_file,
)
from govgate.core.errors import ConfigurationError

POLICY = {
    "tiers": [
        {
            "tier": 0,
            "enabled": True,
            "required_approvals": 0,
            "allowed_scopes": ["docs", "tests"],
        },
        {
            "tier": 1,
            "enabled": True,
            "required_approvals": 1,
            "allowed_scopes": ["docs"],
            "approver_roles": ["AI Engineering Steward"],
            "approval_ttl_seconds": 3600,
        },
        {
            "tier": 2,
            "enabled": False,
            "required_approvals": 2,
            "allowed_scopes": ["*"],
            "approver_roles": ["AI Engineering Steward", "Security Council"],
            "veto_roles": ["Security Council"],
        },
    ],
    "denylist": ["force_push"],
    "capabilities": {"generate_pr": 1},
    "approvers": {"alice": ["AI Engineering Steward"]},
}

BUDGETS = {
    "alert_threshold": 0.75,
    "budgets": {
        "docs": {
            0: {"limit": 10, "window": "session"},
            1: {"limit": 100, "window": "task"},
        },
        "ops": {
            2: {"limit": 500, "window": "rolling-window", "window_seconds": 3600},
            3: {"limit": 0, "window": "explicit-only"},
        },
    },
}


@pytest.fixture
def config_files(tmp_path):
    policy_path = tmp_path / "policy.yaml"
    budget_path = tmp_path / "budgets.yaml"
    policy_path.write_text(yaml.safe_dump(POLICY))
    budget_path.write_text(yaml.safe_dump(BUDGETS))
    return policy_path, budget_path


def _settings(**kwargs):
    return Settings(_env_file=None, **kwargs)


class TestReadConfigFile:
    """Tests for raw file reading."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            read_config_file(tmp_path / "nope.yaml")
        assert "not found" in exc_info.value.message

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("tiers: [unclosed")

        with pytest.raises(ConfigurationError):
            read_config_file(path)

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ConfigurationError):
            read_config_file(path)

    def test_json_is_accepted(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text('{"tiers": []}')

        assert read_config_file(path) == {"tiers": []}


class TestParsePolicy:
    """Tests for policy document validation."""

    def test_parses_rules_and_catalogs(self):
        policy = parse_policy(POLICY)

        assert sorted(policy["rules"]) == [0, 1, 2]
        tier1 = policy["rules"][1]
        assert tier1.required_approvals == 1
        assert tier1.allowed_scopes == frozenset({"docs"})
        assert tier1.approval_ttl_seconds == 3600
        assert policy["rules"][2].veto_roles == frozenset({"Security Council"})
        assert policy["denylist"] == frozenset({"force_push"})
        assert policy["capabilities"] == {"generate_pr": 1}
        assert policy["approvers"]["alice"] == frozenset({"AI Engineering Steward"})

    @pytest.mark.parametrize(
        "rule",
        [
            {"tier": 4, "allowed_scopes": ["docs"]},
            {"tier": True, "allowed_scopes": ["docs"]},
            {"tier": 1},
            {"tier": 1, "allowed_scopes": "docs"},
            {"tier": 1, "allowed_scopes": ["docs"], "required_approvals": -1},
            {"tier": 1, "allowed_scopes": ["docs"], "required_approvals": 1},
            {"tier": 1, "allowed_scopes": ["docs"], "enabled": "yes"},
            {"tier": 1, "allowed_scopes": ["docs"], "approval_ttl_seconds": 0},
            {"tier": 1, "allowed_scopes": ["docs"], "approval_ttl_seconds": float("nan")},
            {"tier": 1, "allowed_scopes": ["docs"], "colour": "red"},
            {
                "tier": 1,
                "allowed_scopes": ["docs"],
                "required_approvals": 1,
                "approver_roles": ["Steward"],
                "veto_roles": ["Council"],
            },
        ],
    )
    def test_rejects_malformed_rules(self, rule):
        with pytest.raises(ConfigurationError):
            parse_policy({"tiers": [rule]})

    def test_rejects_duplicate_tier(self):
        rule = {"tier": 0, "allowed_scopes": ["docs"]}

        with pytest.raises(ConfigurationError, match="Duplicate"):
            parse_policy({"tiers": [rule, rule]})

    def test_rejects_empty_tiers(self):
        with pytest.raises(ConfigurationError):
            parse_policy({"tiers": []})

    def test_capability_needs_rule(self):
        with pytest.raises(ConfigurationError):
            parse_policy(
                {"tiers": [{"tier": 0, "allowed_scopes": ["docs"]}], "capabilities": {"x": 1}}
            )


class TestParseBudgets:
    """Tests for budget document validation."""

    def test_parses_caps(self):
        budgets = parse_budgets(BUDGETS)

        caps = budgets["caps"]
        assert budgets["alert_threshold"] == 0.75
        assert caps[("docs", 1)].window == BudgetWindow.TASK
        assert caps[("ops", 2)].window_seconds == 3600
        assert caps[("ops", 3)].limit == 0

    @pytest.mark.parametrize(
        "cap",
        [
            {"limit": -1, "window": "task"},
            {"limit": 10, "window": "fortnight"},
            {"limit": 10},
            {"limit": 10, "window": "rolling-window"},
            {"limit": 10, "window": "task", "window_seconds": 60},
            {"limit": 5, "window": "explicit-only"},
            {"limit": "ten", "window": "task"},
            {"limit": float("nan"), "window": "task"},
            {"limit": float("inf"), "window": "session"},
            {"limit": 10, "window": "rolling-window", "window_seconds": float("inf")},
        ],
    )
    def test_rejects_malformed_caps(self, cap):
        with pytest.raises(ConfigurationError):
            parse_budgets({"budgets": {"docs": {1: cap}}})

    def test_string_tier_keys(self):
        budgets = parse_budgets({"budgets": {"docs": {"1": {"limit": 5, "window": "task"}}}})

        assert ("docs", 1) in budgets["caps"]

    def test_rejects_unknown_tier(self):
        with pytest.raises(ConfigurationError, match="unknown tier"):
            parse_budgets({"budgets": {"docs": {9: {"limit": 1, "window": "task"}}}})

    @pytest.mark.parametrize("threshold", [0, 1.5, "high", float("nan")])
    def test_rejects_bad_threshold(self, threshold):
        with pytest.raises(ConfigurationError):
            parse_budgets(
                {
                    "alert_threshold": threshold,
                    "budgets": {"docs": {1: {"limit": 1, "window": "task"}}},
                }
            )


class TestLoadGatewayConfig:
    """Tests for full configuration loading."""

    def test_loads_both_files(self, config_files):
        policy_path, budget_path = config_files

        config = load_gateway_config(policy_path, budget_path, _settings())

        assert sorted(config.rules) == [0, 1, 2]
        assert len(config.caps) == 4
        assert config.source == f"{policy_path},{budget_path}"

    def test_builtin_defaults(self):
        config = load_gateway_config(settings=_settings(budget_tier1_task=250))

        assert sorted(config.rules) == [0, 1, 2, 3]
        assert config.rule_for(0).enabled
        assert not config.rule_for(3).enabled
        assert config.rule_for(3).required_approvals == 3
        assert config.cap_for("tier1_task", 1).limit == 250
        assert config.cap_for("tier3_explicit", 3).window == BudgetWindow.EXPLICIT_ONLY
        assert config.source == "default-policy,default-budgets"

    def test_yaml_infinite_limit_rejected(self, config_files, tmp_path):
        policy_path, _ = config_files
        budget_path = tmp_path / "inf.yaml"
        budget_path.write_text("budgets:\n  docs:\n    1: {limit: .inf, window: task}\n")

        with pytest.raises(ConfigurationError, match="finite"):
            load_gateway_config(policy_path, budget_path, _settings())

    def test_config_is_immutable(self, config_files):
        config = load_gateway_config(*config_files, settings=_settings())

        with pytest.raises(TypeError):
            config.rules[5] = None
        with pytest.raises(AttributeError):
            config.alert_threshold = 0.1


class TestGatewayConfigHolder:
    """Tests for whole-object swapping."""

    def test_reload_swaps_and_bumps_generation(self, config_files):
        holder = GatewayConfigHolder(load_gateway_config(settings=_settings()))

        config = holder.reload(*config_files, settings=_settings())

        assert holder.current is config
        assert holder.generation == 2

    def test_failed_reload_keeps_current(self, tmp_path, config_files):
        holder = GatewayConfigHolder(load_gateway_config(*config_files, settings=_settings()))
        before = holder.current
        broken = tmp_path / "broken.yaml"
        broken.write_text(yaml.safe_dump({"tiers": [{"tier": 9, "allowed_scopes": ["x"]}]}))

        with pytest.raises(ConfigurationError):
            holder.reload(broken, config_files[1], settings=_settings())

        assert holder.current is before
        assert holder.generation == 1

    def test_readers_see_whole_configs(self, config_files):
        first = load_gateway_config(settings=_settings())
        second = load_gateway_config(*config_files, settings=_settings())
        holder = GatewayConfigHolder(first)
        seen = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                config = holder.current
                seen.append((config.source, len(config.rules)))

        thread = threading.Thread(target=reader)
        thread.start()
        for _ in range(50):
            holder.swap(second)
            holder.swap(first)
        stop.set()
        thread.join()

        assert set(seen) <= {(first.source, 4), (second.source, 3)}


class TestSettings:
    """Tests for environment-driven settings."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("GOVGATE_AUDIT_BACKEND", "sql")
        monkeypatch.setenv("GOVGATE_BUDGET_ALERT_THRESHOLD", "0.9")

        settings = _settings()

        assert settings.audit_backend == "sql"
        assert settings.budget_alert_threshold == 0.9

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
