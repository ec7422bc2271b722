"""
Policy and budget configuration loading.

Both files are YAML (JSON is accepted as a YAML subset). Loading is
fail-fast: any malformed entry raises ConfigurationError and nothing is
returned, so a gateway never runs with a partially loaded rule set.

Policy file::

    tiers:
      - tier: 1
        enabled: true
        required_approvals: 1
        allowed_scopes: [docs]
        approver_roles: [AI Engineering Steward]
        approval_ttl_seconds: 3600      # optional
        veto_roles: [Security Council]  # optional
    denylist: [write_infra]             # optional
    capabilities: {generate_pr: 1}      # optional
    approvers:                          # optional
      alice: [AI Engineering Steward]

Budget file::

    alert_threshold: 0.8                # optional
    budgets:
      docs:
        1: {limit: 100, window: task}
        2: {limit: 500, window: rolling-window, window_seconds: 3600}
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import structlog
import yaml

from govgate.config.models import BudgetCapConfig, BudgetWindow, GatewayConfig, PolicyRule
from govgate.config.settings import Settings, get_settings
from govgate.core.errors import ConfigurationError
from govgate.core.tiers import TIER_DEFAULTS, is_valid_tier

logger = structlog.get_logger()

_RULE_KEYS = frozenset(
    {
        "tier",
        "enabled",
        "required_approvals",
        "allowed_scopes",
        "approver_roles",
        "approval_ttl_seconds",
        "veto_roles",
    }
)
_POLICY_KEYS = frozenset({"tiers", "denylist", "capabilities", "approvers"})
_BUDGET_KEYS = frozenset({"alert_threshold", "budgets"})
_CAP_KEYS = frozenset({"limit", "window", "window_seconds"})


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML/JSON mapping from disk."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError("Configuration file not found", {"path": str(config_path)})
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            "Configuration file is not valid YAML", {"path": str(config_path), "error": str(e)}
        ) from e
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping", {"path": str(config_path)})
    return data


def _string_set(value: Any, where: str) -> frozenset[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ConfigurationError(f"{where} must be a list of non-empty strings")
    return frozenset(value)


def _check_keys(data: dict[str, Any], allowed: frozenset[str], where: str) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown keys in {where}: {', '.join(sorted(map(str, unknown)))}")


def _positive_number(value: Any, where: str, allow_zero: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{where} must be a number")
    if not math.isfinite(value):
        raise ConfigurationError(f"{where} must be finite")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigurationError(f"{where} must be {'>= 0' if allow_zero else '> 0'}")
    return float(value)


def _parse_tier(value: Any, where: str) -> int:
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if not is_valid_tier(value):
        raise ConfigurationError(f"{where}: unknown tier {value!r} (valid tiers: 0-3)")
    return value


def parse_rule(data: Any) -> PolicyRule:
    """Parse and validate one tier rule."""
    if not isinstance(data, dict):
        raise ConfigurationError("Tier rule must be a mapping")
    _check_keys(data, _RULE_KEYS, "tier rule")
    if "tier" not in data:
        raise ConfigurationError("Tier rule is missing 'tier'")
    tier = _parse_tier(data["tier"], "tier rule")
    where = f"tier {tier}"

    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigurationError(f"{where}: 'enabled' must be a boolean")

    required = data.get("required_approvals", 0)
    if isinstance(required, bool) or not isinstance(required, int) or required < 0:
        raise ConfigurationError(f"{where}: 'required_approvals' must be a non-negative integer")

    if "allowed_scopes" not in data:
        raise ConfigurationError(f"{where}: 'allowed_scopes' is required")
    allowed_scopes = _string_set(data["allowed_scopes"], f"{where}: 'allowed_scopes'")
    approver_roles = _string_set(data.get("approver_roles", []), f"{where}: 'approver_roles'")
    if required > 0 and not approver_roles:
        raise ConfigurationError(f"{where}: approvals are required but no approver_roles given")

    ttl = data.get("approval_ttl_seconds")
    if ttl is not None:
        ttl = _positive_number(ttl, f"{where}: 'approval_ttl_seconds'")

    veto_roles = None
    if data.get("veto_roles") is not None:
        veto_roles = _string_set(data["veto_roles"], f"{where}: 'veto_roles'")
        if not veto_roles <= approver_roles:
            raise ConfigurationError(f"{where}: 'veto_roles' must be a subset of approver_roles")

    return PolicyRule(
        tier=tier,
        enabled=enabled,
        required_approvals=required,
        allowed_scopes=allowed_scopes,
        approver_roles=approver_roles,
        approval_ttl_seconds=ttl,
        veto_roles=veto_roles,
    )


def parse_policy(data: dict[str, Any]) -> dict[str, Any]:
    """Validate a policy document and return GatewayConfig keyword arguments."""
    _check_keys(data, _POLICY_KEYS, "policy configuration")
    tiers = data.get("tiers")
    if not isinstance(tiers, list) or not tiers:
        raise ConfigurationError("Policy configuration needs a non-empty 'tiers' list")

    rules: dict[int, PolicyRule] = {}
    for entry in tiers:
        rule = parse_rule(entry)
        if rule.tier in rules:
            raise ConfigurationError(f"Duplicate rule for tier {rule.tier}")
        rules[rule.tier] = rule

    denylist = _string_set(data.get("denylist", []), "'denylist'")

    capabilities: dict[str, int] = {}
    raw_caps = data.get("capabilities", {}) or {}
    if not isinstance(raw_caps, dict):
        raise ConfigurationError("'capabilities' must map capability names to tiers")
    for name, tier_value in raw_caps.items():
        tier = _parse_tier(tier_value, f"capability {name!r}")
        if tier not in rules:
            raise ConfigurationError(f"capability {name!r} references tier {tier} with no rule")
        capabilities[str(name)] = tier

    approvers: dict[str, frozenset[str]] = {}
    raw_approvers = data.get("approvers", {}) or {}
    if not isinstance(raw_approvers, dict):
        raise ConfigurationError("'approvers' must map identities to role lists")
    for identity, roles in raw_approvers.items():
        approvers[str(identity)] = _string_set(roles, f"approver {identity!r}")

    return {
        "rules": rules,
        "denylist": denylist,
        "capabilities": capabilities,
        "approvers": approvers,
    }


def parse_cap(category: str, tier: int, data: Any) -> BudgetCapConfig:
    """Parse and validate one budget cap."""
    where = f"budget {category}/{tier}"
    if not isinstance(data, dict):
        raise ConfigurationError(f"{where} must be a mapping")
    _check_keys(data, _CAP_KEYS, where)
    if "limit" not in data or "window" not in data:
        raise ConfigurationError(f"{where}: 'limit' and 'window' are required")

    limit = _positive_number(data["limit"], f"{where}: 'limit'", allow_zero=True)
    try:
        window = BudgetWindow(data["window"])
    except ValueError as e:
        raise ConfigurationError(
            f"{where}: unknown window {data['window']!r}",
            {"valid": [w.value for w in BudgetWindow]},
        ) from e

    if window == BudgetWindow.EXPLICIT_ONLY and limit != 0:
        raise ConfigurationError(f"{where}: explicit-only caps must have limit 0")

    window_seconds = data.get("window_seconds")
    if window == BudgetWindow.ROLLING_WINDOW:
        if window_seconds is None:
            raise ConfigurationError(f"{where}: rolling-window caps need 'window_seconds'")
        window_seconds = _positive_number(window_seconds, f"{where}: 'window_seconds'")
    elif window_seconds is not None:
        raise ConfigurationError(f"{where}: 'window_seconds' only applies to rolling-window caps")

    return BudgetCapConfig(
        category=category,
        tier=tier,
        limit=limit,
        window=window,
        window_seconds=window_seconds,
    )


def parse_budgets(data: dict[str, Any], default_alert_threshold: float = 0.8) -> dict[str, Any]:
    """Validate a budget document and return GatewayConfig keyword arguments."""
    _check_keys(data, _BUDGET_KEYS, "budget configuration")

    threshold = data.get("alert_threshold", default_alert_threshold)
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ConfigurationError("'alert_threshold' must be a number")
    if not 0 < threshold <= 1:
        raise ConfigurationError("'alert_threshold' must be in (0, 1]")

    budgets = data.get("budgets")
    if not isinstance(budgets, dict) or not budgets:
        raise ConfigurationError("Budget configuration needs a non-empty 'budgets' mapping")

    caps: dict[tuple[str, int], BudgetCapConfig] = {}
    for category, tiers in budgets.items():
        if not isinstance(category, str) or not category:
            raise ConfigurationError(f"Budget category must be a non-empty string: {category!r}")
        if not isinstance(tiers, dict) or not tiers:
            raise ConfigurationError(f"budget {category}: expected a tier -> cap mapping")
        for tier_value, cap_data in tiers.items():
            tier = _parse_tier(tier_value, f"budget {category}")
            caps[(category, tier)] = parse_cap(category, tier, cap_data)

    return {"caps": caps, "alert_threshold": float(threshold)}


def default_policy(settings: Settings) -> dict[str, Any]:
    """Built-in policy derived from the tier defaults."""
    rules = {
        tier: PolicyRule(
            tier=tier,
            enabled=defaults.enabled,
            required_approvals=defaults.required_approvals,
            allowed_scopes=frozenset({"*"}),
            approver_roles=frozenset(defaults.approver_roles),
            approval_ttl_seconds=settings.approval_default_ttl_seconds,
        )
        for tier, defaults in TIER_DEFAULTS.items()
    }
    return {"rules": rules, "denylist": frozenset(), "capabilities": {}, "approvers": {}}


def default_budgets(settings: Settings) -> dict[str, Any]:
    """Built-in caps, one category per tier."""
    limits = {
        0: settings.budget_tier0_session,
        1: settings.budget_tier1_task,
        2: settings.budget_tier2_window,
        3: settings.budget_tier3_explicit,
    }
    caps = {}
    for tier, defaults in TIER_DEFAULTS.items():
        cap = parse_cap(
            defaults.budget_category,
            tier,
            {
                "limit": 0 if defaults.budget_window == "explicit-only" else limits[tier],
                "window": defaults.budget_window,
                **(
                    {"window_seconds": settings.budget_rolling_window_seconds}
                    if defaults.budget_window == "rolling-window"
                    else {}
                ),
            },
        )
        caps[cap.key] = cap
    return {"caps": caps, "alert_threshold": settings.budget_alert_threshold}


def load_gateway_config(
    policy_path: str | Path | None = None,
    budget_path: str | Path | None = None,
    settings: Settings | None = None,
) -> GatewayConfig:
    """
    Load and validate the full gateway configuration.

    Args:
        policy_path: Policy file, or None for built-in tier defaults
        budget_path: Budget file, or None for built-in budget defaults
        settings: Settings for defaults (cached settings if omitted)

    Raises:
        ConfigurationError: If either file is missing or malformed
    """
    cfg = settings or get_settings()
    sources = []

    if policy_path is not None:
        policy = parse_policy(read_config_file(policy_path))
        sources.append(str(policy_path))
    else:
        logger.warning("using_default_policy")
        policy = default_policy(cfg)
        sources.append("default-policy")

    if budget_path is not None:
        budgets = parse_budgets(read_config_file(budget_path), cfg.budget_alert_threshold)
        sources.append(str(budget_path))
    else:
        logger.warning("using_default_budgets")
        budgets = default_budgets(cfg)
        sources.append("default-budgets")

    config = GatewayConfig(**policy, **budgets, source=",".join(sources))
    logger.info(
        "gateway_config_loaded",
        source=config.source,
        tiers=sorted(config.rules),
        caps=len(config.caps),
    )
    return config
