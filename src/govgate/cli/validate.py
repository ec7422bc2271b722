"""
CLI command for validating policy and budget configuration.

Loads both files exactly as the gateway would at startup, so a file that
passes here will never be partially loaded in production.
"""

from __future__ import annotations

from govgate.cli.ux import console, error, header, print_table, success
from govgate.config import Settings, load_gateway_config
from govgate.core.errors import ConfigurationError, ExitCode, format_error_message


def validate_config_command(
    policy_path: str | None,
    budget_path: str | None,
    settings: Settings,
) -> int:
    """
    Validate configuration files.

    Returns:
        Exit code (0 valid, 10 configuration error)
    """
    header("Validate Gateway Configuration")

    try:
        config = load_gateway_config(
            policy_path or settings.policy_config_path,
            budget_path or settings.budget_config_path,
            settings,
        )
    except ConfigurationError as e:
        error(format_error_message(e))
        return ExitCode.CONFIG_ERROR

    console.print(f"[muted]Source:[/muted] {config.source}")
    print_table(
        "Tiers",
        ["Tier", "Enabled", "Approvals", "Scopes", "Approver roles"],
        [
            [
                str(rule.tier),
                "yes" if rule.enabled else "no",
                str(rule.required_approvals),
                ", ".join(sorted(rule.allowed_scopes)),
                ", ".join(sorted(rule.approver_roles)) or "-",
            ]
            for _, rule in sorted(config.rules.items())
        ],
    )
    print_table(
        "Budget caps",
        ["Category", "Tier", "Limit", "Window"],
        [
            [cap.category, str(cap.tier), f"{cap.limit:.2f}", cap.window.value]
            for _, cap in sorted(config.caps.items())
        ],
    )
    if config.denylist:
        console.print(f"[muted]Denylist:[/muted] {', '.join(sorted(config.denylist))}")

    success("Configuration is valid")
    return ExitCode.SUCCESS
