"""CLI command for showing budget caps."""

from __future__ import annotations

import json

from govgate.budget.models import CapState
from govgate.cli.ux import STATE_STYLES, header, info, print_table, styled, warning
from govgate.config import Settings
from govgate.core.errors import ExitCode
from govgate.gateway import build_gateway


def budget_status_command(
    settings: Settings,
    category: str | None = None,
    tier: int | None = None,
    output_format: str = "text",
) -> int:
    """
    Show each configured cap with its limit, spend and state.

    Returns:
        Exit code (0 all open, 1 when any cap is alerting or shut down)
    """
    gateway = build_gateway(settings, start_sweeper=False)
    try:
        statuses = gateway.budget.status(category, tier)
    finally:
        gateway.close()

    if output_format == "json":
        print(json.dumps([s.to_dict() for s in statuses], indent=2))
    else:
        header("Budget Status")
        if not statuses:
            info("No budget caps match")
            return ExitCode.SUCCESS
        print_table(
            "Caps",
            ["Category", "Tier", "Bucket", "Window", "Spend", "Limit", "Used", "State"],
            [
                [
                    s.category,
                    str(s.tier),
                    s.bucket,
                    s.window.value,
                    f"{s.spend:.2f}",
                    f"{s.limit:.2f}",
                    f"{s.utilization_pct:.1f}%",
                    styled(s.state.value, STATE_STYLES),
                ]
                for s in statuses
            ],
        )

    flagged = [s for s in statuses if s.state != CapState.OPEN]
    if flagged:
        if output_format != "json":
            warning(f"{len(flagged)} cap bucket(s) alerting or shut down")
        return ExitCode.WARNING
    return ExitCode.SUCCESS
