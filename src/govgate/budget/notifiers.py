"""
Notification handlers for budget alerts.

Sends the external signal raised when a cap starts alerting or shuts down.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from govgate.budget.models import BudgetAlert, CapState

logger = structlog.get_logger()


class NotificationError(Exception):
    """Raised when notification fails."""


class BudgetAlertNotifier(Protocol):
    def notify(self, alert: BudgetAlert) -> None: ...


class LogNotifier:
    """Emit budget alerts as structured log events."""

    def notify(self, alert: BudgetAlert) -> None:
        logger.warning(
            "budget_alert",
            category=alert.category,
            tier=alert.tier,
            bucket=alert.bucket,
            state=alert.state.value,
            spend=alert.spend,
            limit=alert.limit,
        )


class SlackBudgetNotifier:
    """Send budget alerts to Slack via webhook."""

    def __init__(self, webhook_url: str, timeout: float = 10.0) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    def notify(self, alert: BudgetAlert) -> None:
        """
        Post an alert to Slack.

        Raises:
            NotificationError: If sending fails
        """
        payload = self._format_slack_message(alert)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(
                "slack_budget_alert_failed",
                category=alert.category,
                tier=alert.tier,
                error=str(exc),
            )
            raise NotificationError(f"Failed to send Slack alert: {exc}") from exc

        logger.info("slack_budget_alert_sent", category=alert.category, tier=alert.tier)

    def _format_slack_message(self, alert: BudgetAlert) -> dict[str, Any]:
        if alert.state == CapState.SHUTDOWN:
            title = f"Budget SHUTDOWN: {alert.category} (tier {alert.tier})"
            color = "#ff0000"
        else:
            title = f"Budget alert: {alert.category} (tier {alert.tier})"
            color = "#ff9900"

        text = (
            f"Spend {alert.spend:.2f} of {alert.limit:.2f} "
            f"({alert.utilization_pct:.1f}%) in bucket `{alert.bucket}`"
        )
        return {
            "attachments": [
                {
                    "color": color,
                    "blocks": [
                        {"type": "header", "text": {"type": "plain_text", "text": title}},
                        {"type": "section", "text": {"type": "mrkdwn", "text": text}},
                    ],
                }
            ]
        }
