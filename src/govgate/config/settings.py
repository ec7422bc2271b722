"""
Application settings using Pydantic.

Provides environment-based configuration loading with GOVGATE_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GOVGATE_",
    )

    # Policy and budget configuration files (None = built-in defaults)
    policy_config_path: str | None = None
    budget_config_path: str | None = None

    # Audit log
    audit_backend: str = "jsonl"  # memory, jsonl, sql
    audit_log_path: str = "./audit-log/audit.jsonl"

    # Database (sql audit backend)
    database_url: str = "sqlite:///govgate.db"

    # Debug
    debug: bool = False
    log_level: str = "INFO"

    # Approvals
    approval_default_ttl_seconds: float = 86400.0
    approval_sweep_interval_seconds: float = 60.0
    approval_secret: str | None = None

    # Budgets
    budget_alert_threshold: float = 0.8
    budget_rolling_window_seconds: float = 86400.0
    budget_tier0_session: float = 10.0
    budget_tier1_task: float = 100.0
    budget_tier2_window: float = 1000.0
    budget_tier3_explicit: float = 0.0

    # Slack (budget alerts)
    slack_webhook_url: str | None = None

    # API
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = []


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
