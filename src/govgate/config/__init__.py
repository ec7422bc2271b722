"""
Gateway configuration system.

Provides:
- Pydantic-based settings (environment variables, .env files)
- Immutable policy/budget configuration objects
- Fail-fast YAML loader with built-in tier defaults
- Atomic whole-object hot reload
"""

from govgate.config.holder import GatewayConfigHolder
from govgate.config.loader import (
    default_budgets,
    default_policy,
    load_gateway_config,
    parse_budgets,
    parse_policy,
    read_config_file,
)
from govgate.config.models import (
    WILDCARD_SCOPE,
    BudgetCapConfig,
    BudgetWindow,
    GatewayConfig,
    PolicyRule,
)
from govgate.config.settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Models
    "BudgetCapConfig",
    "BudgetWindow",
    "GatewayConfig",
    "PolicyRule",
    "WILDCARD_SCOPE",
    # Loader
    "default_budgets",
    "default_policy",
    "load_gateway_config",
    "parse_budgets",
    "parse_policy",
    "read_config_file",
    # Holder
    "GatewayConfigHolder",
]
