"""Atomic holder for the current gateway configuration."""

from __future__ import annotations

import threading
from pathlib import Path

import structlog

from govgate.config.loader import load_gateway_config
from govgate.config.models import GatewayConfig
from govgate.config.settings import Settings

logger = structlog.get_logger()


class GatewayConfigHolder:
    """
    Holds one immutable GatewayConfig and swaps it as a whole.

    Readers call ``current`` once per operation and work on that snapshot,
    so a concurrent reload is never observed half-applied.
    """

    def __init__(self, config: GatewayConfig) -> None:
        self._config = config
        self._swap_lock = threading.Lock()
        self._generation = 1

    @property
    def current(self) -> GatewayConfig:
        return self._config

    @property
    def generation(self) -> int:
        return self._generation

    def swap(self, config: GatewayConfig) -> GatewayConfig:
        """Replace the configuration, returning the previous one."""
        with self._swap_lock:
            previous = self._config
            self._config = config
            self._generation += 1
        logger.info("gateway_config_swapped", source=config.source, generation=self._generation)
        return previous

    def reload(
        self,
        policy_path: str | Path | None,
        budget_path: str | Path | None,
        settings: Settings | None = None,
    ) -> GatewayConfig:
        """Load new files and swap them in.

        A ConfigurationError propagates and leaves the current config untouched.
        """
        config = load_gateway_config(policy_path, budget_path, settings)
        self.swap(config)
        return config
