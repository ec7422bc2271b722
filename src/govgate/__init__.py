"""GovGate: risk-tiered authorization gateway for AI-driven engineering actions."""

__version__ = "0.1.0"
