"""Risk-tier policy evaluation."""

from govgate.policies.engine import PolicyEngine
from govgate.policies.models import ActionDescriptor, Decision

__all__ = ["ActionDescriptor", "Decision", "PolicyEngine"]
