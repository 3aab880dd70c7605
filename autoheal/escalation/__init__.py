"""Escalation to human operators and the automation freeze.

Submodules:
    manager -- EscalationManager, severity-keyed escalation policies.
"""

from autoheal.escalation.manager import ESCALATION_POLICIES, EscalationManager, EscalationPolicy

__all__ = ["ESCALATION_POLICIES", "EscalationManager", "EscalationPolicy"]
