"""Incident repository.

Submodules:
    incident_store -- lock-guarded incident map enforcing the lifecycle state machine.
"""

from autoheal.store.incident_store import ALLOWED_TRANSITIONS, IncidentStore, can_transition

__all__ = ["ALLOWED_TRANSITIONS", "IncidentStore", "can_transition"]
