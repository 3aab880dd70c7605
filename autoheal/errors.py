"""Domain exceptions raised by the orchestrator components."""

from __future__ import annotations


class AutohealError(Exception):
    """Base class for every error raised by autoheal components."""


class IncidentNotFoundError(AutohealError):
    """Raised when an incident id is not present in the store."""

    def __init__(self, incident_id: str) -> None:
        super().__init__(f"Incident '{incident_id}' not found")
        self.incident_id = incident_id


class RuleNotFoundError(AutohealError):
    """Raised when a healing rule id is not present in the registry."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Healing rule '{rule_id}' not found")
        self.rule_id = rule_id


class InvalidTransitionError(AutohealError):
    """Raised when an incident status change violates the lifecycle."""

    def __init__(self, incident_id: str, current: str, requested: str) -> None:
        super().__init__(f"Incident '{incident_id}' cannot move from '{current}' to '{requested}'")
        self.incident_id = incident_id
        self.current = current
        self.requested = requested


class UnknownActionError(AutohealError):
    """Raised when a rule names an action type outside the closed set."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Unknown healing action type: {value!r}")
        self.value = value


class RuleValidationError(AutohealError):
    """Raised when a healing rule definition is malformed."""


class SignalSourceError(AutohealError):
    """Raised by a SignalSource when a metrics snapshot cannot be collected."""


class EscalationNotFoundError(AutohealError):
    """Raised when an incident has no escalation record."""

    def __init__(self, incident_id: str) -> None:
        super().__init__(f"No escalation recorded for incident '{incident_id}'")
        self.incident_id = incident_id
