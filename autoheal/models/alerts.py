"""Alert data structures emitted to notification channels."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import uuid4

from autoheal.models.incidents import IncidentCategory, Severity


class AlertKind(StrEnum):
    """What lifecycle moment produced the alert."""

    DETECTED = "detected"
    ESCALATED = "escalated"


@dataclass(frozen=True)
class IncidentAlert:
    """Low-detail notification emitted on detection and escalation."""

    kind: AlertKind
    incident_id: str
    severity: Severity
    category: IncidentCategory
    resource_kind: str
    resource_name: str
    namespace: str
    summary: str
    created_at: datetime
    alert_id: str = field(default_factory=lambda: str(uuid4()))
