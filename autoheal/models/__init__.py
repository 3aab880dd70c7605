"""Core data structures for autoheal."""

from autoheal.models.alerts import AlertKind, IncidentAlert
from autoheal.models.config import AutohealConfig
from autoheal.models.healing import (
    ActionType,
    EscalationReason,
    EscalationRecord,
    HealingEvent,
    HealingEventStatus,
    HealingRule,
)
from autoheal.models.incidents import (
    BurnDriver,
    DriverClassification,
    HealingOutcome,
    Incident,
    IncidentCategory,
    IncidentStatus,
    ResourceKind,
    ResourceRef,
    Severity,
    SignalScores,
    cooldown_key,
)
from autoheal.models.snapshots import ClusterSnapshot, NodeSample, PodSample

__all__ = [
    "ActionType",
    "AlertKind",
    "AutohealConfig",
    "BurnDriver",
    "ClusterSnapshot",
    "DriverClassification",
    "EscalationReason",
    "EscalationRecord",
    "HealingEvent",
    "HealingEventStatus",
    "HealingOutcome",
    "HealingRule",
    "Incident",
    "IncidentAlert",
    "IncidentCategory",
    "IncidentStatus",
    "NodeSample",
    "PodSample",
    "ResourceKind",
    "ResourceRef",
    "Severity",
    "SignalScores",
    "cooldown_key",
]
