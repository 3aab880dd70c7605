"""Incident data structures and lifecycle enumerations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4


class IncidentCategory(StrEnum):
    """Closed set of conditions the detector can raise."""

    POD_CRASH = "pod-crash"
    HIGH_CPU = "high-cpu"
    HIGH_MEMORY = "high-memory"
    OOM_KILLED = "oom-killed"
    NODE_PRESSURE = "node-pressure"
    NODE_NOT_READY = "node-not-ready"
    PERSISTENT_RESTARTS = "persistent-restarts"
    CRASH_LOOP = "crash-loop"
    POD_THROTTLING = "pod-throttling"
    UNDERUTILIZATION = "underutilization"
    NODE_EVICTION = "node-eviction"
    IMAGE_PULL_DELAY = "image-pull-delay"
    BUGGY_DEPLOYMENT = "buggy-deployment"
    CONFIGMAP_ERROR = "configmap-error"
    DB_FAILURE = "db-failure"
    UNKNOWN_CRASH = "unknown-crash"
    MULTI_SERVICE_FAILURE = "multi-service-failure"


class Severity(StrEnum):
    """Incident severity level."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class IncidentStatus(StrEnum):
    """Lifecycle state of an incident."""

    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    HEALING = "healing"
    RESOLVED = "resolved"
    ESCALATED = "escalated"

    @property
    def is_terminal(self) -> bool:
        return self in (IncidentStatus.RESOLVED, IncidentStatus.ESCALATED)


class HealingOutcome(StrEnum):
    """Result of the automated healing attempt recorded on an incident."""

    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class ResourceKind(StrEnum):
    """Kind of resource an incident is tied to."""

    POD = "pod"
    NODE = "node"
    DEPLOYMENT = "deployment"
    SERVICE = "service"
    CONFIGMAP = "configmap"


class BurnDriver(StrEnum):
    """Root-cause axis inferred by the driver classifier."""

    TRAFFIC_SURGE = "traffic-surge"
    DEGRADATION = "degradation"
    MIXED = "mixed"


@dataclass(frozen=True)
class ResourceRef:
    """Identity of the resource an incident concerns."""

    kind: ResourceKind
    name: str
    namespace: str = "cluster"

    @property
    def key(self) -> str:
        """Stable identity used for cooldown keys."""
        return f"{self.kind}:{self.namespace}/{self.name}"


@dataclass(frozen=True)
class SignalScores:
    """Per-axis contributions computed by the classifier (each in [0, 1])."""

    traffic: float = 0.0
    quality: float = 0.0
    resource: float = 0.0
    capacity: float = 0.0
    change: float = 0.0


@dataclass(frozen=True)
class DriverClassification:
    """Classifier output attached to an incident."""

    driver: BurnDriver
    confidence: float
    evidence: str
    scores: SignalScores = field(default_factory=SignalScores)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class Incident:
    """A detected abnormal condition tied to one resource and one category.

    Created by the detector; afterwards mutated only through the
    IncidentStore on behalf of the healing engine and escalation manager.
    """

    category: IncidentCategory
    severity: Severity
    resource: ResourceRef
    title: str = ""
    description: str = ""
    suggested_action: str = ""
    status: IncidentStatus = IncidentStatus.OPEN
    metrics: dict[str, float | int | str | bool] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    detected_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    healing_attempted: bool = False
    healing_result: HealingOutcome | None = None
    escalated: bool = False
    escalated_at: datetime | None = None
    classification: DriverClassification | None = None
    related_alerts: list[str] = field(default_factory=list)
    status_history: list[IncidentStatus] = field(default_factory=lambda: [IncidentStatus.OPEN])
    simulated: bool = False

    @property
    def cooldown_key(self) -> str:
        return cooldown_key(self.resource, self.category)


def cooldown_key(resource: ResourceRef, category: IncidentCategory) -> str:
    """Deduplication key for a (resource, category) pair."""
    return f"{resource.key}:{category}"
