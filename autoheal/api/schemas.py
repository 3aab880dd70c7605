"""Pydantic request/response models for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from autoheal.healing.actions import ActionResult
from autoheal.models.healing import EscalationRecord, HealingEvent, HealingRule
from autoheal.models.incidents import Incident, IncidentCategory, ResourceKind, Severity


class ErrorResponse(BaseModel):
    """Error envelope returned for every non-2xx response."""

    error: str = Field(..., description="Machine-readable error code")
    detail: str = Field(..., description="Human-readable explanation")


# ---------------------------------------------------------------------------
# Incidents
# ---------------------------------------------------------------------------


class ResourceModel(BaseModel):
    kind: ResourceKind
    name: str
    namespace: str


class ClassificationModel(BaseModel):
    driver: str
    confidence: float
    evidence: str
    scores: dict[str, float]


class IncidentResponse(BaseModel):
    id: str
    category: IncidentCategory
    severity: Severity
    status: str
    title: str
    description: str
    suggested_action: str
    resource: ResourceModel
    metrics: dict[str, Any]
    detected_at: datetime
    updated_at: datetime
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    healing_attempted: bool
    healing_result: str | None = None
    escalated: bool
    escalated_at: datetime | None = None
    classification: ClassificationModel | None = None
    related_alerts: list[str]
    status_history: list[str]
    simulated: bool

    @classmethod
    def from_incident(cls, incident: Incident) -> IncidentResponse:
        classification = None
        if incident.classification is not None:
            c = incident.classification
            classification = ClassificationModel(
                driver=c.driver.value,
                confidence=c.confidence,
                evidence=c.evidence,
                scores={
                    "traffic": c.scores.traffic,
                    "quality": c.scores.quality,
                    "resource": c.scores.resource,
                    "capacity": c.scores.capacity,
                    "change": c.scores.change,
                },
            )
        return cls(
            id=incident.id,
            category=incident.category,
            severity=incident.severity,
            status=incident.status.value,
            title=incident.title,
            description=incident.description,
            suggested_action=incident.suggested_action,
            resource=ResourceModel(
                kind=incident.resource.kind,
                name=incident.resource.name,
                namespace=incident.resource.namespace,
            ),
            metrics=dict(incident.metrics),
            detected_at=incident.detected_at,
            updated_at=incident.updated_at,
            acknowledged_at=incident.acknowledged_at,
            resolved_at=incident.resolved_at,
            healing_attempted=incident.healing_attempted,
            healing_result=incident.healing_result.value if incident.healing_result else None,
            escalated=incident.escalated,
            escalated_at=incident.escalated_at,
            classification=classification,
            related_alerts=list(incident.related_alerts),
            status_history=[s.value for s in incident.status_history],
            simulated=incident.simulated,
        )


class InjectIncidentRequest(BaseModel):
    """Synthetic incident submitted by the simulation harness."""

    category: IncidentCategory
    severity: Severity | None = Field(default=None, description="Defaults to the category's severity")
    resource_name: str | None = Field(default=None, max_length=253)
    namespace: str = Field(default="default", min_length=1, max_length=63)
    resource_kind: ResourceKind = ResourceKind.POD
    description: str | None = None
    metrics: dict[str, float | int | str | bool] = Field(default_factory=dict)
    signals: dict[str, float | int | bool] = Field(
        default_factory=dict,
        description="Extra classifier signals, keyed by DriverSignals field name",
    )


class InjectIncidentResponse(BaseModel):
    created: bool
    incident: IncidentResponse | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Healing
# ---------------------------------------------------------------------------


class RuleResponse(BaseModel):
    id: str
    name: str
    description: str
    enabled: bool
    target_category: IncidentCategory
    action_type: str
    parameters: dict[str, Any]
    cooldown_seconds: int
    max_retries: int
    trigger_count: int
    last_triggered: datetime | None = None
    created_at: datetime

    @classmethod
    def from_rule(cls, rule: HealingRule) -> RuleResponse:
        return cls(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            enabled=rule.enabled,
            target_category=rule.target_category,
            action_type=rule.action_type.value,
            parameters=dict(rule.parameters),
            cooldown_seconds=rule.cooldown_seconds,
            max_retries=rule.max_retries,
            trigger_count=rule.trigger_count,
            last_triggered=rule.last_triggered,
            created_at=rule.created_at,
        )


class RuleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    target_category: IncidentCategory
    action_type: str = Field(..., description="One of the supported action types")
    description: str = ""
    enabled: bool = True
    parameters: dict[str, Any] = Field(default_factory=dict)
    cooldown_seconds: int = Field(default=300, ge=0)
    max_retries: int = Field(default=3, ge=0)


class RuleUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    target_category: IncidentCategory | None = None
    action_type: str | None = None
    description: str | None = None
    enabled: bool | None = None
    parameters: dict[str, Any] | None = None
    cooldown_seconds: int | None = Field(default=None, ge=0)
    max_retries: int | None = Field(default=None, ge=0)


class HealingEventResponse(BaseModel):
    id: str
    rule_id: str
    rule_name: str
    incident_id: str
    status: str
    target_resource: str
    target_namespace: str
    action: str
    details: str
    duration_ms: int
    manual: bool
    timestamp: datetime

    @classmethod
    def from_event(cls, event: HealingEvent) -> HealingEventResponse:
        return cls(
            id=event.id,
            rule_id=event.rule_id,
            rule_name=event.rule_name,
            incident_id=event.incident_id,
            status=event.status.value,
            target_resource=event.target_resource,
            target_namespace=event.target_namespace,
            action=event.action.value,
            details=event.details,
            duration_ms=event.duration_ms,
            manual=event.manual,
            timestamp=event.timestamp,
        )


class ActionResultResponse(BaseModel):
    success: bool
    message: str
    details: dict[str, Any]
    duration_ms: int

    @classmethod
    def from_result(cls, result: ActionResult) -> ActionResultResponse:
        return cls(
            success=result.success,
            message=result.message,
            details=dict(result.details),
            duration_ms=result.duration_ms,
        )


class HealingToggleRequest(BaseModel):
    enabled: bool


# ---------------------------------------------------------------------------
# Escalation
# ---------------------------------------------------------------------------


class EscalationResponse(BaseModel):
    incident_id: str
    reason: str
    severity: Severity
    category: IncidentCategory
    policy: str
    detail: str
    froze_automation: bool
    escalated_at: datetime
    acknowledged: bool
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None

    @classmethod
    def from_record(cls, record: EscalationRecord) -> EscalationResponse:
        return cls(
            incident_id=record.incident_id,
            reason=record.reason.value,
            severity=record.severity,
            category=record.category,
            policy=record.policy,
            detail=record.detail,
            froze_automation=record.froze_automation,
            escalated_at=record.escalated_at,
            acknowledged=record.acknowledged,
            acknowledged_by=record.acknowledged_by,
            acknowledged_at=record.acknowledged_at,
        )


class OperatorRequest(BaseModel):
    """Identifies the operator performing an acknowledgment or unfreeze."""

    by: str = Field(..., min_length=1, max_length=200)


class AutomationStatusResponse(BaseModel):
    frozen: bool
    reason: str | None = None
    frozen_at: datetime | None = None
    frozen_by_incident: str | None = None
    last_unfrozen_by: str | None = None
    last_unfrozen_at: datetime | None = None


class UnfreezeResponse(BaseModel):
    unfrozen: bool
    status: AutomationStatusResponse


class HealthResponse(BaseModel):
    status: str
    version: str
    cluster_id: str
    detection_loop_running: bool
    healing_loop_running: bool
    automation_frozen: bool
