"""Healing rule, healing event and escalation record data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from autoheal.models.incidents import IncidentCategory, Severity


class ActionType(StrEnum):
    """Closed set of remediation actions the engine may dispatch."""

    RESTART_POD = "restart-pod"
    SCALE_DEPLOYMENT = "scale-deployment"
    PATCH_MEMORY = "patch-memory"
    PATCH_CPU = "patch-cpu"
    RETRY_IMAGE_PULL = "retry-image-pull"
    NO_ACTION = "no-action"


class HealingEventStatus(StrEnum):
    """Status of one recorded action attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    IN_PROGRESS = "in-progress"


class EscalationReason(StrEnum):
    """Why an incident was handed to a human operator."""

    NO_RULE = "no-rule"
    MANUAL_APPROVAL_REQUIRED = "manual-approval-required"
    AUTOMATION_FROZEN = "automation-frozen"
    ACTION_FAILED = "action-failed"
    FREEZE_CATEGORY = "freeze-category"
    OPERATOR = "operator"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class HealingRule:
    """Configured mapping from an incident category to a remediation action.

    ``trigger_count`` and ``last_triggered`` are bumped by the registry each
    time the rule dispatches an action; everything else changes only through
    explicit CRUD calls.
    """

    name: str
    target_category: IncidentCategory
    action_type: ActionType
    description: str = ""
    enabled: bool = True
    parameters: dict[str, Any] = field(default_factory=dict)
    cooldown_seconds: int = 300
    max_retries: int = 3
    trigger_count: int = 0
    last_triggered: datetime | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class HealingEvent:
    """Append-only record of one action attempt. Immutable once written."""

    rule_id: str
    rule_name: str
    incident_id: str
    status: HealingEventStatus
    target_resource: str
    target_namespace: str
    action: ActionType
    details: str
    duration_ms: int = 0
    manual: bool = False
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class EscalationRecord:
    """One escalation of one incident to a human operator.

    Created exactly once per incident; only the acknowledgment fields are
    mutated afterwards.
    """

    incident_id: str
    reason: EscalationReason
    severity: Severity
    category: IncidentCategory
    policy: str = "default"
    detail: str = ""
    froze_automation: bool = False
    escalated_at: datetime = field(default_factory=_utcnow)
    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
