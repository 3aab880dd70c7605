"""Escalation records and the cluster-wide automation freeze.

An incident is escalated at most once. Escalating an incident whose
category is in FREEZE_CATEGORIES sets the global frozen flag; while it is
set the healing engine dispatches no automatic action. Only an explicit
operator ``unfreeze`` clears it.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from autoheal.errors import EscalationNotFoundError
from autoheal.models.alerts import AlertKind, IncidentAlert
from autoheal.models.healing import EscalationReason, EscalationRecord
from autoheal.models.incidents import IncidentStatus, Severity
from autoheal.notifications.manager import NotificationDispatcher
from autoheal.observability.metrics import automation_frozen, escalations_total
from autoheal.policy import FREEZE_CATEGORIES
from autoheal.store.incident_store import IncidentStore

_log = structlog.get_logger(component="escalation")


@dataclass(frozen=True)
class EscalationPolicy:
    """Who gets told about an escalation and how urgently."""

    name: str
    channels: tuple[str, ...]
    requires_ack: bool
    auto_escalate_minutes: int


ESCALATION_POLICIES: dict[Severity, EscalationPolicy] = {
    Severity.CRITICAL: EscalationPolicy("critical-immediate", ("pagerduty", "slack", "email"), True, 0),
    Severity.HIGH: EscalationPolicy("high-5min", ("slack", "email"), False, 5),
    Severity.MEDIUM: EscalationPolicy("medium-15min", ("slack",), False, 15),
    Severity.LOW: EscalationPolicy("default", ("slack",), False, 60),
}


@dataclass
class FreezeState:
    frozen: bool = False
    reason: str | None = None
    frozen_at: datetime | None = None
    frozen_by_incident: str | None = None
    unfrozen_by: str | None = None
    unfrozen_at: datetime | None = None


class EscalationManager:
    """Owns escalation records and the automation freeze flag."""

    def __init__(
        self,
        store: IncidentStore,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._records: dict[str, EscalationRecord] = {}
        self._freeze = FreezeState()
        self._lock = threading.RLock()
        automation_frozen.set(0)

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def escalate(
        self,
        incident_id: str,
        reason: EscalationReason,
        detail: str = "",
    ) -> EscalationRecord:
        """Hand *incident_id* to an operator, exactly once.

        A second call for the same incident returns the existing record
        without side effects.

        Raises:
            IncidentNotFoundError: unknown incident.
            InvalidTransitionError: the incident is already resolved.
        """
        with self._lock:
            existing = self._records.get(incident_id)
            if existing is not None:
                return copy.deepcopy(existing)

            incident = self._store.require(incident_id)
            if incident.status != IncidentStatus.ESCALATED:
                incident = self._store.transition(incident_id, IncidentStatus.ESCALATED)

            policy = ESCALATION_POLICIES[incident.severity]
            freezes = incident.category in FREEZE_CATEGORIES
            record = EscalationRecord(
                incident_id=incident_id,
                reason=reason,
                severity=incident.severity,
                category=incident.category,
                policy=policy.name,
                detail=detail,
                froze_automation=freezes,
            )
            self._records[incident_id] = record
            if freezes:
                self._freeze_locked(
                    f"{incident.category.value} escalated on {incident.resource.key}",
                    incident_id=incident_id,
                )
            result = copy.deepcopy(record)

        escalations_total.labels(reason=reason.value).inc()
        _log.warning(
            "incident_escalated",
            incident_id=incident_id,
            reason=reason.value,
            severity=incident.severity.value,
            category=incident.category.value,
            policy=policy.name,
            froze_automation=freezes,
        )
        if self._dispatcher is not None:
            self._dispatcher.dispatch(
                IncidentAlert(
                    kind=AlertKind.ESCALATED,
                    incident_id=incident_id,
                    severity=incident.severity,
                    category=incident.category,
                    resource_kind=incident.resource.kind.value,
                    resource_name=incident.resource.name,
                    namespace=incident.resource.namespace,
                    summary=f"Escalated ({reason.value}): {incident.title}",
                    created_at=result.escalated_at,
                )
            )
        return result

    def acknowledge(self, incident_id: str, by: str) -> EscalationRecord:
        with self._lock:
            record = self._records.get(incident_id)
            if record is None:
                raise EscalationNotFoundError(incident_id)
            if not record.acknowledged:
                record.acknowledged = True
                record.acknowledged_by = by
                record.acknowledged_at = datetime.now(tz=UTC)
                _log.info("escalation_acknowledged", incident_id=incident_id, by=by)
            return copy.deepcopy(record)

    def get(self, incident_id: str) -> EscalationRecord | None:
        with self._lock:
            record = self._records.get(incident_id)
            return copy.deepcopy(record) if record is not None else None

    def list(self) -> list[EscalationRecord]:
        """Newest first."""
        with self._lock:
            records = [copy.deepcopy(r) for r in self._records.values()]
        records.sort(key=lambda r: r.escalated_at, reverse=True)
        return records

    def stats(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or datetime.now(tz=UTC)
        cutoff = now - timedelta(hours=24)
        with self._lock:
            records = list(self._records.values())
            acknowledged = sum(1 for r in records if r.acknowledged)
            return {
                "total": len(records),
                "last_24h": sum(1 for r in records if r.escalated_at >= cutoff),
                "acknowledged": acknowledged,
                "pending": len(records) - acknowledged,
                "automation_frozen": self._freeze.frozen,
            }

    def clear(self) -> None:
        """Forget every escalation record. The freeze flag is left untouched."""
        with self._lock:
            self._records.clear()

    # ------------------------------------------------------------------
    # Automation freeze
    # ------------------------------------------------------------------

    @property
    def is_frozen(self) -> bool:
        with self._lock:
            return self._freeze.frozen

    def freeze(self, reason: str, incident_id: str | None = None) -> None:
        with self._lock:
            self._freeze_locked(reason, incident_id)

    def unfreeze(self, by: str) -> bool:
        """Clear the freeze flag; returns False if automation was not frozen."""
        with self._lock:
            if not self._freeze.frozen:
                return False
            self._freeze.frozen = False
            self._freeze.unfrozen_by = by
            self._freeze.unfrozen_at = datetime.now(tz=UTC)
            automation_frozen.set(0)
        _log.warning("automation_unfrozen", by=by)
        return True

    def automation_status(self) -> dict[str, Any]:
        with self._lock:
            state = copy.copy(self._freeze)
        return {
            "frozen": state.frozen,
            "reason": state.reason if state.frozen else None,
            "frozen_at": state.frozen_at if state.frozen else None,
            "frozen_by_incident": state.frozen_by_incident if state.frozen else None,
            "last_unfrozen_by": state.unfrozen_by,
            "last_unfrozen_at": state.unfrozen_at,
        }

    def _freeze_locked(self, reason: str, incident_id: str | None = None) -> None:
        if self._freeze.frozen:
            return
        self._freeze.frozen = True
        self._freeze.reason = reason
        self._freeze.frozen_at = datetime.now(tz=UTC)
        self._freeze.frozen_by_incident = incident_id
        automation_frozen.set(1)
        _log.critical("automation_frozen", reason=reason, incident_id=incident_id)
