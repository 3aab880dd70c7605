"""Thread-safe in-memory incident repository.

All reads return deep copies; callers never hold a reference into the
internal map, so the only way to change an incident is through the
methods below, each of which runs under the store lock and enforces the
lifecycle state machine:

    open         -> acknowledged | healing | resolved | escalated
    acknowledged -> healing | resolved | escalated
    healing      -> resolved | escalated
    resolved, escalated: terminal
"""

from __future__ import annotations

import copy
import threading
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from autoheal.errors import IncidentNotFoundError, InvalidTransitionError
from autoheal.models.incidents import (
    DriverClassification,
    HealingOutcome,
    Incident,
    IncidentCategory,
    IncidentStatus,
    ResourceRef,
    Severity,
)
from autoheal.observability.metrics import open_incidents

_log = structlog.get_logger(component="store.incidents")

ALLOWED_TRANSITIONS: dict[IncidentStatus, frozenset[IncidentStatus]] = {
    IncidentStatus.OPEN: frozenset(
        {
            IncidentStatus.ACKNOWLEDGED,
            IncidentStatus.HEALING,
            IncidentStatus.RESOLVED,
            IncidentStatus.ESCALATED,
        }
    ),
    IncidentStatus.ACKNOWLEDGED: frozenset(
        {IncidentStatus.HEALING, IncidentStatus.RESOLVED, IncidentStatus.ESCALATED}
    ),
    IncidentStatus.HEALING: frozenset({IncidentStatus.RESOLVED, IncidentStatus.ESCALATED}),
    IncidentStatus.RESOLVED: frozenset(),
    IncidentStatus.ESCALATED: frozenset(),
}

_HEALABLE_FROM = frozenset({IncidentStatus.OPEN, IncidentStatus.ACKNOWLEDGED})


def can_transition(current: IncidentStatus, requested: IncidentStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


class IncidentStore:
    """Repository owning every Incident for the process lifetime."""

    def __init__(self) -> None:
        self._incidents: dict[str, Incident] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, incident_id: str) -> Incident | None:
        with self._lock:
            incident = self._incidents.get(incident_id)
            return copy.deepcopy(incident) if incident is not None else None

    def require(self, incident_id: str) -> Incident:
        incident = self.get(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        return incident

    def list(self, status: IncidentStatus | None = None) -> list[Incident]:
        """Return incidents newest first, optionally filtered by *status*."""
        with self._lock:
            incidents = [
                copy.deepcopy(i) for i in self._incidents.values() if status is None or i.status == status
            ]
        incidents.sort(key=lambda i: i.detected_at, reverse=True)
        return incidents

    def list_open_oldest_first(self) -> list[Incident]:
        incidents = self.list(IncidentStatus.OPEN)
        incidents.reverse()
        return incidents

    def find_active(self, resource: ResourceRef, category: IncidentCategory) -> Incident | None:
        """Return the non-terminal incident for (resource, category), if any."""
        with self._lock:
            for incident in self._incidents.values():
                if incident.resource == resource and incident.category == category and not incident.status.is_terminal:
                    return copy.deepcopy(incident)
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._incidents)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, incident: Incident) -> Incident:
        with self._lock:
            self._incidents[incident.id] = copy.deepcopy(incident)
            self._refresh_gauge_locked()
        _log.info(
            "incident_stored",
            incident_id=incident.id,
            category=incident.category.value,
            severity=incident.severity.value,
            resource=incident.resource.key,
        )
        return copy.deepcopy(incident)

    def transition(self, incident_id: str, status: IncidentStatus, **fields: Any) -> Incident:
        """Move an incident to *status* and apply bookkeeping *fields*.

        Raises:
            IncidentNotFoundError: unknown id.
            InvalidTransitionError: the lifecycle forbids the move.
        """
        with self._lock:
            incident = self._incidents.get(incident_id)
            if incident is None:
                raise IncidentNotFoundError(incident_id)
            if not can_transition(incident.status, status):
                raise InvalidTransitionError(incident_id, incident.status.value, status.value)
            self._apply_locked(incident, status, fields)
            self._refresh_gauge_locked()
            result = copy.deepcopy(incident)
        _log.info("incident_transitioned", incident_id=incident_id, status=status.value)
        return result

    def claim_for_healing(self, incident_id: str) -> Incident | None:
        """Atomically move an open/acknowledged incident to ``healing``.

        Returns None when the incident no longer qualifies (another worker
        got there first, or it was resolved/escalated in the meantime).
        """
        with self._lock:
            incident = self._incidents.get(incident_id)
            if incident is None or incident.status not in _HEALABLE_FROM:
                return None
            self._apply_locked(
                incident,
                IncidentStatus.HEALING,
                {"healing_attempted": True, "healing_result": HealingOutcome.PENDING},
            )
            self._refresh_gauge_locked()
            return copy.deepcopy(incident)

    def set_classification(self, incident_id: str, classification: DriverClassification) -> Incident:
        with self._lock:
            incident = self._incidents.get(incident_id)
            if incident is None:
                raise IncidentNotFoundError(incident_id)
            incident.classification = classification
            incident.updated_at = datetime.now(tz=UTC)
            return copy.deepcopy(incident)

    def clear(self) -> None:
        with self._lock:
            self._incidents.clear()
            self._refresh_gauge_locked()
        _log.info("incident_history_cleared")

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self, now: datetime | None = None) -> dict[str, Any]:
        """Counts by status plus a 24 h rollup by severity and healing outcome."""
        now = now or datetime.now(tz=UTC)
        cutoff = now - timedelta(hours=24)
        with self._lock:
            incidents = list(self._incidents.values())
            by_status = {status.value: 0 for status in IncidentStatus}
            for incident in incidents:
                by_status[incident.status.value] += 1
            recent = [i for i in incidents if i.detected_at >= cutoff]
            by_severity = {severity.value: 0 for severity in Severity}
            for incident in recent:
                by_severity[incident.severity.value] += 1
            return {
                "total": len(incidents),
                **by_status,
                "last_24h": {
                    "total": len(recent),
                    "by_severity": by_severity,
                    "auto_healed": sum(1 for i in recent if i.healing_result == HealingOutcome.SUCCESS),
                    "auto_heal_failed": sum(1 for i in recent if i.healing_result == HealingOutcome.FAILED),
                    "escalated": sum(1 for i in recent if i.escalated),
                },
            }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_locked(incident: Incident, status: IncidentStatus, fields: dict[str, Any]) -> None:
        now = datetime.now(tz=UTC)
        for name, value in fields.items():
            if not hasattr(incident, name):
                raise AttributeError(f"Incident has no field '{name}'")
            setattr(incident, name, value)
        incident.status = status
        incident.status_history.append(status)
        incident.updated_at = now
        if status == IncidentStatus.ACKNOWLEDGED:
            incident.acknowledged_at = now
        elif status == IncidentStatus.RESOLVED:
            incident.resolved_at = now
        elif status == IncidentStatus.ESCALATED:
            incident.escalated = True
            incident.escalated_at = now

    def _refresh_gauge_locked(self) -> None:
        open_incidents.set(sum(1 for i in self._incidents.values() if not i.status.is_terminal))
