"""Incident lifecycle orchestrator.

Owns every stateful component and exposes the operations the HTTP layer
(or any other boundary) needs. Two independent loops drive it:

    detection loop -- sample signals, create incidents (default every 30 s)
    healing loop   -- evaluate open incidents (default every 15 s)

Every new incident, detected or injected, goes through the same intake:
cooldown gate, classification, store, alert, and an immediate escalation
when its category freezes automation.
"""

from __future__ import annotations

from typing import Any

from autoheal.classifier.driver import DriverClassifier
from autoheal.classifier.signals import DriverSignals
from autoheal.detector.cooldown import CooldownTracker
from autoheal.detector.detector import Detector
from autoheal.escalation.manager import EscalationManager
from autoheal.healing.actions import ActionExecutor, ActionResult
from autoheal.healing.engine import HealingEngine
from autoheal.healing.rules import HealingEventLog, RuleRegistry
from autoheal.models.config import AutohealConfig
from autoheal.models.healing import EscalationReason, EscalationRecord, HealingEvent, HealingRule
from autoheal.models.incidents import (
    Incident,
    IncidentCategory,
    IncidentStatus,
    ResourceKind,
    ResourceRef,
    Severity,
)
from autoheal.notifications.manager import NotificationDispatcher
from autoheal.observability.logging import get_logger
from autoheal.observability.metrics import detection_cycle_failures_total
from autoheal.policy import FREEZE_CATEGORIES, policy_for
from autoheal.scheduler import PeriodicLoop
from autoheal.signals.base import SignalSource, StaticSignalSource
from autoheal.store.incident_store import IncidentStore

_log = get_logger("orchestrator")


class IncidentOrchestrator:
    """Facade over detection, classification, healing and escalation."""

    def __init__(
        self,
        config: AutohealConfig | None = None,
        signal_source: SignalSource | None = None,
        executor: ActionExecutor | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self.config = config or AutohealConfig()
        self.signal_source: SignalSource = signal_source or StaticSignalSource()
        self.dispatcher = dispatcher

        self.store = IncidentStore()
        self.cooldown = CooldownTracker(window_seconds=self.config.detection.cooldown_seconds)
        self.classifier = DriverClassifier()
        self.detector = Detector(
            self.store,
            self.cooldown,
            classifier=self.classifier,
            dispatcher=dispatcher,
            config=self.config.detection,
        )
        self.rules = RuleRegistry()
        self.events = HealingEventLog(max_size=self.config.healing.event_history_size)
        self.escalation = EscalationManager(self.store, dispatcher=dispatcher)
        self.engine = HealingEngine(
            self.store,
            self.rules,
            self.events,
            self.escalation,
            executor=executor,
            config=self.config.healing,
        )

        self.detection_loop = PeriodicLoop(
            "detection", self.config.detection.interval_seconds, self.run_detection_cycle
        )
        self.healing_loop = PeriodicLoop("healing", self.config.healing.interval_seconds, self.engine.evaluate)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.detection_loop.start()
        self.healing_loop.start()
        _log.info(
            "orchestrator_started",
            detection_interval=self.detection_loop.interval,
            healing_interval=self.healing_loop.interval,
        )

    async def stop(self, grace_seconds: float = 15.0) -> None:
        """Stop both loops and wait for in-flight healing. Idempotent."""
        await self.detection_loop.stop(grace_seconds)
        await self.healing_loop.stop(grace_seconds)
        await self.engine.stop(grace_seconds)
        if self.dispatcher is not None:
            await self.dispatcher.drain()
        _log.info("orchestrator_stopped")

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_detection_cycle(self) -> list[Incident]:
        """Sample once and admit every incident the snapshot yields.

        A failing signal source is logged and the cycle is skipped.
        """
        try:
            snapshot = await self.signal_source.collect()
        except Exception as exc:  # noqa: BLE001
            detection_cycle_failures_total.inc()
            _log.warning("detection_cycle_skipped", error=str(exc))
            return []
        admitted: list[Incident] = []
        for incident in self.detector.evaluate(snapshot):
            try:
                admitted.append(self._after_intake(incident))
            except Exception as exc:  # noqa: BLE001
                _log.error("incident_intake_failed", incident_id=incident.id, error=str(exc))
        return admitted

    async def run_healing_cycle(self) -> int:
        """Run one healing pass and wait for the actions it dispatched."""
        handled = await self.engine.evaluate()
        await self.engine.wait_idle()
        return handled

    def _after_intake(self, incident: Incident) -> Incident:
        if incident.category in FREEZE_CATEGORIES:
            self.escalation.escalate(
                incident.id,
                EscalationReason.FREEZE_CATEGORY,
                detail=policy_for(incident.category).suggested_action,
            )
        return self.store.require(incident.id)

    # ------------------------------------------------------------------
    # Incidents
    # ------------------------------------------------------------------

    def list_incidents(self, status: IncidentStatus | None = None) -> list[Incident]:
        return self.store.list(status)

    def get_incident(self, incident_id: str) -> Incident:
        return self.store.require(incident_id)

    def incident_stats(self) -> dict[str, Any]:
        return self.store.stats()

    def acknowledge_incident(self, incident_id: str) -> Incident:
        return self.store.transition(incident_id, IncidentStatus.ACKNOWLEDGED)

    def resolve_incident(self, incident_id: str) -> Incident:
        return self.store.transition(incident_id, IncidentStatus.RESOLVED)

    def inject_incident(
        self,
        category: IncidentCategory,
        severity: Severity | None = None,
        resource_name: str | None = None,
        namespace: str = "default",
        resource_kind: ResourceKind = ResourceKind.POD,
        metrics: dict[str, Any] | None = None,
        signals: DriverSignals | None = None,
        description: str | None = None,
    ) -> Incident | None:
        """Admit a synthetic incident, bypassing thresholds but not the cooldown.

        Returns None when the cooldown for the resource and category is active.
        """
        resource = ResourceRef(resource_kind, resource_name or f"simulated-{category.value}", namespace)
        incident = self.detector.admit(
            category,
            severity or policy_for(category).severity,
            resource,
            metrics,
            description=description,
            simulated=True,
            signals=signals,
        )
        if incident is None:
            return None
        return self._after_intake(incident)

    def clear_history(self) -> None:
        """Forget incidents, cooldowns, healing events and escalation records."""
        self.store.clear()
        self.cooldown.clear()
        self.events.clear()
        self.escalation.clear()
        _log.info("history_cleared")

    # ------------------------------------------------------------------
    # Healing rules and events
    # ------------------------------------------------------------------

    def list_rules(self) -> list[HealingRule]:
        return self.rules.list()

    def get_rule(self, rule_id: str) -> HealingRule:
        return self.rules.get(rule_id)

    def create_rule(self, **fields: Any) -> HealingRule:
        return self.rules.create(**fields)

    def update_rule(self, rule_id: str, **changes: Any) -> HealingRule:
        return self.rules.update(rule_id, **changes)

    def delete_rule(self, rule_id: str) -> None:
        self.rules.delete(rule_id)

    def toggle_rule(self, rule_id: str) -> HealingRule:
        return self.rules.toggle(rule_id)

    async def manual_heal(self, incident_id: str) -> ActionResult:
        return await self.engine.manual_heal(incident_id)

    def list_events(self, limit: int | None = None) -> list[HealingEvent]:
        return self.events.list(limit)

    def clear_events(self) -> int:
        return self.events.clear()

    def healing_stats(self) -> dict[str, Any]:
        return self.engine.stats()

    def set_auto_healing(self, enabled: bool) -> bool:
        return self.engine.set_enabled(enabled)

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def automation_status(self) -> dict[str, Any]:
        return self.escalation.automation_status()

    def unfreeze_automation(self, by: str) -> bool:
        return self.escalation.unfreeze(by)

    def list_escalations(self) -> list[EscalationRecord]:
        return self.escalation.list()

    def acknowledge_escalation(self, incident_id: str, by: str) -> EscalationRecord:
        return self.escalation.acknowledge(incident_id, by)

    def escalation_stats(self) -> dict[str, Any]:
        return self.escalation.stats()
