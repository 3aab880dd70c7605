"""Healing engine: rule matching, action dispatch and outcome recording.

For each incident the engine walks the same decision list, whether it is
driven by the periodic loop or by a manual request:

    frozen                      -> escalate (automation-frozen)
    no enabled rule             -> escalate (no-rule)
    category needs approval     -> escalate (manual-approval-required)
    rule busy or cooling down   -> skip until a later pass (loop only)
    otherwise                   -> claim (healing), dispatch, then
                                   success -> resolved
                                   failure -> escalated (action-failed)

Actions dispatched by the loop run as separate tasks, so a pass never
waits on an executor call. The HealingEvent for an attempt is always
appended before the incident's status moves on.
"""

from __future__ import annotations

import asyncio
import functools
import threading
import time
from typing import Any

from autoheal.errors import AutohealError, InvalidTransitionError
from autoheal.escalation.manager import EscalationManager
from autoheal.healing.actions import ActionExecutor, ActionRequest, ActionResult, DryRunActionExecutor
from autoheal.healing.rules import HealingEventLog, RuleRegistry
from autoheal.models.config import HealingConfig
from autoheal.models.healing import EscalationReason, HealingEvent, HealingEventStatus, HealingRule
from autoheal.models.incidents import HealingOutcome, Incident, IncidentStatus
from autoheal.observability.logging import get_logger
from autoheal.observability.metrics import healing_actions_total
from autoheal.policy import policy_for
from autoheal.store.incident_store import IncidentStore

_log = get_logger("healing.engine")

_HEALABLE = (IncidentStatus.OPEN, IncidentStatus.ACKNOWLEDGED)


class HealingEngine:
    """Evaluates open incidents and dispatches remediation actions."""

    def __init__(
        self,
        store: IncidentStore,
        registry: RuleRegistry,
        events: HealingEventLog,
        escalation: EscalationManager,
        executor: ActionExecutor | None = None,
        config: HealingConfig | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._events = events
        self._escalation = escalation
        self._config = config or HealingConfig()
        self._executor: ActionExecutor = executor or DryRunActionExecutor(self._config.dry_run_latency_seconds)
        self._enabled = self._config.enabled
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()
        self._active_tasks: set[asyncio.Task[Any]] = set()
        self._dispatching_rules: set[str] = set()

    # ------------------------------------------------------------------
    # Switches
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> bool:
        self._enabled = enabled
        _log.info("auto_healing_toggled", enabled=enabled)
        return self._enabled

    @property
    def in_flight(self) -> frozenset[str]:
        with self._in_flight_lock:
            return frozenset(self._in_flight)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(self) -> int:
        """Run one evaluation pass over open incidents, oldest first.

        Decisions are taken inline; each dispatched action then runs as its
        own task, so a slow or hung executor call never holds up the rest of
        the pass. Returns the number of incidents for which a decision was
        taken. A failure on one incident is logged and does not stop the pass.
        """
        if not self._enabled:
            _log.debug("healing_evaluation_skipped", reason="auto-healing disabled")
            return 0

        handled = 0
        for incident in self._store.list_open_oldest_first():
            if not self._enter(incident.id):
                continue
            try:
                decided = self._decide(incident.id, manual=False)
            except Exception as exc:  # noqa: BLE001
                self._leave(incident.id)
                _log.error("healing_evaluation_failed", incident_id=incident.id, error=str(exc))
                continue
            if isinstance(decided, ActionResult):
                self._leave(incident.id)
                if not decided.details.get("skipped"):
                    handled += 1
                continue
            claimed, rule = decided
            task = asyncio.create_task(self._dispatch_in_background(claimed, rule), name=f"heal-{claimed.id}")
            self._active_tasks.add(task)
            task.add_done_callback(functools.partial(self._dispatch_done, claimed.id, rule))
            handled += 1
        return handled

    async def wait_idle(self) -> None:
        """Wait until every action dispatched by ``evaluate`` has finished."""
        current = asyncio.current_task()
        while True:
            pending = [t for t in self._active_tasks if t is not current and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def manual_heal(self, incident_id: str) -> ActionResult:
        """Heal one incident on operator request; never raises.

        Ignores the global enabled switch and rule cooldowns; the freeze and
        the approval requirement still apply.
        """
        try:
            return await self.heal(incident_id, manual=True)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            _log.error("manual_heal_failed", incident_id=incident_id, error=str(exc))
            return ActionResult(False, f"Manual heal failed: {exc}")

    async def heal(self, incident_id: str, manual: bool = False) -> ActionResult:
        """Take the healing decision for one incident and await its action.

        The incident id stays in the in-flight set for the whole call, so a
        concurrent call for the same id returns immediately without acting.
        """
        if not self._enter(incident_id):
            return ActionResult(False, "Healing already in progress", {"skipped": True})

        task = asyncio.current_task()
        if task is not None:
            self._active_tasks.add(task)
        try:
            decided = self._decide(incident_id, manual)
            if isinstance(decided, ActionResult):
                return decided
            claimed, rule = decided
            try:
                return await self._dispatch(claimed, rule, manual)
            finally:
                self._release_rule(rule, manual)
        finally:
            if task is not None:
                self._active_tasks.discard(task)
            self._leave(incident_id)

    def _enter(self, incident_id: str) -> bool:
        with self._in_flight_lock:
            if incident_id in self._in_flight:
                return False
            self._in_flight.add(incident_id)
            return True

    def _leave(self, incident_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(incident_id)

    def _release_rule(self, rule: HealingRule, manual: bool) -> None:
        if not manual:
            with self._in_flight_lock:
                self._dispatching_rules.discard(rule.id)

    async def _dispatch_in_background(self, incident: Incident, rule: HealingRule) -> None:
        try:
            await self._dispatch(incident, rule, manual=False)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            _log.error("healing_dispatch_failed", incident_id=incident.id, error=str(exc))
        finally:
            self._release_rule(rule, manual=False)
            self._leave(incident.id)

    def _dispatch_done(self, incident_id: str, rule: HealingRule, task: asyncio.Task[None]) -> None:
        # Also runs for a task cancelled before its first step, whose finally never ran.
        self._active_tasks.discard(task)
        self._release_rule(rule, manual=False)
        self._leave(incident_id)

    def _decide(self, incident_id: str, manual: bool) -> ActionResult | tuple[Incident, HealingRule]:
        """Walk the decision list; returns an outcome, or the claimed incident and its rule."""
        incident = self._store.get(incident_id)
        if incident is None:
            return ActionResult(False, f"Incident '{incident_id}' not found", {"skipped": True})
        if incident.status not in _HEALABLE:
            return ActionResult(
                False,
                f"Incident is {incident.status.value}; only open or acknowledged incidents can be healed",
                {"skipped": True},
            )

        if self._escalation.is_frozen:
            return self._refuse(incident, EscalationReason.AUTOMATION_FROZEN, "Automation is frozen")

        rule = self._registry.get_for_category(incident.category)
        if rule is None:
            return self._refuse(
                incident,
                EscalationReason.NO_RULE,
                f"No enabled healing rule for {incident.category.value}",
            )

        if policy_for(incident.category).requires_approval:
            return self._refuse(
                incident,
                EscalationReason.MANUAL_APPROVAL_REQUIRED,
                f"{incident.category.value} requires manual approval",
            )

        if not manual:
            with self._in_flight_lock:
                busy = rule.id in self._dispatching_rules
            if busy:
                return ActionResult(False, f"Rule '{rule.name}' has an action in progress", {"skipped": True})
            remaining = self._registry.cooldown_remaining(rule.id)
            if remaining > 0:
                _log.debug(
                    "healing_rule_cooling_down",
                    incident_id=incident.id,
                    rule_id=rule.id,
                    seconds_remaining=round(remaining, 1),
                )
                return ActionResult(
                    False,
                    f"Rule '{rule.name}' is cooling down ({remaining:.0f}s left)",
                    {"skipped": True},
                )

        claimed = self._store.claim_for_healing(incident.id)
        if claimed is None:
            return ActionResult(False, "Incident is no longer eligible for healing", {"skipped": True})
        if not manual:
            with self._in_flight_lock:
                self._dispatching_rules.add(rule.id)
        return claimed, rule


    def _refuse(self, incident: Incident, reason: EscalationReason, message: str) -> ActionResult:
        self._escalation.escalate(incident.id, reason, detail=message)
        _log.info(
            "healing_refused",
            incident_id=incident.id,
            category=incident.category.value,
            reason=reason.value,
        )
        return ActionResult(False, f"{message}; incident escalated", {"escalated": True, "reason": reason.value})

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, incident: Incident, rule: HealingRule, manual: bool) -> ActionResult:
        request = ActionRequest(
            action=rule.action_type,
            incident_id=incident.id,
            resource=incident.resource,
            parameters=dict(rule.parameters),
            max_retries=rule.max_retries,
            timeout_seconds=self._config.action_timeout_seconds,
        )
        _log.info(
            "healing_dispatched",
            incident_id=incident.id,
            rule_id=rule.id,
            action=rule.action_type.value,
            resource=incident.resource.key,
            manual=manual,
        )

        started = time.monotonic()
        try:
            result = await asyncio.wait_for(self._executor.execute(request), timeout=request.timeout_seconds)
        except TimeoutError:
            result = ActionResult(False, f"Action timed out after {request.timeout_seconds:g}s")
        except asyncio.CancelledError:
            cancelled = ActionResult(False, "Action cancelled during shutdown", duration_ms=_elapsed_ms(started))
            self._record(incident, rule, cancelled, manual)
            self._fail(incident, cancelled)
            raise
        except Exception as exc:  # noqa: BLE001
            result = ActionResult(False, f"Executor error: {exc}")

        if not result.duration_ms:
            result = ActionResult(result.success, result.message, result.details, _elapsed_ms(started))

        self._record(incident, rule, result, manual)
        if result.success:
            self._resolve(incident, rule)
        else:
            self._fail(incident, result)
        return result

    def _record(self, incident: Incident, rule: HealingRule, result: ActionResult, manual: bool) -> None:
        status = HealingEventStatus.SUCCESS if result.success else HealingEventStatus.FAILED
        self._events.append(
            HealingEvent(
                rule_id=rule.id,
                rule_name=rule.name,
                incident_id=incident.id,
                status=status,
                target_resource=incident.resource.name,
                target_namespace=incident.resource.namespace,
                action=rule.action_type,
                details=result.message,
                duration_ms=result.duration_ms,
                manual=manual,
            )
        )
        healing_actions_total.labels(action=rule.action_type.value, status=status.value).inc()

    def _resolve(self, incident: Incident, rule: HealingRule) -> None:
        self._registry.record_trigger(rule.id)
        try:
            self._store.transition(incident.id, IncidentStatus.RESOLVED, healing_result=HealingOutcome.SUCCESS)
        except InvalidTransitionError as exc:
            _log.warning("incident_changed_during_healing", incident_id=incident.id, error=str(exc))
            return
        _log.info("healing_succeeded", incident_id=incident.id, rule_id=rule.id, action=rule.action_type.value)

    def _fail(self, incident: Incident, result: ActionResult) -> None:
        _log.warning("healing_failed", incident_id=incident.id, message=result.message)
        try:
            self._store.transition(incident.id, IncidentStatus.ESCALATED, healing_result=HealingOutcome.FAILED)
            self._escalation.escalate(incident.id, EscalationReason.ACTION_FAILED, detail=result.message)
        except AutohealError as exc:
            _log.warning("incident_changed_during_healing", incident_id=incident.id, error=str(exc))

    # ------------------------------------------------------------------
    # Lifecycle and stats
    # ------------------------------------------------------------------

    async def stop(self, grace_seconds: float = 15.0) -> None:
        """Wait for in-flight heals, cancelling any still running after *grace_seconds*."""
        current = asyncio.current_task()
        pending = {t for t in self._active_tasks if t is not current and not t.done()}
        if not pending:
            return
        _log.info("waiting_for_in_flight_healing", count=len(pending))
        _, still_running = await asyncio.wait(pending, timeout=grace_seconds)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)

    def stats(self) -> dict[str, Any]:
        rules = self._registry.list()
        return {
            "enabled": self._enabled,
            "automation_frozen": self._escalation.is_frozen,
            "in_flight": len(self.in_flight),
            "rules_total": len(rules),
            "rules_enabled": sum(1 for r in rules if r.enabled),
            **self._events.stats(),
        }


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
