"""Healing rule registry and the bounded healing event log."""

from __future__ import annotations

import copy
import threading
from collections import deque
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from autoheal.errors import RuleNotFoundError, RuleValidationError
from autoheal.healing.actions import parse_action_type
from autoheal.models.healing import ActionType, HealingEvent, HealingEventStatus, HealingRule
from autoheal.models.incidents import IncidentCategory

_log = structlog.get_logger(component="healing.rules")

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "target_category",
        "action_type",
        "enabled",
        "parameters",
        "cooldown_seconds",
        "max_retries",
    }
)


def default_rules() -> list[HealingRule]:
    """Rules installed at startup."""
    return [
        HealingRule(
            name="Auto-restart OOMKilled Pods",
            description="Automatically restart pods that were killed due to OOM and increase memory limits",
            target_category=IncidentCategory.OOM_KILLED,
            action_type=ActionType.PATCH_MEMORY,
            parameters={"memoryIncreaseFactor": 1.5, "restartAfterPatch": True},
            cooldown_seconds=300,
            max_retries=3,
        ),
        HealingRule(
            name="Scale on High CPU",
            description="Scale up deployment when CPU usage exceeds threshold",
            target_category=IncidentCategory.HIGH_CPU,
            action_type=ActionType.SCALE_DEPLOYMENT,
            parameters={"scaleBy": 1, "maxReplicas": 10},
            cooldown_seconds=600,
            max_retries=2,
        ),
        HealingRule(
            name="Restart CrashLoop Pods",
            description="Restart pods stuck in CrashLoopBackOff with exponential backoff",
            target_category=IncidentCategory.CRASH_LOOP,
            action_type=ActionType.RESTART_POD,
            parameters={"gracePeriodSeconds": 30, "backoffMultiplier": 2},
            cooldown_seconds=300,
            max_retries=5,
        ),
        HealingRule(
            name="Restart Persistently Restarting Pods",
            description="Recycle pods whose containers keep restarting without settling",
            target_category=IncidentCategory.PERSISTENT_RESTARTS,
            action_type=ActionType.RESTART_POD,
            parameters={"gracePeriodSeconds": 30},
            cooldown_seconds=600,
            max_retries=2,
        ),
        HealingRule(
            name="Fix CPU Throttling",
            description="Increase CPU limits for throttled pods",
            target_category=IncidentCategory.POD_THROTTLING,
            action_type=ActionType.PATCH_CPU,
            parameters={"cpuIncreaseFactor": 1.5},
            cooldown_seconds=600,
            max_retries=2,
        ),
        HealingRule(
            name="Scale Down Underutilized",
            description="Scale down deployments with consistently low resource usage",
            target_category=IncidentCategory.UNDERUTILIZATION,
            action_type=ActionType.SCALE_DEPLOYMENT,
            parameters={"scaleBy": -1, "minReplicas": 1},
            cooldown_seconds=900,
            max_retries=1,
        ),
        HealingRule(
            name="Retry Image Pull",
            description="Retry failed image pulls with exponential backoff",
            target_category=IncidentCategory.IMAGE_PULL_DELAY,
            action_type=ActionType.RETRY_IMAGE_PULL,
            parameters={"maxRetries": 3, "backoffSeconds": 30},
            cooldown_seconds=120,
            max_retries=3,
        ),
    ]


def _parse_category(value: str | IncidentCategory) -> IncidentCategory:
    if isinstance(value, IncidentCategory):
        return value
    try:
        return IncidentCategory(value)
    except ValueError:
        raise RuleValidationError(f"Unknown incident category: {value!r}") from None


def _validate(rule: HealingRule) -> None:
    if not rule.name or not rule.name.strip():
        raise RuleValidationError("Rule name must not be empty")
    if not isinstance(rule.cooldown_seconds, int) or rule.cooldown_seconds < 0:
        raise RuleValidationError(f"cooldown_seconds must be a non-negative integer, got {rule.cooldown_seconds!r}")
    if not isinstance(rule.max_retries, int) or rule.max_retries < 0:
        raise RuleValidationError(f"max_retries must be a non-negative integer, got {rule.max_retries!r}")
    if not isinstance(rule.parameters, dict):
        raise RuleValidationError("parameters must be a mapping")


class RuleRegistry:
    """Thread-safe CRUD over healing rules.

    Action types are validated when a rule is created or updated, so a
    stored rule always names a dispatchable action.
    """

    def __init__(self, rules: list[HealingRule] | None = None) -> None:
        self._lock = threading.RLock()
        self._rules: dict[str, HealingRule] = {}
        for rule in default_rules() if rules is None else rules:
            _validate(rule)
            self._rules[rule.id] = copy.deepcopy(rule)

    def list(self) -> list[HealingRule]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._rules.values()]

    def get(self, rule_id: str) -> HealingRule:
        with self._lock:
            return copy.deepcopy(self._require_locked(rule_id))

    def get_for_category(self, category: IncidentCategory) -> HealingRule | None:
        """First enabled rule targeting *category*, or None."""
        with self._lock:
            for rule in self._rules.values():
                if rule.enabled and rule.target_category == category:
                    return copy.deepcopy(rule)
        return None

    def create(
        self,
        name: str,
        target_category: str | IncidentCategory,
        action_type: str | ActionType,
        description: str = "",
        enabled: bool = True,
        parameters: dict[str, Any] | None = None,
        cooldown_seconds: int = 300,
        max_retries: int = 3,
    ) -> HealingRule:
        """Validate and register a new rule.

        Raises:
            UnknownActionError: *action_type* is not a supported action.
            RuleValidationError: any other field is malformed.
        """
        if parameters is not None and not isinstance(parameters, dict):
            raise RuleValidationError("parameters must be a mapping")
        rule = HealingRule(
            name=name,
            target_category=_parse_category(target_category),
            action_type=parse_action_type(action_type),
            description=description,
            enabled=enabled,
            parameters=dict(parameters or {}),
            cooldown_seconds=cooldown_seconds,
            max_retries=max_retries,
        )
        _validate(rule)
        with self._lock:
            self._rules[rule.id] = rule
        _log.info(
            "healing_rule_created",
            rule_id=rule.id,
            name=rule.name,
            category=rule.target_category.value,
            action=rule.action_type.value,
        )
        return copy.deepcopy(rule)

    def update(self, rule_id: str, **changes: Any) -> HealingRule:
        """Apply *changes* to a rule; unknown field names are rejected."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise RuleValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "action_type" in changes:
            changes["action_type"] = parse_action_type(changes["action_type"])
        if "target_category" in changes:
            changes["target_category"] = _parse_category(changes["target_category"])
        with self._lock:
            current = self._require_locked(rule_id)
            candidate = copy.deepcopy(current)
            for name, value in changes.items():
                setattr(candidate, name, value)
            _validate(candidate)
            self._rules[rule_id] = candidate
        _log.info("healing_rule_updated", rule_id=rule_id, fields=sorted(changes))
        return copy.deepcopy(candidate)

    def delete(self, rule_id: str) -> None:
        with self._lock:
            self._require_locked(rule_id)
            del self._rules[rule_id]
        _log.info("healing_rule_deleted", rule_id=rule_id)

    def toggle(self, rule_id: str) -> HealingRule:
        """Flip the enabled flag of a rule."""
        with self._lock:
            rule = self._require_locked(rule_id)
            rule.enabled = not rule.enabled
            result = copy.deepcopy(rule)
        _log.info("healing_rule_toggled", rule_id=rule_id, enabled=result.enabled)
        return result

    def cooldown_remaining(self, rule_id: str, now: datetime | None = None) -> float:
        """Seconds before the rule may dispatch again (0 when ready)."""
        now = now or datetime.now(tz=UTC)
        with self._lock:
            rule = self._require_locked(rule_id)
            if rule.last_triggered is None:
                return 0.0
            ready_at = rule.last_triggered + timedelta(seconds=rule.cooldown_seconds)
            return max((ready_at - now).total_seconds(), 0.0)

    def record_trigger(self, rule_id: str, now: datetime | None = None) -> None:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return
            rule.trigger_count += 1
            rule.last_triggered = now or datetime.now(tz=UTC)

    def _require_locked(self, rule_id: str) -> HealingRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule


class HealingEventLog:
    """Bounded, append-only record of action attempts (oldest evicted first)."""

    def __init__(self, max_size: int = 1000) -> None:
        self._events: deque[HealingEvent] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def append(self, event: HealingEvent) -> None:
        with self._lock:
            self._events.append(event)

    def list(self, limit: int | None = None) -> list[HealingEvent]:
        """Newest first."""
        with self._lock:
            events = list(reversed(self._events))
        return events if limit is None else events[: max(limit, 0)]

    def list_for_rule(self, rule_id: str) -> list[HealingEvent]:
        return [e for e in self.list() if e.rule_id == rule_id]

    def list_for_incident(self, incident_id: str) -> list[HealingEvent]:
        return [e for e in self.list() if e.incident_id == incident_id]

    def clear(self) -> int:
        """Drop every event; returns how many were removed."""
        with self._lock:
            removed = len(self._events)
            self._events.clear()
        _log.info("healing_events_cleared", removed=removed)
        return removed

    def stats(self) -> dict[str, Any]:
        events = self.list()
        completed = [e for e in events if e.status != HealingEventStatus.IN_PROGRESS]
        succeeded = [e for e in completed if e.status == HealingEventStatus.SUCCESS]
        return {
            "total_actions": len(completed),
            "successful_actions": len(succeeded),
            "failed_actions": len(completed) - len(succeeded),
            "avg_recovery_ms": round(sum(e.duration_ms for e in succeeded) / len(succeeded)) if succeeded else 0,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
