"""Tests for the healing rule registry, event log and category policy table."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from autoheal.errors import RuleNotFoundError, RuleValidationError, UnknownActionError
from autoheal.healing import HealingEventLog, RuleRegistry, default_rules
from autoheal.models.healing import ActionType, HealingEvent, HealingEventStatus, HealingRule
from autoheal.models.incidents import IncidentCategory, Severity
from autoheal.policy import CATEGORY_POLICIES, FREEZE_CATEGORIES, policy_for

_TS = datetime(2026, 2, 18, 12, 0, 0, tzinfo=UTC)


def _make_rule(**overrides) -> HealingRule:
    fields = {
        "name": "Restart crash loops",
        "target_category": IncidentCategory.CRASH_LOOP,
        "action_type": ActionType.RESTART_POD,
        "cooldown_seconds": 60,
    }
    fields.update(overrides)
    return HealingRule(**fields)


def _make_event(
    status: HealingEventStatus = HealingEventStatus.SUCCESS,
    rule_id: str = "rule-1",
    incident_id: str = "inc-1",
    duration_ms: int = 100,
) -> HealingEvent:
    return HealingEvent(
        rule_id=rule_id,
        rule_name="Restart crash loops",
        incident_id=incident_id,
        status=status,
        target_resource="api-7f9c",
        target_namespace="default",
        action=ActionType.RESTART_POD,
        details="Pod api-7f9c restarted with 30s grace period",
        duration_ms=duration_ms,
    )


# ---------------------------------------------------------------------------
# Policy table
# ---------------------------------------------------------------------------


class TestPolicyTable:
    def test_every_category_has_a_policy(self) -> None:
        assert set(CATEGORY_POLICIES) == set(IncidentCategory)

    def test_freeze_categories(self) -> None:
        assert FREEZE_CATEGORIES == {
            IncidentCategory.BUGGY_DEPLOYMENT,
            IncidentCategory.CONFIGMAP_ERROR,
            IncidentCategory.DB_FAILURE,
            IncidentCategory.MULTI_SERVICE_FAILURE,
        }

    def test_freeze_categories_require_approval(self) -> None:
        for category in FREEZE_CATEGORIES:
            assert policy_for(category).requires_approval

    def test_node_not_ready_is_critical_and_manual(self) -> None:
        policy = policy_for(IncidentCategory.NODE_NOT_READY)
        assert policy.severity == Severity.CRITICAL
        assert policy.requires_approval

    def test_default_rules_target_automatable_categories(self) -> None:
        for rule in default_rules():
            policy = policy_for(rule.target_category)
            assert not policy.requires_approval
            assert policy.action == rule.action_type


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRuleRegistry:
    def test_defaults_installed(self) -> None:
        registry = RuleRegistry()
        names = {r.name for r in registry.list()}
        assert "Auto-restart OOMKilled Pods" in names
        assert "Retry Image Pull" in names
        assert len(names) == len(default_rules())

    def test_create_and_get(self) -> None:
        registry = RuleRegistry(rules=[])
        rule = registry.create(
            "Scale checkout",
            "high-cpu",
            "scale-deployment",
            parameters={"scaleBy": 2},
            cooldown_seconds=120,
        )
        assert rule.target_category == IncidentCategory.HIGH_CPU
        assert rule.action_type == ActionType.SCALE_DEPLOYMENT
        assert registry.get(rule.id).parameters == {"scaleBy": 2}

    def test_create_rejects_unknown_action(self) -> None:
        registry = RuleRegistry(rules=[])
        with pytest.raises(UnknownActionError) as exc_info:
            registry.create("Drain node", "node-pressure", "drain-node")
        assert exc_info.value.value == "drain-node"
        assert registry.list() == []

    def test_create_rejects_unknown_category(self) -> None:
        with pytest.raises(RuleValidationError):
            RuleRegistry(rules=[]).create("x", "volcano", "restart-pod")

    @pytest.mark.parametrize(
        "overrides",
        [{"name": "  "}, {"cooldown_seconds": -1}, {"max_retries": -3}, {"parameters": ["scaleBy"]}],
    )
    def test_create_rejects_malformed_fields(self, overrides: dict) -> None:
        fields = {"name": "rule", "target_category": "crash-loop", "action_type": "restart-pod", **overrides}
        with pytest.raises(RuleValidationError):
            RuleRegistry(rules=[]).create(**fields)

    def test_get_unknown_raises(self) -> None:
        with pytest.raises(RuleNotFoundError):
            RuleRegistry(rules=[]).get("missing")

    def test_update(self) -> None:
        registry = RuleRegistry(rules=[_make_rule()])
        rule_id = registry.list()[0].id
        updated = registry.update(rule_id, cooldown_seconds=900, action_type="no-action")
        assert updated.cooldown_seconds == 900
        assert updated.action_type == ActionType.NO_ACTION

    def test_update_rejects_unknown_field_and_leaves_rule_untouched(self) -> None:
        registry = RuleRegistry(rules=[_make_rule()])
        rule_id = registry.list()[0].id
        with pytest.raises(RuleValidationError):
            registry.update(rule_id, trigger_count=99)
        with pytest.raises(RuleValidationError):
            registry.update(rule_id, cooldown_seconds=-5)
        assert registry.get(rule_id).cooldown_seconds == 60

    def test_update_rejects_unknown_action(self) -> None:
        registry = RuleRegistry(rules=[_make_rule()])
        with pytest.raises(UnknownActionError):
            registry.update(registry.list()[0].id, action_type="reboot")

    def test_delete(self) -> None:
        registry = RuleRegistry(rules=[_make_rule()])
        rule_id = registry.list()[0].id
        registry.delete(rule_id)
        with pytest.raises(RuleNotFoundError):
            registry.delete(rule_id)

    def test_toggle_and_get_for_category(self) -> None:
        registry = RuleRegistry(rules=[_make_rule()])
        rule_id = registry.list()[0].id
        assert registry.get_for_category(IncidentCategory.CRASH_LOOP) is not None

        assert registry.toggle(rule_id).enabled is False
        assert registry.get_for_category(IncidentCategory.CRASH_LOOP) is None
        assert registry.toggle(rule_id).enabled is True

    def test_get_for_category_skips_disabled_rules(self) -> None:
        disabled = _make_rule(name="disabled", enabled=False)
        enabled = _make_rule(name="enabled")
        registry = RuleRegistry(rules=[disabled, enabled])
        assert registry.get_for_category(IncidentCategory.CRASH_LOOP).name == "enabled"

    def test_returned_rules_are_copies(self) -> None:
        registry = RuleRegistry(rules=[_make_rule()])
        rule = registry.list()[0]
        rule.parameters["gracePeriodSeconds"] = 0
        assert registry.get(rule.id).parameters == {}

    def test_cooldown_and_trigger_bookkeeping(self) -> None:
        registry = RuleRegistry(rules=[_make_rule(cooldown_seconds=60)])
        rule_id = registry.list()[0].id
        assert registry.cooldown_remaining(rule_id, _TS) == 0.0

        registry.record_trigger(rule_id, _TS)
        rule = registry.get(rule_id)
        assert rule.trigger_count == 1
        assert rule.last_triggered == _TS
        assert registry.cooldown_remaining(rule_id, _TS + timedelta(seconds=20)) == 40.0
        assert registry.cooldown_remaining(rule_id, _TS + timedelta(seconds=61)) == 0.0


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------


class TestHealingEventLog:
    def test_newest_first_with_limit(self) -> None:
        log = HealingEventLog()
        events = [_make_event(incident_id=f"inc-{i}") for i in range(5)]
        for event in events:
            log.append(event)
        assert [e.incident_id for e in log.list(limit=2)] == ["inc-4", "inc-3"]

    def test_ring_buffer_evicts_oldest(self) -> None:
        log = HealingEventLog(max_size=3)
        for i in range(5):
            log.append(_make_event(incident_id=f"inc-{i}"))
        assert len(log) == 3
        assert [e.incident_id for e in log.list()] == ["inc-4", "inc-3", "inc-2"]

    def test_filters(self) -> None:
        log = HealingEventLog()
        log.append(_make_event(rule_id="r1", incident_id="a"))
        log.append(_make_event(rule_id="r2", incident_id="b"))
        assert [e.incident_id for e in log.list_for_rule("r1")] == ["a"]
        assert [e.rule_id for e in log.list_for_incident("b")] == ["r2"]

    def test_clear_returns_count(self) -> None:
        log = HealingEventLog()
        log.append(_make_event())
        log.append(_make_event())
        assert log.clear() == 2
        assert log.list() == []

    def test_stats(self) -> None:
        log = HealingEventLog()
        log.append(_make_event(duration_ms=100))
        log.append(_make_event(duration_ms=301))
        log.append(_make_event(status=HealingEventStatus.FAILED, duration_ms=5000))
        assert log.stats() == {
            "total_actions": 3,
            "successful_actions": 2,
            "failed_actions": 1,
            "avg_recovery_ms": 200,
        }

    def test_stats_empty(self) -> None:
        assert HealingEventLog().stats()["avg_recovery_ms"] == 0
