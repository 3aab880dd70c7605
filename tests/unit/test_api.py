"""Tests for the REST API: routes, envelopes and status codes."""

from __future__ import annotations

from fastapi.testclient import TestClient

from autoheal.api.app import create_app
from autoheal.models.config import AutohealConfig, HealingConfig
from autoheal.orchestrator import IncidentOrchestrator

_BASE = "/api/v1"


def _make_app() -> tuple[TestClient, IncidentOrchestrator]:
    config = AutohealConfig(cluster_id="test-cluster", healing=HealingConfig(dry_run_latency_seconds=0))
    orchestrator = IncidentOrchestrator(config=config)
    client = TestClient(create_app(orchestrator=orchestrator, config=config), raise_server_exceptions=False)
    return client, orchestrator


def _inject(client: TestClient, category: str = "oom-killed", **body) -> dict:
    response = client.post(f"{_BASE}/incidents/inject", json={"category": category, **body})
    assert response.status_code == 201, response.text
    return response.json()["incident"]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TestService:
    def test_health(self) -> None:
        client, _ = _make_app()
        body = client.get(f"{_BASE}/health").json()
        assert body["status"] == "ok"
        assert body["cluster_id"] == "test-cluster"
        assert body["automation_frozen"] is False
        assert body["detection_loop_running"] is False

    def test_metrics(self) -> None:
        client, _ = _make_app()
        response = client.get(f"{_BASE}/metrics")
        assert response.status_code == 200
        assert "autoheal_automation_frozen" in response.text


# ---------------------------------------------------------------------------
# Incidents
# ---------------------------------------------------------------------------


class TestIncidents:
    def test_inject_creates_classified_incident(self) -> None:
        client, _ = _make_app()
        incident = _inject(client, resource_name="checkout-5d9", namespace="shop")

        assert incident["status"] == "open"
        assert incident["simulated"] is True
        assert incident["title"] == "[SIMULATED] OOM KILLED: checkout-5d9"
        assert incident["resource"] == {"kind": "pod", "name": "checkout-5d9", "namespace": "shop"}
        assert incident["classification"]["driver"] == "degradation"

    def test_inject_during_cooldown_is_not_created(self) -> None:
        client, _ = _make_app()
        _inject(client)
        response = client.post(f"{_BASE}/incidents/inject", json={"category": "oom-killed"})
        assert response.status_code == 200
        assert response.json() == {"created": False, "incident": None, "reason": "duplicate suppressed"}

    def test_inject_with_signals(self) -> None:
        client, _ = _make_app()
        incident = _inject(
            client,
            "high-cpu",
            signals={"rps_change_percent": 150, "rps_absolute": 900, "rps_baseline": 300, "cpu_usage_percent": 97},
        )
        assert incident["classification"]["driver"] == "traffic-surge"
        assert "RPS +150%" in incident["classification"]["evidence"]

    def test_inject_with_unknown_signal(self) -> None:
        client, _ = _make_app()
        response = client.post(
            f"{_BASE}/incidents/inject", json={"category": "high-cpu", "signals": {"moon_phase": 3}}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_SIGNALS"

    def test_inject_unknown_category(self) -> None:
        client, _ = _make_app()
        response = client.post(f"{_BASE}/incidents/inject", json={"category": "volcano"})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_REQUEST"

    def test_freeze_category_escalates_on_intake(self) -> None:
        client, _ = _make_app()
        incident = _inject(client, "db-failure")
        assert incident["status"] == "escalated"
        assert client.get(f"{_BASE}/automation").json()["frozen"] is True

    def test_get_list_and_filter(self) -> None:
        client, _ = _make_app()
        created = _inject(client)
        assert client.get(f"{_BASE}/incidents/{created['id']}").json()["id"] == created["id"]
        assert len(client.get(f"{_BASE}/incidents").json()) == 1
        assert client.get(f"{_BASE}/incidents", params={"status": "resolved"}).json() == []

    def test_invalid_status_filter(self) -> None:
        client, _ = _make_app()
        response = client.get(f"{_BASE}/incidents", params={"status": "sleeping"})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_REQUEST"

    def test_unknown_incident_is_404(self) -> None:
        client, _ = _make_app()
        response = client.get(f"{_BASE}/incidents/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {
            "error": "INCIDENT_NOT_FOUND",
            "detail": "Incident 'does-not-exist' not found",
        }

    def test_acknowledge_then_resolve(self) -> None:
        client, _ = _make_app()
        incident_id = _inject(client)["id"]

        acknowledged = client.post(f"{_BASE}/incidents/{incident_id}/acknowledge").json()
        assert acknowledged["status"] == "acknowledged"
        assert acknowledged["acknowledged_at"] is not None

        resolved = client.post(f"{_BASE}/incidents/{incident_id}/resolve").json()
        assert resolved["status_history"] == ["open", "acknowledged", "resolved"]

    def test_illegal_transition_is_409(self) -> None:
        client, _ = _make_app()
        incident_id = _inject(client)["id"]
        client.post(f"{_BASE}/incidents/{incident_id}/resolve")

        response = client.post(f"{_BASE}/incidents/{incident_id}/acknowledge")

        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_TRANSITION"

    def test_manual_heal(self) -> None:
        client, _ = _make_app()
        incident_id = _inject(client, "crash-loop")["id"]

        result = client.post(f"{_BASE}/incidents/{incident_id}/heal").json()

        assert result["success"] is True
        assert result["details"]["dry_run"] is True
        assert client.get(f"{_BASE}/incidents/{incident_id}").json()["status"] == "resolved"
        events = client.get(f"{_BASE}/healing/events").json()
        assert len(events) == 1
        assert events[0]["manual"] is True

    def test_stats_and_clear(self) -> None:
        client, _ = _make_app()
        _inject(client)
        assert client.get(f"{_BASE}/incidents/stats").json()["total"] == 1

        assert client.delete(f"{_BASE}/incidents").status_code == 204
        assert client.get(f"{_BASE}/incidents").json() == []
        _inject(client)


# ---------------------------------------------------------------------------
# Healing rules and switches
# ---------------------------------------------------------------------------


class TestHealing:
    def test_list_default_rules(self) -> None:
        client, orchestrator = _make_app()
        rules = client.get(f"{_BASE}/healing/rules").json()
        assert len(rules) == len(orchestrator.list_rules())
        assert {r["action_type"] for r in rules} >= {"patch-memory", "restart-pod"}

    def test_rule_crud(self) -> None:
        client, _ = _make_app()
        created = client.post(
            f"{_BASE}/healing/rules",
            json={
                "name": "Scale payments",
                "target_category": "high-memory",
                "action_type": "scale-deployment",
                "parameters": {"scaleBy": 2},
                "cooldown_seconds": 120,
            },
        )
        assert created.status_code == 201
        rule_id = created.json()["id"]

        updated = client.patch(f"{_BASE}/healing/rules/{rule_id}", json={"max_retries": 1}).json()
        assert updated["max_retries"] == 1
        assert updated["cooldown_seconds"] == 120

        toggled = client.post(f"{_BASE}/healing/rules/{rule_id}/toggle").json()
        assert toggled["enabled"] is False

        assert client.delete(f"{_BASE}/healing/rules/{rule_id}").status_code == 204
        missing = client.get(f"{_BASE}/healing/rules/{rule_id}")
        assert missing.status_code == 404
        assert missing.json()["error"] == "RULE_NOT_FOUND"

    def test_unknown_action_is_rejected(self) -> None:
        client, _ = _make_app()
        response = client.post(
            f"{_BASE}/healing/rules",
            json={"name": "Drain", "target_category": "node-pressure", "action_type": "drain-node"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "UNKNOWN_ACTION"

    def test_negative_cooldown_is_rejected(self) -> None:
        client, _ = _make_app()
        response = client.post(
            f"{_BASE}/healing/rules",
            json={
                "name": "Restart",
                "target_category": "crash-loop",
                "action_type": "restart-pod",
                "cooldown_seconds": -1,
            },
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_REQUEST"

    def test_toggle_auto_healing_and_status(self) -> None:
        client, _ = _make_app()
        assert client.post(f"{_BASE}/healing/toggle", json={"enabled": False}).json() == {"enabled": False}
        status = client.get(f"{_BASE}/healing/status").json()
        assert status["enabled"] is False
        assert status["total_actions"] == 0

    def test_clear_events(self) -> None:
        client, _ = _make_app()
        incident_id = _inject(client, "crash-loop")["id"]
        client.post(f"{_BASE}/incidents/{incident_id}/heal")
        assert client.delete(f"{_BASE}/healing/events").json() == {"cleared": 1}


# ---------------------------------------------------------------------------
# Escalation and freeze
# ---------------------------------------------------------------------------


class TestEscalation:
    def test_unfreeze_flow(self) -> None:
        client, _ = _make_app()
        assert client.post(f"{_BASE}/automation/unfreeze", json={"by": "alice"}).json()["unfrozen"] is False

        _inject(client, "configmap-error")
        response = client.post(f"{_BASE}/automation/unfreeze", json={"by": "alice"}).json()

        assert response["unfrozen"] is True
        assert response["status"]["frozen"] is False
        assert response["status"]["last_unfrozen_by"] == "alice"

    def test_unfreeze_requires_operator(self) -> None:
        client, _ = _make_app()
        response = client.post(f"{_BASE}/automation/unfreeze", json={})
        assert response.status_code == 400

    def test_list_and_acknowledge(self) -> None:
        client, _ = _make_app()
        incident_id = _inject(client, "buggy-deployment")["id"]

        escalations = client.get(f"{_BASE}/escalations").json()
        assert [e["incident_id"] for e in escalations] == [incident_id]
        assert escalations[0]["reason"] == "freeze-category"
        assert escalations[0]["froze_automation"] is True

        acked = client.post(f"{_BASE}/escalations/{incident_id}/acknowledge", json={"by": "bob"}).json()
        assert acked["acknowledged_by"] == "bob"
        assert client.get(f"{_BASE}/escalations/stats").json()["pending"] == 0

    def test_acknowledge_unknown_escalation(self) -> None:
        client, _ = _make_app()
        response = client.post(f"{_BASE}/escalations/nope/acknowledge", json={"by": "bob"})
        assert response.status_code == 404
        assert response.json()["error"] == "ESCALATION_NOT_FOUND"
