"""Tests for the notification dispatcher and its channels."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from autoheal.models.alerts import AlertKind, IncidentAlert
from autoheal.models.config import NotificationConfig
from autoheal.models.incidents import IncidentCategory, Severity
from autoheal.notifications import (
    LogNotificationChannel,
    NotificationDispatcher,
    WebhookNotificationChannel,
    build_notification_dispatcher,
)

_TS = datetime(2026, 2, 18, 12, 0, 0, tzinfo=UTC)


def _make_alert(severity: Severity = Severity.HIGH, kind: AlertKind = AlertKind.DETECTED) -> IncidentAlert:
    return IncidentAlert(
        kind=kind,
        incident_id="inc-42",
        severity=severity,
        category=IncidentCategory.CRASH_LOOP,
        resource_kind="pod",
        resource_name="api-7f9c",
        namespace="payments",
        summary="CRASH LOOP: api-7f9c",
        created_at=_TS,
    )


def _make_channel(name: str = "mock", result: bool = True, side_effect: Exception | None = None) -> MagicMock:
    channel = MagicMock()
    channel.channel_name = name
    channel.send = AsyncMock(return_value=result, side_effect=side_effect)
    return channel


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class TestNotificationDispatcher:
    async def test_fans_out_to_every_channel(self) -> None:
        first, second = _make_channel("a"), _make_channel("b")
        dispatcher = NotificationDispatcher([first, second])
        alert = _make_alert()

        dispatcher.dispatch(alert)
        await dispatcher.drain()

        first.send.assert_awaited_once_with(alert)
        second.send.assert_awaited_once_with(alert)

    async def test_failing_channel_does_not_block_others(self) -> None:
        broken = _make_channel("broken", side_effect=RuntimeError("smtp down"))
        healthy = _make_channel("healthy")
        dispatcher = NotificationDispatcher([broken, healthy])

        dispatcher.dispatch(_make_alert())
        await dispatcher.drain()

        healthy.send.assert_awaited_once()

    async def test_below_min_severity_is_dropped(self) -> None:
        channel = _make_channel()
        dispatcher = NotificationDispatcher([channel], min_severity=Severity.HIGH)

        dispatcher.dispatch(_make_alert(Severity.MEDIUM))
        dispatcher.dispatch(_make_alert(Severity.CRITICAL))
        await dispatcher.drain()

        assert channel.send.await_count == 1
        assert channel.send.call_args.args[0].severity == Severity.CRITICAL

    async def test_dispatch_does_not_wait_for_delivery(self) -> None:
        channel = _make_channel()
        dispatcher = NotificationDispatcher([channel])
        dispatcher.dispatch(_make_alert())
        channel.send.assert_not_awaited()
        await dispatcher.drain()
        channel.send.assert_awaited_once()

    def test_dispatch_without_event_loop_is_skipped(self) -> None:
        channel = _make_channel()
        NotificationDispatcher([channel]).dispatch(_make_alert())
        channel.send.assert_not_called()

    async def test_no_channels(self) -> None:
        dispatcher = NotificationDispatcher([])
        dispatcher.dispatch(_make_alert())
        await dispatcher.drain()


class TestLogChannel:
    async def test_always_succeeds(self) -> None:
        channel = LogNotificationChannel()
        assert channel.channel_name == "log"
        assert await channel.send(_make_alert(kind=AlertKind.ESCALATED)) is True


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


class TestWebhookChannel:
    async def test_posts_json_payload(self) -> None:
        received: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(202)

        channel = WebhookNotificationChannel(
            "https://hooks.example.com/autoheal",
            headers={"Authorization": "Bearer t0ken"},
            transport=httpx.MockTransport(handler),
        )

        assert await channel.send(_make_alert()) is True

        request = received[0]
        assert request.headers["Authorization"] == "Bearer t0ken"
        body = json.loads(request.content)
        assert body["kind"] == "detected"
        assert body["incident_id"] == "inc-42"
        assert body["severity"] == "high"
        assert body["created_at"] == _TS.isoformat()

    async def test_non_2xx_returns_false(self) -> None:
        channel = WebhookNotificationChannel(
            "https://hooks.example.com/autoheal",
            transport=httpx.MockTransport(lambda _: httpx.Response(500, text="oops")),
        )
        assert await channel.send(_make_alert()) is False

    async def test_transport_error_returns_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        channel = WebhookNotificationChannel(
            "https://hooks.example.com/autoheal", transport=httpx.MockTransport(handler)
        )
        assert await channel.send(_make_alert()) is False

    def test_empty_url_rejected(self) -> None:
        with pytest.raises(ValueError):
            WebhookNotificationChannel("")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestBuildDispatcher:
    def test_log_channel_by_default(self) -> None:
        dispatcher = build_notification_dispatcher(NotificationConfig())
        assert [c.channel_name for c in dispatcher.channels] == ["log"]

    def test_webhook_from_secret_ref(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ONCALL_WEBHOOK_URL", "https://hooks.example.com/oncall")
        config = NotificationConfig(webhook_secret_ref="ONCALL_WEBHOOK_URL", log_channel_enabled=False)
        dispatcher = build_notification_dispatcher(config)
        assert [c.channel_name for c in dispatcher.channels] == ["webhook"]

    def test_missing_secret_skips_webhook(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ONCALL_WEBHOOK_URL", raising=False)
        config = NotificationConfig(webhook_secret_ref="ONCALL_WEBHOOK_URL", log_channel_enabled=False)
        assert build_notification_dispatcher(config).channels == []
