"""Notification dispatcher for autoheal.

NotificationChannel    -- ABC every channel must implement.
NotificationDispatcher -- Fans out alerts to all registered channels;
                          failures in one channel never block others or
                          the detection and healing loops.
LogNotificationChannel -- Writes alerts to the structured log stream.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

import structlog

from autoheal.models.alerts import IncidentAlert
from autoheal.models.incidents import Severity
from autoheal.observability.metrics import notifications_total

_log = structlog.get_logger(component="notifications.manager")


class NotificationChannel(ABC):
    """Abstract base class for all notification channels.

    Every concrete channel must implement ``send``, which should be
    idempotent and not raise; return ``False`` instead of raising.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Human-readable channel identifier used in metrics and logs."""

    @abstractmethod
    async def send(self, alert: IncidentAlert) -> bool:
        """Deliver *alert* via this channel.

        Returns:
            True  -- message accepted by the remote endpoint.
            False -- delivery failed (already logged inside implementation).
        """


class LogNotificationChannel(NotificationChannel):
    """Emits every alert as a structured log line; always succeeds."""

    def __init__(self) -> None:
        self._log = structlog.get_logger(component="notifications.log")

    @property
    def channel_name(self) -> str:
        return "log"

    async def send(self, alert: IncidentAlert) -> bool:
        self._log.warning(
            "incident_alert",
            kind=alert.kind.value,
            alert_id=alert.alert_id,
            incident_id=alert.incident_id,
            severity=alert.severity.value,
            category=alert.category.value,
            resource=f"{alert.resource_kind}/{alert.namespace}/{alert.resource_name}",
            summary=alert.summary,
        )
        return True


class NotificationDispatcher:
    """Fan-out dispatcher that sends an alert to every registered channel.

    * Never raises: exceptions from individual channels are caught and logged.
    * Never blocks the caller: ``dispatch`` is fire-and-forget and schedules
      the fan-out as a background asyncio task.
    * Drops alerts below ``min_severity`` before any I/O.
    """

    def __init__(
        self,
        channels: list[NotificationChannel],
        min_severity: Severity = Severity.LOW,
    ) -> None:
        self._channels = channels
        self._min_severity = min_severity
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    def dispatch(self, alert: IncidentAlert) -> None:
        """Schedule fan-out delivery of *alert* as a background task."""
        if not self._channels or alert.severity.rank < self._min_severity.rank:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _log.debug("notification_skipped_no_event_loop", alert_id=alert.alert_id)
            return
        task = loop.create_task(self._fan_out(alert))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled fan-out to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _fan_out(self, alert: IncidentAlert) -> None:
        """Deliver *alert* to every channel concurrently."""
        tasks = [self._send_one(channel, alert) for channel in self._channels]
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _send_one(self, channel: NotificationChannel, alert: IncidentAlert) -> None:
        """Deliver to a single channel, recording metrics regardless of outcome."""
        try:
            success = await channel.send(alert)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "notification_channel_unexpected_error",
                channel=channel.channel_name,
                alert_id=alert.alert_id,
                error=str(exc),
            )
            success = False

        label = "true" if success else "false"
        notifications_total.labels(channel=channel.channel_name, success=label).inc()

        if success:
            _log.info(
                "notification_sent",
                channel=channel.channel_name,
                alert_id=alert.alert_id,
                kind=alert.kind.value,
                severity=alert.severity.value,
                namespace=alert.namespace,
                resource=f"{alert.resource_kind}/{alert.resource_name}",
            )
        else:
            _log.warning(
                "notification_failed",
                channel=channel.channel_name,
                alert_id=alert.alert_id,
            )
