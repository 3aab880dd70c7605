"""Notification system for autoheal.

Dispatches IncidentAlert instances (detection and escalation) to one or
more notification channels.

Exports:
    NotificationChannel    -- Abstract base for all channel implementations.
    NotificationDispatcher -- Sends an alert to all registered channels
                              without blocking the control loops.
    LogNotificationChannel     -- Structured-log channel.
    WebhookNotificationChannel -- Generic JSON POST webhook channel.
    build_notification_dispatcher -- Factory used by the application bootstrap.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import structlog

from autoheal.models.incidents import Severity
from autoheal.notifications.manager import (
    LogNotificationChannel,
    NotificationChannel,
    NotificationDispatcher,
)
from autoheal.notifications.webhook import WebhookNotificationChannel

if TYPE_CHECKING:
    from autoheal.models.config import NotificationConfig

_log = structlog.get_logger(component="notifications")

__all__ = [
    "LogNotificationChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "WebhookNotificationChannel",
    "build_notification_dispatcher",
]


def build_notification_dispatcher(
    config: NotificationConfig,
) -> NotificationDispatcher:
    """Build a NotificationDispatcher from environment-resolved secrets.

    Log channel:
        enabled unless AUTOHEAL_NOTIFICATIONS_LOG_ENABLED is false.

    Webhook:
        AUTOHEAL_NOTIFICATIONS_WEBHOOK_SECRET_REF (env var name) ->
        env var value is the webhook URL.
    """
    channels: list[NotificationChannel] = []

    if config.log_channel_enabled:
        channels.append(LogNotificationChannel())

    webhook_ref = config.webhook_secret_ref
    if webhook_ref:
        webhook_url = os.environ.get(webhook_ref, "")
        if webhook_url:
            try:
                channels.append(WebhookNotificationChannel(url=webhook_url))
                _log.info("webhook_channel_enabled")
            except ValueError as exc:
                _log.warning("webhook_channel_disabled", reason=str(exc))
        else:
            _log.debug("webhook_channel_skipped", reason="secret ref env var is empty")

    if not channels:
        _log.info("no_notification_channels_configured")

    return NotificationDispatcher(channels=channels, min_severity=Severity(config.min_severity))
