"""Prometheus metrics for the incident lifecycle."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

incidents_detected_total = Counter(
    "autoheal_incidents_detected_total",
    "Incidents created by the detector or by injection",
    ["category", "severity"],
)

detections_suppressed_total = Counter(
    "autoheal_detections_suppressed_total",
    "Detections dropped because a cooldown was active",
    ["category"],
)

detection_cycle_failures_total = Counter(
    "autoheal_detection_cycle_failures_total",
    "Detection cycles skipped because the signal source failed",
)

healing_actions_total = Counter(
    "autoheal_healing_actions_total",
    "Remediation actions dispatched, by outcome",
    ["action", "status"],
)

escalations_total = Counter(
    "autoheal_escalations_total",
    "Incidents handed to a human operator",
    ["reason"],
)

notifications_total = Counter(
    "autoheal_notifications_total",
    "Notification deliveries by channel and success",
    ["channel", "success"],
)

automation_frozen = Gauge(
    "autoheal_automation_frozen",
    "1 while automated healing is frozen cluster-wide",
)

open_incidents = Gauge(
    "autoheal_open_incidents",
    "Incidents currently in a non-terminal status",
)
