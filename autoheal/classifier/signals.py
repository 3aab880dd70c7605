"""Raw signals consumed by the driver classifier."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

from autoheal.models.incidents import Incident, IncidentCategory


@dataclass(frozen=True)
class DriverSignals:
    """Every optional input the classifier understands.

    ``None`` means "not supplied". Absent signals are excluded from both the
    numerator and the denominator of each sub-score.
    """

    # Traffic
    rps_change_percent: float | None = None
    rps_absolute: float | None = None
    rps_baseline: float | None = None

    # Quality
    error_rate_percent: float | None = None
    error_rate_baseline_percent: float | None = None
    latency_p50_ms: float | None = None
    latency_p95_ms: float | None = None
    latency_p99_ms: float | None = None
    latency_baseline_p95_ms: float | None = None

    # Resource saturation
    cpu_usage_percent: float | None = None
    memory_usage_percent: float | None = None
    cpu_throttled: bool | None = None
    memory_pressure: bool | None = None

    # Capacity response
    replicas_current: int | None = None
    replicas_desired: int | None = None
    replicas_max: int | None = None
    scaling_velocity: float | None = None
    scaling_effectiveness: float | None = None

    # Change correlation
    recent_deployment_minutes_ago: float | None = None
    recent_config_change_minutes_ago: float | None = None
    recent_secret_change_minutes_ago: float | None = None
    deployment_correlation_score: float | None = None

    # Pod health
    restart_count: int | None = None
    oom_killed: bool | None = None
    crash_loop_backoff: bool | None = None

    # Blast radius
    affected_pod_count: int | None = None
    affected_node_count: int | None = None
    cascading_failure: bool | None = None

    def merged(self, overrides: DriverSignals | None) -> DriverSignals:
        """Return a copy where every supplied field of *overrides* wins."""
        if overrides is None:
            return self
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for f in fields(overrides):
            value = getattr(overrides, f.name)
            if value is not None:
                values[f.name] = value
        return DriverSignals(**values)

    def is_rich(self) -> bool:
        """True if any signal carries information (not None, False or 0)."""
        return any(getattr(self, f.name) not in (None, False, 0) for f in fields(self))


# incident.metrics key -> DriverSignals field
_METRIC_SIGNALS: dict[str, str] = {
    "cpu_percent": "cpu_usage_percent",
    "memory_percent": "memory_usage_percent",
    "restart_count": "restart_count",
    "error_rate_percent": "error_rate_percent",
    "latency_p95_ms": "latency_p95_ms",
    "latency_baseline_p95_ms": "latency_baseline_p95_ms",
    "rps": "rps_absolute",
    "rps_baseline": "rps_baseline",
    "minutes_since_deployment": "recent_deployment_minutes_ago",
    "throttled": "cpu_throttled",
    "memory_pressure": "memory_pressure",
}


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def signals_from_incident(incident: Incident) -> DriverSignals:
    """Derive classifier inputs from an incident's metrics snapshot."""
    values: dict[str, Any] = {}
    for metric, signal in _METRIC_SIGNALS.items():
        raw = incident.metrics.get(metric)
        if raw is None:
            continue
        if signal in ("cpu_throttled", "memory_pressure"):
            values[signal] = bool(raw)
        else:
            number = _numeric(raw)
            if number is not None:
                values[signal] = number
    values["oom_killed"] = incident.category == IncidentCategory.OOM_KILLED
    values["crash_loop_backoff"] = incident.category == IncidentCategory.CRASH_LOOP
    return DriverSignals(**values)
