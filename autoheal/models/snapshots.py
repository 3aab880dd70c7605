"""Metric snapshot structures supplied by a SignalSource."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class NodeSample:
    """Point-in-time health of one node."""

    name: str
    cpu_percent: float | None = None
    memory_percent: float | None = None
    disk_percent: float | None = None
    ready: bool = True
    memory_pressure: bool = False
    disk_pressure: bool = False


@dataclass(frozen=True)
class PodSample:
    """Point-in-time health of one pod.

    Percentages are relative to the container limits. ``None`` means the
    signal was not available for this sample.
    """

    name: str
    namespace: str = "default"
    deployment: str | None = None
    phase: str = "Running"
    cpu_percent: float | None = None
    memory_percent: float | None = None
    restart_count: int = 0
    oom_killed: bool = False
    crash_loop_backoff: bool = False
    throttled: bool = False
    image_pull_failed: bool = False
    config_error: bool = False
    db_connection_failed: bool = False
    error_rate_percent: float | None = None
    rps: float | None = None
    rps_baseline: float | None = None
    latency_p95_ms: float | None = None
    latency_baseline_p95_ms: float | None = None
    minutes_since_deployment: float | None = None


@dataclass(frozen=True)
class ClusterSnapshot:
    """One sampling cycle's worth of node and pod signals."""

    nodes: list[NodeSample] = field(default_factory=list)
    pods: list[PodSample] = field(default_factory=list)
    collected_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
