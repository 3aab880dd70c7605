"""Severity threshold tables evaluated by the detector.

Two rule shapes exist:

ThresholdRule -- numeric metric with a warning and a critical bound.  The
                 critical bound wins when both are crossed, so one metric
                 yields at most one finding.
ConditionRule -- boolean condition on a sample (OOM flag, node not ready,
                 error rate over a fixed limit) with a fixed severity.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from autoheal.models.config import DetectionConfig
from autoheal.models.incidents import IncidentCategory, ResourceKind, Severity
from autoheal.models.snapshots import NodeSample, PodSample

ERROR_RATE_LIMIT_PERCENT = 10.0
MULTI_SERVICE_FAILED_PODS = 3


@dataclass(frozen=True)
class Finding:
    """One threshold crossing observed on one sample."""

    category: IncidentCategory
    severity: Severity
    metric: str
    value: float | bool
    threshold: float | None = None

    def describe(self) -> str:
        if self.threshold is None:
            return f"{self.metric}={self.value}"
        return f"{self.metric}={self.value:g} (threshold {self.threshold:g})"


@dataclass(frozen=True)
class ThresholdRule:
    """Warning/critical bounds for one numeric metric."""

    metric: str
    kind: ResourceKind
    category: IncidentCategory
    warning: float
    critical: float
    warning_severity: Severity = Severity.MEDIUM
    critical_severity: Severity = Severity.CRITICAL

    def evaluate(self, sample: Any) -> Finding | None:
        value = getattr(sample, self.metric, None)
        if value is None:
            return None
        if value >= self.critical:
            return Finding(self.category, self.critical_severity, self.metric, value, self.critical)
        if value >= self.warning:
            return Finding(self.category, self.warning_severity, self.metric, value, self.warning)
        return None


@dataclass(frozen=True)
class ConditionRule:
    """Fixed-severity boolean condition."""

    metric: str
    kind: ResourceKind
    category: IncidentCategory
    severity: Severity
    check: Callable[[Any], bool] = field(compare=False)

    def evaluate(self, sample: Any) -> Finding | None:
        if not self.check(sample):
            return None
        return Finding(self.category, self.severity, self.metric, getattr(sample, self.metric, True))


Rule = ThresholdRule | ConditionRule


def build_pod_rules(config: DetectionConfig) -> list[Rule]:
    """Pod rules in evaluation order."""
    return [
        ThresholdRule(
            "cpu_percent",
            ResourceKind.POD,
            IncidentCategory.HIGH_CPU,
            config.cpu_warning_percent,
            config.cpu_critical_percent,
        ),
        ThresholdRule(
            "memory_percent",
            ResourceKind.POD,
            IncidentCategory.HIGH_MEMORY,
            config.memory_warning_percent,
            config.memory_critical_percent,
            critical_severity=Severity.HIGH,
        ),
        ThresholdRule(
            "restart_count",
            ResourceKind.POD,
            IncidentCategory.PERSISTENT_RESTARTS,
            5,
            10,
            critical_severity=Severity.HIGH,
        ),
        ConditionRule(
            "oom_killed", ResourceKind.POD, IncidentCategory.OOM_KILLED, Severity.MEDIUM, lambda p: p.oom_killed
        ),
        ConditionRule(
            "crash_loop_backoff",
            ResourceKind.POD,
            IncidentCategory.CRASH_LOOP,
            Severity.MEDIUM,
            lambda p: p.crash_loop_backoff,
        ),
        ConditionRule(
            "throttled", ResourceKind.POD, IncidentCategory.POD_THROTTLING, Severity.LOW, lambda p: p.throttled
        ),
        ConditionRule(
            "image_pull_failed",
            ResourceKind.POD,
            IncidentCategory.IMAGE_PULL_DELAY,
            Severity.LOW,
            lambda p: p.image_pull_failed,
        ),
        ConditionRule(
            "config_error",
            ResourceKind.POD,
            IncidentCategory.CONFIGMAP_ERROR,
            Severity.HIGH,
            lambda p: p.config_error,
        ),
        ConditionRule(
            "db_connection_failed",
            ResourceKind.POD,
            IncidentCategory.DB_FAILURE,
            Severity.CRITICAL,
            lambda p: p.db_connection_failed,
        ),
        ConditionRule(
            "error_rate_percent",
            ResourceKind.POD,
            IncidentCategory.BUGGY_DEPLOYMENT,
            Severity.HIGH,
            lambda p: p.error_rate_percent is not None and p.error_rate_percent >= ERROR_RATE_LIMIT_PERCENT,
        ),
        ConditionRule(
            "phase", ResourceKind.POD, IncidentCategory.POD_CRASH, Severity.HIGH, lambda p: p.phase == "Failed"
        ),
    ]


def build_node_rules(config: DetectionConfig) -> list[Rule]:
    """Node rules in evaluation order."""
    return [
        ConditionRule(
            "ready", ResourceKind.NODE, IncidentCategory.NODE_NOT_READY, Severity.CRITICAL, lambda n: not n.ready
        ),
        ConditionRule(
            "memory_pressure",
            ResourceKind.NODE,
            IncidentCategory.NODE_PRESSURE,
            Severity.HIGH,
            lambda n: n.memory_pressure,
        ),
        ConditionRule(
            "disk_pressure",
            ResourceKind.NODE,
            IncidentCategory.NODE_PRESSURE,
            Severity.HIGH,
            lambda n: n.disk_pressure,
        ),
        ThresholdRule(
            "cpu_percent",
            ResourceKind.NODE,
            IncidentCategory.HIGH_CPU,
            config.cpu_warning_percent,
            config.cpu_critical_percent,
        ),
        ThresholdRule(
            "memory_percent",
            ResourceKind.NODE,
            IncidentCategory.NODE_PRESSURE,
            config.memory_warning_percent,
            config.memory_critical_percent,
            warning_severity=Severity.HIGH,
        ),
        ThresholdRule(
            "disk_percent",
            ResourceKind.NODE,
            IncidentCategory.NODE_PRESSURE,
            85.0,
            95.0,
            warning_severity=Severity.HIGH,
        ),
    ]


def evaluate_sample(rules: list[Rule], sample: PodSample | NodeSample) -> dict[IncidentCategory, list[Finding]]:
    """Run *rules* against *sample*, grouping findings by category.

    Within a category the findings are ordered highest severity first, so
    ``findings[0]`` decides the incident severity.
    """
    grouped: dict[IncidentCategory, list[Finding]] = {}
    for rule in rules:
        finding = rule.evaluate(sample)
        if finding is not None:
            grouped.setdefault(finding.category, []).append(finding)
    for findings in grouped.values():
        findings.sort(key=lambda f: f.severity.rank, reverse=True)
    return grouped
