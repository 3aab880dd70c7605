"""Authoritative per-category policy table.

One table answers every category-keyed question the pipeline asks: the
severity an injected incident defaults to, the automatic action (``None``
means a human must approve remediation), the default action parameters,
and whether escalating the category freezes automation cluster-wide.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from autoheal.models.healing import ActionType
from autoheal.models.incidents import IncidentCategory, Severity


@dataclass(frozen=True)
class CategoryPolicy:
    """Static handling policy for one incident category."""

    category: IncidentCategory
    severity: Severity
    action: ActionType | None
    behavior: str
    suggested_action: str
    parameters: dict[str, Any] = field(default_factory=dict)
    freezes_automation: bool = False

    @property
    def requires_approval(self) -> bool:
        return self.action is None


_POLICIES: tuple[CategoryPolicy, ...] = (
    CategoryPolicy(
        IncidentCategory.POD_CRASH,
        Severity.HIGH,
        ActionType.RESTART_POD,
        "Pod terminated and failed to start",
        "Restart pod and inspect container logs",
        {"gracePeriodSeconds": 30},
    ),
    CategoryPolicy(
        IncidentCategory.HIGH_CPU,
        Severity.MEDIUM,
        ActionType.SCALE_DEPLOYMENT,
        "Latency spikes, slow response times",
        "Scale replicas horizontally",
        {"scaleBy": 1, "maxReplicas": 10},
    ),
    CategoryPolicy(
        IncidentCategory.HIGH_MEMORY,
        Severity.MEDIUM,
        ActionType.PATCH_MEMORY,
        "Memory usage approaching the container limit",
        "Raise the memory limit before the pod is OOM-killed",
        {"memoryIncreaseFactor": 1.25, "restartAfterPatch": False},
    ),
    CategoryPolicy(
        IncidentCategory.OOM_KILLED,
        Severity.MEDIUM,
        ActionType.PATCH_MEMORY,
        "Pod crashes due to memory exhaustion",
        "Patch memory limit & restart pod",
        {"memoryIncreaseFactor": 1.5, "restartAfterPatch": True},
    ),
    CategoryPolicy(
        IncidentCategory.NODE_PRESSURE,
        Severity.HIGH,
        None,
        "Node under pressure, evictions possible",
        "Cordon node, investigate resource usage",
    ),
    CategoryPolicy(
        IncidentCategory.NODE_NOT_READY,
        Severity.CRITICAL,
        None,
        "Node unavailable, pods rescheduling",
        "Investigate node health, check kubelet",
    ),
    CategoryPolicy(
        IncidentCategory.PERSISTENT_RESTARTS,
        Severity.MEDIUM,
        ActionType.RESTART_POD,
        "Container keeps restarting without settling",
        "Restart pod and check liveness probes",
        {"gracePeriodSeconds": 30},
    ),
    CategoryPolicy(
        IncidentCategory.CRASH_LOOP,
        Severity.MEDIUM,
        ActionType.RESTART_POD,
        "Repeated pod restarts (CrashLoopBackOff)",
        "Restart with exponential backoff",
        {"gracePeriodSeconds": 30, "backoffMultiplier": 2},
    ),
    CategoryPolicy(
        IncidentCategory.POD_THROTTLING,
        Severity.LOW,
        ActionType.PATCH_CPU,
        "CPU capped, degraded performance",
        "Increase CPU limit",
        {"cpuIncreaseFactor": 1.5},
    ),
    CategoryPolicy(
        IncidentCategory.UNDERUTILIZATION,
        Severity.LOW,
        ActionType.SCALE_DEPLOYMENT,
        "Resource waste, cost inefficiency",
        "Scale down replicas",
        {"scaleBy": -1, "minReplicas": 1},
    ),
    CategoryPolicy(
        IncidentCategory.NODE_EVICTION,
        Severity.LOW,
        ActionType.NO_ACTION,
        "Pod rescheduled to different node",
        "Allow Kubernetes to reschedule",
    ),
    CategoryPolicy(
        IncidentCategory.IMAGE_PULL_DELAY,
        Severity.LOW,
        ActionType.RETRY_IMAGE_PULL,
        "Pod stuck in Pending state",
        "Retry image pull with backoff",
        {"maxRetries": 3, "backoffSeconds": 30},
    ),
    CategoryPolicy(
        IncidentCategory.BUGGY_DEPLOYMENT,
        Severity.HIGH,
        None,
        "5xx errors, service degradation",
        "Alert developers, freeze deployments",
        freezes_automation=True,
    ),
    CategoryPolicy(
        IncidentCategory.CONFIGMAP_ERROR,
        Severity.HIGH,
        None,
        "App crash due to missing config",
        "Stop automation, alert ops team",
        freezes_automation=True,
    ),
    CategoryPolicy(
        IncidentCategory.DB_FAILURE,
        Severity.CRITICAL,
        None,
        "Service completely down",
        "Freeze healing, alert DBA and on-call",
        freezes_automation=True,
    ),
    CategoryPolicy(
        IncidentCategory.UNKNOWN_CRASH,
        Severity.HIGH,
        None,
        "Non-standard failure pattern",
        "Escalate with full diagnostics",
    ),
    CategoryPolicy(
        IncidentCategory.MULTI_SERVICE_FAILURE,
        Severity.CRITICAL,
        None,
        "Cascading outage across services",
        "Raise critical incident, page on-call",
        freezes_automation=True,
    ),
)

CATEGORY_POLICIES: dict[IncidentCategory, CategoryPolicy] = {p.category: p for p in _POLICIES}

FREEZE_CATEGORIES: frozenset[IncidentCategory] = frozenset(p.category for p in _POLICIES if p.freezes_automation)


def policy_for(category: IncidentCategory) -> CategoryPolicy:
    """Return the policy for *category*."""
    return CATEGORY_POLICIES[category]
