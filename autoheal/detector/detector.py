"""Threshold detector and the shared incident intake path.

Every incident, whether it comes from a sampled snapshot or from an
operator injection, enters the system through ``Detector.admit``:

    1. cooldown check-and-set on ``resource:category`` (suppress if active)
    2. build the Incident from the category policy
    3. classify the driver
    4. store
    5. emit a detection alert (fire-and-forget)
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from autoheal.classifier.driver import DriverClassifier
from autoheal.classifier.signals import DriverSignals
from autoheal.detector.cooldown import CooldownTracker
from autoheal.detector.thresholds import (
    MULTI_SERVICE_FAILED_PODS,
    Finding,
    build_node_rules,
    build_pod_rules,
    evaluate_sample,
)
from autoheal.models.alerts import AlertKind, IncidentAlert
from autoheal.models.config import DetectionConfig
from autoheal.models.incidents import (
    Incident,
    IncidentCategory,
    ResourceKind,
    ResourceRef,
    Severity,
    cooldown_key,
)
from autoheal.models.snapshots import ClusterSnapshot, NodeSample, PodSample
from autoheal.notifications.manager import NotificationDispatcher
from autoheal.observability.logging import get_logger
from autoheal.observability.metrics import detections_suppressed_total, incidents_detected_total
from autoheal.policy import policy_for
from autoheal.store.incident_store import IncidentStore

_log = get_logger("detector")

CLUSTER_RESOURCE = ResourceRef(ResourceKind.SERVICE, "cluster", "cluster")

_POD_METRIC_FIELDS = (
    "cpu_percent",
    "memory_percent",
    "restart_count",
    "error_rate_percent",
    "rps",
    "rps_baseline",
    "latency_p95_ms",
    "latency_baseline_p95_ms",
    "minutes_since_deployment",
    "throttled",
)
_NODE_METRIC_FIELDS = ("cpu_percent", "memory_percent", "disk_percent", "memory_pressure", "disk_pressure")


def _snapshot_metrics(sample: PodSample | NodeSample, names: tuple[str, ...]) -> dict[str, Any]:
    metrics: dict[str, Any] = {}
    for name in names:
        value = getattr(sample, name)
        if value is not None:
            metrics[name] = value
    return metrics


def format_title(category: IncidentCategory, resource: ResourceRef, simulated: bool = False) -> str:
    title = f"{category.value.upper().replace('-', ' ')}: {resource.name}"
    return f"[SIMULATED] {title}" if simulated else title


class Detector:
    """Turns metric snapshots into deduplicated, classified incidents."""

    def __init__(
        self,
        store: IncidentStore,
        cooldown: CooldownTracker,
        classifier: DriverClassifier | None = None,
        dispatcher: NotificationDispatcher | None = None,
        config: DetectionConfig | None = None,
    ) -> None:
        self._store = store
        self._cooldown = cooldown
        self._classifier = classifier or DriverClassifier()
        self._dispatcher = dispatcher
        self._config = config or DetectionConfig()
        self._pod_rules = build_pod_rules(self._config)
        self._node_rules = build_node_rules(self._config)
        self._excluded = frozenset(self._config.excluded_namespaces)

    # ------------------------------------------------------------------
    # Snapshot evaluation
    # ------------------------------------------------------------------

    def evaluate(self, snapshot: ClusterSnapshot) -> list[Incident]:
        """Create incidents for every threshold crossed in *snapshot*.

        Returns only the incidents actually created; detections suppressed
        by an active cooldown are counted and dropped.
        """
        created: list[Incident] = []

        for node in snapshot.nodes:
            resource = ResourceRef(ResourceKind.NODE, node.name)
            metrics = _snapshot_metrics(node, _NODE_METRIC_FIELDS)
            metrics["ready"] = node.ready
            created.extend(self._admit_findings(resource, evaluate_sample(self._node_rules, node), metrics))

        failed_pods: list[PodSample] = []
        for pod in snapshot.pods:
            if pod.namespace in self._excluded:
                continue
            if pod.phase == "Failed":
                failed_pods.append(pod)
            resource = ResourceRef(ResourceKind.POD, pod.name, pod.namespace)
            metrics = _snapshot_metrics(pod, _POD_METRIC_FIELDS)
            if pod.deployment:
                metrics["deployment"] = pod.deployment
            created.extend(self._admit_findings(resource, evaluate_sample(self._pod_rules, pod), metrics))

        if len(failed_pods) >= MULTI_SERVICE_FAILED_PODS:
            namespaces = sorted({p.namespace for p in failed_pods})
            incident = self.admit(
                IncidentCategory.MULTI_SERVICE_FAILURE,
                Severity.CRITICAL,
                CLUSTER_RESOURCE,
                {"failed_pods": len(failed_pods), "namespaces": ",".join(namespaces)},
                description=f"{len(failed_pods)} pods failed across namespaces {', '.join(namespaces)}",
            )
            if incident is not None:
                created.append(incident)

        if created:
            _log.info("detection_cycle_completed", created=len(created))
        return created

    def _admit_findings(
        self,
        resource: ResourceRef,
        grouped: dict[IncidentCategory, list[Finding]],
        metrics: dict[str, Any],
    ) -> list[Incident]:
        created: list[Incident] = []
        for category, findings in grouped.items():
            policy = policy_for(category)
            detail = "; ".join(f.describe() for f in findings)
            incident = self.admit(
                category,
                findings[0].severity,
                resource,
                dict(metrics),
                description=f"{policy.behavior} ({detail})",
            )
            if incident is not None:
                created.append(incident)
        return created

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def admit(
        self,
        category: IncidentCategory,
        severity: Severity,
        resource: ResourceRef,
        metrics: dict[str, Any] | None = None,
        title: str | None = None,
        description: str | None = None,
        simulated: bool = False,
        signals: DriverSignals | None = None,
    ) -> Incident | None:
        """Create, classify, store and announce one incident.

        Returns None when an incident for the same resource and category is
        still open, or when the ``resource:category`` cooldown is active.
        """
        key = cooldown_key(resource, category)
        active = self._store.find_active(resource, category)
        if active is not None:
            detections_suppressed_total.labels(category=category.value).inc()
            _log.debug("detection_suppressed", cooldown_key=key, active_incident_id=active.id)
            return None
        if not self._cooldown.try_acquire(key):
            detections_suppressed_total.labels(category=category.value).inc()
            _log.debug(
                "detection_suppressed",
                cooldown_key=key,
                seconds_remaining=round(self._cooldown.remaining(key), 1),
            )
            return None

        policy = policy_for(category)
        incident = Incident(
            category=category,
            severity=severity,
            resource=resource,
            title=title or format_title(category, resource, simulated),
            description=description or policy.behavior,
            suggested_action=policy.suggested_action,
            metrics=dict(metrics or {}),
            simulated=simulated,
        )
        incident.classification = self._classifier.enrich(incident, signals)

        alert = IncidentAlert(
            kind=AlertKind.DETECTED,
            incident_id=incident.id,
            severity=incident.severity,
            category=incident.category,
            resource_kind=resource.kind.value,
            resource_name=resource.name,
            namespace=resource.namespace,
            summary=incident.title,
            created_at=datetime.now(tz=UTC),
        )
        incident.related_alerts.append(alert.alert_id)

        stored = self._store.add(incident)
        incidents_detected_total.labels(category=category.value, severity=severity.value).inc()
        _log.info(
            "incident_detected",
            incident_id=stored.id,
            category=category.value,
            severity=severity.value,
            resource=resource.key,
            driver=stored.classification.driver.value if stored.classification else None,
            simulated=simulated,
        )

        if self._dispatcher is not None:
            self._dispatcher.dispatch(alert)
        return stored
