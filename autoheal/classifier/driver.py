"""Traffic-surge vs degradation classification of SLO burn.

Five sub-scores are computed from whatever signals are present, each
normalised by the number of contributing factors so that a sparse signal
set is not penalised:

    traffic   -- request-rate growth and scaling pressure
    quality   -- error rate, latency regression, restarts, OOM
    resource  -- CPU / memory saturation
    capacity  -- how well horizontal scaling is keeping up
    change    -- proximity to a deployment or config change

They fold into two composite axes:

    traffic_driven     = 0.5 * traffic + 0.25 * resource + 0.25 * capacity
    degradation_driven = 0.6 * quality + 0.4 * change

and the axis comparison decides the driver (see ``determine_driver``).
When no signal carries information the incident category alone is used.
"""

from __future__ import annotations

from autoheal.classifier.signals import DriverSignals, signals_from_incident
from autoheal.models.incidents import (
    BurnDriver,
    DriverClassification,
    Incident,
    IncidentCategory,
    SignalScores,
)
from autoheal.observability.logging import get_logger

_log = get_logger("classifier.driver")

MIXED_DIFF_THRESHOLD = 0.3
LOW_SIGNAL_THRESHOLD = 0.3
CATEGORY_CONFIDENCE = 0.7

_DEGRADATION_CATEGORIES = frozenset(
    {
        IncidentCategory.CRASH_LOOP,
        IncidentCategory.OOM_KILLED,
        IncidentCategory.BUGGY_DEPLOYMENT,
        IncidentCategory.CONFIGMAP_ERROR,
        IncidentCategory.DB_FAILURE,
        IncidentCategory.UNKNOWN_CRASH,
    }
)
_RESOURCE_CATEGORIES = frozenset(
    {
        IncidentCategory.HIGH_CPU,
        IncidentCategory.HIGH_MEMORY,
        IncidentCategory.POD_THROTTLING,
        IncidentCategory.NODE_PRESSURE,
    }
)
_CHANGE_CATEGORIES = frozenset({IncidentCategory.BUGGY_DEPLOYMENT, IncidentCategory.CONFIGMAP_ERROR})
_TRAFFIC_CATEGORIES = frozenset(
    {IncidentCategory.HIGH_CPU, IncidentCategory.HIGH_MEMORY, IncidentCategory.POD_THROTTLING}
)


def _tier(value: float, tiers: tuple[tuple[float, float], ...]) -> float:
    """Return the score of the first ``(bound, score)`` tier *value* reaches."""
    for bound, score in tiers:
        if value >= bound:
            return score
    return 0.0


def _average(factors: list[float]) -> float:
    return _clamp(sum(factors) / len(factors)) if factors else 0.0


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------


def traffic_score(s: DriverSignals) -> float:
    factors: list[float] = []
    if s.rps_change_percent is not None:
        change = s.rps_change_percent
        if change >= 50:
            factors.append(1.0)
        elif change >= 20:
            factors.append(0.6)
        elif change > 0:
            factors.append(0.3)
        else:
            factors.append(0.0)
    if s.rps_absolute is not None and s.rps_baseline:
        factors.append(_tier(s.rps_absolute / s.rps_baseline, ((1.5, 1.0), (1.2, 0.6), (1.1, 0.3))))
    if s.scaling_velocity is not None and s.scaling_velocity > 0:
        factors.append(min(s.scaling_velocity / 5, 1.0))
    return _average(factors)


def quality_score(s: DriverSignals, category: IncidentCategory | None = None) -> float:
    factors: list[float] = []
    if s.error_rate_percent is not None:
        rate = s.error_rate_percent
        if rate >= 5:
            factors.append(1.0)
        elif rate >= 1:
            factors.append(0.6)
        elif rate > 0:
            factors.append(0.3)
        else:
            factors.append(0.0)
        if s.error_rate_baseline_percent is not None:
            baseline = s.error_rate_baseline_percent
            if baseline > 0:
                factors.append(min(rate / baseline / 3, 1.0))
            elif rate > 0:
                factors.append(1.0)
    if s.latency_p95_ms is not None and s.latency_baseline_p95_ms:
        ratio = s.latency_p95_ms / s.latency_baseline_p95_ms
        if ratio >= 2:
            factors.append(1.0)
        elif ratio >= 1.5:
            factors.append(0.6)
        elif ratio > 1:
            factors.append(0.3)
        else:
            factors.append(0.0)
    if category in _DEGRADATION_CATEGORIES:
        factors.append(0.8)
    if s.restart_count is not None and s.restart_count > 0:
        factors.append(min(s.restart_count / 5, 1.0))
    if s.oom_killed or s.crash_loop_backoff:
        factors.append(1.0)
    return _average(factors)


def resource_score(s: DriverSignals, category: IncidentCategory | None = None) -> float:
    factors: list[float] = []
    usage_tiers = ((90, 1.0), (75, 0.6), (50, 0.3))
    if s.cpu_usage_percent is not None:
        factors.append(_tier(s.cpu_usage_percent, usage_tiers))
    if s.memory_usage_percent is not None:
        factors.append(_tier(s.memory_usage_percent, usage_tiers))
    if s.cpu_throttled:
        factors.append(0.8)
    if s.memory_pressure:
        factors.append(0.9)
    if category in _RESOURCE_CATEGORIES:
        factors.append(0.7)
    return _average(factors)


def capacity_score(s: DriverSignals) -> float:
    factors: list[float] = []
    if s.replicas_current is not None and s.replicas_max:
        utilization = s.replicas_current / s.replicas_max
        factors.append(_tier(utilization, ((0.9, 1.0), (0.7, 0.6))))
        if s.replicas_desired is not None:
            lag = (s.replicas_desired - s.replicas_current) / s.replicas_max
            if lag > 0.2:
                factors.append(0.8)
            elif lag > 0:
                factors.append(0.4)
            else:
                factors.append(0.0)
    if s.scaling_effectiveness is not None:
        if s.scaling_effectiveness < 0.5 and (s.scaling_velocity or 0) > 0:
            factors.append(0.8)
        elif s.scaling_effectiveness < 0.3:
            factors.append(0.5)
        else:
            factors.append(0.0)
    return _average(factors)


def change_score(s: DriverSignals, category: IncidentCategory | None = None) -> float:
    factors: list[float] = []
    if s.recent_deployment_minutes_ago is not None:
        minutes = s.recent_deployment_minutes_ago
        if minutes <= 10:
            factors.append(1.0)
        elif minutes <= 30:
            factors.append(0.7)
        elif minutes <= 60:
            factors.append(0.3)
        else:
            factors.append(0.0)
    if s.recent_config_change_minutes_ago is not None:
        minutes = s.recent_config_change_minutes_ago
        if minutes <= 10:
            factors.append(1.0)
        elif minutes <= 30:
            factors.append(0.7)
        else:
            factors.append(0.0)
    if s.deployment_correlation_score is not None:
        factors.append(_clamp(s.deployment_correlation_score))
    if category in _CHANGE_CATEGORIES:
        factors.append(0.9)
    return _average(factors)


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def _clamp(value: float) -> float:
    return max(0.0, min(value, 1.0))


def determine_driver(traffic_driven: float, degradation_driven: float) -> tuple[BurnDriver, float]:
    """Pick the driver from the two composite axes.

    Close, non-trivial axes are ``mixed`` with confidence decaying linearly
    from 1.0 (identical) to 0.5 (difference at the threshold). Two weak axes
    are ``mixed`` at 0.5. Otherwise the larger axis wins.
    """
    diff = abs(traffic_driven - degradation_driven)
    top = max(traffic_driven, degradation_driven)
    if diff < MIXED_DIFF_THRESHOLD and top > 0.2:
        return BurnDriver.MIXED, _clamp(1 - (diff / MIXED_DIFF_THRESHOLD) * 0.5)
    if top < LOW_SIGNAL_THRESHOLD:
        return BurnDriver.MIXED, 0.5
    if traffic_driven > degradation_driven:
        return BurnDriver.TRAFFIC_SURGE, _clamp(traffic_driven)
    return BurnDriver.DEGRADATION, _clamp(degradation_driven)


def build_evidence(s: DriverSignals, driver: BurnDriver) -> str:
    """Human-readable summary of the signals that stood out."""
    parts: list[str] = []
    if s.rps_change_percent is not None and s.rps_change_percent > 10:
        parts.append(f"RPS +{s.rps_change_percent:.0f}%")
    if s.error_rate_percent is not None and s.error_rate_percent > 0.5:
        parts.append(f"error rate {s.error_rate_percent:.1f}%")
    if s.latency_p95_ms is not None and s.latency_baseline_p95_ms:
        ratio = s.latency_p95_ms / s.latency_baseline_p95_ms
        if ratio > 1.2:
            parts.append(f"P95 +{(ratio - 1) * 100:.0f}%")
    if s.cpu_usage_percent is not None and s.cpu_usage_percent > 70:
        parts.append(f"CPU {s.cpu_usage_percent:.0f}%")
    if s.memory_usage_percent is not None and s.memory_usage_percent > 70:
        parts.append(f"memory {s.memory_usage_percent:.0f}%")
    if s.restart_count is not None and s.restart_count > 2:
        parts.append(f"{s.restart_count} restarts")
    if s.oom_killed:
        parts.append("OOM killed")
    if s.replicas_current is not None and s.replicas_max and s.replicas_current / s.replicas_max >= 0.9:
        parts.append("at max replicas")
    if s.recent_deployment_minutes_ago is not None and s.recent_deployment_minutes_ago <= 30:
        parts.append(f"deployment {s.recent_deployment_minutes_ago:.0f}m ago")

    if parts:
        return ", ".join(parts)
    if driver == BurnDriver.TRAFFIC_SURGE:
        return "Traffic-driven SLO burn detected"
    if driver == BurnDriver.DEGRADATION:
        return "Quality degradation detected"
    return "Multiple contributing factors"


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class DriverClassifier:
    """Stateless classifier; every method is a pure function of its inputs."""

    def classify(self, signals: DriverSignals, category: IncidentCategory | None = None) -> DriverClassification:
        scores = SignalScores(
            traffic=traffic_score(signals),
            quality=quality_score(signals, category),
            resource=resource_score(signals, category),
            capacity=capacity_score(signals),
            change=change_score(signals, category),
        )
        traffic_driven = 0.5 * scores.traffic + 0.25 * scores.resource + 0.25 * scores.capacity
        degradation_driven = 0.6 * scores.quality + 0.4 * scores.change
        driver, confidence = determine_driver(traffic_driven, degradation_driven)
        return DriverClassification(
            driver=driver,
            confidence=confidence,
            evidence=build_evidence(signals, driver),
            scores=scores,
        )

    def classify_from_category(self, category: IncidentCategory) -> DriverClassification:
        """Fallback used when no raw signals are available."""
        if category in _TRAFFIC_CATEGORIES:
            return DriverClassification(
                BurnDriver.TRAFFIC_SURGE,
                CATEGORY_CONFIDENCE,
                "Category indicates traffic-driven issue",
                SignalScores(traffic=0.7, quality=0.2, resource=0.8, capacity=0.5, change=0.1),
            )
        if category in _DEGRADATION_CATEGORIES:
            return DriverClassification(
                BurnDriver.DEGRADATION,
                CATEGORY_CONFIDENCE,
                "Category indicates quality degradation",
                SignalScores(traffic=0.2, quality=0.8, resource=0.3, capacity=0.1, change=0.5),
            )
        return DriverClassification(
            BurnDriver.MIXED,
            0.5,
            "Unable to determine primary driver",
            SignalScores(traffic=0.5, quality=0.5, resource=0.5, capacity=0.5, change=0.5),
        )

    def enrich(self, incident: Incident, extra: DriverSignals | None = None) -> DriverClassification:
        """Classify *incident* from its metrics snapshot plus optional *extra* signals.

        Falls back to the category table when the combined signals carry no
        information.
        """
        signals = signals_from_incident(incident).merged(extra)
        if signals.is_rich():
            result = self.classify(signals, incident.category)
        else:
            result = self.classify_from_category(incident.category)
        _log.debug(
            "incident_classified",
            incident_id=incident.id,
            driver=result.driver.value,
            confidence=round(result.confidence, 3),
        )
        return result
