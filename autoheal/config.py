"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from autoheal.models.config import (
    DEFAULT_EXCLUDED_NAMESPACES,
    APIConfig,
    AutohealConfig,
    DetectionConfig,
    HealingConfig,
    LogConfig,
    NotificationConfig,
    SignalSourceConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"AUTOHEAL_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None, max_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = _env(key, ",".join(default))
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_severity(value: str) -> str:
    valid = {"low", "medium", "high", "critical"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid severity: {value}. Must be one of {valid}")
    return value.lower()


def _validate_thresholds(warning: float, critical: float, name: str) -> tuple[float, float]:
    if warning >= critical:
        raise ValueError(f"{name} warning threshold ({warning}) must be below critical ({critical})")
    return warning, critical


def load_config() -> AutohealConfig:
    """Load configuration from AUTOHEAL_* environment variables."""
    cpu_warning, cpu_critical = _validate_thresholds(
        _env_float("CPU_WARNING_PERCENT", 80.0, min_val=1.0, max_val=100.0),
        _env_float("CPU_CRITICAL_PERCENT", 90.0, min_val=1.0, max_val=100.0),
        "CPU",
    )
    memory_warning, memory_critical = _validate_thresholds(
        _env_float("MEMORY_WARNING_PERCENT", 85.0, min_val=1.0, max_val=100.0),
        _env_float("MEMORY_CRITICAL_PERCENT", 95.0, min_val=1.0, max_val=100.0),
        "Memory",
    )
    return AutohealConfig(
        cluster_id=_env("CLUSTER_ID", ""),
        detection=DetectionConfig(
            interval_seconds=_env_int("DETECTION_INTERVAL", 30, min_val=5, max_val=600),
            cooldown_seconds=_env_int("COOLDOWN_SECONDS", 300, min_val=0, max_val=86400),
            cpu_warning_percent=cpu_warning,
            cpu_critical_percent=cpu_critical,
            memory_warning_percent=memory_warning,
            memory_critical_percent=memory_critical,
            excluded_namespaces=_env_list("EXCLUDED_NAMESPACES", DEFAULT_EXCLUDED_NAMESPACES),
        ),
        healing=HealingConfig(
            enabled=_env_bool("HEALING_ENABLED", True),
            interval_seconds=_env_int("HEALING_INTERVAL", 15, min_val=1, max_val=600),
            action_timeout_seconds=_env_float("ACTION_TIMEOUT", 30.0, min_val=1.0, max_val=600.0),
            event_history_size=_env_int("EVENT_HISTORY_SIZE", 1000, min_val=10, max_val=100000),
            dry_run_latency_seconds=_env_float("DRY_RUN_LATENCY", 0.5, min_val=0.0, max_val=10.0),
        ),
        signals=SignalSourceConfig(
            prometheus_url=_env("PROMETHEUS_URL", "http://localhost:9090"),
            timeout_seconds=_env_float("PROMETHEUS_TIMEOUT", 10.0, min_val=1.0, max_val=60.0),
        ),
        notifications=NotificationConfig(
            webhook_secret_ref=_env("NOTIFICATIONS_WEBHOOK_SECRET_REF", ""),
            min_severity=_validate_severity(_env("NOTIFICATIONS_MIN_SEVERITY", "medium")),
            log_channel_enabled=_env_bool("NOTIFICATIONS_LOG_ENABLED", True),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
