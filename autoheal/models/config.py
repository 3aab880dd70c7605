"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_EXCLUDED_NAMESPACES = ("kube-system", "kube-public", "kube-node-lease", "monitoring")


@dataclass
class DetectionConfig:
    """Detection loop and threshold configuration."""

    interval_seconds: int = 30
    cooldown_seconds: int = 300
    cpu_warning_percent: float = 80.0
    cpu_critical_percent: float = 90.0
    memory_warning_percent: float = 85.0
    memory_critical_percent: float = 95.0
    excluded_namespaces: tuple[str, ...] = DEFAULT_EXCLUDED_NAMESPACES


@dataclass
class HealingConfig:
    """Healing evaluation loop configuration."""

    enabled: bool = True
    interval_seconds: int = 15
    action_timeout_seconds: float = 30.0
    event_history_size: int = 1000
    dry_run_latency_seconds: float = 0.5


@dataclass
class SignalSourceConfig:
    """Metrics backend configuration."""

    prometheus_url: str = "http://localhost:9090"
    timeout_seconds: float = 10.0


@dataclass
class NotificationConfig:
    """Notification system configuration."""

    webhook_secret_ref: str = ""
    min_severity: str = "medium"
    log_channel_enabled: bool = True


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class AutohealConfig:
    """Top-level autoheal configuration."""

    cluster_id: str = ""
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    healing: HealingConfig = field(default_factory=HealingConfig)
    signals: SignalSourceConfig = field(default_factory=SignalSourceConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
