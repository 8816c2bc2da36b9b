"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from pulsewatch.core.types import Severity

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class MetricsConfig(BaseModel):
    """Metric store and collector cadence configuration."""

    capacity: int = Field(default=1000, gt=0)
    low_interval_secs: float = 15.0
    high_interval_secs: float = 5.0
    source_timeout_secs: float = 5.0


class HealthConfig(BaseModel):
    """Defaults for registered health checks."""

    default_interval_secs: float = 30.0
    default_timeout_secs: float = 5.0
    default_retries: int = 0
    disk_path: str = "/"
    disk_min_free_pct: float = 10.0
    http_endpoints: dict[str, str] = Field(default_factory=dict)


class BreakerConfig(BaseModel):
    """A circuit breaker registered at startup."""

    name: str
    failure_threshold: int = Field(default=5, gt=0)
    reset_timeout_secs: float = 60.0


class ThresholdRuleConfig(BaseModel):
    """Declarative threshold rule: ``<field> <op> <value>``."""

    name: str
    field: str
    op: Literal["gt", "ge", "lt", "le", "eq", "ne", "is_false", "is_true"] = "gt"
    value: float | bool | None = None
    severity: Severity = Severity.MEDIUM
    cooldown_secs: float | None = None


def _default_rules() -> list[ThresholdRuleConfig]:
    return [
        ThresholdRuleConfig(
            name="high_memory_usage",
            field="system.memory.utilization",
            op="gt",
            value=85.0,
            severity=Severity.HIGH,
            cooldown_secs=300.0,
        ),
        ThresholdRuleConfig(
            name="critical_memory_usage",
            field="system.memory.utilization",
            op="gt",
            value=95.0,
            severity=Severity.CRITICAL,
            cooldown_secs=60.0,
        ),
        ThresholdRuleConfig(
            name="high_cpu_usage",
            field="system.cpu.utilization",
            op="gt",
            value=80.0,
            severity=Severity.MEDIUM,
            cooldown_secs=180.0,
        ),
        ThresholdRuleConfig(
            name="high_error_rate",
            field="application.errors.rate",
            op="gt",
            value=0.05,
            severity=Severity.CRITICAL,
            cooldown_secs=60.0,
        ),
        ThresholdRuleConfig(
            name="critical_error_rate",
            field="application.errors.rate",
            op="gt",
            value=0.1,
            severity=Severity.CRITICAL,
            cooldown_secs=30.0,
        ),
        ThresholdRuleConfig(
            name="slow_response_time",
            field="application.endpoints.avg_response_time_ms",
            op="gt",
            value=2000.0,
            severity=Severity.MEDIUM,
            cooldown_secs=300.0,
        ),
        ThresholdRuleConfig(
            name="database_connection_failure",
            field="application.database.connected",
            op="is_false",
            severity=Severity.CRITICAL,
            cooldown_secs=30.0,
        ),
        ThresholdRuleConfig(
            name="low_cache_hit_rate",
            field="application.cache.hit_rate",
            op="lt",
            value=0.6,
            severity=Severity.LOW,
            cooldown_secs=600.0,
        ),
    ]


class AlertsConfig(BaseModel):
    """Alert engine configuration."""

    history_size: int = Field(default=1000, gt=0)
    active_window_secs: float = 3600.0
    recent_history_limit: int = 10
    remediation_timeout_secs: float = 10.0
    severity_cooldowns_secs: dict[Severity, float] = Field(
        default_factory=lambda: {
            Severity.CRITICAL: 60.0,
            Severity.HIGH: 300.0,
            Severity.MEDIUM: 300.0,
            Severity.LOW: 600.0,
        },
    )
    default_rules_enabled: bool = True
    default_remediations_enabled: bool = True
    rules: list[ThresholdRuleConfig] = Field(default_factory=_default_rules)


class TrackedFieldConfig(BaseModel):
    """A field whose baseline is learned during warm-up."""

    name: str
    category: str
    field: str
    k: float = Field(default=3.0, gt=0)


class BaselineConfig(BaseModel):
    """Baseline warm-up and anomaly detection configuration."""

    enabled: bool = True
    warmup_samples: int = Field(default=240, gt=0)
    tracked_fields: list[TrackedFieldConfig] = Field(
        default_factory=lambda: [
            TrackedFieldConfig(
                name="memory",
                category="system",
                field="memory.utilization",
                k=3.0,
            ),
            TrackedFieldConfig(
                name="response_time",
                category="application",
                field="endpoints.avg_response_time_ms",
                k=2.0,
            ),
        ],
    )


class TrendsConfig(BaseModel):
    """Trend analysis configuration."""

    enabled: bool = True
    window: int = Field(default=20, ge=3)
    tolerance: float = 0.01
    degradation_fields: list[str] = Field(
        default_factory=lambda: [
            "system.memory.utilization",
            "application.endpoints.avg_response_time_ms",
        ],
    )


class DashboardConfig(BaseModel):
    """Report broadcast and web adapter configuration."""

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080
    broadcast_interval_secs: float = 5.0
    fields: dict[str, str] = Field(
        default_factory=lambda: {
            "memory_usage": "system.memory.utilization",
            "cpu_usage": "system.cpu.utilization",
            "average_response_time": "application.endpoints.avg_response_time_ms",
            "error_rate": "application.errors.rate",
            "active_connections": "performance.network.connections",
            "loop_lag_ms": "performance.event_loop.lag_ms",
        },
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    quiet_loggers: list[str] = Field(
        default_factory=lambda: ["aiohttp.access", "httpx", "httpcore"],
    )


class Settings(BaseModel):
    """Root settings container."""

    metrics: MetricsConfig = MetricsConfig()
    health: HealthConfig = HealthConfig()
    breakers: list[BreakerConfig] = Field(
        default_factory=lambda: [
            BreakerConfig(name="database", failure_threshold=5, reset_timeout_secs=60.0),
            BreakerConfig(
                name="external_api", failure_threshold=3, reset_timeout_secs=120.0,
            ),
        ],
    )
    alerts: AlertsConfig = AlertsConfig()
    baseline: BaselineConfig = BaselineConfig()
    trends: TrendsConfig = TrendsConfig()
    dashboard: DashboardConfig = DashboardConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
