"""Domain types for metrics, health checks, breakers, baselines and alerts."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(StrEnum):
    """Alert severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Cadence(StrEnum):
    """Collection cadence of a metric source."""

    LOW = "low"  # system / application / business
    HIGH = "high"  # performance-sensitive counters


class HealthStatus(StrEnum):
    """Outcome of a health check run."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class CheckState(StrEnum):
    """Lifecycle state of a scheduled health check."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class BreakerState(StrEnum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class OverallHealth(StrEnum):
    """Aggregate system health derived from active alerts."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    WARNING = "warning"
    CRITICAL = "critical"


class TrendDirection(StrEnum):
    """Direction of a metric over the trend window."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# ── Metrics ─────────────────────────────────────────────────────


class MetricSample(BaseModel):
    """A single immutable metric sample for one category."""

    model_config = ConfigDict(frozen=True)

    category: str
    payload: dict[str, Any] = Field(default_factory=dict)
    captured_at: float = Field(default_factory=time.time)


# ── Health checks ───────────────────────────────────────────────


class HealthCheckResult(BaseModel):
    """Result of one health check run, stored under ``health_<name>``."""

    name: str
    status: HealthStatus
    duration: float = 0.0
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    captured_at: float = Field(default_factory=time.time)


class HealthCheckSummary(BaseModel):
    """Latest known state of a registered health check."""

    status: HealthStatus = HealthStatus.UNKNOWN
    state: CheckState = CheckState.SCHEDULED
    last_check: float | None = None
    duration: float | None = None
    error: str | None = None
    interval: float
    consecutive_failures: int = 0


# ── Circuit breakers ────────────────────────────────────────────


class CircuitBreakerSnapshot(BaseModel):
    """Read-only copy of a circuit breaker's state."""

    name: str
    state: BreakerState
    failure_count: int
    failure_threshold: int
    reset_timeout: float
    last_failure_at: float | None = None


# ── Baselines / anomalies ───────────────────────────────────────


class Baseline(BaseModel):
    """Frozen statistical reference for one tracked field."""

    model_config = ConfigDict(frozen=True)

    name: str
    category: str
    field: str
    mean: float
    std_dev: float
    sample_count: int
    computed_at: float


class Anomaly(BaseModel):
    """A tracked field deviating from its baseline by more than k sigma."""

    name: str
    category: str
    field: str
    current: float
    mean: float
    std_dev: float
    deviation: float
    k: float


# ── Alerts ──────────────────────────────────────────────────────


class Alert(BaseModel):
    """A raised alert. Lifecycle: raised → acknowledged? → resolved?"""

    id: str
    name: str
    severity: Severity
    details: dict[str, Any] = Field(default_factory=dict)
    raised_at: float
    acknowledged: bool = False
    acknowledged_at: float | None = None
    resolved_at: float | None = None

    def is_active(self, now: float, window_secs: float) -> bool:
        """Unacknowledged, unresolved and raised within *window_secs* of *now*."""
        if self.acknowledged or self.resolved_at is not None:
            return False
        return now - self.raised_at < window_secs


# ── Report ──────────────────────────────────────────────────────


class MonitoringReport(BaseModel):
    """Point-in-time report for dashboards and broadcasters."""

    overall_health: OverallHealth
    active_alerts: list[Alert] = Field(default_factory=list)
    recent_alert_history: list[Alert] = Field(default_factory=list)
    health_check_summary: dict[str, HealthCheckSummary] = Field(default_factory=dict)
    circuit_breaker_states: dict[str, CircuitBreakerSnapshot] = Field(
        default_factory=dict,
    )
    baselines: dict[str, Baseline] = Field(default_factory=dict)
    baseline_ready: bool = False
    dashboard_snapshot: dict[str, Any] = Field(default_factory=dict)
    current_metrics: dict[str, dict[str, Any]] = Field(default_factory=dict)
    uptime_secs: float = 0.0
    generated_at: float = Field(default_factory=time.time)
