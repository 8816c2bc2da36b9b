"""Core module — config, types, logging, exceptions."""

from pulsewatch.core.config import Settings, get_settings, load_settings, reset_settings
from pulsewatch.core.exceptions import (
    ConfigurationError,
    DuplicateRegistrationError,
    HealthCheckError,
    HealthCheckFailure,
    HealthCheckTimeout,
    MonitorError,
    RemediationError,
    RuleEvaluationError,
    SourceCollectionError,
    UnknownCircuitBreakerError,
)
from pulsewatch.core.logging import setup_logging
from pulsewatch.core.types import (
    Alert,
    Anomaly,
    Baseline,
    BreakerState,
    Cadence,
    CheckState,
    CircuitBreakerSnapshot,
    HealthCheckResult,
    HealthCheckSummary,
    HealthStatus,
    MetricSample,
    MonitoringReport,
    OverallHealth,
    Severity,
    TrendDirection,
)

__all__ = [
    "Alert",
    "Anomaly",
    "Baseline",
    "BreakerState",
    "Cadence",
    "CheckState",
    "CircuitBreakerSnapshot",
    "ConfigurationError",
    "DuplicateRegistrationError",
    "HealthCheckError",
    "HealthCheckFailure",
    "HealthCheckResult",
    "HealthCheckSummary",
    "HealthCheckTimeout",
    "HealthStatus",
    "MetricSample",
    "MonitorError",
    "MonitoringReport",
    "OverallHealth",
    "RemediationError",
    "RuleEvaluationError",
    "Settings",
    "Severity",
    "SourceCollectionError",
    "TrendDirection",
    "UnknownCircuitBreakerError",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
