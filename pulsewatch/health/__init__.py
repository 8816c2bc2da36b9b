"""Scheduled health checks."""

from pulsewatch.health.checks import disk_space_check, http_check
from pulsewatch.health.runner import (
    HealthCheckFn,
    HealthCheckRunner,
    HealthCheckSpec,
    health_alert_name,
    health_category,
)

__all__ = [
    "HealthCheckFn",
    "HealthCheckRunner",
    "HealthCheckSpec",
    "disk_space_check",
    "health_alert_name",
    "health_category",
    "http_check",
]
