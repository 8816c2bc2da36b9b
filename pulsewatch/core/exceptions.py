"""Exception hierarchy for the monitoring engine."""

from __future__ import annotations


class MonitorError(Exception):
    """Base exception for all monitoring errors."""


class ConfigurationError(MonitorError):
    """Invalid registration or configuration, raised eagerly at startup."""


class DuplicateRegistrationError(ConfigurationError):
    """A rule, check, source or breaker name was registered twice."""


class UnknownCircuitBreakerError(ConfigurationError, KeyError):
    """No circuit breaker is registered under the given name."""


class SourceCollectionError(MonitorError):
    """A metric source failed during a collection tick."""


class HealthCheckError(MonitorError):
    """Base exception for health check failures."""


class HealthCheckTimeout(HealthCheckError):
    """A health check did not complete within its timeout."""


class HealthCheckFailure(HealthCheckError):
    """A health check raised or reported a logical failure."""


class RemediationError(MonitorError):
    """A remediation action failed or timed out."""


class RuleEvaluationError(MonitorError):
    """An alert rule condition raised during evaluation."""
