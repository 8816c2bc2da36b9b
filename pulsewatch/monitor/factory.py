"""Convenience factory for wiring a MonitoringEngine from settings."""

from __future__ import annotations

import gc
from collections.abc import Callable

import structlog

from pulsewatch.alerts.rules import rules_from_config
from pulsewatch.core.config import Settings, get_settings
from pulsewatch.core.types import Cadence
from pulsewatch.health.checks import disk_space_check, http_check
from pulsewatch.health.runner import HealthCheckSpec
from pulsewatch.metrics.sources import ProcessSource, event_loop_lag_source, gc_source
from pulsewatch.monitor.engine import MonitoringEngine
from pulsewatch.resilience.circuit_breaker import CircuitBreakerRegistry

logger = structlog.get_logger(__name__)


def _collect_garbage() -> None:
    freed = gc.collect()
    logger.info("remediation_gc_collected", objects=freed)


def _open_breaker(breakers: CircuitBreakerRegistry, name: str) -> Callable[[], None]:
    def _action() -> None:
        if name in breakers:
            breakers.force_open(name)

    return _action


def create_engine(
    settings: Settings | None = None,
    *,
    process_sources: bool = True,
    builtin_checks: bool = True,
) -> MonitoringEngine:
    """Build an engine with the configured breakers, rules and remediations.

    Args:
        settings: Settings to use. Uses the cached settings if None.
        process_sources: Register the reference process/GC/event-loop sources.
        builtin_checks: Register the disk space check and configured HTTP checks.
    """
    cfg = settings or get_settings()
    engine = MonitoringEngine(cfg)

    for breaker in cfg.breakers:
        engine.register_circuit_breaker(
            breaker.name,
            failure_threshold=breaker.failure_threshold,
            reset_timeout=breaker.reset_timeout_secs,
        )

    if cfg.alerts.default_rules_enabled:
        for rule in rules_from_config(cfg.alerts.rules):
            engine.register_rule(rule)

    if cfg.alerts.default_remediations_enabled:
        engine.register_remediation("high_memory_usage", _collect_garbage)
        engine.register_remediation(
            "high_error_rate", _open_breaker(engine.breakers, "external_api"),
        )
        engine.register_remediation(
            "database_connection_failure", _open_breaker(engine.breakers, "database"),
        )

    if process_sources:
        engine.register_source("process", "system", ProcessSource(), Cadence.LOW)
        engine.register_source("gc", "performance", gc_source, Cadence.HIGH)
        engine.register_source(
            "event_loop", "performance", event_loop_lag_source, Cadence.HIGH,
        )

    if builtin_checks:
        health = cfg.health
        engine.register_health_check(HealthCheckSpec(
            name="disk_space",
            check_fn=disk_space_check(health.disk_path, health.disk_min_free_pct),
            interval=300.0,
            timeout=health.default_timeout_secs,
            retries=health.default_retries,
        ))
        for name, url in health.http_endpoints.items():
            engine.register_health_check(HealthCheckSpec(
                name=name,
                check_fn=http_check(url),
                interval=health.default_interval_secs,
                timeout=health.default_timeout_secs,
                retries=health.default_retries,
            ))

    return engine
