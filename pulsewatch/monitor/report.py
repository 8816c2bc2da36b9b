"""ReportAggregator — composes a consistent MonitoringReport."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pulsewatch.alerts.engine import AlertEngine
from pulsewatch.analysis.baseline import AnomalyDetector
from pulsewatch.core.types import Alert, MonitoringReport, OverallHealth, Severity
from pulsewatch.health.runner import HealthCheckRunner
from pulsewatch.metrics.store import MetricStore, Snapshot
from pulsewatch.resilience.circuit_breaker import CircuitBreakerRegistry


def compute_overall_health(active_alerts: Iterable[Alert]) -> OverallHealth:
    """critical > warning (high) > degraded (any) > healthy."""
    severities = {a.severity for a in active_alerts}
    if Severity.CRITICAL in severities:
        return OverallHealth.CRITICAL
    if Severity.HIGH in severities:
        return OverallHealth.WARNING
    if severities:
        return OverallHealth.DEGRADED
    return OverallHealth.HEALTHY


class ReportAggregator:
    """Builds point-in-time reports from the engine's components.

    Every report is built from one ``Snapshot`` and one read of the active
    alerts, so its sections agree with each other.
    """

    def __init__(
        self,
        store: MetricStore,
        alerts: AlertEngine,
        health: HealthCheckRunner | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        detector: AnomalyDetector | None = None,
        dashboard_fields: Mapping[str, str] | None = None,
        recent_history_limit: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._alerts = alerts
        self._health = health
        self._breakers = breakers
        self._detector = detector
        self._dashboard_fields = dict(dashboard_fields or {})
        self._recent_history_limit = recent_history_limit
        self._clock = clock
        self._started_at = clock()

    def get_report(self) -> MonitoringReport:
        now = self._clock()
        snapshot = self._store.snapshot()
        active = self._alerts.active_alerts(now)
        overall = compute_overall_health(active)

        return MonitoringReport(
            overall_health=overall,
            active_alerts=active,
            recent_alert_history=self._alerts.history(self._recent_history_limit),
            health_check_summary=self._health.summary() if self._health else {},
            circuit_breaker_states=self._breakers.states() if self._breakers else {},
            baselines=self._detector.baselines() if self._detector else {},
            baseline_ready=self._detector.ready if self._detector else False,
            dashboard_snapshot=self.dashboard_snapshot(snapshot, active, overall, now),
            current_metrics=snapshot.to_dict(),
            uptime_secs=now - self._started_at,
            generated_at=now,
        )

    def dashboard_snapshot(
        self,
        snapshot: Snapshot,
        active: list[Alert],
        overall: OverallHealth,
        now: float,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            name: snapshot.value(path, 0) for name, path in self._dashboard_fields.items()
        }
        data.update({
            "system_health": overall.value,
            "active_alert_count": len(active),
            "alerts": [
                {"id": a.id, "name": a.name, "severity": a.severity.value}
                for a in active
            ],
            "last_updated": now,
        })
        return data
