"""Trend analysis over the recent history held in the MetricStore."""

from __future__ import annotations

import statistics
from collections.abc import Sequence

import structlog

from pulsewatch.alerts.engine import AlertEngine
from pulsewatch.core.types import Severity, TrendDirection
from pulsewatch.metrics.store import MetricStore

logger = structlog.stdlib.get_logger()

DEGRADATION_ALERT = "performance_degradation_trend"


def linear_slope(values: Sequence[float]) -> float:
    """Least-squares slope of *values* against their index."""
    if len(values) < 2:
        return 0.0
    return statistics.linear_regression(range(len(values)), values).slope


def classify_trend(values: Sequence[float], tolerance: float = 0.01) -> TrendDirection:
    """Classify the per-sample slope relative to the mean magnitude."""
    if len(values) < 3:
        return TrendDirection.STABLE
    scale = abs(statistics.fmean(values)) or 1.0
    relative = linear_slope(values) / scale
    if relative > tolerance:
        return TrendDirection.INCREASING
    if relative < -tolerance:
        return TrendDirection.DECREASING
    return TrendDirection.STABLE


class TrendAnalyzer:
    """Classifies recent trends and flags joint performance degradation.

    When every field in *degradation_fields* is trending upward over the
    window, a ``performance_degradation_trend`` alert is raised.
    """

    def __init__(
        self,
        store: MetricStore,
        degradation_fields: Sequence[str],
        window: int = 20,
        tolerance: float = 0.01,
        alerts: AlertEngine | None = None,
    ) -> None:
        self._store = store
        self._fields = list(degradation_fields)
        self._window = window
        self._tolerance = tolerance
        self._alerts = alerts

    def trends(self) -> dict[str, TrendDirection]:
        return {
            path: classify_trend(self._store.values(path, self._window), self._tolerance)
            for path in self._fields
        }

    async def analyze(self) -> dict[str, TrendDirection]:
        trends = self.trends()
        degrading = bool(trends) and all(
            t == TrendDirection.INCREASING for t in trends.values()
        )
        if degrading:
            logger.warning("performance_degradation_trend", trends=dict(trends))
            if self._alerts is not None:
                await self._alerts.raise_alert(
                    DEGRADATION_ALERT,
                    Severity.MEDIUM,
                    details={
                        "message": "Performance degradation trend detected",
                        "trends": {k: str(v) for k, v in trends.items()},
                    },
                )
        return trends
