"""Baseline anomaly detection and trend analysis."""

from pulsewatch.analysis.baseline import (
    AnomalyDetector,
    TrackedField,
    anomaly_alert_name,
    compute_baseline,
)
from pulsewatch.analysis.trends import (
    DEGRADATION_ALERT,
    TrendAnalyzer,
    classify_trend,
    linear_slope,
)

__all__ = [
    "DEGRADATION_ALERT",
    "AnomalyDetector",
    "TrackedField",
    "TrendAnalyzer",
    "anomaly_alert_name",
    "classify_trend",
    "compute_baseline",
    "linear_slope",
]
