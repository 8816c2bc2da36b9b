"""Metric storage and periodic collection."""

from pulsewatch.metrics.scheduler import (
    CollectorScheduler,
    CycleCallback,
    MetricSource,
    MetricSourceFn,
)
from pulsewatch.metrics.sources import ProcessSource, event_loop_lag_source, gc_source
from pulsewatch.metrics.store import MetricStore, Snapshot, resolve_path

__all__ = [
    "CollectorScheduler",
    "CycleCallback",
    "MetricSource",
    "MetricSourceFn",
    "MetricStore",
    "ProcessSource",
    "Snapshot",
    "event_loop_lag_source",
    "gc_source",
    "resolve_path",
]
