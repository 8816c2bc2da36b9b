"""Baseline learning and k-sigma anomaly detection.

The detector spends a warm-up window collecting values for each tracked
field, then freezes a mean / standard deviation per field. After that,
every snapshot is compared against the frozen baseline; new samples never
move it. ``recalculate()`` is the only way to learn a new one.
"""

from __future__ import annotations

import statistics
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

import structlog

from pulsewatch.alerts.engine import AlertEngine
from pulsewatch.core.types import Anomaly, Baseline, Severity
from pulsewatch.metrics.store import Snapshot

logger = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class TrackedField:
    """A numeric field watched for anomalies; *k* is its sigma multiplier."""

    name: str
    category: str
    field: str
    k: float = 3.0

    @property
    def path(self) -> str:
        return f"{self.category}.{self.field}"


def compute_baseline(values: Sequence[float]) -> tuple[float, float]:
    """Population mean and standard deviation of *values*."""
    if not values:
        raise ValueError("cannot compute a baseline from no values")
    mean = statistics.fmean(values)
    return mean, statistics.pstdev(values, mu=mean)


def _numeric(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def anomaly_alert_name(name: str) -> str:
    return f"anomaly_{name}"


class AnomalyDetector:
    """Learns a baseline from the first N snapshots, then flags deviations.

    Usage::

        detector = AnomalyDetector(
            [TrackedField("memory", "system", "memory.utilization", k=3)],
            warmup_samples=240,
            alerts=alert_engine,
        )
        await detector.observe(store.snapshot())  # once per low-cadence tick
    """

    def __init__(
        self,
        tracked_fields: Iterable[TrackedField],
        warmup_samples: int = 240,
        alerts: AlertEngine | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if warmup_samples <= 0:
            raise ValueError("warmup_samples must be positive")
        self._fields = list(tracked_fields)
        self._warmup_samples = warmup_samples
        self._alerts = alerts
        self._clock = clock
        self._observed = 0
        self._values: dict[str, list[float]] = {f.name: [] for f in self._fields}
        self._baselines: dict[str, Baseline] = {}
        self._ready = False

    @property
    def ready(self) -> bool:
        """Whether warm-up has completed and a baseline is frozen."""
        return self._ready

    @property
    def tracked_fields(self) -> list[TrackedField]:
        return list(self._fields)

    @property
    def warmup_progress(self) -> tuple[int, int]:
        """(snapshots observed, snapshots required) during warm-up."""
        return min(self._observed, self._warmup_samples), self._warmup_samples

    def baselines(self) -> dict[str, Baseline]:
        return dict(self._baselines)

    async def observe(self, snapshot: Snapshot) -> list[Anomaly]:
        """Feed one low-cadence snapshot; raises alerts for any anomalies."""
        if not self._ready:
            self._collect(snapshot)
            return []

        anomalies = self.detect(snapshot)
        for anomaly in anomalies:
            logger.warning(
                "anomaly_detected",
                field=anomaly.name,
                current=anomaly.current,
                mean=anomaly.mean,
                deviation=anomaly.deviation,
                k=anomaly.k,
            )
            if self._alerts is not None:
                await self._alerts.raise_alert(
                    anomaly_alert_name(anomaly.name),
                    Severity.MEDIUM,
                    details={
                        "message": f"Performance anomaly detected: {anomaly.name}",
                        "anomaly": anomaly.model_dump(),
                    },
                )
        return anomalies

    def detect(self, snapshot: Snapshot) -> list[Anomaly]:
        """Compare *snapshot* against the frozen baseline; no side effects."""
        if not self._ready:
            return []

        anomalies: list[Anomaly] = []
        for tracked in self._fields:
            baseline = self._baselines.get(tracked.name)
            if baseline is None:
                continue
            current = _numeric(snapshot.value(tracked.path))
            if current is None:
                continue
            deviation = abs(current - baseline.mean)
            if deviation > tracked.k * baseline.std_dev:
                anomalies.append(Anomaly(
                    name=tracked.name,
                    category=tracked.category,
                    field=tracked.field,
                    current=current,
                    mean=baseline.mean,
                    std_dev=baseline.std_dev,
                    deviation=deviation,
                    k=tracked.k,
                ))
        return anomalies

    def recalculate(self) -> None:
        """Discard the frozen baseline and start a fresh warm-up window."""
        self._ready = False
        self._observed = 0
        self._baselines = {}
        self._values = {f.name: [] for f in self._fields}
        logger.info("baseline_recalculation_started", warmup_samples=self._warmup_samples)

    def _collect(self, snapshot: Snapshot) -> None:
        for tracked in self._fields:
            value = _numeric(snapshot.value(tracked.path))
            if value is not None:
                self._values[tracked.name].append(value)
        self._observed += 1
        if self._observed >= self._warmup_samples:
            self._freeze()

    def _freeze(self) -> None:
        now = self._clock()
        for tracked in self._fields:
            values = self._values[tracked.name]
            if not values:
                logger.warning("baseline_field_missing", field=tracked.name)
                continue
            mean, std_dev = compute_baseline(values)
            self._baselines[tracked.name] = Baseline(
                name=tracked.name,
                category=tracked.category,
                field=tracked.field,
                mean=mean,
                std_dev=std_dev,
                sample_count=len(values),
                computed_at=now,
            )
        self._values = {f.name: [] for f in self._fields}
        self._ready = True
        logger.info(
            "baseline_established",
            fields={name: round(b.mean, 4) for name, b in self._baselines.items()},
        )
