"""MetricStore — bounded rolling buffers of samples keyed by category.

Every downstream consumer (alert rules, anomaly detection, reports) reads a
``Snapshot``: an immutable view of the latest sample per category taken at
one instant, so all evaluations in a cycle see the same data.
"""

from __future__ import annotations

import copy
import time
from collections import deque
from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from pulsewatch.core.types import MetricSample

_MISSING = object()


def resolve_path(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Look up a dotted *path* (``"memory.utilization"``) in nested mappings."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


class Snapshot(Mapping[str, MetricSample]):
    """Immutable point-in-time view: category → latest MetricSample.

    Usage::

        snap = store.snapshot()
        snap["system"].payload          # latest system sample payload
        snap.value("system.memory.utilization")  # dotted lookup, None if absent
    """

    def __init__(
        self,
        samples: Mapping[str, MetricSample],
        taken_at: float | None = None,
    ) -> None:
        self._samples: Mapping[str, MetricSample] = MappingProxyType(dict(samples))
        self._taken_at = taken_at if taken_at is not None else time.time()

    @property
    def taken_at(self) -> float:
        return self._taken_at

    def __getitem__(self, category: str) -> MetricSample:
        return self._samples[category]

    def __iter__(self) -> Iterator[str]:
        return iter(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def payload(self, category: str) -> dict[str, Any]:
        """Payload of the latest sample in *category*, empty if absent."""
        sample = self._samples.get(category)
        return sample.payload if sample is not None else {}

    def value(self, path: str, default: Any = None) -> Any:
        """Resolve ``"<category>.<field>[.<field>...]"`` against the snapshot."""
        category, _, rest = path.partition(".")
        sample = self._samples.get(category)
        if sample is None:
            return default
        if not rest:
            return sample.payload
        return resolve_path(sample.payload, rest, default)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Plain ``{category: payload}`` copy, safe to serialise or mutate."""
        return {
            category: copy.deepcopy(sample.payload)
            for category, sample in self._samples.items()
        }


class MetricStore:
    """Append-only ring buffers of MetricSamples, one per category.

    Each category is expected to have a single writer (its collector);
    samples are immutable, so readers never observe a half-written sample.
    """

    def __init__(
        self,
        capacity: int = 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._clock = clock
        self._buffers: dict[str, deque[MetricSample]] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def record_metric(
        self,
        category: str,
        payload: Mapping[str, Any],
        captured_at: float | None = None,
    ) -> MetricSample:
        """Append a timestamped sample, evicting the oldest beyond capacity."""
        sample = MetricSample(
            category=category,
            payload=copy.deepcopy(dict(payload)),
            captured_at=captured_at if captured_at is not None else self._clock(),
        )
        buffer = self._buffers.get(category)
        if buffer is None:
            buffer = deque(maxlen=self._capacity)
            self._buffers[category] = buffer
        buffer.append(sample)
        return sample

    def latest(self, category: str) -> MetricSample | None:
        """Most recent sample in *category*, or None."""
        buffer = self._buffers.get(category)
        if not buffer:
            return None
        return buffer[-1]

    def history(self, category: str, limit: int | None = None) -> list[MetricSample]:
        """Samples in *category*, oldest first (copy of the buffer)."""
        samples = list(self._buffers.get(category, ()))
        if limit is not None:
            samples = samples[-limit:] if limit > 0 else []
        return samples

    def values(self, path: str, limit: int | None = None) -> list[float]:
        """Numeric values of a dotted ``"<category>.<field>"`` path over time."""
        category, _, rest = path.partition(".")
        out: list[float] = []
        for sample in self.history(category, limit):
            value = resolve_path(sample.payload, rest) if rest else None
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                out.append(float(value))
        return out

    def categories(self) -> list[str]:
        return list(self._buffers)

    def count(self, category: str) -> int:
        return len(self._buffers.get(category, ()))

    def snapshot(self) -> Snapshot:
        """Latest sample per known category, as an immutable Snapshot."""
        latest = {
            category: buffer[-1]
            for category, buffer in list(self._buffers.items())
            if buffer
        }
        return Snapshot(latest, taken_at=self._clock())
