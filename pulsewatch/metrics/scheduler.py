"""CollectorScheduler — periodic low/high cadence metric collection."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import structlog

from pulsewatch.core.exceptions import DuplicateRegistrationError, SourceCollectionError
from pulsewatch.core.types import Cadence, MetricSample
from pulsewatch.metrics.store import MetricStore, Snapshot

logger = structlog.stdlib.get_logger()

# A metric source returns a payload mapping, synchronously or as an awaitable.
MetricSourceFn = Callable[[], Mapping[str, Any] | Awaitable[Mapping[str, Any]]]

# Called with the post-tick snapshot after every low-cadence tick.
CycleCallback = Callable[[Snapshot], Awaitable[None] | None]


@dataclass(frozen=True)
class MetricSource:
    """A registered metric source."""

    name: str
    category: str
    fn: MetricSourceFn
    cadence: Cadence = Cadence.LOW


class CollectorScheduler:
    """Pulls registered metric sources on two cadences and records samples.

    Sources of the same category are merged into a single payload per tick,
    so every category is written once per tick by its own collector. A
    failing source is logged and skipped; it never blocks other sources.

    Usage::

        scheduler = CollectorScheduler(store, low_interval_secs=15)
        scheduler.register_source("proc", "system", read_process_stats)
        scheduler.on_cycle(engine.analyze)
        async with scheduler:
            await asyncio.sleep(60)
    """

    def __init__(
        self,
        store: MetricStore,
        low_interval_secs: float = 15.0,
        high_interval_secs: float = 5.0,
        source_timeout_secs: float = 5.0,
    ) -> None:
        self._store = store
        self._intervals: dict[Cadence, float] = {
            Cadence.LOW: low_interval_secs,
            Cadence.HIGH: high_interval_secs,
        }
        self._source_timeout_secs = source_timeout_secs
        self._sources: dict[str, MetricSource] = {}
        self._callbacks: list[CycleCallback] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False
        self._tick_counts: dict[Cadence, int] = {Cadence.LOW: 0, Cadence.HIGH: 0}
        self._source_errors: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return self._running

    @property
    def sources(self) -> list[MetricSource]:
        return list(self._sources.values())

    def tick_count(self, cadence: Cadence) -> int:
        """Number of completed ticks for *cadence*."""
        return self._tick_counts[cadence]

    def source_errors(self) -> dict[str, int]:
        """Failure count per source name."""
        return dict(self._source_errors)

    def register_source(
        self,
        name: str,
        category: str,
        fn: MetricSourceFn,
        cadence: Cadence = Cadence.LOW,
    ) -> MetricSource:
        """Register a metric source. Names must be unique."""
        if name in self._sources:
            raise DuplicateRegistrationError(f"metric source {name!r} already registered")
        source = MetricSource(name=name, category=category, fn=fn, cadence=cadence)
        self._sources[name] = source
        return source

    def on_cycle(self, callback: CycleCallback) -> None:
        """Register a callback invoked with the snapshot after each low tick."""
        self._callbacks.append(callback)

    # ── Collection ──────────────────────────────────────────────

    async def collect(self, cadence: Cadence) -> dict[str, MetricSample]:
        """Run a single tick for *cadence*; returns the samples recorded."""
        sources = [s for s in self._sources.values() if s.cadence == cadence]
        payloads = await asyncio.gather(*(self._collect_source(s) for s in sources))

        merged: dict[str, dict[str, Any]] = {}
        for source, payload in zip(sources, payloads):
            if payload is None:
                continue
            merged.setdefault(source.category, {}).update(payload)

        recorded = {
            category: self._store.record_metric(category, payload)
            for category, payload in merged.items()
        }
        self._tick_counts[cadence] += 1

        if cadence == Cadence.LOW:
            await self._notify(self._store.snapshot())
        return recorded

    async def _collect_source(self, source: MetricSource) -> dict[str, Any] | None:
        try:
            return await self._read_source(source)
        except SourceCollectionError as exc:
            self._source_errors[source.name] = self._source_errors.get(source.name, 0) + 1
            logger.warning(
                "source_collection_failed",
                source=source.name,
                category=source.category,
                error=str(exc),
            )
            return None

    async def _read_source(self, source: MetricSource) -> dict[str, Any]:
        try:
            result = source.fn()
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, self._source_timeout_secs)
        except TimeoutError as exc:
            raise SourceCollectionError(
                f"source {source.name!r} timed out after {self._source_timeout_secs}s"
            ) from exc
        except Exception as exc:
            raise SourceCollectionError(f"source {source.name!r} raised: {exc}") from exc

        if not isinstance(result, Mapping):
            raise SourceCollectionError(
                f"source {source.name!r} returned {type(result).__name__}, expected mapping"
            )
        return dict(result)

    async def _notify(self, snapshot: Snapshot) -> None:
        for cb in self._callbacks:
            try:
                result = cb(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("collector_cycle_callback_error")

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Start both cadence loops."""
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._loop(cadence), name=f"collector-{cadence}")
            for cadence in (Cadence.LOW, Cadence.HIGH)
        ]
        logger.info(
            "collector_started",
            sources=len(self._sources),
            low_interval_secs=self._intervals[Cadence.LOW],
            high_interval_secs=self._intervals[Cadence.HIGH],
        )

    async def stop(self) -> None:
        """Cancel both cadence loops."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("collector_stopped")

    async def _loop(self, cadence: Cadence) -> None:
        interval = self._intervals[cadence]
        while self._running:
            try:
                await self.collect(cadence)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("collector_tick_error", cadence=cadence)

            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

    async def __aenter__(self) -> CollectorScheduler:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
