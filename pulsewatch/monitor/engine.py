"""MonitoringEngine — explicit owner of every monitoring component.

The engine is constructed with its collaborators (or builds them from
``Settings``), exposes registration and query operations, and runs the
collection, health check and broadcast loops between ``start()`` and
``stop()``. There is no module-level instance.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from types import TracebackType
from typing import Any

import structlog

from pulsewatch.alerts.engine import AlertCallback, AlertEngine
from pulsewatch.alerts.remediation import RemediationAction, RemediationDispatcher
from pulsewatch.alerts.rules import AlertRule
from pulsewatch.analysis.baseline import AnomalyDetector, TrackedField
from pulsewatch.analysis.trends import TrendAnalyzer
from pulsewatch.core.config import Settings, get_settings
from pulsewatch.core.types import Cadence, MetricSample, MonitoringReport
from pulsewatch.health.runner import HealthCheckRunner, HealthCheckSpec
from pulsewatch.metrics.scheduler import CollectorScheduler, MetricSource, MetricSourceFn
from pulsewatch.metrics.store import MetricStore, Snapshot
from pulsewatch.monitor.report import ReportAggregator
from pulsewatch.monitor.sinks import BroadcastSink
from pulsewatch.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry

logger = structlog.stdlib.get_logger()

ReportCallback = Callable[[MonitoringReport], Awaitable[None] | None]


class MonitoringEngine:
    """Wires the metric store, collectors, health checks, breakers,
    anomaly detection, alerting, remediation and reporting together.

    Usage::

        engine = MonitoringEngine(settings)
        engine.register_source("proc", "system", ProcessSource())
        engine.register_rule(AlertRule("high_memory", cond, Severity.HIGH))
        engine.on_alert(print)

        async with engine:
            await stop_event.wait()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: MetricStore | None = None,
        remediation: RemediationDispatcher | None = None,
        alerts: AlertEngine | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        health: HealthCheckRunner | None = None,
        scheduler: CollectorScheduler | None = None,
        detector: AnomalyDetector | None = None,
        trends: TrendAnalyzer | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        cfg = settings or get_settings()
        self._settings = cfg
        self._clock = clock

        self._store = store or MetricStore(capacity=cfg.metrics.capacity, clock=clock)
        self._remediation = remediation or RemediationDispatcher(
            timeout_secs=cfg.alerts.remediation_timeout_secs,
        )
        self._alerts = alerts or AlertEngine(
            remediation=self._remediation,
            history_size=cfg.alerts.history_size,
            active_window_secs=cfg.alerts.active_window_secs,
            severity_cooldowns=cfg.alerts.severity_cooldowns_secs,
            clock=clock,
        )
        self._breakers = breakers or CircuitBreakerRegistry(clock=clock)
        self._health = health or HealthCheckRunner(
            self._store, alerts=self._alerts, breakers=self._breakers, clock=clock,
        )
        self._scheduler = scheduler or CollectorScheduler(
            self._store,
            low_interval_secs=cfg.metrics.low_interval_secs,
            high_interval_secs=cfg.metrics.high_interval_secs,
            source_timeout_secs=cfg.metrics.source_timeout_secs,
        )
        if detector is None and cfg.baseline.enabled:
            detector = AnomalyDetector(
                [
                    TrackedField(name=f.name, category=f.category, field=f.field, k=f.k)
                    for f in cfg.baseline.tracked_fields
                ],
                warmup_samples=cfg.baseline.warmup_samples,
                alerts=self._alerts,
                clock=clock,
            )
        self._detector = detector
        if trends is None and cfg.trends.enabled:
            trends = TrendAnalyzer(
                self._store,
                cfg.trends.degradation_fields,
                window=cfg.trends.window,
                tolerance=cfg.trends.tolerance,
                alerts=self._alerts,
            )
        self._trends = trends
        self._report = ReportAggregator(
            self._store,
            self._alerts,
            health=self._health,
            breakers=self._breakers,
            detector=self._detector,
            dashboard_fields=cfg.dashboard.fields,
            recent_history_limit=cfg.alerts.recent_history_limit,
            clock=clock,
        )

        self._sinks: list[BroadcastSink] = []
        self._report_callbacks: list[ReportCallback] = []
        self._analysis_tasks: set[asyncio.Task[None]] = set()
        self._broadcast_task: asyncio.Task[None] | None = None
        self._running = False

        self._scheduler.on_cycle(self._on_low_cycle)

    # ── Components ──────────────────────────────────────────────

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> MetricStore:
        return self._store

    @property
    def alerts(self) -> AlertEngine:
        return self._alerts

    @property
    def remediation(self) -> RemediationDispatcher:
        return self._remediation

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    @property
    def health(self) -> HealthCheckRunner:
        return self._health

    @property
    def scheduler(self) -> CollectorScheduler:
        return self._scheduler

    @property
    def detector(self) -> AnomalyDetector | None:
        return self._detector

    @property
    def trends(self) -> TrendAnalyzer | None:
        return self._trends

    @property
    def running(self) -> bool:
        return self._running

    # ── Registration ────────────────────────────────────────────

    def record_metric(self, category: str, payload: Mapping[str, Any]) -> MetricSample:
        return self._store.record_metric(category, payload)

    def register_source(
        self,
        name: str,
        category: str,
        fn: MetricSourceFn,
        cadence: Cadence = Cadence.LOW,
    ) -> MetricSource:
        return self._scheduler.register_source(name, category, fn, cadence)

    def register_rule(self, rule: AlertRule) -> None:
        self._alerts.register_rule(rule)

    def register_health_check(self, spec: HealthCheckSpec) -> None:
        self._health.register(spec)

    def register_remediation(self, alert_name: str, action: RemediationAction) -> None:
        self._remediation.register(alert_name, action)

    def register_circuit_breaker(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
    ) -> CircuitBreaker:
        return self._breakers.register(name, failure_threshold, reset_timeout)

    def on_alert(self, handler: AlertCallback) -> None:
        self._alerts.on_alert(handler)

    def on_report(self, handler: ReportCallback) -> None:
        self._report_callbacks.append(handler)

    def on(self, event: str, handler: Callable[[Any], Awaitable[None] | None]) -> None:
        """Subscribe to ``"alert"`` or ``"report"`` events."""
        if event == "alert":
            self.on_alert(handler)
        elif event == "report":
            self.on_report(handler)
        else:
            raise ValueError(f"unknown event {event!r}")

    def add_sink(self, sink: BroadcastSink) -> None:
        """Attach a broadcast sink for alerts and periodic reports."""
        self._sinks.append(sink)
        self._alerts.on_alert(sink.on_alert)

    # ── Queries ─────────────────────────────────────────────────

    def get_report(self) -> MonitoringReport:
        return self._report.get_report()

    # ── Cycles ──────────────────────────────────────────────────

    async def analyze(self, snapshot: Snapshot) -> None:
        """Rule evaluation, anomaly detection and trend analysis for one cycle."""
        try:
            await self._alerts.evaluate(snapshot)
        except Exception:
            logger.exception("rule_evaluation_cycle_error")

        if self._detector is not None:
            try:
                await self._detector.observe(snapshot)
            except Exception:
                logger.exception("anomaly_detection_error")

        if self._trends is not None:
            try:
                await self._trends.analyze()
            except Exception:
                logger.exception("trend_analysis_error")

    async def run_low_cycle(self) -> None:
        """Collect one low-cadence tick and wait for its analysis to finish."""
        await self._scheduler.collect(Cadence.LOW)
        await self.wait_idle()

    async def run_high_cycle(self) -> None:
        await self._scheduler.collect(Cadence.HIGH)

    async def wait_idle(self) -> None:
        """Wait until every scheduled analysis task and remediation has finished."""
        while True:
            pending = [t for t in self._analysis_tasks if not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        await self._alerts.wait_idle()

    def _on_low_cycle(self, snapshot: Snapshot) -> None:
        # Analysis runs beside collection so a slow rule never delays the next tick.
        task = asyncio.create_task(self.analyze(snapshot), name="analysis-cycle")
        self._analysis_tasks.add(task)
        task.add_done_callback(self._analysis_tasks.discard)

    async def broadcast(self) -> MonitoringReport:
        """Build a report and push it to every sink and report subscriber."""
        report = self.get_report()
        for sink in self._sinks:
            try:
                await sink.push_report(report)
            except Exception:
                logger.exception("sink_push_error", sink=type(sink).__name__)
        for cb in self._report_callbacks:
            try:
                result = cb(report)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("report_callback_error")
        return report

    async def _broadcast_loop(self) -> None:
        interval = self._settings.dashboard.broadcast_interval_secs
        while self._running:
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            try:
                await self.broadcast()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("broadcast_loop_error")

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        await self._scheduler.start()
        await self._health.start()
        self._broadcast_task = asyncio.create_task(self._broadcast_loop(), name="broadcast")
        logger.info(
            "monitoring_engine_started",
            sources=len(self._scheduler.sources),
            rules=len(self._alerts.rules),
            health_checks=len(self._health.specs),
            breakers=len(self._breakers.names),
            sinks=len(self._sinks),
        )

    async def stop(self) -> None:
        """Cancel timers, let in-flight checks and analysis finish, close sinks."""
        if not self._running:
            return
        self._running = False

        if self._broadcast_task is not None:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None

        await self._scheduler.stop()
        await self._health.stop()
        await self.wait_idle()

        for sink in self._sinks:
            try:
                await sink.close()
            except Exception:
                logger.exception("sink_close_error", sink=type(sink).__name__)
        logger.info("monitoring_engine_stopped")

    async def __aenter__(self) -> MonitoringEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
