"""Tests for MonitoringEngine and create_engine — wiring, cycles, lifecycle."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pulsewatch.alerts.rules import AlertRule, threshold_condition
from pulsewatch.core.config import (
    AlertsConfig,
    BaselineConfig,
    DashboardConfig,
    MetricsConfig,
    Settings,
    TrendsConfig,
)
from pulsewatch.core.types import (
    Alert,
    BreakerState,
    Cadence,
    MonitoringReport,
    OverallHealth,
    Severity,
)
from pulsewatch.health.runner import HealthCheckSpec
from pulsewatch.monitor.engine import MonitoringEngine
from pulsewatch.monitor.factory import create_engine
from pulsewatch.monitor.sinks import BroadcastSink


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSink(BroadcastSink):
    def __init__(self) -> None:
        self.reports: list[MonitoringReport] = []
        self.alerts: list[Alert] = []
        self.closed = False

    async def push_report(self, report: MonitoringReport) -> None:
        self.reports.append(report)

    async def on_alert(self, alert: Alert) -> None:
        self.alerts.append(alert)

    async def close(self) -> None:
        self.closed = True


def _settings(**kw: Any) -> Settings:
    defaults: dict[str, Any] = {
        "baseline": BaselineConfig(enabled=False),
        "trends": TrendsConfig(enabled=False),
    }
    defaults.update(kw)
    return Settings(**defaults)


def _memory_rule(cooldown: float = 5.0) -> AlertRule:
    return AlertRule(
        "high_memory_usage",
        threshold_condition("system.memory.utilization", "gt", 85),
        Severity.HIGH,
        cooldown_secs=cooldown,
    )


# ── Registration ────────────────────────────────────────────────


class TestRegistration:
    def test_components_exposed(self) -> None:
        engine = MonitoringEngine(_settings())
        assert engine.detector is None
        assert engine.trends is None
        assert engine.alerts.rules == []
        assert engine.breakers.names == []

    def test_unknown_event_rejected(self) -> None:
        engine = MonitoringEngine(_settings())
        with pytest.raises(ValueError):
            engine.on("metrics", lambda _: None)

    def test_register_circuit_breaker(self) -> None:
        engine = MonitoringEngine(_settings())
        engine.register_circuit_breaker("database", failure_threshold=2, reset_timeout=5)
        assert engine.breakers.get("database").failure_threshold == 2


# ── Cycles ──────────────────────────────────────────────────────


class TestCycles:
    async def test_low_cycle_evaluates_rules(self) -> None:
        clock = FakeClock()
        engine = MonitoringEngine(_settings(), clock=clock)
        engine.register_rule(_memory_rule())
        engine.register_source("mem", "system", lambda: {"memory": {"utilization": 90}})
        seen: list[Alert] = []
        engine.on("alert", seen.append)

        await engine.run_low_cycle()
        clock.now += 1
        await engine.run_low_cycle()

        assert [a.name for a in seen] == ["high_memory_usage"]
        assert engine.get_report().overall_health == OverallHealth.WARNING

    async def test_high_cycle_does_not_evaluate(self) -> None:
        engine = MonitoringEngine(_settings())
        engine.register_rule(_memory_rule())
        engine.register_source(
            "mem", "system", lambda: {"memory": {"utilization": 90}}, Cadence.HIGH,
        )

        await engine.run_high_cycle()
        await engine.wait_idle()

        assert engine.alerts.history() == []
        assert engine.store.count("system") == 1

    async def test_record_metric_then_analyze(self) -> None:
        engine = MonitoringEngine(_settings())
        engine.register_rule(_memory_rule())
        engine.record_metric("system", {"memory": {"utilization": 99}})

        await engine.analyze(engine.store.snapshot())

        assert len(engine.alerts.history()) == 1

    async def test_remediation_dispatched(self) -> None:
        engine = MonitoringEngine(_settings())
        engine.register_rule(_memory_rule())
        calls: list[str] = []
        engine.register_remediation("high_memory_usage", lambda: calls.append("gc"))
        engine.record_metric("system", {"memory": {"utilization": 99}})

        await engine.analyze(engine.store.snapshot())
        await engine.wait_idle()

        assert calls == ["gc"]

    async def test_baseline_warmup_through_cycles(self) -> None:
        settings = _settings(baseline=BaselineConfig(enabled=True, warmup_samples=3))
        engine = MonitoringEngine(settings)
        values = iter([50.0, 51.0, 49.0, 95.0])
        engine.register_source(
            "mem", "system", lambda: {"memory": {"utilization": next(values)}},
        )

        for _ in range(3):
            await engine.run_low_cycle()
        assert engine.detector is not None
        assert engine.detector.ready

        await engine.run_low_cycle()
        assert "anomaly_memory" in [a.name for a in engine.alerts.history()]

    async def test_health_failure_after_recovery_degrades_report(self) -> None:
        clock = FakeClock()
        engine = MonitoringEngine(_settings(), clock=clock)
        healthy = {"value": False}

        async def database() -> bool:
            return healthy["value"]

        engine.register_health_check(HealthCheckSpec("database", database))
        await engine.health.run_check("database")

        clock.now = 1030.0
        healthy["value"] = True
        await engine.health.run_check("database")
        assert engine.get_report().overall_health == OverallHealth.HEALTHY

        clock.now = 1060.0
        healthy["value"] = False
        await engine.health.run_check("database")

        report = engine.get_report()
        assert report.overall_health != OverallHealth.HEALTHY
        assert [a.name for a in report.active_alerts] == ["health_check_database"]


# ── Broadcast ───────────────────────────────────────────────────


class TestBroadcast:
    async def test_broadcast_to_sinks_and_callbacks(self) -> None:
        engine = MonitoringEngine(_settings())
        sink = RecordingSink()
        engine.add_sink(sink)
        reports: list[MonitoringReport] = []

        async def on_report(report: MonitoringReport) -> None:
            reports.append(report)

        engine.on_report(on_report)
        await engine.broadcast()

        assert len(sink.reports) == 1
        assert len(reports) == 1

    async def test_sink_receives_alerts(self) -> None:
        engine = MonitoringEngine(_settings())
        sink = RecordingSink()
        engine.add_sink(sink)

        await engine.alerts.raise_alert("x", Severity.LOW)

        assert [a.name for a in sink.alerts] == ["x"]

    async def test_failing_sink_isolated(self) -> None:
        class Broken(BroadcastSink):
            async def push_report(self, report: MonitoringReport) -> None:
                raise RuntimeError("down")

        engine = MonitoringEngine(_settings())
        good = RecordingSink()
        engine.add_sink(Broken())
        engine.add_sink(good)

        await engine.broadcast()

        assert len(good.reports) == 1


# ── Lifecycle ───────────────────────────────────────────────────


class TestLifecycle:
    async def test_start_and_stop(self) -> None:
        settings = _settings(
            metrics=MetricsConfig(low_interval_secs=0.01, high_interval_secs=0.01),
            dashboard=DashboardConfig(broadcast_interval_secs=0.01),
        )
        engine = MonitoringEngine(settings)
        sink = RecordingSink()
        engine.add_sink(sink)
        engine.register_source("mem", "system", lambda: {"memory": {"utilization": 10}})

        async def db_ok() -> None:
            return None

        engine.register_health_check(HealthCheckSpec("database", db_ok, interval=0.01))

        async with engine:
            assert engine.running
            await asyncio.sleep(0.1)

        assert not engine.running
        assert sink.closed
        assert len(sink.reports) >= 1
        assert engine.store.count("system") >= 1
        assert engine.health.summary()["database"].status == "healthy"

    async def test_scheduled_timeout_reported_unhealthy(self) -> None:
        engine = MonitoringEngine(_settings(
            metrics=MetricsConfig(low_interval_secs=60, high_interval_secs=60),
        ))

        async def database() -> None:
            await asyncio.sleep(0.05)

        engine.register_health_check(
            HealthCheckSpec("database", database, interval=60, timeout=0.01),
        )

        async with engine:
            await asyncio.sleep(0.1)

        report = engine.get_report()
        assert report.health_check_summary["database"].status == "unhealthy"
        names = [a.name for a in engine.alerts.history()]
        assert names == ["health_check_database"]

    async def test_stop_without_start(self) -> None:
        engine = MonitoringEngine(_settings())
        await engine.stop()
        assert not engine.running


# ── Factory ─────────────────────────────────────────────────────


class TestFactory:
    def test_defaults_registered(self) -> None:
        engine = create_engine(_settings(), process_sources=True, builtin_checks=True)

        assert len(engine.alerts.rules) == 8
        assert sorted(engine.breakers.names) == ["database", "external_api"]
        assert engine.remediation.has("high_memory_usage")
        assert engine.remediation.has("high_error_rate")
        assert engine.remediation.has("database_connection_failure")
        assert {s.name for s in engine.scheduler.sources} == {"process", "gc", "event_loop"}
        assert [s.name for s in engine.health.specs] == ["disk_space"]

    def test_defaults_can_be_disabled(self) -> None:
        settings = _settings(
            alerts=AlertsConfig(default_rules_enabled=False, default_remediations_enabled=False),
        )
        engine = create_engine(settings, process_sources=False, builtin_checks=False)

        assert engine.alerts.rules == []
        assert engine.remediation.registered == []
        assert engine.scheduler.sources == []
        assert engine.health.specs == []

    async def test_error_rate_opens_external_api_breaker(self) -> None:
        engine = create_engine(_settings(), process_sources=False, builtin_checks=False)
        engine.record_metric("application", {"errors": {"rate": 0.2}})

        await engine.analyze(engine.store.snapshot())
        await engine.wait_idle()

        assert engine.breakers.get("external_api").state == BreakerState.OPEN
        assert engine.breakers.get("database").state == BreakerState.CLOSED

    async def test_database_failure_opens_database_breaker(self) -> None:
        engine = create_engine(_settings(), process_sources=False, builtin_checks=False)
        engine.record_metric("application", {"database": {"connected": False}})

        await engine.analyze(engine.store.snapshot())
        await engine.wait_idle()

        assert engine.breakers.get("database").state == BreakerState.OPEN
        assert engine.get_report().overall_health == OverallHealth.CRITICAL
