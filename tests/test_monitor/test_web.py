"""Tests for the aiohttp report API and WebSocket broadcaster."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from aiohttp.test_utils import TestClient, TestServer

from pulsewatch.core.config import BaselineConfig, Settings, TrendsConfig
from pulsewatch.core.types import Severity
from pulsewatch.monitor.engine import MonitoringEngine
from pulsewatch.monitor.web import WebSocketBroadcaster, create_web_app


@pytest.fixture
def engine() -> MonitoringEngine:
    return MonitoringEngine(Settings(
        baseline=BaselineConfig(enabled=False),
        trends=TrendsConfig(enabled=False),
    ))


@pytest.fixture
def broadcaster(engine: MonitoringEngine) -> WebSocketBroadcaster:
    b = WebSocketBroadcaster()
    engine.add_sink(b)
    return b


@pytest.fixture
async def client(
    engine: MonitoringEngine, broadcaster: WebSocketBroadcaster,
) -> AsyncIterator[TestClient]:
    app = create_web_app(engine, broadcaster)
    async with TestClient(TestServer(app)) as c:
        yield c


class TestReportApi:
    async def test_report(self, client: TestClient, engine: MonitoringEngine) -> None:
        engine.record_metric("system", {"memory": {"utilization": 42}})

        resp = await client.get("/api/report")

        assert resp.status == 200
        body = await resp.json()
        assert body["overall_health"] == "healthy"
        assert body["current_metrics"]["system"]["memory"]["utilization"] == 42
        assert body["dashboard_snapshot"]["memory_usage"] == 42

    async def test_active_alerts_and_history(
        self, client: TestClient, engine: MonitoringEngine,
    ) -> None:
        alert = await engine.alerts.raise_alert("x", Severity.HIGH)
        assert alert is not None
        engine.alerts.acknowledge(alert.id)
        await engine.alerts.raise_alert("y", Severity.LOW)

        active = await (await client.get("/api/alerts")).json()
        everything = await (await client.get("/api/alerts?all=1")).json()

        assert [a["name"] for a in active] == ["y"]
        assert [a["name"] for a in everything] == ["x", "y"]

    async def test_acknowledge_and_resolve(
        self, client: TestClient, engine: MonitoringEngine,
    ) -> None:
        alert = await engine.alerts.raise_alert("x", Severity.CRITICAL)
        assert alert is not None

        resp = await client.post(f"/api/alerts/{alert.id}/acknowledge")
        assert resp.status == 200
        assert (await resp.json())["acknowledged"] is True

        resp = await client.post(f"/api/alerts/{alert.id}/resolve")
        assert resp.status == 200
        assert (await resp.json())["resolved_at"] is not None

    async def test_unknown_alert_is_404(self, client: TestClient) -> None:
        resp = await client.post("/api/alerts/alert_missing/acknowledge")
        assert resp.status == 404


class TestWebSocket:
    async def test_initial_state_and_broadcasts(
        self,
        client: TestClient,
        engine: MonitoringEngine,
        broadcaster: WebSocketBroadcaster,
    ) -> None:
        ws = await client.ws_connect("/ws")

        initial = await ws.receive_json(timeout=1)
        assert initial["type"] == "monitoring_update"
        assert initial["data"]["system_health"] == "healthy"
        assert broadcaster.client_count == 1

        await engine.alerts.raise_alert("high_memory_usage", Severity.HIGH)
        alert_msg = await ws.receive_json(timeout=1)
        assert alert_msg["type"] == "alert"
        assert alert_msg["data"]["name"] == "high_memory_usage"

        await engine.broadcast()
        update = await ws.receive_json(timeout=1)
        assert update["type"] == "monitoring_update"
        assert update["data"]["active_alert_count"] == 1

        await ws.close()

    async def test_create_app_attaches_broadcaster(self, engine: MonitoringEngine) -> None:
        app = create_web_app(engine)
        async with TestClient(TestServer(app)) as c:
            ws = await c.ws_connect("/ws")
            await ws.receive_json(timeout=1)
            await engine.broadcast()
            update = await ws.receive_json(timeout=1)
            assert update["type"] == "monitoring_update"
            await ws.close()
