"""HTTP / WebSocket adapter for the monitoring report.

Runs as an ``aiohttp`` web server alongside the engine. Exposes:
- ``GET /api/report``                      → full MonitoringReport (JSON)
- ``GET /api/alerts``                      → active alerts (``?all=1`` for history)
- ``POST /api/alerts/{alert_id}/acknowledge``
- ``POST /api/alerts/{alert_id}/resolve``
- ``GET /ws``                              → live ``monitoring_update`` / ``alert`` pushes
"""

from __future__ import annotations

import weakref
from typing import Any

import structlog
from aiohttp import WSCloseCode, web

from pulsewatch.core.types import Alert, MonitoringReport
from pulsewatch.monitor.engine import MonitoringEngine
from pulsewatch.monitor.sinks import BroadcastSink

logger = structlog.get_logger(__name__)

ENGINE_KEY = web.AppKey("engine", MonitoringEngine)


class WebSocketBroadcaster(BroadcastSink):
    """Pushes reports and alerts to every connected WebSocket client."""

    def __init__(self) -> None:
        self._clients: weakref.WeakSet[web.WebSocketResponse] = weakref.WeakSet()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def add(self, ws: web.WebSocketResponse) -> None:
        self._clients.add(ws)

    def discard(self, ws: web.WebSocketResponse) -> None:
        self._clients.discard(ws)

    async def push_report(self, report: MonitoringReport) -> None:
        await self._broadcast({
            "type": "monitoring_update",
            "data": report.dashboard_snapshot,
        })

    async def on_alert(self, alert: Alert) -> None:
        await self._broadcast({"type": "alert", "data": alert.model_dump(mode="json")})

    async def close(self) -> None:
        for ws in list(self._clients):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"shutdown")
        self._clients = weakref.WeakSet()

    async def _broadcast(self, message: dict[str, Any]) -> None:
        for ws in list(self._clients):
            if ws.closed:
                self._clients.discard(ws)
                continue
            try:
                await ws.send_json(message)
            except (ConnectionResetError, RuntimeError) as exc:
                self._clients.discard(ws)
                logger.warning("websocket_send_failed", error=str(exc))


BROADCASTER_KEY = web.AppKey("broadcaster", WebSocketBroadcaster)


async def _handle_report(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    return web.json_response(engine.get_report().model_dump(mode="json"))


async def _handle_alerts(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    if request.query.get("all") in ("1", "true"):
        alerts = engine.alerts.history()
    else:
        alerts = engine.alerts.active_alerts()
    return web.json_response([a.model_dump(mode="json") for a in alerts])


async def _handle_acknowledge(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    alert = engine.alerts.acknowledge(request.match_info["alert_id"])
    if alert is None:
        raise web.HTTPNotFound(text="unknown alert")
    return web.json_response(alert.model_dump(mode="json"))


async def _handle_resolve(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    alert = engine.alerts.resolve(request.match_info["alert_id"])
    if alert is None:
        raise web.HTTPNotFound(text="unknown alert")
    return web.json_response(alert.model_dump(mode="json"))


async def _handle_ws(request: web.Request) -> web.WebSocketResponse:
    broadcaster = request.app[BROADCASTER_KEY]
    engine = request.app[ENGINE_KEY]
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)

    broadcaster.add(ws)
    try:
        # Initial state so clients do not wait for the next broadcast tick.
        await ws.send_json({
            "type": "monitoring_update",
            "data": engine.get_report().dashboard_snapshot,
        })
        async for _ in ws:
            pass  # clients only listen
    finally:
        broadcaster.discard(ws)
    return ws


def create_web_app(
    engine: MonitoringEngine,
    broadcaster: WebSocketBroadcaster | None = None,
) -> web.Application:
    """Create the aiohttp application.

    When no *broadcaster* is given, one is created and attached to the
    engine as a sink.
    """
    if broadcaster is None:
        broadcaster = WebSocketBroadcaster()
        engine.add_sink(broadcaster)
    app = web.Application()
    app[ENGINE_KEY] = engine
    app[BROADCASTER_KEY] = broadcaster
    app.router.add_get("/api/report", _handle_report)
    app.router.add_get("/api/alerts", _handle_alerts)
    app.router.add_post("/api/alerts/{alert_id}/acknowledge", _handle_acknowledge)
    app.router.add_post("/api/alerts/{alert_id}/resolve", _handle_resolve)
    app.router.add_get("/ws", _handle_ws)
    return app


async def start_web_dashboard(
    engine: MonitoringEngine,
    host: str = "127.0.0.1",
    port: int = 8080,
) -> web.AppRunner:
    """Start the web server. Returns the runner for cleanup."""
    app = create_web_app(engine)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("web_dashboard_started", host=host, port=port)
    return runner
