#!/usr/bin/env python3
"""Monitoring entrypoint — wires the engine from settings and runs until stopped.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level, expose the web dashboard
    python scripts/run.py --log-level DEBUG --dashboard
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog
from aiohttp import web

from pulsewatch.core.config import load_settings
from pulsewatch.core.logging import setup_logging
from pulsewatch.monitor.factory import create_engine
from pulsewatch.monitor.sinks import LogSink
from pulsewatch.monitor.web import start_web_dashboard

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the engine and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    engine = create_engine(settings)
    engine.add_sink(LogSink())

    logger.info(
        "monitor_starting",
        sources=len(engine.scheduler.sources),
        rules=len(engine.alerts.rules),
        health_checks=len(engine.health.specs),
        breakers=engine.breakers.names,
    )

    # ── Web dashboard ────────────────────────────────────────────
    runner: web.AppRunner | None = None
    if args.dashboard or settings.dashboard.enabled:
        runner = await start_web_dashboard(
            engine,
            host=settings.dashboard.host,
            port=args.port or settings.dashboard.port,
        )

    await engine.start()

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("monitor_shutting_down")
    await engine.stop()
    if runner is not None:
        await runner.cleanup()

    # ── Final summary ────────────────────────────────────────────
    report = engine.get_report()
    logger.info(
        "monitor_stopped",
        overall_health=report.overall_health,
        active_alerts=len(report.active_alerts),
        alerts_raised=len(engine.alerts.history()),
        uptime_secs=round(report.uptime_secs, 1),
    )

    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the pulsewatch monitoring engine.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Serve the HTTP/WebSocket dashboard even if disabled in config",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Dashboard port override",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
