"""Monitoring engine, reporting and broadcast subsystem."""

from pulsewatch.monitor.engine import MonitoringEngine, ReportCallback
from pulsewatch.monitor.factory import create_engine
from pulsewatch.monitor.report import ReportAggregator, compute_overall_health
from pulsewatch.monitor.sinks import BroadcastSink, LogSink
from pulsewatch.monitor.web import (
    WebSocketBroadcaster,
    create_web_app,
    start_web_dashboard,
)

__all__ = [
    "BroadcastSink",
    "LogSink",
    "MonitoringEngine",
    "ReportAggregator",
    "ReportCallback",
    "WebSocketBroadcaster",
    "compute_overall_health",
    "create_engine",
    "create_web_app",
    "start_web_dashboard",
]
