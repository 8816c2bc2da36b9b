"""Broadcast sinks — receivers of periodic reports and raised alerts."""

from __future__ import annotations

import abc

import structlog

from pulsewatch.core.types import Alert, MonitoringReport

logger = structlog.get_logger(__name__)


class BroadcastSink(abc.ABC):
    """Base class for report broadcast targets (dashboards, sockets, logs)."""

    @abc.abstractmethod
    async def push_report(self, report: MonitoringReport) -> None:
        """Deliver a periodic report."""

    async def on_alert(self, alert: Alert) -> None:  # noqa: B027
        """Deliver a raised alert. Default: ignore."""

    async def close(self) -> None:  # noqa: B027
        """Release resources. Default: nothing to release."""


class LogSink(BroadcastSink):
    """Writes a compact report summary and every alert to the log."""

    async def push_report(self, report: MonitoringReport) -> None:
        logger.info(
            "monitoring_update",
            overall_health=report.overall_health,
            active_alerts=len(report.active_alerts),
            unhealthy_checks=sorted(
                name
                for name, s in report.health_check_summary.items()
                if s.status == "unhealthy"
            ),
            open_breakers=sorted(
                name
                for name, b in report.circuit_breaker_states.items()
                if b.state != "closed"
            ),
        )

    async def on_alert(self, alert: Alert) -> None:
        logger.info(
            "alert_broadcast",
            alert_id=alert.id,
            alert_name=alert.name,
            severity=alert.severity,
        )
