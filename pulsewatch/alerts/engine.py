"""AlertEngine — rule evaluation, cooldown suppression and alert history."""

from __future__ import annotations

import asyncio
import inspect
import threading
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog

from pulsewatch.alerts.remediation import RemediationDispatcher
from pulsewatch.alerts.rules import AlertRule
from pulsewatch.core.exceptions import DuplicateRegistrationError, RuleEvaluationError
from pulsewatch.core.types import Alert, Severity
from pulsewatch.metrics.store import Snapshot

logger = structlog.stdlib.get_logger()

AlertCallback = Callable[[Alert], Awaitable[None] | None]

DEFAULT_SEVERITY_COOLDOWNS: dict[Severity, float] = {
    Severity.CRITICAL: 60.0,
    Severity.HIGH: 300.0,
    Severity.MEDIUM: 300.0,
    Severity.LOW: 600.0,
}


class AlertEngine:
    """Evaluates alert rules and owns the single alert-raising path.

    Rules, failed health checks, anomalies and trends all raise through
    ``raise_alert()``, so they share one cooldown map keyed by alert name.
    Raising an alert:

    1. Atomically checks and stamps the cooldown for the name; a raise
       inside the cooldown window is silently dropped.
    2. Appends the Alert to a bounded history.
    3. Emits it to every ``on_alert`` subscriber.
    4. Schedules the remediation registered for the name, if any, as a
       tracked task; ``wait_idle()`` waits for those tasks.

    Resolving alerts by name clears the cooldown for that name, so a new
    failure after recovery alerts immediately.

    Usage::

        engine = AlertEngine(remediation=dispatcher)
        engine.register_rule(AlertRule("high_memory", cond, Severity.HIGH, 300))
        engine.on_alert(sink.on_alert)
        await engine.evaluate(store.snapshot())
    """

    def __init__(
        self,
        remediation: RemediationDispatcher | None = None,
        history_size: int = 1000,
        active_window_secs: float = 3600.0,
        severity_cooldowns: Mapping[Severity, float] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._remediation = remediation
        self._active_window_secs = active_window_secs
        self._cooldowns = dict(DEFAULT_SEVERITY_COOLDOWNS)
        if severity_cooldowns:
            self._cooldowns.update(severity_cooldowns)
        self._clock = clock

        self._rules: dict[str, AlertRule] = {}
        self._history: deque[Alert] = deque(maxlen=history_size)
        self._last_raised: dict[str, float] = {}
        self._last_raised_at = 0.0
        self._lock = threading.Lock()
        self._callbacks: list[AlertCallback] = []
        self._evaluation_errors: dict[str, int] = {}
        self._remediation_tasks: set[asyncio.Task[None]] = set()

    # ── Registration ────────────────────────────────────────────

    def register_rule(self, rule: AlertRule) -> None:
        """Register a rule. Duplicate names are rejected eagerly."""
        if rule.name in self._rules:
            raise DuplicateRegistrationError(f"alert rule {rule.name!r} already registered")
        self._rules[rule.name] = rule

    @property
    def rules(self) -> list[AlertRule]:
        return list(self._rules.values())

    def on_alert(self, callback: AlertCallback) -> None:
        """Register a callback for raised alerts."""
        self._callbacks.append(callback)

    def evaluation_errors(self) -> dict[str, int]:
        """Number of times each rule's condition has raised."""
        return dict(self._evaluation_errors)

    # ── Evaluation ──────────────────────────────────────────────

    async def evaluate(self, snapshot: Snapshot) -> list[Alert]:
        """Evaluate every rule against *snapshot*; returns alerts raised."""
        raised: list[Alert] = []
        for rule in list(self._rules.values()):
            try:
                triggered = bool(rule.condition(snapshot))
            except Exception as exc:
                error = RuleEvaluationError(f"rule {rule.name!r} raised: {exc!r}")
                self._evaluation_errors[rule.name] = (
                    self._evaluation_errors.get(rule.name, 0) + 1
                )
                logger.warning("rule_evaluation_failed", rule=rule.name, error=str(error))
                continue

            if not triggered:
                continue

            alert = await self.raise_alert(
                rule.name,
                rule.severity,
                details={
                    "rule": rule.description,
                    "snapshot_taken_at": snapshot.taken_at,
                },
                cooldown_secs=rule.cooldown_secs,
            )
            if alert is not None:
                raised.append(alert)
        return raised

    def cooldown_for(self, severity: Severity, cooldown_secs: float | None = None) -> float:
        if cooldown_secs is not None:
            return cooldown_secs
        return self._cooldowns[severity]

    def in_cooldown(self, name: str, cooldown_secs: float) -> bool:
        last = self._last_raised.get(name)
        return last is not None and self._clock() - last < cooldown_secs

    async def raise_alert(
        self,
        name: str,
        severity: Severity,
        details: dict[str, Any] | None = None,
        cooldown_secs: float | None = None,
    ) -> Alert | None:
        """Raise *name* unless it is in cooldown. Returns the Alert or None."""
        cooldown = self.cooldown_for(severity, cooldown_secs)
        alert = self._try_create(name, severity, details or {}, cooldown)
        if alert is None:
            return None

        log = logger.error if severity == Severity.CRITICAL else logger.warning
        log(
            "alert_raised",
            alert_id=alert.id,
            alert_name=name,
            severity=severity,
            details=alert.details,
        )

        await self._emit(alert)

        if self._remediation is not None and self._remediation.has(name):
            task = asyncio.create_task(
                self._remediate(self._remediation, name, alert.id, severity),
                name=f"remediation-{name}",
            )
            self._remediation_tasks.add(task)
            task.add_done_callback(self._remediation_tasks.discard)

        return alert.model_copy(deep=True)

    async def _remediate(
        self,
        dispatcher: RemediationDispatcher,
        name: str,
        alert_id: str,
        severity: Severity,
    ) -> None:
        try:
            await dispatcher.dispatch(
                name, {"alert_id": alert_id, "severity": severity},
            )
        except Exception:
            logger.exception("remediation_dispatch_error", alert_name=name)

    async def wait_idle(self) -> None:
        """Wait until every scheduled remediation has finished."""
        while True:
            pending = [t for t in self._remediation_tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _try_create(
        self,
        name: str,
        severity: Severity,
        details: dict[str, Any],
        cooldown: float,
    ) -> Alert | None:
        with self._lock:
            now = self._clock()
            last = self._last_raised.get(name)
            if last is not None and now - last < cooldown:
                return None
            self._last_raised[name] = now

            raised_at = max(now, self._last_raised_at)
            self._last_raised_at = raised_at
            alert = Alert(
                id=f"alert_{uuid.uuid4().hex}",
                name=name,
                severity=severity,
                details=details,
                raised_at=raised_at,
            )
            self._history.append(alert)
            return alert

    async def _emit(self, alert: Alert) -> None:
        for cb in self._callbacks:
            try:
                result = cb(alert.model_copy(deep=True))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("alert_callback_error", alert_name=alert.name)

    # ── Lifecycle of raised alerts ──────────────────────────────

    def acknowledge(self, alert_id: str) -> Alert | None:
        """Mark an alert acknowledged. Returns a copy, or None if unknown."""
        with self._lock:
            alert = self._find(alert_id)
            if alert is None:
                return None
            if not alert.acknowledged:
                alert.acknowledged = True
                alert.acknowledged_at = self._clock()
            copy = alert.model_copy(deep=True)
        logger.info("alert_acknowledged", alert_id=alert_id, alert_name=copy.name)
        return copy

    def resolve(self, alert_id: str) -> Alert | None:
        """Mark an alert resolved. Returns a copy, or None if unknown."""
        with self._lock:
            alert = self._find(alert_id)
            if alert is None:
                return None
            if alert.resolved_at is None:
                alert.resolved_at = self._clock()
            copy = alert.model_copy(deep=True)
        logger.info("alert_resolved", alert_id=alert_id, alert_name=copy.name)
        return copy

    def resolve_by_name(self, name: str) -> list[Alert]:
        """Resolve every unresolved alert called *name* and clear its cooldown."""
        resolved: list[Alert] = []
        with self._lock:
            now = self._clock()
            for alert in self._history:
                if alert.name == name and alert.resolved_at is None:
                    alert.resolved_at = now
                    resolved.append(alert.model_copy(deep=True))
            if resolved:
                self._last_raised.pop(name, None)
        if resolved:
            logger.info("alerts_resolved", alert_name=name, count=len(resolved))
        return resolved

    def _find(self, alert_id: str) -> Alert | None:
        for alert in self._history:
            if alert.id == alert_id:
                return alert
        return None

    # ── Queries ─────────────────────────────────────────────────

    def get(self, alert_id: str) -> Alert | None:
        with self._lock:
            alert = self._find(alert_id)
            return alert.model_copy(deep=True) if alert is not None else None

    def history(self, limit: int | None = None) -> list[Alert]:
        """Alert history, oldest first; *limit* keeps the most recent entries."""
        with self._lock:
            alerts = list(self._history)
        if limit is not None:
            alerts = alerts[-limit:] if limit > 0 else []
        return [a.model_copy(deep=True) for a in alerts]

    def active_alerts(self, now: float | None = None) -> list[Alert]:
        """Unacknowledged, unresolved alerts inside the active window, newest first."""
        now = self._clock() if now is None else now
        with self._lock:
            active = [
                a.model_copy(deep=True)
                for a in self._history
                if a.is_active(now, self._active_window_secs)
            ]
        active.sort(key=lambda a: a.raised_at, reverse=True)
        return active
