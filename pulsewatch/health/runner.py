"""HealthCheckRunner — independently scheduled health checks with timeouts."""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import structlog

from pulsewatch.alerts.engine import AlertEngine
from pulsewatch.core.exceptions import (
    DuplicateRegistrationError,
    HealthCheckError,
    HealthCheckFailure,
    HealthCheckTimeout,
)
from pulsewatch.core.types import (
    CheckState,
    HealthCheckResult,
    HealthCheckSummary,
    HealthStatus,
    Severity,
)
from pulsewatch.metrics.store import MetricStore
from pulsewatch.resilience.circuit_breaker import CircuitBreakerRegistry

logger = structlog.stdlib.get_logger()

# A check returns optional details; raising or returning False means unhealthy.
HealthCheckFn = Callable[[], Awaitable[Mapping[str, Any] | bool | None]]


@dataclass(frozen=True)
class HealthCheckSpec:
    """A registered health check.

    ``retries`` is carried for configuration parity and reported in the
    failure details. Failed runs are never retried in place: every failed
    run raises the ``health_check_<name>`` alert (subject to its cooldown)
    and the check waits for its next interval.
    """

    name: str
    check_fn: HealthCheckFn
    interval: float = 30.0
    timeout: float = 5.0
    retries: int = 0


def health_category(name: str) -> str:
    """Metric store category holding results of check *name*."""
    return f"health_{name}"


def health_alert_name(name: str) -> str:
    return f"health_check_{name}"


class HealthCheckRunner:
    """Runs each registered check on its own timer.

    Every run records a HealthCheckResult into the MetricStore under
    ``health_<name>``. A timeout or exception is recorded as unhealthy and
    raises a ``high`` alert through the AlertEngine. When a circuit breaker
    shares the check's name, the outcome is reported to it as well.

    Usage::

        runner = HealthCheckRunner(store, alerts=alert_engine)
        runner.register(HealthCheckSpec("database", ping_db, interval=30, timeout=5))
        async with runner:
            ...
    """

    def __init__(
        self,
        store: MetricStore,
        alerts: AlertEngine | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._alerts = alerts
        self._breakers = breakers
        self._clock = clock
        self._specs: dict[str, HealthCheckSpec] = {}
        self._states: dict[str, CheckState] = {}
        self._results: dict[str, HealthCheckResult] = {}
        self._consecutive_failures: dict[str, int] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def specs(self) -> list[HealthCheckSpec]:
        return list(self._specs.values())

    def register(self, spec: HealthCheckSpec) -> None:
        """Register a check. Names must be unique."""
        if spec.name in self._specs:
            raise DuplicateRegistrationError(f"health check {spec.name!r} already registered")
        if spec.timeout <= 0 or spec.interval <= 0:
            raise ValueError("health check interval and timeout must be positive")
        self._specs[spec.name] = spec
        self._states[spec.name] = CheckState.SCHEDULED
        self._consecutive_failures[spec.name] = 0
        if self._running:
            self._spawn(spec)

    def state(self, name: str) -> CheckState:
        return self._states[name]

    def last_result(self, name: str) -> HealthCheckResult | None:
        result = self._results.get(name)
        return result.model_copy() if result is not None else None

    def consecutive_failures(self, name: str) -> int:
        return self._consecutive_failures.get(name, 0)

    # ── Execution ───────────────────────────────────────────────

    async def run_check(self, name: str) -> HealthCheckResult:
        """Run check *name* once and record the outcome."""
        spec = self._specs[name]
        self._states[name] = CheckState.RUNNING
        started = time.perf_counter()

        try:
            details = await self._execute(spec)
        except HealthCheckError as exc:
            result = HealthCheckResult(
                name=name,
                status=HealthStatus.UNHEALTHY,
                duration=time.perf_counter() - started,
                error=str(exc),
                captured_at=self._clock(),
            )
        else:
            result = HealthCheckResult(
                name=name,
                status=HealthStatus.HEALTHY,
                duration=time.perf_counter() - started,
                details=details,
                captured_at=self._clock(),
            )

        self._results[name] = result
        self._store.record_metric(
            health_category(name),
            result.model_dump(mode="json"),
            captured_at=result.captured_at,
        )

        if result.status == HealthStatus.HEALTHY:
            await self._on_success(spec, result)
        else:
            await self._on_failure(spec, result)
        return result

    async def _execute(self, spec: HealthCheckSpec) -> dict[str, Any]:
        try:
            outcome = spec.check_fn()
            if inspect.isawaitable(outcome):
                outcome = await asyncio.wait_for(outcome, spec.timeout)
        except TimeoutError as exc:
            raise HealthCheckTimeout("timeout") from exc
        except HealthCheckError:
            raise
        except Exception as exc:
            raise HealthCheckFailure(str(exc) or type(exc).__name__) from exc

        if outcome is False:
            raise HealthCheckFailure("check reported failure")
        if isinstance(outcome, Mapping):
            return dict(outcome)
        return {}

    async def _on_success(self, spec: HealthCheckSpec, result: HealthCheckResult) -> None:
        was_failing = self._consecutive_failures[spec.name] > 0
        self._consecutive_failures[spec.name] = 0
        self._states[spec.name] = CheckState.HEALTHY

        if self._breakers is not None and spec.name in self._breakers:
            self._breakers.record_success(spec.name)

        if was_failing:
            logger.info("health_check_recovered", check=spec.name)
            if self._alerts is not None:
                self._alerts.resolve_by_name(health_alert_name(spec.name))

    async def _on_failure(self, spec: HealthCheckSpec, result: HealthCheckResult) -> None:
        failures = self._consecutive_failures[spec.name] + 1
        self._consecutive_failures[spec.name] = failures
        self._states[spec.name] = CheckState.UNHEALTHY

        logger.warning(
            "health_check_failed",
            check=spec.name,
            error=result.error,
            duration=round(result.duration, 4),
            consecutive_failures=failures,
        )

        if self._breakers is not None and spec.name in self._breakers:
            self._breakers.record_failure(spec.name)

        if self._alerts is not None:
            await self._alerts.raise_alert(
                health_alert_name(spec.name),
                Severity.HIGH,
                details={
                    "message": f"Health check failed: {spec.name}",
                    "error": result.error,
                    "consecutive_failures": failures,
                    "retries": spec.retries,
                },
            )

    # ── Reporting ───────────────────────────────────────────────

    def summary(self) -> dict[str, HealthCheckSummary]:
        """Latest status per registered check (``unknown`` before first run)."""
        out: dict[str, HealthCheckSummary] = {}
        for name, spec in self._specs.items():
            result = self._results.get(name)
            out[name] = HealthCheckSummary(
                status=result.status if result else HealthStatus.UNKNOWN,
                state=self._states[name],
                last_check=result.captured_at if result else None,
                duration=result.duration if result else None,
                error=result.error if result else None,
                interval=spec.interval,
                consecutive_failures=self._consecutive_failures[name],
            )
        return out

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Start one scheduling loop per registered check."""
        if self._running:
            return
        self._running = True
        self._stop_event = asyncio.Event()
        for spec in self._specs.values():
            self._spawn(spec)
        logger.info("health_runner_started", checks=len(self._specs))

    async def stop(self) -> None:
        """Stop scheduling; in-flight checks finish or time out on their own."""
        if not self._running:
            return
        self._running = False
        self._stop_event.set()

        tasks = list(self._tasks.values())
        self._tasks = {}
        if tasks:
            grace = max(spec.timeout for spec in self._specs.values()) + 1.0
            _, pending = await asyncio.wait(tasks, timeout=grace)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        logger.info("health_runner_stopped")

    def _spawn(self, spec: HealthCheckSpec) -> None:
        self._tasks[spec.name] = asyncio.create_task(
            self._loop(spec), name=f"health-{spec.name}",
        )

    async def _loop(self, spec: HealthCheckSpec) -> None:
        while self._running:
            try:
                await self.run_check(spec.name)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("health_check_loop_error", check=spec.name)

            if not self._running:
                break
            self._states[spec.name] = CheckState.SCHEDULED
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=spec.interval)
            except TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    async def __aenter__(self) -> HealthCheckRunner:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
