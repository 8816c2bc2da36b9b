"""Circuit breakers — per-dependency closed / open / half-open state machines."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import structlog

from pulsewatch.core.exceptions import (
    DuplicateRegistrationError,
    UnknownCircuitBreakerError,
)
from pulsewatch.core.types import BreakerState, CircuitBreakerSnapshot

logger = structlog.stdlib.get_logger()


class CircuitBreaker:
    """A single breaker. Not thread-safe on its own; use the registry.

    Transitions are lazy: an open breaker moves to half-open only when
    ``allow()`` is called after ``reset_timeout`` has elapsed. There is no
    background timer, so an idle breaker stays open until it is queried.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = BreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_at(self) -> float | None:
        return self._last_failure_at

    def allow(self) -> bool:
        """Whether a call to the dependency may proceed."""
        if self._state == BreakerState.CLOSED:
            return True

        if self._state == BreakerState.OPEN:
            opened_at = self._last_failure_at or 0.0
            if self._clock() - opened_at < self.reset_timeout:
                return False
            self._transition(BreakerState.HALF_OPEN)
            self._trial_in_flight = True
            return True

        # HALF_OPEN: exactly one trial until an outcome is reported.
        if self._trial_in_flight:
            return False
        self._trial_in_flight = True
        return True

    def record_success(self) -> None:
        if self._state == BreakerState.HALF_OPEN:
            self._transition(BreakerState.CLOSED)
        self._failure_count = 0
        self._trial_in_flight = False

    def record_failure(self) -> None:
        now = self._clock()
        self._trial_in_flight = False

        if self._state == BreakerState.HALF_OPEN:
            self._last_failure_at = now
            self._transition(BreakerState.OPEN)
            return

        self._failure_count += 1
        self._last_failure_at = now
        if self._state == BreakerState.CLOSED and self._failure_count >= self.failure_threshold:
            self._transition(BreakerState.OPEN)

    def force_open(self) -> None:
        """Open immediately, restarting the reset timeout."""
        self._last_failure_at = self._clock()
        self._trial_in_flight = False
        if self._state != BreakerState.OPEN:
            self._transition(BreakerState.OPEN)

    def reset(self) -> None:
        """Return to closed with a clean failure count."""
        self._failure_count = 0
        self._last_failure_at = None
        self._trial_in_flight = False
        if self._state != BreakerState.CLOSED:
            self._transition(BreakerState.CLOSED)

    def snapshot(self) -> CircuitBreakerSnapshot:
        return CircuitBreakerSnapshot(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            failure_threshold=self.failure_threshold,
            reset_timeout=self.reset_timeout,
            last_failure_at=self._last_failure_at,
        )

    def _transition(self, new_state: BreakerState) -> None:
        old_state = self._state
        self._state = new_state
        logger.info(
            "circuit_breaker_transition",
            breaker=self.name,
            from_state=old_state,
            to_state=new_state,
            failure_count=self._failure_count,
        )


class CircuitBreakerRegistry:
    """Named circuit breakers with atomic check-and-set per operation.

    Usage::

        breakers = CircuitBreakerRegistry()
        breakers.register("database", failure_threshold=5, reset_timeout=60)

        if breakers.allow("database"):
            try:
                await query()
                breakers.record_success("database")
            except DatabaseError:
                breakers.record_failure("database")
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
    ) -> CircuitBreaker:
        with self._lock:
            if name in self._breakers:
                raise DuplicateRegistrationError(
                    f"circuit breaker {name!r} already registered"
                )
            breaker = CircuitBreaker(
                name,
                failure_threshold=failure_threshold,
                reset_timeout=reset_timeout,
                clock=self._clock,
            )
            self._breakers[name] = breaker
            return breaker

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    @property
    def names(self) -> list[str]:
        return list(self._breakers)

    def allow(self, name: str) -> bool:
        with self._lock:
            return self._get(name).allow()

    def record_success(self, name: str) -> None:
        with self._lock:
            self._get(name).record_success()

    def record_failure(self, name: str) -> None:
        with self._lock:
            self._get(name).record_failure()

    def force_open(self, name: str) -> None:
        with self._lock:
            self._get(name).force_open()
        logger.warning("circuit_breaker_forced_open", breaker=name)

    def reset(self, name: str) -> None:
        with self._lock:
            self._get(name).reset()

    def get(self, name: str) -> CircuitBreakerSnapshot:
        with self._lock:
            return self._get(name).snapshot()

    def states(self) -> dict[str, CircuitBreakerSnapshot]:
        with self._lock:
            return {name: b.snapshot() for name, b in self._breakers.items()}

    def _get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            raise UnknownCircuitBreakerError(f"no circuit breaker named {name!r}")
        return breaker
