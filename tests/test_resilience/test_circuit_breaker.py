"""Tests for CircuitBreaker / CircuitBreakerRegistry — state machine, half-open trial."""

from __future__ import annotations

import threading

import pytest

from pulsewatch.core.exceptions import (
    DuplicateRegistrationError,
    UnknownCircuitBreakerError,
)
from pulsewatch.core.types import BreakerState
from pulsewatch.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _breaker(threshold: int = 3, reset: float = 60.0) -> tuple[FakeClock, CircuitBreaker]:
    clock = FakeClock()
    return clock, CircuitBreaker("db", failure_threshold=threshold, reset_timeout=reset, clock=clock)


# ── CircuitBreaker ──────────────────────────────────────────────


class TestClosed:
    def test_starts_closed(self) -> None:
        _, cb = _breaker()
        assert cb.state == BreakerState.CLOSED
        assert cb.allow()

    def test_opens_at_threshold(self) -> None:
        _, cb = _breaker(threshold=3)
        cb.record_failure()
        cb.record_failure()
        assert cb.state == BreakerState.CLOSED
        cb.record_failure()
        assert cb.state == BreakerState.OPEN
        assert not cb.allow()

    def test_success_resets_count(self) -> None:
        _, cb = _breaker(threshold=3)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        assert cb.failure_count == 1
        assert cb.state == BreakerState.CLOSED

    def test_invalid_threshold(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreaker("x", failure_threshold=0)


class TestOpenAndHalfOpen:
    def test_half_open_after_timeout(self) -> None:
        clock, cb = _breaker(threshold=1, reset=60)
        cb.record_failure()

        clock.now += 59
        assert not cb.allow()

        clock.now += 1
        assert cb.allow()
        assert cb.state == BreakerState.HALF_OPEN

    def test_half_open_allows_single_trial(self) -> None:
        clock, cb = _breaker(threshold=1, reset=10)
        cb.record_failure()
        clock.now += 10

        assert cb.allow()
        assert not cb.allow()
        assert not cb.allow()

    def test_half_open_success_closes(self) -> None:
        clock, cb = _breaker(threshold=1, reset=10)
        cb.record_failure()
        clock.now += 10
        cb.allow()

        cb.record_success()

        assert cb.state == BreakerState.CLOSED
        assert cb.failure_count == 0
        assert cb.allow()

    def test_half_open_failure_reopens(self) -> None:
        clock, cb = _breaker(threshold=1, reset=10)
        cb.record_failure()
        clock.now += 10
        cb.allow()

        cb.record_failure()

        assert cb.state == BreakerState.OPEN
        assert cb.last_failure_at == clock.now
        clock.now += 9
        assert not cb.allow()

    def test_failure_while_open_refreshes_timestamp(self) -> None:
        clock, cb = _breaker(threshold=1, reset=10)
        cb.record_failure()
        clock.now += 8
        cb.record_failure()
        clock.now += 5
        assert not cb.allow()

    def test_force_open_and_reset(self) -> None:
        _, cb = _breaker()
        cb.force_open()
        assert cb.state == BreakerState.OPEN
        assert not cb.allow()

        cb.reset()
        assert cb.state == BreakerState.CLOSED
        assert cb.last_failure_at is None
        assert cb.allow()


# ── CircuitBreakerRegistry ──────────────────────────────────────


class TestRegistry:
    def test_register_and_states(self) -> None:
        reg = CircuitBreakerRegistry()
        reg.register("database", failure_threshold=5, reset_timeout=60)
        reg.register("external_api", failure_threshold=3, reset_timeout=120)

        states = reg.states()
        assert set(states) == {"database", "external_api"}
        assert states["external_api"].failure_threshold == 3
        assert states["database"].state == BreakerState.CLOSED
        assert "database" in reg
        assert reg.names == ["database", "external_api"]

    def test_duplicate_rejected(self) -> None:
        reg = CircuitBreakerRegistry()
        reg.register("database")
        with pytest.raises(DuplicateRegistrationError):
            reg.register("database")

    def test_unknown_name(self) -> None:
        reg = CircuitBreakerRegistry()
        with pytest.raises(UnknownCircuitBreakerError):
            reg.allow("nope")
        with pytest.raises(KeyError):
            reg.record_failure("nope")

    def test_operations_by_name(self) -> None:
        clock = FakeClock()
        reg = CircuitBreakerRegistry(clock=clock)
        reg.register("api", failure_threshold=2, reset_timeout=30)

        reg.record_failure("api")
        reg.record_failure("api")
        assert reg.get("api").state == BreakerState.OPEN
        assert not reg.allow("api")

        clock.now += 30
        assert reg.allow("api")
        reg.record_success("api")
        assert reg.get("api").state == BreakerState.CLOSED

    def test_force_open_by_name(self) -> None:
        reg = CircuitBreakerRegistry()
        reg.register("external_api")
        reg.force_open("external_api")
        assert reg.get("external_api").state == BreakerState.OPEN
        reg.reset("external_api")
        assert reg.get("external_api").state == BreakerState.CLOSED

    def test_snapshot_is_detached(self) -> None:
        reg = CircuitBreakerRegistry()
        reg.register("db", failure_threshold=1)
        snap = reg.get("db")
        reg.record_failure("db")
        assert snap.state == BreakerState.CLOSED

    def test_concurrent_half_open_admits_one(self) -> None:
        clock = FakeClock()
        reg = CircuitBreakerRegistry(clock=clock)
        reg.register("db", failure_threshold=1, reset_timeout=10)
        reg.record_failure("db")
        clock.now += 10

        results: list[bool] = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            results.append(reg.allow("db"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
