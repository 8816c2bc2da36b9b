"""Resilience primitives — circuit breakers."""

from pulsewatch.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
]
