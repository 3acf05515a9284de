"""
Resilience patterns for Tandem.

Provides the persisted circuit breaker and the state stores it writes to.
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    get_circuit_breaker,
    get_circuit_breaker_stats,
    reset_all_circuit_breakers,
)
from .models import CircuitMetrics, CircuitState, CircuitStateRecord, CircuitStatus
from .state_store import FileStateStore, InMemoryStateStore, StateStore

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CircuitMetrics",
    "CircuitStateRecord",
    "CircuitStatus",
    "StateStore",
    "InMemoryStateStore",
    "FileStateStore",
    "get_circuit_breaker",
    "get_circuit_breaker_stats",
    "reset_all_circuit_breakers",
]
