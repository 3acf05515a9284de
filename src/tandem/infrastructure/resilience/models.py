"""
Circuit breaker state data.

``CircuitStateRecord`` is the persisted shape shared by every process that
guards the same named operation.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Failing, requests blocked
    HALF_OPEN = "HALF_OPEN"  # Probing whether the dependency recovered


@dataclass
class CircuitMetrics:
    """Rolling outcome counters for one breaker.

    ``error_rate`` is a percentage derived from ``failures`` and
    ``total_requests``; update it through ``recompute_error_rate`` only.
    """

    successes: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    total_requests: int = 0
    error_rate: float = 0.0
    last_failure_time: Optional[float] = None

    def recompute_error_rate(self) -> None:
        if self.total_requests > 0:
            self.error_rate = self.failures / self.total_requests * 100
        else:
            self.error_rate = 0.0

    def copy(self) -> "CircuitMetrics":
        return CircuitMetrics(**asdict(self))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitMetrics":
        metrics = cls(
            successes=int(data.get("successes", 0)),
            failures=int(data.get("failures", 0)),
            consecutive_failures=int(data.get("consecutive_failures", 0)),
            consecutive_successes=int(data.get("consecutive_successes", 0)),
            total_requests=int(data.get("total_requests", 0)),
            last_failure_time=data.get("last_failure_time"),
        )
        metrics.recompute_error_rate()
        return metrics


@dataclass
class CircuitStateRecord:
    """Persisted breaker state.

    Attributes:
        name: Breaker name (the store's key)
        state: Breaker state at write time
        metrics: Counter snapshot at write time
        last_state_change: Epoch seconds of the most recent transition
        correlation_id: Correlation active when the record was written
        ttl: Epoch seconds after which the record must be ignored
        version: Per-breaker write sequence; a higher version is newer
    """

    name: str
    state: CircuitState
    metrics: CircuitMetrics = field(default_factory=CircuitMetrics)
    last_state_change: float = 0.0
    correlation_id: Optional[str] = None
    ttl: Optional[float] = None
    version: int = 0

    def is_expired(self, now: float) -> bool:
        return self.ttl is not None and now >= self.ttl

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "metrics": self.metrics.to_dict(),
            "last_state_change": self.last_state_change,
            "correlation_id": self.correlation_id,
            "ttl": self.ttl,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitStateRecord":
        return cls(
            name=data["name"],
            state=CircuitState(data["state"]),
            metrics=CircuitMetrics.from_dict(data.get("metrics") or {}),
            last_state_change=float(data.get("last_state_change", 0.0)),
            correlation_id=data.get("correlation_id"),
            ttl=data.get("ttl"),
            version=int(data.get("version", 0)),
        )


@dataclass
class CircuitStatus:
    """Read-only snapshot returned by ``CircuitBreaker.get_status``."""

    name: str
    state: CircuitState
    metrics: CircuitMetrics
    last_state_change: float
    next_attempt_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "metrics": self.metrics.to_dict(),
            "last_state_change": self.last_state_change,
            "next_attempt_time": self.next_attempt_time,
        }
