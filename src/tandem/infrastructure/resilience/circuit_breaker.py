"""
Circuit Breaker Pattern Implementation.

Provides failure isolation for one named remote operation. Outcome counters
and the CLOSED/OPEN/HALF_OPEN state live in memory and are written to a
``StateStore`` after every outcome, so short-lived processes guarding the same
dependency learn from each other's failures.

Timeouts: ``execute`` runs the operation under ``asyncio.wait_for``. When the
deadline passes, the operation's task is cancelled (actively aborted, not left
running) and the call counts as a failure.
"""

import asyncio
import functools
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from tandem.core.correlation import get_correlation_tracker
from tandem.exceptions import CircuitOpenError, OperationTimeoutError
from tandem.logging import get_logger

from .models import (
    CircuitMetrics,
    CircuitState,
    CircuitStateRecord,
    CircuitStatus,
)
from .state_store import InMemoryStateStore, StateStore

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    failure_threshold: int = 5  # Consecutive failures before opening
    success_threshold: int = 2  # Consecutive HALF_OPEN successes to close
    timeout: float = 10.0  # Per-call deadline in seconds
    reset_timeout: float = 60.0  # Seconds OPEN before probing
    volume_threshold: int = 10  # Requests before the error rate is evaluated
    error_threshold_percentage: float = 50.0  # Error rate (percent) that opens
    half_open_max_probes: int = 1  # Concurrent probes admitted while HALF_OPEN
    state_ttl: int = 86400  # Seconds a persisted record stays valid
    monitored_exceptions: Tuple[Type[BaseException], ...] = (Exception,)

    @classmethod
    def from_settings(cls, settings, **overrides) -> "CircuitBreakerConfig":
        """Build from a ``BreakerSettings`` model (or anything with ``model_dump``)."""
        values = settings.model_dump()
        values.update(overrides)
        return cls(**values)


class CircuitBreaker:
    """
    Persisted circuit breaker guarding one named async operation.

    In-memory state is authoritative for this process; the store is a
    best-effort cache for other processes. Store failures are logged and never
    reach the caller.

    Construction loads the persisted record with a blocking ``store.get``;
    inside a coroutine, build breakers with ``await CircuitBreaker.create(...)``.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        store: Optional[StateStore] = None,
        tracker=None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.store = store if store is not None else InMemoryStateStore()
        self.tracker = tracker if tracker is not None else get_correlation_tracker()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._metrics = CircuitMetrics()
        self._last_state_change = clock()
        self._state_lock = threading.RLock()

        # HALF_OPEN probe accounting; the generation changes on every
        # transition so probes admitted earlier never release a newer slot.
        self._probes_in_flight = 0
        self._generation = 0

        self._circuit_opened_count = 0

        # Snapshots are versioned under the state lock; writes older than the
        # last one handed to the store are dropped.
        self._version = 0
        self._written_version = 0
        self._write_lock = threading.Lock()

        self._load_state()

        logger.info(
            "Circuit breaker initialized",
            breaker=name,
            state=self._state.value,
            failure_threshold=self.config.failure_threshold,
            reset_timeout=self.config.reset_timeout,
        )

    @classmethod
    async def create(
        cls,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        store: Optional[StateStore] = None,
        tracker=None,
        clock: Callable[[], float] = time.time,
    ) -> "CircuitBreaker":
        """Build a breaker from a coroutine.

        The constructor reads the persisted record synchronously; this runs it
        in a worker thread so a slow store does not block the event loop.
        """
        return await asyncio.to_thread(cls, name, config, store, tracker, clock)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        with self._state_lock:
            return self._state

    @property
    def stats(self) -> Dict[str, Any]:
        """Get circuit breaker statistics."""
        with self._state_lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "total_requests": self._metrics.total_requests,
                "failures": self._metrics.failures,
                "successes": self._metrics.successes,
                "error_rate": self._metrics.error_rate,
                "consecutive_failures": self._metrics.consecutive_failures,
                "circuit_opened_count": self._circuit_opened_count,
                "last_state_change": self._last_state_change,
            }

    def get_status(self) -> CircuitStatus:
        """Current state and a copy of the metrics. No side effects."""
        with self._state_lock:
            next_attempt = None
            if self._state == CircuitState.OPEN:
                next_attempt = self._last_state_change + self.config.reset_timeout
            return CircuitStatus(
                name=self.name,
                state=self._state,
                metrics=self._metrics.copy(),
                last_state_change=self._last_state_change,
                next_attempt_time=next_attempt,
            )

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def can_attempt(self) -> bool:
        """
        Whether a call may be attempted now.

        An OPEN breaker whose reset timeout has elapsed transitions to
        HALF_OPEN here. In HALF_OPEN the answer depends on free probe slots.
        """
        with self._state_lock:
            return self._admissible()

    def _admissible(self) -> bool:
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if self._clock() - self._last_state_change >= self.config.reset_timeout:
                self._transition_to(CircuitState.HALF_OPEN)
                return True
            return False

        return self._probes_in_flight < self.config.half_open_max_probes

    def _try_acquire(self) -> Tuple[bool, Optional[int]]:
        """Admit a call, reserving a probe slot when HALF_OPEN.

        Returns (admitted, probe generation or None).
        """
        with self._state_lock:
            if not self._admissible():
                return False, None
            if self._state == CircuitState.HALF_OPEN:
                self._probes_in_flight += 1
                return True, self._generation
            return True, None

    def _release_probe(self, generation: Optional[int]) -> None:
        if generation is None:
            return
        with self._state_lock:
            if generation == self._generation and self._probes_in_flight > 0:
                self._probes_in_flight -= 1

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def __call__(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Decorator to guard an async function with this breaker."""

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await self.execute(lambda: func(*args, **kwargs))

        return wrapper

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Optional[Callable[[], Awaitable[T]]] = None,
    ) -> T:
        """
        Run ``operation`` through the breaker.

        Args:
            operation: Zero-argument callable returning an awaitable
            fallback: Optional zero-argument callable with the same result
                shape, used when the circuit rejects the call or the failure
                left the circuit OPEN

        Returns:
            The operation's (or fallback's) result

        Raises:
            CircuitOpenError: When the circuit rejects the call and there is
                no fallback
            OperationTimeoutError: When the operation exceeded ``timeout``
            Original exception: When the operation fails
        """
        correlation_id = self._correlation_id()
        admitted, probe = self._try_acquire()

        if not admitted:
            logger.warning(
                "Circuit breaker is OPEN, rejecting call",
                breaker=self.name,
                correlation_id=correlation_id,
                state=self.state.value,
                has_fallback=fallback is not None,
            )
            if fallback is not None:
                return await self._run_fallback(fallback, correlation_id)
            raise CircuitOpenError(self.name, correlation_id)

        start = time.perf_counter()
        try:
            try:
                result = await asyncio.wait_for(operation(), timeout=self.config.timeout)
            except asyncio.TimeoutError:
                error = OperationTimeoutError(self.name, self.config.timeout, correlation_id)
                opened = await self._on_failure(error, start, correlation_id)
                if fallback is not None and opened:
                    return await self._run_fallback(fallback, correlation_id)
                raise error from None
            except Exception as e:
                if not isinstance(e, self.config.monitored_exceptions):
                    logger.debug(
                        "Circuit breaker ignored non-monitored exception",
                        breaker=self.name,
                        correlation_id=correlation_id,
                        exception_type=type(e).__name__,
                    )
                    raise
                opened = await self._on_failure(e, start, correlation_id)
                if fallback is not None and opened:
                    return await self._run_fallback(fallback, correlation_id)
                raise

            await self._on_success(start, correlation_id)
            return result
        finally:
            self._release_probe(probe)

    async def _run_fallback(self, fallback: Callable[[], Awaitable[T]], correlation_id: Optional[str]) -> T:
        logger.info(
            "Executing fallback",
            breaker=self.name,
            correlation_id=correlation_id,
        )
        return await fallback()

    async def _on_success(self, start: float, correlation_id: Optional[str]) -> None:
        with self._state_lock:
            m = self._metrics
            m.successes += 1
            m.total_requests += 1
            m.consecutive_successes += 1
            m.consecutive_failures = 0
            m.recompute_error_rate()

            logger.debug(
                "Circuit breaker call succeeded",
                breaker=self.name,
                correlation_id=correlation_id,
                duration_ms=(time.perf_counter() - start) * 1000,
                state=self._state.value,
                consecutive_successes=m.consecutive_successes,
            )

            if (
                self._state == CircuitState.HALF_OPEN
                and m.consecutive_successes >= self.config.success_threshold
            ):
                self._transition_to(CircuitState.CLOSED)

            record = self._snapshot(correlation_id)

        await self._persist(record)

    async def _on_failure(self, error: BaseException, start: float, correlation_id: Optional[str]) -> bool:
        """Count a failure and evaluate transitions. Returns True if now OPEN."""
        with self._state_lock:
            m = self._metrics
            m.failures += 1
            m.total_requests += 1
            m.consecutive_failures += 1
            m.consecutive_successes = 0
            m.last_failure_time = self._clock()
            m.recompute_error_rate()

            logger.warning(
                "Circuit breaker recorded failure",
                breaker=self.name,
                correlation_id=correlation_id,
                duration_ms=(time.perf_counter() - start) * 1000,
                state=self._state.value,
                consecutive_failures=m.consecutive_failures,
                exception_type=type(error).__name__,
                error=str(error),
            )

            if self._state == CircuitState.CLOSED:
                if m.consecutive_failures >= self.config.failure_threshold or (
                    m.total_requests >= self.config.volume_threshold
                    and m.error_rate >= self.config.error_threshold_percentage
                ):
                    self._transition_to(CircuitState.OPEN)
            elif self._state == CircuitState.HALF_OPEN:
                # Any failure while probing reopens the circuit
                self._transition_to(CircuitState.OPEN)

            opened = self._state == CircuitState.OPEN
            record = self._snapshot(correlation_id)

        await self._persist(record)
        return opened

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition_to(self, new_state: CircuitState) -> None:
        """Transition circuit to new state. Caller holds the state lock."""
        old_state = self._state
        self._state = new_state
        self._last_state_change = self._clock()
        self._generation += 1
        self._probes_in_flight = 0

        if new_state == CircuitState.CLOSED:
            self._metrics = CircuitMetrics()
            logger.info("Circuit breaker closed, service recovered", breaker=self.name)
        elif new_state == CircuitState.OPEN:
            self._circuit_opened_count += 1
            self._metrics.consecutive_successes = 0
            logger.warning(
                "Circuit breaker opened",
                breaker=self.name,
                consecutive_failures=self._metrics.consecutive_failures,
                error_rate=self._metrics.error_rate,
            )
        else:
            self._metrics.consecutive_successes = 0
            logger.info("Circuit breaker half-open, probing recovery", breaker=self.name)

        logger.info(
            "Circuit breaker state transition",
            breaker=self.name,
            correlation_id=self._correlation_id(),
            old_state=old_state.value,
            new_state=new_state.value,
        )

    def _force(self, state: CircuitState) -> CircuitStateRecord:
        with self._state_lock:
            self._transition_to(state)
            return self._snapshot(self._correlation_id())

    async def reset(self) -> None:
        """Force the breaker CLOSED with zeroed counters."""
        record = self._force(CircuitState.CLOSED)
        logger.info("Circuit breaker manually reset", breaker=self.name)
        await self._persist(record)

    async def trip(self) -> None:
        """Force the breaker OPEN."""
        record = self._force(CircuitState.OPEN)
        logger.warning("Circuit breaker manually opened", breaker=self.name)
        await self._persist(record)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _snapshot(self, correlation_id: Optional[str]) -> CircuitStateRecord:
        """Record of the current state. Caller holds the state lock."""
        now = self._clock()
        self._version += 1
        return CircuitStateRecord(
            name=self.name,
            state=self._state,
            metrics=self._metrics.copy(),
            last_state_change=self._last_state_change,
            correlation_id=correlation_id,
            ttl=now + self.config.state_ttl,
            version=self._version,
        )

    def _save_state(self, record: CircuitStateRecord) -> None:
        with self._write_lock:
            if record.version <= self._written_version:
                logger.debug(
                    "Skipping superseded circuit breaker state",
                    breaker=self.name,
                    version=record.version,
                    written_version=self._written_version,
                )
                return
            self._written_version = record.version

            try:
                self.store.put(record)
            except Exception as e:
                # In-memory state stays authoritative
                logger.warning(
                    "Failed to persist circuit breaker state",
                    breaker=self.name,
                    correlation_id=record.correlation_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )

    async def _persist(self, record: CircuitStateRecord) -> None:
        await asyncio.to_thread(self._save_state, record)

    def _load_state(self) -> None:
        """Adopt the persisted record unless it is missing, expired or stale."""
        try:
            record = self.store.get(self.name)
        except Exception as e:
            logger.warning(
                "Failed to load circuit breaker state, starting CLOSED",
                breaker=self.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return

        if record is None:
            return

        # Continue the stored sequence so this process's writes sort after it
        self._version = self._written_version = record.version

        now = self._clock()
        if record.is_expired(now):
            logger.info("Ignoring expired circuit breaker state", breaker=self.name)
            return

        age = now - record.last_state_change
        if age >= 2 * self.config.reset_timeout:
            logger.info(
                "Ignoring stale circuit breaker state",
                breaker=self.name,
                state=record.state.value,
                age_seconds=age,
            )
            return

        self._state = record.state
        self._metrics = record.metrics.copy()
        self._metrics.recompute_error_rate()
        self._last_state_change = record.last_state_change

        logger.info(
            "Loaded circuit breaker state",
            breaker=self.name,
            state=self._state.value,
            total_requests=self._metrics.total_requests,
        )

    def _correlation_id(self) -> Optional[str]:
        return self.tracker.get_current_correlation_id()


class CircuitBreakerRegistry:
    """
    Registry for managing multiple circuit breakers.

    Provides centralized creation and monitoring of breakers by name.
    """

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.RLock()

    def get_breaker(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        store: Optional[StateStore] = None,
        tracker=None,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker by name."""
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(name, config, store, tracker)
                logger.info("Created new circuit breaker", breaker=name)
            return self._breakers[name]

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get statistics for all circuit breakers."""
        with self._lock:
            return {name: breaker.stats for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        """Reset all circuit breakers and persist the CLOSED state."""
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker._save_state(breaker._force(CircuitState.CLOSED))
        logger.info("All circuit breakers reset", count=len(breakers))

    def clear(self) -> None:
        with self._lock:
            self._breakers.clear()


# Global circuit breaker registry
_registry = CircuitBreakerRegistry()


def get_circuit_breaker(
    name: str,
    config: Optional[CircuitBreakerConfig] = None,
    store: Optional[StateStore] = None,
    tracker=None,
) -> CircuitBreaker:
    """Get a circuit breaker from the global registry."""
    return _registry.get_breaker(name, config, store, tracker)


def get_circuit_breaker_stats() -> Dict[str, Dict[str, Any]]:
    """Get statistics for all circuit breakers."""
    return _registry.get_stats()


def reset_all_circuit_breakers() -> None:
    """Reset all circuit breakers in the registry."""
    _registry.reset_all()
