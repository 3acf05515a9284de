"""
Variant gateway: one operation served by a primary and an optional fallback.

Composes the resilience components in call order. The correlation scope wraps
everything, the breaker guards the primary, the answer is normalized, and a
performance metric is recorded for every variant that was attempted, so a
primary failure masked by the fallback still counts against the primary.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tandem.core.correlation import CorrelationTracker, get_correlation_tracker
from tandem.core.models import Variant
from tandem.exceptions import CircuitOpenError, ErrorCodes
from tandem.infrastructure.metrics import PerformanceTracker
from tandem.infrastructure.normalization import NormalizedResponse, ResponseNormalizer
from tandem.infrastructure.resilience import CircuitBreaker
from tandem.logging import get_logger

logger = get_logger(__name__)


@dataclass
class VariantBackend:
    """One variant's implementation of the operation."""

    variant: Variant
    call: Callable[..., Awaitable[Any]]


@dataclass
class _Attempt:
    variant: Variant
    start: float = field(default_factory=time.perf_counter)
    recorded: bool = False

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start) * 1000


class VariantGateway:
    """
    Calls ``primary`` through ``breaker`` and normalizes whatever comes back.

    ``call`` never raises for upstream failures or open circuits: both become
    failed ``NormalizedResponse`` envelopes (``CIRCUIT_OPEN``, ``TIMEOUT`` or
    the exception's own code).
    """

    def __init__(
        self,
        operation: str,
        primary: VariantBackend,
        breaker: CircuitBreaker,
        performance: PerformanceTracker,
        fallback: Optional[VariantBackend] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        tracker: Optional[CorrelationTracker] = None,
    ):
        self.operation = operation
        self.primary = primary
        self.fallback = fallback
        self.breaker = breaker
        self.performance = performance
        self.tracker = tracker if tracker is not None else get_correlation_tracker()
        self.normalizer = normalizer if normalizer is not None else ResponseNormalizer(self.tracker)

    async def call(self, *args, metadata: Optional[Dict[str, Any]] = None, **kwargs) -> NormalizedResponse:
        """Run the operation inside a new correlation scope."""
        return await self.tracker.run_with_correlation(
            self.operation, lambda: self._call(args, kwargs), metadata
        )

    def _record_failure(self, attempt: _Attempt, error_code: Optional[str]) -> None:
        if attempt.recorded:
            return
        attempt.recorded = True
        self.performance.record_metric(
            self.operation, attempt.elapsed_ms(), False, attempt.variant, error_code
        )

    async def _call(self, args, kwargs) -> NormalizedResponse:
        # The breaker may start the primary, the fallback or both
        attempts: List[_Attempt] = []

        def run(backend: VariantBackend) -> Callable[[], Awaitable[Any]]:
            async def invoke():
                # An earlier attempt that never finished was cancelled at the deadline
                for earlier in attempts:
                    self._record_failure(earlier, ErrorCodes.TIMEOUT)

                attempt = _Attempt(backend.variant)
                attempts.append(attempt)
                try:
                    return await backend.call(*args, **kwargs)
                except Exception as e:
                    error = self.normalizer.create_error_response(e, backend.variant)
                    self._record_failure(attempt, error.error.code)
                    raise

            return invoke

        fallback = run(self.fallback) if self.fallback is not None else None

        try:
            raw = await self.breaker.execute(run(self.primary), fallback)
        except CircuitOpenError as e:
            logger.warning(
                "Operation rejected by open circuit",
                operation=self.operation,
                breaker=self.breaker.name,
                correlation_id=self.tracker.get_current_correlation_id(),
            )
            return self.normalizer.create_error_response(e, self.primary.variant)
        except Exception as e:
            attempt = attempts[-1] if attempts else _Attempt(self.primary.variant)
            response = self.normalizer.create_error_response(e, attempt.variant, attempt.elapsed_ms())
            self._record_failure(attempt, response.error.code)
            return response

        attempt = attempts[-1]
        duration_ms = attempt.elapsed_ms()
        response = self.normalizer.normalize(raw, attempt.variant, duration_ms)
        attempt.recorded = True
        self.performance.record_metric(
            self.operation,
            duration_ms,
            response.success,
            attempt.variant,
            response.error.code if response.error else None,
        )
        return response
