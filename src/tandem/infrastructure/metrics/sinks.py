"""
Metrics sinks for flushed performance aggregates.

A sink accepts batches of at most ``max_batch_size`` data points. It either
accepts a whole batch or raises; the tracker re-queues whatever was not sent.
"""

import threading
from collections import deque
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
    start_http_server,
)

from tandem.exceptions import MetricsSinkError
from tandem.logging import get_logger

from .models import MetricDatum

logger = get_logger(__name__)

MAX_BATCH_SIZE = 20


@runtime_checkable
class MetricsSink(Protocol):
    """Destination for aggregated performance data points."""

    max_batch_size: int

    def send(self, batch: Sequence[MetricDatum]) -> None:
        """Deliver one batch; raise on failure."""
        ...


class InMemoryMetricsSink:
    """Keeps the most recent batches in memory, for tests and local inspection."""

    def __init__(self, max_batch_size: int = MAX_BATCH_SIZE, max_batches: int = 1000):
        self.max_batch_size = max_batch_size
        self.batches: deque = deque(maxlen=max_batches)
        self._lock = threading.Lock()

    def send(self, batch: Sequence[MetricDatum]) -> None:
        if len(batch) > self.max_batch_size:
            raise MetricsSinkError(len(batch), f"exceeds max_batch_size {self.max_batch_size}")
        with self._lock:
            self.batches.append(list(batch))

    @property
    def data(self) -> List[MetricDatum]:
        """Every retained data point, oldest first."""
        with self._lock:
            return [datum for batch in self.batches for datum in batch]

    def clear(self) -> None:
        with self._lock:
            self.batches.clear()


class PrometheusMetricsSink:
    """
    Exposes flushed aggregates as Prometheus metrics.

    Durations and error rates become gauges holding the latest flushed value;
    request counts accumulate in a counter. Metrics live in a private
    ``CollectorRegistry`` so several sinks (or test runs) never collide.
    """

    def __init__(
        self,
        namespace: str = "tandem",
        registry: Optional[CollectorRegistry] = None,
        max_batch_size: int = MAX_BATCH_SIZE,
    ):
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        self.max_batch_size = max_batch_size
        self._server_started = False

        labels = ["operation", "variant"]
        self.operation_duration = Gauge(
            f"{namespace}_operation_duration_ms",
            "Mean operation duration in milliseconds over the last flush",
            labels,
            registry=self.registry,
        )
        self.operation_duration_p95 = Gauge(
            f"{namespace}_operation_duration_p95_ms",
            "95th percentile operation duration in milliseconds over the last flush",
            labels,
            registry=self.registry,
        )
        self.error_rate = Gauge(
            f"{namespace}_error_rate_percent",
            "Operation error rate in percent over the last flush",
            labels,
            registry=self.registry,
        )
        self.requests_total = Counter(
            f"{namespace}_requests",
            "Total guarded operations recorded",
            labels,
            registry=self.registry,
        )

        self._gauges: Dict[str, Gauge] = {
            "OperationDuration": self.operation_duration,
            "OperationDurationP95": self.operation_duration_p95,
            "ErrorRate": self.error_rate,
        }

    def send(self, batch: Sequence[MetricDatum]) -> None:
        for datum in batch:
            operation = datum.dimensions.get("operation", "unknown")
            variant = datum.dimensions.get("variant", "unknown")

            if datum.name == "RequestCount":
                self.requests_total.labels(operation=operation, variant=variant).inc(datum.value)
                continue

            gauge = self._gauges.get(datum.name)
            if gauge is None:
                logger.debug("Ignoring unknown metric datum", metric=datum.name)
                continue
            gauge.labels(operation=operation, variant=variant).set(datum.value)

    def start_server(self, port: int = 8000) -> None:
        """Start the Prometheus HTTP exposition server (daemon thread)."""
        if self._server_started:
            logger.warning("Metrics server already running", port=port)
            return
        start_http_server(port, registry=self.registry)
        self._server_started = True
        logger.info("Prometheus metrics server started", port=port)

    def expose(self) -> bytes:
        """Current metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry)
