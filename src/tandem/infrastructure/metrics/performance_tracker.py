"""
Performance tracking for the two serving variants.

Every guarded call records one ``PerformanceMetric``. Metrics go to two
places: a pending buffer that is periodically aggregated per
(operation, variant) and flushed to a ``MetricsSink``, and a bounded history
that ``get_stats``/``compare_variants`` read from, so statistics survive a
flush.
"""

import asyncio
import threading
import time
from collections import OrderedDict, deque
from typing import Callable, List, Optional, Sequence, Tuple, Union

from tandem.core.correlation import get_correlation_tracker
from tandem.core.models import Variant
from tandem.logging import get_logger

from .models import (
    MetricDatum,
    MetricUnit,
    PerformanceMetric,
    PerformanceReport,
    PerformanceStats,
    Recommendation,
    VariantComparison,
)
from .sinks import InMemoryMetricsSink, MetricsSink
from .statistics import compute_stats

logger = get_logger(__name__)

DEFAULT_WINDOW = 3600.0

# Recommendation thresholds (percent)
ADOPT_IMPROVEMENT_THRESHOLD = 20.0
INVESTIGATE_IMPROVEMENT_THRESHOLD = -20.0
INVESTIGATE_ERROR_RATE_DELTA = 5.0

GroupKey = Tuple[str, str]


def _variant_value(variant: Union[Variant, str]) -> str:
    return variant.value if isinstance(variant, Variant) else str(variant)


class PerformanceTracker:
    """
    Records timed outcomes and compares variants.

    Thread-safe: ``record_metric`` may be called from any thread or task. The
    background flush runs on a daemon thread; when it is running an eager
    flush is handed to it. Without it, an eager flush triggered inside an event
    loop runs in the loop's default executor so the sink never blocks the loop.
    """

    def __init__(
        self,
        sink: Optional[MetricsSink] = None,
        tracker=None,
        max_buffer_size: int = 1000,
        flush_interval: float = 60.0,
        default_variant: Union[Variant, str] = Variant.HTTP,
        baseline_variant: Union[Variant, str] = Variant.HTTP,
        candidate_variant: Union[Variant, str] = Variant.GRAPHQL,
        min_samples: int = 10,
        history_size: int = 10000,
        auto_flush: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.sink = sink if sink is not None else InMemoryMetricsSink()
        self.tracker = tracker if tracker is not None else get_correlation_tracker()
        self.max_buffer_size = max_buffer_size
        self.flush_interval = flush_interval
        self.default_variant = _variant_value(default_variant)
        self.baseline_variant = _variant_value(baseline_variant)
        self.candidate_variant = _variant_value(candidate_variant)
        self.min_samples = min_samples
        self._clock = clock

        self._buffer: List[PerformanceMetric] = []
        self._history: deque = deque(maxlen=history_size)
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._flush_thread: Optional[threading.Thread] = None

        if auto_flush:
            self.start_auto_flush()

    @classmethod
    def from_config(cls, config, sink: Optional[MetricsSink] = None, tracker=None, **kwargs) -> "PerformanceTracker":
        """Build from a ``PerformanceConfig`` model."""
        return cls(
            sink=sink,
            tracker=tracker,
            max_buffer_size=config.max_buffer_size,
            flush_interval=config.flush_interval,
            default_variant=config.default_variant,
            baseline_variant=config.baseline_variant,
            candidate_variant=config.candidate_variant,
            min_samples=config.min_samples,
            history_size=config.history_size,
            auto_flush=config.auto_flush,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_metric(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        variant: Optional[Union[Variant, str]] = None,
        error_kind: Optional[str] = None,
    ) -> PerformanceMetric:
        """Buffer one outcome, tagged with the active correlation if any."""
        context = self.tracker.get_current_context()
        metric = PerformanceMetric(
            operation=operation,
            variant=_variant_value(variant) if variant is not None else self.default_variant,
            duration_ms=float(duration_ms),
            success=success,
            timestamp=self._clock(),
            correlation_id=context.correlation_id if context else None,
            error_kind=error_kind,
            user_id=context.user_id if context else None,
        )

        with self._lock:
            self._buffer.append(metric)
            self._history.append(metric)
            buffer_full = len(self._buffer) >= self.max_buffer_size

        logger.info(
            "Metric recorded",
            operation=operation,
            variant=metric.variant,
            duration_ms=metric.duration_ms,
            success=success,
            correlation_id=metric.correlation_id,
        )

        if buffer_full:
            self._eager_flush()

        return metric

    def _eager_flush(self) -> None:
        if self._auto_flush_running():
            self._wake_event.set()
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return

        # Sink I/O stays off the event loop
        loop.run_in_executor(None, self.flush)

    def get_metrics_buffer(self) -> List[PerformanceMetric]:
        """Metrics waiting to be flushed, oldest first."""
        with self._lock:
            return list(self._buffer)

    def clear_metrics(self) -> None:
        """Drop pending metrics and history."""
        with self._lock:
            self._buffer.clear()
            self._history.clear()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _window_metrics(
        self, operation: str, window: float, variant: Optional[str] = None
    ) -> List[PerformanceMetric]:
        cutoff = self._clock() - window
        with self._lock:
            return [
                m
                for m in self._history
                if m.operation == operation
                and m.timestamp > cutoff
                and (variant is None or m.variant == variant)
            ]

    def get_stats(
        self,
        operation: str,
        window: float = DEFAULT_WINDOW,
        variant: Optional[Union[Variant, str]] = None,
    ) -> PerformanceStats:
        """Statistics for ``operation`` over the last ``window`` seconds."""
        variant_name = _variant_value(variant) if variant is not None else None
        return compute_stats(
            operation, self._window_metrics(operation, window, variant_name), variant_name
        )

    def compare_variants(
        self,
        operation: str,
        window: float = DEFAULT_WINDOW,
        baseline: Optional[Union[Variant, str]] = None,
        candidate: Optional[Union[Variant, str]] = None,
    ) -> VariantComparison:
        """
        Compare the candidate variant (B) against the baseline (A).

        ``improvement_percent`` is ``(A.mean - B.mean) / A.mean * 100``, so a
        faster candidate gives a positive number. ``error_rate_delta`` is
        ``B.error_rate - A.error_rate`` in percentage points.
        """
        baseline_name = _variant_value(baseline) if baseline is not None else self.baseline_variant
        candidate_name = _variant_value(candidate) if candidate is not None else self.candidate_variant

        a = self.get_stats(operation, window, baseline_name)
        b = self.get_stats(operation, window, candidate_name)

        improvement = (a.mean_ms - b.mean_ms) / a.mean_ms * 100 if a.mean_ms > 0 else 0.0
        delta = b.error_rate - a.error_rate

        if b.count < self.min_samples:
            recommendation = Recommendation.INSUFFICIENT_DATA
            message = f"Insufficient {candidate_name} data for comparison"
        elif improvement > ADOPT_IMPROVEMENT_THRESHOLD and delta <= 0:
            recommendation = Recommendation.ADOPT
            message = f"{candidate_name} is performing well, consider full adoption"
        elif improvement < INVESTIGATE_IMPROVEMENT_THRESHOLD or delta > INVESTIGATE_ERROR_RATE_DELTA:
            recommendation = Recommendation.INVESTIGATE
            message = f"{candidate_name} showing issues, investigate before adoption"
        else:
            recommendation = Recommendation.NEUTRAL
            message = "Performance comparable, safe to adopt"

        return VariantComparison(
            operation=operation,
            baseline=a,
            candidate=b,
            improvement_percent=improvement,
            error_rate_delta=delta,
            recommendation=recommendation,
            message=message,
        )

    def generate_report(self, window: float = DEFAULT_WINDOW) -> PerformanceReport:
        """Stats, comparison and a recommendation line for every operation seen."""
        cutoff = self._clock() - window
        with self._lock:
            operations = list(
                OrderedDict.fromkeys(m.operation for m in self._history if m.timestamp > cutoff)
            )

        report = PerformanceReport(window=window, generated_at=self._clock())
        for operation in operations:
            report.operations[operation] = self.get_stats(operation, window)
            comparison = self.compare_variants(operation, window)
            report.comparisons[operation] = comparison
            report.recommendations.append(f"{operation}: {comparison.message}")
        return report

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    def _group(self, metrics: Sequence[PerformanceMetric]) -> "OrderedDict[GroupKey, List[PerformanceMetric]]":
        groups: "OrderedDict[GroupKey, List[PerformanceMetric]]" = OrderedDict()
        for metric in metrics:
            groups.setdefault((metric.operation, metric.variant), []).append(metric)
        return groups

    def _datums_for(self, key: GroupKey, metrics: Sequence[PerformanceMetric], now: float) -> List[MetricDatum]:
        operation, variant = key
        stats = compute_stats(operation, metrics, variant)
        dimensions = {"operation": operation, "variant": variant}
        return [
            MetricDatum("OperationDuration", stats.mean_ms, MetricUnit.MILLISECONDS, now, dimensions),
            MetricDatum("OperationDurationP95", stats.p95_ms, MetricUnit.MILLISECONDS, now, dimensions),
            MetricDatum("ErrorRate", stats.error_rate, MetricUnit.PERCENT, now, dimensions),
            MetricDatum("RequestCount", float(stats.count), MetricUnit.COUNT, now, dimensions),
        ]

    def flush(self) -> int:
        """
        Aggregate pending metrics and send them to the sink.

        Returns the number of metrics whose aggregates were fully delivered.
        Never raises: on a sink failure the metrics of every group not
        completely sent go back to the front of the buffer, and the buffer is
        trimmed to capacity by dropping the oldest entries.
        """
        if not self._flush_lock.acquire(blocking=False):
            logger.debug("Flush already in progress, skipping")
            return 0

        try:
            with self._lock:
                pending = self._buffer
                self._buffer = []

            if not pending:
                return 0

            now = self._clock()
            groups = self._group(pending)

            # Flatten, remembering which group each datum came from
            datums: List[MetricDatum] = []
            owners: List[GroupKey] = []
            for key, metrics in groups.items():
                for datum in self._datums_for(key, metrics, now):
                    datums.append(datum)
                    owners.append(key)

            batch_size = max(1, min(self.sink.max_batch_size, 20))
            sent = 0
            try:
                for start in range(0, len(datums), batch_size):
                    self.sink.send(datums[start:start + batch_size])
                    sent = min(start + batch_size, len(datums))
            except Exception as e:
                unsent_keys = set(owners[sent:])
                self._requeue([m for m in pending if (m.operation, m.variant) in unsent_keys])
                delivered = len(pending) - sum(len(groups[k]) for k in unsent_keys)
                logger.error(
                    "Failed to send metrics to sink, re-queued unsent metrics",
                    error_type=type(e).__name__,
                    error=str(e),
                    sent_datapoints=sent,
                    requeued=len(pending) - delivered,
                )
                return delivered

            logger.info("Flushed metrics to sink", datapoints=len(datums), metrics=len(pending))
            return len(pending)
        finally:
            self._flush_lock.release()

    def send_to_sink(self) -> int:
        """Alias for ``flush``."""
        return self.flush()

    def _requeue(self, metrics: List[PerformanceMetric]) -> None:
        with self._lock:
            combined = metrics + self._buffer
            overflow = len(combined) - self.max_buffer_size
            if overflow > 0:
                logger.warning("Metrics buffer over capacity, dropping oldest", dropped=overflow)
                combined = combined[overflow:]
            self._buffer = combined

    # ------------------------------------------------------------------
    # Background flush
    # ------------------------------------------------------------------

    def _auto_flush_running(self) -> bool:
        return self._flush_thread is not None and self._flush_thread.is_alive()

    def start_auto_flush(self) -> None:
        """Start the periodic background flush thread (idempotent)."""
        if self._auto_flush_running():
            return
        self._stop_event.clear()
        self._flush_thread = threading.Thread(
            target=self._auto_flush_loop, name="tandem-metrics-flush", daemon=True
        )
        self._flush_thread.start()
        logger.debug("Started metrics auto-flush", interval=self.flush_interval)

    def _auto_flush_loop(self) -> None:
        while not self._stop_event.is_set():
            self._wake_event.wait(self.flush_interval)
            self._wake_event.clear()
            if self._stop_event.is_set():
                break
            self.flush()

    def stop_auto_flush(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the background flush thread."""
        thread = self._flush_thread
        if thread is None:
            return
        self._stop_event.set()
        self._wake_event.set()
        thread.join(timeout)
        self._flush_thread = None
        logger.debug("Stopped metrics auto-flush")

    def close(self) -> None:
        """Stop the background flush and flush whatever is pending."""
        self.stop_auto_flush()
        self.flush()

    def __enter__(self) -> "PerformanceTracker":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
