"""
Duration statistics for performance metrics.

Percentiles use the nearest-rank method: sort ascending and take the element
at index ``ceil(p / 100 * n) - 1``, clamped to ``[0, n - 1]``. No
interpolation, so the result is always an observed value.
"""

import math
from typing import Iterable, Optional, Sequence

from .models import PerformanceMetric, PerformanceStats


def percentile(values: Iterable[float], p: float) -> float:
    """Nearest-rank percentile of ``values``; 0 for empty input."""
    ordered = sorted(values)
    n = len(ordered)
    if n == 0:
        return 0.0
    index = math.ceil(p / 100 * n) - 1
    index = max(0, min(index, n - 1))
    return ordered[index]


def compute_stats(
    operation: str,
    metrics: Sequence[PerformanceMetric],
    variant: Optional[str] = None,
) -> PerformanceStats:
    """Aggregate ``metrics`` (already filtered by the caller) into stats."""
    if not metrics:
        return PerformanceStats(operation=operation, variant=variant)

    durations = sorted(m.duration_ms for m in metrics)
    count = len(durations)
    success_count = sum(1 for m in metrics if m.success)
    failure_count = count - success_count

    return PerformanceStats(
        operation=operation,
        variant=variant,
        count=count,
        success_count=success_count,
        failure_count=failure_count,
        mean_ms=sum(durations) / count,
        min_ms=durations[0],
        max_ms=durations[-1],
        p50_ms=percentile(durations, 50),
        p95_ms=percentile(durations, 95),
        p99_ms=percentile(durations, 99),
        error_rate=failure_count / count * 100,
    )
