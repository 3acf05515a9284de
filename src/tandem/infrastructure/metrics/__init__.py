"""
Performance metrics for Tandem.

Records per-variant outcomes, computes nearest-rank statistics, compares the
candidate variant against the baseline and flushes aggregates to a sink.
"""

from .models import (
    MetricDatum,
    MetricUnit,
    PerformanceMetric,
    PerformanceReport,
    PerformanceStats,
    Recommendation,
    VariantComparison,
)
from .performance_tracker import PerformanceTracker
from .sinks import InMemoryMetricsSink, MetricsSink, PrometheusMetricsSink
from .statistics import compute_stats, percentile

__all__ = [
    "PerformanceTracker",
    "PerformanceMetric",
    "PerformanceStats",
    "PerformanceReport",
    "VariantComparison",
    "Recommendation",
    "MetricDatum",
    "MetricUnit",
    "MetricsSink",
    "InMemoryMetricsSink",
    "PrometheusMetricsSink",
    "percentile",
    "compute_stats",
]
