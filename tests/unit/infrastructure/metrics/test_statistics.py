"""
Tests for nearest-rank percentiles and stats aggregation.
"""

import pytest

from tandem.infrastructure.metrics import PerformanceMetric, compute_stats, percentile


@pytest.mark.unit
class TestPercentile:
    def test_p95_of_five_values_is_the_maximum(self):
        assert percentile([100, 200, 300, 400, 500], 95) == 500

    def test_median_is_an_observed_value(self):
        assert percentile([100, 200, 300, 400], 50) == 200

    def test_unsorted_input(self):
        assert percentile([500, 100, 300, 200, 400], 50) == 300

    def test_empty_input_returns_zero(self):
        assert percentile([], 95) == 0

    def test_bounds_are_clamped(self):
        values = [1, 2, 3]
        assert percentile(values, 0) == 1
        assert percentile(values, 100) == 3

    def test_single_value(self):
        assert percentile([42.0], 99) == 42.0


@pytest.mark.unit
class TestComputeStats:
    def test_empty_metrics(self):
        stats = compute_stats("getUser", [], "http")
        assert stats.count == 0
        assert stats.mean_ms == 0.0
        assert stats.error_rate == 0.0
        assert stats.variant == "http"

    def test_aggregates(self):
        metrics = [
            PerformanceMetric("getUser", "http", d, success=d != 400)
            for d in (100.0, 200.0, 300.0, 400.0)
        ]

        stats = compute_stats("getUser", metrics)

        assert stats.count == 4
        assert stats.success_count == 3
        assert stats.failure_count == 1
        assert stats.mean_ms == 250.0
        assert stats.min_ms == 100.0
        assert stats.max_ms == 400.0
        assert stats.p50_ms == 200.0
        assert stats.p95_ms == 400.0
        assert stats.error_rate == 25.0
