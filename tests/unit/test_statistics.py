"""
Unit tests for statistics helpers.
"""

import pytest

from sync_health.statistics import Trend, latency_trend, mean, percentile, population_std_dev, round_half_up


class TestPercentile:
    """Test percentile interpolation."""

    def test_interpolated_percentiles(self):
        """Test p50 and p95 on a small sample."""
        values = [10, 20, 30, 40, 50]
        assert percentile(values, 50) == pytest.approx(30.0)
        assert percentile(values, 95) == pytest.approx(48.0)

    def test_order_does_not_matter(self):
        """Test unsorted input."""
        assert percentile([50, 10, 40, 20, 30], 50) == pytest.approx(30.0)

    def test_edges(self):
        """Test empty, single value and extremes."""
        assert percentile([], 50) == 0.0
        assert percentile([7], 99) == 7.0
        assert percentile([1, 2, 3], 0) == 1.0
        assert percentile([1, 2, 3], 100) == 3.0


class TestSummaryStats:
    """Test mean and standard deviation."""

    def test_mean(self):
        assert mean([1, 2, 3, 4]) == pytest.approx(2.5)
        assert mean([]) == 0.0

    def test_population_std_dev(self):
        assert population_std_dev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
        assert population_std_dev([5]) == 0.0


class TestLatencyTrend:
    """Test latency trend detection."""

    def test_too_few_samples_is_stable(self):
        assert latency_trend([100] * 5 + [1000] * 4) == Trend.STABLE

    def test_rising_latency_is_degrading(self):
        assert latency_trend([100] * 10 + [200] * 10) == Trend.DEGRADING

    def test_falling_latency_is_improving(self):
        assert latency_trend([200] * 10 + [100] * 10) == Trend.IMPROVING

    def test_small_change_is_stable(self):
        assert latency_trend([100] * 10 + [105] * 10) == Trend.STABLE

    def test_ten_samples_have_no_second_half(self):
        assert latency_trend([100] * 5 + [200] * 5) == Trend.STABLE

    def test_partial_window_compares_first_ten_with_rest(self):
        # first ten average 115, the remaining five 120
        assert latency_trend([100] * 7 + [150] * 3 + [120] * 5) == Trend.STABLE
        assert latency_trend([100] * 10 + [200] * 5) == Trend.DEGRADING


class TestRounding:
    """Test half-up rounding."""

    @pytest.mark.parametrize("value,expected", [
        (62.5, 63),
        (0.5, 1),
        (2.5, 3),
        (66.4, 66),
        (0.0, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected
