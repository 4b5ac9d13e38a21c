"""Tests for summary statistics and effect sizes."""

import hypothesis.strategies as st
import pytest
from hypothesis import given

from benchmark_runner.metrics import (
    AggregatedMetrics,
    compute_effect_size,
    interpret_effect_size,
)

values = st.lists(
    st.floats(min_value=0, max_value=10_000, allow_nan=False, allow_infinity=False),
    min_size=1,
    max_size=50,
)


class TestAggregatedMetrics:
    def test_empty(self):
        assert AggregatedMetrics.from_values([]).count == 0

    def test_single_value_has_zero_width_interval(self):
        metrics = AggregatedMetrics.from_values([42.0])
        assert metrics.ci_lower == metrics.ci_upper == 42.0
        assert metrics.std_dev == 0.0

    def test_to_dict(self):
        data = AggregatedMetrics.from_values([60.0, 120.0]).to_dict()
        assert data["count"] == 2
        assert data["mean"] == 90.0
        assert data["min"] == 60.0
        assert data["max"] == 120.0
        assert data["ci_95_lower"] < 90.0 < data["ci_95_upper"]

    @given(values)
    def test_mean_within_bounds(self, xs):
        metrics = AggregatedMetrics.from_values(xs)
        assert metrics.minimum - 1e-6 <= metrics.mean <= metrics.maximum + 1e-6
        assert metrics.ci_lower <= metrics.mean + 1e-6
        assert metrics.ci_upper >= metrics.mean - 1e-6


class TestEffectSize:
    def test_separated_groups(self):
        d = compute_effect_size([10.0, 11.0, 12.0], [1.0, 2.0, 3.0])
        assert d > 0.8
        assert interpret_effect_size(d) == "large"
        assert compute_effect_size([1.0, 2.0, 3.0], [10.0, 11.0, 12.0]) == pytest.approx(-d)

    @pytest.mark.parametrize(
        ("a", "b"),
        [([1.0], [2.0, 3.0]), ([], [1.0, 2.0]), ([5.0, 5.0], [5.0, 5.0])],
    )
    def test_degenerate_groups(self, a, b):
        assert compute_effect_size(a, b) == 0.0

    @pytest.mark.parametrize(
        ("d", "label"),
        [(0.0, "negligible"), (-0.3, "small"), (0.6, "medium"), (-1.2, "large")],
    )
    def test_interpretation(self, d, label):
        assert interpret_effect_size(d) == label
