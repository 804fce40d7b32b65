#!/usr/bin/env python3
"""
Tests for statistical utilities
"""

import math
import numpy as np
import pytest

from golf_ranker.analytics.utils_stats import (
    clamp, coverage_confidence, dynamic_weight, exp_decay, field_mean_std,
    half_life_weight, normalize_abs, normalize_sum, percentile_threshold, weighted_average,
)


class TestRecencyWeights:
    """Test recency and time weights."""

    def test_exp_decay(self):
        """Weights are exp(-rate*i), newest first."""
        weights = exp_decay(3, 0.25)
        assert weights[0] == pytest.approx(1.0)
        assert weights[2] == pytest.approx(math.exp(-0.5))
        assert len(exp_decay(0, 0.25)) == 0

    def test_half_life(self):
        """A half-life old observation gets weight 0.5."""
        assert half_life_weight(2.0, 2.0) == pytest.approx(0.5)
        assert half_life_weight(-1.0, 2.0) == 1.0
        assert half_life_weight(5.0, 0) == 1.0

    def test_weighted_average(self):
        """Weighted mean with None for empty input or zero mass."""
        assert weighted_average([1.0, 3.0], [1.0, 1.0]) == pytest.approx(2.0)
        assert weighted_average([], []) is None
        assert weighted_average([1.0], [0.0]) is None


class TestDynamicWeight:
    """Test sample-size scaled blend weights."""

    def test_minimum_share(self):
        """At or below the minimum sample, 80% of the base weight."""
        assert dynamic_weight(0.8, 2, 2) == pytest.approx(0.64)
        assert dynamic_weight(0.8, 0, 2) == pytest.approx(0.64)

    def test_full_weight(self):
        """At or above the maximum sample, the full base weight."""
        assert dynamic_weight(0.7, 20, 2) == pytest.approx(0.7)

    def test_linear_between(self):
        """Linear ramp between the minimum and maximum sample."""
        assert dynamic_weight(0.8, 11, 2, 20) == pytest.approx(0.8 * 0.9)


class TestNormalization:
    """Test weight normalization helpers."""

    def test_normalize_abs_preserves_sign(self):
        result = normalize_abs({"a": 3.0, "b": -1.0})
        assert result == {"a": pytest.approx(0.75), "b": pytest.approx(-0.25)}

    def test_zero_mass(self):
        """Zero mass yields an empty map instead of dividing by zero."""
        assert normalize_abs({"a": 0.0}) == {}
        assert normalize_sum({}) == {}

    def test_normalize_sum(self):
        result = normalize_sum({"a": 1.0, "b": 3.0})
        assert sum(result.values()) == pytest.approx(1.0)
        assert result["b"] == pytest.approx(0.75)


class TestPercentileThreshold:
    """Test percentile thresholds."""

    def test_upper_and_lower_tails(self):
        """For values 1..10, the 90th percentile is 10 and the 10th is 2."""
        values = list(range(10, 0, -1))
        assert percentile_threshold(values, 0.9) == 10
        assert percentile_threshold(values, 0.1) == 2

    def test_index_clamped(self):
        assert percentile_threshold([5.0], 1.0) == 5.0
        assert percentile_threshold([1.0, 2.0], 0.0) == 1.0

    def test_empty(self):
        assert percentile_threshold([], 0.5) is None


class TestMisc:
    """Test remaining helpers."""

    def test_clamp(self):
        assert clamp(5, 0, 1) == 1
        assert clamp(-5, 0, 1) == 0
        assert clamp(0.5, 0, 1) == 0.5

    def test_coverage_confidence(self):
        """Confidence is 0.5 + 0.5*sqrt(coverage)."""
        assert coverage_confidence(1.0) == pytest.approx(1.0)
        assert coverage_confidence(0.0) == pytest.approx(0.5)
        assert coverage_confidence(0.25) == pytest.approx(0.75)

    def test_field_mean_std(self):
        mean, std = field_mean_std([2.0, -2.0])
        assert mean == pytest.approx(0.0)
        assert std == pytest.approx(np.sqrt(8.0))
        assert field_mean_std([1.0]) == (1.0, 0.0)
        assert field_mean_std([]) == (0.0, 0.0)
