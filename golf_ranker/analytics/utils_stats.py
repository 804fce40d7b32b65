#!/usr/bin/env python3
"""
Statistical utilities for the golf field ranking engine.

Provides helper functions for recency weighting, weight normalization and
small statistical operations used throughout the ranking pipeline.
"""

import math
import numpy as np
from typing import Dict, Mapping, Optional, Sequence
import logging

logger = logging.getLogger(__name__)


def exp_decay(n: int, rate: float) -> np.ndarray:
    """
    Exponential recency weights by position, newest first.

    Args:
        n: Number of observations
        rate: Decay rate (higher = faster decay)

    Returns:
        Array of weights exp(-rate * i) for i in 0..n-1 (not normalized)
    """
    if n <= 0:
        return np.array([], dtype=float)
    indices = np.arange(n)
    return np.exp(-rate * indices)


def half_life_weight(age_years: float, half_life_years: float) -> float:
    """
    Time-based weight 2^(-age/half_life).

    Args:
        age_years: Age of the observation in years (negative ages count as 0)
        half_life_years: Half-life in years

    Returns:
        Weight in (0, 1]
    """
    if half_life_years is None or half_life_years <= 0:
        return 1.0
    return float(2.0 ** (-max(age_years, 0.0) / half_life_years))


def weighted_average(values: Sequence[float], weights: Sequence[float]) -> Optional[float]:
    """
    Weighted mean sum(v*w)/sum(w).

    Returns:
        Weighted mean, or None when there are no values or no weight mass
    """
    if len(values) == 0:
        return None
    v = np.asarray(values, dtype=float)
    w = np.asarray(weights, dtype=float)
    total = w.sum()
    if total <= 0:
        return None
    return float((v * w).sum() / total)


def dynamic_weight(base_weight: float, n_points: int, min_points: int, max_points: int = 20) -> float:
    """
    Scale a blending weight by how much supporting data exists.

    80% of the base weight at or below ``min_points``, the full base weight at or
    above ``max_points`` and linear in between.

    Args:
        base_weight: Configured blending weight
        n_points: Number of supporting observations
        min_points: Sample size that earns the minimum share
        max_points: Sample size that earns the full weight

    Returns:
        Effective blending weight
    """
    if n_points <= min_points:
        return base_weight * 0.8
    if n_points >= max_points or max_points <= min_points:
        return base_weight
    progress = (n_points - min_points) / (max_points - min_points)
    return base_weight * (0.8 + 0.2 * progress)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def normalize_abs(weights: Mapping[str, float]) -> Dict[str, float]:
    """
    Divide every weight by the sum of absolute weights, preserving sign.

    Returns:
        Normalized weights, or an empty dict when the absolute mass is zero
    """
    total = sum(abs(w) for w in weights.values())
    if total <= 0:
        return {}
    return {k: w / total for k, w in weights.items()}


def normalize_sum(weights: Mapping[str, float]) -> Dict[str, float]:
    """
    Divide every weight by the plain sum so the result sums to 1.

    Returns:
        Normalized weights, or an empty dict when the sum is not positive
    """
    total = sum(weights.values())
    if total <= 0:
        return {}
    return {k: w / total for k, w in weights.items()}


def percentile_threshold(values: Sequence[float], percentile: float) -> Optional[float]:
    """
    Value at index floor(n * percentile) of the ascending-sorted values.

    The index is clamped to [0, n-1].

    Args:
        values: Observed values (order irrelevant)
        percentile: Fraction in [0, 1]

    Returns:
        Threshold value, or None when ``values`` is empty
    """
    ordered = sorted(v for v in values if v is not None and not math.isnan(v))
    if not ordered:
        return None
    n = len(ordered)
    idx = min(n - 1, max(0, int(math.floor(n * percentile))))
    return ordered[idx]


def coverage_confidence(coverage: float) -> float:
    """
    Confidence factor for a data coverage fraction: 0.5 + 0.5*sqrt(coverage).

    Returns:
        Value in [0.5, 1.0]
    """
    if coverage is None or math.isnan(coverage):
        return 0.5
    return 0.5 + 0.5 * math.sqrt(clamp(coverage, 0.0, 1.0))


def field_mean_std(values: Sequence[float], ddof: int = 1):
    """
    Mean and standard deviation of a sample.

    Args:
        values: Sample values
        ddof: Delta degrees of freedom (1 = sample std, 0 = population std)

    Returns:
        Tuple (mean, std); std is 0.0 when the sample is too small
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0, 0.0
    mean = float(arr.mean())
    if arr.size <= ddof:
        return mean, 0.0
    return mean, float(arr.std(ddof=ddof))
