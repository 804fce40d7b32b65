#!/usr/bin/env python3
"""
Field Normalization

Converts aggregated raw metric values into z-scores relative to the current
tournament field. Composite metrics (Birdie Chances Created) are derived from
their components first and then normalized like any other metric.

A positive z-score always means "better": LowerBetter metrics have their sign
inverted after standardization.
"""

from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Tuple, Mapping
import logging

from golf_ranker.analytics.aggregator import AggregatedPlayerMetrics
from golf_ranker.analytics.metric_catalog import Metric, MetricCatalog, BIRDIE_CHANCES_CREATED
from golf_ranker.analytics.utils_stats import clamp, field_mean_std

logger = logging.getLogger(__name__)

COURSE_SETUP_KEYS = ("under100", "from100to150", "from150to200", "over200")

DEFAULT_COURSE_SETUP_WEIGHTS: Dict[str, float] = {
    "under100": 0.25,
    "from100to150": 0.35,
    "from150to200": 0.30,
    "over200": 0.10,
}

DEFAULT_DRIVING_ACCURACY = 0.6
DEFAULT_SCORING_AVERAGE = 72.0
SCORING_AVERAGE_BASELINE = 74.0
PROX_TO_STROKES = 30.0

# Component weights of Birdie Chances Created
BCC_GIR_WEIGHT = 0.40
BCC_APPROACH_WEIGHT = 0.30
BCC_PUTTING_WEIGHT = 0.25
BCC_SCORING_WEIGHT = 0.05

DEGENERATE_STD = 1e-12


@dataclass(frozen=True)
class FieldStatistics:
    """Per-metric field distribution for one ranking run."""
    metric: str
    mean: float
    std_dev: float
    count: int
    min: Optional[float] = None
    max: Optional[float] = None


def normalize_course_setup_weights(weights: Optional[Mapping[str, float]]) -> Dict[str, float]:
    """
    Return the four course-setup distance weights summing to 1.

    Missing keys count as 0. Weights that do not sum to 1 (within 0.01) are
    rescaled; an all-zero set falls back to the defaults.
    """
    if not weights:
        return dict(DEFAULT_COURSE_SETUP_WEIGHTS)
    resolved = {key: max(0.0, float(weights.get(key, 0.0) or 0.0)) for key in COURSE_SETUP_KEYS}
    total = sum(resolved.values())
    if total <= 0:
        logger.warning("Course setup weights have no mass; using defaults")
        return dict(DEFAULT_COURSE_SETUP_WEIGHTS)
    if abs(total - 1.0) > 0.01:
        logger.warning(f"Course setup weights sum to {total:.3f}; normalizing")
    return {key: value / total for key, value in resolved.items()}


def compute_birdie_chances_created(values: Mapping[str, Optional[float]],
                                   course_setup_weights: Mapping[str, float]) -> Optional[float]:
    """
    Composite birdie-chance metric.

    Weights approach GIR, strokes gained and proximity across the distance
    buckets by the course setup and the player's fairway/rough split, then
    combines them with putting and scoring average.

    Args:
        values: Metric name -> aggregated value (None when missing)
        course_setup_weights: Normalized under100/from100to150/from150to200/over200 weights

    Returns:
        Composite value, or None if no component is available
    """
    components = [name for name in values if name.startswith("Approach ")] + ["SG Putting", "Scoring Average"]
    if all(values.get(name) is None for name in components):
        return None

    def v(name: str) -> float:
        value = values.get(name)
        return 0.0 if value is None else value

    fairway = values.get("Driving Accuracy")
    fairway = DEFAULT_DRIVING_ACCURACY if fairway is None else clamp(fairway, 0.0, 1.0)
    rough = 1.0 - fairway

    w_under100 = course_setup_weights.get("under100", 0.0)
    w_mid = course_setup_weights.get("from100to150", 0.0)
    w_long = course_setup_weights.get("from150to200", 0.0)
    w_over200 = course_setup_weights.get("over200", 0.0)

    def weighted(kind: str) -> float:
        return (
            w_under100 * v(f"Approach <100 {kind}")
            + w_mid * (v(f"Approach <150 FW {kind}") * fairway + v(f"Approach <150 Rough {kind}") * rough)
            + w_long * v(f"Approach <200 FW {kind}") * fairway
            + (w_long + w_over200) * v(f"Approach >150 Rough {kind}") * rough
            + w_over200 * v(f"Approach >200 FW {kind}") * fairway
        )

    scoring_average = values.get("Scoring Average")
    if scoring_average is None:
        scoring_average = DEFAULT_SCORING_AVERAGE

    return (
        weighted("GIR") * BCC_GIR_WEIGHT
        + (weighted("SG") - weighted("Prox") / PROX_TO_STROKES) * BCC_APPROACH_WEIGHT
        + v("SG Putting") * BCC_PUTTING_WEIGHT
        + (SCORING_AVERAGE_BASELINE - scoring_average) * BCC_SCORING_WEIGHT
    )


def compute_composite_metrics(players: List[AggregatedPlayerMetrics],
                              course_setup_weights: Optional[Mapping[str, float]] = None) -> List[AggregatedPlayerMetrics]:
    """Fill composite metrics for every player."""
    weights = normalize_course_setup_weights(course_setup_weights)
    return [
        p.with_values({BIRDIE_CHANCES_CREATED: compute_birdie_chances_created(p.values, weights)})
        for p in players
    ]


class Normalizer:
    """
    Field-relative z-scoring of aggregated metrics.

    Args:
        catalog: Metric catalog
        min_sample: Minimum number of present values for a metric to be scored
        epsilon: Floor applied to the standard deviation
    """

    def __init__(self, catalog: MetricCatalog, min_sample: int = 2, epsilon: float = 1e-3):
        self.catalog = catalog
        self.min_sample = min_sample
        self.epsilon = epsilon

    @classmethod
    def from_config(cls, catalog: MetricCatalog, config: Dict[str, Any]) -> "Normalizer":
        return cls(catalog, config.get('MIN_FIELD_SAMPLE', 2), config.get('STDDEV_FLOOR', 1e-3))

    def prepare_value(self, metric: Metric, value: Optional[float]) -> Optional[float]:
        """Clip capped proximity values to [0, max_value]; other values pass through."""
        if value is None:
            return None
        if metric.is_proximity and metric.max_value is not None:
            return clamp(value, 0.0, metric.max_value)
        return value

    def compute_field_statistics(self, players: List[AggregatedPlayerMetrics]) -> Dict[str, FieldStatistics]:
        """
        Mean and sample standard deviation of every metric over players with a value.

        Returns:
            Metric name -> FieldStatistics
        """
        stats: Dict[str, FieldStatistics] = {}
        for metric in self.catalog.metrics:
            values = [self.prepare_value(metric, p.get(metric.name)) for p in players]
            values = [v for v in values if v is not None]
            mean, std = field_mean_std(values, ddof=1)
            stats[metric.name] = FieldStatistics(
                metric=metric.name,
                mean=mean,
                std_dev=std,
                count=len(values),
                min=min(values) if values else None,
                max=max(values) if values else None,
            )
        empty = [name for name, s in stats.items() if s.count == 0]
        if empty:
            logger.warning(f"{len(empty)} metrics have no field data: {', '.join(empty[:5])}{'...' if len(empty) > 5 else ''}")
        return stats

    def z_score(self, metric: Metric, value: Optional[float], stats: FieldStatistics) -> Optional[float]:
        """
        Direction-adjusted z-score.

        Returns:
            None for a missing value, 0.0 when the field statistics are degenerate
        """
        value = self.prepare_value(metric, value)
        if value is None:
            return None
        if stats.count < self.min_sample or stats.std_dev <= DEGENERATE_STD:
            return 0.0
        z = (value - stats.mean) / max(stats.std_dev, self.epsilon)
        return -z if metric.lower_better else z

    def normalize(self, players: List[AggregatedPlayerMetrics]) -> Tuple[Dict[int, Dict[str, Optional[float]]], Dict[str, FieldStatistics]]:
        """
        Z-score every metric for every player.

        Args:
            players: Aggregated players (composites already computed)

        Returns:
            Tuple (dg_id -> metric name -> z-score or None, field statistics)
        """
        stats = self.compute_field_statistics(players)
        z_scores: Dict[int, Dict[str, Optional[float]]] = {}
        for player in players:
            z_scores[player.dg_id] = {
                metric.name: self.z_score(metric, player.get(metric.name), stats[metric.name])
                for metric in self.catalog.metrics
            }
        degenerate = [name for name, s in stats.items() if 0 < s.count and (s.count < self.min_sample or s.std_dev <= DEGENERATE_STD)]
        if degenerate:
            logger.warning(f"Degenerate field statistics for {len(degenerate)} metrics; z-scores forced to 0")
        return z_scores, stats
