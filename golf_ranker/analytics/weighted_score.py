#!/usr/bin/env python3
"""
Weighted Score Calculation

Composes group scores into a single ranking score, applies the course-history
refinement and past-performance multiplier, computes WAR, and sorts the field.
"""

import math
import pandas as pd
from dataclasses import dataclass, replace
from typing import List, Dict, Any, Optional, Sequence, Mapping, Tuple
import logging

from golf_ranker.analytics.aggregator import AggregatedPlayerMetrics, EventResult
from golf_ranker.analytics.group_scorer import GroupScoreResult
from golf_ranker.analytics.metric_catalog import MetricGroup
from golf_ranker.analytics.utils_stats import clamp

logger = logging.getLogger(__name__)

PAST_PERFORMANCE_FALLBACK_WEIGHT = 0.30
LOW_SAMPLE_PAST_WEIGHTS = {1: 0.15, 2: 0.20, 3: 0.25}


@dataclass(frozen=True)
class CourseHistoryRegression:
    """Regression of finish position on prior starts at a course."""
    slope: float
    p_value: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["CourseHistoryRegression"]:
        if not data:
            return None
        slope = data.get("slope")
        p_value = data.get("p_value", data.get("pValue"))
        try:
            return cls(float(slope), float(p_value))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed course history regression: {data!r}")
            return None


def lookup_course_history(table: Optional[Mapping[Any, Any]], course_num: Any) -> Optional[CourseHistoryRegression]:
    """Find the regression entry for a course number; None when absent."""
    if not table or course_num is None:
        return None
    entry = table.get(course_num, table.get(str(course_num)))
    if entry is None:
        try:
            entry = table.get(int(course_num))
        except (TypeError, ValueError):
            entry = None
    return CourseHistoryRegression.from_dict(entry) if entry else None


def course_history_weight(regression: Optional[CourseHistoryRegression]) -> Optional[float]:
    """
    Map a course-history regression to a past-performance weight.

    Stronger (more negative, more significant) slopes earn more weight,
    between 0.10 and 0.40.
    """
    if regression is None:
        return None
    slope, p = regression.slope, regression.p_value
    if slope >= 0 or p >= 0.2:
        return 0.10
    if p <= 0.01:
        if slope <= -3:
            return 0.40
        if slope <= -1.5:
            return 0.30
        return 0.25
    if p <= 0.05:
        if slope <= -2:
            return 0.30
        if slope <= -1:
            return 0.25
        return 0.20
    if p <= 0.10:
        return 0.20 if slope <= -1 else 0.15
    return 0.10


def position_score(position: int) -> float:
    if position == 1:
        return 1.5
    if position <= 3:
        return 1.2
    if position <= 5:
        return 1.0
    if position <= 10:
        return 0.8
    if position <= 25:
        return 0.4
    if position <= 50:
        return 0.1
    return -0.2


def course_history_count(events: Sequence[EventResult], current_event_id: Optional[str],
                         current_season: Optional[int]) -> int:
    """Number of prior-season starts at the current event."""
    if current_event_id is None:
        return 0
    return sum(
        1 for e in events
        if e.event_id == str(current_event_id)
        and (e.year is None or current_season is None or e.year < int(current_season))
    )


def effective_past_performance_weight(weight: float, enabled: bool, history_count: int,
                                      ladder_weight: Optional[float],
                                      fallback_weight: float = PAST_PERFORMANCE_FALLBACK_WEIGHT) -> float:
    """
    Cap the configured past-performance weight by sample size and course history.

    Args:
        weight: Configured weight in [0, 1]
        enabled: Whether past performance is used at all
        history_count: Prior starts at the current event
        ladder_weight: Weight from the course-history ladder (None if unknown)
        fallback_weight: Cap used when the player has no prior start

    Returns:
        Effective weight
    """
    weight = clamp(weight or 0.0, 0.0, 1.0)
    if not enabled or weight <= 0:
        return 0.0
    effective = weight
    if history_count == 0:
        effective = min(weight, ladder_weight if ladder_weight is not None else fallback_weight)
    elif history_count <= 3:
        effective = min(weight, LOW_SAMPLE_PAST_WEIGHTS.get(history_count, weight))
    if ladder_weight is not None:
        effective = min(effective, ladder_weight)
    return effective


def past_performance_multiplier(events: Sequence[EventResult], effective_weight: float,
                                current_event_id: Optional[str] = None) -> float:
    """
    Recency-weighted finish multiplier.

    Events are taken newest season first (the current event is skipped), each
    finish is scored by position band and weighted 0.5^i. The average maps to
    0.7 + 0.6*avg, capped to [0.5, 1.8], and is scaled by the effective weight.

    Returns:
        Multiplier around 1.0 (exactly 1.0 without usable events or weight)
    """
    if effective_weight <= 0 or not events:
        return 1.0
    ordered = sorted(events, key=lambda e: e.year if e.year is not None else -1, reverse=True)
    total = 0.0
    mass = 0.0
    index = 0
    for event in ordered:
        if current_event_id is not None and event.event_id == str(current_event_id):
            continue
        recency = math.pow(0.5, index)
        total += position_score(event.position) * recency
        mass += recency
        index += 1
    if mass == 0:
        return 1.0
    raw = 0.7 + (total / mass) * 0.6
    capped = clamp(raw, 0.5, 1.8)
    return 1.0 + (capped - 1.0) * effective_weight


def calculate_war(groups: Sequence[MetricGroup], z_scores: Mapping[str, Optional[float]]) -> float:
    """
    Wins-above-replacement style summary of a player's z-scores.

    Sum of sign(z)*ln(1+|z|) weighted by group weight times metric weight,
    with the KPI weights normalized by their absolute sum.
    """
    kpis = [(m.metric, g.weight * m.weight) for g in groups for m in g.members]
    mass = sum(abs(w) for _, w in kpis)
    if mass == 0:
        return 0.0
    war = 0.0
    for metric_name, weight in kpis:
        z = z_scores.get(metric_name)
        if z is None or weight == 0:
            continue
        war += math.copysign(math.log1p(abs(z)), z) * (weight / mass)
    return war


@dataclass(frozen=True)
class PlayerScore:
    """Final per-player ranking record."""
    dg_id: int
    name: str
    metrics: Mapping[str, Optional[float]]
    z_scores: Mapping[str, Optional[float]]
    group_scores: Mapping[str, Optional[float]]
    group_scores_before_dampening: Mapping[str, Optional[float]]
    group_scores_after_dampening: Mapping[str, Optional[float]]
    weighted_score: float
    refined_weighted_score: float
    past_performance_multiplier: float
    dampening_factor: float
    data_coverage: float
    confidence_factor: float
    war: float
    delta_trend_score: Optional[float] = None
    delta_predictive_score: Optional[float] = None
    delta_war_impact: float = 0.0
    delta_bucket_signal: Optional[float] = None
    delta_bucket_z: Optional[float] = None
    delta_note: str = ""
    rank: int = 0


def ranking_sort_key(score: PlayerScore) -> Tuple[float, float, int]:
    return (-score.refined_weighted_score, -score.weighted_score, score.dg_id)


def rank_scores(scores: Sequence[PlayerScore]) -> List[PlayerScore]:
    """
    Sort by refined score desc, weighted score desc, player id asc and assign ranks.
    """
    ordered = sorted(scores, key=ranking_sort_key)
    return [replace(score, rank=i + 1) for i, score in enumerate(ordered)]


def scores_to_frame(scores: Sequence[PlayerScore], include_metrics: bool = False) -> pd.DataFrame:
    """
    Render ranked player scores as a DataFrame (one row per player).

    Group scores become ``group::<name>`` columns; raw metrics are added as
    ``metric::<name>`` columns when ``include_metrics`` is set.
    """
    rows = []
    for score in scores:
        row = {
            'rank': score.rank,
            'dg_id': score.dg_id,
            'player_name': score.name,
            'refined_weighted_score': score.refined_weighted_score,
            'weighted_score': score.weighted_score,
            'past_performance_multiplier': score.past_performance_multiplier,
            'dampening_factor': score.dampening_factor,
            'data_coverage': score.data_coverage,
            'confidence_factor': score.confidence_factor,
            'war': score.war,
            'delta_trend_score': score.delta_trend_score,
            'delta_predictive_score': score.delta_predictive_score,
            'delta_war_impact': score.delta_war_impact,
            'delta_note': score.delta_note,
        }
        for group_name, value in score.group_scores.items():
            row[f'group::{group_name}'] = value
        if include_metrics:
            for metric_name, value in score.metrics.items():
                row[f'metric::{metric_name}'] = value
        rows.append(row)
    return pd.DataFrame(rows)


class WeightedScoreCalculator:
    """
    Group-weighted ranking score with course-history refinement.

    Args:
        groups: Weighted metric groups
        course_history: Regression for the course being played (None = no refinement)
        p_value_threshold: Maximum p-value for the regression to count
        past_performance_enabled: Apply the past-performance multiplier
        past_performance_weight: Configured past-performance weight
        current_event_id / current_season: Event being ranked
        fallback_weight: Past-performance cap for players without course history
    """

    def __init__(self, groups: Sequence[MetricGroup], course_history: Optional[CourseHistoryRegression] = None,
                 p_value_threshold: float = 0.05, past_performance_enabled: bool = False,
                 past_performance_weight: float = 0.0, current_event_id: Optional[Any] = None,
                 current_season: Optional[int] = None,
                 fallback_weight: float = PAST_PERFORMANCE_FALLBACK_WEIGHT):
        self.groups = tuple(groups)
        self.course_history = course_history
        self.p_value_threshold = p_value_threshold
        self.past_performance_enabled = past_performance_enabled
        self.past_performance_weight = past_performance_weight
        self.current_event_id = str(current_event_id) if current_event_id is not None else None
        self.current_season = current_season
        self.fallback_weight = fallback_weight
        self.ladder_weight = course_history_weight(course_history)

    @classmethod
    def from_config(cls, groups: Sequence[MetricGroup], config: Dict[str, Any]) -> "WeightedScoreCalculator":
        regression = lookup_course_history(config.get('COURSE_HISTORY_REGRESSION'), config.get('COURSE_NUM'))
        return cls(
            groups,
            course_history=regression,
            p_value_threshold=config.get('COURSE_HISTORY_P_THRESHOLD', 0.05),
            past_performance_enabled=config.get('PAST_PERFORMANCE_ENABLED', False),
            past_performance_weight=config.get('PAST_PERFORMANCE_WEIGHT', 0.0),
            current_event_id=config.get('CURRENT_EVENT_ID'),
            current_season=config.get('CURRENT_SEASON'),
            fallback_weight=config.get('PAST_PERFORMANCE_FALLBACK_WEIGHT', PAST_PERFORMANCE_FALLBACK_WEIGHT),
        )

    def weighted_score(self, group_scores: Mapping[str, Optional[float]]) -> float:
        """
        Sum of group score times group weight, with weights renormalized over
        groups that have data.

        Returns:
            Weighted score (0.0 when no weighted group has data)
        """
        available = [(g.weight, group_scores.get(g.name)) for g in self.groups
                     if g.weight > 0 and group_scores.get(g.name) is not None]
        mass = sum(w for w, _ in available)
        if mass <= 0:
            return 0.0
        return sum(w * s for w, s in available) / mass

    def refinement(self, confidence_factor: float) -> float:
        """Course-history nudge slope * confidenceFactor when the regression is meaningful."""
        regression = self.course_history
        if regression is None or regression.slope == 0 or regression.p_value >= self.p_value_threshold:
            return 0.0
        return regression.slope * confidence_factor

    def past_performance(self, events: Sequence[EventResult]) -> float:
        count = course_history_count(events, self.current_event_id, self.current_season)
        weight = effective_past_performance_weight(
            self.past_performance_weight, self.past_performance_enabled, count,
            self.ladder_weight, self.fallback_weight
        )
        return past_performance_multiplier(events, weight, self.current_event_id)

    def score_player(self, player: AggregatedPlayerMetrics, z_scores: Mapping[str, Optional[float]],
                     group_result: GroupScoreResult) -> PlayerScore:
        """
        Build the PlayerScore for one player.

        Args:
            player: Aggregated metrics
            z_scores: Metric z-scores
            group_result: Output of GroupScorer.score_player

        Returns:
            Unranked PlayerScore
        """
        weighted = self.weighted_score(group_result.after_dampening)
        multiplier = self.past_performance(player.events)
        refined = (weighted + self.refinement(group_result.confidence_factor)) * multiplier
        return PlayerScore(
            dg_id=player.dg_id,
            name=player.name,
            metrics=dict(player.values),
            z_scores=dict(z_scores),
            group_scores=dict(group_result.after_dampening),
            group_scores_before_dampening=dict(group_result.before_dampening),
            group_scores_after_dampening=dict(group_result.after_dampening),
            weighted_score=weighted,
            refined_weighted_score=refined,
            past_performance_multiplier=multiplier,
            dampening_factor=group_result.dampening_factor,
            data_coverage=group_result.data_coverage,
            confidence_factor=group_result.confidence_factor,
            war=calculate_war(self.groups, z_scores),
        )
