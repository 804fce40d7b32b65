#!/usr/bin/env python3
"""
Group Scoring

Composes metric z-scores into per-group scores using the group's metric
weights. Missing metrics are excluded and the remaining weights renormalized,
so absent data is never scored as zero. Players with low data coverage have
their group scores pulled toward 0 (regression to the mean).
"""

import math
from dataclasses import dataclass
from typing import Dict, Any, Optional, Sequence, Mapping
import logging

from golf_ranker.analytics.metric_catalog import MetricCatalog, MetricGroup
from golf_ranker.analytics.utils_stats import coverage_confidence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupScoreResult:
    """Group scores and coverage diagnostics for one player."""
    dg_id: int
    before_dampening: Mapping[str, Optional[float]]
    after_dampening: Mapping[str, Optional[float]]
    data_coverage: float
    confidence_factor: float
    dampening_factor: float


class GroupScorer:
    """
    Per-group weighted z-score composition with coverage dampening.

    Args:
        groups: Weighted metric groups
        catalog: Metric catalog (for scoring-metric flags)
        coverage_threshold: Coverage below which dampening applies
        dampening_strength: Fraction of (1 - confidenceFactor) removed from group scores
        scoring_z_threshold: |z| above which scoring metrics are amplified
        scoring_z_exponent: Exponent of the amplification factor
    """

    def __init__(self, groups: Sequence[MetricGroup], catalog: MetricCatalog,
                 coverage_threshold: float = 0.70, dampening_strength: float = 1.0,
                 scoring_z_threshold: float = 2.0, scoring_z_exponent: float = 0.75):
        self.groups = tuple(groups)
        self.catalog = catalog
        self.coverage_threshold = coverage_threshold
        self.dampening_strength = dampening_strength
        self.scoring_z_threshold = scoring_z_threshold
        self.scoring_z_exponent = scoring_z_exponent

    @classmethod
    def from_config(cls, groups: Sequence[MetricGroup], catalog: MetricCatalog, config: Dict[str, Any]) -> "GroupScorer":
        return cls(
            groups, catalog,
            coverage_threshold=config.get('DAMPENING_COVERAGE_THRESHOLD', 0.70),
            dampening_strength=config.get('DAMPENING_STRENGTH', 1.0),
            scoring_z_threshold=config.get('SCORING_Z_THRESHOLD', 2.0),
            scoring_z_exponent=config.get('SCORING_Z_EXPONENT', 0.75),
        )

    def adjust_z(self, metric_name: str, z: float) -> float:
        """Amplify large z-scores of scoring metrics: z * (|z|/threshold)^exponent."""
        if not self.catalog.get(metric_name).scoring or self.scoring_z_threshold <= 0:
            return z
        magnitude = abs(z)
        if magnitude <= self.scoring_z_threshold:
            return z
        return z * math.pow(magnitude / self.scoring_z_threshold, self.scoring_z_exponent)

    def group_score(self, group: MetricGroup, z_scores: Mapping[str, Optional[float]]) -> Optional[float]:
        """
        Weighted mean of present member z-scores, sum(z*w)/sum(|w|).

        Returns:
            Group score, or None when no weighted member has a z-score
        """
        weighted_sum = 0.0
        weight_mass = 0.0
        for member in group.members:
            if member.weight == 0:
                continue
            z = z_scores.get(member.metric)
            if z is None:
                continue
            weighted_sum += self.adjust_z(member.metric, z) * member.weight
            weight_mass += abs(member.weight)
        if weight_mass == 0:
            return None
        return weighted_sum / weight_mass

    def data_coverage(self, z_scores: Mapping[str, Optional[float]]) -> float:
        """Fraction of active group members that have a z-score."""
        active = [m for g in self.groups for m in g.active_members]
        if not active:
            return 0.0
        present = sum(1 for m in active if z_scores.get(m.metric) is not None)
        return present / len(active)

    def dampening_factor(self, coverage: float, confidence: float) -> float:
        if coverage >= self.coverage_threshold:
            return 1.0
        return max(0.0, 1.0 - self.dampening_strength * (1.0 - confidence))

    def score_player(self, dg_id: int, z_scores: Mapping[str, Optional[float]]) -> GroupScoreResult:
        """
        Score every group for one player.

        Args:
            dg_id: Player id
            z_scores: Metric name -> z-score (None when missing)

        Returns:
            GroupScoreResult with before/after dampening scores
        """
        before = {group.name: self.group_score(group, z_scores) for group in self.groups}
        coverage = self.data_coverage(z_scores)
        confidence = coverage_confidence(coverage)
        factor = self.dampening_factor(coverage, confidence)
        after = {name: (score * factor if score is not None else None) for name, score in before.items()}
        return GroupScoreResult(dg_id, before, after, coverage, confidence, factor)
