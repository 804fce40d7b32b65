#!/usr/bin/env python3
"""
Tests for group scoring and coverage dampening
"""

import pytest

from golf_ranker.analytics.group_scorer import GroupScorer
from golf_ranker.analytics.metric_catalog import GroupMember, MetricGroup, WeightTemplate


def make_group(name, weight, **members):
    return MetricGroup(name, weight, tuple(GroupMember(label, label, w) for label, w in members.items()))


class TestGroupScore:
    """Test weighted composition of member z-scores."""

    def test_missing_metrics_excluded(self, catalog):
        """Missing members are dropped and the remaining weight renormalized."""
        group = make_group("Driving Performance", 1.0, **{"SG OTT": 0.5, "Driving Distance": 0.5})
        scorer = GroupScorer([group], catalog)
        assert scorer.group_score(group, {"SG OTT": 1.0, "Driving Distance": None}) == pytest.approx(1.0)

    def test_signed_weights_use_absolute_mass(self, catalog):
        group = make_group("Driving Performance", 1.0, **{"SG OTT": 0.6, "Driving Distance": -0.4})
        scorer = GroupScorer([group], catalog)
        score = scorer.group_score(group, {"SG OTT": 1.0, "Driving Distance": 1.0})
        assert score == pytest.approx(0.2)

    def test_no_data_is_none(self, catalog):
        """A group with no present member has no score rather than 0."""
        group = make_group("Putting", 1.0, **{"SG Putting": 1.0})
        scorer = GroupScorer([group], catalog)
        assert scorer.group_score(group, {"SG Putting": None}) is None

    def test_scoring_metric_amplified(self, catalog):
        """Scoring metrics beyond |z| = 2 are amplified by (|z|/2)^0.75."""
        group = make_group("Scoring", 1.0, **{"Scoring Average": 1.0})
        scorer = GroupScorer([group], catalog)
        assert scorer.group_score(group, {"Scoring Average": 4.0}) == pytest.approx(4.0 * 2 ** 0.75)
        assert scorer.group_score(group, {"Scoring Average": -1.5}) == pytest.approx(-1.5)

    def test_non_scoring_metric_not_amplified(self, catalog):
        group = make_group("Putting", 1.0, **{"SG Putting": 1.0})
        scorer = GroupScorer([group], catalog)
        assert scorer.group_score(group, {"SG Putting": 4.0}) == pytest.approx(4.0)


class TestCoverageDampening:
    """Test data coverage and dampening."""

    @pytest.fixture
    def groups(self, catalog):
        template = WeightTemplate(
            {"Putting": 0.5, "Approach - Short (<100)": 0.5},
            {"Putting": {"SG Putting": 1.0},
             "Approach - Short (<100)": {"Approach <100 GIR": 0.2, "Approach <100 SG": 0.3, "Approach <100 Prox": 0.5}},
        )
        return catalog.build_groups(template)

    def test_full_coverage_not_dampened(self, catalog, groups):
        scorer = GroupScorer(groups, catalog)
        z = {"SG Putting": 1.0, "Approach <100 GIR": 0.5, "Approach <100 SG": 0.5, "Approach <100 Prox": 0.5}
        result = scorer.score_player(1, z)
        assert result.data_coverage == pytest.approx(1.0)
        assert result.dampening_factor == 1.0
        assert result.after_dampening == result.before_dampening

    def test_low_coverage_dampened(self, catalog, groups):
        """One of four active members present: confidence 0.75 pulls scores 25% toward 0."""
        scorer = GroupScorer(groups, catalog)
        result = scorer.score_player(1, {"SG Putting": 1.0})
        assert result.data_coverage == pytest.approx(0.25)
        assert result.confidence_factor == pytest.approx(0.75)
        assert result.dampening_factor == pytest.approx(0.75)
        assert result.before_dampening["Putting"] == pytest.approx(1.0)
        assert result.after_dampening["Putting"] == pytest.approx(0.75)
        assert result.after_dampening["Approach - Short (<100)"] is None

    def test_zero_weight_groups_ignored_for_coverage(self, catalog, putting_template):
        """Only members of weighted groups count toward coverage."""
        scorer = GroupScorer(catalog.build_groups(putting_template), catalog)
        result = scorer.score_player(1, {"SG Putting": 0.3})
        assert result.data_coverage == 1.0
        assert result.dampening_factor == 1.0

    def test_dampening_strength(self, catalog, groups):
        scorer = GroupScorer(groups, catalog, dampening_strength=0.5)
        assert scorer.score_player(1, {"SG Putting": 1.0}).dampening_factor == pytest.approx(0.875)

    def test_from_config(self, catalog, groups, config):
        scorer = GroupScorer.from_config(groups, catalog, dict(config, DAMPENING_COVERAGE_THRESHOLD=0.2))
        assert scorer.score_player(1, {"SG Putting": 1.0}).dampening_factor == 1.0
