#!/usr/bin/env python3
"""
Tests for the metric catalog and weight templates
"""

import dataclasses
import pytest

from golf_ranker.analytics.metric_catalog import (
    Direction, Metric, MetricCatalog, ValueType, WeightTemplate,
    APPROACH_SHORT, BIRDIE_CHANCES_CREATED, COURSE_MANAGEMENT, PUTTING, SCORING,
)


class TestDefaultCatalog:
    """Test the standard metric catalog."""

    def test_metric_and_group_counts(self, catalog):
        """The default catalog defines 35 metrics in nine groups."""
        assert len(catalog) == 35
        assert len(catalog.group_names) == 9
        assert catalog.group_names[0] == "Driving Performance"

    def test_directionality(self, catalog):
        """Proximity, poor shots and scoring average are lower-is-better."""
        assert catalog.get("Approach <100 Prox").lower_better
        assert catalog.get("Poor Shots").lower_better
        assert catalog.get("Scoring Average").lower_better
        assert not catalog.get("SG Putting").lower_better
        assert catalog.get("Driving Accuracy").direction == Direction.HIGHER_BETTER

    def test_caps_and_value_types(self, catalog):
        """Proximity caps and value types match the metric definitions."""
        assert catalog.get("Approach <100 Prox").max_value == 40.0
        assert catalog.get("Approach >200 FW Prox").max_value == 90.0
        assert catalog.get("Greens in Regulation").value_type == ValueType.PERCENTAGE
        assert catalog.get(BIRDIE_CHANCES_CREATED).value_type == ValueType.COMPOSITE
        assert catalog.get(BIRDIE_CHANCES_CREATED).column is None

    def test_approach_columns(self, catalog):
        """Approach metrics read snapshot columns; SG is per shot."""
        sg = catalog.get("Approach <150 FW SG")
        assert sg.column == "100_150_fw_sg_per_shot"
        assert sg.per_shot
        assert catalog.get("Approach >150 Rough GIR").column == "over_150_rgh_gir_rate"

    def test_metrics_are_immutable(self, catalog):
        """Metric definitions cannot be modified after catalog build."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            catalog.get("SG Total").max_value = 1.0

    def test_unknown_metric(self, catalog):
        """Looking up an unknown metric raises KeyError."""
        with pytest.raises(KeyError):
            catalog.get("Hole In Ones")
        assert "Hole In Ones" not in catalog
        assert "SG Total" in catalog

    def test_aliased_members(self, catalog):
        """Scoring and Course Management reuse approach metrics under prefixed labels."""
        scoring = dict(catalog.members(SCORING))
        assert scoring["Scoring: Approach <100 SG"] == "Approach <100 SG"
        management = dict(catalog.members(COURSE_MANAGEMENT))
        assert management["Course Management: Approach >200 FW Prox"] == "Approach >200 FW Prox"

    def test_owning_group(self, catalog):
        """Owning group lookup is case-insensitive and returns None for unknown labels."""
        assert catalog.owning_group("sg putting") == PUTTING
        assert catalog.owning_group("Approach <100 GIR") == APPROACH_SHORT
        assert catalog.owning_group("nonexistent") is None


class TestCatalogConstruction:
    """Test catalog validation."""

    def test_duplicate_metric_rejected(self):
        """Two metrics with the same name are rejected."""
        metrics = [Metric("A", "G"), Metric("A", "G")]
        with pytest.raises(ValueError, match="Duplicate"):
            MetricCatalog(metrics, [])

    def test_unknown_layout_metric_rejected(self):
        """Layouts may only reference defined metrics."""
        with pytest.raises(ValueError, match="unknown metric"):
            MetricCatalog([Metric("A", "G")], [("G", [("B", "B")])])


class TestBuildGroups:
    """Test materialising groups from a template."""

    def test_balanced_template(self, catalog, balanced_template):
        """BALANCED group weights sum to 1 and every group is present."""
        groups = catalog.build_groups(balanced_template)
        assert len(groups) == 9
        assert sum(g.weight for g in groups) == pytest.approx(1.0, abs=1e-6)
        putting = next(g for g in groups if g.name == PUTTING)
        assert putting.metric_weights == {"SG Putting": 1.0}

    def test_unmentioned_entries_get_zero(self, catalog, putting_template):
        """Groups and members absent from the template get weight 0."""
        groups = catalog.build_groups(putting_template)
        weights = {g.name: g.weight for g in groups}
        assert weights[PUTTING] == 1.0
        assert weights[SCORING] == 0.0
        scoring = next(g for g in groups if g.name == SCORING)
        assert scoring.active_members == tuple()

    def test_unknown_template_entries_ignored(self, catalog):
        """Unknown groups and labels in a template are ignored."""
        template = WeightTemplate({PUTTING: 1.0, "Mental Game": 0.5},
                                  {PUTTING: {"SG Putting": 1.0, "Lag Putting": 0.3}})
        groups = catalog.build_groups(template)
        assert "Mental Game" not in {g.name for g in groups}
        putting = next(g for g in groups if g.name == PUTTING)
        assert [m.label for m in putting.members] == ["SG Putting"]


class TestWeightTemplate:
    """Test weight template parsing."""

    def test_from_dict_accepts_camel_case_and_nesting(self):
        """camelCase keys and {"weight": x} entries are accepted."""
        template = WeightTemplate.from_dict({
            "name": "CAMEL",
            "groupWeights": {"Putting": 0.4, "Scoring": {"weight": 0.6}},
            "metricWeights": {"Putting": {"SG Putting": {"weight": 1.0}}},
        })
        assert template.name == "CAMEL"
        assert template.group_weights == {"Putting": 0.4, "Scoring": 0.6}
        assert template.metric_weight("Putting", "SG Putting") == 1.0

    def test_from_dict_skips_malformed(self):
        """Non-numeric weights and non-mapping metric blocks are skipped."""
        template = WeightTemplate.from_dict({
            "group_weights": {"Putting": "heavy", "Scoring": 0.5, "Driving Performance": True},
            "metric_weights": {"Putting": [1, 2], "Scoring": {"SG T2G": None, "Scoring Average": 0.3}},
        })
        assert template.group_weights == {"Scoring": 0.5}
        assert "Putting" not in template.metric_weights
        assert template.metric_weights["Scoring"] == {"Scoring Average": 0.3}

    def test_flat_metric_weights(self):
        """Flat keys use the group::metric form and round-trip through from_flat."""
        template = WeightTemplate({"Putting": 1.0}, {"Putting": {"SG Putting": 1.0}})
        flat = template.flat_metric_weights()
        assert flat == {"Putting::SG Putting": 1.0}
        rebuilt = WeightTemplate.from_flat(template.group_weights, flat)
        assert rebuilt.metric_weights == template.metric_weights

    def test_to_dict(self):
        """to_dict produces a plain YAML-friendly mapping."""
        template = WeightTemplate({"Putting": 1.0}, {"Putting": {"SG Putting": 1.0}}, "P")
        data = template.to_dict()
        assert data["name"] == "P"
        assert WeightTemplate.from_dict(data).group_weights == {"Putting": 1.0}
