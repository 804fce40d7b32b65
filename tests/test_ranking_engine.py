#!/usr/bin/env python3
"""
End-to-end tests for the ranking engine
"""

import json
import logging
import math
import sys
import pytest
import pandas as pd
import pandera as pa

from golf_ranker.analytics.ranking_engine import (
    EmptyFieldError, load_config, main, rank_players, run_ranking, template_from_config,
)
from conftest import build_round


@pytest.fixture
def putting_rounds():
    """Two players, two rounds each, SG Putting +2.0 and -2.0"""
    return pd.DataFrame([
        build_round(1, 100, "2024-03-10", 2, sg_putt=2.0),
        build_round(1, 100, "2024-03-10", 1, sg_putt=2.0),
        build_round(2, 100, "2024-03-10", 2, sg_putt=-2.0),
        build_round(2, 100, "2024-03-10", 1, sg_putt=-2.0),
    ])


class TestRankPlayers:
    """Test the full ranking pipeline."""

    def test_two_player_putting_field(self, putting_rounds, config, putting_template):
        """With Putting carrying all weight, z = +-1/sqrt(2) decides the order."""
        result = rank_players(putting_rounds, config, template=putting_template)
        first, second = result.players
        assert (first.dg_id, second.dg_id) == (1, 2)
        assert first.z_scores["SG Putting"] == pytest.approx(0.70710678)
        assert second.z_scores["SG Putting"] == pytest.approx(-0.70710678)
        assert first.weighted_score == pytest.approx(0.70710678)
        assert first.refined_weighted_score == pytest.approx(first.weighted_score)
        assert first.data_coverage == 1.0
        assert [p.rank for p in result.players] == [1, 2]

    def test_missing_approach_player_still_scored(self, sample_rounds, approach_snapshot, config):
        """A player without approach data gets a finite, dampened score."""
        result = rank_players(sample_rounds, config, approach_snapshot=approach_snapshot)
        players = {p.dg_id: p for p in result.players}
        assert len(result) == 3
        assert players[1].rank == 1
        assert players[1].data_coverage == pytest.approx(1.0)
        assert players[2].data_coverage == pytest.approx(1.0)
        third = players[3]
        assert third.data_coverage < 1.0
        assert third.dampening_factor < 1.0
        assert math.isfinite(third.weighted_score)
        assert third.metrics["Approach <100 SG"] is None
        assert third.group_scores["Approach - Short (<100)"] is None

    def test_field_player_without_data(self, putting_rounds, config, putting_template):
        """Missing data is not penalized: a player with no data scores 0."""
        field = pd.DataFrame({"dg_id": [1, 2, 5], "player_name": ["One", "Two", "Five"]})
        result = rank_players(putting_rounds, config, template=putting_template, field=field)
        assert [p.dg_id for p in result.players] == [1, 5, 2]
        unknown = result.players[1]
        assert unknown.weighted_score == 0.0
        assert unknown.data_coverage == 0.0
        assert unknown.group_scores["Putting"] is None

    def test_delta_scores_adjust_war(self, putting_rounds, config, putting_template):
        result = rank_players(putting_rounds, config, template=putting_template,
                              delta_scores={"1": {"deltaPredictiveScore": 1.5}})
        first = result.players[0]
        assert first.delta_war_impact == 0.05
        assert first.war == pytest.approx(math.log1p(0.70710678) + 0.05)
        assert result.players[1].delta_note == "For Course Setup - ΔPred∅ ΔTrend∅"

    def test_course_history_refinement(self, putting_rounds, config, putting_template):
        config = dict(config, COURSE_NUM=14, COURSE_HISTORY_REGRESSION={14: {"slope": -0.5, "p_value": 0.01}})
        result = rank_players(putting_rounds, config, template=putting_template)
        first = result.players[0]
        assert first.refined_weighted_score == pytest.approx(first.weighted_score - 0.5)

    def test_field_statistics_reported(self, putting_rounds, config, putting_template):
        result = rank_players(putting_rounds, config, template=putting_template)
        stats = result.field_statistics["SG Putting"]
        assert stats.count == 2
        assert stats.mean == pytest.approx(0.0)

    def test_empty_field_raises(self, config):
        with pytest.raises(EmptyFieldError):
            rank_players(pd.DataFrame(), config)
        with pytest.raises(EmptyFieldError):
            rank_players(None, config)

    def test_invalid_rounds_raise(self, config):
        rounds = pd.DataFrame({"dg_id": [1], "sg_putt": [1.0]})
        with pytest.raises((pa.errors.SchemaError, pa.errors.SchemaErrors)):
            rank_players(rounds, config)

    def test_to_frame(self, putting_rounds, config, putting_template):
        frame = rank_players(putting_rounds, config, template=putting_template).to_frame(include_metrics=True)
        assert frame["dg_id"].tolist() == [1, 2]
        assert frame["rank"].tolist() == [1, 2]
        assert frame["metric::SG Putting"].tolist() == [pytest.approx(2.0), pytest.approx(-2.0)]


class TestConfig:
    """Test configuration loading."""

    def test_packaged_config(self):
        config = load_config()
        assert config["RECENCY_LAMBDA"] == 0.25
        assert config["COURSE_SETUP_WEIGHTS"]["from100to150"] == 0.35

    def test_load_config_from_path(self, tmp_path):
        """Any YAML file loads as a mapping; an empty file loads as {}."""
        scenarios = tmp_path / "scenarios.yaml"
        scenarios.write_text("faster_decay:\n  OVERRIDES:\n    RECENCY_LAMBDA: 0.6\n", encoding="utf-8")
        empty = tmp_path / "empty.yaml"
        empty.write_text("", encoding="utf-8")
        assert load_config(scenarios) == {"faster_decay": {"OVERRIDES": {"RECENCY_LAMBDA": 0.6}}}
        assert load_config(empty) == {}

    def test_template_from_config(self, config):
        template = template_from_config(config)
        assert template.name == "BALANCED"
        assert template.metric_weight("Putting", "SG Putting") == 1.0

    def test_missing_template_is_empty(self):
        assert template_from_config({}).group_weights == {}


class TestCli:
    """Test file-based entry points."""

    def test_run_ranking_from_csv(self, tmp_path, putting_rounds, config):
        rounds_path = tmp_path / "rounds.csv"
        putting_rounds.to_csv(rounds_path, index=False)
        delta_path = tmp_path / "delta.json"
        delta_path.write_text(json.dumps({"2": {"deltaTrendScore": -0.4}}), encoding="utf-8")

        frame = run_ranking(rounds_path, config, delta_path=delta_path)

        assert len(frame) == 2
        assert frame.loc[frame["dg_id"] == 2, "delta_trend_score"].iloc[0] == pytest.approx(-0.4)

    def test_main_writes_rankings(self, tmp_path, putting_rounds, monkeypatch):
        rounds_path = tmp_path / "rounds.csv"
        putting_rounds.to_csv(rounds_path, index=False)
        output_root = tmp_path / "out"
        monkeypatch.setattr(sys, "argv", ["golf-ranker", "--rounds", str(rounds_path),
                                          "--output-root", str(output_root)])

        main()

        outputs = list(output_root.glob("rankings_*.csv"))
        assert len(outputs) == 1
        assert len(pd.read_csv(outputs[0])) == 2

    def test_main_log_file(self, tmp_path, putting_rounds, monkeypatch):
        rounds_path = tmp_path / "rounds.csv"
        putting_rounds.to_csv(rounds_path, index=False)
        log_path = tmp_path / "logs" / "ranking.log"
        monkeypatch.setattr(sys, "argv", ["golf-ranker", "--rounds", str(rounds_path),
                                          "--output-root", str(tmp_path / "out"),
                                          "--log-file", str(log_path)])

        package_logger = logging.getLogger("golf_ranker")
        try:
            main()
        finally:
            for handler in list(package_logger.handlers):
                handler.close()
                package_logger.removeHandler(handler)

        assert "Layer 1" in log_path.read_text(encoding="utf-8")
