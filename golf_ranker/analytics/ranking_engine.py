#!/usr/bin/env python3
"""
Golf Field Ranking Engine

Ranks the players of a tournament field by blending historical and
current-season performance metrics into a single composite score:
aggregation, field normalization, group scoring, weighted scoring and
optional delta-score blending.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple, Mapping
import logging
import argparse
import json
import yaml

from golf_ranker.analytics.aggregator import Aggregator
from golf_ranker.analytics.delta_blender import DeltaScoreBlender, load_delta_entries
from golf_ranker.analytics.group_scorer import GroupScorer
from golf_ranker.analytics.metric_catalog import MetricCatalog, MetricGroup, WeightTemplate, build_default_catalog
from golf_ranker.analytics.normalizer import FieldStatistics, Normalizer, compute_composite_metrics
from golf_ranker.analytics.weighted_score import PlayerScore, WeightedScoreCalculator, rank_scores, scores_to_frame
from golf_ranker.schema.round_record_schema import validate_round_records, validate_approach_snapshot
from golf_ranker.utils.logger import get_logger

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "ranking_config.yaml"


class EmptyFieldError(ValueError):
    """Raised when there are no players to rank."""


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the YAML ranking configuration.

    Args:
        path: Configuration file (default: the packaged ranking_config.yaml)

    Returns:
        Configuration dictionary
    """
    with open(path or DEFAULT_CONFIG_PATH, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def template_from_config(config: Dict[str, Any]) -> WeightTemplate:
    block = config.get('WEIGHT_TEMPLATE') or {}
    if not block:
        logger.warning("No WEIGHT_TEMPLATE in configuration; every group weight is 0")
    return WeightTemplate.from_dict(block)


@dataclass
class RankingResult:
    """Ranked field plus the run's field statistics and weight configuration."""
    players: List[PlayerScore]
    field_statistics: Dict[str, FieldStatistics]
    groups: Tuple[MetricGroup, ...]
    template: WeightTemplate

    def __len__(self) -> int:
        return len(self.players)

    def to_frame(self, include_metrics: bool = False) -> pd.DataFrame:
        return scores_to_frame(self.players, include_metrics)


def rank_players(rounds: Optional[pd.DataFrame], config: Dict[str, Any],
                 catalog: Optional[MetricCatalog] = None,
                 template: Optional[WeightTemplate] = None,
                 approach_snapshot: Optional[pd.DataFrame] = None,
                 field: Optional[pd.DataFrame] = None,
                 delta_scores: Optional[Mapping[Any, Any]] = None,
                 as_of: Optional[datetime] = None) -> RankingResult:
    """
    Run the full ranking pipeline over pre-loaded records.

    Args:
        rounds: Raw round records
        config: Ranking configuration (see ranking_config.yaml)
        catalog: Metric catalog (default: build_default_catalog())
        template: Weight template (default: WEIGHT_TEMPLATE from config)
        approach_snapshot: Optional per-player approach table
        field: Optional field list (dg_id, player_name)
        delta_scores: Optional player id -> delta entry mapping
        as_of: Reference date for similar-course time decay

    Returns:
        RankingResult with players sorted by refined weighted score

    Raises:
        EmptyFieldError: If there is no player to rank
    """
    catalog = catalog or build_default_catalog()
    template = template or template_from_config(config)
    groups = catalog.build_groups(template)

    has_rounds = rounds is not None and not rounds.empty
    has_snapshot = approach_snapshot is not None and not approach_snapshot.empty
    has_field = field is not None and not field.empty
    if not (has_rounds or has_snapshot or has_field):
        raise EmptyFieldError("No round records, approach snapshot or field entries to rank")

    # Layer 1: Validation and aggregation
    logger.info("Layer 1: Validating and aggregating round records")
    if has_rounds:
        rounds = validate_round_records(rounds)
    if has_snapshot:
        approach_snapshot = validate_approach_snapshot(approach_snapshot)
    aggregator = Aggregator.from_config(catalog, config)
    players = aggregator.aggregate(rounds if has_rounds else None,
                                   approach_snapshot if has_snapshot else None,
                                   field if has_field else None, as_of)
    if not players:
        raise EmptyFieldError("Aggregation produced no players")
    logger.info(f"Aggregated {len(players)} players")

    # Layer 2: Composite metrics
    logger.info("Layer 2: Computing composite metrics")
    players = compute_composite_metrics(players, config.get('COURSE_SETUP_WEIGHTS'))

    # Layer 3: Field statistics and z-scores
    logger.info("Layer 3: Field statistics and z-scores")
    normalizer = Normalizer.from_config(catalog, config)
    z_scores, field_stats = normalizer.normalize(players)
    scored_metrics = sum(1 for s in field_stats.values() if s.count >= normalizer.min_sample)
    logger.info(f"Field statistics: {scored_metrics}/{len(field_stats)} metrics with enough data")

    # Layer 4: Group scores with coverage dampening
    logger.info("Layer 4: Group scores and coverage dampening")
    group_scorer = GroupScorer.from_config(groups, catalog, config)
    group_results = {p.dg_id: group_scorer.score_player(p.dg_id, z_scores[p.dg_id]) for p in players}
    dampened = sum(1 for r in group_results.values() if r.dampening_factor < 1.0)
    logger.info(f"Dampened {dampened}/{len(players)} low-coverage players")

    # Layer 5: Weighted score, refinement, past performance
    logger.info("Layer 5: Weighted scores and course-history refinement")
    calculator = WeightedScoreCalculator.from_config(groups, config)
    if calculator.course_history is not None:
        logger.info(f"Course history regression: slope={calculator.course_history.slope:.3f} "
                    f"p={calculator.course_history.p_value:.3f}")
    scores = [calculator.score_player(p, z_scores[p.dg_id], group_results[p.dg_id]) for p in players]

    # Layer 6: Ranking
    logger.info("Layer 6: Sorting the field")
    ranked = rank_scores(scores)
    refined = np.array([s.refined_weighted_score for s in ranked])
    logger.info(f"Refined score range: [{refined.min():.3f}, {refined.max():.3f}]")

    # Layer 7: Delta blending
    if delta_scores:
        logger.info("Layer 7: Delta score blending")
        entries = load_delta_entries(delta_scores)
        blender = DeltaScoreBlender.from_config(config)
        ranked = blender.blend(ranked, entries, config.get('COURSE_SETUP_WEIGHTS'))

    logger.info(f"Ranking complete: {len(ranked)} players ranked")
    return RankingResult(ranked, field_stats, groups, template)


def run_ranking(rounds_path: Path, config: Dict[str, Any], approach_path: Optional[Path] = None,
                field_path: Optional[Path] = None, delta_path: Optional[Path] = None) -> pd.DataFrame:
    """
    Load CSV/JSON inputs from disk and rank the field.

    Returns:
        Ranked DataFrame (see RankingResult.to_frame)
    """
    rounds = pd.read_csv(rounds_path)
    approach = pd.read_csv(approach_path) if approach_path else None
    field = pd.read_csv(field_path) if field_path else None
    delta_scores = None
    if delta_path:
        with open(delta_path, 'r', encoding='utf-8') as f:
            delta_scores = json.load(f)
    result = rank_players(rounds, config, approach_snapshot=approach, field=field, delta_scores=delta_scores)
    return result.to_frame()


def main():
    """CLI entry point for the ranking engine."""
    parser = argparse.ArgumentParser(description="Golf Field Ranking Engine")
    parser.add_argument("--rounds", type=str, required=True,
                       help="Round records CSV")
    parser.add_argument("--approach", type=str, default=None,
                       help="Approach snapshot CSV")
    parser.add_argument("--field", type=str, default=None,
                       help="Field list CSV (dg_id, player_name)")
    parser.add_argument("--delta-scores", type=str, default=None,
                       help="Delta player scores JSON keyed by dg_id")
    parser.add_argument("--config", type=str, default=str(DEFAULT_CONFIG_PATH),
                       help="Configuration file path")
    parser.add_argument("--output-root", type=str, default="data/rankings",
                       help="Output directory")
    parser.add_argument("--log-file", type=str, default=None,
                       help="Also write the run log to this file")

    args = parser.parse_args()

    if args.log_file:
        get_logger(Path(args.log_file))
    else:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    config = load_config(Path(args.config))

    try:
        result_df = run_ranking(
            Path(args.rounds), config,
            Path(args.approach) if args.approach else None,
            Path(args.field) if args.field else None,
            Path(args.delta_scores) if args.delta_scores else None,
        )

        timestamp = datetime.now().strftime("%Y%m%d_%H%M")
        output_dir = Path(args.output_root)
        output_dir.mkdir(parents=True, exist_ok=True)

        rankings_file = output_dir / f"rankings_{timestamp}.csv"
        result_df.to_csv(rankings_file, index=False)
        logger.info(f"Rankings saved to {rankings_file}")

    except Exception as e:
        logger.error(f"Ranking failed: {e}")
        raise


if __name__ == "__main__":
    main()
