#!/usr/bin/env python3
"""
Ranking Weight Tuning Harness

Compares weight-template and parameter scenarios against a baseline ranking
to evaluate ranking stability. A scenario either overrides configuration keys
or blends the baseline template with correlation/logistic signals.
"""

import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, Any, Optional
import logging
import argparse
import json
from scipy.stats import spearmanr, kendalltau

from golf_ranker.analytics.metric_catalog import WeightTemplate
from golf_ranker.analytics.ranking_engine import DEFAULT_CONFIG_PATH, load_config, rank_players, template_from_config
from golf_ranker.analytics.template_blender import BlendOptions, TemplateBlender

logger = logging.getLogger(__name__)

EMPTY_COMPARISON = {
    'spearman_correlation': 0.0,
    'kendall_correlation': 0.0,
    'top5_overlap': 0.0,
    'top10_overlap': 0.0,
    'top20_overlap': 0.0,
    'median_rank_delta': 0.0,
    'p90_rank_delta': 0.0,
    'max_rank_delta': 0.0,
    'players_compared': 0,
}


def apply_overrides(base_cfg: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Apply parameter overrides to base configuration.

    Args:
        base_cfg: Base configuration dictionary
        overrides: Override parameters

    Returns:
        New configuration with overrides applied
    """
    config = base_cfg.copy()
    config.update(overrides or {})
    return config


def compare_rankings(df_base: pd.DataFrame, df_test: pd.DataFrame) -> Dict[str, float]:
    """
    Compare two ranking DataFrames and compute stability metrics.

    Args:
        df_base: Baseline rankings DataFrame (dg_id, rank)
        df_test: Test rankings DataFrame (dg_id, rank)

    Returns:
        Dictionary of comparison metrics
    """
    if df_base.empty or df_test.empty:
        return dict(EMPTY_COMPARISON)

    merged = pd.merge(df_base[['dg_id', 'rank']], df_test[['dg_id', 'rank']],
                      on='dg_id', suffixes=('_base', '_test'))
    if merged.empty:
        return dict(EMPTY_COMPARISON)

    if len(merged) > 1:
        spearman_corr, _ = spearmanr(merged['rank_base'], merged['rank_test'])
        kendall_corr, _ = kendalltau(merged['rank_base'], merged['rank_test'])
    else:
        spearman_corr, kendall_corr = 1.0, 1.0

    def top_k_overlap(k: int) -> float:
        base_top = set(merged.nsmallest(k, 'rank_base')['dg_id'])
        test_top = set(merged.nsmallest(k, 'rank_test')['dg_id'])
        return len(base_top & test_top) / k

    rank_deltas = np.abs(merged['rank_test'] - merged['rank_base'])

    return {
        'spearman_correlation': float(spearman_corr),
        'kendall_correlation': float(kendall_corr),
        'top5_overlap': top_k_overlap(min(5, len(merged))),
        'top10_overlap': top_k_overlap(min(10, len(merged))),
        'top20_overlap': top_k_overlap(min(20, len(merged))),
        'median_rank_delta': float(rank_deltas.median()),
        'p90_rank_delta': float(rank_deltas.quantile(0.9)),
        'max_rank_delta': float(rank_deltas.max()),
        'players_compared': int(len(merged)),
    }


def scenario_template(base_config: Dict[str, Any], scenario: Dict[str, Any]) -> Optional[WeightTemplate]:
    """
    Resolve the weight template a scenario ranks with.

    A ``WEIGHT_TEMPLATE`` inside ``OVERRIDES`` replaces the template outright;
    ``TEMPLATE_SIGNALS`` (correlations, logistic, metric_labels) blends the
    baseline template toward the signals.
    """
    signals = scenario.get('TEMPLATE_SIGNALS')
    if not signals:
        return None
    config = apply_overrides(base_config, scenario.get('OVERRIDES'))
    blender = TemplateBlender(template_from_config(config), BlendOptions.from_config(config))
    result = blender.blend_from_signals(
        signals.get('correlations'), signals.get('logistic'), signals.get('metric_labels') or ()
    )
    return result.blended_template


def run_scenarios(rounds: pd.DataFrame, base_config: Dict[str, Any], scenarios: Dict[str, Dict[str, Any]],
                  approach_snapshot: Optional[pd.DataFrame] = None,
                  field: Optional[pd.DataFrame] = None) -> Dict[str, Dict[str, float]]:
    """
    Rank the baseline and every scenario and compare each to the baseline.

    Args:
        rounds: Round records
        base_config: Baseline configuration
        scenarios: Scenario name -> {OVERRIDES, TEMPLATE_SIGNALS}
        approach_snapshot: Optional approach snapshot
        field: Optional field list

    Returns:
        Scenario name -> comparison metrics
    """
    logger.info("Running baseline ranking...")
    baseline = rank_players(rounds, base_config, approach_snapshot=approach_snapshot, field=field)
    df_baseline = baseline.to_frame()
    logger.info(f"Baseline ranking complete: {len(df_baseline)} players")

    results = {}
    for name, scenario in scenarios.items():
        if name == 'baseline':
            continue
        scenario = scenario or {}
        logger.info(f"Running scenario: {name}")
        config = apply_overrides(base_config, scenario.get('OVERRIDES'))
        template = scenario_template(base_config, scenario)
        ranked = rank_players(rounds, config, template=template, approach_snapshot=approach_snapshot, field=field)
        metrics = compare_rankings(df_baseline, ranked.to_frame())
        results[name] = metrics
        logger.info(f"Scenario {name}: spearman={metrics['spearman_correlation']:.3f} "
                    f"top10={metrics['top10_overlap']:.3f} median_delta={metrics['median_rank_delta']:.1f}")
    return results


def main():
    """CLI entry point for the ranking tuner."""
    parser = argparse.ArgumentParser(description="Golf Field Ranking Weight Tuner")
    parser.add_argument("--rounds", type=str, required=True,
                       help="Round records CSV")
    parser.add_argument("--approach", type=str, default=None,
                       help="Approach snapshot CSV")
    parser.add_argument("--field", type=str, default=None,
                       help="Field list CSV")
    parser.add_argument("--scenarios", type=str, required=True,
                       help="Tuning scenarios YAML")
    parser.add_argument("--config", type=str, default=str(DEFAULT_CONFIG_PATH),
                       help="Base configuration file")
    parser.add_argument("--output-root", type=str, default="data/rankings/tuning",
                       help="Output directory for tuning results")

    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    base_config = load_config(Path(args.config))
    scenarios = load_config(Path(args.scenarios))
    rounds = pd.read_csv(args.rounds)
    approach = pd.read_csv(args.approach) if args.approach else None
    field = pd.read_csv(args.field) if args.field else None

    output_dir = Path(args.output_root)
    output_dir.mkdir(parents=True, exist_ok=True)

    baseline_overrides = (scenarios.get('baseline') or {}).get('OVERRIDES')
    results = run_scenarios(rounds, apply_overrides(base_config, baseline_overrides),
                            scenarios, approach, field)

    summary_file = output_dir / "tuning_summary.json"
    with open(summary_file, 'w', encoding='utf-8') as f:
        json.dump({'timestamp': pd.Timestamp.now().isoformat(), 'scenario_results': results}, f, indent=2)
    pd.DataFrame.from_dict(results, orient='index').to_csv(output_dir / "tuning_summary.csv")
    logger.info(f"Tuning complete! Summary saved to {summary_file}")


if __name__ == "__main__":
    main()
