"""
Analytics module for the golf field ranking engine.

This module provides metric aggregation, field normalization, group and
weighted scoring, delta blending and weight template blending.
"""

from .ranking_engine import rank_players, run_ranking, EmptyFieldError, RankingResult
from .metric_catalog import MetricCatalog, WeightTemplate, build_default_catalog
from .delta_blender import DeltaScoreBlender, DeltaScoreEntry
from .template_blender import TemplateBlender, BlendOptions, Guardrails
from .weighted_score import PlayerScore

__all__ = [
    'rank_players',
    'run_ranking',
    'EmptyFieldError',
    'RankingResult',
    'MetricCatalog',
    'WeightTemplate',
    'build_default_catalog',
    'DeltaScoreBlender',
    'DeltaScoreEntry',
    'TemplateBlender',
    'BlendOptions',
    'Guardrails',
    'PlayerScore'
]
