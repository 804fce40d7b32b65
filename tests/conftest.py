#!/usr/bin/env python3
"""
Pytest configuration and fixtures
"""

import pytest
import pandas as pd
from pathlib import Path
import sys

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from golf_ranker.analytics.aggregator import AggregatedPlayerMetrics
from golf_ranker.analytics.metric_catalog import APPROACH_BUCKETS, WeightTemplate, build_default_catalog
from golf_ranker.analytics.ranking_engine import load_config, template_from_config


@pytest.fixture
def catalog():
    """Default metric catalog"""
    return build_default_catalog()


@pytest.fixture
def config():
    """Packaged ranking configuration"""
    return load_config()


@pytest.fixture
def balanced_template(config):
    """BALANCED weight template from the packaged configuration"""
    return template_from_config(config)


@pytest.fixture
def putting_template():
    """Template with a single Putting group carrying all weight"""
    return WeightTemplate({'Putting': 1.0}, {'Putting': {'SG Putting': 1.0}}, 'PUTTING_ONLY')


@pytest.fixture
def make_player(catalog):
    """Factory for AggregatedPlayerMetrics with every unspecified metric missing"""
    def _make(dg_id, name=None, **values):
        full = {metric.name: None for metric in catalog.metrics}
        for key, value in values.items():
            full[key.replace('_', ' ')] = value
        return AggregatedPlayerMetrics(dg_id, name or f"Player {dg_id}", full)
    return _make


def build_round(dg_id, event_id, date, round_num, **metrics):
    row = {
        'dg_id': dg_id,
        'player_name': f"Player {dg_id}",
        'event_id': event_id,
        'event_completed': date,
        'round_num': round_num,
    }
    row.update(metrics)
    return row


@pytest.fixture
def sample_rounds():
    """Two rounds each for three players covering every round-level metric"""
    rows = []
    profiles = {
        1: dict(sg_total=2.0, sg_t2g=1.5, sg_app=0.8, sg_arg=0.3, sg_ott=0.6, sg_putt=0.5,
                driving_dist=310, driving_acc=62, gir=70, scrambling=65, great_shots=4, poor_shots=1,
                score=68, birdies=5, eagles_or_better=0, prox_fw=30, prox_rgh=45),
        2: dict(sg_total=0.5, sg_t2g=0.2, sg_app=0.1, sg_arg=0.0, sg_ott=0.1, sg_putt=0.3,
                driving_dist=295, driving_acc=58, gir=65, scrambling=60, great_shots=3, poor_shots=2,
                score=70, birdies=4, eagles_or_better=0, prox_fw=33, prox_rgh=48),
        3: dict(sg_total=-1.0, sg_t2g=-0.8, sg_app=-0.5, sg_arg=-0.2, sg_ott=-0.3, sg_putt=-0.2,
                driving_dist=285, driving_acc=55, gir=60, scrambling=55, great_shots=2, poor_shots=3,
                score=72, birdies=3, eagles_or_better=0, prox_fw=36, prox_rgh=52),
    }
    for dg_id, metrics in profiles.items():
        rows.append(build_round(dg_id, '100', '2024-03-10', 2, **metrics))
        rows.append(build_round(dg_id, '100', '2024-03-10', 1, **metrics))
    return pd.DataFrame(rows)


@pytest.fixture
def approach_snapshot():
    """Approach snapshot for players 1 and 2 only"""
    rows = []
    for dg_id, quality in ((1, 1.0), (2, 0.5)):
        row = {'dg_id': dg_id, 'player_name': f"Player {dg_id}"}
        for _, column_prefix, _, prox_cap in APPROACH_BUCKETS:
            row[f"{column_prefix}_gir_rate"] = 50 + 10 * quality
            row[f"{column_prefix}_sg_per_shot"] = 0.02 * quality
            row[f"{column_prefix}_proximity_per_shot"] = prox_cap * (0.6 - 0.1 * quality)
        rows.append(row)
    return pd.DataFrame(rows)
