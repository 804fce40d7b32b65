#!/usr/bin/env python3
"""
Delta Score Blending

Blends externally supplied trend/predictive delta scores (overall and per
approach-distance bucket) into a WAR adjustment and a short classification
note for each ranked player. Missing delta data never blocks ranking: those
players get no adjustment and a neutral note.
"""

import math
from dataclasses import dataclass, field, replace
from typing import List, Dict, Any, Optional, Sequence, Mapping, Tuple
import logging

from golf_ranker.analytics.normalizer import normalize_course_setup_weights
from golf_ranker.analytics.utils_stats import clamp, percentile_threshold, field_mean_std
from golf_ranker.analytics.weighted_score import PlayerScore

logger = logging.getLogger(__name__)

BUCKET_KEYS = ("short", "mid", "long", "veryLong")
BUCKET_SETUP_KEYS = {
    "short": "under100",
    "mid": "from100to150",
    "long": "from150to200",
    "veryLong": "over200",
}
BUCKET_LABELS = {"short": "S", "mid": "M", "long": "L", "veryLong": "VL"}

UP = "↑"
DOWN = "↓"
FLAT = "→"
ABSENT = "∅"


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(result) or math.isinf(result) else result


def _parse_buckets(data: Any) -> Dict[str, Optional[float]]:
    if not isinstance(data, Mapping):
        return {}
    return {key: _to_float(data.get(key)) for key in BUCKET_KEYS if key in data}


@dataclass(frozen=True)
class DeltaScoreEntry:
    """Trend/predictive delta signals for one player."""
    delta_trend_score: Optional[float] = None
    delta_predictive_score: Optional[float] = None
    delta_trend_buckets: Mapping[str, Optional[float]] = field(default_factory=dict)
    delta_predictive_buckets: Mapping[str, Optional[float]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DeltaScoreEntry":
        """Parse snake_case or camelCase keys; non-numeric values become None."""
        def pick(*keys):
            for key in keys:
                if key in data:
                    return data[key]
            return None

        return cls(
            delta_trend_score=_to_float(pick("delta_trend_score", "deltaTrendScore")),
            delta_predictive_score=_to_float(pick("delta_predictive_score", "deltaPredictiveScore")),
            delta_trend_buckets=_parse_buckets(pick("delta_trend_buckets", "deltaTrendBuckets")),
            delta_predictive_buckets=_parse_buckets(pick("delta_predictive_buckets", "deltaPredictiveBuckets")),
        )

    @property
    def has_bucket_data(self) -> bool:
        values = list(self.delta_trend_buckets.values()) + list(self.delta_predictive_buckets.values())
        return any(v is not None for v in values)


def load_delta_entries(data: Optional[Mapping[Any, Any]]) -> Dict[int, DeltaScoreEntry]:
    """Build DeltaScoreEntry objects keyed by integer player id, skipping malformed ids."""
    entries: Dict[int, DeltaScoreEntry] = {}
    for key, value in (data or {}).items():
        try:
            dg_id = int(float(key))
        except (TypeError, ValueError):
            logger.warning(f"Skipping delta entry with malformed player id: {key!r}")
            continue
        if isinstance(value, DeltaScoreEntry):
            entries[dg_id] = value
        elif isinstance(value, Mapping):
            entries[dg_id] = DeltaScoreEntry.from_dict(value)
        else:
            logger.warning(f"Skipping malformed delta entry for player {key}")
    return entries


class DeltaScoreBlender:
    """
    Applies delta signals to a ranked field.

    Args:
        predictive_weight: Share of the predictive bucket value in the blend
        trend_weight: Share of the trend bucket value in the blend
        percentile: Tail fraction used for up/down classification
        war_weight: Scale of the clamped predictive score added to WAR
        bucket_threshold: Minimum |blended bucket value| for an up/down bucket flag
    """

    def __init__(self, predictive_weight: float = 0.7, trend_weight: float = 0.3, percentile: float = 0.1,
                 war_weight: float = 0.05, bucket_threshold: float = 0.005):
        self.predictive_weight = predictive_weight
        self.trend_weight = trend_weight
        self.percentile = percentile
        self.war_weight = war_weight
        self.bucket_threshold = bucket_threshold

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DeltaScoreBlender":
        return cls(
            predictive_weight=config.get('DELTA_BLEND_PREDICTIVE', 0.7),
            trend_weight=config.get('DELTA_BLEND_TREND', 0.3),
            percentile=config.get('DELTA_PERCENTILE', 0.1),
            war_weight=config.get('DELTA_WAR_WEIGHT', 0.05),
            bucket_threshold=config.get('DELTA_BUCKET_THRESHOLD', 0.005),
        )

    def blended_buckets(self, entry: DeltaScoreEntry) -> Dict[str, Optional[float]]:
        """predictive*0.7 + trend*0.3 per bucket; a missing side counts as 0, both missing gives None."""
        blended = {}
        for key in BUCKET_KEYS:
            pred = entry.delta_predictive_buckets.get(key)
            trend = entry.delta_trend_buckets.get(key)
            if pred is None and trend is None:
                blended[key] = None
                continue
            blended[key] = self.predictive_weight * (pred or 0.0) + self.trend_weight * (trend or 0.0)
        return blended

    def bucket_signal(self, entry: DeltaScoreEntry, setup_weights: Mapping[str, float]) -> Optional[float]:
        """Course-setup weighted mean of blended bucket values over weighted buckets with data."""
        blended = self.blended_buckets(entry)
        total = 0.0
        mass = 0.0
        for key, value in blended.items():
            weight = setup_weights.get(BUCKET_SETUP_KEYS[key], 0.0)
            if weight == 0 or value is None:
                continue
            total += value * weight
            mass += weight
        if mass == 0:
            return None
        return total / mass

    def thresholds(self, values: Sequence[Optional[float]]) -> Tuple[Optional[float], Optional[float]]:
        """Return (low, high) percentile thresholds over the present values."""
        present = [v for v in values if v is not None]
        return (percentile_threshold(present, self.percentile),
                percentile_threshold(present, 1.0 - self.percentile))

    @staticmethod
    def classify(value: Optional[float], low: Optional[float], high: Optional[float]) -> str:
        if value is None or low is None or high is None:
            return ABSENT
        if value >= high:
            return UP
        if value <= low:
            return DOWN
        return FLAT

    def war_impact(self, predictive: Optional[float]) -> float:
        if predictive is None:
            return 0.0
        return clamp(predictive, -1.0, 1.0) * self.war_weight

    def bucket_flags(self, entry: DeltaScoreEntry, setup_weights: Mapping[str, float]) -> str:
        flags = []
        for key, value in self.blended_buckets(entry).items():
            if setup_weights.get(BUCKET_SETUP_KEYS[key], 0.0) == 0 or value is None:
                arrow = ABSENT
            elif value >= self.bucket_threshold:
                arrow = UP
            elif value <= -self.bucket_threshold:
                arrow = DOWN
            else:
                arrow = FLAT
            flags.append(f"{BUCKET_LABELS[key]}{arrow}")
        return " ".join(flags)

    def build_note(self, pred_class: str, trend_class: str, entry: Optional[DeltaScoreEntry],
                   signal: Optional[float], signal_z: Optional[float],
                   setup_weights: Mapping[str, float]) -> str:
        note = f"For Course Setup - ΔPred{pred_class} ΔTrend{trend_class}"
        if entry is not None and signal is not None:
            arrow = UP if (signal_z or 0.0) >= 0 else DOWN
            note += (f" | BucketSig {arrow} z={(signal_z or 0.0):.2f} ({signal:.3f})"
                     f" [{self.bucket_flags(entry, setup_weights)}]")
        return note

    def blend(self, scores: Sequence[PlayerScore], entries: Mapping[int, DeltaScoreEntry],
              course_setup_weights: Optional[Mapping[str, float]] = None) -> List[PlayerScore]:
        """
        Attach delta fields to every ranked player.

        Args:
            scores: Ranked player scores
            entries: Player id -> DeltaScoreEntry (absent players get no adjustment)
            course_setup_weights: under100/from100to150/from150to200/over200 weights

        Returns:
            New PlayerScore list in the same order, with WAR adjusted
        """
        setup_weights = normalize_course_setup_weights(course_setup_weights)
        field_entries = {s.dg_id: entries.get(s.dg_id) for s in scores}

        predictive_values = [e.delta_predictive_score for e in field_entries.values() if e is not None]
        trend_values = [e.delta_trend_score for e in field_entries.values() if e is not None]
        pred_low, pred_high = self.thresholds(predictive_values)
        trend_low, trend_high = self.thresholds(trend_values)

        signals = {
            dg_id: self.bucket_signal(entry, setup_weights)
            for dg_id, entry in field_entries.items()
            if entry is not None and entry.has_bucket_data
        }
        present_signals = [v for v in signals.values() if v is not None]
        signal_mean, signal_std = field_mean_std(present_signals, ddof=0)

        matched = sum(1 for e in field_entries.values() if e is not None)
        logger.info(f"Delta blending: {matched}/{len(scores)} players with delta data, "
                    f"{len(present_signals)} with bucket signal")

        blended = []
        for score in scores:
            entry = field_entries[score.dg_id]
            predictive = entry.delta_predictive_score if entry is not None else None
            trend = entry.delta_trend_score if entry is not None else None
            signal = signals.get(score.dg_id)
            signal_z = None
            if signal is not None:
                signal_z = (signal - signal_mean) / signal_std if signal_std > 0 else 0.0
            impact = self.war_impact(predictive)
            note = self.build_note(
                self.classify(predictive, pred_low, pred_high),
                self.classify(trend, trend_low, trend_high),
                entry, signal, signal_z, setup_weights,
            )
            blended.append(replace(
                score,
                war=score.war + impact,
                delta_trend_score=trend,
                delta_predictive_score=predictive,
                delta_war_impact=impact,
                delta_bucket_signal=signal,
                delta_bucket_z=signal_z,
                delta_note=note,
            ))
        return blended
