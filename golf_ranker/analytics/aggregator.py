#!/usr/bin/env python3
"""
Round Aggregation

Combines raw per-round records into one aggregated metric vector per player.
Rounds are recency weighted (exp(-lambda*i), newest first), and rounds played
on similar courses or putting-comparable courses feed separate sub-averages
that are blended with the general historical average.

Metrics without enough supporting rounds are left as None so that later stages
exclude them instead of scoring them as zero.
"""

import math
import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import List, Dict, Any, Optional, Tuple, Mapping, Iterable
import logging

from golf_ranker.analytics.metric_catalog import Metric, MetricCatalog, ValueType
from golf_ranker.analytics.utils_stats import exp_decay, half_life_weight, weighted_average, dynamic_weight

logger = logging.getLogger(__name__)

PUTTING_METRICS = frozenset({"SG Putting"})
ROUND_SG_SHOTS = 18
DAYS_PER_YEAR = 365.25
MISSED_CUT_POSITION = 100


@dataclass(frozen=True)
class EventResult:
    """A player's finish at one event in one season."""
    event_id: str
    year: Optional[int]
    position: int


@dataclass(frozen=True)
class AggregatedPlayerMetrics:
    """
    Per-player metric vector produced by the Aggregator.

    ``values`` maps every catalog metric name to a float or None (missing).
    The mapping is read-only once the instance is built.
    """
    dg_id: int
    name: str
    values: Mapping[str, Optional[float]]
    round_counts: Mapping[str, int] = field(default_factory=dict)
    sources: Mapping[str, str] = field(default_factory=dict)
    events: Tuple[EventResult, ...] = tuple()

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))
        object.__setattr__(self, "round_counts", MappingProxyType(dict(self.round_counts)))
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))

    def get(self, metric_name: str) -> Optional[float]:
        return self.values.get(metric_name)

    def present(self) -> List[str]:
        return [name for name, value in self.values.items() if value is not None]

    def with_values(self, updates: Mapping[str, Optional[float]], source: str = "composite") -> "AggregatedPlayerMetrics":
        """Return a copy with some metric values replaced."""
        values = dict(self.values)
        values.update(updates)
        sources = dict(self.sources)
        for name, value in updates.items():
            sources[name] = source if value is not None else "missing"
        return AggregatedPlayerMetrics(self.dg_id, self.name, values, self.round_counts, sources, self.events)


def parse_position(value: Any) -> int:
    """
    Parse a finish string ("1", "T5", "CUT", "WD") into a numeric position.

    Missed cuts, withdrawals and unparseable values map to 100.
    """
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return MISSED_CUT_POSITION
    text = str(value).strip().upper()
    if not text or text in ("CUT", "WD", "DQ", "MDF"):
        return MISSED_CUT_POSITION
    text = text.replace("T", "")
    try:
        return int(float(text))
    except ValueError:
        return MISSED_CUT_POSITION


def clean_metric_values(values: pd.Series, metric: Metric) -> pd.Series:
    """
    Coerce raw metric values to floats and apply per-metric conventions.

    Drops non-numeric values, drops zeros for metrics where zero means "no data",
    converts 0-100 percentages to fractions and scales per-shot strokes gained
    to a per-round figure.
    """
    cleaned = pd.to_numeric(values, errors="coerce").dropna()
    if metric.zero_is_missing:
        cleaned = cleaned[cleaned != 0]
    if metric.value_type == ValueType.PERCENTAGE:
        cleaned = cleaned.where(cleaned <= 1, cleaned / 100.0)
    if metric.per_shot:
        cleaned = cleaned * ROUND_SG_SHOTS
    return cleaned


def prepare_rounds(rounds: pd.DataFrame) -> pd.DataFrame:
    """
    Normalise a round-record frame for aggregation.

    Parses completion dates, derives ``birdies_or_better`` from birdies and
    eagles and sorts newest first (date, then round number, descending).

    Args:
        rounds: Raw round records

    Returns:
        Prepared copy of the frame
    """
    df = rounds.copy()
    if "event_completed" in df.columns:
        df["event_completed"] = pd.to_datetime(df["event_completed"], errors="coerce")
    else:
        df["event_completed"] = pd.NaT
    df["round_num"] = pd.to_numeric(df["round_num"], errors="coerce") if "round_num" in df.columns else 0
    df["event_id"] = df["event_id"].astype(str)

    if "birdies" in df.columns or "eagles_or_better" in df.columns:
        birdies = pd.to_numeric(df.get("birdies"), errors="coerce") if "birdies" in df.columns else pd.Series(np.nan, index=df.index)
        eagles = pd.to_numeric(df.get("eagles_or_better"), errors="coerce") if "eagles_or_better" in df.columns else pd.Series(np.nan, index=df.index)
        derived = birdies.fillna(0) + eagles.fillna(0)
        derived = derived.where(birdies.notna() | eagles.notna())
        if "birdies_or_better" in df.columns:
            derived = derived.fillna(pd.to_numeric(df["birdies_or_better"], errors="coerce"))
        df["birdies_or_better"] = derived

    if "year" not in df.columns:
        df["year"] = df["event_completed"].dt.year

    df = df.sort_values(["event_completed", "round_num"], ascending=[False, False], na_position="last", kind="mergesort")
    return df.reset_index(drop=True)


def _empty_rounds() -> pd.DataFrame:
    return pd.DataFrame({
        "event_id": pd.Series(dtype=str),
        "event_completed": pd.Series(dtype="datetime64[ns]"),
        "round_num": pd.Series(dtype=float),
        "year": pd.Series(dtype=float),
        "is_similar": pd.Series(dtype=bool),
        "is_putting": pd.Series(dtype=bool),
        "is_current_event": pd.Series(dtype=bool),
    })


class Aggregator:
    """
    Builds AggregatedPlayerMetrics from round records.

    Args:
        catalog: Metric catalog
        recency_lambda: Decay constant for historical and similar-course rounds
        putting_lambda: Decay constant for putting-course rounds
        min_historical_points / min_similar_points / min_putting_points: Minimum
            values needed before a sub-average is trusted
        min_similar_rounds_for_full_weight: Similar-course sample size at which the
            similar blend weight is no longer scaled down
        similar_half_life_years: Half-life of the time weight on similar-course rounds
        similar_courses_weight / putting_courses_weight: Base blend fractions
        similar_course_ids / putting_course_ids: Event ids flagging round roles
        current_event_id / current_season: Identify rounds of the event being ranked
        include_current_event_rounds: Keep current-event rounds in the aggregation
    """

    def __init__(self, catalog: MetricCatalog, recency_lambda: float = 0.25, putting_lambda: float = 0.3,
                 min_historical_points: int = 2, min_similar_points: int = 2, min_putting_points: int = 2,
                 min_similar_rounds_for_full_weight: int = 12, similar_half_life_years: float = 2.0,
                 similar_courses_weight: float = 0.7, putting_courses_weight: float = 0.8,
                 dynamic_weight_max_points: int = 20,
                 similar_course_ids: Iterable[Any] = (), putting_course_ids: Iterable[Any] = (),
                 current_event_id: Optional[Any] = None, current_season: Optional[int] = None,
                 include_current_event_rounds: bool = False):
        self.catalog = catalog
        self.recency_lambda = recency_lambda
        self.putting_lambda = putting_lambda
        self.min_historical_points = min_historical_points
        self.min_similar_points = min_similar_points
        self.min_putting_points = min_putting_points
        self.min_similar_rounds_for_full_weight = min_similar_rounds_for_full_weight
        self.similar_half_life_years = similar_half_life_years
        self.similar_courses_weight = similar_courses_weight
        self.putting_courses_weight = putting_courses_weight
        self.dynamic_weight_max_points = dynamic_weight_max_points
        self.similar_course_ids = frozenset(str(e) for e in similar_course_ids or ())
        self.putting_course_ids = frozenset(str(e) for e in putting_course_ids or ())
        self.current_event_id = str(current_event_id) if current_event_id is not None else None
        self.current_season = current_season
        self.include_current_event_rounds = include_current_event_rounds

    @classmethod
    def from_config(cls, catalog: MetricCatalog, config: Dict[str, Any]) -> "Aggregator":
        return cls(
            catalog,
            recency_lambda=config.get('RECENCY_LAMBDA', 0.25),
            putting_lambda=config.get('PUTTING_LAMBDA', 0.3),
            min_historical_points=config.get('MIN_HISTORICAL_POINTS', 2),
            min_similar_points=config.get('MIN_SIMILAR_POINTS', 2),
            min_putting_points=config.get('MIN_PUTTING_POINTS', 2),
            min_similar_rounds_for_full_weight=config.get('MIN_SIMILAR_ROUNDS_FOR_FULL_WEIGHT', 12),
            similar_half_life_years=config.get('SIMILAR_HALF_LIFE_YEARS', 2.0),
            similar_courses_weight=config.get('SIMILAR_COURSES_WEIGHT', 0.7),
            putting_courses_weight=config.get('PUTTING_COURSES_WEIGHT', 0.8),
            dynamic_weight_max_points=config.get('DYNAMIC_WEIGHT_MAX_POINTS', 20),
            similar_course_ids=config.get('SIMILAR_COURSE_IDS') or (),
            putting_course_ids=config.get('PUTTING_COURSE_IDS') or (),
            current_event_id=config.get('CURRENT_EVENT_ID'),
            current_season=config.get('CURRENT_SEASON'),
            include_current_event_rounds=config.get('INCLUDE_CURRENT_EVENT_ROUNDS', False),
        )

    def assign_roles(self, rounds: pd.DataFrame) -> pd.DataFrame:
        """
        Flag each prepared round with its roles.

        Adds boolean columns ``is_similar``, ``is_putting`` and ``is_current_event``.
        Every round is also historical; a round may be both similar and putting.
        """
        df = rounds.copy()
        df["is_similar"] = df["event_id"].isin(self.similar_course_ids)
        df["is_putting"] = df["event_id"].isin(self.putting_course_ids)
        if self.current_event_id is not None and self.current_season is not None:
            season = pd.to_numeric(df["year"], errors="coerce")
            df["is_current_event"] = (df["event_id"] == self.current_event_id) & (season == int(self.current_season))
        else:
            df["is_current_event"] = False
        return df

    def _average(self, rounds: pd.DataFrame, metric: Metric, min_points: int, decay: float,
                 reference_date: Optional[pd.Timestamp] = None) -> Tuple[Optional[float], int]:
        """Recency-weighted average of one metric over already-sorted rounds."""
        if metric.column not in rounds.columns or rounds.empty:
            return None, 0
        values = clean_metric_values(rounds[metric.column], metric)
        n = len(values)
        if n == 0 or n < min_points:
            return None, n
        weights = exp_decay(n, decay)
        if reference_date is not None and self.similar_half_life_years:
            dates = rounds.loc[values.index, "event_completed"]
            ages = [
                (reference_date - d).days / DAYS_PER_YEAR if pd.notna(d) else 0.0
                for d in dates
            ]
            weights = weights * np.array([half_life_weight(a, self.similar_half_life_years) for a in ages])
        return weighted_average(values.to_numpy(), weights), n

    def _combined_average(self, frames: List[pd.DataFrame], metric: Metric) -> Optional[float]:
        """Fallback over the concatenated role lists when no single source qualifies."""
        parts = [clean_metric_values(f[metric.column], metric) for f in frames
                 if metric.column in f.columns and not f.empty]
        if not parts:
            return None
        values = pd.concat(parts, ignore_index=True)
        if len(values) < self.min_historical_points:
            return None
        return weighted_average(values.to_numpy(), exp_decay(len(values), self.recency_lambda))

    def blend_metric(self, metric: Metric, historical: pd.DataFrame, similar: pd.DataFrame,
                     putting: pd.DataFrame, reference_date: Optional[pd.Timestamp]) -> Tuple[Optional[float], str]:
        """
        Blend the historical, similar-course and putting-course averages of one metric.

        Returns:
            Tuple (value or None, source label)
        """
        hist_avg, _ = self._average(historical, metric, self.min_historical_points, self.recency_lambda)
        similar_avg, _ = self._average(similar, metric, self.min_similar_points, self.recency_lambda, reference_date)
        putting_avg = None
        if metric.name in PUTTING_METRICS:
            putting_avg, _ = self._average(putting, metric, self.min_putting_points, self.putting_lambda)

        if putting_avg is not None:
            if hist_avg is None:
                return putting_avg, "putting"
            w = dynamic_weight(self.putting_courses_weight, len(putting), self.min_putting_points,
                               self.dynamic_weight_max_points)
            return putting_avg * w + hist_avg * (1 - w), "blended"

        if similar_avg is not None:
            if hist_avg is None:
                return similar_avg, "similar"
            w = dynamic_weight(self.similar_courses_weight, len(similar), self.min_similar_points,
                               self.dynamic_weight_max_points)
            w *= min(1.0, len(similar) / self.min_similar_rounds_for_full_weight) if self.min_similar_rounds_for_full_weight else 1.0
            return similar_avg * w + hist_avg * (1 - w), "blended"

        if hist_avg is not None:
            return hist_avg, "historical"

        combined = self._combined_average([historical, similar, putting], metric)
        if combined is not None:
            return combined, "combined"
        return None, "missing"

    def collect_events(self, rounds: pd.DataFrame) -> Tuple[EventResult, ...]:
        """One EventResult per (event, season) the player has a finish for."""
        if "fin_text" not in rounds.columns or rounds.empty:
            return tuple()
        events = []
        for (event_id, year), group in rounds.groupby(["event_id", "year"], sort=False, dropna=False):
            year_value = int(year) if pd.notna(year) else None
            events.append(EventResult(str(event_id), year_value, parse_position(group["fin_text"].iloc[0])))
        return tuple(events)

    def aggregate_player(self, dg_id: int, name: str, player_rounds: pd.DataFrame,
                         snapshot_row: Optional[pd.Series] = None,
                         reference_date: Optional[pd.Timestamp] = None) -> AggregatedPlayerMetrics:
        """
        Aggregate one player's prepared, role-flagged rounds.

        Args:
            dg_id: Player id
            name: Player name
            player_rounds: The player's rounds (prepared and role-assigned)
            snapshot_row: Optional approach snapshot row for the player
            reference_date: Date similar-course ages are measured from

        Returns:
            AggregatedPlayerMetrics
        """
        usable = player_rounds
        if not self.include_current_event_rounds and "is_current_event" in usable.columns:
            usable = usable[~usable["is_current_event"]]
        similar = usable[usable["is_similar"]] if "is_similar" in usable.columns else usable.iloc[0:0]
        putting = usable[usable["is_putting"]] if "is_putting" in usable.columns else usable.iloc[0:0]

        values: Dict[str, Optional[float]] = {}
        sources: Dict[str, str] = {}
        for metric in self.catalog.metrics:
            if not metric.column:
                values[metric.name] = None
                sources[metric.name] = "missing"
                continue
            value, source = self.blend_metric(metric, usable, similar, putting, reference_date)
            if value is None and snapshot_row is not None and metric.column in snapshot_row.index:
                snap = clean_metric_values(pd.Series([snapshot_row[metric.column]]), metric)
                if not snap.empty:
                    value, source = float(snap.iloc[0]), "snapshot"
            values[metric.name] = value
            sources[metric.name] = source

        counts = {"historical": len(usable), "similar": len(similar), "putting": len(putting)}
        return AggregatedPlayerMetrics(int(dg_id), name, values, counts, sources, self.collect_events(player_rounds))

    def aggregate(self, rounds: pd.DataFrame, approach_snapshot: Optional[pd.DataFrame] = None,
                  field: Optional[pd.DataFrame] = None,
                  as_of: Optional[datetime] = None) -> List[AggregatedPlayerMetrics]:
        """
        Aggregate every player in the field.

        Args:
            rounds: Round records (dg_id, player_name, event_id, event_completed,
                round_num, metric columns)
            approach_snapshot: Optional per-player approach table keyed by dg_id
            field: Optional field list (dg_id, player_name); defaults to every player
                with rounds or snapshot rows
            as_of: Reference date for similar-course time decay (defaults to the
                latest round date so runs are reproducible)

        Returns:
            List of AggregatedPlayerMetrics in field order
        """
        prepared = self.assign_roles(prepare_rounds(rounds)) if rounds is not None and not rounds.empty else None
        reference_date = pd.Timestamp(as_of) if as_of is not None else None
        if reference_date is None and prepared is not None and prepared["event_completed"].notna().any():
            reference_date = prepared["event_completed"].max()

        snapshot_by_id: Dict[int, pd.Series] = {}
        if approach_snapshot is not None and not approach_snapshot.empty:
            for _, row in approach_snapshot.iterrows():
                snapshot_by_id[int(float(row["dg_id"]))] = row

        names: Dict[int, str] = {}
        if field is not None and not field.empty:
            for _, row in field.iterrows():
                names[int(row["dg_id"])] = str(row.get("player_name", row["dg_id"]))
        else:
            if prepared is not None:
                for dg_id, group in prepared.groupby("dg_id", sort=False):
                    player_name = group["player_name"].iloc[0] if "player_name" in group.columns else dg_id
                    names[int(dg_id)] = str(player_name)
            for dg_id, row in snapshot_by_id.items():
                names.setdefault(dg_id, str(row.get("player_name", dg_id)))

        if prepared is not None:
            current = int(prepared["is_current_event"].sum())
            logger.info(f"Aggregating {len(prepared)} rounds for {len(names)} players "
                        f"(similar={int(prepared['is_similar'].sum())}, putting={int(prepared['is_putting'].sum())}, "
                        f"current_event={current})")

        grouped = {int(k): g for k, g in prepared.groupby("dg_id", sort=False)} if prepared is not None else {}
        empty = prepared.iloc[0:0] if prepared is not None else _empty_rounds()

        players = []
        for dg_id, player_name in names.items():
            players.append(self.aggregate_player(
                dg_id, player_name, grouped.get(dg_id, empty), snapshot_by_id.get(dg_id), reference_date
            ))

        missing = sum(1 for p in players if not p.present())
        if missing:
            logger.warning(f"{missing} players have no usable metric data")
        return players
