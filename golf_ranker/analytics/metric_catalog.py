#!/usr/bin/env python3
"""
Metric Catalog

Static definitions of the golf performance metrics used by the ranking engine:
their directionality, value types, caps, and how they are arranged into
weighted metric groups.

The catalog is an explicitly constructed, immutable object passed into every
stage of the pipeline, so several catalogs (or templates) can coexist in one
process without sharing state.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

GROUP_METRIC_SEPARATOR = "::"


class Direction(str, Enum):
    """Whether a higher raw value is better or worse."""
    HIGHER_BETTER = "HigherBetter"
    LOWER_BETTER = "LowerBetter"


class ValueType(str, Enum):
    """How a raw metric value is expressed."""
    RAW = "Raw"
    PERCENTAGE = "Percentage"
    COUNT = "Count"
    COMPOSITE = "Composite"


class DistanceBucket(str, Enum):
    """Approach distance buckets shared by the catalog and delta blending."""
    SHORT = "short"
    MID = "mid"
    LONG = "long"
    VERY_LONG = "veryLong"


@dataclass(frozen=True)
class Metric:
    """
    A single metric definition.

    Attributes:
        name: Display name, unique within a catalog
        group: Name of the first group the metric belongs to
        direction: HigherBetter or LowerBetter
        value_type: Raw, Percentage, Count or Composite
        max_value: Optional cap; proximity-style metrics are clipped to [0, max_value]
        column: Column carrying the value in round records or approach snapshots
        zero_is_missing: Treat an exact 0 as "no data" (e.g. driving distance)
        per_shot: Source value is strokes gained per shot and is scaled to per round
        scoring: Subject to outlier amplification in group scoring
    """
    name: str
    group: str
    direction: Direction = Direction.HIGHER_BETTER
    value_type: ValueType = ValueType.RAW
    max_value: Optional[float] = None
    column: Optional[str] = None
    zero_is_missing: bool = False
    per_shot: bool = False
    scoring: bool = False

    @property
    def lower_better(self) -> bool:
        return self.direction == Direction.LOWER_BETTER

    @property
    def is_proximity(self) -> bool:
        return "Prox" in self.name


@dataclass(frozen=True)
class GroupMember:
    """A labelled slot in a group pointing at a base metric."""
    label: str
    metric: str
    weight: float = 0.0


@dataclass(frozen=True)
class MetricGroup:
    """Named collection of metrics plus the group's share of the ranking weight."""
    name: str
    weight: float
    members: Tuple[GroupMember, ...]

    @property
    def metric_weights(self) -> Dict[str, float]:
        return {m.label: m.weight for m in self.members}

    @property
    def active_members(self) -> Tuple[GroupMember, ...]:
        """Members that can contribute to the score (non-zero weight in a weighted group)."""
        if self.weight <= 0:
            return tuple()
        return tuple(m for m in self.members if m.weight != 0)


def _coerce_weight(value: Any) -> Optional[float]:
    """Return a float weight, unwrapping ``{"weight": x}`` nesting, or None if malformed."""
    if isinstance(value, Mapping):
        value = value.get("weight")
    if isinstance(value, bool) or value is None:
        return None
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return None
    if weight != weight or weight in (float("inf"), float("-inf")):
        return None
    return weight


@dataclass
class WeightTemplate:
    """
    Group weights plus nested per-group metric weights.

    Used as ranking configuration and as the baseline/output of template blending.
    """
    group_weights: Dict[str, float] = field(default_factory=dict)
    metric_weights: Dict[str, Dict[str, float]] = field(default_factory=dict)
    name: str = "CUSTOM"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], name: Optional[str] = None) -> "WeightTemplate":
        """
        Build a template from a plain mapping (e.g. a YAML block).

        Accepts ``group_weights``/``groupWeights`` and ``metric_weights``/``metricWeights``
        keys. Metric weights may be plain numbers or ``{"weight": x}`` mappings.
        Malformed entries are skipped with a warning.

        Args:
            data: Raw template mapping
            name: Optional template name (falls back to ``data["name"]``)

        Returns:
            WeightTemplate instance
        """
        data = data or {}
        raw_groups = data.get("group_weights", data.get("groupWeights", {})) or {}
        raw_metrics = data.get("metric_weights", data.get("metricWeights", {})) or {}

        group_weights: Dict[str, float] = {}
        for group_name, value in raw_groups.items():
            weight = _coerce_weight(value)
            if weight is None:
                logger.warning(f"Skipping malformed group weight for '{group_name}': {value!r}")
                continue
            group_weights[str(group_name)] = weight

        metric_weights: Dict[str, Dict[str, float]] = {}
        for group_name, metrics in raw_metrics.items():
            if not isinstance(metrics, Mapping):
                logger.warning(f"Skipping malformed metric block for group '{group_name}'")
                continue
            parsed: Dict[str, float] = {}
            for label, value in metrics.items():
                weight = _coerce_weight(value)
                if weight is None:
                    logger.warning(f"Skipping malformed metric weight '{group_name}{GROUP_METRIC_SEPARATOR}{label}': {value!r}")
                    continue
                parsed[str(label)] = weight
            metric_weights[str(group_name)] = parsed

        return cls(group_weights, metric_weights, name or str(data.get("name", "CUSTOM")))

    @classmethod
    def from_flat(cls, group_weights: Mapping[str, float], flat_metric_weights: Mapping[str, float],
                  name: str = "CUSTOM") -> "WeightTemplate":
        """Build a template from group weights and a ``group::metric`` keyed map."""
        metric_weights: Dict[str, Dict[str, float]] = {}
        for key, weight in flat_metric_weights.items():
            if GROUP_METRIC_SEPARATOR not in key:
                logger.warning(f"Skipping metric weight without group prefix: {key!r}")
                continue
            group_name, label = key.split(GROUP_METRIC_SEPARATOR, 1)
            metric_weights.setdefault(group_name, {})[label] = float(weight)
        return cls(dict(group_weights), metric_weights, name)

    def flat_metric_weights(self) -> Dict[str, float]:
        return {
            f"{group_name}{GROUP_METRIC_SEPARATOR}{label}": weight
            for group_name, metrics in self.metric_weights.items()
            for label, weight in metrics.items()
        }

    def metric_weight(self, group_name: str, label: str, default: float = 0.0) -> float:
        return self.metric_weights.get(group_name, {}).get(label, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "group_weights": dict(self.group_weights),
            "metric_weights": {g: dict(m) for g, m in self.metric_weights.items()},
        }


class MetricCatalog:
    """
    Immutable registry of metrics and group layouts.

    Args:
        metrics: Metric definitions
        layout: Ordered ``(group_name, [(label, metric_name), ...])`` pairs
    """

    def __init__(self, metrics: Iterable[Metric], layout: Sequence[Tuple[str, Sequence[Tuple[str, str]]]]):
        self._metrics: Dict[str, Metric] = {}
        for metric in metrics:
            if metric.name in self._metrics:
                raise ValueError(f"Duplicate metric definition: {metric.name}")
            self._metrics[metric.name] = metric

        layout_items: List[Tuple[str, Tuple[Tuple[str, str], ...]]] = []
        for group_name, members in layout:
            for label, metric_name in members:
                if metric_name not in self._metrics:
                    raise ValueError(f"Group '{group_name}' references unknown metric '{metric_name}'")
            layout_items.append((group_name, tuple((label, metric_name) for label, metric_name in members)))
        self._layout: Tuple[Tuple[str, Tuple[Tuple[str, str], ...]], ...] = tuple(layout_items)

    @property
    def metrics(self) -> Tuple[Metric, ...]:
        return tuple(self._metrics.values())

    @property
    def metric_names(self) -> Tuple[str, ...]:
        return tuple(self._metrics)

    @property
    def group_names(self) -> Tuple[str, ...]:
        return tuple(group_name for group_name, _ in self._layout)

    def get(self, name: str) -> Metric:
        try:
            return self._metrics[name]
        except KeyError:
            raise KeyError(f"Unknown metric: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._metrics

    def __len__(self) -> int:
        return len(self._metrics)

    def members(self, group_name: str) -> Tuple[Tuple[str, str], ...]:
        """Return ``(label, metric_name)`` pairs for a group."""
        for name, members in self._layout:
            if name == group_name:
                return members
        raise KeyError(f"Unknown group: {group_name}")

    def owning_group(self, label: str) -> Optional[str]:
        """Return the first group containing a member with this label (case-insensitive)."""
        key = label.strip().lower()
        for group_name, members in self._layout:
            for member_label, _ in members:
                if member_label.strip().lower() == key:
                    return group_name
        return None

    def metrics_with_column(self) -> Tuple[Metric, ...]:
        return tuple(m for m in self._metrics.values() if m.column)

    def build_groups(self, template: WeightTemplate) -> Tuple[MetricGroup, ...]:
        """
        Materialise the catalog's group layout with weights from a template.

        Groups or members the template does not mention get weight 0; template
        entries the catalog does not know are ignored with a warning.

        Args:
            template: Weight template supplying group and metric weights

        Returns:
            Tuple of MetricGroup in catalog order
        """
        known_groups = set(self.group_names)
        for group_name in template.group_weights:
            if group_name not in known_groups:
                logger.warning(f"Template '{template.name}' names unknown group '{group_name}'; ignoring")

        groups = []
        for group_name, members in self._layout:
            template_metrics = template.metric_weights.get(group_name, {})
            known_labels = {label for label, _ in members}
            for label in template_metrics:
                if label not in known_labels:
                    logger.warning(f"Template '{template.name}' names unknown metric '{group_name}{GROUP_METRIC_SEPARATOR}{label}'; ignoring")
            groups.append(MetricGroup(
                name=group_name,
                weight=float(template.group_weights.get(group_name, 0.0)),
                members=tuple(
                    GroupMember(label, metric_name, float(template_metrics.get(label, 0.0)))
                    for label, metric_name in members
                ),
            ))
        return tuple(groups)


# Approach bucket definitions: (label prefix, snapshot column prefix, distance bucket, prox cap)
APPROACH_BUCKETS: Tuple[Tuple[str, str, DistanceBucket, float], ...] = (
    ("Approach <100", "50_100_fw", DistanceBucket.SHORT, 40.0),
    ("Approach <150 FW", "100_150_fw", DistanceBucket.MID, 50.0),
    ("Approach <150 Rough", "under_150_rgh", DistanceBucket.MID, 60.0),
    ("Approach >150 Rough", "over_150_rgh", DistanceBucket.LONG, 75.0),
    ("Approach <200 FW", "150_200_fw", DistanceBucket.LONG, 65.0),
    ("Approach >200 FW", "over_200_fw", DistanceBucket.VERY_LONG, 90.0),
)

DRIVING = "Driving Performance"
APPROACH_SHORT = "Approach - Short (<100)"
APPROACH_MID = "Approach - Mid (100-150)"
APPROACH_LONG = "Approach - Long (150-200)"
APPROACH_VERY_LONG = "Approach - Very Long (>200)"
PUTTING = "Putting"
AROUND_THE_GREEN = "Around the Green"
SCORING = "Scoring"
COURSE_MANAGEMENT = "Course Management"

BIRDIE_CHANCES_CREATED = "Birdie Chances Created"


def _approach_metrics() -> List[Metric]:
    group_for_prefix = {
        "Approach <100": APPROACH_SHORT,
        "Approach <150 FW": APPROACH_MID,
        "Approach <150 Rough": APPROACH_MID,
        "Approach >150 Rough": APPROACH_LONG,
        "Approach <200 FW": APPROACH_LONG,
        "Approach >200 FW": APPROACH_VERY_LONG,
    }
    metrics = []
    for prefix, column_prefix, _, prox_cap in APPROACH_BUCKETS:
        group = group_for_prefix[prefix]
        metrics.extend([
            Metric(f"{prefix} GIR", group, value_type=ValueType.PERCENTAGE,
                   column=f"{column_prefix}_gir_rate"),
            Metric(f"{prefix} SG", group, column=f"{column_prefix}_sg_per_shot", per_shot=True),
            Metric(f"{prefix} Prox", group, Direction.LOWER_BETTER, max_value=prox_cap,
                   column=f"{column_prefix}_proximity_per_shot"),
        ])
    return metrics


def build_default_catalog() -> MetricCatalog:
    """
    Build the standard PGA Tour metric catalog.

    Returns:
        MetricCatalog with 35 base metrics arranged into nine groups
    """
    lower = Direction.LOWER_BETTER
    metrics = [
        Metric("SG Total", SCORING, column="sg_total"),
        Metric("Driving Distance", DRIVING, column="driving_dist", zero_is_missing=True),
        Metric("Driving Accuracy", DRIVING, value_type=ValueType.PERCENTAGE, column="driving_acc"),
        Metric("SG T2G", SCORING, column="sg_t2g"),
        Metric("SG Approach", SCORING, column="sg_app"),
        Metric("SG Around Green", AROUND_THE_GREEN, column="sg_arg"),
        Metric("SG OTT", DRIVING, column="sg_ott"),
        Metric("SG Putting", PUTTING, column="sg_putt"),
        Metric("Greens in Regulation", SCORING, value_type=ValueType.PERCENTAGE, column="gir"),
        Metric("Scrambling", COURSE_MANAGEMENT, value_type=ValueType.PERCENTAGE, column="scrambling"),
        Metric("Great Shots", COURSE_MANAGEMENT, value_type=ValueType.COUNT, column="great_shots"),
        Metric("Poor Shots", COURSE_MANAGEMENT, lower, ValueType.COUNT, max_value=12.0, column="poor_shots"),
        Metric("Scoring Average", SCORING, lower, max_value=74.0, column="score",
               zero_is_missing=True, scoring=True),
        Metric("Birdies or Better", SCORING, value_type=ValueType.COUNT, column="birdies_or_better", scoring=True),
        Metric(BIRDIE_CHANCES_CREATED, SCORING, value_type=ValueType.COMPOSITE, max_value=10.0, scoring=True),
        Metric("Fairway Proximity", COURSE_MANAGEMENT, lower, max_value=60.0, column="prox_fw"),
        Metric("Rough Proximity", COURSE_MANAGEMENT, lower, max_value=80.0, column="prox_rgh"),
    ]
    metrics.extend(_approach_metrics())

    def bucket(prefix: str) -> List[Tuple[str, str]]:
        return [(f"{prefix} {kind}", f"{prefix} {kind}") for kind in ("GIR", "SG", "Prox")]

    def aliased(group_prefix: str, kind: str, prefixes: Sequence[str]) -> List[Tuple[str, str]]:
        return [(f"{group_prefix}: {prefix} {kind}", f"{prefix} {kind}") for prefix in prefixes]

    layout = [
        (DRIVING, [("Driving Distance", "Driving Distance"),
                   ("Driving Accuracy", "Driving Accuracy"),
                   ("SG OTT", "SG OTT")]),
        (APPROACH_SHORT, bucket("Approach <100")),
        (APPROACH_MID, bucket("Approach <150 FW") + bucket("Approach <150 Rough")),
        (APPROACH_LONG, bucket("Approach <200 FW") + bucket("Approach >150 Rough")),
        (APPROACH_VERY_LONG, bucket("Approach >200 FW")),
        (PUTTING, [("SG Putting", "SG Putting")]),
        (AROUND_THE_GREEN, [("SG Around Green", "SG Around Green")]),
        (SCORING, [("SG T2G", "SG T2G"),
                   ("Scoring Average", "Scoring Average"),
                   (BIRDIE_CHANCES_CREATED, BIRDIE_CHANCES_CREATED)]
         + aliased("Scoring", "SG", ["Approach <100", "Approach <150 FW", "Approach <150 Rough",
                                     "Approach <200 FW", "Approach >200 FW", "Approach >150 Rough"])),
        (COURSE_MANAGEMENT, [("Scrambling", "Scrambling"),
                             ("Great Shots", "Great Shots"),
                             ("Poor Shots", "Poor Shots")]
         + aliased("Course Management", "Prox", ["Approach <100", "Approach <150 FW", "Approach <150 Rough",
                                                 "Approach >150 Rough", "Approach <200 FW", "Approach >200 FW"])),
    ]
    return MetricCatalog(metrics, layout)
