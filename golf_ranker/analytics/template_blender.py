#!/usr/bin/env python3
"""
Weight Template Blending

Pulls a baseline weight template toward data-driven suggestions derived from
metric correlations and fitted logistic coefficients, bounded by guardrails.
The blend is a pure function of the baseline, the signals and the options.

Used by the tuning tooling that searches for better weight configurations; it
does not run inside the per-player ranking path.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Sequence, Mapping
import logging

from golf_ranker.analytics.metric_catalog import WeightTemplate, GROUP_METRIC_SEPARATOR
from golf_ranker.analytics.utils_stats import clamp, normalize_abs, normalize_sum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Guardrails:
    """Bounds applied while blending."""
    min_group_weight: float = 0.03
    max_group_weight: float = 0.35
    max_group_shift: float = 0.08
    max_metric_shift: float = 0.2

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Guardrails":
        data = data or {}
        defaults = cls()
        return cls(
            min_group_weight=float(data.get('min_group_weight', data.get('minGroupWeight', defaults.min_group_weight))),
            max_group_weight=float(data.get('max_group_weight', data.get('maxGroupWeight', defaults.max_group_weight))),
            max_group_shift=float(data.get('max_group_shift', data.get('maxGroupShift', defaults.max_group_shift))),
            max_metric_shift=float(data.get('max_metric_shift', data.get('maxMetricShift', defaults.max_metric_shift))),
        )


@dataclass(frozen=True)
class BlendOptions:
    """Signal and template blend fractions plus guardrails."""
    correlation_weight: float = 0.55
    logistic_weight: float = 0.45
    baseline_weight: float = 0.7
    model_weight: float = 0.3
    guardrails: Guardrails = field(default_factory=Guardrails)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "BlendOptions":
        signal = config.get('SIGNAL_BLEND') or {}
        template = config.get('TEMPLATE_BLEND') or {}
        return cls(
            correlation_weight=float(signal.get('correlation', 0.55)),
            logistic_weight=float(signal.get('logistic', 0.45)),
            baseline_weight=float(template.get('baseline', 0.7)),
            model_weight=float(template.get('model', 0.3)),
            guardrails=Guardrails.from_dict(config.get('GUARDRAILS')),
        )


@dataclass
class BlendResult:
    """Everything produced by one blend, for inspection by tuning tools."""
    signal_map: Dict[str, float]
    suggested_groups: Dict[str, float]
    suggested_metrics: Dict[str, float]
    raw_groups: Dict[str, float]
    clamped_groups: Dict[str, float]
    blended_template: WeightTemplate
    options: BlendOptions

    @property
    def blended_groups(self) -> Dict[str, float]:
        return self.blended_template.group_weights

    @property
    def blended_metrics(self) -> Dict[str, float]:
        return self.blended_template.flat_metric_weights()


def normalize_label(label: Any) -> str:
    return str(label).strip().lower()


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(result) or math.isinf(result) else result


class TemplateBlender:
    """
    Blends a baseline template with correlation/logistic suggestions.

    Args:
        baseline: Baseline weight template
        options: Blend fractions and guardrails
    """

    def __init__(self, baseline: WeightTemplate, options: Optional[BlendOptions] = None):
        self.baseline = baseline
        self.options = options or BlendOptions()
        self._label_index: Dict[str, tuple] = {}
        for group_name, metrics in baseline.metric_weights.items():
            for label in metrics:
                self._label_index.setdefault(normalize_label(label), (group_name, label))

    def resolve_label(self, label: Any) -> Optional[tuple]:
        """Return (group, canonical label) for a metric label, case-insensitively."""
        return self._label_index.get(normalize_label(label))

    def correlation_signal(self, correlations: Any) -> Dict[str, float]:
        """
        Parse correlation input into a label-keyed map of magnitudes summing to 1.

        Accepts a list of ``{"label": ..., "correlation": ...}`` entries or a plain
        ``{label: correlation}`` mapping. Malformed or unknown entries are skipped.
        """
        if isinstance(correlations, Mapping):
            items = list(correlations.items())
        else:
            items = []
            for entry in correlations or []:
                if not isinstance(entry, Mapping):
                    logger.warning(f"Skipping malformed correlation entry: {entry!r}")
                    continue
                items.append((entry.get('label'), entry.get('correlation')))

        signal: Dict[str, float] = {}
        for label, value in items:
            resolved = self.resolve_label(label) if label is not None else None
            weight = _finite(value)
            if resolved is None or weight is None:
                logger.warning(f"Skipping correlation entry {label!r}: {value!r}")
                continue
            signal[resolved[1]] = signal.get(resolved[1], 0.0) + abs(weight)
        return normalize_abs(signal)

    def logistic_signal(self, logistic: Optional[Mapping[str, Any]], metric_labels: Sequence[str]) -> Dict[str, float]:
        """
        Pair fitted logistic coefficient magnitudes with metric labels positionally.

        Returns an empty map when the model did not succeed.
        """
        if not logistic or not logistic.get('success', False):
            return {}
        weights = list(logistic.get('weights') or [])
        if len(weights) != len(metric_labels):
            logger.warning(f"Logistic weights ({len(weights)}) and metric labels ({len(metric_labels)}) differ in length; "
                           f"pairing the first {min(len(weights), len(metric_labels))}")
        signal: Dict[str, float] = {}
        for label, value in zip(metric_labels, weights):
            resolved = self.resolve_label(label)
            weight = _finite(value)
            if resolved is None or weight is None:
                logger.warning(f"Skipping logistic coefficient {label!r}: {value!r}")
                continue
            signal[resolved[1]] = signal.get(resolved[1], 0.0) + abs(weight)
        return normalize_abs(signal)

    def build_signal_map(self, correlations: Any = None, logistic: Optional[Mapping[str, Any]] = None,
                         metric_labels: Sequence[str] = ()) -> Dict[str, float]:
        """correlation*0.55 + logistic*0.45 per label, renormalized by absolute sum."""
        corr = self.correlation_signal(correlations)
        logit = self.logistic_signal(logistic, metric_labels)
        labels = list(dict.fromkeys(list(corr) + list(logit)))
        combined = {
            label: self.options.correlation_weight * corr.get(label, 0.0)
            + self.options.logistic_weight * logit.get(label, 0.0)
            for label in labels
        }
        return normalize_abs(combined)

    def suggest(self, signal_map: Mapping[str, float]):
        """
        Derive suggested group and metric weights from a signal map.

        Every member of every baseline group gets a metric suggestion; members
        without a signal are suggested 0.

        Returns:
            Tuple (group -> weight summing to 1, ``group::metric`` -> weight
            with per-group absolute sum 1, or 0 for groups without signal)
        """
        group_mass: Dict[str, float] = {}
        by_label: Dict[str, float] = {}
        for label, value in signal_map.items():
            resolved = self.resolve_label(label)
            weight = _finite(value)
            if resolved is None or weight is None:
                continue
            group_name = resolved[0]
            group_mass[group_name] = group_mass.get(group_name, 0.0) + abs(weight)
            by_label[normalize_label(label)] = by_label.get(normalize_label(label), 0.0) + weight

        suggested_groups = normalize_sum(group_mass)
        suggested_metrics: Dict[str, float] = {}
        for group_name, metrics in self.baseline.metric_weights.items():
            signals = {label: by_label.get(normalize_label(label), 0.0) for label in metrics}
            total = sum(abs(w) for w in signals.values())
            for label, weight in signals.items():
                suggested_metrics[f"{group_name}{GROUP_METRIC_SEPARATOR}{label}"] = weight / total if total > 0 else 0.0
        return suggested_groups, suggested_metrics

    def clamp_group(self, base: float, blended: float) -> float:
        g = self.options.guardrails
        shifted = clamp(blended, base - g.max_group_shift, base + g.max_group_shift)
        return clamp(shifted, g.min_group_weight, g.max_group_weight)

    def clamp_metric(self, base: float, blended: float) -> float:
        """Limit the magnitude shift from the baseline, keep the blended sign, then bound to [-1, 1]."""
        g = self.options.guardrails
        base_mag = abs(base)
        magnitude = clamp(abs(blended), max(0.0, base_mag - g.max_metric_shift), base_mag + g.max_metric_shift)
        sign = -1.0 if (blended < 0 or (blended == 0 and base < 0)) else 1.0
        return clamp(sign * magnitude, -1.0, 1.0)

    def blend(self, suggested_groups: Mapping[str, float], suggested_metrics: Mapping[str, float],
              signal_map: Optional[Mapping[str, float]] = None, name: Optional[str] = None) -> BlendResult:
        """
        Blend baseline and suggested weights under the guardrails.

        Args:
            suggested_groups: Group -> suggested weight (missing groups keep the baseline)
            suggested_metrics: ``group::metric`` -> suggested weight (missing keep the baseline)
            signal_map: Signal map the suggestions came from (for reporting)
            name: Name of the blended template

        Returns:
            BlendResult
        """
        opts = self.options
        raw_groups: Dict[str, float] = {}
        clamped_groups: Dict[str, float] = {}
        for group_name, base in self.baseline.group_weights.items():
            suggested = _finite(suggested_groups.get(group_name))
            if suggested is None:
                suggested = base
            raw = opts.baseline_weight * base + opts.model_weight * suggested
            raw_groups[group_name] = raw
            clamped_groups[group_name] = self.clamp_group(base, raw)

        final_groups = normalize_sum(clamped_groups)
        if not final_groups:
            logger.warning("Clamped group weights have no mass; blended template has no group weights")

        metric_weights: Dict[str, Dict[str, float]] = {}
        for group_name, metrics in self.baseline.metric_weights.items():
            clamped: Dict[str, float] = {}
            for label, base in metrics.items():
                key = f"{group_name}{GROUP_METRIC_SEPARATOR}{label}"
                suggested = _finite(suggested_metrics.get(key))
                if suggested is None:
                    suggested = base
                raw = opts.baseline_weight * base + opts.model_weight * suggested
                clamped[label] = self.clamp_metric(base, raw)
            normalized = normalize_abs(clamped)
            metric_weights[group_name] = normalized if normalized else {label: 0.0 for label in clamped}

        template = WeightTemplate(final_groups, metric_weights, name or f"{self.baseline.name}_BLENDED")
        return BlendResult(
            signal_map=dict(signal_map or {}),
            suggested_groups=dict(suggested_groups),
            suggested_metrics=dict(suggested_metrics),
            raw_groups=raw_groups,
            clamped_groups=clamped_groups,
            blended_template=template,
            options=opts,
        )

    def blend_from_signals(self, correlations: Any = None, logistic: Optional[Mapping[str, Any]] = None,
                           metric_labels: Sequence[str] = (), name: Optional[str] = None) -> BlendResult:
        """Build the signal map, derive suggestions and blend them into the baseline."""
        signal_map = self.build_signal_map(correlations, logistic, metric_labels)
        if not signal_map:
            logger.warning("No usable correlation or logistic signal; blending keeps the baseline shape")
        suggested_groups, suggested_metrics = self.suggest(signal_map)
        logger.info(f"Blending template '{self.baseline.name}' with {len(signal_map)} metric signals "
                    f"across {len(suggested_groups)} groups")
        return self.blend(suggested_groups, suggested_metrics, signal_map, name)


def blend_templates(baseline: WeightTemplate, suggested: WeightTemplate,
                    options: Optional[BlendOptions] = None) -> BlendResult:
    """Blend a baseline with an already-built suggested template."""
    blender = TemplateBlender(baseline, options)
    return blender.blend(suggested.group_weights, suggested.flat_metric_weights(), name=f"{baseline.name}_BLENDED")
