"""Numeric guard utilities for curated suggestions: cited-figure cross-checks and impact math."""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from models import ImpactCalculation, ResultKind, Suggestion

_NUMBER_PATTERN = re.compile(r"\d+(?:[.,]\d+)*")


@dataclass
class NumericWarning:
    code: str
    message: str


@dataclass
class NumericPatch:
    corrections: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    unknown_metrics: List[str] = field(default_factory=list)
    warnings: List[NumericWarning] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.corrections)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def within_tolerance(claimed: float, truth: float, tolerance: float) -> bool:
    scale = max(abs(truth), 1.0)
    return abs(claimed - truth) / scale <= tolerance


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value)}"
    return f"{value:.2f}".rstrip("0").rstrip(".")


def _thousands(value: float) -> str:
    return f"{int(value):,}".replace(",", ".")


def _number_variants(value: float) -> List[str]:
    """Spellings a figure may take in Portuguese text, most specific first."""
    plain = _format_number(value)
    variants = [plain, plain.replace(".", ",")]
    if float(value).is_integer() and abs(value) >= 1000:
        variants.insert(0, _thousands(value))
    if not float(value).is_integer():
        variants.insert(0, f"{value:.2f}".replace(".", ","))
        variants.insert(0, f"{value:.2f}")
    seen: List[str] = []
    for variant in variants:
        if variant not in seen:
            seen.append(variant)
    return seen


def replace_figure(text: str, wrong: float, right: float) -> str:
    """Replace the first spelling of ``wrong`` found in ``text`` with ``right``, in the same notation."""
    for variant in _number_variants(wrong):
        pattern = re.compile(rf"(?<![\d.,]){re.escape(variant)}(?![\d]|[.,]\d)")
        if pattern.search(text):
            if float(wrong).is_integer() and abs(wrong) >= 1000 and variant == _thousands(wrong):
                replacement = _thousands(right) if float(right).is_integer() else _format_number(right).replace(".", ",")
            else:
                replacement = _format_number(right)
                if "," in variant:
                    replacement = replacement.replace(".", ",")
            return pattern.sub(replacement, text, count=1)
    return text


def cross_check(
    cited: Dict[str, float],
    ground_truth: Dict[str, float],
    tolerance: float = 0.02,
) -> NumericPatch:
    """Compare every cited metric against ground truth."""
    patch = NumericPatch()
    for metric, claimed in cited.items():
        if metric not in ground_truth:
            patch.unknown_metrics.append(metric)
            patch.warnings.append(NumericWarning("UNKNOWN_METRIC", f"{metric} is not a computed metric"))
            continue
        truth = ground_truth[metric]
        try:
            claimed_value = float(claimed)
        except (TypeError, ValueError):
            patch.corrections[metric] = (float("nan"), truth)
            patch.warnings.append(NumericWarning("TYPE", f"{metric} must be numeric"))
            continue
        if not within_tolerance(claimed_value, truth, tolerance):
            patch.corrections[metric] = (claimed_value, truth)
            patch.warnings.append(
                NumericWarning("MISMATCH", f"{metric}: cited {claimed_value} but data shows {truth}")
            )
    return patch


def apply_corrections(suggestion: Suggestion, patch: NumericPatch) -> Suggestion:
    """Rewrite cited metrics and the figures quoted in the problem and description."""
    if not patch.changed:
        return suggestion
    cited = dict(suggestion.cited_metrics)
    problem = suggestion.problem
    description = suggestion.description
    for metric, (wrong, right) in patch.corrections.items():
        cited[metric] = right
        if not math.isnan(wrong):
            problem = replace_figure(problem, wrong, right)
            description = replace_figure(description, wrong, right)
    calc = suggestion.impact_calculation
    if calc.base_metric in patch.corrections:
        calc = recompute(calc.model_copy(update={"base_value": patch.corrections[calc.base_metric][1]}))
    return suggestion.model_copy(
        update={
            "cited_metrics": cited,
            "problem": problem,
            "description": description,
            "impact_calculation": calc,
        }
    )


def recompute(calc: ImpactCalculation) -> ImpactCalculation:
    projected = calc.expected_projection()
    if projected is None:
        return calc
    return calc.model_copy(update={"projected_value": projected})


def complete_impact(
    calc: ImpactCalculation,
    ground_truth: Dict[str, float],
    tolerance: float = 0.02,
) -> Tuple[Optional[ImpactCalculation], List[NumericWarning]]:
    """
    Make ``base_value * improvement_rate = projected_value`` hold.

    A missing base value is taken from ground truth when ``base_metric`` names
    a computed metric. A missing rate is derived from base and projection.
    Returns ``(None, warnings)`` when the calculation cannot be completed.
    """
    warnings: List[NumericWarning] = []
    base, rate, projected = calc.base_value, calc.improvement_rate, calc.projected_value

    if calc.base_metric in ground_truth:
        truth = ground_truth[calc.base_metric]
        if base is None or not within_tolerance(base, truth, tolerance):
            warnings.append(NumericWarning("BASE", f"base_value set from {calc.base_metric}={truth}"))
            base = truth
    if base is None:
        warnings.append(NumericWarning("MISSING", "base_value is not traceable to store data"))
        return None, warnings

    if rate is None:
        if projected is None or base == 0:
            warnings.append(NumericWarning("MISSING", "improvement_rate cannot be derived"))
            return None, warnings
        rate = round(projected / base, 4)
        warnings.append(NumericWarning("RATE", f"improvement_rate derived as {rate}"))

    fixed = calc.model_copy(update={"base_value": base, "improvement_rate": rate, "projected_value": projected})
    if not fixed.is_consistent(tolerance):
        if projected is not None:
            warnings.append(
                NumericWarning("PROJECTION", f"projected_value {projected} replaced by {fixed.expected_projection()}")
            )
        fixed = recompute(fixed)
    return fixed, warnings


def numbers_in(text: str) -> List[str]:
    return _NUMBER_PATTERN.findall(text or "")


def reconcile_expected_result(
    suggestion: Suggestion,
    tolerance: float = 0.02,
) -> Tuple[Suggestion, Optional[NumericWarning]]:
    """
    A currency ``expected_result`` must be the projection of its own calculation.

    When ``base_value * improvement_rate`` projects a different amount, the
    claimed value (and the figure quoted in its description) is replaced by
    the projection.
    """
    result = suggestion.expected_result
    projected = suggestion.impact_calculation.projected_value
    if result.kind != ResultKind.CURRENCY or projected is None:
        return suggestion, None
    if within_tolerance(result.value, projected, tolerance):
        return suggestion, None
    fixed = result.model_copy(
        update={"value": projected, "description": replace_figure(result.description, result.value, projected)}
    )
    warning = NumericWarning(
        "EXPECTED_RESULT", f"expected_result {result.value:g} replaced by projected_value {projected:g}"
    )
    return suggestion.model_copy(update={"expected_result": fixed}), warning
