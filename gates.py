"""Impact-tier gating policies."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Tuple

from models import STRATEGIC_CATEGORIES, ImpactTier, Suggestion, SuggestionCategory

logger = logging.getLogger(__name__)

TIER_ORDER = [ImpactTier.HIGH, ImpactTier.MEDIUM, ImpactTier.LOW]


def allowed_in_high(category: SuggestionCategory) -> bool:
    return category in STRATEGIC_CATEGORIES


def gate_high_tier(suggestions: Iterable[Suggestion]) -> Tuple[List[Suggestion], List[str]]:
    """Demote HIGH items whose category is not business-strategic to MEDIUM."""
    gated: List[Suggestion] = []
    demoted: List[str] = []
    for suggestion in suggestions:
        if suggestion.tier == ImpactTier.HIGH and not allowed_in_high(suggestion.category):
            logger.info(
                "Demoting '%s' from HIGH to MEDIUM: category '%s' is not strategic",
                suggestion.title,
                suggestion.category.value,
            )
            suggestion = suggestion.model_copy(update={"tier": ImpactTier.MEDIUM})
            demoted.append(suggestion.id)
        gated.append(suggestion)
    return gated, demoted


def tier_counts(suggestions: Iterable[Suggestion]) -> Dict[ImpactTier, int]:
    counts = {tier: 0 for tier in TIER_ORDER}
    for suggestion in suggestions:
        counts[suggestion.tier] += 1
    return counts


def by_tier(suggestions: Iterable[Suggestion]) -> Dict[ImpactTier, List[Suggestion]]:
    grouped: Dict[ImpactTier, List[Suggestion]] = {tier: [] for tier in TIER_ORDER}
    for suggestion in suggestions:
        grouped[suggestion.tier].append(suggestion)
    return grouped


def trim_to_tiers(suggestions: Iterable[Suggestion], sizes: Dict[str, int]) -> List[Suggestion]:
    """Keep the first N items of each tier, preserving the original order."""
    remaining = {tier: int(sizes.get(tier.value, 0)) for tier in TIER_ORDER}
    kept: List[Suggestion] = []
    for suggestion in suggestions:
        if remaining[suggestion.tier] > 0:
            kept.append(suggestion)
            remaining[suggestion.tier] -= 1
    return kept


def high_tier_violations(suggestions: Iterable[Suggestion]) -> List[str]:
    return [
        s.title for s in suggestions if s.tier == ImpactTier.HIGH and not allowed_in_high(s.category)
    ]
