"""Deterministic store health scoring."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from models import HealthBand, HealthBreakdown, HealthScore, SalesTrend

COMPONENT_WEIGHTS: Dict[str, int] = {
    "ticket": 25,
    "stock": 25,
    "cancellation": 15,
    "coupons": 15,
    "trend": 20,
}

BANDS = [
    (25, HealthBand.CRITICAL),
    (50, HealthBand.ATTENTION),
    (75, HealthBand.HEALTHY),
    (100, HealthBand.EXCELLENT),
]

BAND_LABELS: Dict[HealthBand, str] = {
    HealthBand.CRITICAL: "Crítico",
    HealthBand.ATTENTION: "Atenção",
    HealthBand.HEALTHY: "Saudável",
    HealthBand.EXCELLENT: "Excelente",
}


@dataclass
class HealthInputs:
    """Raw percentages feeding the five components. None means unknown."""

    ticket_ratio_pct: Optional[float] = None
    out_of_stock_pct: Optional[float] = None
    cancellation_rate: Optional[float] = None
    coupon_usage_rate: Optional[float] = None
    coupon_ticket_impact: Optional[float] = None
    sales_change_pct: Optional[float] = None


def ticket_score(ratio_pct: Optional[float]) -> Optional[int]:
    if ratio_pct is None:
        return None
    if ratio_pct >= 100:
        return 25
    if ratio_pct >= 80:
        return 20
    if ratio_pct >= 60:
        return 15
    if ratio_pct >= 40:
        return 10
    return 5


def stock_score(out_of_stock_pct: Optional[float]) -> Optional[int]:
    if out_of_stock_pct is None:
        return None
    if out_of_stock_pct <= 10:
        return 25
    if out_of_stock_pct <= 20:
        return 20
    if out_of_stock_pct <= 35:
        return 15
    if out_of_stock_pct <= 50:
        return 10
    return 5


def cancellation_score(rate: Optional[float]) -> Optional[int]:
    if rate is None:
        return None
    if rate <= 3:
        return 15
    if rate <= 7:
        return 12
    if rate <= 12:
        return 8
    if rate <= 20:
        return 4
    return 0


def coupon_score(usage_rate: Optional[float], ticket_impact: Optional[float]) -> Optional[int]:
    """Coupon dependency: heavy usage combined with a deep ticket cut scores zero."""
    if usage_rate is None or ticket_impact is None:
        return None
    if usage_rate > 70 and ticket_impact >= 15:
        return 0
    if usage_rate > 70 or ticket_impact >= 25:
        return 5
    if usage_rate >= 50 or ticket_impact >= 15:
        return 10
    return 15


def trend_score(change_pct: Optional[float]) -> Optional[int]:
    if change_pct is None:
        return None
    if change_pct > 5:
        return 20
    if change_pct >= -5:
        return 15
    if change_pct >= -20:
        return 10
    return 5


def sales_trend(change_pct: Optional[float]) -> Optional[SalesTrend]:
    if change_pct is None:
        return None
    if change_pct > 5:
        return SalesTrend.GROWTH
    if change_pct >= -5:
        return SalesTrend.STABLE
    if change_pct >= -20:
        return SalesTrend.MILD_DECLINE
    return SalesTrend.STRONG_DECLINE


def classify(score: int) -> HealthBand:
    bounded = clamp_score(score)
    for upper, band in BANDS:
        if bounded <= upper:
            return band
    return HealthBand.EXCELLENT


def clamp_score(score: float) -> int:
    return int(max(0, min(100, round(score))))


def breakdown(inputs: HealthInputs) -> HealthBreakdown:
    return HealthBreakdown(
        ticket=ticket_score(inputs.ticket_ratio_pct),
        stock=stock_score(inputs.out_of_stock_pct),
        cancellation=cancellation_score(inputs.cancellation_rate),
        coupons=coupon_score(inputs.coupon_usage_rate, inputs.coupon_ticket_impact),
        trend=trend_score(inputs.sales_change_pct),
    )


def score(inputs: HealthInputs) -> HealthScore:
    """
    Sum the five components. Unknown components stay null and are listed in
    ``missing_components``; the total is the sum of the known ones.
    """
    parts = breakdown(inputs)
    known = parts.known()
    missing: List[str] = [key for key in COMPONENT_WEIGHTS if key not in known]
    if not known:
        return HealthScore(total=None, band=None, breakdown=parts, missing_components=missing, complete=False)
    total = clamp_score(sum(known.values()))
    return HealthScore(
        total=total,
        band=classify(total),
        breakdown=parts,
        missing_components=missing,
        complete=not missing,
    )


def band_label(band: Optional[HealthBand]) -> str:
    if band is None:
        return "Indeterminado"
    return BAND_LABELS[band]
