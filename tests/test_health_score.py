import pytest

import health_score
from health_score import HealthInputs, classify, score
from models import HealthBand, HealthScore, SalesTrend


def _full_inputs(**overrides):
    values = dict(
        ticket_ratio_pct=100.0,
        out_of_stock_pct=5.0,
        cancellation_rate=2.0,
        coupon_usage_rate=10.0,
        coupon_ticket_impact=5.0,
        sales_change_pct=10.0,
    )
    values.update(overrides)
    return HealthInputs(**values)


def test_perfect_store_scores_100():
    result = score(_full_inputs())
    assert result.total == 100
    assert result.band == HealthBand.EXCELLENT
    assert result.complete is True
    assert result.missing_components == []


def test_total_equals_sum_of_subscores():
    result = score(
        _full_inputs(ticket_ratio_pct=70.0, out_of_stock_pct=30.0, cancellation_rate=9.0, sales_change_pct=-10.0)
    )
    known = result.breakdown.known()
    assert result.total == sum(known.values())
    assert known == {"ticket": 15, "stock": 15, "cancellation": 8, "coupons": 15, "trend": 10}


def test_scores_stay_within_bounds_for_worst_inputs():
    result = score(
        _full_inputs(
            ticket_ratio_pct=0.0,
            out_of_stock_pct=100.0,
            cancellation_rate=80.0,
            coupon_usage_rate=100.0,
            coupon_ticket_impact=60.0,
            sales_change_pct=-90.0,
        )
    )
    assert 0 <= result.total <= 100
    assert result.band == HealthBand.CRITICAL


@pytest.mark.parametrize(
    "value, band",
    [(25, HealthBand.CRITICAL), (26, HealthBand.ATTENTION), (50, HealthBand.ATTENTION),
     (51, HealthBand.HEALTHY), (75, HealthBand.HEALTHY), (76, HealthBand.EXCELLENT)],
)
def test_band_boundaries(value, band):
    assert classify(value) == band


def test_missing_component_stays_null_not_zero():
    result = score(_full_inputs(cancellation_rate=None))
    assert result.breakdown.cancellation is None
    assert "cancellation" in result.missing_components
    assert result.complete is False
    assert result.total == 85


def test_zero_cancellation_is_a_real_value():
    result = score(_full_inputs(cancellation_rate=0.0))
    assert result.breakdown.cancellation == 15
    assert result.complete is True


def test_no_known_component_yields_null_total():
    result = score(HealthInputs())
    assert result.total is None
    assert result.band is None
    assert len(result.missing_components) == 5


def test_inconsistent_total_is_rejected_by_model():
    with pytest.raises(ValueError):
        HealthScore(total=90, breakdown={"ticket": 25, "stock": 25})


def test_coupon_dependency_zeroes_component():
    assert health_score.coupon_score(75.0, 20.0) == 0
    assert health_score.coupon_score(75.0, 5.0) == 5
    assert health_score.coupon_score(None, 5.0) is None


@pytest.mark.parametrize(
    "change, trend",
    [(6.0, SalesTrend.GROWTH), (0.0, SalesTrend.STABLE), (-5.0, SalesTrend.STABLE),
     (-12.0, SalesTrend.MILD_DECLINE), (-35.0, SalesTrend.STRONG_DECLINE), (None, None)],
)
def test_sales_trend_labels_are_portuguese(change, trend):
    assert health_score.sales_trend(change) == trend


def test_band_label_for_unknown_band():
    assert health_score.band_label(None) == "Indeterminado"
    assert health_score.band_label(HealthBand.ATTENTION) == "Atenção"
