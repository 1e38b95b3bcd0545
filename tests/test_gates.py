from gates import by_tier, gate_high_tier, high_tier_violations, tier_counts, trim_to_tiers
from models import ImpactTier, SuggestionCategory


def test_operational_item_in_high_is_demoted(suggestion_factory):
    tactical = suggestion_factory(id="a", tier="high", category="inventory")
    strategic = suggestion_factory(id="b", tier="high", category="growth")
    gated, demoted = gate_high_tier([tactical, strategic])
    assert demoted == ["a"]
    assert gated[0].tier == ImpactTier.MEDIUM
    assert gated[1].tier == ImpactTier.HIGH
    assert high_tier_violations(gated) == []


def test_every_strategic_category_is_allowed_in_high(suggestion_factory):
    items = [
        suggestion_factory(id=category, tier="high", category=category)
        for category in ("strategy", "investment", "market", "growth", "financial", "positioning")
    ]
    gated, demoted = gate_high_tier(items)
    assert demoted == []
    assert all(item.tier == ImpactTier.HIGH for item in gated)


def test_gate_does_not_mutate_input(suggestion_factory):
    original = suggestion_factory(tier="high", category="coupon")
    gate_high_tier([original])
    assert original.tier == ImpactTier.HIGH
    assert original.category == SuggestionCategory.COUPON


def test_trim_keeps_first_items_per_tier(suggestion_factory):
    items = [
        suggestion_factory(id="h1", tier="high", category="growth"),
        suggestion_factory(id="m1", tier="medium"),
        suggestion_factory(id="h2", tier="high", category="market"),
        suggestion_factory(id="m2", tier="medium"),
        suggestion_factory(id="l1", tier="low"),
    ]
    kept = trim_to_tiers(items, {"high": 1, "medium": 2, "low": 0})
    assert [s.id for s in kept] == ["h1", "m1", "m2"]


def test_counts_and_grouping(suggestion_factory):
    items = [suggestion_factory(id="x", tier="low"), suggestion_factory(id="y", tier="medium")]
    assert tier_counts(items) == {ImpactTier.HIGH: 0, ImpactTier.MEDIUM: 1, ImpactTier.LOW: 1}
    assert [s.id for s in by_tier(items)[ImpactTier.LOW]] == ["x"]
