import platform_catalog
from benchmarks import canonical_niche, resolve_benchmarks
from models import NicheBenchmarks


def test_native_feature_is_free():
    result = platform_catalog.assess("Frete grátis acima de R$ 199")
    assert result.status == platform_catalog.NATIVE
    assert result.feasible
    assert result.cost_label() == "Gratuito (recurso nativo)"


def test_paid_apps_add_up():
    result = platform_catalog.assess("Quiz de rotina com cashback na segunda compra")
    assert result.status == platform_catalog.PAID_APP
    assert (result.monthly_cost_min, result.monthly_cost_max) == (79.0, 250.0)
    assert result.cost_label() == "R$ 79-250/mês"


def test_infeasible_wins_over_apps():
    result = platform_catalog.assess("Provador com realidade aumentada e pontos por uso")
    assert result.status == platform_catalog.INFEASIBLE
    assert not result.feasible
    assert result.features == ["Realidade aumentada"]


def test_unknown_action():
    result = platform_catalog.assess("Reorganizar a vitrine da home")
    assert result.status == platform_catalog.UNKNOWN
    assert result.feasible
    assert result.cost_label() == ""


def test_prompt_block_lists_real_prices():
    block = platform_catalog.catalogue_prompt_block()
    assert "Programa de fidelidade: R$ 49-150/mês (Fidelizar+, Remember)" in block
    assert "INVIÁVEIS NA PLATAFORMA" in block


def test_niche_aliases_fall_back_to_general():
    assert canonical_niche("Beleza") == "beauty"
    assert canonical_niche("Casa") == "casa_decoracao"
    assert canonical_niche("aquarismo") == "general"
    assert canonical_niche(None) == "general"


def test_supplied_ticket_benchmark_wins():
    supplied = NicheBenchmarks(average_ticket=150)
    assert resolve_benchmarks("beauty", supplied) is supplied


def test_default_ticket_keeps_other_supplied_figures():
    resolved = resolve_benchmarks("aquarismo", NicheBenchmarks(conversion_rate=1.2))
    assert resolved.average_ticket == 350.0
    assert resolved.conversion_rate == 1.2
    assert resolved.source == "tabela_padrao:general"
    assert resolved.extra == {"ticket_min": 200.0, "ticket_max": 600.0}
