from analyst_agent import compute_metrics, detect_anomalies, prioritize_problems
from benchmarks import resolve_benchmarks
from config import GrowthConfig
from models import (
    AnalysisContext,
    AnalystReport,
    CollectorDigest,
    ConfidenceLevel,
    HistoricalSuggestion,
    ImpactTier,
    ImplementationType,
    ProfileResult,
    SimilarityReport,
    StoreProfile,
    SuggestionCategory,
)
from similarity_engine import build_zone
from strategist_agent import (
    StrategistAgent,
    annotate_feasibility,
    confidence_for,
    ground_suggestion,
    parse_suggestion,
)


class TinySlateConfig(GrowthConfig):
    STRATEGIST_TIER_SIZES = {"high": 1, "medium": 2, "low": 1}


def draft(title, tier="medium", category="pricing", **overrides):
    item = {
        "tier": tier,
        "category": category,
        "title": title,
        "problem": "Ticket médio de R$ 80 contra R$ 150 do nicho.",
        "description": f"{title} com metas mensais.",
        "action_plan": [
            {
                "step": 1,
                "what": "Definir a ação",
                "how": "Configurar no painel da loja",
                "expected_result": "Ação publicada",
                "time": "1 semana",
                "resources": "Equipe interna",
                "indicator": "Pedidos no período",
            }
        ],
        "expected_result": {"kind": "currency", "value": 3000, "description": "R$ 3.000 a mais por mês"},
        "impact_calculation": {"base_metric": "monthly_revenue", "base_value": 20000, "improvement_rate": 0.15},
        "data_source": "dado_direto",
        "cited_metrics": {"average_ticket": 80},
    }
    item.update(overrides)
    return item


def _analyst(request):
    metrics = compute_metrics(request, resolve_benchmarks(request.store.niche, request.benchmarks))
    anomalies = detect_anomalies(request, metrics)
    return AnalystReport(
        metrics=metrics, anomalies=anomalies, prioritized_problems=prioritize_problems(metrics, anomalies)
    )


def _run(generator, request, similarity=None, config=TinySlateConfig):
    profile = ProfileResult(profile=StoreProfile(nicho="beauty"), context=AnalysisContext(data="2024-03-20"))
    return StrategistAgent(generator, config=config).run(
        request, profile, CollectorDigest(), _analyst(request), similarity or SimilarityReport(), []
    )


def _first_round():
    return {
        "suggestions": [
            draft("Expansão para o público masculino", tier="high", category="growth"),
            draft("Reposição dos 40 itens sem estoque", tier="high", category="inventory"),
            draft("Escada de preços entre 80 e 150 reais", tier="medium", category="pricing"),
            draft("Título da sugestão", tier="medium", category="marketing"),
            draft("Nova linha de acessórios", tier="low", category="product", problem="Catálogo pequeno."),
            draft("Provador com realidade aumentada", tier="low", category="conversion"),
            draft(
                "Pesquisa inventada",
                tier="low",
                category="customer",
                impact_calculation={"base_metric": "taxa_inventada", "base_value": 12345, "improvement_rate": 0.1},
            ),
            draft("Reposição dos 40 itens sem estoque!", tier="medium", category="inventory"),
            draft(
                "Pesquisa de satisfação com 250 clientes",
                tier="low",
                category="customer",
                impact_calculation={"base_metric": "total_orders", "base_value": 250, "improvement_rate": 0.05},
                expected_result={"kind": "percentage", "value": 5, "description": "5% mais recompra"},
            ),
        ]
    }


def test_slate_is_grounded_gated_and_numbered(stub_generator, request_factory):
    generator = stub_generator({"strategist": _first_round()})
    slate = _run(generator, request_factory())

    assert [s.tier for s in slate.suggestions] == [
        ImpactTier.HIGH, ImpactTier.MEDIUM, ImpactTier.MEDIUM, ImpactTier.LOW,
    ]
    assert [s.id for s in slate.suggestions] == ["sug-01", "sug-02", "sug-03", "sug-04"]
    titles = [s.title for s in slate.suggestions]
    assert titles[0] == "Expansão para o público masculino"
    assert "Reposição dos 40 itens sem estoque" in titles
    assert generator.stages_called() == ["strategist"]


def test_every_high_item_is_strategic(stub_generator, request_factory):
    slate = _run(stub_generator({"strategist": _first_round()}), request_factory())
    high = [s for s in slate.suggestions if s.tier == ImpactTier.HIGH]
    assert high and all(s.category.value == "growth" for s in high)


def test_omitted_candidates_carry_reasons(stub_generator, request_factory):
    slate = _run(stub_generator({"strategist": _first_round()}), request_factory())
    reasons = {item["title"]: item["reason"] for item in slate.omitted}
    assert reasons["Título da sugestão"] == "texto de exemplo não substituído"
    assert reasons["Nova linha de acessórios"] == "problema sem número da loja"
    assert reasons["Provador com realidade aumentada"].startswith("inviável na plataforma")
    assert "não rastreável" in reasons["Pesquisa inventada"]
    assert reasons["Reposição dos 40 itens sem estoque!"] == "duplicada no mesmo lote"


def test_missing_projection_is_computed(stub_generator, request_factory):
    slate = _run(stub_generator({"strategist": _first_round()}), request_factory())
    calc = slate.suggestions[0].impact_calculation
    assert calc.projected_value == 3000.0


def test_refill_round_completes_a_short_slate(stub_generator, request_factory):
    first = {"suggestions": [draft("Escada de preços entre 80 e 150 reais")]}
    refill = {
        "suggestions": [
            draft("Expansão para o público masculino", tier="high", category="growth"),
            draft("Combo de rotina noturna com 3 itens", tier="medium", category="product"),
            draft("Pesquisa de satisfação com 250 clientes", tier="low", category="customer"),
        ]
    }
    generator = stub_generator({"strategist": [first, refill]})
    slate = _run(generator, request_factory())
    assert generator.stages_called() == ["strategist", "strategist"]
    assert len(slate.suggestions) == 4
    assert "Escada de preços entre 80 e 150 reais" in generator.calls[1][1]


def test_short_slate_is_not_padded(stub_generator, request_factory):
    payload = {"suggestions": [draft("Escada de preços entre 80 e 150 reais")]}
    generator = stub_generator({"strategist": payload})
    slate = _run(generator, request_factory())
    assert [s.title for s in slate.suggestions] == ["Escada de preços entre 80 e 150 reais"]


def test_prohibited_zone_candidates_are_omitted(stub_generator, request_factory):
    zone = build_zone(HistoricalSuggestion(id="old-1", title="Escada de preços entre 80 e 150 reais"))
    generator = stub_generator({"strategist": {"suggestions": [draft("Escada de preços entre 80 e 150 reais")]}})
    slate = _run(generator, request_factory(), similarity=SimilarityReport(prohibited_zones=[zone]))
    assert slate.suggestions == []
    assert "old-1" in slate.omitted[-1]["reason"]


def test_parse_rejects_invalid_enums():
    suggestion, reason = parse_suggestion(draft("Escada de preços", tier="urgent"))
    assert suggestion is None
    assert "tier" in reason


def test_ground_accepts_base_value_matching_a_metric(suggestion_factory):
    suggestion = suggestion_factory(
        impact_calculation={"base_metric": "faturamento", "base_value": 20000, "improvement_rate": 0.1}
    )
    grounded, reason = ground_suggestion(suggestion, {"monthly_revenue": 20000.0}, 0.02)
    assert reason is None
    assert grounded.impact_calculation.projected_value == 2000.0
    assert grounded.impact_calculation.base_metric == "monthly_revenue"


def test_ground_rejects_unnamed_numeric_coincidence(suggestion_factory):
    suggestion = suggestion_factory(
        impact_calculation={"base_metric": "visitas", "base_value": 100, "improvement_rate": 0.1}
    )
    grounded, reason = ground_suggestion(suggestion, {"active_products": 100.0}, 0.02)
    assert grounded is None
    assert "visitas" in reason


def test_ground_aligns_currency_result_with_projection(suggestion_factory):
    suggestion = suggestion_factory(
        expected_result={"kind": "currency", "value": 9000.0, "description": "R$ 9.000 a mais por mês"},
        impact_calculation={"base_metric": "monthly_revenue", "base_value": 20000, "improvement_rate": 0.1},
    )
    grounded, _ = ground_suggestion(suggestion, {"monthly_revenue": 20000.0}, 0.02)
    assert grounded.expected_result.value == 2000.0
    assert grounded.expected_result.description == "R$ 2.000 a mais por mês"


def test_paid_app_gets_real_cost(suggestion_factory):
    suggestion = suggestion_factory(title="Programa de fidelidade com cashback", category="customer")
    annotated, _ = annotate_feasibility(suggestion)
    assert annotated.implementation.type == ImplementationType.APP
    assert annotated.implementation.cost == "R$ 49-150/mês"
    assert annotated.implementation.monthly_cost_max == 150.0


def test_confidence_from_historical_success_rates():
    assert confidence_for(SuggestionCategory.CUSTOMER) == ConfidenceLevel.HIGH
    assert confidence_for(SuggestionCategory.GROWTH) == ConfidenceLevel.MEDIUM
    assert confidence_for(SuggestionCategory.COUPON) == ConfidenceLevel.LOW
