from analysis_modules import resolve_module
from analyst_agent import compute_metrics
from benchmarks import resolve_benchmarks
from config import GrowthConfig
from critic_agent import REJECTED, CriticAgent, CriticContext, ItemReview, quality_score, verify
from models import (
    VERIFICATION_ORDER,
    AnalysisType,
    AnalystReport,
    FinalState,
    HistoricalSuggestion,
    ImpactTier,
    PrioritizedProblem,
    ProblemCategory,
    SimilarityReport,
    StrategistSlate,
    VerificationCheck,
)
from theme_registry import blocked_themes, saturation_map, theme_saturation

LOYALTY_HISTORY = [
    HistoricalSuggestion(id=1, title="Programa de fidelidade com cashback"),
    HistoricalSuggestion(id=2, title="Cartão fidelidade digital"),
    HistoricalSuggestion(id=3, title="Recompensa por pontos acumulados"),
]

STEP = {
    "what": "Separar os produtos da ação",
    "how": "Usar o painel da loja",
    "expected_result": "Ação no ar",
    "time": "1 semana",
    "resources": "Equipe interna",
    "indicator": "Pedidos no período",
}


class TinyCriticConfig(GrowthConfig):
    STRATEGIST_TIER_SIZES = {"high": 2, "medium": 2, "low": 2}


def _analyst(request):
    metrics = compute_metrics(request, resolve_benchmarks(request.store.niche, request.benchmarks))
    problems = [
        PrioritizedProblem(rank=1, problem_category=ProblemCategory.TICKET, description="Ticket baixo"),
        PrioritizedProblem(rank=2, problem_category=ProblemCategory.ESTOQUE, description="Ruptura"),
        PrioritizedProblem(rank=3, problem_category=ProblemCategory.CUPONS, description="Cupons"),
    ]
    return AnalystReport(metrics=metrics, prioritized_problems=problems)


def _ctx(request, saturation=(), has_external=False):
    return CriticContext(
        ground_truth=_analyst(request).metrics.ground_truth(),
        saturation=saturation_map(saturation),
        blocked=set(blocked_themes(saturation)),
        similarity=SimilarityReport(),
        top_problems={ProblemCategory.TICKET, ProblemCategory.ESTOQUE},
        has_external=has_external,
        tolerance=0.02,
        threshold=0.7,
    )


def _item(factory, id, tier, category, title, value=2000.0, **overrides):
    overrides.setdefault("expected_result", {"kind": "currency", "value": value, "description": "Receita extra"})
    overrides.setdefault(
        "impact_calculation",
        {"base_metric": "monthly_revenue", "base_value": 20000.0, "improvement_rate": value / 20000.0,
         "projected_value": value},
    )
    return factory(id=id, tier=tier, category=category, title=title, **overrides)


def _run(generator, request, suggestions, saturation=(), config=TinyCriticConfig):
    return CriticAgent(generator, config=config).run(
        request,
        StrategistSlate(suggestions=suggestions),
        _analyst(request),
        SimilarityReport(),
        list(saturation),
    )


def test_all_seven_checks_run_in_order_even_after_rejection(request_factory, suggestion_factory):
    saturation = theme_saturation(LOYALTY_HISTORY)
    review = verify(
        suggestion_factory(title="Programa de pontos para clientes recorrentes", category="customer"),
        _ctx(request_factory(), saturation),
    )
    assert review.rejected
    assert [r.check for r in review.records] == VERIFICATION_ORDER
    originality = review.records[1]
    assert originality.outcome == REJECTED
    assert "Programa de Fidelidade" in originality.detail


def test_numeric_cross_check_corrects_figures(request_factory, suggestion_factory):
    suggestion = suggestion_factory(
        problem="35% dos produtos ativos estão sem estoque.", cited_metrics={"out_of_stock_pct": 35.0}
    )
    review = verify(suggestion, _ctx(request_factory()))
    assert not review.rejected
    assert review.records[0].outcome == "corrected"
    assert review.suggestion.problem.startswith("40%")
    assert review.corrections == 1


def test_generic_problem_is_rewritten_with_store_data(request_factory, suggestion_factory):
    review = verify(suggestion_factory(problem="Catálogo com muitos itens parados."), _ctx(request_factory()))
    specificity = review.records[2]
    assert specificity.check == VerificationCheck.SPECIFICITY
    assert specificity.outcome == "corrected"
    assert "40" in review.suggestion.problem


def test_generic_problem_without_anchor_is_rejected(request_factory, suggestion_factory):
    suggestion = suggestion_factory(
        problem="Catálogo com muitos itens parados.",
        cited_metrics={},
        impact_calculation={"base_metric": "outra", "base_value": 5000, "improvement_rate": 0.1},
    )
    review = verify(suggestion, _ctx(request_factory()))
    assert review.rejected
    assert review.records[2].outcome == REJECTED


def test_infeasible_action_is_rejected(request_factory, suggestion_factory):
    review = verify(suggestion_factory(title="Provador com realidade aumentada"), _ctx(request_factory()))
    assert review.rejected
    assert review.records[3].detail.startswith("inviável na plataforma")


def test_inconsistent_projection_is_recomputed(request_factory, suggestion_factory):
    suggestion = suggestion_factory(
        impact_calculation={
            "base_metric": "monthly_revenue", "base_value": 20000.0, "improvement_rate": 0.1, "projected_value": 5000.0,
        }
    )
    review = verify(suggestion, _ctx(request_factory()))
    assert review.records[4].outcome == "corrected"
    assert review.suggestion.impact_calculation.projected_value == 2000.0


def test_alignment_demotes_unrelated_or_operational_high_items(request_factory, suggestion_factory):
    ctx = _ctx(request_factory())
    operational = verify(suggestion_factory(tier="high", category="inventory"), ctx)
    assert operational.suggestion.tier == ImpactTier.MEDIUM
    assert operational.records[5].outcome == "demoted"

    off_target = verify(suggestion_factory(tier="high", category="growth", target_problem="marketing"), ctx)
    assert off_target.suggestion.tier == ImpactTier.MEDIUM

    aligned = verify(suggestion_factory(tier="high", category="growth", target_problem="ticket"), ctx)
    assert aligned.suggestion.tier == ImpactTier.HIGH
    assert aligned.records[5].outcome == "ok"


def test_action_quality_drops_and_fills_steps(request_factory, suggestion_factory):
    plan = [
        dict(STEP),
        dict(STEP, how=""),
        dict(STEP, resources="", expected_result=""),
    ]
    review = verify(suggestion_factory(action_plan=plan), _ctx(request_factory()))
    steps = review.suggestion.action_plan
    assert [s.step for s in steps] == [1, 2]
    assert steps[1].resources == "Recurso nativo da plataforma"
    assert steps[1].expected_result == "R$ 2.000 a mais por mês"
    assert review.records[6].outcome == "corrected"


def test_high_item_without_external_reference_is_capped(request_factory, suggestion_factory):
    ctx = _ctx(request_factory(), has_external=True)
    weights = GrowthConfig.QUALITY_WEIGHTS
    plain = verify(suggestion_factory(tier="high", category="growth", target_problem="ticket"), ctx)
    assert quality_score(plain, ctx, weights, cap=7.0) == 7.0
    referenced = verify(
        suggestion_factory(
            tier="high", category="growth", target_problem="ticket",
            competitor_reference="Loja Rival vende o mesmo item por R$ 140",
        ),
        ctx,
    )
    assert quality_score(referenced, ctx, weights, cap=7.0) > 7.0


def test_low_quality_item_falls_below_minimum(request_factory, suggestion_factory):
    ctx = _ctx(request_factory())
    review = verify(
        suggestion_factory(
            data_source="boa_pratica_geral",
            cited_metrics={},
            implementation={"type": "terceiro", "complexity": "alta"},
        ),
        ctx,
    )
    assert quality_score(review, ctx, GrowthConfig.QUALITY_WEIGHTS, cap=7.0) < GrowthConfig.CRITIC_MIN_SCORE


def test_rejected_item_is_replaced_from_unsaturated_theme(stub_generator, request_factory, suggestion_factory):
    replacement = {
        "replaces": "sug-02",
        "tier": "low",
        "category": "conversion",
        "title": "Quiz de rotina de cuidados para a pele",
        "problem": "Ticket médio de R$ 80 contra R$ 150 do nicho.",
        "description": "Recomendar a rotina certa para cada tipo de pele.",
        "action_plan": [dict(STEP, step=1)],
        "expected_result": {"kind": "currency", "value": 3000, "description": "R$ 3.000 a mais por mês"},
        "impact_calculation": {"base_metric": "monthly_revenue", "base_value": 20000, "improvement_rate": 0.15},
        "data_source": "dado_direto",
        "cited_metrics": {"average_ticket": 80},
    }
    generator = stub_generator({"critic": {"replacements": [replacement]}})
    request = request_factory(goals={"monthly_revenue": 25000.0})
    slate = [
        _item(suggestion_factory, "sug-01", "high", "growth", "Linha masculina de cuidados com a pele",
              target_problem="ticket"),
        _item(suggestion_factory, "sug-02", "medium", "customer", "Programa de pontos para clientes recorrentes"),
        _item(suggestion_factory, "sug-03", "low", "pricing", "Escada de preços entre 80 e 150 reais"),
        _item(suggestion_factory, "sug-04", "low", "product", "Combo de rotina noturna"),
    ]
    report = _run(generator, request, slate, theme_saturation(LOYALTY_HISTORY))

    assert generator.stages_called() == ["critic"]
    assert "sug-02" in generator.calls[0][1]
    replaced = [c for c in report.suggestions if c.final_state == FinalState.REPLACED]
    assert len(replaced) == 1
    item = replaced[0]
    assert item.suggestion.id == "sug-02-r"
    assert item.suggestion.tier == ImpactTier.MEDIUM
    assert item.replaced_title == "Programa de pontos para clientes recorrentes"
    assert report.rejected[0]["replaced_by"] == "Quiz de rotina de cuidados para a pele"
    assert all("pontos" not in c.suggestion.title.lower() for c in report.suggestions)
    assert report.external_justification.waived
    assert report.goal_coverage.met


def test_goal_coverage_swaps_in_higher_value_items(stub_generator, request_factory, suggestion_factory):
    slate = [
        _item(suggestion_factory, "sug-01", "high", "growth", "Linha masculina de cuidados com a pele", 3000.0,
              target_problem="ticket"),
        _item(suggestion_factory, "sug-02", "medium", "inventory", "Reposição dos 40 itens sem estoque", 1000.0),
        _item(suggestion_factory, "sug-03", "medium", "pricing", "Escada de preços entre 80 e 150 reais", 6000.0,
              data_source="inferencia"),
        _item(suggestion_factory, "sug-04", "low", "product", "Combo de rotina noturna", 500.0),
    ]
    report = _run(stub_generator({}), request_factory(), slate)

    titles = [c.suggestion.title for c in report.suggestions]
    assert "Escada de preços entre 80 e 150 reais" in titles
    assert "Reposição dos 40 itens sem estoque" not in titles
    coverage = report.goal_coverage
    assert coverage.gap == 10000.0
    assert coverage.covered == 9500.0
    assert coverage.met
    assert coverage.ratio >= 0.80
    assert not any("gap" in w for w in report.warnings)


def test_external_minimum_swaps_in_referenced_items(stub_generator, request_factory, suggestion_factory):
    request = request_factory(competitors=[{"name": "Loja Rival", "average_ticket": 140}])
    slate = [
        _item(suggestion_factory, "sug-01", "high", "growth", "Linha masculina de cuidados com a pele",
              target_problem="ticket"),
        _item(suggestion_factory, "sug-02", "medium", "inventory", "Reposição dos 40 itens sem estoque"),
        _item(suggestion_factory, "sug-03", "medium", "pricing", "Escada de preços entre 80 e 150 reais",
              data_source="boa_pratica_geral", cited_metrics={},
              competitor_reference="Loja Rival cobra R$ 140 no kit equivalente"),
        _item(suggestion_factory, "sug-04", "low", "product", "Combo de rotina noturna"),
    ]
    report = _run(stub_generator({}), request, slate)

    titles = [c.suggestion.title for c in report.suggestions]
    assert "Escada de preços entre 80 e 150 reais" in titles
    external = report.external_justification
    assert (external.required, external.satisfied, external.waived) == (2, 1, False)
    assert any(w.startswith("Apenas 1 de 2") for w in report.warnings)
    high = [c for c in report.suggestions if c.suggestion.tier == ImpactTier.HIGH]
    assert high[0].quality_score == 7.0


def test_suspicious_average_triggers_strict_rescore(stub_generator, request_factory, suggestion_factory):
    plan = [dict(STEP, step=n) for n in (1, 2, 3)]
    reference = "Loja Rival vende kits a R$ 140"
    slate = [
        _item(suggestion_factory, "sug-01", "high", "growth", "Linha masculina de cuidados com a pele",
              target_problem="ticket", action_plan=plan, competitor_reference=reference),
        _item(suggestion_factory, "sug-02", "medium", "pricing", "Escada de preços entre 80 e 150 reais",
              action_plan=plan, competitor_reference=reference),
        _item(suggestion_factory, "sug-03", "low", "product", "Combo de rotina noturna",
              action_plan=plan, competitor_reference=reference),
    ]
    report = _run(stub_generator({}), request_factory(), slate)

    assert report.rescored
    assert len(report.suggestions) < len(slate)
    assert [c.priority for c in report.suggestions] == list(range(1, len(report.suggestions) + 1))
    assert any(w.startswith("Média de qualidade") for w in report.warnings)


def test_curated_set_respects_tier_order_and_high_gate(stub_generator, request_factory, suggestion_factory):
    slate = [
        _item(suggestion_factory, "sug-01", "high", "growth", "Linha masculina de cuidados com a pele",
              target_problem="ticket"),
        _item(suggestion_factory, "sug-02", "high", "market", "Entrada no nicho de cuidados capilares",
              target_problem="marketing"),
        _item(suggestion_factory, "sug-03", "medium", "pricing", "Escada de preços entre 80 e 150 reais"),
        _item(suggestion_factory, "sug-04", "low", "product", "Combo de rotina noturna"),
    ]
    report = _run(stub_generator({}), request_factory(), slate)

    tiers = [c.suggestion.tier for c in report.suggestions]
    order = [ImpactTier.HIGH, ImpactTier.MEDIUM, ImpactTier.LOW]
    assert tiers == sorted(tiers, key=order.index)
    assert all(
        c.suggestion.category.value in {"strategy", "investment", "market", "growth", "financial", "positioning"}
        for c in report.suggestions
        if c.suggestion.tier == ImpactTier.HIGH
    )
    assert all(len(c.verification) == 7 for c in report.suggestions)


def test_claimed_currency_result_follows_the_projection(request_factory, suggestion_factory):
    suggestion = suggestion_factory(
        expected_result={"kind": "currency", "value": 50000.0, "description": "R$ 50.000 a mais por mês"},
        impact_calculation={"base_metric": "monthly_revenue", "base_value": 20000.0, "improvement_rate": 0.05},
    )
    review = verify(suggestion, _ctx(request_factory()))
    assert not review.rejected
    impact = review.records[4]
    assert impact.outcome == "corrected"
    assert "expected_result" in impact.detail
    assert review.suggestion.expected_result.value == 1000.0
    assert review.suggestion.expected_result.description == "R$ 1.000 a mais por mês"


def test_inflated_claims_do_not_count_toward_the_goal(stub_generator, request_factory, suggestion_factory):
    slate = [
        _item(suggestion_factory, "sug-01", "high", "growth", "Linha masculina de cuidados com a pele",
              target_problem="ticket"),
        _item(suggestion_factory, "sug-02", "medium", "pricing", "Escada de preços entre 80 e 150 reais",
              expected_result={"kind": "currency", "value": 50000.0, "description": "R$ 50.000 a mais por mês"},
              impact_calculation={"base_metric": "monthly_revenue", "base_value": 20000.0, "improvement_rate": 0.05}),
        _item(suggestion_factory, "sug-03", "low", "product", "Combo de rotina noturna"),
        _item(suggestion_factory, "sug-04", "low", "inventory", "Reposição dos 40 itens sem estoque"),
    ]
    report = _run(stub_generator({}), request_factory(), slate)

    pricing = next(c for c in report.suggestions if c.suggestion.id == "sug-02")
    assert pricing.suggestion.expected_result.value == pricing.suggestion.impact_calculation.projected_value
    assert report.goal_coverage.covered == 5000.0
    assert not report.goal_coverage.met


def test_goal_coverage_matches_the_curated_set(stub_generator, request_factory, suggestion_factory):
    slate = [
        _item(suggestion_factory, "sug-01", "high", "growth", "Linha masculina de cuidados com a pele", 3000.0,
              target_problem="ticket"),
        _item(suggestion_factory, "sug-02", "medium", "pricing", "Escada de preços entre 80 e 150 reais", 6000.0,
              data_source="boa_pratica_geral"),
        _item(suggestion_factory, "sug-03", "low", "product", "Combo de rotina noturna", 500.0),
    ]
    report = _run(stub_generator({}), request_factory(), slate)

    assert len(report.suggestions) == 2
    curated_value = sum(c.suggestion.expected_result.value for c in report.suggestions)
    assert report.goal_coverage.covered == curated_value
    assert report.goal_coverage.met == (curated_value >= 0.8 * report.goal_coverage.gap)


def test_alignment_demotion_is_not_undone_by_rebalancing(stub_generator, request_factory, suggestion_factory):
    slate = [
        _item(suggestion_factory, "sug-01", "high", "growth", "Linha masculina de cuidados com a pele",
              target_problem="marketing", data_source="inferencia"),
        _item(suggestion_factory, "sug-02", "medium", "pricing", "Escada de preços entre 80 e 150 reais"),
        _item(suggestion_factory, "sug-03", "low", "product", "Combo de rotina noturna"),
        _item(suggestion_factory, "sug-04", "low", "inventory", "Reposição dos 40 itens sem estoque"),
    ]
    report = _run(stub_generator({}), request_factory(), slate)

    assert not [c for c in report.suggestions if c.suggestion.tier == ImpactTier.HIGH]
    for curated in report.suggestions:
        if curated.suggestion.id == "sug-01":
            assert curated.suggestion.tier == ImpactTier.MEDIUM
            assert curated.verification[5].outcome == "demoted"


def test_replacement_prompt_carries_the_mode_criteria(request_factory, suggestion_factory):
    ctx = _ctx(request_factory())
    ctx.module = resolve_module(AnalysisType.COMPETITORS)
    rejected = ItemReview(suggestion=suggestion_factory(), original_title="Reposição dos itens", reasons=["genérica"])
    prompt = CriticAgent(None, config=TinyCriticConfig).build_replacement_prompt([rejected], [], ctx)
    assert "CRITÉRIOS EXTRAS (competitors)" in prompt
    assert "concorrente pelo nome" in prompt

    ctx.module = resolve_module("general")
    prompt = CriticAgent(None, config=TinyCriticConfig).build_replacement_prompt([rejected], [], ctx)
    assert "CRITÉRIOS EXTRAS" not in prompt
