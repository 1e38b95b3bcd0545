"""
Critic (Selector)

Reviews the Strategist slate item by item and curates a smaller final set.

Each item runs through seven ordered checks (numeric cross-check, originality,
specificity, feasibility, impact calculation, alignment and action quality),
and every check leaves a VerificationRecord. Items either survive unchanged,
survive with corrections, or are rejected; rejected items are replaced in a
single backend round whose drafts must clear the same checks. Selection then
takes the best share of each tier, rebalances short tiers, enforces the
external-justification minimum when competitor data exists, and swaps in
higher-value items until the monthly goal gap is covered.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from statistics import mean
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import platform_catalog
from analysis_contracts import lint_critic_payload
from analysis_modules import GENERAL, ModuleConfig, resolve_module
from config import GrowthConfig
from dedup import classify_problem, dedupe_titles
from gates import TIER_ORDER, allowed_in_high, gate_high_tier
from metrics import friendly_metric_label
from models import (
    STRATEGIC_CATEGORIES,
    ActionStep,
    AnalystReport,
    Complexity,
    CriticReport,
    CuratedSuggestion,
    DataSource,
    ExternalJustification,
    FinalState,
    GoalCoverage,
    ImpactTier,
    ImplementationType,
    ProblemCategory,
    ResultKind,
    SaturationLevel,
    SimilarityReport,
    StoreAnalysisRequest,
    StrategistSlate,
    Suggestion,
    ThemeSaturationEntry,
    VerificationCheck,
    VerificationRecord,
)
from servers.numeric_guard import apply_corrections, complete_impact, cross_check, reconcile_expected_result
from similarity_engine import matching_zones
from stage_runner import request_stage_json
from strategist_agent import SUGGESTION_SCHEMA, annotate_feasibility, ground_suggestion, parse_suggestion
from text_generation import TextGenerator
from theme_registry import blocked_themes, match_themes, saturation_map

logger = logging.getLogger(__name__)

OK = "ok"
CORRECTED = "corrected"
REJECTED = "rejected"
DEMOTED = "demoted"
SKIPPED = "skipped"

DATA_SOURCE_SCORES = {
    DataSource.DIRECT: 10.0,
    DataSource.INFERENCE: 7.0,
    DataSource.BEST_PRACTICE: 4.0,
}

SATURATION_SCORES = {
    SaturationLevel.PREFERRED: 10.0,
    SaturationLevel.USED: 8.0,
    SaturationLevel.FREQUENT: 5.0,
    SaturationLevel.BLOCKED: 0.0,
}

SYSTEM_PROMPT = (
    "Você é o Crítico de uma análise de e-commerce.\n"
    "Algumas sugestões foram rejeitadas. Crie substitutas que obedeçam às mesmas regras do estrategista: "
    "números reais da loja, viabilidade na plataforma, temas não saturados e nenhuma repetição do histórico.\n"
)


@dataclass
class CriticContext:
    ground_truth: Dict[str, float]
    saturation: Dict[str, ThemeSaturationEntry]
    blocked: Set[str]
    similarity: SimilarityReport
    top_problems: Set[ProblemCategory]
    has_external: bool
    tolerance: float
    threshold: float
    module: ModuleConfig = GENERAL


@dataclass
class ItemReview:
    suggestion: Suggestion
    original_title: str
    records: List[VerificationRecord] = field(default_factory=list)
    rejected: bool = False
    improved: bool = False
    reasons: List[str] = field(default_factory=list)
    corrections: int = 0
    dropped_steps: int = 0
    quality: float = 0.0
    replaced_title: Optional[str] = None

    def record(self, check: VerificationCheck, outcome: str, detail: str = "") -> None:
        passed = outcome not in (REJECTED,)
        self.records.append(VerificationRecord(check=check, passed=passed, outcome=outcome, detail=detail))
        if outcome == REJECTED:
            self.rejected = True
            self.reasons.append(f"{check.value}: {detail}")
        elif outcome in (CORRECTED, DEMOTED):
            self.improved = True


# ---------------------------------------------------------------------------
# Verification protocol
# ---------------------------------------------------------------------------


def check_numeric(review: ItemReview, ctx: CriticContext) -> None:
    suggestion = review.suggestion
    if not suggestion.cited_metrics:
        review.record(VerificationCheck.NUMERIC, OK, "nenhuma métrica citada")
        return
    patch = cross_check(suggestion.cited_metrics, ctx.ground_truth, ctx.tolerance)
    if patch.unknown_metrics:
        cited = {k: v for k, v in suggestion.cited_metrics.items() if k not in patch.unknown_metrics}
        suggestion = suggestion.model_copy(update={"cited_metrics": cited})
    if patch.changed:
        suggestion = apply_corrections(suggestion, patch)
        review.corrections = len(patch.corrections)
    review.suggestion = suggestion
    if patch.changed or patch.unknown_metrics:
        detail = "; ".join(w.message for w in patch.warnings)
        logger.info("Numeric cross-check corrected '%s': %s", suggestion.title, detail)
        review.record(VerificationCheck.NUMERIC, CORRECTED, detail)
    else:
        review.record(VerificationCheck.NUMERIC, OK, f"{len(suggestion.cited_metrics)} métricas conferidas")


def check_originality(review: ItemReview, ctx: CriticContext) -> None:
    suggestion = review.suggestion
    saturated = [theme for theme in match_themes(suggestion.text_blob()) if theme in ctx.blocked]
    if saturated:
        labels = ", ".join(ctx.saturation[theme].label for theme in saturated)
        review.record(VerificationCheck.ORIGINALITY, REJECTED, f"tema saturado: {labels}")
        return
    hits = matching_zones(
        suggestion.title,
        suggestion.description,
        suggestion.category.value,
        ctx.similarity.prohibited_zones,
        ctx.threshold,
    )
    if hits:
        review.record(VerificationCheck.ORIGINALITY, REJECTED, f"duplica sugestões anteriores: {', '.join(hits)}")
        return
    review.record(VerificationCheck.ORIGINALITY, OK)


def check_specificity(review: ItemReview, ctx: CriticContext) -> None:
    suggestion = review.suggestion
    if any(ch.isdigit() for ch in suggestion.problem):
        review.record(VerificationCheck.SPECIFICITY, OK)
        return
    anchors = [key for key in suggestion.cited_metrics if key in ctx.ground_truth]
    base_metric = suggestion.impact_calculation.base_metric
    if not anchors and base_metric in ctx.ground_truth:
        anchors = [base_metric]
    if not anchors:
        review.record(VerificationCheck.SPECIFICITY, REJECTED, "problema genérico, sem dado da loja")
        return
    facts = ", ".join(f"{friendly_metric_label(key)}: {ctx.ground_truth[key]:g}" for key in anchors)
    review.suggestion = suggestion.model_copy(update={"problem": f"{suggestion.problem.rstrip('.')} ({facts})."})
    review.record(VerificationCheck.SPECIFICITY, CORRECTED, f"problema reescrito com dados da loja: {facts}")


def check_feasibility(review: ItemReview, ctx: CriticContext) -> None:
    before = review.suggestion.implementation
    annotated, reason = annotate_feasibility(review.suggestion)
    if annotated is None:
        review.record(VerificationCheck.FEASIBILITY, REJECTED, reason or "")
        return
    review.suggestion = annotated
    after = annotated.implementation
    if after.type != before.type or after.cost != before.cost:
        review.record(VerificationCheck.FEASIBILITY, CORRECTED, f"implementação ajustada: {after.type.value}, {after.cost}")
    else:
        review.record(VerificationCheck.FEASIBILITY, OK, after.cost)


def check_impact(review: ItemReview, ctx: CriticContext) -> None:
    calc, warnings = complete_impact(review.suggestion.impact_calculation, ctx.ground_truth, ctx.tolerance)
    if calc is None:
        review.record(VerificationCheck.IMPACT_CALCULATION, REJECTED, "; ".join(w.message for w in warnings))
        return
    suggestion, result_warning = reconcile_expected_result(
        review.suggestion.model_copy(update={"impact_calculation": calc}), ctx.tolerance
    )
    if result_warning is not None:
        logger.info("Expected result of '%s' aligned with its projection", suggestion.title)
        warnings.append(result_warning)
    review.suggestion = suggestion
    if warnings:
        review.record(VerificationCheck.IMPACT_CALCULATION, CORRECTED, "; ".join(w.message for w in warnings))
    else:
        review.record(VerificationCheck.IMPACT_CALCULATION, OK)


def _problem_category(suggestion: Suggestion) -> ProblemCategory:
    target = (suggestion.target_problem or "").strip().lower()
    if target in {c.value for c in ProblemCategory}:
        return ProblemCategory(target)
    return classify_problem(suggestion.full_text(), suggestion.category.value)


def check_alignment(review: ItemReview, ctx: CriticContext) -> None:
    suggestion = review.suggestion
    if suggestion.tier != ImpactTier.HIGH:
        review.record(VerificationCheck.ALIGNMENT, SKIPPED, "aplicável apenas ao nível alto")
        return
    if not allowed_in_high(suggestion.category):
        review.suggestion = suggestion.model_copy(update={"tier": ImpactTier.MEDIUM})
        review.record(VerificationCheck.ALIGNMENT, DEMOTED, f"categoria {suggestion.category.value} não é estratégica")
        return
    if not ctx.top_problems:
        review.record(VerificationCheck.ALIGNMENT, OK, "nenhum problema priorizado disponível")
        return
    category = _problem_category(suggestion)
    if category in ctx.top_problems:
        review.record(VerificationCheck.ALIGNMENT, OK, f"ataca o problema priorizado '{category.value}'")
        return
    review.suggestion = suggestion.model_copy(update={"tier": ImpactTier.MEDIUM})
    review.record(
        VerificationCheck.ALIGNMENT,
        DEMOTED,
        f"'{category.value}' fora dos problemas priorizados: {', '.join(sorted(p.value for p in ctx.top_problems))}",
    )


def _resources_for(suggestion: Suggestion) -> str:
    impl = suggestion.implementation
    if impl.type == ImplementationType.APP and impl.app_name:
        return f"{impl.app_name} ({impl.cost})" if impl.cost else impl.app_name
    if impl.type == ImplementationType.NATIVE:
        return "Recurso nativo da plataforma"
    return impl.cost


def check_action_quality(review: ItemReview, ctx: CriticContext) -> None:
    suggestion = review.suggestion
    steps: List[ActionStep] = []
    filled = 0
    for step in suggestion.action_plan:
        missing = step.missing_fields()
        if "what" in missing or "how" in missing:
            review.dropped_steps += 1
            continue
        update: Dict[str, Any] = {"step": len(steps) + 1}
        if "expected_result" in missing and suggestion.expected_result.description:
            update["expected_result"] = suggestion.expected_result.description
        if "resources" in missing and _resources_for(suggestion):
            update["resources"] = _resources_for(suggestion)
        fixed = step.model_copy(update=update)
        if fixed.missing_fields():
            review.dropped_steps += 1
            continue
        if len(update) > 1:
            filled += 1
        steps.append(fixed)

    if not steps:
        review.record(VerificationCheck.ACTION_QUALITY, REJECTED, "nenhum passo de ação completo")
        return
    review.suggestion = suggestion.model_copy(update={"action_plan": steps})
    if review.dropped_steps or filled:
        review.record(
            VerificationCheck.ACTION_QUALITY,
            CORRECTED,
            f"{filled} passo(s) completado(s), {review.dropped_steps} descartado(s)",
        )
    else:
        review.record(VerificationCheck.ACTION_QUALITY, OK, f"{len(steps)} passos completos")


CHECKS = (
    check_numeric,
    check_originality,
    check_specificity,
    check_feasibility,
    check_impact,
    check_alignment,
    check_action_quality,
)


def verify(suggestion: Suggestion, ctx: CriticContext) -> ItemReview:
    """Run every check in order. A rejection is sticky but later checks still run and record."""
    review = ItemReview(suggestion=suggestion, original_title=suggestion.title)
    for check in CHECKS:
        check(review, ctx)
    return review


# ---------------------------------------------------------------------------
# Quality score
# ---------------------------------------------------------------------------


def rubric(review: ItemReview, ctx: CriticContext, strict: bool = False) -> Dict[str, float]:
    suggestion = review.suggestion
    has_digit = any(ch.isdigit() for ch in suggestion.problem)
    if has_digit and suggestion.cited_metrics:
        specificity = 10.0
    elif has_digit:
        specificity = 5.0 if strict else 7.0
    else:
        specificity = 0.0

    grounding = max(0.0, DATA_SOURCE_SCORES[suggestion.data_source] - 2.0 * review.corrections)

    if suggestion.competitor_reference:
        external = 10.0
    elif ctx.has_external or strict:
        external = 2.0
    else:
        external = 5.0

    complete_steps = len(suggestion.action_plan)
    if complete_steps >= 3:
        actionability = 10.0
    elif complete_steps == 2:
        actionability = 6.0 if strict else 8.0
    else:
        actionability = 4.0 if strict else 6.0
    actionability = max(0.0, actionability - review.dropped_steps)

    impl = suggestion.implementation
    if impl.type == ImplementationType.NATIVE:
        feasibility = 10.0
    elif impl.type == ImplementationType.APP:
        feasibility = 8.0 if (impl.monthly_cost_max or 0) <= 100 and not strict else 6.0
    else:
        feasibility = 6.0
    if impl.complexity == Complexity.HIGH:
        feasibility -= 2.0

    levels = [ctx.saturation[t].level for t in match_themes(suggestion.text_blob()) if t in ctx.saturation]
    originality = min((SATURATION_SCORES[level] for level in levels), default=10.0)

    return {
        "especificidade": specificity,
        "base_em_dados": grounding,
        "dados_externos": external,
        "acionabilidade": actionability,
        "viabilidade": max(0.0, feasibility),
        "originalidade": originality,
    }


def quality_score(review: ItemReview, ctx: CriticContext, weights: Dict[str, float], cap: float, strict: bool = False) -> float:
    if review.rejected:
        return 0.0
    parts = rubric(review, ctx, strict)
    total = sum(weights[key] * parts[key] for key in weights) / (sum(weights.values()) or 1.0)
    if ctx.has_external and review.suggestion.tier == ImpactTier.HIGH and not review.suggestion.competitor_reference:
        total = min(total, cap)
    return round(max(0.0, min(10.0, total)), 1)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def _currency_value(suggestion: Suggestion) -> float:
    if suggestion.expected_result.kind == ResultKind.CURRENCY:
        return max(0.0, suggestion.expected_result.value)
    return 0.0


def measure_goal_coverage(gap: float, target: float, curated: Sequence[Suggestion]) -> GoalCoverage:
    covered = round(sum(_currency_value(s) for s in curated), 2)
    ratio = round(covered / gap, 4) if gap > 0 else 1.0
    return GoalCoverage(gap=gap, covered=covered, ratio=ratio, target_ratio=target, met=ratio >= target)


def _demoted_by_alignment(review: ItemReview) -> bool:
    return any(r.check == VerificationCheck.ALIGNMENT and r.outcome == DEMOTED for r in review.records)


def _fits_high(review: ItemReview) -> bool:
    """Strategic category and not already demoted out of HIGH by the alignment check."""
    return review.suggestion.category in STRATEGIC_CATEGORIES and not _demoted_by_alignment(review)


def _retier(review: ItemReview, tier: ImpactTier) -> ItemReview:
    if review.suggestion.tier != tier:
        logger.info("Moving '%s' from %s to %s", review.suggestion.title, review.suggestion.tier.value, tier.value)
        review.suggestion = review.suggestion.model_copy(update={"tier": tier})
        review.improved = True
    return review


class CriticAgent:
    """Curation stage."""

    stage = "critic"

    def __init__(self, generator: TextGenerator, config=GrowthConfig, provider: Optional[str] = None):
        self.generator = generator
        self.config = config
        self.provider = provider

    def tier_targets(self) -> Dict[ImpactTier, int]:
        ratio = self.config.CRITIC_SELECT_RATIO
        return {
            tier: int(math.ceil(self.config.STRATEGIST_TIER_SIZES.get(tier.value, 0) * ratio))
            for tier in TIER_ORDER
        }

    def build_replacement_prompt(
        self,
        rejected: Sequence[ItemReview],
        kept_titles: Sequence[str],
        ctx: CriticContext,
    ) -> str:
        items = [
            {
                "id": review.suggestion.id,
                "titulo": review.original_title,
                "tier": review.suggestion.tier.value,
                "categoria": review.suggestion.category.value,
                "motivos": review.reasons,
            }
            for review in rejected
        ]
        blocked = [ctx.saturation[t].label for t in sorted(ctx.blocked)]
        schema = dict(SUGGESTION_SCHEMA, replaces="id da sugestão rejeitada")
        return (
            f"{self.config.language_preamble()}\n\n"
            f"{ctx.module.critic_block()}"
            f"SUGESTÕES REJEITADAS:\n{json.dumps(items, ensure_ascii=False, indent=2)}\n\n"
            f"MÉTRICAS DA LOJA:\n{json.dumps(ctx.ground_truth, ensure_ascii=False)}\n"
            f"TEMAS PROIBIDOS: {', '.join(blocked) or 'nenhum'}\n"
            f"ABORDAGENS PERMITIDAS:\n{json.dumps(ctx.similarity.allowed_approaches, ensure_ascii=False)}\n"
            f"TÍTULOS JÁ APROVADOS (não repetir): {json.dumps(list(kept_titles), ensure_ascii=False)}\n\n"
            f"{platform_catalog.catalogue_prompt_block()}\n\n"
            "Crie uma substituta para cada rejeitada, no mesmo nível, de um tema diferente.\n"
            f"Formato de cada item:\n{json.dumps(schema, ensure_ascii=False)}\n"
            'Retorne JSON: {"replacements": [...]}\n'
        )

    def _replace(
        self,
        rejected: List[ItemReview],
        survivors: List[ItemReview],
        ctx: CriticContext,
    ) -> List[Tuple[ItemReview, ItemReview]]:
        """One backend round. Returns (rejected, accepted replacement) pairs."""
        if not rejected:
            return []
        payload = request_stage_json(
            self.generator,
            self.stage,
            SYSTEM_PROMPT,
            self.build_replacement_prompt(rejected, [r.suggestion.title for r in survivors], ctx),
            lint_critic_payload,
            provider=self.provider,
            temperature=ctx.module.temperature_override,
        )
        pending = {review.suggestion.id: review for review in rejected}
        taken_titles = [r.suggestion.title for r in survivors]
        pairs: List[Tuple[ItemReview, ItemReview]] = []

        for raw in payload["replacements"]:
            if not pending:
                break
            target_id = str(raw.get("replaces")) if isinstance(raw, dict) else ""
            original = pending.get(target_id) or next(iter(pending.values()))

            candidate, reason = parse_suggestion(raw)
            if candidate is not None:
                candidate, reason = ground_suggestion(candidate, ctx.ground_truth, ctx.tolerance)
            if candidate is None:
                logger.info("Replacement for '%s' discarded: %s", original.original_title, reason)
                continue
            candidate = candidate.model_copy(
                update={"tier": original.suggestion.tier, "id": f"{original.suggestion.id}-r"}
            )
            if dedupe_titles(taken_titles + [candidate.title], self.config.INTRA_BATCH_THRESHOLD)[-1] != len(taken_titles):
                logger.info("Replacement '%s' repeats an approved title", candidate.title)
                continue
            review = verify(candidate, ctx)
            if review.rejected:
                logger.info("Replacement '%s' failed verification: %s", candidate.title, "; ".join(review.reasons))
                continue
            pairs.append((original, review))
            taken_titles.append(candidate.title)
            del pending[original.suggestion.id]
        return pairs

    def _select_tier(
        self,
        pool: List[ItemReview],
        target: int,
        category_counts: Dict[str, int],
        respect_cap: bool,
    ) -> List[ItemReview]:
        chosen: List[ItemReview] = []
        for review in list(pool):
            if len(chosen) >= target:
                break
            category = review.suggestion.category.value
            if respect_cap and category_counts.get(category, 0) >= self.config.CRITIC_MAX_PER_CATEGORY:
                continue
            chosen.append(review)
            pool.remove(review)
            category_counts[category] = category_counts.get(category, 0) + 1
        return chosen

    def select(self, reviews: List[ItemReview]) -> Tuple[Dict[ImpactTier, List[ItemReview]], List[ItemReview]]:
        """Best items per tier, then rebalance short tiers. Returns (selected, leftovers)."""
        targets = self.tier_targets()
        ranked = sorted(reviews, key=lambda r: r.quality, reverse=True)
        pools = {tier: [r for r in ranked if r.suggestion.tier == tier] for tier in TIER_ORDER}
        selected: Dict[ImpactTier, List[ItemReview]] = {tier: [] for tier in TIER_ORDER}
        counts: Dict[str, int] = {}

        for respect_cap in (True, False):
            for tier in TIER_ORDER:
                need = targets[tier] - len(selected[tier])
                if need > 0:
                    selected[tier] += self._select_tier(pools[tier], need, counts, respect_cap)

            # MEDIUM and LOW fill each other; HIGH only takes strategic categories.
            for tier, donors in (
                (ImpactTier.HIGH, (ImpactTier.MEDIUM, ImpactTier.LOW)),
                (ImpactTier.MEDIUM, (ImpactTier.LOW,)),
                (ImpactTier.LOW, (ImpactTier.MEDIUM,)),
            ):
                for donor in donors:
                    need = targets[tier] - len(selected[tier])
                    if need <= 0:
                        break
                    eligible = [r for r in pools[donor] if tier != ImpactTier.HIGH or _fits_high(r)]
                    moved = self._select_tier(eligible, need, counts, respect_cap)
                    for review in moved:
                        pools[donor].remove(review)
                        selected[tier].append(_retier(review, tier))

        leftovers = [r for tier in TIER_ORDER for r in pools[tier]]
        return selected, leftovers

    def enforce_external(
        self,
        selected: Dict[ImpactTier, List[ItemReview]],
        leftovers: List[ItemReview],
        ctx: CriticContext,
    ) -> ExternalJustification:
        if not ctx.has_external:
            return ExternalJustification(required=0, satisfied=0, waived=True)

        upper = selected[ImpactTier.HIGH] + selected[ImpactTier.MEDIUM]
        required = min(self.config.CRITIC_MIN_EXTERNAL, len(upper))

        def _satisfied() -> int:
            return sum(
                1 for r in selected[ImpactTier.HIGH] + selected[ImpactTier.MEDIUM] if r.suggestion.competitor_reference
            )

        for tier in (ImpactTier.HIGH, ImpactTier.MEDIUM):
            while _satisfied() < required:
                donors = [r for r in leftovers if r.suggestion.tier == tier and r.suggestion.competitor_reference]
                weak = [r for r in selected[tier] if not r.suggestion.competitor_reference]
                if not donors or not weak:
                    break
                incoming = max(donors, key=lambda r: r.quality)
                outgoing = min(weak, key=lambda r: r.quality)
                logger.info(
                    "Swapping '%s' for '%s' to meet the external justification minimum",
                    outgoing.suggestion.title,
                    incoming.suggestion.title,
                )
                selected[tier][selected[tier].index(outgoing)] = incoming
                leftovers.remove(incoming)
                leftovers.append(outgoing)

        return ExternalJustification(required=required, satisfied=_satisfied(), waived=False)

    def enforce_goal_coverage(
        self,
        request: StoreAnalysisRequest,
        analyst: AnalystReport,
        selected: Dict[ImpactTier, List[ItemReview]],
        leftovers: List[ItemReview],
        external: ExternalJustification,
    ) -> Optional[GoalCoverage]:
        goal = request.goals.monthly_revenue
        current = analyst.metrics.monthly_revenue
        if goal is None or current is None:
            return None
        gap = round(goal - current, 2)
        target = self.config.GOAL_COVERAGE_MIN

        def _covered() -> float:
            return round(sum(_currency_value(r.suggestion) for tier in TIER_ORDER for r in selected[tier]), 2)

        def _external_count() -> int:
            return sum(
                1 for r in selected[ImpactTier.HIGH] + selected[ImpactTier.MEDIUM] if r.suggestion.competitor_reference
            )

        if gap > 0:
            improved = True
            while _covered() < target * gap and improved:
                improved = False
                best: Optional[Tuple[float, ImpactTier, ItemReview, ItemReview]] = None
                for tier in TIER_ORDER:
                    donors = [r for r in leftovers if r.suggestion.tier == tier]
                    for outgoing in selected[tier]:
                        locked = (
                            not external.waived
                            and outgoing.suggestion.competitor_reference
                            and _external_count() <= external.required
                        )
                        if locked:
                            continue
                        for incoming in donors:
                            if tier == ImpactTier.HIGH and not _fits_high(incoming):
                                continue
                            gain = _currency_value(incoming.suggestion) - _currency_value(outgoing.suggestion)
                            if gain > 0 and (best is None or gain > best[0]):
                                best = (gain, tier, outgoing, incoming)
                if best is not None:
                    _, tier, outgoing, incoming = best
                    logger.info(
                        "Goal coverage swap in %s: '%s' -> '%s'",
                        tier.value,
                        outgoing.suggestion.title,
                        incoming.suggestion.title,
                    )
                    selected[tier][selected[tier].index(outgoing)] = incoming
                    leftovers.remove(incoming)
                    leftovers.append(outgoing)
                    improved = True

        return measure_goal_coverage(
            gap, target, [r.suggestion for tier in TIER_ORDER for r in selected[tier]]
        )

    def keep_smaller_than_slate(self, selected: Dict[ImpactTier, List[ItemReview]], slate_size: int) -> None:
        """Drop the weakest pick when the selection would be as large as the slate."""
        chosen = [r for tier in TIER_ORDER for r in sorted(selected[tier], key=lambda r: r.quality, reverse=True)]
        if slate_size <= 1 or len(chosen) < slate_size:
            return
        dropped = min(chosen, key=lambda r: r.quality)
        selected[dropped.suggestion.tier].remove(dropped)
        logger.info("Dropping '%s' so the curated set stays smaller than the slate", dropped.suggestion.title)

    def run(
        self,
        request: StoreAnalysisRequest,
        slate: StrategistSlate,
        analyst: AnalystReport,
        similarity: SimilarityReport,
        saturation: Sequence[ThemeSaturationEntry],
    ) -> CriticReport:
        ctx = CriticContext(
            ground_truth=analyst.metrics.ground_truth(),
            saturation=saturation_map(saturation),
            blocked=set(blocked_themes(saturation)),
            similarity=similarity,
            top_problems={
                p.problem_category for p in analyst.prioritized_problems[: self.config.CRITIC_ALIGNMENT_TOP_PROBLEMS]
            },
            has_external=bool(request.competitors),
            tolerance=self.config.CRITIC_NUMERIC_TOLERANCE,
            threshold=self.config.SIMILARITY_THRESHOLD,
            module=resolve_module(request.analysis_type),
        )
        weights = self.config.QUALITY_WEIGHTS
        cap = self.config.CRITIC_HIGH_WITHOUT_EXTERNAL_CAP
        warnings: List[str] = []
        rejected_log: List[Dict[str, Any]] = []

        reviews = [verify(suggestion, ctx) for suggestion in slate.suggestions]
        survivors = [r for r in reviews if not r.rejected]
        rejected = [r for r in reviews if r.rejected]
        for review in rejected:
            logger.info("Rejected '%s': %s", review.original_title, "; ".join(review.reasons))

        replaced_ids: Dict[str, ItemReview] = {}
        for original, replacement in self._replace(rejected, survivors, ctx):
            replaced_ids[original.suggestion.id] = replacement
            replacement.replaced_title = original.original_title
            survivors.append(replacement)

        for review in rejected:
            replacement = replaced_ids.get(review.suggestion.id)
            rejected_log.append(
                {
                    "id": review.suggestion.id,
                    "title": review.original_title,
                    "reasons": review.reasons,
                    "score": 0.0,
                    "replaced_by": replacement.suggestion.title if replacement else None,
                }
            )

        for review in survivors:
            review.quality = quality_score(review, ctx, weights, cap)
        rescored = False
        if survivors and mean(r.quality for r in survivors) > self.config.CRITIC_SUSPICIOUS_AVERAGE:
            logger.warning(
                "Average quality %.2f above %.1f: re-scoring with the strict rubric",
                mean(r.quality for r in survivors),
                self.config.CRITIC_SUSPICIOUS_AVERAGE,
            )
            for review in survivors:
                review.quality = quality_score(review, ctx, weights, cap, strict=True)
            rescored = True

        eligible: List[ItemReview] = []
        for review in survivors:
            if review.quality < self.config.CRITIC_MIN_SCORE:
                rejected_log.append(
                    {
                        "id": review.suggestion.id,
                        "title": review.suggestion.title,
                        "reasons": [f"nota {review.quality} abaixo do mínimo {self.config.CRITIC_MIN_SCORE}"],
                        "score": review.quality,
                        "replaced_by": None,
                    }
                )
            else:
                eligible.append(review)

        selected, leftovers = self.select(eligible)
        external = self.enforce_external(selected, leftovers, ctx)
        if not external.waived and external.satisfied < external.required:
            warnings.append(
                f"Apenas {external.satisfied} de {external.required} sugestões com referência externa."
            )
        total_input = len(slate.suggestions)
        self.keep_smaller_than_slate(selected, total_input)
        coverage = self.enforce_goal_coverage(request, analyst, selected, leftovers, external)

        final_reviews = [r for tier in TIER_ORDER for r in sorted(selected[tier], key=lambda r: r.quality, reverse=True)]
        if coverage is not None:
            coverage = measure_goal_coverage(coverage.gap, coverage.target_ratio, [r.suggestion for r in final_reviews])
            if not coverage.met:
                warnings.append(
                    f"Sugestões cobrem {coverage.ratio:.0%} do gap de R$ {coverage.gap:,.2f} "
                    f"(meta {coverage.target_ratio:.0%})."
                )

        gated, demoted = gate_high_tier([r.suggestion for r in final_reviews])
        curated: List[CuratedSuggestion] = []
        for priority, (review, suggestion) in enumerate(zip(final_reviews, gated), start=1):
            if review.replaced_title:
                state = FinalState.REPLACED
            elif review.improved or suggestion.id in demoted:
                state = FinalState.IMPROVED
            else:
                state = FinalState.APPROVED
            curated.append(
                CuratedSuggestion(
                    suggestion=suggestion,
                    final_state=state,
                    quality_score=review.quality,
                    verification=review.records,
                    replaced_title=review.replaced_title,
                    priority=priority,
                )
            )

        average = round(mean(c.quality_score for c in curated), 2) if curated else 0.0
        if average > self.config.CRITIC_TARGET_AVERAGE + 1.0:
            warnings.append(f"Média de qualidade {average} acima da meta {self.config.CRITIC_TARGET_AVERAGE}.")
        logger.info(
            "Critic curated %d of %d (avg %.2f, %d rejected, %d replaced)",
            len(curated),
            total_input,
            average,
            len(rejected),
            len(replaced_ids),
        )
        return CriticReport(
            suggestions=curated,
            average_score=average,
            rescored=rescored,
            goal_coverage=coverage,
            external_justification=external,
            rejected=rejected_log,
            warnings=warnings,
        )
