"""
Strategist

Generates the tiered suggestion slate. The backend drafts candidates; every
candidate is then parsed into a typed Suggestion, checked for grounding in
real store numbers, annotated against the platform catalogue, screened
against prohibited zones and deduplicated before HIGH gating and trimming.
Candidates that cannot be grounded are omitted, never patched with invented
figures.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

import platform_catalog
from analysis_contracts import find_placeholders, lint_strategist_payload
from analysis_modules import GENERAL, ModuleConfig, resolve_module
from config import GrowthConfig
from dedup import dedupe_titles
from gates import TIER_ORDER, gate_high_tier, tier_counts, trim_to_tiers
from metrics import METRIC_LABELS
from models import (
    STRATEGIC_CATEGORIES,
    AnalystReport,
    CollectorDigest,
    ConfidenceLevel,
    ImplementationType,
    ProfileResult,
    SimilarityReport,
    StoreAnalysisRequest,
    StrategistSlate,
    Suggestion,
    SuggestionCategory,
    ThemeSaturationEntry,
)
from seasonality import monthly_context
from servers.numeric_guard import reconcile_expected_result, recompute, within_tolerance
from similarity_engine import matching_zones
from stage_runner import request_stage_json
from text_generation import TextGenerator
from theme_registry import normalize_text, saturation_prompt_block

logger = logging.getLogger(__name__)

# Share of past suggestions per category that store owners carried to completion.
HISTORICAL_SUCCESS_RATES: Dict[str, int] = {
    "inventory": 65,
    "pricing": 72,
    "product": 58,
    "customer": 80,
    "conversion": 60,
    "marketing": 48,
    "coupon": 45,
    "operational": 70,
}
STRATEGIC_SUCCESS_RATE = 55

SYSTEM_PROMPT = (
    "Você é o Estrategista de crescimento de lojas Nuvemshop.\n"
    "Gere sugestões ORIGINAIS, específicas para esta loja e viáveis na plataforma.\n"
    "Cada problema deve citar um número real dos dados. Nunca invente números.\n"
    "Sugestões de impacto ALTO são decisões de negócio (categorias strategy, investment, market, "
    "growth, financial, positioning), nunca tarefas operacionais.\n"
    "O impacto segue a fórmula: base_value × improvement_rate = projected_value, com base_value vindo dos dados.\n"
    "Um expected_result em reais (currency) é exatamente o projected_value.\n"
)

SUGGESTION_SCHEMA = {
    "tier": "high|medium|low",
    "category": "|".join(c.value for c in SuggestionCategory),
    "title": "...",
    "problem": "problema citando número real da loja",
    "description": "...",
    "action_plan": [
        {"step": 1, "what": "...", "how": "...", "expected_result": "...", "time": "...",
         "resources": "...", "indicator": "..."}
    ],
    "expected_result": {"kind": "currency|percentage", "value": 0, "description": "..."},
    "impact_calculation": {"base_metric": "id da métrica", "base_value": 0, "improvement_rate": 0.1,
                           "projected_value": 0},
    "data_source": "dado_direto|inferencia|boa_pratica_geral",
    "implementation": {"type": "nativo|app|terceiro", "complexity": "baixa|media|alta", "cost": "..."},
    "competitor_reference": None,
    "cited_metrics": {"id_da_metrica": 0},
    "target_problem": "categoria do problema priorizado",
}


def success_rate(category: SuggestionCategory) -> int:
    if category in STRATEGIC_CATEGORIES:
        return STRATEGIC_SUCCESS_RATE
    return HISTORICAL_SUCCESS_RATES.get(category.value, STRATEGIC_SUCCESS_RATE)


def confidence_for(category: SuggestionCategory) -> ConfidenceLevel:
    rate = success_rate(category)
    if rate >= 70:
        return ConfidenceLevel.HIGH
    if rate >= 55:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def parse_suggestion(raw: Any) -> Tuple[Optional[Suggestion], Optional[str]]:
    """Validate one drafted item. Returns (suggestion, None) or (None, reason)."""
    if not isinstance(raw, dict):
        return None, "item não é um objeto"
    if find_placeholders(raw):
        return None, "texto de exemplo não substituído"
    data = dict(raw)
    data.pop("id", None)
    try:
        return Suggestion.model_validate(data), None
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        return None, f"campos inválidos: {', '.join(fields)}"


def _tokens(text: str) -> set:
    return {token for token in re.findall(r"[a-z0-9]+", normalize_text(text).replace("_", " ")) if len(token) >= 4}


def resolve_base_metric(name: str, value: float, ground_truth: Dict[str, float], tolerance: float) -> Optional[str]:
    """
    Metric id behind an impact base.

    A known id resolves to itself. An unknown name resolves only to a metric
    whose value matches ``value`` and whose id or Portuguese label shares a
    word with ``name`` ("faturamento" -> monthly_revenue). A bare numeric
    coincidence is not enough.
    """
    if name in ground_truth:
        return name
    wanted = _tokens(name)
    if not wanted:
        return None
    for key, truth in ground_truth.items():
        if not within_tolerance(value, truth, tolerance):
            continue
        if wanted & (_tokens(key) | _tokens(METRIC_LABELS.get(key, ""))):
            return key
    return None


def ground_suggestion(
    suggestion: Suggestion,
    ground_truth: Dict[str, float],
    tolerance: float,
) -> Tuple[Optional[Suggestion], Optional[str]]:
    """Reject items whose figures cannot be traced to store data; fill a missing projection."""
    if not any(ch.isdigit() for ch in suggestion.problem):
        return None, "problema sem número da loja"
    calc = suggestion.impact_calculation
    if calc.base_value is None or calc.improvement_rate is None:
        return None, "cálculo de impacto sem base ou taxa"
    metric = resolve_base_metric(calc.base_metric, calc.base_value, ground_truth, tolerance)
    if metric is None:
        return None, f"base '{calc.base_metric}' não rastreável aos dados"
    calc = calc.model_copy(update={"base_metric": metric})
    if calc.projected_value is None or not calc.is_consistent(tolerance):
        calc = recompute(calc)
    suggestion, warning = reconcile_expected_result(
        suggestion.model_copy(update={"impact_calculation": calc}), tolerance
    )
    if warning is not None:
        logger.info("Strategist draft '%s': %s", suggestion.title, warning.message)
    return suggestion, None


def annotate_feasibility(suggestion: Suggestion) -> Tuple[Optional[Suggestion], Optional[str]]:
    """Attach the catalogue verdict. Infeasible actions are excluded."""
    verdict = platform_catalog.assess(suggestion.full_text())
    if not verdict.feasible:
        return None, f"inviável na plataforma: {', '.join(verdict.features)}"
    implementation = suggestion.implementation
    if verdict.status == platform_catalog.PAID_APP:
        implementation = implementation.model_copy(
            update={
                "type": ImplementationType.APP,
                "cost": verdict.cost_label(),
                "monthly_cost_max": verdict.monthly_cost_max,
                "app_name": implementation.app_name or (verdict.app_examples[0] if verdict.app_examples else None),
            }
        )
    elif verdict.status == platform_catalog.NATIVE:
        implementation = implementation.model_copy(
            update={"type": ImplementationType.NATIVE, "cost": verdict.cost_label(), "monthly_cost_max": 0.0}
        )
    return suggestion.model_copy(update={"implementation": implementation}), None


def goal_gap(request: StoreAnalysisRequest, analyst: AnalystReport) -> Optional[float]:
    goal = request.goals.monthly_revenue
    current = analyst.metrics.monthly_revenue
    if goal is None or current is None:
        return None
    return round(goal - current, 2)


class StrategistAgent:
    """Suggestion slate stage."""

    stage = "strategist"

    def __init__(self, generator: TextGenerator, config=GrowthConfig, provider: Optional[str] = None):
        self.generator = generator
        self.config = config
        self.provider = provider

    def _context(
        self,
        request: StoreAnalysisRequest,
        profile: ProfileResult,
        collector: CollectorDigest,
        analyst: AnalystReport,
        similarity: SimilarityReport,
    ) -> Dict[str, Any]:
        month = request.reference_date().month
        return {
            "perfil": profile.profile.model_dump(mode="json"),
            "eventos_proximos": profile.context.upcoming_seasonal_events,
            "contexto_mensal": monthly_context(month),
            "historico": collector.model_dump(mode="json"),
            "metricas": analyst.metrics.ground_truth(),
            "score_saude": analyst.metrics.health.model_dump(mode="json"),
            "anomalias": [a.model_dump(mode="json") for a in analyst.anomalies],
            "problemas_priorizados": [p.model_dump(mode="json") for p in analyst.prioritized_problems],
            "zonas_proibidas": [
                {"titulo": z.original_title, "variacoes": z.prohibited_variations} for z in similarity.prohibited_zones
            ],
            "abordagens_permitidas": similarity.allowed_approaches,
            "orientacao": similarity.strategist_guidance,
            "concorrentes": request.competitors,
            "base_conhecimento": list(request.strategy_snippets),
            "meta_mensal": request.goals.monthly_revenue,
            "gap_meta": goal_gap(request, analyst),
        }

    def build_prompt(
        self,
        context: Dict[str, Any],
        saturation: Sequence[ThemeSaturationEntry],
        sizes: Dict[str, int],
        module: ModuleConfig = GENERAL,
    ) -> str:
        return (
            f"{self.config.language_preamble()}\n\n"
            f"{module.strategist_block()}"
            f"CONTEXTO:\n{json.dumps(context, ensure_ascii=False, indent=2, default=str)}\n\n"
            f"SATURAÇÃO DE TEMAS:\n{saturation_prompt_block(saturation) or '- nenhum tema saturado'}\n\n"
            f"{platform_catalog.catalogue_prompt_block()}\n\n"
            f"Gere exatamente {sizes.get('high', 0)} sugestões high, {sizes.get('medium', 0)} medium "
            f"e {sizes.get('low', 0)} low.\n"
            f"Formato de cada item:\n{json.dumps(SUGGESTION_SCHEMA, ensure_ascii=False)}\n"
            'Retorne JSON: {"suggestions": [...]}\n'
        )

    def build_refill_prompt(
        self,
        context: Dict[str, Any],
        missing: Dict[str, int],
        taken: Sequence[str],
        module: ModuleConfig = GENERAL,
    ) -> str:
        return (
            f"{self.config.language_preamble()}\n\n"
            f"{module.strategist_block()}"
            f"CONTEXTO:\n{json.dumps(context, ensure_ascii=False, indent=2, default=str)}\n\n"
            f"{platform_catalog.catalogue_prompt_block()}\n\n"
            "Faltam sugestões válidas. Use SOMENTE as abordagens permitidas do contexto.\n"
            f"Quantidade por nível: {json.dumps(missing)}\n"
            f"Títulos já escolhidos (não repetir): {json.dumps(list(taken), ensure_ascii=False)}\n"
            f"Formato de cada item:\n{json.dumps(SUGGESTION_SCHEMA, ensure_ascii=False)}\n"
            'Retorne JSON: {"suggestions": [...]}\n'
        )

    def screen(
        self,
        drafts: Sequence[Any],
        ground_truth: Dict[str, float],
        similarity: SimilarityReport,
        omitted: List[Dict[str, Any]],
    ) -> List[Suggestion]:
        """Parse, ground, annotate and check prohibited zones for every draft."""
        kept: List[Suggestion] = []
        for raw in drafts:
            title = raw.get("title") if isinstance(raw, dict) else None
            suggestion, reason = parse_suggestion(raw)
            if suggestion is not None:
                suggestion, reason = ground_suggestion(suggestion, ground_truth, self.config.CRITIC_NUMERIC_TOLERANCE)
            if suggestion is not None:
                suggestion, reason = annotate_feasibility(suggestion)
            if suggestion is not None:
                hits = matching_zones(
                    suggestion.title,
                    suggestion.description,
                    suggestion.category.value,
                    similarity.prohibited_zones,
                    self.config.SIMILARITY_THRESHOLD,
                )
                if hits:
                    suggestion, reason = None, f"duplica sugestões anteriores: {', '.join(hits)}"
            if suggestion is None:
                logger.info("Omitting candidate '%s': %s", title, reason)
                omitted.append({"title": title, "reason": reason})
                continue
            kept.append(suggestion.model_copy(update={"confidence": confidence_for(suggestion.category)}))
        return kept

    def _dedupe(self, suggestions: List[Suggestion], omitted: List[Dict[str, Any]]) -> List[Suggestion]:
        keep = set(dedupe_titles([s.title for s in suggestions], self.config.INTRA_BATCH_THRESHOLD))
        for idx, suggestion in enumerate(suggestions):
            if idx not in keep:
                omitted.append({"title": suggestion.title, "reason": "duplicada no mesmo lote"})
        return [s for idx, s in enumerate(suggestions) if idx in keep]

    def _assemble(self, suggestions: List[Suggestion], omitted: List[Dict[str, Any]]) -> List[Suggestion]:
        deduped = self._dedupe(suggestions, omitted)
        gated, _ = gate_high_tier(deduped)
        return trim_to_tiers(gated, self.config.STRATEGIST_TIER_SIZES)

    def _missing(self, slate: Sequence[Suggestion]) -> Dict[str, int]:
        counts = tier_counts(slate)
        sizes = self.config.STRATEGIST_TIER_SIZES
        return {
            tier.value: sizes.get(tier.value, 0) - counts[tier]
            for tier in TIER_ORDER
            if sizes.get(tier.value, 0) > counts[tier]
        }

    def run(
        self,
        request: StoreAnalysisRequest,
        profile: ProfileResult,
        collector: CollectorDigest,
        analyst: AnalystReport,
        similarity: SimilarityReport,
        saturation: Sequence[ThemeSaturationEntry],
    ) -> StrategistSlate:
        ground_truth = analyst.metrics.ground_truth()
        context = self._context(request, profile, collector, analyst, similarity)
        module = resolve_module(request.analysis_type)
        omitted: List[Dict[str, Any]] = []

        payload = request_stage_json(
            self.generator,
            self.stage,
            SYSTEM_PROMPT,
            self.build_prompt(context, saturation, self.config.STRATEGIST_TIER_SIZES, module),
            lint_strategist_payload,
            provider=self.provider,
            temperature=module.temperature_override,
        )
        candidates = self.screen(payload["suggestions"], ground_truth, similarity, omitted)
        slate = self._assemble(candidates, omitted)

        for round_no in range(1, self.config.STRATEGIST_REFILL_ROUNDS + 1):
            missing = self._missing(slate)
            if not missing:
                break
            logger.info("Strategist refill round %d for %s", round_no, missing)
            refill = request_stage_json(
                self.generator,
                self.stage,
                SYSTEM_PROMPT,
                self.build_refill_prompt(context, missing, [s.title for s in slate], module),
                lint_strategist_payload,
                provider=self.provider,
                temperature=module.temperature_override,
            )
            extra = self.screen(refill["suggestions"], ground_truth, similarity, omitted)
            slate = self._assemble(slate + extra, omitted)

        missing = self._missing(slate)
        if missing:
            logger.warning("Strategist slate short after refill: %s", missing)

        ordered = sorted(slate, key=lambda s: TIER_ORDER.index(s.tier))
        numbered = [s.model_copy(update={"id": f"sug-{idx:02d}"}) for idx, s in enumerate(ordered, start=1)]
        logger.info(
            "Strategist slate: %s (%d omitted)",
            {tier.value: count for tier, count in tier_counts(numbered).items()},
            len(omitted),
        )
        return StrategistSlate(suggestions=numbered, omitted=omitted)
