"""
Profile Synthesizer

First pipeline stage. Builds a descriptive store profile from raw statistics.
Size and maturity tiers come from fixed bands; the backend only describes what
the numbers cannot (audience, differentiators, seasonality) and must mark
anything it cannot ground as "nao_determinado".
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from analysis_contracts import lint_profile_payload
from config import GrowthConfig
from models import (
    UNDETERMINED,
    AnalysisContext,
    MaturidadeDigital,
    NicheBenchmarks,
    Porte,
    ProfileResult,
    StoreAnalysisRequest,
    StoreProfile,
)
from seasonality import upcoming_events
from stage_runner import request_stage_json
from text_generation import TextGenerator

logger = logging.getLogger(__name__)

_DIGIT = re.compile(r"\d")
_UNKNOWN_MARKERS = {"", "nao_determinado", "não determinado", "nao determinado", "desconhecido", "n/a", "null", "none"}

SYSTEM_PROMPT = (
    "Você é um analista de e-commerce que sintetiza o perfil de lojas brasileiras.\n"
    "REGRAS ANTI-ALUCINAÇÃO:\n"
    "- Cada campo deve vir diretamente dos dados fornecidos.\n"
    "- Se um dado não puder ser derivado, escreva exatamente \"nao_determinado\".\n"
    "- Diferenciais precisam de um qualificador mensurável (quantidade, preço ou percentual). "
    "Adjetivos subjetivos como \"qualidade\" ou \"excelente\" não são aceitos.\n"
)


def classify_size_tier(monthly_revenue: Optional[float], bands=None) -> Porte:
    if monthly_revenue is None:
        return Porte.UNDETERMINED
    for tier, upper in bands or GrowthConfig.SIZE_TIER_BANDS:
        if monthly_revenue < upper:
            return Porte(tier)
    return Porte.GRANDE


def classify_maturity(
    monthly_visits: Optional[int],
    conversion_rate: Optional[float] = None,
    tenure_months: Optional[int] = None,
    bands=None,
) -> MaturidadeDigital:
    """
    Visit bands set the base tier. Strong secondary signals may move an
    intermediate store up or an advanced one down, never more than one step,
    and a store under the first visit band is never promoted.
    """
    if monthly_visits is None:
        return MaturidadeDigital.UNDETERMINED

    base = MaturidadeDigital.AVANCADO
    for tier, upper in bands or GrowthConfig.MATURITY_VISIT_BANDS:
        if monthly_visits < upper:
            base = MaturidadeDigital(tier)
            break

    if base == MaturidadeDigital.INTERMEDIARIO:
        signals = 0
        if conversion_rate is not None and conversion_rate >= 2.0:
            signals += 1
        if tenure_months is not None and tenure_months >= 36:
            signals += 1
        if signals >= 2:
            return MaturidadeDigital.AVANCADO
    if base == MaturidadeDigital.AVANCADO and conversion_rate is not None and conversion_rate < 0.3:
        return MaturidadeDigital.INTERMEDIARIO
    return base


def conversion_rate(request: StoreAnalysisRequest) -> Optional[float]:
    visits = request.goals.monthly_visits
    orders = request.orders.total_orders
    if not visits or orders is None:
        return None
    monthly_orders = orders * 30.0 / request.period_days
    return round(monthly_orders / visits * 100.0, 2)


def measurable_differentiators(items: Any) -> List[str]:
    kept: List[str] = []
    for item in items or []:
        text = str(item).strip()
        if text and _DIGIT.search(text):
            kept.append(text)
        elif text:
            logger.info("Dropping non-measurable differentiator: %s", text)
    return kept


def _clean(value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    return UNDETERMINED if text.lower() in _UNKNOWN_MARKERS else text


def _store_facts(request: StoreAnalysisRequest, benchmarks: NicheBenchmarks) -> Dict[str, Any]:
    return {
        "loja": request.store.model_dump(),
        "periodo_dias": request.period_days,
        "pedidos": request.orders.model_dump(exclude={"daily_revenue"}),
        "produtos": {
            "ativos": request.products.active_products,
            "sem_estoque": request.products.out_of_stock,
            "mais_vendidos": [p.model_dump() for p in request.products.top_products[:10]],
        },
        "cupons": request.coupons.model_dump(),
        "metas": request.goals.model_dump(),
        "benchmarks_nicho": benchmarks.model_dump(),
    }


class ProfileSynthesizer:
    """Store profile stage."""

    stage = "profile"

    def __init__(self, generator: TextGenerator, config=GrowthConfig, provider: Optional[str] = None):
        self.generator = generator
        self.config = config
        self.provider = provider

    def build_prompt(self, request: StoreAnalysisRequest, benchmarks: NicheBenchmarks) -> str:
        facts = json.dumps(_store_facts(request, benchmarks), ensure_ascii=False, indent=2, default=str)
        return (
            f"{GrowthConfig.language_preamble()}\n\n"
            "Sintetize o perfil da loja abaixo.\n\n"
            f"DADOS DA LOJA:\n{facts}\n\n"
            "Retorne JSON com exatamente esta estrutura:\n"
            "{\n"
            '  "perfil_loja": {\n'
            '    "nicho": "...", "subnicho": "...", "publico_alvo": "...",\n'
            '    "diferenciais": ["diferencial com número, ex.: 120 produtos ativos"],\n'
            '    "sazonalidade": "..."\n'
            "  },\n"
            '  "contexto_analise": {"observacoes_iniciais": ["..."]}\n'
            "}\n"
        )

    def run(self, request: StoreAnalysisRequest, benchmarks: NicheBenchmarks) -> ProfileResult:
        payload = request_stage_json(
            self.generator,
            self.stage,
            SYSTEM_PROMPT,
            self.build_prompt(request, benchmarks),
            lint_profile_payload,
            provider=self.provider,
        )
        raw_profile = payload["perfil_loja"]
        raw_context = payload["contexto_analise"]

        size_tier = classify_size_tier(request.monthly_revenue(), self.config.SIZE_TIER_BANDS)
        maturity = classify_maturity(
            request.goals.monthly_visits,
            conversion_rate(request),
            request.store.tenure_months,
            self.config.MATURITY_VISIT_BANDS,
        )
        for field, decided in (("porte", size_tier), ("maturidade_digital", maturity)):
            proposed = raw_profile.get(field)
            if proposed and proposed != decided.value:
                logger.info("Overriding backend %s=%s with band value %s", field, proposed, decided.value)

        profile = StoreProfile(
            nicho=request.store.niche or _clean(raw_profile.get("nicho")),
            subnicho=request.store.subcategory or _clean(raw_profile.get("subnicho")),
            porte=size_tier,
            maturidade_digital=maturity,
            publico_alvo=_clean(raw_profile.get("publico_alvo")),
            diferenciais=measurable_differentiators(raw_profile.get("diferenciais")),
            sazonalidade=_clean(raw_profile.get("sazonalidade")),
        )
        today = request.reference_date()
        context = AnalysisContext(
            data=today.isoformat(),
            upcoming_seasonal_events=upcoming_events(today, self.config.UPCOMING_EVENTS_HORIZON_DAYS),
            initial_observations=[
                str(item).strip() for item in raw_context.get("observacoes_iniciais") or [] if str(item).strip()
            ],
        )
        logger.info(
            "Profile synthesized: porte=%s maturidade=%s diferenciais=%d",
            profile.porte.value,
            profile.maturidade_digital.value,
            len(profile.diferenciais),
        )
        return ProfileResult(profile=profile, context=context)
