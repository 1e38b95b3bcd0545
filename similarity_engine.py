"""
Similarity / Dedup Engine

Turns the full suggestion history into prohibited zones and a per-category
list of unexplored approaches. Every history item gets a zone: classification
and keywords are computed locally, the backend contributes paraphrases and
extra angles, and local fallbacks fill whatever it leaves short.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import platform_catalog
from analysis_contracts import lint_similarity_payload
from config import GrowthConfig
from dedup import classify_pair, extract_keywords, is_duplicate, normalize_title, title_similarity
from models import (
    CoverageSummary,
    HistoricalSuggestion,
    ProblemCategory,
    ProhibitedZone,
    SimilarityReport,
    SolutionType,
    ThemeSaturationEntry,
)
from stage_runner import request_stage_json
from text_generation import TextGenerator
from theme_registry import blocked_themes, match_themes

logger = logging.getLogger(__name__)

UNEXPLORED_ANGLES: List[Dict[str, Any]] = [
    {"title": "Programa de Indicação (Referral)", "categories": ["marketing", "cupons"]},
    {"title": "Parceria com Salões (B2B)", "categories": ["marketing", "ticket"]},
    {"title": "Micro-influenciadores do nicho", "categories": ["marketing"]},
    {"title": "Live Commerce", "categories": ["conversao"]},
    {"title": "UGC: avaliações com fotos de clientes", "categories": ["conversao", "marketing"]},
    {"title": "Precificação Dinâmica", "categories": ["ticket", "cupons"]},
    {"title": "Modelo Freemium (amostra + produto completo)", "categories": ["ticket", "cupons", "conversao"]},
    {"title": "Bundles Personalizados (cliente monta)", "categories": ["ticket", "produto"]},
    {"title": "Pré-venda de Lançamentos", "categories": ["estoque", "produto"]},
    {"title": "Programa de Troca (embalagem vazia)", "categories": ["retencao", "estoque"]},
    {"title": "Gamificação (pontos e níveis)", "categories": ["retencao"]},
    {"title": "Comunidade no WhatsApp ou Telegram", "categories": ["retencao", "marketing"]},
    {"title": "Conteúdo Educativo Premium", "categories": ["produto", "marketing"]},
    {"title": "Consultoria Virtual", "categories": ["conversao", "operacional"]},
    {"title": "Desafio de Transformação", "categories": ["retencao"]},
    {"title": "Sustentabilidade", "categories": ["produto", "marketing"]},
    {"title": "Causa Social", "categories": ["marketing"]},
    {"title": "Transparência Total", "categories": ["operacional", "estoque"]},
    {"title": "Personalização por histórico de compra", "categories": ["conversao", "retencao"]},
    {"title": "Atendimento Premium VIP", "categories": ["operacional", "ticket"]},
]

PROBLEM_LABELS: Dict[ProblemCategory, str] = {
    ProblemCategory.ESTOQUE: "estoque",
    ProblemCategory.TICKET: "ticket médio",
    ProblemCategory.CONVERSAO: "conversão",
    ProblemCategory.RETENCAO: "retenção de clientes",
    ProblemCategory.CUPONS: "dependência de cupons",
    ProblemCategory.MARKETING: "aquisição de clientes",
    ProblemCategory.OPERACIONAL: "operação",
    ProblemCategory.PRODUTO: "mix de produtos",
}

SOLUTION_LABELS: Dict[SolutionType, str] = {
    SolutionType.REPOSICAO: "Reposição planejada",
    SolutionType.DESCONTO: "Campanha de desconto",
    SolutionType.EMAIL: "Automação de e-mail",
    SolutionType.FIDELIDADE: "Programa de recompensas",
    SolutionType.UPSELL: "Oferta de versão superior",
    SolutionType.CROSSSELL: "Venda cruzada",
    SolutionType.BUNDLE: "Kit de produtos",
    SolutionType.SOCIAL: "Ação em redes sociais",
    SolutionType.CONTEUDO: "Conteúdo educativo",
    SolutionType.UX: "Ajuste na experiência da loja",
}

SYSTEM_PROMPT = (
    "Você é o motor de similaridade de uma análise de e-commerce.\n"
    "Para CADA sugestão anterior, liste paráfrases que o estrategista NÃO pode repetir.\n"
    "Duas sugestões são duplicadas quando têm o mesmo par (categoria do problema, tipo de solução) "
    "ou títulos com 70% ou mais de similaridade.\n"
)


def fallback_variations(title: str, problem: ProblemCategory, solution: SolutionType, keywords: List[str]) -> List[str]:
    variations = [
        f"{SOLUTION_LABELS[solution]} para melhorar {PROBLEM_LABELS[problem]}",
        f"Nova versão de: {title}",
    ]
    if keywords:
        variations.append(f"{SOLUTION_LABELS[solution]} com foco em {keywords[0]}")
    variations.append(f"{title} (reformulado)")
    return variations


def build_zone(item: HistoricalSuggestion, proposed: Iterable[str] = (), minimum: int = 3) -> ProhibitedZone:
    problem, solution = classify_pair(item.title, item.description, item.category)
    keywords = extract_keywords(f"{item.title} {item.description}")
    variations: List[str] = []
    seen = {normalize_title(item.title)}

    def _add(text: str) -> None:
        key = normalize_title(text)
        if key and key not in seen:
            variations.append(str(text).strip())
            seen.add(key)

    for text in proposed:
        _add(text)
    for text in fallback_variations(item.title, problem, solution, keywords):
        if len(variations) >= minimum:
            break
        _add(text)
    return ProhibitedZone(
        id=item.id,
        original_title=item.title,
        problem_category=problem,
        problem_description=item.description,
        solution_type=solution,
        keywords=keywords,
        prohibited_variations=variations,
    )


def matching_zones(
    title: str,
    description: str,
    category: Optional[str],
    zones: Sequence[ProhibitedZone],
    threshold: float,
) -> List[str]:
    """Ids of every zone the candidate duplicates under the two-part rule, variations included."""
    pair = classify_pair(title, description, category)
    hits: List[str] = []
    for zone in zones:
        zone_pair = (zone.problem_category, zone.solution_type)
        if is_duplicate(title, pair, zone.original_title, zone_pair, threshold):
            hits.append(zone.id)
        elif any(title_similarity(title, variation) >= threshold for variation in zone.prohibited_variations):
            hits.append(zone.id)
    return hits


def _approach_is_open(
    text: str,
    zones: Sequence[ProhibitedZone],
    blocked: Sequence[str],
    threshold: float,
    strict: bool,
) -> bool:
    if not platform_catalog.assess(text).feasible:
        return False
    if set(match_themes(text)) & set(blocked):
        return False
    if strict:
        return not matching_zones(text, "", None, zones, threshold)
    return not any(title_similarity(text, zone.original_title) >= threshold for zone in zones)


def allowed_approaches(
    proposed: Dict[str, List[str]],
    zones: Sequence[ProhibitedZone],
    blocked: Sequence[str],
    threshold: float,
    minimum: int = 2,
) -> Dict[str, List[str]]:
    """Backend proposals first, then angles under the category, then any open angle."""
    result: Dict[str, List[str]] = {}
    for category in ProblemCategory:
        chosen: List[str] = []

        def _offer(text: str, strict: bool) -> None:
            text = str(text).strip()
            if not text or any(normalize_title(text) == normalize_title(c) for c in chosen):
                return
            if _approach_is_open(text, zones, blocked, threshold, strict):
                chosen.append(text)

        for text in proposed.get(category.value, []):
            _offer(text, strict=True)
        for angle in UNEXPLORED_ANGLES:
            if category.value in angle["categories"]:
                _offer(angle["title"], strict=True)
        if len(chosen) < minimum:
            for angle in UNEXPLORED_ANGLES:
                if len(chosen) >= minimum:
                    break
                _offer(angle["title"], strict=False)
        result[category.value] = chosen
    return result


def _batches(items: Sequence[HistoricalSuggestion], size: int) -> List[Sequence[HistoricalSuggestion]]:
    size = max(1, size)
    return [items[start:start + size] for start in range(0, len(items), size)]


class SimilarityEngine:
    """Prohibited-zone stage."""

    stage = "similarity"

    def __init__(self, generator: TextGenerator, config=GrowthConfig, provider: Optional[str] = None):
        self.generator = generator
        self.config = config
        self.provider = provider

    def build_prompt(self, batch: Sequence[HistoricalSuggestion], saturation: Sequence[ThemeSaturationEntry]) -> str:
        items = [
            {"id": item.id, "titulo": item.title, "descricao": item.description, "categoria": item.category}
            for item in batch
        ]
        blocked = [entry.label for entry in saturation if entry.theme in blocked_themes(saturation)]
        return (
            f"{self.config.language_preamble()}\n\n"
            f"SUGESTÕES ANTERIORES ({len(items)}):\n{json.dumps(items, ensure_ascii=False, indent=2)}\n\n"
            f"TEMAS SATURADOS: {', '.join(blocked) or 'nenhum'}\n"
            f"CATEGORIAS DE PROBLEMA: {', '.join(c.value for c in ProblemCategory)}\n\n"
            "Processe TODAS as sugestões, sem amostragem. Retorne JSON:\n"
            '{"prohibited_zones": [{"id": "...", "prohibited_variations": ["...", "...", "..."]}], '
            '"allowed_approaches": {"<categoria>": ["abordagem inédita", "..."]}, '
            '"strategist_guidance": "..."}\n'
        )

    def run(
        self,
        history: Sequence[HistoricalSuggestion],
        saturation: Sequence[ThemeSaturationEntry],
    ) -> SimilarityReport:
        history = list(history)
        proposed_variations: Dict[str, List[str]] = {}
        proposed_approaches: Dict[str, List[str]] = {}
        guidance: List[str] = []

        batches = _batches(history, self.config.SIMILARITY_BATCH_SIZE)
        for index, batch in enumerate(batches, start=1):
            logger.info("Similarity batch %d/%d (%d items)", index, len(batches), len(batch))
            payload = request_stage_json(
                self.generator,
                self.stage,
                SYSTEM_PROMPT,
                self.build_prompt(batch, saturation),
                lint_similarity_payload,
                provider=self.provider,
            )
            batch_ids = {item.id for item in batch}
            for zone in payload.get("prohibited_zones") or []:
                zone_id = str(zone.get("id"))
                if zone_id not in batch_ids:
                    logger.warning("Ignoring prohibited zone for unknown suggestion id %s", zone_id)
                    continue
                proposed_variations.setdefault(zone_id, []).extend(
                    str(v) for v in zone.get("prohibited_variations") or [] if str(v).strip()
                )
            for category, approaches in (payload.get("allowed_approaches") or {}).items():
                if isinstance(approaches, list):
                    proposed_approaches.setdefault(str(category).lower(), []).extend(str(a) for a in approaches)
            if str(payload.get("strategist_guidance") or "").strip():
                guidance.append(str(payload["strategist_guidance"]).strip())

        zones = [
            build_zone(item, proposed_variations.get(item.id, []), self.config.MIN_PROHIBITED_VARIATIONS)
            for item in history
        ]
        blocked = blocked_themes(saturation)
        approaches = allowed_approaches(
            proposed_approaches,
            zones,
            blocked,
            self.config.SIMILARITY_THRESHOLD,
            self.config.MIN_ALLOWED_APPROACHES,
        )

        covered = sorted({zone.problem_category.value for zone in zones})
        coverage = CoverageSummary(
            categories_covered=covered,
            categories_gaps=[c.value for c in ProblemCategory if c.value not in covered],
            total_analyzed=len(history),
        )
        if not guidance:
            guidance.append(
                "Explore as categorias sem histórico: " + ", ".join(coverage.categories_gaps)
                if coverage.categories_gaps
                else "Todas as categorias já foram exploradas: priorize as abordagens permitidas."
            )
        logger.info(
            "Similarity report: %d zones, %d/%d categories covered",
            len(zones),
            len(covered),
            len(ProblemCategory),
        )
        return SimilarityReport(
            prohibited_zones=zones,
            allowed_approaches=approaches,
            coverage_summary=coverage,
            strategist_guidance=" ".join(guidance),
        )
