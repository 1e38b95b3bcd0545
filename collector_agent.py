"""
Collector

Condenses prior analyses, suggestion outcomes and retrieved benchmark notes
into the executive digest every later stage reads. Success and failure lists
are derived from the recorded status of each past suggestion, never from the
backend's opinion of it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from analysis_contracts import lint_collector_payload
from analysis_modules import resolve_module
from config import GrowthConfig
from models import CollectorDigest, HistoricalSuggestion, NicheBenchmarks, StoreAnalysisRequest
from stage_runner import request_stage_json
from text_generation import TextGenerator

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {"completed", "successful", "success", "concluida"}
IN_PROGRESS_STATUSES = {"accepted", "in_progress", "em_andamento"}
FAILED_STATUSES = {"rejected", "ignored", "failed", "rejeitada", "ignorada"}

NO_HISTORY_SUMMARY = "Primeira análise da loja: sem histórico disponível."

SYSTEM_PROMPT = (
    "Você é o Coletor de contexto de uma análise de e-commerce.\n"
    "Resuma SOMENTE o histórico fornecido. Não invente análises, resultados ou números.\n"
    "Padrões de sucesso só podem vir de sugestões com status concluído.\n"
)


def partition_history(history: Sequence[HistoricalSuggestion]) -> Dict[str, List[HistoricalSuggestion]]:
    """Split past suggestions by recorded outcome: successful, in_progress, failed, pending."""
    groups: Dict[str, List[HistoricalSuggestion]] = {
        "successful": [],
        "in_progress": [],
        "failed": [],
        "pending": [],
    }
    for item in history:
        status = (item.status or "pending").strip().lower()
        if status in SUCCESS_STATUSES:
            groups["successful"].append(item)
        elif status in IN_PROGRESS_STATUSES:
            groups["in_progress"].append(item)
        elif status in FAILED_STATUSES:
            groups["failed"].append(item)
        else:
            groups["pending"].append(item)
    return groups


def suggestions_to_avoid(failed: Sequence[HistoricalSuggestion]) -> List[str]:
    seen: List[str] = []
    for item in failed:
        entry = f"{item.title} (status: {item.status})"
        if entry not in seen:
            seen.append(entry)
    return seen


def relevant_benchmarks(benchmarks: NicheBenchmarks, snippets: Sequence[str]) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "ticket_medio_nicho": benchmarks.average_ticket,
        "taxa_conversao_nicho": benchmarks.conversion_rate,
        "fonte": benchmarks.source,
    }
    data.update(benchmarks.extra)
    if snippets:
        data["trechos_estrategia"] = len(snippets)
    return data


def _clean_list(values: Any) -> List[str]:
    return [str(value).strip() for value in values or [] if str(value).strip()]


class CollectorAgent:
    """Historical digest stage."""

    stage = "collector"

    def __init__(self, generator: TextGenerator, config=GrowthConfig, provider: Optional[str] = None):
        self.generator = generator
        self.config = config
        self.provider = provider

    def build_prompt(self, request: StoreAnalysisRequest, groups: Dict[str, List[HistoricalSuggestion]]) -> str:
        def _titles(items: Sequence[HistoricalSuggestion]) -> List[Dict[str, Any]]:
            return [{"titulo": item.title, "categoria": item.category} for item in items]

        context = {
            "plataforma": request.store.platform,
            "nicho": request.store.niche,
            "tempo_de_loja_meses": request.store.tenure_months,
            "analises_anteriores": request.previous_analyses,
            "sugestoes_concluidas": _titles(groups["successful"]),
            "sugestoes_em_andamento": _titles(groups["in_progress"]),
            "sugestoes_rejeitadas_ou_ignoradas": _titles(groups["failed"]),
            "sugestoes_pendentes": _titles(groups["pending"]),
            "trechos_base_conhecimento": list(request.strategy_snippets),
        }
        return (
            f"{self.config.language_preamble()}\n\n"
            f"{resolve_module(request.analysis_type).collector_block()}"
            f"HISTÓRICO DA LOJA:\n{json.dumps(context, ensure_ascii=False, indent=2, default=str)}\n\n"
            "Retorne JSON com exatamente estas chaves:\n"
            '{"historical_summary": ["..."], "success_patterns": ["..."], '
            '"suggestions_to_avoid": ["..."], "relevant_benchmarks": {}, '
            '"identified_gaps": ["..."], "special_context": "..."}\n'
        )

    def run(self, request: StoreAnalysisRequest, benchmarks: NicheBenchmarks) -> CollectorDigest:
        history = list(request.previous_suggestions)
        groups = partition_history(history)

        payload = request_stage_json(
            self.generator,
            self.stage,
            SYSTEM_PROMPT,
            self.build_prompt(request, groups),
            lint_collector_payload,
            provider=self.provider,
            temperature=resolve_module(request.analysis_type).temperature_override,
        )

        has_history = bool(history or request.previous_analyses)
        summary = _clean_list(payload.get("historical_summary")) if has_history else []
        if not summary:
            summary = [NO_HISTORY_SUMMARY] if not has_history else [
                f"{len(history)} sugestões anteriores: {len(groups['successful'])} concluídas, "
                f"{len(groups['failed'])} rejeitadas ou ignoradas."
            ]

        patterns = _clean_list(payload.get("success_patterns")) if groups["successful"] else []
        if not groups["successful"] and payload.get("success_patterns"):
            logger.info("Discarding success patterns: no completed suggestion in history")

        digest = CollectorDigest(
            historical_summary=summary,
            success_patterns=patterns,
            suggestions_to_avoid=suggestions_to_avoid(groups["failed"]),
            relevant_benchmarks=relevant_benchmarks(benchmarks, request.strategy_snippets),
            identified_gaps=_clean_list(payload.get("identified_gaps")),
            special_context=str(payload.get("special_context") or "").strip(),
        )
        logger.info(
            "Collector digest: %d past suggestions (%d successful, %d failed)",
            len(history),
            len(groups["successful"]),
            len(groups["failed"]),
        )
        return digest
