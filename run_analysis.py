#!/usr/bin/env python3
"""
CLI entrypoint for the store growth analysis workflow.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from analysis_modules import LABELS, available_types
from analysis_pipeline import StoreAnalysisAgent
from config import GrowthConfig
from errors import AnalysisFailedError
from file_utils import AnalysisFileStore
from health_score import band_label
from logging_utils import capture_terminal_output, log_exception, setup_run_logging
from models import AnalysisResult, AnalysisType, StoreAnalysisRequest


def enable_debug_logging() -> None:
    logging.getLogger().setLevel(logging.DEBUG)
    for logger_name in logging.Logger.manager.loggerDict:
        logging.getLogger(logger_name).setLevel(logging.DEBUG)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a growth analysis for one store.")
    parser.add_argument("input", type=str, help="Path to the store analysis request JSON.")
    parser.add_argument("--output-dir", type=str, default=GrowthConfig.OUTPUT_DIR, help="Where analyses are saved.")
    parser.add_argument(
        "--provider",
        type=str,
        choices=["openai", "anthropic"],
        default=None,
        help="Text-generation provider (defaults to GROWTH_PROVIDER).",
    )
    parser.add_argument(
        "--analysis-type",
        type=str,
        choices=[kind.value for kind in available_types()],
        default=None,
        help="Specialized analysis mode (overrides the request's analysis_type).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging.")
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Emit step-by-step pipeline traces (stage payloads and results).",
    )
    return parser.parse_args(argv)


def print_summary(result: AnalysisResult, location: str) -> None:
    health = result.analyst.metrics.health
    score = health.total if health.total is not None else "indeterminado"
    print("\n✅ Análise concluída.")
    print(f"📁 Diretório: {location}")
    print(f"🩺 Saúde da loja: {score} ({band_label(health.band)})")
    print(f"💡 Sugestões selecionadas: {len(result.critic.suggestions)}")
    for item in result.critic.suggestions:
        suggestion = item.suggestion
        print(f"   {item.priority}. [{suggestion.tier.value}] {suggestion.title} (nota {item.quality_score:.1f})")
    coverage = result.critic.goal_coverage
    if coverage is not None:
        status = "atingida" if coverage.met else "não atingida"
        print(f"🎯 Cobertura da meta: {coverage.ratio:.0%} ({status})")
    for warning in result.critic.warnings:
        print(f"⚠️  {warning}")


def main(argv=None) -> None:
    args = parse_args(argv)
    load_dotenv()

    try:
        request = StoreAnalysisRequest.model_validate_json(Path(args.input).read_text(encoding="utf-8"))
    except Exception as exc:
        print(f"❌ Não foi possível ler a requisição: {exc}")
        sys.exit(1)
    if args.analysis_type:
        request = request.model_copy(update={"analysis_type": AnalysisType(args.analysis_type)})

    store = AnalysisFileStore(args.output_dir)
    run_logger, log_path = setup_run_logging(args.output_dir, request.store.name, request.analysis_id)

    with capture_terminal_output(log_path):
        if args.debug:
            enable_debug_logging()
            run_logger.debug("Debug logging enabled.")

        print("🚀 Análise de Crescimento")
        print(f"🏪 Loja: {request.store.name}")
        print(f"🔎 Tipo: {LABELS[request.analysis_type]}")
        print(f"📅 Período: últimos {request.period_days} dias")
        print("=" * 60)

        try:
            agent = StoreAnalysisAgent(sink=store, trace_mode=args.trace, provider=args.provider)
            result = agent.generate_analysis(request)
        except AnalysisFailedError as exc:
            log_exception(run_logger, exc, context="generate_analysis", analysis_id=exc.analysis_id)
            print(f"❌ A análise falhou na etapa {exc.stage or 'desconhecida'}. Verifique o log.")
            sys.exit(1)

        print_summary(result, str(store.analysis_dir(result.analysis_id)))


if __name__ == "__main__":
    main()
