"""
Store Analysis MCP Server

FastMCP server exposing the growth analysis stages as tools. Every tool
takes JSON strings and returns a JSON string. Deterministic tools answer
without a text-generation backend; backend-backed tools build one lazily.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from analysis_modules import describe_types
from analyst_agent import build_alerts, compute_metrics
from benchmarks import resolve_benchmarks
from config import GrowthConfig
from dedup import classify_pair
from health_score import band_label
from models import HistoricalSuggestion, StoreAnalysisRequest
from profile_synthesizer import ProfileSynthesizer
from similarity_engine import build_zone, matching_zones
from text_generation import TextGenerator, build_text_generator
from theme_registry import blocked_themes, match_themes, saturation_prompt_block, theme_saturation

logger = logging.getLogger(__name__)

# Initialize FastMCP server
analysis_mcp = FastMCP("StoreAnalysis")

_generator: Optional[TextGenerator] = None


def get_generator() -> TextGenerator:
    global _generator
    if _generator is None:
        _generator = build_text_generator(GrowthConfig.DEFAULT_PROVIDER)
    return _generator


def _error(message: str) -> str:
    return json.dumps({"error": message}, ensure_ascii=False)


def _history(history_json: str) -> List[HistoricalSuggestion]:
    raw = json.loads(history_json) if history_json else []
    return [HistoricalSuggestion.model_validate(item) for item in raw]


@analysis_mcp.tool()
def synthesize_store_profile(request_json: str) -> str:
    """
    Build the store profile and analysis context:
    - Deterministic porte and digital maturity
    - Niche/subniche, audience, measurable differentiators
    - Upcoming Brazilian retail dates
    """
    try:
        request = StoreAnalysisRequest.model_validate_json(request_json)
        benchmarks = resolve_benchmarks(request.store.niche, request.benchmarks)
        result = ProfileSynthesizer(get_generator()).run(request, benchmarks)
        return result.model_dump_json()
    except Exception as e:
        logger.error("synthesize_store_profile failed: %s", e)
        return _error(f"Error synthesizing store profile: {str(e)}")


@analysis_mcp.tool()
def score_store_health(request_json: str) -> str:
    """
    Compute the deterministic health score (0-100) with its sub-scores,
    band and alerts. No text-generation backend is involved.
    """
    try:
        request = StoreAnalysisRequest.model_validate_json(request_json)
        benchmarks = resolve_benchmarks(request.store.niche, request.benchmarks)
        metrics = compute_metrics(request, benchmarks)
        payload: Dict[str, Any] = {
            "metrics": metrics.model_dump(mode="json"),
            "band_label": band_label(metrics.health.band),
            "alerts": [alert.model_dump(mode="json") for alert in build_alerts(metrics)],
        }
        return json.dumps(payload, ensure_ascii=False)
    except Exception as e:
        logger.error("score_store_health failed: %s", e)
        return _error(f"Error scoring store health: {str(e)}")


@analysis_mcp.tool()
def compute_theme_saturation(history_json: str) -> str:
    """
    Count how often each registry theme appears in the suggestion history
    and classify it as blocked, frequent, used or preferred.
    """
    try:
        entries = theme_saturation(_history(history_json))
        payload = {
            "themes": [entry.model_dump(mode="json") for entry in entries],
            "blocked": blocked_themes(entries),
            "prompt_block": saturation_prompt_block(entries),
        }
        return json.dumps(payload, ensure_ascii=False)
    except Exception as e:
        logger.error("compute_theme_saturation failed: %s", e)
        return _error(f"Error computing theme saturation: {str(e)}")


@analysis_mcp.tool()
def check_similarity(history_json: str, candidate_json: str) -> str:
    """
    Check one candidate suggestion ({title, description, category}) against
    the history using the two-part duplicate rule and the theme registry.
    """
    try:
        history = _history(history_json)
        candidate = json.loads(candidate_json)
        title = str(candidate.get("title", ""))
        description = str(candidate.get("description", ""))
        category = candidate.get("category")
        zones = [build_zone(item, minimum=GrowthConfig.MIN_PROHIBITED_VARIATIONS) for item in history]
        hits = matching_zones(title, description, category, zones, GrowthConfig.SIMILARITY_THRESHOLD)
        blocked = set(blocked_themes(theme_saturation(history)))
        themes = match_themes(f"{title} {description}")
        problem, solution = classify_pair(title, description, category)
        payload = {
            "duplicate": bool(hits),
            "matching_zone_ids": hits,
            "problem_category": problem.value,
            "solution_type": solution.value,
            "themes": themes,
            "blocked_themes_hit": sorted(blocked & set(themes)),
        }
        return json.dumps(payload, ensure_ascii=False)
    except Exception as e:
        logger.error("check_similarity failed: %s", e)
        return _error(f"Error checking similarity: {str(e)}")


@analysis_mcp.tool()
def list_analysis_types() -> str:
    """List the analysis modes with label, description and availability."""
    return json.dumps(describe_types(), ensure_ascii=False)


@analysis_mcp.tool()
def run_store_analysis(request_json: str, output_dir: str = "") -> str:
    """
    Run the full seven-stage pipeline for one store and persist the result.
    Returns the complete analysis or a failure record.
    """
    from analysis_pipeline import StoreAnalysisAgent
    from errors import AnalysisFailedError
    from file_utils import AnalysisFileStore

    try:
        request = StoreAnalysisRequest.model_validate_json(request_json)
    except Exception as e:
        return _error(f"Invalid analysis request: {str(e)}")
    agent = StoreAnalysisAgent(
        generator=get_generator(),
        sink=AnalysisFileStore(output_dir or GrowthConfig.OUTPUT_DIR),
    )
    try:
        result = agent.generate_analysis(request)
    except AnalysisFailedError as e:
        return json.dumps(
            {"analysis_id": e.analysis_id, "status": "failed", "stage": e.stage, "error": str(e)},
            ensure_ascii=False,
        )
    return result.model_dump_json()


if __name__ == "__main__":
    analysis_mcp.run()
