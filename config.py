"""
Growth Analysis Configuration

Settings for the store-analysis pipeline. Every threshold the stages rely on
lives here so a deployment can tune it through the environment instead of
editing prompt text.
"""

import os
from typing import Dict, List, Tuple

try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass


def _float_list(raw: str) -> List[float]:
    values: List[float] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            values.append(float(chunk))
        except ValueError:
            continue
    return values


class GrowthConfig:
    """Pipeline-wide configuration used by every stage."""

    PRODUCT_NAME = "Growth Analysis Pipeline"

    # Text generation backends
    DEFAULT_PROVIDER = os.getenv("GROWTH_PROVIDER", "openai")
    OPENAI_MODEL = os.getenv("GROWTH_OPENAI_MODEL", "gpt-4o-mini")
    ANTHROPIC_MODEL = os.getenv("GROWTH_ANTHROPIC_MODEL", "claude-sonnet-4-5")
    OPENAI_ORGANIZATION = os.getenv("OPENAI_ORGANIZATION")
    RESPONSE_FORMAT = {"type": "json_object"}
    REQUEST_TIMEOUT_SECONDS = float(os.getenv("GROWTH_REQUEST_TIMEOUT", "180"))

    STAGE_TEMPERATURES: Dict[str, float] = {
        "profile": float(os.getenv("GROWTH_TEMP_PROFILE", "0.1")),
        "collector": float(os.getenv("GROWTH_TEMP_COLLECTOR", "0.3")),
        "analyst": float(os.getenv("GROWTH_TEMP_ANALYST", "0.2")),
        "similarity": float(os.getenv("GROWTH_TEMP_SIMILARITY", "0.3")),
        "strategist": float(os.getenv("GROWTH_TEMP_STRATEGIST", "0.7")),
        "critic": float(os.getenv("GROWTH_TEMP_CRITIC", "0.3")),
    }
    STAGE_MAX_TOKENS: Dict[str, int] = {
        "profile": int(os.getenv("GROWTH_TOKENS_PROFILE", "4096")),
        "collector": int(os.getenv("GROWTH_TOKENS_COLLECTOR", "4096")),
        "analyst": int(os.getenv("GROWTH_TOKENS_ANALYST", "8192")),
        "similarity": int(os.getenv("GROWTH_TOKENS_SIMILARITY", "16384")),
        "strategist": int(os.getenv("GROWTH_TOKENS_STRATEGIST", "16384")),
        "critic": int(os.getenv("GROWTH_TOKENS_CRITIC", "32768")),
    }

    # Stage-local retries
    STAGE_MAX_ATTEMPTS = int(os.getenv("GROWTH_STAGE_MAX_ATTEMPTS", "3"))
    STAGE_RETRY_DELAYS: List[float] = _float_list(
        os.getenv("GROWTH_STAGE_RETRY_DELAYS", "30,60,120")
    ) or [30.0, 60.0, 120.0]
    RETRYABLE_ERROR_MARKERS: Tuple[str, ...] = (
        "503",
        "overloaded",
        "429",
        "rate limit",
        "quota",
        "timeout",
        "timed out",
        "connection",
        "network",
        "http 5",
    )

    # Duplicate detection
    SIMILARITY_THRESHOLD = float(os.getenv("GROWTH_SIMILARITY_THRESHOLD", "0.70"))
    INTRA_BATCH_THRESHOLD = float(os.getenv("GROWTH_INTRA_BATCH_THRESHOLD", "0.85"))
    SIMILARITY_BATCH_SIZE = int(os.getenv("GROWTH_SIMILARITY_BATCH_SIZE", "40"))
    MIN_PROHIBITED_VARIATIONS = 3
    MIN_ALLOWED_APPROACHES = 2

    # Theme saturation
    SATURATION_BLOCKED_AT = 3
    SATURATION_FREQUENT_AT = 2

    # Strategist slate
    STRATEGIST_TIER_SIZES: Dict[str, int] = {
        "high": int(os.getenv("GROWTH_STRATEGIST_HIGH", "6")),
        "medium": int(os.getenv("GROWTH_STRATEGIST_MEDIUM", "6")),
        "low": int(os.getenv("GROWTH_STRATEGIST_LOW", "6")),
    }
    STRATEGIST_REFILL_ROUNDS = int(os.getenv("GROWTH_STRATEGIST_REFILL_ROUNDS", "1"))

    # Critic selection
    CRITIC_SELECT_RATIO = float(os.getenv("GROWTH_CRITIC_SELECT_RATIO", "0.5"))
    CRITIC_MIN_SCORE = float(os.getenv("GROWTH_CRITIC_MIN_SCORE", "6.0"))
    CRITIC_TARGET_AVERAGE = float(os.getenv("GROWTH_CRITIC_TARGET_AVERAGE", "7.0"))
    CRITIC_SUSPICIOUS_AVERAGE = float(os.getenv("GROWTH_CRITIC_SUSPICIOUS_AVERAGE", "8.5"))
    CRITIC_HIGH_WITHOUT_EXTERNAL_CAP = 7.0
    CRITIC_MIN_EXTERNAL = int(os.getenv("GROWTH_CRITIC_MIN_EXTERNAL", "2"))
    CRITIC_MAX_PER_CATEGORY = int(os.getenv("GROWTH_CRITIC_MAX_PER_CATEGORY", "2"))
    CRITIC_ALIGNMENT_TOP_PROBLEMS = int(os.getenv("GROWTH_CRITIC_ALIGNMENT_TOP", "3"))
    CRITIC_NUMERIC_TOLERANCE = float(os.getenv("GROWTH_CRITIC_NUMERIC_TOLERANCE", "0.02"))
    QUALITY_WEIGHTS: Dict[str, float] = {
        "especificidade": 0.20,
        "base_em_dados": 0.20,
        "dados_externos": 0.15,
        "acionabilidade": 0.20,
        "viabilidade": 0.15,
        "originalidade": 0.10,
    }
    GOAL_COVERAGE_MIN = float(os.getenv("GROWTH_GOAL_COVERAGE_MIN", "0.80"))

    # Profile thresholds (R$ per month, visits per month)
    SIZE_TIER_BANDS: List[Tuple[str, float]] = [
        ("micro", 10_000.0),
        ("pequeno", 50_000.0),
        ("medio", 200_000.0),
    ]
    MATURITY_VISIT_BANDS: List[Tuple[str, float]] = [
        ("iniciante", 1_000.0),
        ("intermediario", 10_000.0),
    ]
    UPCOMING_EVENTS_HORIZON_DAYS = int(os.getenv("GROWTH_EVENTS_HORIZON", "60"))

    # Persistence
    OUTPUT_DIR = os.getenv("GROWTH_OUTPUT_DIR", "growth_analyses")
    TRACE_MAX_CHARS = 4000

    OUTPUT_LANGUAGE = "pt-BR"
    LANGUAGE_RULES = [
        "Responda exclusivamente em português do Brasil.",
        "Use apenas números presentes nos dados fornecidos.",
        "Quando um dado não existir, escreva \"nao_determinado\" ou null.",
        "Retorne somente um objeto JSON válido, sem texto fora do JSON.",
    ]

    @classmethod
    def temperature(cls, stage: str) -> float:
        return cls.STAGE_TEMPERATURES.get(stage, 0.3)

    @classmethod
    def max_tokens(cls, stage: str) -> int:
        return cls.STAGE_MAX_TOKENS.get(stage, 8192)

    @classmethod
    def language_preamble(cls) -> str:
        return "\n".join(f"- {rule}" for rule in cls.LANGUAGE_RULES)
