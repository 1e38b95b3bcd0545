"""
Store growth analysis orchestrator.

Runs the seven stages strictly in order for one store. Every backend-backed
stage goes through the stage-local retry policy. A run either persists its
full result once at the end, or is marked failed with nothing partial exposed.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from analysis_modules import resolve_module
from analyst_agent import AnalystAgent
from benchmarks import resolve_benchmarks
from collector_agent import CollectorAgent
from config import GrowthConfig
from critic_agent import CriticAgent
from errors import AnalysisFailedError, StageFailedError
from logging_utils import get_error_info, log_exception
from models import AnalysisResult, StoreAnalysisRequest
from profile_synthesizer import ProfileSynthesizer
from similarity_engine import SimilarityEngine
from stage_runner import run_with_retry
from strategist_agent import StrategistAgent
from text_generation import TextGenerator, build_text_generator
from theme_registry import theme_saturation

logger = logging.getLogger(__name__)
T = TypeVar("T")

STAGE_ORDER = (
    "profile",
    "collector",
    "analyst",
    "theme_saturation",
    "similarity",
    "strategist",
    "critic",
)


class StoreAnalysisAgent:
    """Single-path growth analysis agent."""

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        sink: Any = None,
        config=GrowthConfig,
        trace_mode: bool = False,
        on_failure: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        provider: Optional[str] = None,
    ):
        self.generator = generator or build_text_generator(provider)
        self.sink = sink
        self.config = config
        self.trace_mode = trace_mode
        self.on_failure = on_failure
        self.sleep = sleep
        self.provider = provider

        stage_args = dict(generator=self.generator, config=config, provider=provider)
        self.profile_stage = ProfileSynthesizer(**stage_args)
        self.collector_stage = CollectorAgent(**stage_args)
        self.analyst_stage = AnalystAgent(**stage_args)
        self.similarity_stage = SimilarityEngine(**stage_args)
        self.strategist_stage = StrategistAgent(**stage_args)
        self.critic_stage = CriticAgent(**stage_args)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def generate_analysis(self, request: StoreAnalysisRequest) -> AnalysisResult:
        analysis_id = request.analysis_id
        self._trace("generate_analysis:start", {"analysis_id": analysis_id, "store": request.store.name})
        module = resolve_module(request.analysis_type)
        logger.info(
            "Analysis %s type=%s specialized=%s", analysis_id, request.analysis_type.value, module.is_specialized
        )
        self._trace("analysis_module", module.to_dict())
        timings: Dict[str, float] = {}
        current = {"stage": None}

        def stage(name: str, operation: Callable[[], T], retried: bool = True) -> T:
            current["stage"] = name
            logger.info("▶️  Stage %s started", name)
            started = time.monotonic()
            if retried:
                value = run_with_retry(
                    name,
                    operation,
                    max_attempts=self.config.STAGE_MAX_ATTEMPTS,
                    delays=self.config.STAGE_RETRY_DELAYS,
                    sleep=self.sleep,
                )
            else:
                value = operation()
            timings[name] = round(time.monotonic() - started, 3)
            logger.info("✅ Stage %s finished in %.2fs", name, timings[name])
            self._trace(f"{name}:result", _dump(value))
            return value

        try:
            benchmarks = resolve_benchmarks(request.store.niche, request.benchmarks)
            self._trace("benchmarks", benchmarks.model_dump(mode="json"))

            profile = stage("profile", lambda: self.profile_stage.run(request, benchmarks))
            collector = stage("collector", lambda: self.collector_stage.run(request, benchmarks))
            analyst = stage("analyst", lambda: self.analyst_stage.run(request, benchmarks))
            saturation = stage(
                "theme_saturation", lambda: theme_saturation(request.previous_suggestions), retried=False
            )
            similarity = stage(
                "similarity", lambda: self.similarity_stage.run(request.previous_suggestions, saturation)
            )
            slate = stage(
                "strategist",
                lambda: self.strategist_stage.run(request, profile, collector, analyst, similarity, saturation),
            )
            critic = stage(
                "critic", lambda: self.critic_stage.run(request, slate, analyst, similarity, saturation)
            )

            result = AnalysisResult(
                analysis_id=analysis_id,
                store_name=request.store.name,
                analysis_type=request.analysis_type,
                profile=profile,
                collector=collector,
                analyst=analyst,
                similarity=similarity,
                saturation=saturation,
                strategist=slate,
                critic=critic,
                stage_timings=timings,
            )
            current["stage"] = "persist"
            if self.sink is not None:
                location = self.sink.persist(result)
                self._trace("persist", {"location": location})
        except Exception as exc:
            failed_stage = exc.stage if isinstance(exc, StageFailedError) else current["stage"]
            self._fail(analysis_id, failed_stage, exc, timings)
            raise AnalysisFailedError(analysis_id, failed_stage, exc) from exc

        logger.info(
            "Analysis %s completed: %d curated suggestions, health=%s",
            analysis_id,
            len(result.critic.suggestions),
            result.analyst.metrics.health.total,
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _fail(self, analysis_id: str, stage: Optional[str], exc: BaseException, timings: Dict[str, float]) -> None:
        log_exception(logger, exc, context=f"stage={stage}", analysis_id=analysis_id)
        if self.sink is not None:
            try:
                self.sink.mark_failed(
                    analysis_id, get_error_info(exc, {"stage": stage, "stage_timings": timings})
                )
            except Exception as sink_error:
                logger.error("Could not record failure for %s: %s", analysis_id, sink_error)
        if self.on_failure is not None:
            try:
                self.on_failure(analysis_id)
            except Exception as hook_error:
                logger.error("on_failure hook raised for %s: %s", analysis_id, hook_error)

    def _trace(self, label: str, payload: Any = None) -> None:
        emit = self.trace_mode or logger.isEnabledFor(logging.DEBUG)
        if not emit:
            return
        target = logger.info if self.trace_mode else logger.debug
        if payload is None:
            target("[TRACE] %s", label)
            return
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except Exception:
            serialized = str(payload)
        max_len = self.config.TRACE_MAX_CHARS
        if len(serialized) > max_len:
            serialized = serialized[: max_len - 3] + "..."
        target("[TRACE] %s: %s", label, serialized)


def _dump(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value
