"""
Stage execution helpers: one backend round-trip with strict contract checks,
and stage-local retries with bounded backoff.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from analysis_contracts import enforce_contract, enforce_language
from config import GrowthConfig
from errors import (
    MalformedResponseError,
    SchemaViolationError,
    StageFailedError,
    TransientBackendError,
)
from text_generation import GenerationOptions, TextGenerator, build_messages, is_transient_message, parse_json_object

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, SchemaViolationError):
        return False
    if isinstance(exc, (TransientBackendError, MalformedResponseError, TimeoutError, ConnectionError)):
        return True
    return is_transient_message(f"{type(exc).__name__}: {exc}")


def backoff_delay(attempt: int, delays: Sequence[float]) -> float:
    """Delay after the given 1-indexed failed attempt; the last delay repeats."""
    if not delays:
        return 0.0
    return float(delays[min(attempt, len(delays)) - 1])


def run_with_retry(
    stage: str,
    operation: Callable[[], T],
    max_attempts: Optional[int] = None,
    delays: Optional[Sequence[float]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` until it succeeds, a non-retryable error occurs, or attempts run out."""
    attempts_allowed = max(1, max_attempts or GrowthConfig.STAGE_MAX_ATTEMPTS)
    delay_plan = list(delays if delays is not None else GrowthConfig.STAGE_RETRY_DELAYS)

    for attempt in range(1, attempts_allowed + 1):
        try:
            return operation()
        except Exception as exc:  # noqa: BLE001
            retryable = is_retryable_error(exc)
            if not retryable or attempt >= attempts_allowed:
                logger.error(
                    "Stage %s failed on attempt %d/%d (%s): %s",
                    stage,
                    attempt,
                    attempts_allowed,
                    "non-retryable" if not retryable else "retries exhausted",
                    exc,
                )
                raise StageFailedError(stage, attempt, exc) from exc
            delay = backoff_delay(attempt, delay_plan)
            logger.warning(
                "Stage %s attempt %d/%d failed with %s: %s. Retrying in %.1fs",
                stage,
                attempt,
                attempts_allowed,
                type(exc).__name__,
                exc,
                delay,
            )
            sleep(delay)

    raise AssertionError("unreachable")


def request_stage_json(
    generator: TextGenerator,
    stage: str,
    system_prompt: str,
    user_prompt: str,
    lint: Callable[[Dict[str, Any]], List[str]],
    provider: Optional[str] = None,
    check_language: bool = True,
    temperature: Optional[float] = None,
) -> Dict[str, Any]:
    """One round-trip: generate, decode strictly, lint the contract, check the language."""
    options = GenerationOptions.for_stage(stage, provider)
    if temperature is not None:
        options = replace(options, temperature=temperature)
    started = time.monotonic()
    raw = generator.generate(build_messages(system_prompt, user_prompt), options)
    logger.debug("Stage %s backend answered in %.2fs (%d chars)", stage, time.monotonic() - started, len(raw or ""))
    payload = parse_json_object(raw)
    enforce_contract(stage, lint(payload))
    if check_language:
        enforce_language(stage, payload, raw=raw)
    return payload
