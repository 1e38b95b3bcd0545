"""Exception taxonomy for the analysis pipeline."""

from __future__ import annotations

from typing import List, Optional


class GrowthAnalysisError(RuntimeError):
    """Base class for every pipeline failure."""


class BackendError(GrowthAnalysisError):
    """The text-generation provider failed to answer."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class TransientBackendError(BackendError):
    """Timeout, rate limit, overload or network failure. Safe to retry."""


class MalformedResponseError(ValueError, GrowthAnalysisError):
    """The provider answered, but the text cannot be used as stage output."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class TruncatedResponseError(MalformedResponseError):
    """The response was cut before the closing brace or bracket."""


class NonJSONResponseError(MalformedResponseError):
    """The response does not contain a decodable JSON document."""


class LanguageContractError(MalformedResponseError):
    """User-facing strings were produced outside Brazilian Portuguese."""

    def __init__(self, message: str, offending: Optional[List[str]] = None, raw: str = ""):
        super().__init__(message, raw=raw)
        self.offending = offending or []


class SchemaViolationError(GrowthAnalysisError):
    """Well-formed JSON that is missing required keys. Never retried."""

    def __init__(self, stage: str, problems: List[str]):
        self.stage = stage
        self.problems = list(problems)
        super().__init__(f"{stage} contract failed: {'; '.join(self.problems)}")


class StageFailedError(GrowthAnalysisError):
    """A stage exhausted its retries or hit a non-retryable error."""

    def __init__(self, stage: str, attempts: int, last_error: BaseException):
        self.stage = stage
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Stage '{stage}' failed after {attempts} attempt(s): "
            f"{type(last_error).__name__}: {last_error}"
        )


class AnalysisFailedError(GrowthAnalysisError):
    """The whole run failed. Nothing was persisted."""

    def __init__(self, analysis_id: str, stage: Optional[str], cause: BaseException):
        self.analysis_id = analysis_id
        self.stage = stage
        self.cause = cause
        where = f" at stage '{stage}'" if stage else ""
        super().__init__(f"Analysis {analysis_id} failed{where}: {cause}")


__all__ = [
    "AnalysisFailedError",
    "BackendError",
    "GrowthAnalysisError",
    "LanguageContractError",
    "MalformedResponseError",
    "NonJSONResponseError",
    "SchemaViolationError",
    "StageFailedError",
    "TransientBackendError",
    "TruncatedResponseError",
]
