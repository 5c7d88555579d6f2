"""Error taxonomy for the interview engine.

Every error carries a stable ``code`` (surfaced to clients) and a ``retryable``
flag so callers can tell transient oracle/store trouble apart from terminal
state errors such as an already finished assessment.
"""
from __future__ import annotations

from typing import Optional


class InterviewError(Exception):
    """Base class for all engine errors."""

    code: str = "InternalError"
    retryable: bool = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)


class ValidationFailed(InterviewError):
    """Input rejected before any state mutation."""

    code = "BadRequest"

    def __init__(self, message: str = "invalid request", errors: Optional[list] = None):
        self.errors = list(errors or [])
        super().__init__(message)


# ---- state errors (expected, user-facing, never auto-retried) ----

class StateError(InterviewError):
    pass


class AssessmentNotFound(StateError):
    code = "AssessmentNotFound"

    def __init__(self, assessment_id: str):
        self.assessment_id = assessment_id
        super().__init__(f"assessment {assessment_id} not found")


class AssessmentFinished(StateError):
    code = "AssessmentFinished"

    def __init__(self, assessment_id: str, stop_reason: Optional[str] = None):
        self.assessment_id = assessment_id
        self.stop_reason = stop_reason
        super().__init__(f"assessment {assessment_id} is finished ({stop_reason or 'unknown'})")


class MaxItemsReached(AssessmentFinished):
    code = "MaxItemsReached"

    def __init__(self, assessment_id: str):
        super().__init__(assessment_id, "MAX_ITEMS")


class TimeExpired(AssessmentFinished):
    code = "TimeExpired"

    def __init__(self, assessment_id: str):
        super().__init__(assessment_id, "TIME")


class DuplicateSubmission(StateError):
    code = "DuplicateSubmission"

    def __init__(self, assessment_id: str, item_id: str):
        self.assessment_id = assessment_id
        self.item_id = item_id
        super().__init__(f"item {item_id} already submitted for assessment {assessment_id}")


class QuestionsExhausted(StateError):
    code = "QuestionsExhausted"

    def __init__(self, assessment_id: str, difficulty: str):
        self.assessment_id = assessment_id
        self.difficulty = difficulty
        super().__init__(f"no {difficulty} questions left for assessment {assessment_id}")


def finished_error(assessment_id: str, stop_reason: Optional[str]) -> AssessmentFinished:
    """Most specific error for an assessment that already stopped."""
    if stop_reason == "MAX_ITEMS":
        return MaxItemsReached(assessment_id)
    if stop_reason == "TIME":
        return TimeExpired(assessment_id)
    return AssessmentFinished(assessment_id, stop_reason)


# ---- oracle errors ----

class OracleError(InterviewError):
    code = "OracleError"
    retryable = True


class OracleConfigurationError(OracleError):
    code = "LLMConfigurationMissing"
    retryable = False

    def __init__(self, message: str = "LLM configuration missing"):
        super().__init__(message)


class OracleHttpError(OracleError):
    code = "LLMHttpError"

    def __init__(self, status: int, body: str = ""):
        self.status = int(status)
        self.body = body or ""
        self.retryable = self.status == 429 or self.status >= 500
        super().__init__(f"LLM HTTP {self.status}: {self.body[:256]}")


class OracleResponseError(OracleError):
    code = "LLMResponseError"


class OracleTimeout(OracleError):
    code = "LLMTimeout"

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"LLM call timed out after {timeout_ms} ms")


# ---- store errors ----

class StoreError(InterviewError):
    code = "StoreError"


class UniqueViolation(StoreError):
    code = "UniqueViolation"


class LockContention(StoreError):
    code = "LockContention"
    retryable = True


__all__ = [
    "InterviewError",
    "ValidationFailed",
    "StateError",
    "AssessmentNotFound",
    "AssessmentFinished",
    "MaxItemsReached",
    "TimeExpired",
    "DuplicateSubmission",
    "QuestionsExhausted",
    "finished_error",
    "OracleError",
    "OracleConfigurationError",
    "OracleHttpError",
    "OracleResponseError",
    "OracleTimeout",
    "StoreError",
    "UniqueViolation",
    "LockContention",
]
