"""Request and oracle-response schemas.

Oracle text is untrusted: ``parse_bars_response`` and ``parse_question_response``
are the only places it becomes ``BarsGrade`` / question payloads, and they
return a tagged ``Parsed`` result instead of raising.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .config import ANSWER_MAX_CHARS, QUESTION_MAX_CHARS
from .types import BarsGrade, Criteria, IntegrityEvent

T = TypeVar("T")

ITEM_ID_PATTERN = r"^[A-Za-z0-9_\-]{1,64}$"

_FENCE_RX = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.I)
_SUSPICIOUS_RX = [
    re.compile(r"ignore previous instructions", re.I),
    re.compile(r"forget everything", re.I),
    re.compile(r"system prompt", re.I),
    re.compile(r"\[SYSTEM:", re.I),
    re.compile(r"<\|system\|>", re.I),
]


@dataclass(frozen=True)
class Parsed(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Parsed[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "Parsed[T]":
        return cls(ok=False, error=error)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- oracle responses ----

class BarsCriteriaModel(_CamelModel):
    policy_procedure: int = Field(ge=0, le=3)
    decision_quality: int = Field(ge=0, le=3)
    evidence_specificity: int = Field(ge=0, le=3)


class BarsResponseModel(_CamelModel):
    criteria: BarsCriteriaModel
    follow_up: str = ""


class QuestionResponseModel(BaseModel):
    question: str = Field(min_length=1)
    difficulty: Literal["easy", "medium", "hard"]


def extract_json(text: str) -> Any:
    """First JSON document found in a fenced block or in the raw text."""
    candidates: List[str] = []
    m = _FENCE_RX.search(text or "")
    if m and m.group(1):
        candidates.append(m.group(1).strip())
    candidates.append((text or "").strip())
    for c in candidates:
        try:
            return json.loads(c)
        except ValueError:
            continue
    return None


def looks_injected(text: str) -> bool:
    return any(rx.search(text or "") for rx in _SUSPICIOUS_RX)


def parse_bars_response(text: str) -> Parsed[BarsGrade]:
    if looks_injected(text):
        return Parsed.failure("Invalid model response (suspicious content detected)")
    raw = extract_json(text)
    if not isinstance(raw, dict):
        return Parsed.failure("Invalid model response (no JSON)")
    try:
        res = BarsResponseModel.model_validate(raw)
    except ValidationError:
        return Parsed.failure("Invalid model response (schema)")
    c = res.criteria
    return Parsed.success(
        BarsGrade(
            criteria=Criteria(c.policy_procedure, c.decision_quality, c.evidence_specificity),
            follow_up=res.follow_up.strip(),
        )
    )


def parse_question_response(text: str) -> Parsed[QuestionResponseModel]:
    raw = extract_json(text)
    if not isinstance(raw, dict):
        return Parsed.failure("Invalid model response (no JSON)")
    try:
        res = QuestionResponseModel.model_validate(raw)
    except ValidationError:
        return Parsed.failure("Invalid model response (schema)")
    return Parsed.success(QuestionResponseModel(question=res.question.strip(), difficulty=res.difficulty))


# ---- inbound requests ----

class SignalIn(_CamelModel):
    type: Literal["visibilitychange", "paste", "blur", "focus", "latencyOutlier"]
    at: Optional[datetime] = None
    item_id: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

    def to_event(self, default_item_id: Optional[str] = None) -> IntegrityEvent:
        return IntegrityEvent(
            type=self.type,
            at=self.at or datetime.now(timezone.utc),
            item_id=self.item_id or default_item_id,
            meta=dict(self.meta),
        )


class SubmitAnswerRequest(_CamelModel):
    assessment_id: str = Field(min_length=1)
    item_id: str = Field(pattern=ITEM_ID_PATTERN)
    answer_text: str = Field(min_length=1, max_length=ANSWER_MAX_CHARS)
    question_text: Optional[str] = Field(default=None, max_length=QUESTION_MAX_CHARS)
    client_ts: Optional[datetime] = None
    signals: List[SignalIn] = Field(default_factory=list)


class NextQuestionRequest(_CamelModel):
    assessment_id: str = Field(min_length=1)
    difficulty: Optional[Literal["easy", "medium", "hard"]] = None


class CreateAssessmentRequest(_CamelModel):
    job_id: str = Field(min_length=1, max_length=50)
    duration_minutes: Optional[int] = Field(default=None, ge=1, le=240)
    candidate_name: Optional[str] = None
    job_description: Optional[str] = None
    company_bio: Optional[str] = None
    recruiter_notes: Optional[str] = None
    resume_text: Optional[str] = None
    application_answers: Optional[Dict[str, Any]] = None
