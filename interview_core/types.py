from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Set

Difficulty = Literal["easy", "medium", "hard"]
StopReason = Literal["MAX_ITEMS", "TIME"]
SignalType = Literal["visibilitychange", "paste", "blur", "focus", "latencyOutlier"]
RiskBand = Literal["Low", "Med", "High"]
AssessmentState = Literal["created", "active", "finished"]

CRITERIA: tuple[str, str, str] = ("policy_procedure", "decision_quality", "evidence_specificity")


@dataclass
class Assessment:
    id: str
    job_id: str
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stop_reason: Optional[StopReason] = None
    duration_minutes: int = 15
    candidate_name: Optional[str] = None
    job_description: Optional[str] = None
    company_bio: Optional[str] = None
    recruiter_notes: Optional[str] = None
    resume_text: Optional[str] = None
    application_answers: Optional[Dict[str, Any]] = None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None


@dataclass(frozen=True)
class IntegrityEvent:
    type: SignalType
    at: datetime
    item_id: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Criteria:
    policy_procedure: int
    decision_quality: int
    evidence_specificity: int

    def values(self) -> tuple[int, int, int]:
        return (self.policy_procedure, self.decision_quality, self.evidence_specificity)

    def as_dict(self) -> Dict[str, int]:
        return dict(zip(CRITERIA, self.values()))


@dataclass(frozen=True)
class BarsGrade:
    """One validated oracle grading pass."""
    criteria: Criteria
    follow_up: str = ""


@dataclass(frozen=True)
class GradeOutcome:
    criteria: Criteria
    total: int
    follow_up: str
    kappa: float

    def score_payload(self) -> Dict[str, object]:
        return {"total": self.total, "criteria": self.criteria.as_dict()}


@dataclass
class ItemEvent:
    id: str
    assessment_id: str
    item_id: str
    t_start: datetime
    answer_text: str
    question_text: str
    t_end: Optional[datetime] = None
    score: Optional[Dict[str, object]] = None
    events: List[IntegrityEvent] = field(default_factory=list)

    @property
    def total(self) -> Optional[int]:
        if not self.score:
            return None
        return int(self.score.get("total", 0))


@dataclass
class AccessSession:
    id: str
    assessment_id: str
    created_at: datetime
    revoked_at: Optional[datetime] = None


@dataclass(frozen=True)
class HistoryTurn:
    question: str
    answer: str


@dataclass
class ItemTemplate:
    id: str
    difficulty: Difficulty
    template: str
    params: Dict[str, object] = field(default_factory=dict)
    section: Literal["competence", "communication", "integrity"] = "competence"


@dataclass
class StaircaseState:
    step: Difficulty
    asked_ids: Set[str]
    max_items: int


@dataclass
class SelectionResult:
    next_item: ItemTemplate
    next_state: StaircaseState


@dataclass(frozen=True)
class Question:
    question: str
    item_id: str
    difficulty: Difficulty


@dataclass(frozen=True)
class IntegrityRisk:
    risk: float
    band: RiskBand
    reasons: List[str]


@dataclass(frozen=True)
class StopDecision:
    should_stop: bool
    reason: Optional[StopReason] = None


@dataclass(frozen=True)
class SubmissionReceipt:
    item_event_id: str
    item_id: str
    question_text: str
    item_number: int
    started_at: datetime


@dataclass
class GradeRequest:
    item_id: str
    prompt: str
    answer: str
    seed: int
    timeout_ms: Optional[int] = None
    job_context: Optional[str] = None
    applicant_context: Optional[str] = None
    history: Optional[List[HistoryTurn]] = None
    time_remaining: Optional[float] = None


@dataclass
class QuestionRequest:
    job_context: str
    applicant_context: str
    history: List[HistoryTurn]
    difficulty: Optional[Difficulty] = None
    timeout_ms: Optional[int] = None
    time_remaining: Optional[float] = None
    item_number: Optional[int] = None
    max_items: Optional[int] = None
    is_first_question: bool = False
    candidate_name: Optional[str] = None
    job_id: Optional[str] = None
    asked_item_ids: frozenset = frozenset()
