# interview_core/engine.py
from __future__ import annotations
import logging, math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from .cache import InMemoryTTLCache
from .config import (
    DATA_DIR,
    HISTORY_LIMIT_GRADE,
    HISTORY_LIMIT_QUESTION,
    LLM_CACHE_ENABLED,
    LLM_CACHE_TTL_MS,
    LOCK_TIMEOUT_SEC,
    MAX_ITEMS,
    QUESTION_SOURCE,
)
from .context import build_applicant_context, build_history, build_job_context
from .errors import AssessmentNotFound, OracleError, QuestionsExhausted, ValidationFailed
from .llm_bridge import GradingOracle, OpenAIOracle, QuestionOracle
from .question_bank import BankQuestionSource
from .reporting import AssessmentSummary, assessment_summary
from .schemas import NextQuestionRequest
from .scoring import GradingService
from .session import SessionController
from .staircase import replay_step
from .storage import AssessmentStore, utcnow
from .submission import SignalLike, SubmissionManager
from .types import AccessSession, Assessment, Difficulty, GradeOutcome, QuestionRequest, SubmissionReceipt

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerResult:
    receipt: SubmissionReceipt
    outcome: GradeOutcome
    next_difficulty: Difficulty


@dataclass(frozen=True)
class NextQuestion:
    question: str
    item_id: str
    difficulty: Difficulty
    is_first_question: bool
    time_remaining: Optional[int] = None  # seconds, rounded up


def _minutes(seconds: Optional[float]) -> Optional[float]:
    return None if seconds is None else round(seconds / 60.0, 1)


class InterviewEngine:
    """Submit -> grade -> score -> next question, over one store."""

    def __init__(
        self,
        store: AssessmentStore,
        grader: GradingOracle,
        questions: QuestionOracle,
        max_items: int = MAX_ITEMS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.controller = SessionController(store, max_items=max_items, clock=clock)
        self.submissions = SubmissionManager(store, self.controller)
        self.grading = GradingService(grader)
        self.questions = questions

    # ---- lifecycle ----

    async def create_assessment(self, job_id: str, duration_minutes: Optional[int] = None, **context: Any) -> Assessment:
        a = await self.store.create_assessment(job_id, duration_minutes=duration_minutes, **context)
        log.info("assessment_created id=%s job=%s duration=%d", a.id, a.job_id, a.duration_minutes)
        return a

    async def open_session(self, assessment_id: str) -> AccessSession:
        a = await self.controller.enforce(assessment_id)
        return await self.store.create_session(a.id)

    async def summary(self, assessment_id: str) -> AssessmentSummary:
        return await assessment_summary(self.store, assessment_id)

    # ---- answers ----

    async def submit_answer(
        self,
        assessment_id: str,
        item_id: str,
        answer_text: str,
        question_text: Optional[str] = None,
        signals: Iterable[SignalLike] = (),
        client_ts: Optional[datetime] = None,
    ) -> AnswerResult:
        receipt = await self.submissions.submit_answer(
            assessment_id, item_id, answer_text, question_text, signals, client_ts=client_ts)

        a = await self.store.get_assessment(assessment_id)
        if a is None:
            raise AssessmentNotFound(assessment_id)
        recent = await self.store.list_item_events(assessment_id, newest_first=True, limit=HISTORY_LIMIT_GRADE + 1)
        history = build_history(recent, a.job_id, HISTORY_LIMIT_GRADE, exclude_item_id=item_id)
        remaining = self.controller.time_remaining_seconds(a)

        try:
            outcome = await self.grading.grade_and_score_answer(
                item_id=item_id,
                prompt=receipt.question_text,
                answer=answer_text,
                job_context=build_job_context(a),
                applicant_context=build_applicant_context(a),
                history=history,
                time_remaining=_minutes(remaining),
            )
        except OracleError as e:
            # the raw answer stays committed without a score
            log.error("grading failed id=%s item=%s code=%s: %s", assessment_id, item_id, e.code, e)
            raise
        await self.submissions.record_score(receipt.item_event_id, outcome)
        log.info("answer_scored id=%s item=%s total=%d kappa=%.2f", assessment_id, item_id, outcome.total, outcome.kappa)

        return AnswerResult(receipt=receipt, outcome=outcome, next_difficulty=await self.current_difficulty(assessment_id))

    async def current_difficulty(self, assessment_id: str) -> Difficulty:
        events = await self.store.list_item_events(assessment_id)
        return replay_step(e.total for e in events if e.total is not None)

    # ---- questions ----

    async def next_question(self, assessment_id: str, difficulty: Optional[Difficulty] = None) -> NextQuestion:
        try:
            req = NextQuestionRequest(assessment_id=assessment_id, difficulty=difficulty)
        except ValidationError as e:
            raise ValidationFailed("invalid question request", errors=e.errors(include_url=False))
        a = await self.controller.enforce(req.assessment_id)

        events = await self.store.list_item_events(a.id, newest_first=True)
        n = len(events)
        tier = req.difficulty or replay_step(e.total for e in reversed(events) if e.total is not None)
        remaining = self.controller.time_remaining_seconds(a)
        first = n == 0

        q = await self.questions.generate_question(QuestionRequest(
            job_context=build_job_context(a),
            applicant_context=build_applicant_context(a),
            history=build_history(events, a.job_id, HISTORY_LIMIT_QUESTION),
            difficulty=tier,
            time_remaining=_minutes(remaining),
            item_number=n + 1,
            max_items=self.controller.max_items,
            is_first_question=first,
            candidate_name=a.candidate_name,
            job_id=a.job_id,
            asked_item_ids=frozenset(e.item_id for e in events),
        ))
        if q is None:
            raise QuestionsExhausted(a.id, tier)

        log.info("question_generated id=%s item=%s difficulty=%s first=%s", a.id, q.item_id, q.difficulty, first)
        return NextQuestion(
            question=q.question,
            item_id=q.item_id,
            difficulty=q.difficulty,
            is_first_question=first,
            time_remaining=None if remaining is None else math.ceil(remaining),
        )


def build_engine(
    data_dir: Optional[str] = None,
    oracle: Optional[OpenAIOracle] = None,
    question_source: Optional[str] = None,
    max_items: int = MAX_ITEMS,
) -> InterviewEngine:
    """Wire the default engine from configuration."""
    store = AssessmentStore(data_dir=data_dir if data_dir is not None else (DATA_DIR or None),
                            lock_timeout=LOCK_TIMEOUT_SEC)
    if oracle is None:
        cache = InMemoryTTLCache() if LLM_CACHE_ENABLED else None
        oracle = OpenAIOracle(cache=cache, cache_ttl_ms=LLM_CACHE_TTL_MS)
    source = (question_source or QUESTION_SOURCE).lower()
    questions: QuestionOracle = BankQuestionSource() if source == "bank" else oracle
    return InterviewEngine(store, grader=oracle, questions=questions, max_items=max_items)


__all__ = ["InterviewEngine", "AnswerResult", "NextQuestion", "build_engine"]
