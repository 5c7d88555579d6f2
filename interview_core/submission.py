"""Race-safe answer submission.

Submissions for one assessment are serialised by the store's exclusive row
lock.  The stop rules are re-checked under that lock, so when several
requests compete for the last slot exactly one row is written and the rest
see ``MaxItemsReached``.  The unique (assessment_id, item_id) index backs up
the lock against duplicate submissions of the same item.

Grading is not done here: the raw answer is committed first, and the score is
attached later by ``record_score`` in a separate write.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from .errors import (
    AssessmentNotFound,
    DuplicateSubmission,
    MaxItemsReached,
    StoreError,
    TimeExpired,
    UniqueViolation,
    ValidationFailed,
    finished_error,
)
from .question_bank import question_text as bank_question_text
from .schemas import SignalIn, SubmitAnswerRequest
from .session import SessionController
from .storage import AssessmentStore
from .types import GradeOutcome, SubmissionReceipt

log = logging.getLogger(__name__)

SignalLike = Union[SignalIn, Mapping[str, object]]


class SubmissionManager:
    def __init__(self, store: AssessmentStore, controller: SessionController):
        self.store = store
        self.controller = controller

    def _validate(self, assessment_id, item_id, answer_text, question_text, signals, client_ts) -> SubmitAnswerRequest:
        try:
            return SubmitAnswerRequest.model_validate({
                "assessment_id": assessment_id,
                "item_id": item_id,
                "answer_text": answer_text,
                "question_text": question_text,
                "client_ts": client_ts,
                "signals": list(signals or ()),
            })
        except ValidationError as e:
            raise ValidationFailed("invalid submission", errors=e.errors(include_url=False))

    async def submit_answer(
        self,
        assessment_id: str,
        item_id: str,
        answer_text: str,
        question_text: Optional[str] = None,
        signals: Iterable[SignalLike] = (),
        client_ts: Optional[Union[datetime, str]] = None,
    ) -> SubmissionReceipt:
        req = self._validate(assessment_id, item_id, answer_text, question_text, signals, client_ts)

        # cheap rejection before queueing on the lock
        current = await self.store.get_assessment(req.assessment_id)
        if current is None:
            raise AssessmentNotFound(req.assessment_id)
        if current.is_finished:
            raise finished_error(req.assessment_id, current.stop_reason)

        stopped: Optional[str] = None
        try:
            async with self.store.transaction(req.assessment_id) as tx:
                a = tx.assessment
                if a is None:
                    raise AssessmentNotFound(req.assessment_id)
                if a.is_finished:
                    raise finished_error(req.assessment_id, a.stop_reason)

                now = self.controller.clock()
                count = tx.count_items()
                decision = self.controller.evaluate(a, count, now=now)
                if decision.should_stop:
                    # the finish commits with this transaction; the error is raised after
                    if tx.finish(decision.reason, now):
                        tx.revoke_sessions(now)
                    stopped = decision.reason
                else:
                    text = req.question_text or bank_question_text(a.job_id, req.item_id) or f"Item {req.item_id}"
                    events = [s.to_event(default_item_id=req.item_id) for s in req.signals]
                    evt = tx.insert_item_event(req.item_id, req.answer_text, text, events, now)
                    first = tx.mark_started(now)
        except UniqueViolation:
            log.info("duplicate_submission id=%s item=%s", req.assessment_id, req.item_id)
            raise DuplicateSubmission(req.assessment_id, req.item_id)

        if stopped == "MAX_ITEMS":
            log.info("assessment_stopped id=%s reason=MAX_ITEMS", req.assessment_id)
            raise MaxItemsReached(req.assessment_id)
        if stopped == "TIME":
            log.info("assessment_stopped id=%s reason=TIME", req.assessment_id)
            raise TimeExpired(req.assessment_id)

        if first:
            log.info("assessment_started id=%s", req.assessment_id)
        log.info("item_submitted id=%s item=%s n=%d signals=%d client_ts=%s",
                 req.assessment_id, req.item_id, count + 1, len(events),
                 req.client_ts.isoformat() if req.client_ts else "-")
        return SubmissionReceipt(
            item_event_id=evt.id,
            item_id=req.item_id,
            question_text=text,
            item_number=count + 1,
            started_at=evt.t_start,
        )

    async def record_score(self, item_event_id: str, outcome: GradeOutcome, t_end: Optional[datetime] = None) -> None:
        try:
            await self.store.update_score(item_event_id, outcome.score_payload(), t_end or self.controller.clock())
        except StoreError:
            log.error("score write rejected item_event=%s", item_event_id)
            raise


__all__ = ["SubmissionManager"]
