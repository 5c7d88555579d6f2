"""Assessment lifecycle: stop rules and state transitions.

The controller only answers "should this assessment stop, and why" and
performs the terminal transition.  Prompt wording is left to the callers; it
hands out numbers (time remaining, progress) and nothing else.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from .config import MAX_ITEMS
from .errors import AssessmentNotFound, finished_error
from .storage import AssessmentStore, utcnow
from .types import Assessment, AssessmentState, StopDecision, StopReason

log = logging.getLogger(__name__)


class SessionController:
    def __init__(
        self,
        store: AssessmentStore,
        max_items: int = MAX_ITEMS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.max_items = int(max_items)
        self.clock = clock

    def evaluate(self, assessment: Assessment, num_items: int, now: Optional[datetime] = None) -> StopDecision:
        # item limit wins over time when both apply
        if num_items >= self.max_items:
            return StopDecision(True, "MAX_ITEMS")
        if assessment.started_at is not None:
            now = now or self.clock()
            elapsed_min = (now - assessment.started_at).total_seconds() / 60.0
            if elapsed_min > assessment.duration_minutes:
                return StopDecision(True, "TIME")
        return StopDecision(False)

    async def enforce(self, assessment_id: str) -> Assessment:
        """Raise if the assessment may not continue; stops it first when a rule fires."""
        a = await self.store.get_assessment(assessment_id)
        if a is None:
            raise AssessmentNotFound(assessment_id)
        if a.is_finished:
            raise finished_error(assessment_id, a.stop_reason)
        decision = self.evaluate(a, await self.store.count_items(assessment_id))
        if decision.should_stop:
            await self.stop(assessment_id, decision.reason)
            raise finished_error(assessment_id, decision.reason)
        return a

    async def stop(self, assessment_id: str, reason: StopReason) -> bool:
        """Finish the assessment and revoke its sessions; a no-op if already finished."""
        changed = await self.store.finish_if_active(assessment_id, reason, now=self.clock())
        if changed:
            log.info("assessment_stopped id=%s reason=%s", assessment_id, reason)
        return changed

    def time_remaining_seconds(self, assessment: Assessment, now: Optional[datetime] = None) -> Optional[float]:
        if assessment.started_at is None:
            return None
        now = now or self.clock()
        elapsed = (now - assessment.started_at).total_seconds()
        return max(0.0, assessment.duration_minutes * 60.0 - elapsed)

    def item_progress(self, num_items: int) -> float:
        if self.max_items <= 0:
            return 1.0
        return min(1.0, num_items / self.max_items)

    @staticmethod
    def state(assessment: Assessment) -> AssessmentState:
        if assessment.finished_at is not None:
            return "finished"
        if assessment.started_at is not None:
            return "active"
        return "created"


__all__ = ["SessionController"]
