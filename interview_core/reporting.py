# interview_core/reporting.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import AssessmentNotFound
from .integrity import compute_integrity_risk
from .storage import AssessmentStore
from .types import IntegrityEvent, IntegrityRisk, StopReason

MAX_TOTAL = 9


@dataclass(frozen=True)
class AssessmentSummary:
    assessment_id: str
    total_score: int  # 0..100
    integrity: IntegrityRisk
    item_count: int
    scored_count: int
    stop_reason: Optional[StopReason]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessmentId": self.assessment_id,
            "totalScore": self.total_score,
            "integrity": {
                "risk": self.integrity.risk,
                "band": self.integrity.band,
                "reasons": list(self.integrity.reasons),
            },
            "itemCount": self.item_count,
            "scoredCount": self.scored_count,
            "stopReason": self.stop_reason,
        }


def scaled_score(totals: List[int]) -> int:
    """Average of per-item totals (0..9) scaled to 0..100; unscored items are skipped."""
    if not totals:
        return 0
    avg = sum(totals) / len(totals)
    return int(avg / MAX_TOTAL * 100 + 0.5)  # half up


async def assessment_summary(store: AssessmentStore, assessment_id: str) -> AssessmentSummary:
    a = await store.get_assessment(assessment_id)
    if a is None:
        raise AssessmentNotFound(assessment_id)
    items = await store.list_item_events(assessment_id)
    totals = [e.total for e in items if e.total is not None]
    events: List[IntegrityEvent] = [ev for e in items for ev in e.events]
    return AssessmentSummary(
        assessment_id=a.id,
        total_score=scaled_score(totals),
        integrity=compute_integrity_risk(events),
        item_count=len(items),
        scored_count=len(totals),
        stop_reason=a.stop_reason,
    )
