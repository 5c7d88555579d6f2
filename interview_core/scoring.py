"""Multi-pass BARS grading.

Two oracle passes run in parallel with seeds 1 and 2.  When they agree on at
least 2 of the 3 criteria, pass 1 is kept; otherwise a third pass (seed 3)
breaks the tie and whichever primary pass is closer to it by L1 distance wins
(ties go to pass 1).
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from .config import AGREEMENT_THRESHOLD, PRIMARY_SEEDS, TIEBREAK_SEED
from .errors import OracleResponseError
from .llm_bridge import GradingOracle
from .types import BarsGrade, Criteria, GradeOutcome, GradeRequest, HistoryTurn

log = logging.getLogger(__name__)


def compute_agreement(a: Criteria, b: Criteria) -> float:
    pairs = list(zip(a.values(), b.values()))
    return sum(1 for x, y in pairs if x == y) / len(pairs)


def needs_tiebreak(agreement: float) -> bool:
    return round(agreement, 2) < AGREEMENT_THRESHOLD


def l1_distance(a: Criteria, b: Criteria) -> int:
    return sum(abs(x - y) for x, y in zip(a.values(), b.values()))


def choose_by_tiebreak(pass1: BarsGrade, pass2: BarsGrade, tie: BarsGrade) -> BarsGrade:
    chosen = pass1 if l1_distance(pass1.criteria, tie.criteria) <= l1_distance(pass2.criteria, tie.criteria) else pass2
    if not chosen.follow_up and tie.follow_up:
        chosen = BarsGrade(criteria=chosen.criteria, follow_up=tie.follow_up)
    return chosen


def score_bars(criteria: Criteria) -> int:
    total = sum(criteria.values())
    if not 0 <= total <= 9:
        raise OracleResponseError(f"BARS total out of range: {total}")
    return total


class GradingService:
    def __init__(self, oracle: GradingOracle):
        self.oracle = oracle

    async def grade_and_score_answer(
        self,
        item_id: str,
        prompt: str,
        answer: str,
        job_context: Optional[str] = None,
        applicant_context: Optional[str] = None,
        history: Optional[List[HistoryTurn]] = None,
        timeout_ms: Optional[int] = None,
        time_remaining: Optional[float] = None,
    ) -> GradeOutcome:
        def request(seed: int) -> GradeRequest:
            return GradeRequest(
                item_id=item_id,
                prompt=prompt,
                answer=answer,
                seed=seed,
                timeout_ms=timeout_ms,
                job_context=job_context or None,
                applicant_context=applicant_context or None,
                history=list(history) if history else None,
                time_remaining=time_remaining,
            )

        pass1, pass2 = await asyncio.gather(*(self.oracle.grade_answer(request(s)) for s in PRIMARY_SEEDS))
        agreement = compute_agreement(pass1.criteria, pass2.criteria)

        chosen = pass1
        if needs_tiebreak(agreement):
            tie = await self.oracle.grade_answer(request(TIEBREAK_SEED))
            chosen = choose_by_tiebreak(pass1, pass2, tie)
            log.info("grading_tiebreak item=%s agreement=%.3f chose=%s", item_id, agreement,
                     "pass1" if chosen.criteria == pass1.criteria else "pass2")

        return GradeOutcome(
            criteria=chosen.criteria,
            total=score_bars(chosen.criteria),
            follow_up=chosen.follow_up,
            kappa=agreement,
        )


__all__ = [
    "GradingService",
    "compute_agreement",
    "needs_tiebreak",
    "l1_distance",
    "choose_by_tiebreak",
    "score_bars",
]
