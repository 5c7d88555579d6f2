# interview_core/staircase.py
from __future__ import annotations

import random
from typing import Iterable, List, Optional

from .config import DIFFICULTIES, INITIAL_STEP, STEP_DOWN_SCORE, STEP_UP_SCORE
from .types import Difficulty, ItemTemplate, SelectionResult, StaircaseState


def _clamp_step(idx: int) -> Difficulty:
    return DIFFICULTIES[max(0, min(len(DIFFICULTIES) - 1, idx))]  # type: ignore[return-value]


def transition_step(current: Difficulty, last_score: Optional[float] = None) -> Difficulty:
    """Next tier from the last item total (0..9); saturates at easy/hard."""
    if last_score is None:
        return current
    idx = DIFFICULTIES.index(current)
    if last_score >= STEP_UP_SCORE:
        return _clamp_step(idx + 1)
    if last_score <= STEP_DOWN_SCORE:
        return _clamp_step(idx - 1)
    return current


def replay_step(scores: Iterable[Optional[float]], start: Difficulty = INITIAL_STEP) -> Difficulty:
    """Tier reached after feeding each graded total through the staircase in order."""
    step = start
    for s in scores:
        step = transition_step(step, s)
    return step


def initial_state(max_items: int) -> StaircaseState:
    return StaircaseState(step=INITIAL_STEP, asked_ids=set(), max_items=int(max_items))


def select_next_item(
    state: StaircaseState,
    bank: List[ItemTemplate],
    last_score: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> Optional[SelectionResult]:
    """Pick a not-yet-asked item at the next tier, uniformly at random.

    Returns None when the tier has nothing left; the caller decides what to do.
    """
    next_step = transition_step(state.step, last_score)
    pool = [it for it in bank if it.difficulty == next_step and it.id not in state.asked_ids]
    if not pool:
        return None
    pick = (rng or random).choice(pool)
    next_state = StaircaseState(
        step=next_step,
        asked_ids=set(state.asked_ids) | {pick.id},
        max_items=state.max_items,
    )
    return SelectionResult(next_item=pick, next_state=next_state)


__all__ = ["transition_step", "replay_step", "initial_state", "select_next_item"]
