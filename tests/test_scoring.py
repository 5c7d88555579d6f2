from __future__ import annotations

import pytest

from interview_core.errors import OracleError, OracleResponseError
from interview_core.scoring import (
    GradingService,
    choose_by_tiebreak,
    compute_agreement,
    l1_distance,
    needs_tiebreak,
    score_bars,
)
from interview_core.types import BarsGrade, Criteria
from tests.conftest import ScriptedGrader


async def _grade(grader: ScriptedGrader):
    return await GradingService(grader).grade_and_score_answer("q_1", "What would you do?", "I would escalate.")


def test_agreement_and_distance_helpers():
    a, b = Criteria(1, 2, 3), Criteria(1, 2, 0)
    assert compute_agreement(a, a) == 1.0
    assert compute_agreement(a, b) == pytest.approx(2 / 3)
    assert compute_agreement(Criteria(0, 0, 0), Criteria(1, 1, 1)) == 0.0
    assert l1_distance(a, b) == 3


def test_two_of_three_does_not_need_tiebreak_but_one_does():
    assert not needs_tiebreak(2 / 3)
    assert needs_tiebreak(1 / 3)
    assert needs_tiebreak(0.0)
    assert not needs_tiebreak(1.0)


def test_tiebreak_ties_favour_pass1_and_borrow_follow_up():
    p1 = BarsGrade(Criteria(1, 1, 1))
    p2 = BarsGrade(Criteria(3, 3, 3), follow_up="p2 asks")
    tie = BarsGrade(Criteria(2, 2, 2), follow_up="tie asks")
    chosen = choose_by_tiebreak(p1, p2, tie)
    assert chosen.criteria == p1.criteria
    assert chosen.follow_up == "tie asks"


def test_score_bars_sums_criteria():
    assert score_bars(Criteria(0, 0, 0)) == 0
    assert score_bars(Criteria(3, 3, 3)) == 9
    with pytest.raises(OracleResponseError):
        score_bars(Criteria(4, 3, 3))


@pytest.mark.asyncio
async def test_identical_passes_accept_pass1_without_tiebreak():
    grader = ScriptedGrader({1: (2, 3, 1), 2: (2, 3, 1)}, follow_ups={1: "Which approver?"})
    out = await _grade(grader)
    assert sorted(grader.seeds) == [1, 2]
    assert out.kappa == 1.0
    assert out.total == 6
    assert out.follow_up == "Which approver?"


@pytest.mark.asyncio
async def test_two_of_three_agreement_keeps_pass1():
    grader = ScriptedGrader({1: (2, 2, 3), 2: (2, 2, 0)})
    out = await _grade(grader)
    assert 3 not in grader.seeds
    assert out.criteria == Criteria(2, 2, 3)
    assert out.kappa == pytest.approx(2 / 3)


@pytest.mark.asyncio
async def test_one_of_three_runs_tiebreak_and_picks_closer_pass():
    grader = ScriptedGrader({1: (0, 0, 3), 2: (3, 3, 3), 3: (3, 2, 3)})
    out = await _grade(grader)
    assert grader.seeds[-1] == 3
    assert out.criteria == Criteria(3, 3, 3)
    assert out.total == 9
    assert out.kappa == pytest.approx(1 / 3)


@pytest.mark.asyncio
async def test_total_always_matches_chosen_criteria():
    scripts = [
        {1: (0, 1, 2), 2: (3, 1, 0), 3: (1, 1, 1)},
        {1: (3, 0, 0), 2: (0, 3, 3), 3: (0, 3, 2)},
        {1: (1, 1, 1), 2: (1, 1, 1)},
    ]
    for s in scripts:
        out = await _grade(ScriptedGrader(s))
        assert out.total == sum(out.criteria.values())
        assert 0 <= out.total <= 9


@pytest.mark.asyncio
async def test_oracle_failure_propagates_and_no_score_is_invented():
    grader = ScriptedGrader({1: (2, 2, 2)}, fail_seeds=[2])
    with pytest.raises(OracleError):
        await _grade(grader)


@pytest.mark.asyncio
async def test_tiebreak_failure_propagates():
    grader = ScriptedGrader({1: (0, 0, 0), 2: (3, 3, 3)}, fail_seeds=[3])
    with pytest.raises(OracleError):
        await _grade(grader)


@pytest.mark.asyncio
async def test_context_is_forwarded_to_every_pass():
    grader = ScriptedGrader({1: (0, 0, 0), 2: (3, 3, 3), 3: (1, 1, 1)})
    await GradingService(grader).grade_and_score_answer(
        "q_9", "Prompt", "Answer", job_context="AP clerk", applicant_context="Resume: x",
        timeout_ms=500, time_remaining=4.0,
    )
    assert len(grader.calls) == 3
    for c in grader.calls:
        assert (c.item_id, c.job_context, c.applicant_context, c.timeout_ms, c.time_remaining) == (
            "q_9", "AP clerk", "Resume: x", 500, 4.0)
