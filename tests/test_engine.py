from __future__ import annotations

import random

import pytest

from interview_core.engine import InterviewEngine
from interview_core.errors import (
    AssessmentNotFound,
    MaxItemsReached,
    OracleError,
    QuestionsExhausted,
    TimeExpired,
    ValidationFailed,
)
from interview_core.question_bank import BankQuestionSource
from tests.conftest import ScriptedGrader


@pytest.mark.asyncio
async def test_full_turn_submit_grade_score_and_step_up(engine, grader, questions, store):
    grader.by_seed.update({1: (3, 3, 2), 2: (3, 3, 2)})
    a = await engine.create_assessment("finance-ap", job_description="AP clerk", candidate_name="Ada")

    q = await engine.next_question(a.id)
    assert q.is_first_question and q.time_remaining is None
    req = questions.calls[0]
    assert req.is_first_question and req.item_number == 1 and req.difficulty == "easy"
    assert req.candidate_name == "Ada" and "AP clerk" in req.job_context

    res = await engine.submit_answer(a.id, q.item_id, "I would verify the vendor by phone.", question_text=q.question)
    assert res.outcome.total == 8
    assert res.next_difficulty == "medium"

    [evt] = await store.list_item_events(a.id)
    assert evt.score["total"] == 8 and evt.t_end is not None

    q2 = await engine.next_question(a.id)
    req2 = questions.calls[1]
    assert not q2.is_first_question and q2.time_remaining == 15 * 60
    assert req2.difficulty == "medium" and req2.item_number == 2
    assert [h.question for h in req2.history] == [q.question]
    assert grader.calls[0].history is None


@pytest.mark.asyncio
async def test_explicit_difficulty_overrides_staircase(engine, questions):
    a = await engine.create_assessment("finance-ap")
    await engine.next_question(a.id, difficulty="hard")
    assert questions.calls[0].difficulty == "hard"
    with pytest.raises(ValidationFailed):
        await engine.next_question(a.id, difficulty="impossible")


@pytest.mark.asyncio
async def test_grading_history_excludes_current_answer(engine, grader):
    a = await engine.create_assessment("finance-ap")
    for i in range(3):
        await engine.submit_answer(a.id, f"q_{i}", f"answer {i}", question_text=f"Q{i}?")
    last = [c for c in grader.calls if c.item_id == "q_2"][0]
    assert [h.question for h in last.history] == ["Q0?", "Q1?"]


@pytest.mark.asyncio
async def test_grading_failure_leaves_answer_unscored(store, questions, clock):
    engine = InterviewEngine(store, grader=ScriptedGrader(fail_seeds=[1, 2]), questions=questions, clock=clock)
    a = await engine.create_assessment("finance-ap")
    with pytest.raises(OracleError):
        await engine.submit_answer(a.id, "q_1", "answer")
    [evt] = await store.list_item_events(a.id)
    assert evt.score is None


@pytest.mark.asyncio
async def test_next_question_enforces_stop_rules(store, grader, questions, clock):
    engine = InterviewEngine(store, grader=grader, questions=questions, max_items=2, clock=clock)
    a = await engine.create_assessment("finance-ap")
    await engine.submit_answer(a.id, "q_1", "a")
    await engine.submit_answer(a.id, "q_2", "b")
    with pytest.raises(MaxItemsReached):
        await engine.next_question(a.id)

    b = await engine.create_assessment("finance-ap", duration_minutes=5)
    await engine.submit_answer(b.id, "q_1", "a")
    clock.advance(minutes=6)
    with pytest.raises(TimeExpired):
        await engine.next_question(b.id)
    assert (await store.get_assessment(b.id)).stop_reason == "TIME"


@pytest.mark.asyncio
async def test_bank_source_walks_tiers_without_repeats(store, clock):
    grader = ScriptedGrader({1: (3, 3, 3), 2: (3, 3, 3)})
    engine = InterviewEngine(store, grader=grader, questions=BankQuestionSource(rng=random.Random(3)), clock=clock)
    a = await engine.create_assessment("finance-ap")

    asked = []
    tiers = []
    for _ in range(4):
        q = await engine.next_question(a.id)
        asked.append(q.item_id)
        tiers.append(q.difficulty)
        await engine.submit_answer(a.id, q.item_id, "Strong answer")
    assert tiers == ["easy", "medium", "hard", "hard"]
    assert len(set(asked)) == 4

    with pytest.raises(QuestionsExhausted):
        await engine.next_question(a.id)


@pytest.mark.asyncio
async def test_summary_after_a_few_turns(engine, grader):
    grader.by_seed.update({1: (3, 3, 3), 2: (3, 3, 3)})
    a = await engine.create_assessment("finance-ap")
    await engine.submit_answer(a.id, "q_1", "a", signals=[{"type": "paste"}, {"type": "paste"}])
    grader.by_seed.update({1: (0, 0, 0), 2: (0, 0, 0)})
    await engine.submit_answer(a.id, "q_2", "b")

    s = await engine.summary(a.id)
    assert s.total_score == 50
    assert s.item_count == 2 and s.scored_count == 2
    assert s.integrity.reasons == ["2 pastes on q_1"]
    assert s.stop_reason is None


@pytest.mark.asyncio
async def test_open_session_rejected_after_stop(engine):
    a = await engine.create_assessment("finance-ap")
    sess = await engine.open_session(a.id)
    assert sess.assessment_id == a.id
    await engine.controller.stop(a.id, "TIME")
    with pytest.raises(TimeExpired):
        await engine.open_session(a.id)


@pytest.mark.asyncio
async def test_assessment_removed_after_submit_is_not_found(engine, store, grader, monkeypatch):
    a = await engine.create_assessment("finance-ap")
    real_get = store.get_assessment
    seen = []

    async def get_once(aid):
        seen.append(aid)
        return await real_get(aid) if len(seen) == 1 else None

    monkeypatch.setattr(store, "get_assessment", get_once)
    with pytest.raises(AssessmentNotFound):
        await engine.submit_answer(a.id, "q_1", "a")
    assert grader.calls == []
