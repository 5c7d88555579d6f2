from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Iterable

import pytest

from interview_core.engine import InterviewEngine
from interview_core.errors import OracleError
from interview_core.storage import AssessmentStore
from interview_core.types import BarsGrade, Criteria, GradeRequest, Question, QuestionRequest

T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)


class ScriptedGrader:
    """Grading oracle answering from a seed -> criteria script."""

    def __init__(self, by_seed: dict[int, tuple[int, int, int]] | None = None,
                 follow_ups: dict[int, str] | None = None, fail_seeds: Iterable[int] = ()):
        self.by_seed = by_seed or {}
        self.follow_ups = follow_ups or {}
        self.fail_seeds = set(fail_seeds)
        self.calls: list[GradeRequest] = []

    async def grade_answer(self, req: GradeRequest) -> BarsGrade:
        self.calls.append(req)
        if req.seed in self.fail_seeds:
            raise OracleError(f"scripted failure for seed {req.seed}")
        c = self.by_seed.get(req.seed, (2, 2, 2))
        return BarsGrade(criteria=Criteria(*c), follow_up=self.follow_ups.get(req.seed, ""))

    @property
    def seeds(self) -> list[int]:
        return [c.seed for c in self.calls]


class ScriptedQuestions:
    """Question oracle that numbers its questions."""

    def __init__(self):
        self.calls: list[QuestionRequest] = []

    async def generate_question(self, req: QuestionRequest) -> Question:
        self.calls.append(req)
        n = len(self.calls)
        return Question(question=f"Question {n}?", item_id=f"q_{n:08x}", difficulty=req.difficulty or "easy")


def chat_response(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeChatClient:
    """Stands in for ``AsyncOpenAI``: ``client.chat.completions.create(**kw)``.

    ``script`` maps model name to a list of outcomes consumed in order; an
    outcome is response text or an exception instance to raise.
    """

    def __init__(self, script: dict[str, list]):
        self.script = {k: list(v) for k, v in script.items()}
        self.calls: list[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.calls.append(kwargs)
        outcomes = self.script.get(kwargs["model"]) or []
        out = outcomes.pop(0) if outcomes else RuntimeError(f"no scripted outcome for {kwargs['model']}")
        if isinstance(out, BaseException):
            raise out
        return chat_response(out)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> AssessmentStore:
    return AssessmentStore(lock_timeout=2.0)


@pytest.fixture
def grader() -> ScriptedGrader:
    return ScriptedGrader()


@pytest.fixture
def questions() -> ScriptedQuestions:
    return ScriptedQuestions()


@pytest.fixture
def engine(store, grader, questions, clock) -> InterviewEngine:
    return InterviewEngine(store, grader=grader, questions=questions, clock=clock)
