from __future__ import annotations
import json, random, re, importlib.resources as ir
from functools import lru_cache
from typing import Dict, List, Optional
from .config import INITIAL_STEP, MAX_ITEMS
from .staircase import select_next_item
from .types import ItemTemplate, Question, QuestionRequest, StaircaseState

_PARAM_RX = re.compile(r"\{(\w+)\}")


@lru_cache(maxsize=1)
def load_bank() -> Dict[str, List[ItemTemplate]]:
    data = ir.files(__package__).joinpath("data").joinpath("bank.json").read_text(encoding="utf-8")
    raw = json.loads(data)
    return {job_id: [ItemTemplate(**r) for r in rows] for job_id, rows in raw.items()}


def bank_for(job_id: str) -> List[ItemTemplate]:
    return list(load_bank().get(job_id, []))


def render_template(tpl: str, params: Dict[str, object]) -> str:
    return _PARAM_RX.sub(lambda m: str(params.get(m.group(1), "")), tpl)


def question_text(job_id: str, item_id: str) -> Optional[str]:
    for it in load_bank().get(job_id, []):
        if it.id == item_id:
            return render_template(it.template, it.params)
    return None


class BankQuestionSource:
    """Question source backed by the static bank and the staircase picker.

    Selected explicitly (``QUESTION_SOURCE=bank``); it is not a fallback for a
    failing LLM.  Returns None once the target tier has nothing left to ask.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    async def generate_question(self, req: QuestionRequest) -> Optional[Question]:
        bank = bank_for(req.job_id or "")
        state = StaircaseState(
            step=req.difficulty or INITIAL_STEP,
            asked_ids=set(req.asked_item_ids),
            max_items=req.max_items or MAX_ITEMS,
        )
        picked = select_next_item(state, bank, rng=self.rng)
        if picked is None:
            return None
        it = picked.next_item
        return Question(question=render_template(it.template, it.params), item_id=it.id, difficulty=it.difficulty)
