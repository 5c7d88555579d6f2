from __future__ import annotations
import asyncio, hashlib, logging, random, time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol, TypeVar

import openai

from .cache import ResponseCache, grade_cache_key
from .config import FALLBACK_SEED_OFFSET, LLM_CACHE_TTL_MS, LLM_MAX_TOKENS
from .errors import OracleConfigurationError, OracleError, OracleHttpError, OracleResponseError, OracleTimeout
from .llm_cfg import LLMSettings, client as make_client, settings as load_settings
from .rubrics import (
    GRADER_SYSTEM,
    QUESTION_SYSTEM,
    build_bars_prompt,
    build_first_question_prompt,
    build_question_prompt,
)
from .schemas import parse_bars_response, parse_question_response
from .types import BarsGrade, GradeRequest, Question, QuestionRequest

log = logging.getLogger(__name__)

T = TypeVar("T")


class GradingOracle(Protocol):
    async def grade_answer(self, req: GradeRequest) -> BarsGrade: ...


class QuestionOracle(Protocol):
    async def generate_question(self, req: QuestionRequest) -> Optional[Question]: ...


@dataclass(frozen=True)
class Attempt:
    model: str
    seed: int


def attempts_for(s: LLMSettings, seed: int, fallback_seed: Optional[int] = None) -> List[Attempt]:
    out = [Attempt(s.model_primary, seed)]
    if s.model_fallback:
        out.append(Attempt(s.model_fallback, seed + FALLBACK_SEED_OFFSET if fallback_seed is None else fallback_seed))
    return out


async def run_attempts(attempts: List[Attempt], call: Callable[[Attempt], Awaitable[T]], what: str) -> T:
    """Try each attempt in order; first success wins, the last failure is raised."""
    last: Optional[OracleError] = None
    for idx, att in enumerate(attempts):
        try:
            return await call(att)
        except OracleError as e:
            last = e
            log.warning("oracle %s failed model=%s seed=%s attempt=%d/%d: %s",
                        what, att.model, att.seed, idx + 1, len(attempts), e)
    if last is None:
        raise OracleConfigurationError(f"no model configured for {what}")
    raise last


def new_item_id(question: str) -> str:
    digest = hashlib.sha1(f"{question}{time.time_ns()}".encode("utf-8")).hexdigest()
    return f"q_{digest[:8]}"


def _token_param(model: str) -> dict:
    if "gpt-4o" in model or "o1" in model:
        return {"max_completion_tokens": LLM_MAX_TOKENS}
    return {"max_tokens": LLM_MAX_TOKENS}


class OpenAIOracle:
    """Grading and question generation over the Chat Completions API."""

    def __init__(
        self,
        llm_settings: Optional[LLMSettings] = None,
        llm_client=None,
        cache: Optional[ResponseCache] = None,
        cache_ttl_ms: int = LLM_CACHE_TTL_MS,
    ):
        self._settings = llm_settings
        self._client = llm_client
        self.cache = cache
        self.cache_ttl_ms = cache_ttl_ms

    def settings(self) -> LLMSettings:
        if self._settings is None:
            self._settings = load_settings()
        return self._settings

    def client(self):
        if self._client is None:
            self._client = make_client(self.settings())
        return self._client

    async def _complete(self, model: str, messages: list, seed: int, timeout_ms: int) -> str:
        timeout = timeout_ms / 1000.0
        try:
            resp = await asyncio.wait_for(
                self.client().chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=0,
                    top_p=1,
                    seed=seed,
                    response_format={"type": "json_object"},
                    timeout=timeout,
                    **_token_param(model),
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError):
            raise OracleTimeout(timeout_ms)
        except openai.APIStatusError as e:
            raise OracleHttpError(e.status_code, str(e.message))
        except openai.APIConnectionError as e:
            raise OracleError(f"LLM transport failure: {e}")
        choices = getattr(resp, "choices", None) or []
        content = choices[0].message.content if choices and choices[0].message else None
        if not content or not isinstance(content, str):
            raise OracleResponseError("LLM returned no content")
        return content

    async def grade_answer(self, req: GradeRequest) -> BarsGrade:
        s = self.settings()
        timeout_ms = req.timeout_ms or s.timeout_ms
        prompt = build_bars_prompt(
            item_id=req.item_id,
            question=req.prompt,
            answer=req.answer,
            job_context=req.job_context,
            applicant_context=req.applicant_context,
            history=req.history,
            time_remaining=req.time_remaining,
        )
        messages = [{"role": "system", "content": GRADER_SYSTEM}, {"role": "user", "content": prompt}]

        async def one(att: Attempt) -> BarsGrade:
            key = grade_cache_key(req.item_id, att.model, req.seed, req.answer, req.prompt,
                                  req.job_context, req.applicant_context)
            if self.cache is not None:
                hit = self.cache.get(key)
                if hit is not None:
                    return hit
            text = await self._complete(att.model, messages, att.seed, timeout_ms)
            parsed = parse_bars_response(text)
            if not parsed.ok:
                raise OracleResponseError(parsed.error or "Invalid model response")
            if self.cache is not None:
                self.cache.set(key, parsed.value, self.cache_ttl_ms / 1000.0)
            return parsed.value

        return await run_attempts(attempts_for(s, req.seed), one, "grade")

    async def generate_question(self, req: QuestionRequest) -> Question:
        s = self.settings()
        timeout_ms = req.timeout_ms or s.timeout_ms
        if req.is_first_question:
            prompt = build_first_question_prompt(req.job_context, req.applicant_context, req.candidate_name)
        else:
            prompt = build_question_prompt(
                req.job_context, req.applicant_context, req.history,
                difficulty=req.difficulty, time_remaining=req.time_remaining,
                item_number=req.item_number, max_items=req.max_items,
            )
        messages = [{"role": "system", "content": QUESTION_SYSTEM}, {"role": "user", "content": prompt}]

        async def one(att: Attempt) -> Question:
            text = await self._complete(att.model, messages, att.seed, timeout_ms)
            parsed = parse_question_response(text)
            if not parsed.ok:
                raise OracleResponseError(parsed.error or "Invalid model response")
            q = parsed.value
            return Question(question=q.question, item_id=new_item_id(q.question), difficulty=q.difficulty)

        seed = random.randint(0, 999_999)
        return await run_attempts(attempts_for(s, seed, fallback_seed=random.randint(0, 999_999)), one, "question")
