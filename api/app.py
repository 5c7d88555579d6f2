from __future__ import annotations
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import json, logging, os, typing as t

from interview_core.engine import InterviewEngine, build_engine
from interview_core.errors import (
    AssessmentFinished,
    AssessmentNotFound,
    DuplicateSubmission,
    InterviewError,
    LockContention,
    OracleError,
    OracleTimeout,
    QuestionsExhausted,
    ValidationFailed,
)
from interview_core.schemas import CreateAssessmentRequest, NextQuestionRequest, SignalIn, SubmitAnswerRequest

log = logging.getLogger(__name__)

ENGINE: InterviewEngine = build_engine()

app = FastAPI(title="Interview Engine API")


# ---- Error mapping ----
def _status_for(err: InterviewError) -> int:
    if isinstance(err, ValidationFailed):
        return 400
    if isinstance(err, AssessmentNotFound):
        return 404
    if isinstance(err, AssessmentFinished):
        return 410
    if isinstance(err, (DuplicateSubmission, QuestionsExhausted)):
        return 409
    if isinstance(err, LockContention):
        return 503
    if isinstance(err, OracleTimeout):
        return 504
    if isinstance(err, OracleError):
        return 502
    return 500


def _error_body(code: str, retryable: bool = False) -> dict[str, t.Any]:
    return {"ok": False, "error": code, "retryable": retryable}


@app.exception_handler(InterviewError)
async def _interview_error(request: Request, exc: InterviewError):
    status = _status_for(exc)
    if status >= 500:
        log.error("%s %s -> %d %s: %s", request.method, request.url.path, status, exc.code, exc)
    return JSONResponse(status_code=status, content=_error_body(exc.code, exc.retryable))


@app.exception_handler(RequestValidationError)
async def _bad_request(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=_error_body(ValidationFailed.code))


# ---- Health ----
@app.get("/")
def root():
    return {"status": "ok", "service": "interview-engine-api"}


@app.get("/health")
def health():
    return {
        "llm_backend": os.getenv("LLM_BACKEND", "openai"),
        "question_source": os.getenv("QUESTION_SOURCE", "llm"),
        "llm_config_present": bool(os.getenv("LLM_API_KEY") or os.getenv("AZURE_OPENAI_API_KEY")),
    }


# ---- Assessments ----
@app.post("/assessments")
async def create_assessment(req: CreateAssessmentRequest):
    a = await ENGINE.create_assessment(**req.model_dump())
    return {"ok": True, "assessmentId": a.id, "jobId": a.job_id, "durationMinutes": a.duration_minutes}


@app.get("/assessments/{assessment_id}")
async def get_assessment(assessment_id: str):
    a = await ENGINE.store.get_assessment(assessment_id)
    if a is None:
        raise AssessmentNotFound(assessment_id)
    n = await ENGINE.store.count_items(assessment_id)
    remaining = ENGINE.controller.time_remaining_seconds(a)
    return {
        "ok": True,
        "assessmentId": a.id,
        "state": ENGINE.controller.state(a),
        "stopReason": a.stop_reason,
        "items": n,
        "progress": ENGINE.controller.item_progress(n),
        "timeRemaining": None if remaining is None else int(remaining),
    }


@app.post("/assessments/{assessment_id}/sessions")
async def open_session(assessment_id: str):
    s = await ENGINE.open_session(assessment_id)
    return {"ok": True, "sessionId": s.id}


@app.post("/assessments/next-question")
async def next_question(req: NextQuestionRequest):
    q = await ENGINE.next_question(req.assessment_id, req.difficulty)
    body: dict[str, t.Any] = {
        "ok": True,
        "question": q.question,
        "itemId": q.item_id,
        "difficulty": q.difficulty,
        "isFirstQuestion": q.is_first_question,
    }
    if q.time_remaining is not None:
        body["timeRemaining"] = q.time_remaining
    return body


@app.post("/assessments/submit-answer")
async def submit_answer(req: SubmitAnswerRequest):
    res = await ENGINE.submit_answer(
        req.assessment_id,
        req.item_id,
        req.answer_text,
        question_text=req.question_text,
        signals=req.signals,
        client_ts=req.client_ts,
    )
    return {
        "ok": True,
        "itemEventId": res.receipt.item_event_id,
        "score": res.outcome.score_payload(),
        "followUp": res.outcome.follow_up,
        "nextDifficulty": res.next_difficulty,
    }


@app.get("/assessments/{assessment_id}/report")
async def report(assessment_id: str):
    summary = await ENGINE.summary(assessment_id)
    return {"ok": True, **summary.to_dict()}


# ---- Signals (beacons may arrive as text/plain) ----
@app.post("/signals", status_code=204)
async def signals(request: Request):
    raw = await request.body()
    try:
        payload = json.loads(raw or b"{}")
        sig = SignalIn.model_validate(payload)
    except (ValueError, ValidationError):
        raise ValidationFailed("invalid signal")
    log.info("signal.received type=%s item=%s at=%s", sig.type, sig.item_id, sig.at)
    return Response(status_code=204)
