# interview_core/context.py
from __future__ import annotations
from typing import Iterable, List, Optional

from .config import RESUME_PREVIEW_CHARS
from .question_bank import question_text as bank_question_text
from .types import Assessment, HistoryTurn, ItemEvent


def build_job_context(a: Assessment) -> str:
    parts: List[str] = []
    if a.job_description:
        parts.append(f"Job Description: {a.job_description}")
    if a.company_bio:
        parts.append(f"Company: {a.company_bio}")
    if a.recruiter_notes:
        parts.append(f"Recruiter Notes: {a.recruiter_notes}")
    return "\n\n".join(parts)


def build_applicant_context(a: Assessment) -> str:
    parts: List[str] = []
    if a.resume_text:
        resume = a.resume_text
        if len(resume) > RESUME_PREVIEW_CHARS:
            resume = resume[:RESUME_PREVIEW_CHARS] + "..."
        parts.append(f"Resume: {resume}")
    if isinstance(a.application_answers, dict) and a.application_answers:
        answers = "; ".join(f"{k}: {v}" for k, v in a.application_answers.items())
        parts.append(f"Application Answers: {answers}")
    return "\n\n".join(parts)


def build_history(
    events_newest_first: Iterable[ItemEvent],
    job_id: str,
    limit: int,
    exclude_item_id: Optional[str] = None,
) -> List[HistoryTurn]:
    """Last ``limit`` answered turns, oldest first."""
    rows = [e for e in events_newest_first if e.item_id != exclude_item_id][:limit]
    out: List[HistoryTurn] = []
    for e in reversed(rows):
        if not e.answer_text:
            continue
        q = e.question_text or bank_question_text(job_id, e.item_id) or f"Item {e.item_id}"
        out.append(HistoryTurn(question=q, answer=e.answer_text))
    return out
