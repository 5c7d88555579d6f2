from __future__ import annotations
import argparse, asyncio, json, logging, time
from interview_core.engine import build_engine
from interview_core.errors import AssessmentFinished, QuestionsExhausted
from interview_core.schemas import SignalIn
def ask(prompt: str) -> str:
    print(prompt)
    while True:
        v = input("> ").strip()
        if v: return v
        print("Please type an answer.")
async def run(job_id: str, minutes: int, source: str | None, name: str | None) -> dict:
    engine = build_engine(question_source=source)
    a = await engine.create_assessment(job_id, duration_minutes=minutes, candidate_name=name)
    print(f"Interview {a.id} ({job_id}, {a.duration_minutes} min)")
    while True:
        try:
            q = await engine.next_question(a.id)
        except (AssessmentFinished, QuestionsExhausted) as e:
            print(f"Stopped: {e.code}")
            break
        t0 = time.perf_counter(); text = ask(f"[{q.difficulty}] {q.question}"); rt = time.perf_counter() - t0
        # a very slow answer is recorded the way the browser would flag it
        signals = [SignalIn(type="latencyOutlier", meta={"seconds": round(rt, 1)})] if rt > 300 else []
        res = await engine.submit_answer(a.id, q.item_id, text, question_text=q.question, signals=signals)
        print(f"  score {res.outcome.total}/9 (agreement {res.outcome.kappa:.2f}) -> next {res.next_difficulty}")
        if res.outcome.follow_up: print(f"  follow-up: {res.outcome.follow_up}")
    return (await engine.summary(a.id)).to_dict()
def main():
    ap = argparse.ArgumentParser(description="Console interview driver")
    ap.add_argument("--job", default="finance-ap")
    ap.add_argument("--minutes", type=int, default=15)
    ap.add_argument("--source", choices=["llm", "bank"], default=None)
    ap.add_argument("--name", default=None)
    args = ap.parse_args()
    logging.basicConfig(level=logging.WARNING)
    summary = asyncio.run(run(args.job, args.minutes, args.source, args.name))
    print(json.dumps(summary, indent=2))
if __name__ == "__main__": main()
