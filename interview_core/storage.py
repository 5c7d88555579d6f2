"""Assessment store with exclusive per-assessment row locks.

State lives in memory and, when a data directory is configured, is snapshotted
to a JSON file after every committed write so restarts keep assessments and
item events.  A production deployment should swap this module for a
database-backed implementation that offers the same primitives: a transaction
holding ``SELECT ... FOR UPDATE`` on the assessment row, a unique index on
(assessment_id, item_id) and conditional updates.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import threading
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from .config import DEFAULT_DURATION_MINUTES, LOCK_TIMEOUT_SEC
from .errors import LockContention, StoreError, UniqueViolation
from .types import AccessSession, Assessment, IntegrityEvent, ItemEvent, StopReason

log = logging.getLogger(__name__)

SNAPSHOT_NAME = "assessments.json"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True, default=_json_default), encoding="utf-8")
    tmp.replace(path)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log.warning("unreadable snapshot %s; starting empty", path)
        return default


def _json_default(o: Any) -> Any:
    if isinstance(o, datetime):
        return o.isoformat()
    raise TypeError(f"not JSON serializable: {type(o).__name__}")


def _dt(raw: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(raw) if raw else None


def _copy_assessment(a: Assessment) -> Assessment:
    return dataclasses.replace(a)


def _copy_item(e: ItemEvent) -> ItemEvent:
    return dataclasses.replace(e, events=list(e.events), score=dict(e.score) if e.score else None)


class Transaction:
    """Writes staged while the assessment lock is held; applied on commit."""

    def __init__(self, store: "AssessmentStore", assessment_id: str):
        self._store = store
        self.assessment_id = assessment_id
        current = store._assessments.get(assessment_id)
        self.assessment: Optional[Assessment] = _copy_assessment(current) if current else None
        self._inserts: List[ItemEvent] = []
        self._revoke_at: Optional[datetime] = None

    def count_items(self) -> int:
        return self._store._count(self.assessment_id) + len(self._inserts)

    def insert_item_event(
        self,
        item_id: str,
        answer_text: str,
        question_text: str,
        events: List[IntegrityEvent],
        now: datetime,
    ) -> ItemEvent:
        key = (self.assessment_id, item_id)
        if key in self._store._item_keys or any(e.item_id == item_id for e in self._inserts):
            raise UniqueViolation(f"duplicate key (assessment_id, item_id)=({self.assessment_id}, {item_id})")
        evt = ItemEvent(
            id=str(uuid.uuid4()),
            assessment_id=self.assessment_id,
            item_id=item_id,
            t_start=now,
            answer_text=answer_text,
            question_text=question_text,
            events=list(events),
        )
        self._inserts.append(evt)
        return evt

    def mark_started(self, now: datetime) -> bool:
        if self.assessment is None or self.assessment.started_at is not None:
            return False
        self.assessment.started_at = now
        return True

    def finish(self, reason: StopReason, now: datetime) -> bool:
        """Set finished_at/stop_reason only if not already finished."""
        if self.assessment is None or self.assessment.finished_at is not None:
            return False
        self.assessment.finished_at = now
        self.assessment.stop_reason = reason
        return True

    def revoke_sessions(self, now: datetime) -> None:
        self._revoke_at = now

    def _commit(self) -> None:
        s = self._store
        for evt in self._inserts:
            if (evt.assessment_id, evt.item_id) in s._item_keys:
                raise UniqueViolation(f"duplicate key (assessment_id, item_id)=({evt.assessment_id}, {evt.item_id})")
        if self.assessment is not None:
            s._assessments[self.assessment_id] = self.assessment
        for evt in self._inserts:
            s._items[evt.id] = evt
            s._item_keys[(evt.assessment_id, evt.item_id)] = evt.id
        if self._revoke_at is not None:
            s._revoke(self.assessment_id, self._revoke_at)


class AssessmentStore:
    def __init__(self, data_dir: Optional[str | Path] = None, lock_timeout: float = LOCK_TIMEOUT_SEC):
        self.data_dir = Path(data_dir).resolve() if data_dir else None
        self.lock_timeout = lock_timeout
        self._assessments: Dict[str, Assessment] = {}
        self._items: Dict[str, ItemEvent] = {}
        self._item_keys: Dict[Tuple[str, str], str] = {}
        self._sessions: Dict[str, AccessSession] = {}
        self._row_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._file_lock = threading.Lock()
        self._snapshot_seq = 0
        self._written_seq = 0
        if self.data_dir:
            self._load()

    # ---- assessments ----

    async def create_assessment(
        self,
        job_id: str,
        duration_minutes: Optional[int] = None,
        assessment_id: Optional[str] = None,
        **context: Any,
    ) -> Assessment:
        a = Assessment(
            id=assessment_id or str(uuid.uuid4()),
            job_id=job_id,
            created_at=utcnow(),
            duration_minutes=int(duration_minutes or DEFAULT_DURATION_MINUTES),
            **context,
        )
        if a.id in self._assessments:
            raise UniqueViolation(f"assessment {a.id} already exists")
        self._assessments[a.id] = a
        await self._persist()
        return _copy_assessment(a)

    async def get_assessment(self, assessment_id: str) -> Optional[Assessment]:
        a = self._assessments.get(assessment_id)
        return _copy_assessment(a) if a else None

    async def finish_if_active(self, assessment_id: str, reason: StopReason, now: Optional[datetime] = None) -> bool:
        """Conditional finish + session revocation under the assessment lock."""
        now = now or utcnow()
        async with self.transaction(assessment_id) as tx:
            changed = tx.finish(reason, now)
            if changed:
                tx.revoke_sessions(now)
        return changed

    # ---- item events ----

    def _count(self, assessment_id: str) -> int:
        return sum(1 for (aid, _) in self._item_keys if aid == assessment_id)

    async def count_items(self, assessment_id: str) -> int:
        return self._count(assessment_id)

    async def list_item_events(
        self, assessment_id: str, newest_first: bool = False, limit: Optional[int] = None
    ) -> List[ItemEvent]:
        rows = [e for e in self._items.values() if e.assessment_id == assessment_id]
        rows.sort(key=lambda e: e.t_start)
        if newest_first:
            rows.reverse()
        if limit is not None:
            rows = rows[:limit]
        return [_copy_item(e) for e in rows]

    async def get_item_event(self, item_event_id: str) -> Optional[ItemEvent]:
        e = self._items.get(item_event_id)
        return _copy_item(e) if e else None

    async def update_score(self, item_event_id: str, score: Dict[str, object], t_end: Optional[datetime] = None) -> None:
        e = self._items.get(item_event_id)
        if e is None:
            raise StoreError(f"item event {item_event_id} not found")
        if e.score is not None:
            raise StoreError(f"item event {item_event_id} already scored")
        e.score = dict(score)
        e.t_end = t_end or utcnow()
        await self._persist()

    # ---- access sessions ----

    async def create_session(self, assessment_id: str) -> AccessSession:
        s = AccessSession(id=str(uuid.uuid4()), assessment_id=assessment_id, created_at=utcnow())
        self._sessions[s.id] = s
        await self._persist()
        return dataclasses.replace(s)

    async def active_sessions(self, assessment_id: str) -> List[AccessSession]:
        return [dataclasses.replace(s) for s in self._sessions.values()
                if s.assessment_id == assessment_id and s.revoked_at is None]

    def _revoke(self, assessment_id: str, now: datetime) -> int:
        n = 0
        for s in self._sessions.values():
            if s.assessment_id == assessment_id and s.revoked_at is None:
                s.revoked_at = now
                n += 1
        return n

    # ---- transactions ----

    @asynccontextmanager
    async def transaction(self, assessment_id: str) -> AsyncIterator[Transaction]:
        """Hold the assessment's exclusive lock; staged writes commit on clean exit."""
        lock = self._row_locks.setdefault(assessment_id, asyncio.Lock())
        self._lock_users[assessment_id] = self._lock_users.get(assessment_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout)
            except asyncio.TimeoutError:
                raise LockContention(f"timed out waiting for lock on assessment {assessment_id}")
            try:
                tx = Transaction(self, assessment_id)
                yield tx
                tx._commit()
                await self._persist()
            finally:
                lock.release()
        finally:
            self._drop_row_lock(assessment_id)

    def _drop_row_lock(self, assessment_id: str) -> None:
        # locks live only while a transaction holds or waits on them
        users = self._lock_users.get(assessment_id, 0) - 1
        if users > 0:
            self._lock_users[assessment_id] = users
            return
        self._lock_users.pop(assessment_id, None)
        self._row_locks.pop(assessment_id, None)

    # ---- snapshot ----

    def _snapshot_path(self) -> Optional[Path]:
        return self.data_dir / SNAPSHOT_NAME if self.data_dir else None

    async def _persist(self) -> None:
        """Snapshot current state; the file write runs in a worker thread."""
        path = self._snapshot_path()
        if path is None:
            return
        self._snapshot_seq += 1
        seq = self._snapshot_seq
        payload = {
            "assessments": [dataclasses.asdict(a) for a in self._assessments.values()],
            "item_events": [dataclasses.asdict(e) for e in self._items.values()],
            "sessions": [dataclasses.asdict(s) for s in self._sessions.values()],
        }
        await asyncio.to_thread(self._write_snapshot, path, seq, payload)

    def _write_snapshot(self, path: Path, seq: int, payload: Any) -> None:
        with self._file_lock:
            # a newer snapshot already landed
            if seq < self._written_seq:
                return
            _write_json(path, payload)
            self._written_seq = seq

    def _load(self) -> None:
        path = self._snapshot_path()
        raw = _read_json(path, {}) if path else {}
        for r in raw.get("assessments", []):
            for k in ("created_at", "started_at", "finished_at"):
                r[k] = _dt(r.get(k))
            a = Assessment(**r)
            self._assessments[a.id] = a
        for r in raw.get("item_events", []):
            r["t_start"] = _dt(r.get("t_start"))
            r["t_end"] = _dt(r.get("t_end"))
            r["events"] = [IntegrityEvent(**{**ev, "at": _dt(ev.get("at"))}) for ev in r.get("events", [])]
            e = ItemEvent(**r)
            self._items[e.id] = e
            self._item_keys[(e.assessment_id, e.item_id)] = e.id
        for r in raw.get("sessions", []):
            r["created_at"] = _dt(r.get("created_at"))
            r["revoked_at"] = _dt(r.get("revoked_at"))
            s = AccessSession(**r)
            self._sessions[s.id] = s


__all__ = ["AssessmentStore", "Transaction", "utcnow"]
