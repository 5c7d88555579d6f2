"""Response cache for oracle grading calls.

Callers get a cache injected; anything with ``get(key)`` and
``set(key, value, ttl_seconds)`` works, so the in-process store below can be
replaced by a shared one without touching the oracle.
"""
from __future__ import annotations

import hashlib
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from .config import LLM_CACHE_SWEEP_SIZE


class ResponseCache(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...


class InMemoryTTLCache:
    """Process-local TTL cache; expired entries are swept once it grows past ``sweep_size``."""

    def __init__(self, sweep_size: int = LLM_CACHE_SWEEP_SIZE, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._sweep_size = sweep_size
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            hit = self._data.get(key)
            if hit is None:
                return None
            value, expires = hit
            if expires < now:
                self._data.pop(key, None)
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        now = self._clock()
        with self._lock:
            self._data[key] = (value, now + float(ttl_seconds))
            if len(self._data) > self._sweep_size:
                for k in [k for k, (_, exp) in self._data.items() if exp < now]:
                    del self._data[k]

    def __len__(self) -> int:
        return len(self._data)


def _sha1(text: str) -> str:
    return hashlib.sha1((text or "").encode("utf-8")).hexdigest()


def grade_cache_key(
    item_id: str,
    model: str,
    seed: int,
    answer: str,
    prompt: str,
    job_context: Optional[str] = None,
    applicant_context: Optional[str] = None,
) -> str:
    context_hash = _sha1(f"{prompt}|{job_context or ''}|{applicant_context or ''}")
    return f"{item_id}|{model}|{seed}|{_sha1(answer)}|{context_hash}"
