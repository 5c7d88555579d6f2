from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


# stop rules
MAX_ITEMS: int = 18
DEFAULT_DURATION_MINUTES: int = 15

# consensus grading; agreement is compared at two decimals, so 2 of 3 matches (0.67) passes
AGREEMENT_THRESHOLD: float = 0.67
PRIMARY_SEEDS: tuple[int, int] = (1, 2)
TIEBREAK_SEED: int = 3
FALLBACK_SEED_OFFSET: int = 1000

# staircase
DIFFICULTIES: tuple[str, ...] = ("easy", "medium", "hard")
INITIAL_STEP: str = "easy"
STEP_UP_SCORE: int = 7
STEP_DOWN_SCORE: int = 3

# integrity
RISK_BAND_MED: float = 0.3
RISK_BAND_HIGH: float = 0.7
RISK_MAX_REASONS: int = 5

# prompting
HISTORY_LIMIT_GRADE: int = 2
HISTORY_LIMIT_QUESTION: int = 5
RESUME_PREVIEW_CHARS: int = 2000
ANSWER_MAX_CHARS: int = 5000
QUESTION_MAX_CHARS: int = 2000

# oracle
LLM_TIMEOUT_MS: int = 12000
LLM_MAX_TOKENS: int = 256
LLM_CACHE_ENABLED: bool = False
LLM_CACHE_TTL_MS: int = 86_400_000
LLM_CACHE_SWEEP_SIZE: int = 1000
QUESTION_SOURCE: str = "llm"  # "llm" | "bank"

# store
LOCK_TIMEOUT_SEC: float = 5.0
DATA_DIR: str = ""

# // env overrides for staging/ops; defaults match the interview contract.
MAX_ITEMS = _env_int("MAX_ITEMS", MAX_ITEMS)
DEFAULT_DURATION_MINUTES = _env_int("DEFAULT_DURATION_MINUTES", DEFAULT_DURATION_MINUTES)
LLM_TIMEOUT_MS = _env_int("LLM_TIMEOUT_MS", LLM_TIMEOUT_MS)
LLM_CACHE_ENABLED = _env_bool("LLM_CACHE_ENABLED", LLM_CACHE_ENABLED)
LLM_CACHE_TTL_MS = _env_int("LLM_CACHE_TTL_MS", LLM_CACHE_TTL_MS)
QUESTION_SOURCE = _env_str("QUESTION_SOURCE", QUESTION_SOURCE).lower()
LOCK_TIMEOUT_SEC = _env_float("LOCK_TIMEOUT_SEC", LOCK_TIMEOUT_SEC)
DATA_DIR = _env_str("DATA_DIR", DATA_DIR)
