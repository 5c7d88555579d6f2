# interview_core/llm_cfg.py
from __future__ import annotations
import os, json, pathlib
from dataclasses import dataclass
from typing import Optional, Union

from openai import AsyncAzureOpenAI, AsyncOpenAI

from .config import LLM_TIMEOUT_MS
from .errors import OracleConfigurationError


@dataclass(frozen=True)
class LLMSettings:
    backend: str  # "openai" | "azure"
    api_key: str
    model_primary: str
    model_fallback: str = ""
    base_url: str = ""
    api_version: str = ""
    timeout_ms: int = LLM_TIMEOUT_MS


def _from_env() -> dict[str, str]:
    backend = (os.getenv("LLM_BACKEND") or "openai").strip().lower()
    if backend == "azure":
        return {
            "backend":        "azure",
            "base_url":       os.getenv("AZURE_OPENAI_ENDPOINT", ""),
            "api_key":        os.getenv("AZURE_OPENAI_API_KEY", ""),
            "api_version":    os.getenv("AZURE_OPENAI_API_VERSION", ""),
            "model_primary":  os.getenv("AZURE_OPENAI_DEPLOYMENT", "") or os.getenv("LLM_MODEL_PRIMARY", ""),
            "model_fallback": os.getenv("LLM_MODEL_FALLBACK", ""),
        }
    return {
        "backend":        "openai",
        "base_url":       os.getenv("LLM_BASE_URL", ""),
        "api_key":        os.getenv("LLM_API_KEY", ""),
        "api_version":    "",
        "model_primary":  os.getenv("LLM_MODEL_PRIMARY", ""),
        "model_fallback": os.getenv("LLM_MODEL_FALLBACK", ""),
    }


def _from_json(path: str = ".llm_config.json") -> dict[str, str]:
    p = pathlib.Path(path)
    if not p.exists(): return {}
    try:
        j = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return {k: str(j.get(k, "")) for k in ("base_url", "api_key", "api_version", "model_primary", "model_fallback")}


def _required(backend: str) -> tuple[str, ...]:
    if backend == "azure":
        return ("base_url", "api_key", "api_version", "model_primary")
    return ("api_key", "model_primary")


def settings() -> LLMSettings:
    cfg = _from_env()
    for k, v in _from_json().items():
        if v and not cfg.get(k): cfg[k] = v
    missing = [k for k in _required(cfg["backend"]) if not cfg.get(k)]
    if missing:
        raise OracleConfigurationError(f"LLM not configured. Missing: {', '.join(missing)}")
    try:
        timeout_ms = int(os.getenv("LLM_TIMEOUT_MS", "") or LLM_TIMEOUT_MS)
    except ValueError:
        timeout_ms = LLM_TIMEOUT_MS
    return LLMSettings(
        backend=cfg["backend"],
        api_key=cfg["api_key"],
        model_primary=cfg["model_primary"],
        model_fallback=cfg.get("model_fallback", ""),
        base_url=cfg.get("base_url", ""),
        api_version=cfg.get("api_version", ""),
        timeout_ms=timeout_ms,
    )


def client(s: Optional[LLMSettings] = None) -> Union[AsyncOpenAI, AsyncAzureOpenAI]:
    s = s or settings()
    if s.backend == "azure":
        return AsyncAzureOpenAI(azure_endpoint=s.base_url, api_key=s.api_key,
                                api_version=s.api_version, max_retries=0)
    # retries are driven by the primary -> fallback attempt list, not the SDK
    return AsyncOpenAI(api_key=s.api_key, base_url=s.base_url or None, max_retries=0)
