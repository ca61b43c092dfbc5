"""
Runtime configuration read from the environment.

Values are looked up on every call, never cached at import time.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %d", name, raw, default)
        return default
    if parsed < minimum:
        return default
    return parsed


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if parsed < minimum:
        return default
    return parsed


def gemini_api_key() -> str | None:
    return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")


def default_model() -> str:
    return os.getenv("NODEFLOW_DEFAULT_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL


def llm_timeout_seconds() -> float:
    """Wall-clock deadline for one LLM request, retries included."""
    return _env_float("NODEFLOW_LLM_TIMEOUT_SECONDS", 60.0, minimum=0.001)


def retry_max_attempts() -> int:
    return _env_int("NODEFLOW_RETRY_MAX_ATTEMPTS", 3)


def retry_min_delay_seconds() -> float:
    return _env_float("NODEFLOW_RETRY_MIN_DELAY_SECONDS", 1.0)


def retry_max_delay_seconds() -> float:
    return _env_float("NODEFLOW_RETRY_MAX_DELAY_SECONDS", 10.0)


def media_fetch_timeout_seconds() -> float:
    return _env_float("NODEFLOW_MEDIA_FETCH_TIMEOUT_SECONDS", 30.0, minimum=0.001)


def max_parallel_nodes() -> int:
    return _env_int("NODEFLOW_MAX_PARALLEL_NODES", 8)


def log_level() -> str:
    return os.getenv("NODEFLOW_LOG_LEVEL", "INFO").strip().upper() or "INFO"
