"""
Node-level error taxonomy and classification helpers.

Messages shown to users are bounded in length; raw provider payloads only go
to the logs.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

RATE_LIMIT_MESSAGE = "Rate limit due to heavy traffic. Please wait a moment and try again."
LLM_TIMEOUT_MESSAGE = "LLM request timed out."
NODE_TIMEOUT_MESSAGE = "Node execution timed out."
UNKNOWN_NODE_TYPE_MESSAGE = "Unknown node type"

MAX_ERROR_LENGTH = 240
TRUNCATION_MARKER = "…"

_RATE_LIMIT_CODE_MARKERS = ("rate", "quota", "resource_exhausted")
_RATE_LIMIT_TEXT_MARKERS = (
    "too many requests",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "quota",
    "resource_exhausted",
)


class NodeExecutionError(Exception):
    """A failure whose message is already safe to show to the user."""


class MissingInputError(NodeExecutionError):
    """A required input handle has no upstream value."""


class NodeInputError(NodeExecutionError):
    """An input or parameter is present but unusable (e.g. unparsable timestamp)."""


class NodeTimeoutError(NodeExecutionError):
    """An external call ran past its deadline or was aborted."""


def _status_of(err: BaseException) -> Any:
    for attr in ("status", "status_code"):
        value = getattr(err, attr, None)
        if value is not None:
            return value
    response = getattr(err, "response", None)
    if response is not None:
        return getattr(response, "status_code", None) or getattr(response, "status", None)
    return None


def _code_of(err: BaseException) -> Any:
    code = getattr(err, "code", None)
    if code is None:
        nested = getattr(err, "error", None)
        if isinstance(nested, dict):
            code = nested.get("code") or nested.get("status")
        else:
            code = getattr(nested, "code", None)
    return code


def is_rate_limit_error(err: BaseException, message: str | None = None) -> bool:
    """
    Whether a failure is provider throttling rather than a real error.

    Checks, in order: an HTTP status of 429, a machine-readable code from the
    quota/rate-limit vocabulary, then the message text.
    """
    if is_timeout_error(err):
        return False

    for code in (_status_of(err), _code_of(err)):
        if code == 429:
            return True
        if isinstance(code, str):
            lowered_code = code.lower()
            if any(marker in lowered_code for marker in _RATE_LIMIT_CODE_MARKERS):
                return True

    text = message if message is not None else str(err)
    if "429" in text or "rateLimitExceeded" in text:
        return True
    lowered = text.lower()
    return any(marker in lowered for marker in _RATE_LIMIT_TEXT_MARKERS)


def is_timeout_error(err: BaseException) -> bool:
    return isinstance(err, (asyncio.TimeoutError, TimeoutError, NodeTimeoutError))


def _client_error_status(err: BaseException) -> int | None:
    """The 4xx status of an HTTP or provider client error, if it carries one."""
    if isinstance(err, httpx.HTTPStatusError):
        status = err.response.status_code
    else:
        status = getattr(err, "code", None)
    if isinstance(status, int) and not isinstance(status, bool) and 400 <= status < 500:
        return status
    return None


def is_retryable(err: BaseException) -> bool:
    """
    Validation problems, deadlines and client errors are final; everything
    else may be transient.

    Client errors (4xx) mean the request itself is wrong, except 408 and 429
    which ask the caller to come back later.
    """
    if isinstance(err, (MissingInputError, NodeInputError)):
        return False
    if is_timeout_error(err):
        return False
    status = _client_error_status(err)
    if status is not None and status not in (408, 429):
        return False
    return isinstance(err, Exception)


def truncate_error_message(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    """Bound a message to `limit` characters, marking truncation with an ellipsis."""
    message = message.strip()
    if len(message) <= limit:
        return message
    return message[: limit - len(TRUNCATION_MARKER)].rstrip() + TRUNCATION_MARKER


def user_facing_message(err: BaseException) -> str:
    if isinstance(err, NodeExecutionError):
        return truncate_error_message(str(err) or type(err).__name__)
    if is_timeout_error(err):
        return NODE_TIMEOUT_MESSAGE
    text = str(err).strip()
    return truncate_error_message(text or "Execution failed")


def normalize_text(value: Any) -> str:
    """
    Coerce an upstream value to text.

    The literal strings "null" / "undefined" (any case, surrounding whitespace
    ignored) are stringified empties from serialization, not data.
    """
    if value is None:
        return ""
    if isinstance(value, list):
        return "\n\n".join(
            part for part in (normalize_text(item) for item in value) if part
        )
    text = value if isinstance(value, str) else str(value)
    if text.strip().lower() in ("null", "undefined"):
        return ""
    return text
