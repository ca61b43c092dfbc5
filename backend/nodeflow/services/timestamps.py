"""
Timestamp parsing for frame extraction.

A timestamp is either a number of seconds (`12`, `"12.5"`) or a percentage of
the source video's duration (`"50%"`). Parsing happens before the video is
fetched; percentages are resolved against the duration afterwards.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Seconds:
    value: float

    def resolve(self, duration: float) -> float:
        return self.value


@dataclass(frozen=True)
class PercentOfDuration:
    percent: float

    def resolve(self, duration: float) -> float:
        return duration * self.percent / 100


@dataclass(frozen=True)
class ParseError:
    message: str


Timestamp = Union[Seconds, PercentOfDuration]


def _parse_number(text: str) -> float | None:
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_timestamp(raw: Any) -> Seconds | PercentOfDuration | ParseError:
    if raw is None:
        return Seconds(0.0)
    if isinstance(raw, bool):
        return ParseError(f"Invalid timestamp: {raw!r}")
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            return ParseError(f"Invalid timestamp: {raw!r}")
        if raw < 0:
            return ParseError("Timestamp cannot be negative")
        return Seconds(float(raw))

    text = str(raw).strip()
    if not text or text.lower() in ("null", "undefined"):
        return Seconds(0.0)

    if text.endswith("%"):
        percent = _parse_number(text[:-1].strip())
        if percent is None:
            return ParseError(f"Invalid percentage timestamp: {text!r}")
        if percent < 0 or percent > 100:
            return ParseError("Percentage timestamp must be between 0% and 100%")
        return PercentOfDuration(percent)

    seconds = _parse_number(text)
    if seconds is None:
        return ParseError(f"Invalid timestamp: {text!r}. Use seconds (e.g. 12.5) or a percentage (e.g. 50%).")
    if seconds < 0:
        return ParseError("Timestamp cannot be negative")
    return Seconds(seconds)


def parse_percent(raw: Any, default: float) -> float | ParseError:
    """Parse a crop percentage; upstream text nodes deliver numbers as strings."""
    if raw is None:
        return default
    if isinstance(raw, bool):
        return ParseError(f"Invalid percentage: {raw!r}")
    if isinstance(raw, (int, float)):
        number: float | None = float(raw) if math.isfinite(raw) else None
    else:
        text = str(raw).strip().rstrip("%").strip()
        if not text or text.lower() in ("null", "undefined"):
            return default
        number = _parse_number(text)
    if number is None:
        return ParseError(f"Invalid percentage: {raw!r}")
    if number < 0 or number > 100:
        return ParseError(f"Percentage out of range (0-100): {number:g}")
    return number
