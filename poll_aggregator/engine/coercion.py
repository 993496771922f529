"""Field-level coercion helpers shared by the source adapters."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

_DIGITS = re.compile(r"\d+")


def format_number(value: int | float) -> str:
    """Render a number the way it appears in JSON (``40.0`` -> ``"40"``)."""

    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def as_string(value: Any) -> str | None:
    """Accept strings, numbers or ``{"name": ...}`` objects."""

    if isinstance(value, str):
        return value
    if _is_number(value):
        return format_number(value)
    if isinstance(value, dict) and isinstance(value.get("name"), str):
        return value["name"]
    return None


def parse_sample(value: Any) -> int | None:
    """Parse ``1200``, ``1200.7`` or ``"1,200 LV"`` into an integer sample size."""

    if _is_number(value):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _DIGITS.search(value.replace(",", ""))
        if not match:
            return None
        return int(match.group(0))
    return None


def parse_percent(value: Any) -> float | None:
    """Accept numeric percents or strings such as ``"45%"``."""

    if _is_number(value):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.replace("%", "").strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def humanize_subject(value: Any) -> str | None:
    """Turn slug-like identifiers (``donald-trump``) into display names."""

    text = as_string(value)
    if not text:
        return None
    if "-" in text:
        text = text.replace("-", " ")
    words = text.split()
    if not words:
        return None
    return " ".join(word[0].upper() + word[1:] for word in words)


def parse_date(value: Any) -> datetime | None:
    """Parse ISO-8601 dates/timestamps into aware UTC datetimes; ``None`` if unparsable.

    Date-only and naive inputs are interpreted as UTC.
    """

    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = [
    "as_string",
    "format_number",
    "humanize_subject",
    "parse_date",
    "parse_percent",
    "parse_sample",
]
