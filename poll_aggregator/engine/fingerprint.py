"""Deterministic identities for sources that do not expose stable poll IDs."""

from __future__ import annotations

import hashlib
from dataclasses import astuple, dataclass
from typing import Any, Iterable

from ..records import AnswerRecord
from .coercion import format_number


def _canonical(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    return str(value)


def _answer_parts(answer: AnswerRecord) -> tuple[str, str, str]:
    return answer.choice, _canonical(answer.party), _canonical(answer.percent)


def answers_fingerprint(answers: Iterable[AnswerRecord]) -> str:
    """Join ``choice:party:percent`` entries in an order independent of the input."""

    parts = sorted((_answer_parts(answer) for answer in answers), key="|".join)
    return ",".join(":".join(part) for part in parts)


@dataclass(slots=True, frozen=True)
class FingerprintFields:
    """Defining scalar attributes, hashed in declaration order."""

    pollster: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    sample: int | None = None
    population: str | None = None
    jurisdiction: str | None = None
    title: str | None = None
    politician: str | None = None
    poll_type: str | None = None

    def digest(self, answers: Iterable[AnswerRecord]) -> str:
        parts = [_canonical(value) for value in astuple(self)]
        parts.append(answers_fingerprint(answers))
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def fingerprint_poll(fields: FingerprintFields, answers: Iterable[AnswerRecord]) -> str:
    return fields.digest(answers)


__all__ = ["FingerprintFields", "answers_fingerprint", "fingerprint_poll"]
