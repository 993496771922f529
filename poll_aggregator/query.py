"""Read-side helpers over normalised polls: filtered listings and approval series."""

from __future__ import annotations

import re
import sqlite3
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta, timezone
from functools import reduce
from pathlib import Path
from typing import Any, Iterable, Sequence

from .infra.storage import SQLiteManager
from .records import AnswerRecord

_YMD = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ID_CHUNK = 500
MAX_LIST_LIMIT = 1000
SERIES_POLL_LIMIT = 2000


def parse_ymd(text: str) -> datetime:
    """Interpret ``YYYY-MM-DD`` as UTC midnight."""

    if not _YMD.match(text or ""):
        raise ValueError(f"Expected YYYY-MM-DD, got {text!r}")
    return datetime.strptime(text, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def normalize_choice(choice: str) -> str:
    return " ".join(choice.lower().split())


@dataclass(slots=True, frozen=True)
class StoredPoll:
    id: int
    source: str
    source_poll_id: str
    poll_type: str
    subject: str | None
    jurisdiction: str | None
    office: str | None
    start_date: datetime | None
    end_date: datetime | None
    sample_size: int | None
    population: str | None
    pollster: str | None
    sponsor: str | None
    methodology: str | None
    url: str | None
    internal: bool | None
    partisan: bool | None
    hypothetical: bool | None
    answers: tuple[AnswerRecord, ...] = ()

    def percent_for(self, key: str) -> float | None:
        for answer in self.answers:
            if normalize_choice(answer.choice) == key:
                return answer.percent
        return None

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for name in ("start_date", "end_date"):
            value = getattr(self, name)
            payload[name] = value.isoformat() if value else None
        payload["answers"] = [asdict(answer) for answer in self.answers]
        return payload


@dataclass(slots=True, frozen=True)
class SeriesPoint:
    date: str
    approve: float | None
    disapprove: float | None
    net: float | None
    sample_weighted_net: float | None
    n: int


@dataclass(slots=True, frozen=True)
class DayBucket:
    """Running sums for one UTC day; every update returns a new bucket."""

    date: str
    approve_sum: float = 0.0
    disapprove_sum: float = 0.0
    count: int = 0
    weighted_approve_sum: float = 0.0
    weighted_disapprove_sum: float = 0.0
    weight: float = 0.0

    def add(self, approve: float, disapprove: float, weight: float) -> "DayBucket":
        return replace(
            self,
            approve_sum=self.approve_sum + approve,
            disapprove_sum=self.disapprove_sum + disapprove,
            count=self.count + 1,
            weighted_approve_sum=self.weighted_approve_sum + approve * weight,
            weighted_disapprove_sum=self.weighted_disapprove_sum + disapprove * weight,
            weight=self.weight + weight,
        )

    def to_point(self) -> SeriesPoint:
        approve = self.approve_sum / self.count if self.count else None
        disapprove = self.disapprove_sum / self.count if self.count else None
        net = approve - disapprove if approve is not None and disapprove is not None else None
        weighted_net = None
        if self.weight > 0:
            weighted_net = (
                self.weighted_approve_sum / self.weight
                - self.weighted_disapprove_sum / self.weight
            )
        return SeriesPoint(
            date=self.date,
            approve=approve,
            disapprove=disapprove,
            net=net,
            sample_weighted_net=weighted_net,
            n=self.count,
        )


def _fold_poll(buckets: tuple[DayBucket, ...], poll: StoredPoll) -> tuple[DayBucket, ...]:
    if poll.end_date is None:
        return buckets
    approve = poll.percent_for("approve")
    disapprove = poll.percent_for("disapprove")
    if approve is None or disapprove is None:
        return buckets
    day = poll.end_date.astimezone(timezone.utc).date().isoformat()
    weight = float(poll.sample_size) if poll.sample_size and poll.sample_size > 0 else 0.0
    for index, bucket in enumerate(buckets):
        if bucket.date == day:
            return buckets[:index] + (bucket.add(approve, disapprove, weight),) + buckets[index + 1 :]
    return buckets + (DayBucket(date=day).add(approve, disapprove, weight),)


def build_approval_series(polls: Iterable[StoredPoll]) -> list[SeriesPoint]:
    """Bucket polls by UTC end day, averaging approve/disapprove per day."""

    buckets = reduce(_fold_poll, polls, ())
    return [bucket.to_point() for bucket in sorted(buckets, key=lambda b: b.date)]


def _ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _flag(value: int | None) -> bool | None:
    return None if value is None else bool(value)


class PollQuery:
    """Query persisted polls without knowing any source-specific format."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._conn = self.manager.connect(db_path)

    def list_polls(
        self,
        subject: str | None = None,
        poll_type: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        limit: int = 250,
    ) -> list[StoredPoll]:
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
        clauses, params = self._date_clauses(date_from, date_to)
        if subject:
            clauses.append("subject = ?")
            params.append(subject.strip())
        if poll_type:
            clauses.append("poll_type = ?")
            params.append(poll_type.strip())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._conn.execute(
            f"SELECT * FROM polls {where} "
            "ORDER BY end_date IS NULL, end_date DESC, created_at DESC LIMIT ?",
            (*params, limit),
        ).fetchall()
        return self._hydrate(rows)

    def approval_series(
        self,
        subject: str,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[SeriesPoint]:
        if not subject or not subject.strip():
            raise ValueError("subject is required")
        clauses, params = self._date_clauses(date_from, date_to)
        clauses = ["subject = ?", "poll_type LIKE '%approval%'", "end_date IS NOT NULL", *clauses]
        rows = self._conn.execute(
            f"SELECT * FROM polls WHERE {' AND '.join(clauses)} ORDER BY end_date ASC LIMIT ?",
            (subject.strip(), *params, SERIES_POLL_LIMIT),
        ).fetchall()
        return build_approval_series(self._hydrate(rows))

    # ------------------------------------------------------------------
    @staticmethod
    def _date_clauses(date_from: str | None, date_to: str | None) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if date_from:
            clauses.append("end_date >= ?")
            params.append(parse_ymd(date_from).isoformat())
        if date_to:
            clauses.append("end_date < ?")
            params.append((parse_ymd(date_to) + timedelta(days=1)).isoformat())
        return clauses, params

    def _answers_by_poll(self, poll_ids: Sequence[int]) -> dict[int, list[AnswerRecord]]:
        answers: dict[int, list[AnswerRecord]] = {poll_id: [] for poll_id in poll_ids}
        for start in range(0, len(poll_ids), _ID_CHUNK):
            chunk = poll_ids[start : start + _ID_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            for row in self._conn.execute(
                f"SELECT poll_id, choice, party, percent FROM poll_answers "
                f"WHERE poll_id IN ({placeholders}) ORDER BY poll_id, position",
                chunk,
            ):
                answers[row["poll_id"]].append(
                    AnswerRecord(choice=row["choice"], party=row["party"], percent=row["percent"])
                )
        return answers

    def _hydrate(self, rows: Sequence[sqlite3.Row]) -> list[StoredPoll]:
        answers = self._answers_by_poll([int(row["id"]) for row in rows])
        return [
            StoredPoll(
                id=int(row["id"]),
                source=row["source"],
                source_poll_id=row["source_poll_id"],
                poll_type=row["poll_type"],
                subject=row["subject"],
                jurisdiction=row["jurisdiction"],
                office=row["office"],
                start_date=_ts(row["start_date"]),
                end_date=_ts(row["end_date"]),
                sample_size=row["sample_size"],
                population=row["population"],
                pollster=row["pollster"],
                sponsor=row["sponsor"],
                methodology=row["methodology"],
                url=row["url"],
                internal=_flag(row["internal"]),
                partisan=_flag(row["partisan"]),
                hypothetical=_flag(row["hypothetical"]),
                answers=tuple(answers.get(int(row["id"]), ())),
            )
            for row in rows
        ]


__all__ = [
    "DayBucket",
    "PollQuery",
    "SeriesPoint",
    "StoredPoll",
    "build_approval_series",
    "normalize_choice",
    "parse_ymd",
]
