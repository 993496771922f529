"""Idempotent create-or-replace persistence keyed by ``(source, source_poll_id)``."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable

from ..errors import PersistenceError
from ..infra.storage import SQLiteManager
from ..records import PollRecord

_UPSERT_POLL = """
INSERT INTO polls (
    source, source_poll_id, poll_type, subject, jurisdiction, office,
    start_date, end_date, sample_size, population, pollster, sponsor,
    methodology, url, internal, partisan, hypothetical, raw, created_at, updated_at
) VALUES (
    :source, :source_poll_id, :poll_type, :subject, :jurisdiction, :office,
    :start_date, :end_date, :sample_size, :population, :pollster, :sponsor,
    :methodology, :url, :internal, :partisan, :hypothetical, :raw, :now, :now
)
ON CONFLICT (source, source_poll_id) DO UPDATE SET
    poll_type = excluded.poll_type,
    subject = excluded.subject,
    jurisdiction = excluded.jurisdiction,
    office = excluded.office,
    start_date = excluded.start_date,
    end_date = excluded.end_date,
    sample_size = excluded.sample_size,
    population = excluded.population,
    pollster = excluded.pollster,
    sponsor = excluded.sponsor,
    methodology = excluded.methodology,
    url = excluded.url,
    internal = excluded.internal,
    partisan = excluded.partisan,
    hypothetical = excluded.hypothetical,
    raw = excluded.raw,
    updated_at = excluded.updated_at
"""


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _as_int(flag: bool | None) -> int | None:
    return None if flag is None else int(flag)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PollUpserter:
    """Write polls so stored answers always mirror the most recent payload."""

    def __init__(
        self,
        manager: SQLiteManager,
        db_path: Path,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.manager = manager
        self.db_path = db_path
        self._clock = clock
        self._lock = Lock()
        self._conn = self.manager.connect(db_path)

    def upsert(self, record: PollRecord) -> int:
        """Insert or replace ``record``; return the stored poll row id.

        The scalar update and the delete/recreate of answers commit together.
        """

        params = self._poll_params(record)
        answers = [
            (position, answer.choice, answer.party, answer.percent)
            for position, answer in enumerate(record.answers)
        ]
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(_UPSERT_POLL, params)
                    row = self._conn.execute(
                        "SELECT id FROM polls WHERE source = ? AND source_poll_id = ?",
                        record.key,
                    ).fetchone()
                    poll_id = int(row["id"])
                    self._conn.execute("DELETE FROM poll_answers WHERE poll_id = ?", (poll_id,))
                    self._conn.executemany(
                        "INSERT INTO poll_answers (poll_id, position, choice, party, percent) "
                        "VALUES (?, ?, ?, ?, ?)",
                        [(poll_id, *answer) for answer in answers],
                    )
            except sqlite3.Error as exc:
                raise PersistenceError(
                    f"Failed to upsert {record.source.value}/{record.source_poll_id}: {exc}"
                ) from exc
        return poll_id

    def _poll_params(self, record: PollRecord) -> dict[str, Any]:
        return {
            "source": record.source.value,
            "source_poll_id": record.source_poll_id,
            "poll_type": record.poll_type,
            "subject": record.subject,
            "jurisdiction": record.jurisdiction,
            "office": record.office,
            "start_date": isoformat(record.start_date),
            "end_date": isoformat(record.end_date),
            "sample_size": record.sample_size,
            "population": record.population,
            "pollster": record.pollster,
            "sponsor": record.sponsor,
            "methodology": record.methodology,
            "url": record.url,
            "internal": _as_int(record.internal),
            "partisan": _as_int(record.partisan),
            "hypothetical": _as_int(record.hypothetical),
            "raw": json.dumps(record.raw, ensure_ascii=False, default=str),
            "now": isoformat(self._clock()),
        }


__all__ = ["PollUpserter", "isoformat"]
