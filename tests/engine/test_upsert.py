from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from poll_aggregator.engine import PollUpserter
from poll_aggregator.errors import PersistenceError
from poll_aggregator.infra import SQLiteManager
from poll_aggregator.records import AnswerRecord, PollRecord, Source

from conftest import FIXED_NOW


class SteppingClock:
    def __init__(self) -> None:
        self.now = FIXED_NOW

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def _record(**overrides) -> PollRecord:
    base = dict(
        source=Source.VOTEHUB,
        source_poll_id="101",
        poll_type="approval",
        subject="Donald Trump",
        jurisdiction="US",
        end_date=datetime(2024, 5, 12, tzinfo=timezone.utc),
        sample_size=1500,
        pollster="Quinnipiac",
        internal=False,
        raw={"id": 101, "extra": [1, 2]},
        answers=[AnswerRecord("Approve", None, 42.0), AnswerRecord("Disapprove", None, 55.0)],
    )
    base.update(overrides)
    return PollRecord(**base)


def _answers(conn, poll_id: int) -> list[tuple]:
    rows = conn.execute(
        "SELECT choice, party, percent FROM poll_answers WHERE poll_id = ? ORDER BY position",
        (poll_id,),
    ).fetchall()
    return [tuple(row) for row in rows]


def test_insert_persists_scalars_raw_and_answers(storage: SQLiteManager, db_path: Path) -> None:
    upserter = PollUpserter(storage, db_path, clock=lambda: FIXED_NOW)

    poll_id = upserter.upsert(_record())

    conn = storage.connect(db_path)
    row = conn.execute("SELECT * FROM polls WHERE id = ?", (poll_id,)).fetchone()
    assert row["source"] == "votehub"
    assert row["source_poll_id"] == "101"
    assert row["end_date"] == "2024-05-12T00:00:00+00:00"
    assert row["internal"] == 0
    assert row["partisan"] is None
    assert json.loads(row["raw"]) == {"id": 101, "extra": [1, 2]}
    assert _answers(conn, poll_id) == [("Approve", None, 42.0), ("Disapprove", None, 55.0)]


def test_repeated_upsert_is_idempotent(storage: SQLiteManager, db_path: Path) -> None:
    upserter = PollUpserter(storage, db_path, clock=SteppingClock())

    first = upserter.upsert(_record())
    second = upserter.upsert(_record())

    conn = storage.connect(db_path)
    assert first == second
    assert conn.execute("SELECT COUNT(*) FROM polls").fetchone()[0] == 1
    assert conn.execute("SELECT COUNT(*) FROM poll_answers").fetchone()[0] == 2
    row = conn.execute("SELECT created_at, updated_at FROM polls").fetchone()
    assert row["created_at"] < row["updated_at"]


def test_answers_are_replaced_not_merged(storage: SQLiteManager, db_path: Path) -> None:
    upserter = PollUpserter(storage, db_path)
    poll_id = upserter.upsert(_record())

    upserter.upsert(
        _record(
            pollster="Quinnipiac University",
            answers=[AnswerRecord("Approve", None, 43.0), AnswerRecord("Unsure", None, 3.0)],
        )
    )

    conn = storage.connect(db_path)
    assert _answers(conn, poll_id) == [("Approve", None, 43.0), ("Unsure", None, 3.0)]
    assert conn.execute("SELECT pollster FROM polls").fetchone()[0] == "Quinnipiac University"


def test_same_native_id_from_other_source_is_separate(storage: SQLiteManager, db_path: Path) -> None:
    upserter = PollUpserter(storage, db_path)

    a = upserter.upsert(_record())
    b = upserter.upsert(_record(source=Source.CIVICAPI))

    assert a != b


def test_failed_answer_write_rolls_back_the_whole_poll(
    storage: SQLiteManager, db_path: Path
) -> None:
    upserter = PollUpserter(storage, db_path)
    poll_id = upserter.upsert(_record())

    with pytest.raises(PersistenceError):
        upserter.upsert(_record(pollster="Changed", answers=[AnswerRecord(None, None, 1.0)]))

    conn = storage.connect(db_path)
    assert conn.execute("SELECT pollster FROM polls").fetchone()[0] == "Quinnipiac"
    assert _answers(conn, poll_id) == [("Approve", None, 42.0), ("Disapprove", None, 55.0)]
