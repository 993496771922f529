from __future__ import annotations

from pathlib import Path

import pytest

from poll_aggregator.engine import RunTracker
from poll_aggregator.infra import SQLiteManager
from poll_aggregator.records import RunStats, RunStatus, Source

from conftest import FIXED_NOW


@pytest.fixture
def tracker(storage: SQLiteManager, db_path: Path) -> RunTracker:
    return RunTracker(storage, db_path, clock=lambda: FIXED_NOW)


def test_start_creates_running_run(tracker: RunTracker) -> None:
    run = tracker.start(Source.VOTEHUB)

    stored = tracker.get(run.id)
    assert run.status is RunStatus.RUNNING
    assert stored.status is RunStatus.RUNNING
    assert stored.finished_at is None
    assert stored.stats == RunStats()
    assert stored.started_at == FIXED_NOW


def test_succeed_persists_stats(tracker: RunTracker) -> None:
    run = tracker.start(Source.VOTEHUB)
    stats = RunStats(fetched=10, upserted=8, errors=2)

    tracker.succeed(run, stats)
    stats.fetched = 99

    stored = tracker.get(run.id)
    assert stored.status is RunStatus.SUCCESS
    assert stored.finished_at == FIXED_NOW
    assert stored.stats == RunStats(fetched=10, upserted=8, errors=2)
    assert stored.error is None
    assert run.stats.fetched == 10


def test_fail_records_error_text(tracker: RunTracker) -> None:
    run = tracker.start(Source.CIVICAPI)

    tracker.fail(run, RunStats(fetched=3, upserted=3), RuntimeError("upstream exploded"))

    stored = tracker.get(run.id)
    assert stored.status is RunStatus.ERROR
    assert stored.error == "upstream exploded"
    assert stored.stats.upserted == 3


def test_fail_falls_back_to_exception_name(tracker: RunTracker) -> None:
    run = tracker.start(Source.CIVICAPI)

    tracker.fail(run, RunStats(), TimeoutError())

    assert tracker.get(run.id).error == "TimeoutError"


def test_terminal_transition_happens_once(tracker: RunTracker) -> None:
    run = tracker.start(Source.VOTEHUB)
    tracker.succeed(run, RunStats())

    with pytest.raises(RuntimeError):
        tracker.fail(run, RunStats(), "late failure")

    assert tracker.get(run.id).status is RunStatus.SUCCESS


def test_stale_handle_cannot_finish_a_terminal_run(tracker: RunTracker) -> None:
    run = tracker.start(Source.VOTEHUB)
    stale = tracker.get(run.id)
    tracker.fail(run, RunStats(), "boom")

    with pytest.raises(RuntimeError):
        tracker.succeed(stale, RunStats())

    assert tracker.get(run.id).status is RunStatus.ERROR


def test_recent_is_newest_first_and_filterable(tracker: RunTracker) -> None:
    first = tracker.start(Source.VOTEHUB)
    second = tracker.start(Source.CIVICAPI)
    third = tracker.start(Source.VOTEHUB)

    assert [run.id for run in tracker.recent()] == [third.id, second.id, first.id]
    assert [run.id for run in tracker.recent(source=Source.VOTEHUB)] == [third.id, first.id]
    assert [run.id for run in tracker.recent(limit=1)] == [third.id]


def test_get_unknown_run_returns_none(tracker: RunTracker) -> None:
    assert tracker.get(12345) is None
