"""Persisted provenance for source ingestion runs."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Callable

from ..errors import PersistenceError
from ..infra.storage import SQLiteManager
from ..records import PollRun, RunStats, RunStatus, Source
from .upsert import isoformat


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class RunTracker:
    """Create runs in ``running`` state and move each to exactly one terminal state."""

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

    def start(self, source: Source) -> PollRun:
        started_at = self._clock()
        stats = RunStats()
        with self._lock:
            try:
                with self._conn:
                    cur = self._conn.execute(
                        "INSERT INTO poll_runs (source, status, started_at, stats) VALUES (?, ?, ?, ?)",
                        (
                            source.value,
                            RunStatus.RUNNING.value,
                            isoformat(started_at),
                            json.dumps(stats.as_dict()),
                        ),
                    )
            except sqlite3.Error as exc:
                raise PersistenceError(f"Failed to create run for {source.value}: {exc}") from exc
        return PollRun(
            id=int(cur.lastrowid),
            source=source,
            status=RunStatus.RUNNING,
            started_at=started_at,
            stats=stats,
        )

    def succeed(self, run: PollRun, stats: RunStats) -> PollRun:
        return self._finish(run, RunStatus.SUCCESS, stats, None)

    def fail(self, run: PollRun, stats: RunStats, error: BaseException | str) -> PollRun:
        return self._finish(run, RunStatus.ERROR, stats, str(error) or type(error).__name__)

    def _finish(
        self, run: PollRun, status: RunStatus, stats: RunStats, error: str | None
    ) -> PollRun:
        if run.is_terminal:
            raise RuntimeError(f"Run {run.id} already finished with status {run.status.value}")
        finished_at = self._clock()
        with self._lock:
            try:
                with self._conn:
                    cur = self._conn.execute(
                        "UPDATE poll_runs SET status = ?, finished_at = ?, stats = ?, error = ? "
                        "WHERE id = ? AND status = ?",
                        (
                            status.value,
                            isoformat(finished_at),
                            json.dumps(stats.as_dict()),
                            error,
                            run.id,
                            RunStatus.RUNNING.value,
                        ),
                    )
            except sqlite3.Error as exc:
                raise PersistenceError(f"Failed to finish run {run.id}: {exc}") from exc
        if cur.rowcount != 1:
            raise RuntimeError(f"Run {run.id} is not in running state")
        run.status = status
        run.finished_at = finished_at
        run.stats = RunStats(**stats.as_dict())
        run.error = error
        return run

    def get(self, run_id: int) -> PollRun | None:
        row = self._conn.execute("SELECT * FROM poll_runs WHERE id = ?", (run_id,)).fetchone()
        return self._from_row(row) if row else None

    def recent(self, limit: int = 20, source: Source | None = None) -> list[PollRun]:
        if source is None:
            rows = self._conn.execute(
                "SELECT * FROM poll_runs ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM poll_runs WHERE source = ? ORDER BY id DESC LIMIT ?",
                (source.value, limit),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    @staticmethod
    def _from_row(row: sqlite3.Row) -> PollRun:
        stats = json.loads(row["stats"]) if row["stats"] else {}
        return PollRun(
            id=int(row["id"]),
            source=Source(row["source"]),
            status=RunStatus(row["status"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            finished_at=_parse_ts(row["finished_at"]),
            stats=RunStats(**stats),
            error=row["error"],
        )


__all__ = ["RunTracker"]
