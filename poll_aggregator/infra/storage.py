"""SQLite connection management and schema for polls, answers and runs."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS polls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source TEXT NOT NULL,
        source_poll_id TEXT NOT NULL,
        poll_type TEXT NOT NULL,
        subject TEXT,
        jurisdiction TEXT,
        office TEXT,
        start_date TEXT,
        end_date TEXT,
        sample_size INTEGER,
        population TEXT,
        pollster TEXT,
        sponsor TEXT,
        methodology TEXT,
        url TEXT,
        internal INTEGER,
        partisan INTEGER,
        hypothetical INTEGER,
        raw TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (source, source_poll_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_polls_subject_type ON polls (subject, poll_type)",
    "CREATE INDEX IF NOT EXISTS idx_polls_end_date ON polls (end_date)",
    """
    CREATE TABLE IF NOT EXISTS poll_answers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        poll_id INTEGER NOT NULL REFERENCES polls (id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        choice TEXT NOT NULL,
        party TEXT,
        percent REAL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_poll_answers_poll ON poll_answers (poll_id)",
    """
    CREATE TABLE IF NOT EXISTS poll_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source TEXT NOT NULL,
        status TEXT NOT NULL,
        started_at TEXT NOT NULL,
        finished_at TEXT,
        stats TEXT,
        error TEXT
    )
    """,
)


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        with conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SQLiteManager"]
