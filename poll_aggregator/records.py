"""Canonical, source-agnostic poll records and run bookkeeping types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Source(str, Enum):
    """Origin systems feeding the canonical store."""

    VOTEHUB = "votehub"
    CIVICAPI = "civicapi"


class RunStatus(str, Enum):
    """Lifecycle states of a single source ingestion run."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class AnswerRecord:
    """One answer option of a poll."""

    choice: str
    party: str | None = None
    percent: float | None = None


@dataclass(slots=True)
class PollRecord:
    """Normalised poll identified by ``(source, source_poll_id)``."""

    source: Source
    source_poll_id: str
    poll_type: str
    subject: str | None = None
    jurisdiction: str | None = None
    office: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    sample_size: int | None = None
    population: str | None = None
    pollster: str | None = None
    sponsor: str | None = None
    methodology: str | None = None
    url: str | None = None
    internal: bool | None = None
    partisan: bool | None = None
    hypothetical: bool | None = None
    raw: Any = field(default=None, repr=False)
    answers: list[AnswerRecord] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return self.source.value, self.source_poll_id


@dataclass(slots=True)
class RunStats:
    """Counters accumulated while a run progresses."""

    fetched: int = 0
    upserted: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class PollRun:
    """Provenance record for one execution of one source."""

    id: int
    source: Source
    status: RunStatus
    started_at: datetime
    finished_at: datetime | None = None
    stats: RunStats = field(default_factory=RunStats)
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not RunStatus.RUNNING


__all__ = ["AnswerRecord", "PollRecord", "PollRun", "RunStats", "RunStatus", "Source"]
