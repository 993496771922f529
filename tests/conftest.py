"""Shared fixtures: isolated SQLite stores, mock HTTP transports and payload builders."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import pytest

from poll_aggregator.config import (
    CivicApiConfig,
    ConfigLocator,
    ConfigRepository,
    GlobalConfig,
    RetryPolicy,
    VoteHubConfig,
)
from poll_aggregator.infra import SQLiteManager

FIXED_NOW = datetime(2024, 5, 20, 12, 0, 0, tzinfo=timezone.utc)
VOTEHUB_BASE = "https://votehub.test"
CIVICAPI_LATEST = "https://civicapi.test/api/v2/poll/latest"

Handler = Callable[[httpx.Request], httpx.Response]


class SleepRecorder:
    """Async stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )


def make_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(retries=2, timeout_ms=2_000, min_delay_ms=1, max_delay_ms=4, jitter_ms=0)


@pytest.fixture
def sample_global_config(tmp_path: Path, fast_retry: RetryPolicy) -> GlobalConfig:
    return GlobalConfig(
        database_path=tmp_path / "polls.db",
        votehub=VoteHubConfig(
            base_url=VOTEHUB_BASE,
            lookback_days=7,
            max_per_minute=6_000,
            retry=fast_retry,
        ),
        civicapi=CivicApiConfig(
            latest_url=CIVICAPI_LATEST,
            max_per_minute=6_000,
            retry=fast_retry,
        ),
    )


@pytest.fixture
def storage() -> Iterable[SQLiteManager]:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "polls.db"


@pytest.fixture
def temp_config_repository(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("POLL_AGGREGATOR_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    yield ConfigRepository(locator, environ={})


@pytest.fixture
def votehub_poll() -> Callable[..., dict[str, Any]]:
    def _builder(**overrides: Any) -> dict[str, Any]:
        base: dict[str, Any] = {
            "id": 101,
            "poll_type": "approval",
            "subject": "donald-trump",
            "sample_size": 1500,
            "population": "rv",
            "url": "https://votehub.test/polls/101",
            "start_date": "2024-05-10",
            "end_date": "2024-05-12",
            "pollster": {"name": "Quinnipiac"},
            "sponsors": [{"name": "CNN"}, "SSRS"],
            "internal": False,
            "partisan": None,
            "answers": [
                {"choice": "Approve", "percent": 42.0},
                {"choice": "Disapprove", "percent": 55.0},
            ],
            "extra_field": {"kept": True},
        }
        base.update(overrides)
        return base

    return _builder


@pytest.fixture
def civic_poll() -> Callable[..., dict[str, Any]]:
    def _builder(**overrides: Any) -> dict[str, Any]:
        base: dict[str, Any] = {
            "title": "Presidential approval",
            "pollster": "Emerson",
            "start_date": "2024-05-01",
            "end_date": "2024-05-03",
            "sample": "1,200 RV",
            "population": "registered voters",
            "state": "pa",
            "politician": "Joe Biden",
            "type": "approval",
            "url": "https://civicapi.test/poll/1",
            "answers": [
                {"choice": "Approve", "party": None, "percent": "41%"},
                {"choice": "Disapprove", "percent": 52},
            ],
        }
        base.update(overrides)
        return base

    return _builder
