from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from rich.console import Console
from typer.testing import CliRunner

import poll_aggregator.app as app_module
from poll_aggregator.app import AppState, app
from poll_aggregator.config import ConfigLocator, ConfigRepository, GlobalConfig
from poll_aggregator.infra import SQLiteManager
from poll_aggregator.orchestrator import Orchestrator
from poll_aggregator.query import PollQuery
from poll_aggregator.scheduler import APSchedulerAdapter

from conftest import FIXED_NOW, SleepRecorder, json_response, make_client

runner = CliRunner()


@pytest.fixture
def cli_env(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    sample_global_config: GlobalConfig,
    storage: SQLiteManager,
    db_path: Path,
    votehub_poll,
    civic_poll,
):
    monkeypatch.setenv("POLL_AGGREGATOR_HOME", str(tmp_path))
    responses = {"civic_status": 200}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "votehub.test":
            if request.url.path == "/poll-types":
                return json_response(["approval"])
            return json_response([votehub_poll(id=1), votehub_poll(id=2, end_date="2024-05-13")])
        if responses["civic_status"] != 200:
            return httpx.Response(responses["civic_status"], text="maintenance")
        return json_response({"polls": [civic_poll()]})

    orchestrator = Orchestrator(
        sample_global_config,
        storage,
        db_path,
        client_factory=lambda: make_client(handler),
        sleep=SleepRecorder(),
        clock=lambda: FIXED_NOW,
    )
    state = AppState(
        repository=ConfigRepository(ConfigLocator(project_root=tmp_path), environ={}),
        config=sample_global_config,
        storage=storage,
        orchestrator=orchestrator,
        tracker=orchestrator.tracker,
        query=PollQuery(storage, db_path),
        scheduler=APSchedulerAdapter(),
    )
    monkeypatch.setattr(app_module, "build_state", lambda verbose: state)
    monkeypatch.setattr(app_module, "console", Console(width=200))
    return responses


def test_ingest_reports_results(cli_env) -> None:
    result = runner.invoke(app, ["ingest"])

    assert result.exit_code == 0, result.output
    assert "Ingestion results" in result.output
    assert "votehub" in result.output
    assert "civicapi" in result.output


def test_ingest_exits_non_zero_when_a_source_fails(cli_env) -> None:
    cli_env["civic_status"] = 503

    result = runner.invoke(app, ["ingest"])

    assert result.exit_code == 1
    assert "HTTP 503" in result.output


def test_ingest_single_source(cli_env) -> None:
    cli_env["civic_status"] = 503

    result = runner.invoke(app, ["ingest", "--source", "votehub"])

    assert result.exit_code == 0, result.output
    assert "civicapi" not in result.output


def test_ingest_rejects_unknown_source(cli_env) -> None:
    result = runner.invoke(app, ["ingest", "-s", "gallup"])

    assert result.exit_code == 2


def test_runs_lists_history(cli_env) -> None:
    empty = runner.invoke(app, ["runs"])
    runner.invoke(app, ["ingest"])
    listed = runner.invoke(app, ["runs", "--source", "civicapi"])

    assert "No runs recorded yet" in empty.output
    assert listed.exit_code == 0
    assert "civicapi" in listed.output
    assert "success" in listed.output
    assert "votehub" not in listed.output


def test_polls_lists_filtered_rows(cli_env) -> None:
    runner.invoke(app, ["ingest"])

    result = runner.invoke(app, ["polls", "--subject", "Donald Trump", "--to", "2024-05-12"])

    assert result.exit_code == 0, result.output
    assert "Polls · 1" in result.output
    assert "Quinnipiac" in result.output


def test_polls_rejects_bad_date(cli_env) -> None:
    result = runner.invoke(app, ["polls", "--from", "12/05/2024"])

    assert result.exit_code == 2


def test_series_prints_daily_points(cli_env) -> None:
    runner.invoke(app, ["ingest", "-s", "votehub"])

    result = runner.invoke(app, ["series", "Donald Trump"])

    assert result.exit_code == 0, result.output
    assert "2024-05-12" in result.output
    assert "2024-05-13" in result.output


def test_series_without_data(cli_env) -> None:
    result = runner.invoke(app, ["series", "Nobody"])

    assert result.exit_code == 0
    assert "No approval polls" in result.output


def test_log_tail_reads_global_log(cli_env, tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "ingest.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.write_text("first\nsecond\nthird\n", encoding="utf-8")

    result = runner.invoke(app, ["log", "tail", "-n", "2"])

    assert result.exit_code == 0
    assert "second" in result.output
    assert "third" in result.output
    assert "first" not in result.output


def test_log_list_shows_source_files(cli_env, tmp_path: Path) -> None:
    sources = tmp_path / "logs" / "sources"
    sources.mkdir(parents=True, exist_ok=True)
    (sources / "votehub.log").write_text("x\n", encoding="utf-8")

    result = runner.invoke(app, ["log", "list"])

    assert result.exit_code == 0
    assert "votehub.log" in result.output
