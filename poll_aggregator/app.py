"""Typer CLI entrypoint for the poll aggregator."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, GlobalConfig
from .engine import RunTracker
from .infra import SQLiteManager
from .logging_conf import (
    available_source_logs,
    configure_logging,
    ingest_log_path,
    source_log_path,
    tail_log,
)
from .orchestrator import Orchestrator, RunOutcome, all_succeeded
from .query import PollQuery, SeriesPoint, StoredPoll
from .records import PollRun, Source
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="Aggregate public opinion polls from multiple sources into one store.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Inspect ingestion logs.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: GlobalConfig
    storage: SQLiteManager
    orchestrator: Orchestrator
    tracker: RunTracker
    query: PollQuery
    scheduler: APSchedulerAdapter


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    config = repository.load_global_config()
    storage = SQLiteManager()
    db_path = repository.database_path()
    orchestrator = Orchestrator(config, storage, db_path)
    return AppState(
        repository=repository,
        config=config,
        storage=storage,
        orchestrator=orchestrator,
        tracker=orchestrator.tracker,
        query=PollQuery(storage, db_path),
        scheduler=APSchedulerAdapter(),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _parse_sources(names: Optional[Sequence[str]]) -> list[Source] | None:
    if not names:
        return None
    parsed: list[Source] = []
    for name in names:
        try:
            parsed.append(Source(name.strip().lower()))
        except ValueError:
            valid = ", ".join(s.value for s in Source)
            raise typer.BadParameter(f"Unknown source {name!r}; expected one of: {valid}")
    return parsed


def _fmt(value: object) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.1f}"
    return str(value)


def _render_outcomes_table(outcomes: Iterable[RunOutcome]) -> Table:
    table = Table(title="Ingestion results", box=box.SIMPLE_HEAD)
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Fetched", justify="right")
    table.add_column("Upserted", justify="right", style="green")
    table.add_column("Errors", justify="right", style="yellow")
    table.add_column("Run", justify="right", style="dim")
    table.add_column("Error", overflow="fold", style="red")
    for outcome in outcomes:
        table.add_row(
            outcome.source.value,
            "[green]success[/green]" if outcome.ok else "[red]error[/red]",
            str(outcome.stats.fetched),
            str(outcome.stats.upserted),
            str(outcome.stats.errors),
            _fmt(outcome.run_id),
            outcome.error or "",
        )
    return table


def _render_runs_table(runs: Sequence[PollRun]) -> Table:
    table = Table(title=f"Recent runs · {len(runs)}", box=box.SIMPLE_HEAD)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Source", style="cyan")
    table.add_column("Status")
    table.add_column("Started (UTC)")
    table.add_column("Finished (UTC)")
    table.add_column("Fetched/Upserted/Errors", justify="right")
    table.add_column("Error", overflow="fold", style="red")
    for run in runs:
        table.add_row(
            str(run.id),
            run.source.value,
            run.status.value,
            run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            run.finished_at.strftime("%Y-%m-%d %H:%M:%S") if run.finished_at else "-",
            f"{run.stats.fetched}/{run.stats.upserted}/{run.stats.errors}",
            run.error or "",
        )
    return table


def _render_polls_table(polls: Sequence[StoredPoll]) -> Table:
    table = Table(title=f"Polls · {len(polls)}", box=box.SIMPLE_HEAD)
    table.add_column("End", no_wrap=True)
    table.add_column("Source", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Subject")
    table.add_column("Pollster", overflow="fold")
    table.add_column("N", justify="right")
    table.add_column("Answers", overflow="fold", style="green")
    for poll in polls:
        answers = ", ".join(f"{a.choice} {_fmt(a.percent)}" for a in poll.answers)
        table.add_row(
            poll.end_date.date().isoformat() if poll.end_date else "-",
            poll.source,
            poll.poll_type,
            poll.subject or "-",
            poll.pollster or "-",
            _fmt(poll.sample_size),
            answers,
        )
    return table


def _render_series_table(subject: str, series: Sequence[SeriesPoint]) -> Table:
    table = Table(title=f"Approval · {subject}", box=box.SIMPLE_HEAD)
    table.add_column("Date", no_wrap=True)
    table.add_column("Approve", justify="right", style="green")
    table.add_column("Disapprove", justify="right", style="red")
    table.add_column("Net", justify="right")
    table.add_column("Weighted net", justify="right")
    table.add_column("n", justify="right", style="dim")
    for point in series:
        table.add_row(
            point.date,
            _fmt(point.approve),
            _fmt(point.disapprove),
            _fmt(point.net),
            _fmt(point.sample_weighted_net),
            str(point.n),
        )
    return table


app.add_typer(log_app, name="log", help="View ingestion log files.")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("ingest", help="Fetch every enabled source and upsert its polls.")
def ingest(
    ctx: typer.Context,
    sources: Optional[List[str]] = typer.Option(
        None, "--source", "-s", help="Limit the pass to these sources (repeatable)."
    ),
) -> None:
    state = _get_state(ctx)
    selected = _parse_sources(sources)
    outcomes = asyncio.run(state.orchestrator.run_all(selected))
    console.print(_render_outcomes_table(outcomes))
    if not all_succeeded(outcomes):
        raise typer.Exit(code=1)


@app.command("runs", help="List recent ingestion runs.")
def runs(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", min=1, max=500, help="Number of runs to show."),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Only this source."),
) -> None:
    state = _get_state(ctx)
    selected = _parse_sources([source] if source else None)
    items = state.tracker.recent(limit=limit, source=selected[0] if selected else None)
    if not items:
        console.print("No runs recorded yet. Use `poll-aggregator ingest`.", style="yellow")
        return
    console.print(_render_runs_table(items))


@app.command("polls", help="List stored polls, newest first.")
def polls(
    ctx: typer.Context,
    subject: Optional[str] = typer.Option(None, "--subject", help="Exact subject name."),
    poll_type: Optional[str] = typer.Option(None, "--type", help="Exact poll type."),
    date_from: Optional[str] = typer.Option(None, "--from", help="Inclusive end date (YYYY-MM-DD)."),
    date_to: Optional[str] = typer.Option(None, "--to", help="Inclusive end date (YYYY-MM-DD)."),
    limit: int = typer.Option(50, "--limit", min=1, max=1000),
) -> None:
    state = _get_state(ctx)
    try:
        items = state.query.list_polls(subject, poll_type, date_from, date_to, limit)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if not items:
        console.print("No polls match the filters.", style="yellow")
        return
    console.print(_render_polls_table(items))


@app.command("series", help="Daily approval series for one subject.")
def series(
    ctx: typer.Context,
    subject: str = typer.Argument(..., help="Subject display name, e.g. 'Donald Trump'."),
    date_from: Optional[str] = typer.Option(None, "--from", help="Inclusive end date (YYYY-MM-DD)."),
    date_to: Optional[str] = typer.Option(None, "--to", help="Inclusive end date (YYYY-MM-DD)."),
) -> None:
    state = _get_state(ctx)
    try:
        points = state.query.approval_series(subject, date_from, date_to)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if not points:
        console.print(f"No approval polls for `{subject}`.", style="yellow")
        return
    console.print(_render_series_table(subject, points))


@app.command("schedule", help="Run ingestion on the configured schedule until interrupted.")
def schedule(ctx: typer.Context) -> None:
    state = _get_state(ctx)

    def _job() -> None:
        asyncio.run(state.orchestrator.run_all())

    state.scheduler.schedule_ingestion(state.config.schedule, _job)
    state.scheduler.start()
    for job in state.scheduler.list_jobs():
        console.print(f"Scheduled {job['id']}: {job['trigger']} (next: {job['next_run_time']})")
    stop = threading.Event()
    try:
        stop.wait()
    except KeyboardInterrupt:
        console.print("Stopping scheduler…", style="dim")
    finally:
        state.scheduler.shutdown()


@log_app.command("list", help="List per-source log files.")
def log_list() -> None:
    logs = list(available_source_logs())
    if not logs:
        console.print("No source logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("tail", help="Show the most recent lines of a log.")
def log_tail(
    source: Optional[str] = typer.Argument(None, help="Source name (omit for the global log)."),
    lines: int = typer.Option(100, "--lines", "-n", min=1, help="Number of lines."),
) -> None:
    if source:
        path = source_log_path(source)
    else:
        path = ingest_log_path()
    content = tail_log(Path(path), lines)
    if not content:
        console.print("No log lines yet.", style="dim")
        return
    console.print("".join(content), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
