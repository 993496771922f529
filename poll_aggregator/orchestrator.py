"""Ingestion orchestrator: one tracked, isolated run per source."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Sequence

import httpx
import structlog
from pydantic import ValidationError

from .config import CivicApiConfig, GlobalConfig, VoteHubConfig
from .engine import (
    CivicApiAdapter,
    FetchOptions,
    Fetcher,
    PollUpserter,
    RateLimiter,
    RunTracker,
    SourceAdapter,
    VoteHubAdapter,
)
from .infra import SQLiteManager
from .logging_conf import configure_logging, run_context, source_logger
from .records import PollRun, RunStats, RunStatus, Source

ClientFactory = Callable[[], httpx.AsyncClient]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class RunOutcome:
    """Terminal view of one source run as seen by the orchestrator."""

    source: Source
    status: RunStatus
    stats: RunStats = field(default_factory=RunStats)
    run_id: int | None = None
    error: str | None = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCESS


def all_succeeded(outcomes: Iterable[RunOutcome]) -> bool:
    return all(outcome.ok for outcome in outcomes)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Orchestrator:
    """Central coordinator running every source's fetch → validate → upsert loop."""

    def __init__(
        self,
        config: GlobalConfig,
        storage: SQLiteManager,
        db_path: Path,
        *,
        client_factory: ClientFactory | None = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self.storage = storage
        self.db_path = db_path
        self.upserter = PollUpserter(storage, db_path, clock=clock)
        self.tracker = RunTracker(storage, db_path, clock=clock)
        self._client_factory = client_factory or self._default_client
        self._sleep = sleep
        self._clock = clock
        self.logger = configure_logging().bind(component="orchestrator")

    # ------------------------------------------------------------------
    def enabled_sources(self) -> list[Source]:
        return [source for source in Source if self._settings(source).enabled]

    def _settings(self, source: Source) -> VoteHubConfig | CivicApiConfig:
        # config sections are named after the enum values
        return getattr(self.config, source.value)

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=None,
            headers={"User-Agent": self.config.user_agent, "Accept": "application/json"},
        )

    def _build_fetcher(self, source: Source, logger: structlog.BoundLogger) -> Fetcher:
        settings = self._settings(source)
        return Fetcher(
            self._client_factory(),
            rate_limiter=RateLimiter(settings.max_per_minute, sleep=self._sleep),
            options=FetchOptions.from_policy(settings.retry),
            logger=logger,
            sleep=self._sleep,
        )

    def _build_adapter(
        self, source: Source, fetcher: Fetcher, logger: structlog.BoundLogger
    ) -> SourceAdapter:
        registry: dict[Source, Callable[[Fetcher, structlog.BoundLogger], SourceAdapter]] = {
            Source.VOTEHUB: self._votehub_adapter,
            Source.CIVICAPI: self._civicapi_adapter,
        }
        return registry[source](fetcher, logger)

    def _votehub_adapter(self, fetcher: Fetcher, logger: structlog.BoundLogger) -> VoteHubAdapter:
        return VoteHubAdapter(
            fetcher,
            self.config.votehub,
            default_jurisdiction=self.config.default_jurisdiction,
            clock=self._clock,
            logger=logger,
        )

    def _civicapi_adapter(self, fetcher: Fetcher, logger: structlog.BoundLogger) -> CivicApiAdapter:
        return CivicApiAdapter(
            fetcher,
            self.config.civicapi,
            default_jurisdiction=self.config.default_jurisdiction,
            logger=logger,
        )

    # ------------------------------------------------------------------
    async def ingest_source(self, source: Source) -> PollRun:
        """Run one source to a terminal state; fatal errors are recorded then re-raised."""

        return await self._ingest(source, self.tracker.start(source))

    async def _ingest(self, source: Source, run: PollRun) -> PollRun:
        with run_context(source.value, run.id):
            return await self._ingest_in_context(source, run)

    async def _ingest_in_context(self, source: Source, run: PollRun) -> PollRun:
        log = source_logger(source.value)
        log.info("run_started")
        stats = RunStats()
        try:
            async with self._build_fetcher(source, log) as fetcher:
                adapter = self._build_adapter(source, fetcher, log)
                async for item in adapter.iter_raw_polls():
                    stats.fetched += 1
                    try:
                        record = adapter.to_record(item)
                    except ValidationError as exc:
                        stats.errors += 1
                        log.warning(
                            "item_invalid",
                            position=stats.fetched,
                            errors=exc.error_count(),
                            detail=exc.errors(include_url=False)[:3],
                        )
                        continue
                    self.upserter.upsert(record)
                    stats.upserted += 1
        except Exception as exc:
            self.tracker.fail(run, stats, exc)
            log.error("run_failed", error=str(exc), **stats.as_dict())
            raise
        self.tracker.succeed(run, stats)
        log.info("run_succeeded", **stats.as_dict())
        return run

    async def run_source(self, source: Source) -> RunOutcome:
        """Like ``ingest_source`` but converts a fatal error into an outcome."""

        started = time.perf_counter()
        run: PollRun | None = None
        try:
            run = self.tracker.start(source)
            await self._ingest(source, run)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "source_failed", source=source.value, error=str(exc), exc_info=True
            )
            return RunOutcome(
                source=source,
                status=RunStatus.ERROR,
                stats=run.stats if run is not None else RunStats(),
                run_id=run.id if run is not None else None,
                error=str(exc),
                duration_s=time.perf_counter() - started,
            )
        return RunOutcome(
            source=source,
            status=run.status,
            stats=run.stats,
            run_id=run.id,
            duration_s=time.perf_counter() - started,
        )

    async def run_all(self, sources: Sequence[Source] | None = None) -> list[RunOutcome]:
        """Attempt every requested source; one source failing never stops the others."""

        selected = list(sources) if sources is not None else self.enabled_sources()
        started = time.perf_counter()
        self.logger.info("ingest_started", sources=[s.value for s in selected])
        if self.config.concurrent_sources:
            outcomes = list(await asyncio.gather(*(self.run_source(s) for s in selected)))
        else:
            outcomes = [await self.run_source(source) for source in selected]
        self.logger.info(
            "ingest_finished",
            duration_ms=int((time.perf_counter() - started) * 1000),
            succeeded=[o.source.value for o in outcomes if o.ok],
            failed=[o.source.value for o in outcomes if not o.ok],
        )
        return outcomes


__all__ = ["Orchestrator", "RunOutcome", "all_succeeded"]
