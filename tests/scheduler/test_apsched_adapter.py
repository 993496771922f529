from __future__ import annotations

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from poll_aggregator.config import ScheduleConfig, ScheduleType
from poll_aggregator.scheduler import INGEST_JOB_ID, APSchedulerAdapter


@pytest.fixture
def adapter():
    scheduler = APSchedulerAdapter()
    yield scheduler
    scheduler.shutdown()


@pytest.mark.parametrize(
    "schedule, trigger_type",
    [
        (ScheduleConfig(type=ScheduleType.CRON, value="0 */6 * * *"), CronTrigger),
        (ScheduleConfig(type=ScheduleType.INTERVAL, value=900), IntervalTrigger),
        (ScheduleConfig(type=ScheduleType.INTERVAL, value={"hours": 6}), IntervalTrigger),
        (ScheduleConfig(type=ScheduleType.ONCE, value="2030-01-01T00:00:00+00:00"), DateTrigger),
        (ScheduleConfig(type=ScheduleType.ONCE, value=None), DateTrigger),
    ],
)
def test_build_trigger(adapter: APSchedulerAdapter, schedule, trigger_type) -> None:
    assert isinstance(adapter._build_trigger(schedule), trigger_type)


def test_interval_trigger_uses_configured_seconds(adapter: APSchedulerAdapter) -> None:
    trigger = adapter._build_trigger(ScheduleConfig(type=ScheduleType.INTERVAL, value=90))

    assert trigger.interval.total_seconds() == 90


def test_schedule_ingestion_registers_single_job(adapter: APSchedulerAdapter) -> None:
    adapter.start()

    adapter.schedule_ingestion(ScheduleConfig(), lambda: None)
    adapter.schedule_ingestion(ScheduleConfig(type=ScheduleType.INTERVAL, value=60), lambda: None)

    jobs = adapter.list_jobs()
    assert [job["id"] for job in jobs] == [INGEST_JOB_ID]
    assert "0:01:00" in jobs[0]["trigger"]


def test_remove_ingestion(adapter: APSchedulerAdapter) -> None:
    adapter.start()
    adapter.schedule_ingestion(ScheduleConfig(), lambda: None)

    adapter.remove_ingestion()
    adapter.remove_ingestion()

    assert adapter.list_jobs() == []
