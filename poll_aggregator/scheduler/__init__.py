"""Scheduling helpers."""

from .apsched_adapter import INGEST_JOB_ID, APSchedulerAdapter

__all__ = ["APSchedulerAdapter", "INGEST_JOB_ID"]
