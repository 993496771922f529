"""Pydantic models used across the poll ingestion configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class ScheduleType(str, Enum):
    """Scheduler modes for recurring ingestion."""

    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"


class ScheduleConfig(BaseModel):
    """Configuration describing when ingestion should run."""

    type: ScheduleType = Field(default=ScheduleType.INTERVAL)
    value: Any = Field(
        default={"hours": 6},
        description="Cron expression, interval seconds/kwargs or ISO datetime, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(self.value, (int, float, dict)):
            raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
        if (
            self.type is ScheduleType.ONCE
            and self.value is not None
            and not isinstance(self.value, str)
        ):
            raise ValueError("Once schedule expects ISO datetime string or null")
        return self


class RetryPolicy(BaseModel):
    """Timeout and exponential backoff settings for HTTP fetches."""

    retries: int = 4
    timeout_ms: int = 20_000
    min_delay_ms: int = 350
    max_delay_ms: int = 4_000
    jitter_ms: int = 250

    @model_validator(mode="after")
    def _validate_bounds(self) -> "RetryPolicy":
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if self.min_delay_ms < 0 or self.jitter_ms < 0:
            raise ValueError("min_delay_ms and jitter_ms must be >= 0")
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        return self


class _SourceSettings(BaseModel):
    enabled: bool = True
    max_per_minute: int = 60
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("max_per_minute")
    @classmethod
    def _positive_rate(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_per_minute must be >= 1")
        return value


class VoteHubConfig(_SourceSettings):
    """Time-windowed source exposing native poll identifiers."""

    base_url: str = "https://api.votehub.com"
    poll_types_path: str = "/poll-types"
    polls_path: str = "/polls"
    lookback_days: int = 30
    fallback_poll_types: list[str] = Field(
        default_factory=lambda: ["approval", "favorability", "generic-ballot"]
    )

    @field_validator("lookback_days", mode="before")
    @classmethod
    def _clamp_lookback(cls, value: Any) -> int:
        if value in (None, ""):
            return 30
        return max(1, int(value))

    def endpoint(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


class CivicApiConfig(_SourceSettings):
    """Single "latest polls" source without stable identifiers."""

    latest_url: str = "https://civicapi.org/api/v2/poll/latest"
    max_per_minute: int = 40


class GlobalConfig(BaseModel):
    """Global controls shared across sources."""

    database_path: Path = Field(default=Path("data/polls.db"))
    default_jurisdiction: str = "US"
    concurrent_sources: bool = False
    user_agent: str = "poll-aggregator/0.1 (+https://github.com/poll-aggregator)"
    votehub: VoteHubConfig = Field(default_factory=VoteHubConfig)
    civicapi: CivicApiConfig = Field(default_factory=CivicApiConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @field_validator("database_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("default_jurisdiction")
    @classmethod
    def _upper_jurisdiction(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("default_jurisdiction cannot be empty")
        return value

    def resolved_database_path(self, base_dir: Path) -> Path:
        """Return the SQLite path relative to the project root."""

        if not self.database_path.is_absolute():
            return (base_dir / self.database_path).resolve()
        return self.database_path


__all__ = [
    "CivicApiConfig",
    "GlobalConfig",
    "RetryPolicy",
    "ScheduleConfig",
    "ScheduleType",
    "VoteHubConfig",
]
