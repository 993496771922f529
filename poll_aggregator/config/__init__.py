"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    CivicApiConfig,
    GlobalConfig,
    RetryPolicy,
    ScheduleConfig,
    ScheduleType,
    VoteHubConfig,
)

__all__ = [
    "CivicApiConfig",
    "ConfigLocator",
    "ConfigRepository",
    "GlobalConfig",
    "RetryPolicy",
    "ScheduleConfig",
    "ScheduleType",
    "VoteHubConfig",
]
