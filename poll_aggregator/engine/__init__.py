"""Engine components wiring fetch → validate → fingerprint → upsert → run tracking."""

from .adapters import CivicApiAdapter, SourceAdapter, VoteHubAdapter
from .fetcher import FetchOptions, FetchResult, Fetcher
from .fingerprint import FingerprintFields, answers_fingerprint, fingerprint_poll
from .rate_limiter import RateLimiter
from .run_tracker import RunTracker
from .upsert import PollUpserter

__all__ = [
    "CivicApiAdapter",
    "FetchOptions",
    "FetchResult",
    "Fetcher",
    "FingerprintFields",
    "PollUpserter",
    "RateLimiter",
    "RunTracker",
    "SourceAdapter",
    "VoteHubAdapter",
    "answers_fingerprint",
    "fingerprint_poll",
]
