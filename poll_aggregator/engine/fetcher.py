"""Async JSON fetching with timeouts, exponential backoff and jitter."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

import httpx
import structlog

from ..config import RetryPolicy
from ..errors import FetchError, FetchErrorKind
from .rate_limiter import RateLimiter

Sleeper = Callable[[float], Awaitable[None]]

ERROR_BODY_LIMIT = 400


@dataclass(slots=True)
class FetchOptions:
    """Per-call retry settings, all durations in milliseconds."""

    retries: int = 4
    timeout_ms: int = 20_000
    min_delay_ms: int = 350
    max_delay_ms: int = 4_000
    jitter_ms: int = 250
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000

    @classmethod
    def from_policy(cls, policy: RetryPolicy) -> "FetchOptions":
        return cls(
            retries=policy.retries,
            timeout_ms=policy.timeout_ms,
            min_delay_ms=policy.min_delay_ms,
            max_delay_ms=policy.max_delay_ms,
            jitter_ms=policy.jitter_ms,
        )


@dataclass(slots=True)
class FetchResult:
    """Outcome of a fetch sequence: either a decoded value or a classified error."""

    url: str
    attempts: int
    value: Any = None
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


class Fetcher:
    """Issue GET requests and decode JSON, retrying transient failures."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        options: FetchOptions | None = None,
        logger: structlog.BoundLogger | None = None,
        sleep: Sleeper = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        # attempt deadlines come from FetchOptions, not httpx's 5s default
        self._client = client or httpx.AsyncClient(follow_redirects=True, timeout=None)
        self.rate_limiter = rate_limiter
        self.options = options or FetchOptions()
        self.logger = logger or structlog.get_logger("poll_aggregator.fetcher")
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    def backoff_delay(self, attempt: int, options: FetchOptions | None = None) -> float:
        """Return the sleep (seconds) following the failed 0-indexed ``attempt``."""

        opts = options or self.options
        base = min(opts.max_delay_ms, opts.min_delay_ms * 2**attempt)
        jitter = self._rng.random() * opts.jitter_ms if opts.jitter_ms else 0.0
        return (base + jitter) / 1000

    async def fetch_json(
        self,
        url: str,
        options: FetchOptions | None = None,
        *,
        params: Mapping[str, str] | None = None,
    ) -> FetchResult:
        opts = options or self.options
        last_error: FetchError | None = None
        attempt = 0
        for attempt in range(opts.retries + 1):
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire()
            try:
                response = await asyncio.wait_for(
                    self._client.get(
                        url,
                        params=params,
                        headers=opts.headers or None,
                        timeout=opts.timeout_s,
                    ),
                    timeout=opts.timeout_s,
                )
            except httpx.DecodingError as exc:
                # a corrupt Content-Encoding will not heal on retry
                error = FetchError(
                    FetchErrorKind.MALFORMED_JSON,
                    url,
                    f"Undecodable response body: {exc}",
                    attempts=attempt + 1,
                )
                self.logger.error("fetch_undecodable", url=url, error=str(exc))
                return FetchResult(url=url, attempts=attempt + 1, error=error)
            except (httpx.RequestError, asyncio.TimeoutError) as exc:
                last_error = FetchError(
                    FetchErrorKind.TRANSIENT_NETWORK,
                    url,
                    _describe_transport_error(exc, opts.timeout_ms),
                    attempts=attempt + 1,
                )
            else:
                if response.is_success:
                    try:
                        value = response.json()
                    except ValueError as exc:
                        error = FetchError(
                            FetchErrorKind.MALFORMED_JSON,
                            str(response.url),
                            f"Invalid JSON body: {exc}",
                            status_code=response.status_code,
                            attempts=attempt + 1,
                        )
                        self.logger.error("fetch_malformed_json", url=url, error=str(exc))
                        return FetchResult(url=url, attempts=attempt + 1, error=error)
                    return FetchResult(url=url, attempts=attempt + 1, value=value)
                body = response.text[:ERROR_BODY_LIMIT]
                last_error = FetchError(
                    FetchErrorKind.TRANSIENT_HTTP,
                    str(response.url),
                    f"HTTP {response.status_code} {response.reason_phrase}: {body}",
                    status_code=response.status_code,
                    attempts=attempt + 1,
                )

            if attempt >= opts.retries:
                break
            delay = self.backoff_delay(attempt, opts)
            self.logger.warning(
                "fetch_retry",
                url=url,
                attempt=attempt + 1,
                kind=last_error.kind.value,
                error=last_error.message,
                delay_s=round(delay, 3),
            )
            await self._sleep(delay)

        self.logger.error(
            "fetch_exhausted",
            url=url,
            attempts=attempt + 1,
            kind=last_error.kind.value if last_error else None,
        )
        return FetchResult(url=url, attempts=attempt + 1, error=last_error)


def _describe_transport_error(exc: BaseException, timeout_ms: int) -> str:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return f"Request timed out after {timeout_ms}ms"
    return f"{type(exc).__name__}: {exc}"


__all__ = ["ERROR_BODY_LIMIT", "FetchOptions", "FetchResult", "Fetcher"]
