"""Fixed-interval rate limiting for outbound source requests."""

from __future__ import annotations

import asyncio
import math
import time
from typing import Awaitable, Callable

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Space successive acquisitions by at least ``60 / max_per_minute`` seconds.

    The gap is measured from the completion of the previous acquisition. There is
    no burst allowance: an idle limiter does not accumulate credit.
    """

    def __init__(
        self,
        max_per_minute: int,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_per_minute < 1:
            raise ValueError("max_per_minute must be >= 1")
        self.max_per_minute = max_per_minute
        self.min_interval = math.ceil(60_000 / max_per_minute) / 1000
        self._clock = clock
        self._sleep = sleep
        self._last_at: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> float:
        """Wait until the next slot opens; return the seconds spent waiting."""

        async with self._lock:
            waited = 0.0
            if self._last_at is not None:
                waited = self._last_at + self.min_interval - self._clock()
                if waited > 0:
                    await self._sleep(waited)
                else:
                    waited = 0.0
            self._last_at = self._clock()
            return waited


__all__ = ["RateLimiter"]
