"""Minimum-interval rate limiting for calls to the geocoding service."""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import structlog

LOGGER = structlog.get_logger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Spaces consecutive calls at least ``min_interval`` seconds apart.

    One instance is shared by every resolution in the process. The timestamp
    of the last released call is guarded by a lock, so concurrent callers are
    serialised as well.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    @property
    def last_request(self) -> float | None:
        return self._last_request

    async def acquire(self) -> float:
        """Wait until the next call may be issued; return the seconds waited."""
        async with self._lock:
            waited = 0.0
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self._min_interval:
                    waited = self._min_interval - elapsed
                    LOGGER.debug("rate_limit_wait", seconds=round(waited, 3))
                    await self._sleep(waited)
            self._last_request = self._clock()
            return waited
