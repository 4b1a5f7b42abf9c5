"""
Per-provider minimum-interval throttle.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces at least 1 / requests_per_second seconds between calls.

    State is per instance: two providers with their own limiters never
    block each other, while concurrent callers of one limiter queue on
    its lock and are spaced out in turn.
    """

    def __init__(
        self,
        requests_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        name: Optional[str] = None,
    ):
        if requests_per_second <= 0:
            raise ValueError(
                f"requests_per_second must be positive, got {requests_per_second}"
            )

        self.requests_per_second = requests_per_second
        self.min_interval = 1.0 / requests_per_second
        self.name = name or "rate-limiter"
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def last_call(self) -> Optional[float]:
        return self._last_call

    async def throttle(self) -> None:
        """Wait until the minimum interval has passed, then record the call."""
        async with self._lock:
            if self._last_call is not None:
                elapsed = self._clock() - self._last_call
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    logger.debug(f"{self.name}: throttling for {delay:.3f}s")
                    await self._sleep(delay)

            self._last_call = self._clock()
