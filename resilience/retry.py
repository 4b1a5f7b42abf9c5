"""
Retry with exponential backoff and jitter.

One parameterized executor replaces per-client retry loops. Each upstream
client supplies a classifier; the executor only asks whether the error's
kind is retryable.

Delay before retry n (n = 0, 1, 2, ...):
    base_delay * 2**n + uniform[0, max_jitter)
With the defaults that is 1s, 2s, 4s plus up to 1s of jitter.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from resilience.errors import ErrorKind, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Classifier = Callable[[BaseException], Optional[ErrorKind]]
SleepFunc = Callable[[float], Awaitable[None]]


class RetryExecutor:
    """
    Runs one async unit of work, retrying classified transient failures.

    Implements:
    - CLIENT_ERROR (and unclassified errors) rethrown immediately
    - RATE_LIMITED, SERVICE_UNAVAILABLE, NETWORK_ERROR retried up to max_retries
    - Total attempts on exhaustion: max_retries + 1
    - Injectable sleep and random source for deterministic tests

    The executor holds configuration only; attempt state lives inside
    each run() call, so one instance can be shared by concurrent callers.
    """

    def __init__(
        self,
        classifier: Classifier = classify_error,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_jitter: float = 1.0,
        sleep: Optional[SleepFunc] = None,
        rng: Optional[random.Random] = None,
        name: str = "retry",
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")

        self.classifier = classifier
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_jitter = max_jitter
        self.name = name
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    def compute_delay(self, attempt: int) -> float:
        """Backoff before the retry that follows failed attempt `attempt` (0-based)."""
        return self.base_delay * (2 ** attempt) + self._rng.random() * self.max_jitter

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
    ) -> T:
        """
        Execute operation, retrying on retryable failures.

        Args:
            operation: Zero-argument coroutine factory (use a lambda for args)
            max_retries: Override the configured retry budget for this call

        Returns:
            The operation's result

        Raises:
            The last error once it is fatal or the budget is exhausted
        """
        budget = self.max_retries if max_retries is None else max_retries
        attempt = 0

        while True:
            try:
                return await operation()
            except Exception as e:
                kind = self.classifier(e)

                if kind is None or not kind.retryable:
                    logger.debug(
                        f"{self.name}: not retrying {type(e).__name__} "
                        f"(kind={kind.value if kind else 'unclassified'})"
                    )
                    raise

                if attempt >= budget:
                    logger.error(
                        f"{self.name}: All {budget + 1} attempts failed ({kind.value}): {e}"
                    )
                    raise

                delay = self.compute_delay(attempt)
                logger.warning(
                    f"{self.name}: Attempt {attempt + 1}/{budget + 1} failed "
                    f"({kind.value}: {e}); retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
                attempt += 1
