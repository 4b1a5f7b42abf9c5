"""
Ordered, rate-limited, fallback-capable provider orchestration.

The orchestrator coordinates interchangeable data providers:
1. Cache: Return a stored result for an identical request
2. Classify: Decide from the query text which providers apply
3. Order: Put the specialized provider first, drop it, or keep the default
4. Fetch: Throttle, then call each provider through the retry executor
5. Fallback: Record failures and empty answers, move to the next provider

Strategy is strictly "first non-empty result wins". Results from
different providers are never merged; each provider tags its own
results with its confidence and source.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from resilience.cache import CacheStore
from resilience.errors import ApiError, DataNotFoundError
from resilience.rate_limiter import RateLimiter
from resilience.retry import RetryExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")

FetchFunc = Callable[[str, int], Awaitable[list[Any]]]


class QueryClassification(str, Enum):
    """How a query relates to the specialized provider's coverage."""
    DEFINITE_MATCH = "definite_match"
    DEFINITE_NON_MATCH = "definite_non_match"
    UNCERTAIN = "uncertain"


@dataclass
class ProviderDescriptor:
    """One interchangeable data source."""

    name: str
    fetch: FetchFunc
    rate_limiter: Optional[RateLimiter] = None
    specialized: bool = False
    max_retries: Optional[int] = None


@dataclass
class AttemptRecord:
    """Outcome of one provider call within a single resolve() run."""

    provider_name: str
    succeeded: bool
    result_count: int = 0
    error_message: Optional[str] = None

    def describe(self) -> str:
        if self.error_message:
            return f"{self.provider_name}: {self.error_message}"
        if self.result_count == 0:
            return f"{self.provider_name}: No results found"
        return f"{self.provider_name}: {self.result_count} result(s)"


def _failure_reason(error: Exception) -> str:
    if isinstance(error, ApiError):
        return error.message
    return str(error) or type(error).__name__


def normalize_query(query: str) -> str:
    """Case-fold and collapse whitespace so equivalent queries share a cache key."""
    return re.sub(r"\s+", " ", query.strip()).casefold()


class ProviderOrchestrator(Generic[T]):
    """
    Resolves a query against an ordered set of providers.

    Usage:
        orchestrator = ProviderOrchestrator(
            providers=[census, nominatim, openmeteo],
            classify_query=classify_us_query,
            cache=CacheStore(name="geocoding"),
            cache_prefix="geocode",
        )
        results = await orchestrator.resolve("Seattle, WA", limit=5)
    """

    def __init__(
        self,
        providers: Sequence[ProviderDescriptor],
        classify_query: Optional[Callable[[str], QueryClassification]] = None,
        retry_executor: Optional[RetryExecutor] = None,
        cache: Optional[CacheStore] = None,
        cache_prefix: str = "resolve",
        cache_ttl: Optional[float] = None,
        not_found_hint: Optional[str] = None,
        single_flight: bool = True,
        name: str = "orchestrator",
    ):
        """
        Args:
            providers: Providers in default priority order
            classify_query: Heuristic over query text; None treats every query as uncertain
            retry_executor: Shared retry policy applied to each provider call
            cache: Cache for successful results (None disables caching)
            cache_prefix: Key prefix for this data domain
            cache_ttl: TTL in seconds for cached results (None uses the cache default)
            not_found_hint: Extra guidance appended to DataNotFoundError messages
            single_flight: Share one in-flight run between concurrent identical misses
            name: Label used in logs
        """
        names = [provider.name for provider in providers]
        if len(set(names)) != len(names):
            raise ValueError(f"Provider names must be unique, got {names}")

        self.providers = list(providers)
        self.classify_query = classify_query
        self.retry = retry_executor or RetryExecutor(name=name)
        self.cache = cache
        self.cache_prefix = cache_prefix
        self.cache_ttl = cache_ttl
        self.not_found_hint = not_found_hint
        self.single_flight = single_flight
        self.name = name
        self._in_flight: dict[str, asyncio.Future] = {}

    def classify(self, query: str) -> QueryClassification:
        if self.classify_query is None:
            return QueryClassification.UNCERTAIN
        return self.classify_query(query)

    def provider_order(self, classification: QueryClassification) -> list[ProviderDescriptor]:
        """
        Build the call order for a classification.

        DEFINITE_MATCH puts specialized providers first, DEFINITE_NON_MATCH
        drops them, UNCERTAIN keeps every provider in default order.
        """
        if classification is QueryClassification.DEFINITE_MATCH:
            specialized = [p for p in self.providers if p.specialized]
            general = [p for p in self.providers if not p.specialized]
            return specialized + general
        if classification is QueryClassification.DEFINITE_NON_MATCH:
            return [p for p in self.providers if not p.specialized]
        return list(self.providers)

    async def resolve(self, query: str, limit: int = 5) -> list[T]:
        """
        Return results from the first provider that produces any.

        Args:
            query: Free-text query
            limit: Maximum results requested from each provider

        Returns:
            Non-empty list of results from a single provider

        Raises:
            DataNotFoundError: Every provider failed or returned nothing
        """
        key = CacheStore.generate_key(self.cache_prefix, normalize_query(query), limit)

        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"{self.name}: cache hit for {query!r}")
                return list(cached)

        if not self.single_flight:
            return list(await self._resolve_uncached(query, limit, key))

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug(f"{self.name}: joining in-flight request for {query!r}")
            return list(await asyncio.shield(pending))

        task = asyncio.ensure_future(self._resolve_uncached(query, limit, key))
        self._in_flight[key] = task
        # The entry lives as long as the shared run, not the first caller.
        task.add_done_callback(lambda done: self._forget(key, done))
        return list(await asyncio.shield(task))

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the error retrieved when every waiter was cancelled.
            task.exception()

    async def _resolve_uncached(self, query: str, limit: int, key: str) -> list[T]:
        classification = self.classify(query)
        providers = self.provider_order(classification)
        logger.debug(
            f"{self.name}: strategy {classification.value} "
            f"({' -> '.join(p.name for p in providers)})"
        )

        attempts: list[AttemptRecord] = []

        for provider in providers:
            logger.debug(f"{self.name}: trying provider {provider.name}")
            try:
                if provider.rate_limiter is not None:
                    await provider.rate_limiter.throttle()
                results = await self.retry.run(
                    lambda: provider.fetch(query, limit),
                    max_retries=provider.max_retries,
                )
            except Exception as e:
                logger.debug(f"{self.name}: {provider.name} failed: {e}")
                attempts.append(AttemptRecord(
                    provider_name=provider.name,
                    succeeded=False,
                    error_message=_failure_reason(e),
                ))
                continue

            results = list(results or [])
            attempts.append(AttemptRecord(
                provider_name=provider.name,
                succeeded=bool(results),
                result_count=len(results),
            ))

            if results:
                logger.info(
                    f"{self.name}: resolved via {provider.name}: {len(results)} result(s)"
                )
                if self.cache is not None:
                    self.cache.set(key, results, self.cache_ttl)
                return results

            logger.debug(f"{self.name}: {provider.name}: No results found")

        raise DataNotFoundError(query, attempts, hint=self.not_found_hint)
