"""
Tests for the provider orchestrator.

These tests verify:
- First non-empty result wins; failures and empty answers fall through
- Query classification reorders or drops the specialized provider
- DataNotFoundError names every provider tried
- Successful results are cached; failures are not
- Concurrent identical misses share one upstream run
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from resilience.cache import CacheStore
from resilience.errors import ClientError, DataNotFoundError, ServiceUnavailableError
from resilience.orchestrator import (
    AttemptRecord,
    ProviderDescriptor,
    ProviderOrchestrator,
    QueryClassification,
    normalize_query,
)
from resilience.rate_limiter import RateLimiter
from resilience.retry import RetryExecutor


@pytest.fixture
def retry(fake_sleep, rng):
    return RetryExecutor(max_retries=2, sleep=fake_sleep, rng=rng)


def _provider(name, result=None, error=None, specialized=False):
    fetch = AsyncMock(return_value=result if result is not None else [], side_effect=error)
    return ProviderDescriptor(name=name, fetch=fetch, specialized=specialized)


class TestProviderOrder:
    """Tests for classification-driven ordering."""

    @pytest.fixture
    def orchestrator(self, retry):
        return ProviderOrchestrator(
            providers=[
                _provider("General A"),
                _provider("Specialist", specialized=True),
                _provider("General B"),
            ],
            retry_executor=retry,
        )

    def _names(self, providers):
        return [p.name for p in providers]

    def test_definite_match_puts_specialist_first(self, orchestrator):
        order = orchestrator.provider_order(QueryClassification.DEFINITE_MATCH)
        assert self._names(order) == ["Specialist", "General A", "General B"]

    def test_definite_non_match_drops_specialist(self, orchestrator):
        order = orchestrator.provider_order(QueryClassification.DEFINITE_NON_MATCH)
        assert self._names(order) == ["General A", "General B"]

    def test_uncertain_keeps_default_order(self, orchestrator):
        order = orchestrator.provider_order(QueryClassification.UNCERTAIN)
        assert self._names(order) == ["General A", "Specialist", "General B"]

    def test_no_classifier_means_uncertain(self, orchestrator):
        assert orchestrator.classify("anything") is QueryClassification.UNCERTAIN

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            ProviderOrchestrator(providers=[_provider("A"), _provider("A")])


class TestResolve:
    """Tests for fallback resolution."""

    @pytest.mark.asyncio
    async def test_fallback_to_third_provider(self, retry):
        """A throws, B returns nothing, C answers: C's results are returned."""
        a = _provider("A", error=ClientError("HTTP 400 from upstream", "A", status_code=400))
        b = _provider("B", result=[])
        c = _provider("C", result=["x"])
        orchestrator = ProviderOrchestrator(providers=[a, b, c], retry_executor=retry)

        assert await orchestrator.resolve("somewhere") == ["x"]
        a.fetch.assert_awaited_once_with("somewhere", 5)
        b.fetch.assert_awaited_once()
        c.fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_providers_called_in_order(self, retry):
        calls = []

        def recording(name, result):
            async def fetch(query, limit):
                calls.append(name)
                return result
            return ProviderDescriptor(name=name, fetch=fetch)

        orchestrator = ProviderOrchestrator(
            providers=[recording("A", []), recording("B", []), recording("C", ["x"])],
            retry_executor=retry,
        )

        assert await orchestrator.resolve("somewhere") == ["x"]
        assert calls == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_stops_at_first_non_empty(self, retry):
        a = _provider("A", result=["first"])
        b = _provider("B", result=["second"])
        orchestrator = ProviderOrchestrator(providers=[a, b], retry_executor=retry)

        assert await orchestrator.resolve("q") == ["first"]
        b.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_fail_raises_data_not_found(self, retry):
        a = _provider("A", error=ClientError("HTTP 404 from upstream", "A", status_code=404))
        b = _provider("B", result=[])
        c = _provider("C", error=ValueError("bad payload"))
        orchestrator = ProviderOrchestrator(
            providers=[a, b, c], retry_executor=retry, not_found_hint="Check spelling"
        )

        with pytest.raises(DataNotFoundError) as exc_info:
            await orchestrator.resolve("Atlantis")

        error = exc_info.value
        assert error.providers_tried == ["A", "B", "C"]
        assert "A: HTTP 404 from upstream" in str(error)
        assert "B: No results found" in str(error)
        assert "C: bad payload" in str(error)
        assert "Check spelling" in str(error)
        assert all(isinstance(a, AttemptRecord) for a in error.attempts)

    @pytest.mark.asyncio
    async def test_non_match_never_calls_specialist(self, retry):
        specialist = _provider("Specialist", result=["us"], specialized=True)
        general = _provider("General", result=["world"])
        orchestrator = ProviderOrchestrator(
            providers=[specialist, general],
            classify_query=lambda q: QueryClassification.DEFINITE_NON_MATCH,
            retry_executor=retry,
        )

        assert await orchestrator.resolve("Paris, France") == ["world"]
        specialist.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_match_exhausted_without_specialist(self, retry):
        """Non-US queries stay off the specialist even when every general provider fails."""
        specialist = _provider("Specialist", result=["us"], specialized=True)
        general_a = _provider("General A", error=ServiceUnavailableError("HTTP 503", "General A"))
        general_b = _provider("General B", result=[])
        orchestrator = ProviderOrchestrator(
            providers=[specialist, general_a, general_b],
            classify_query=lambda q: QueryClassification.DEFINITE_NON_MATCH,
            retry_executor=retry,
        )

        with pytest.raises(DataNotFoundError) as exc_info:
            await orchestrator.resolve("Nowhere, France")

        specialist.fetch.assert_not_awaited()
        assert exc_info.value.providers_tried == ["General A", "General B"]

    @pytest.mark.asyncio
    async def test_retryable_failure_retried_before_fallback(self, retry, fake_sleep):
        flaky = ProviderDescriptor(
            name="Flaky",
            fetch=AsyncMock(side_effect=[ServiceUnavailableError("HTTP 503", "Flaky"), ["ok"]]),
        )
        backup = _provider("Backup", result=["backup"])
        orchestrator = ProviderOrchestrator(providers=[flaky, backup], retry_executor=retry)

        assert await orchestrator.resolve("q") == ["ok"]
        assert flaky.fetch.await_count == 2
        assert len(fake_sleep.delays) == 1
        backup.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_retry_budget_override(self, retry):
        strict = ProviderDescriptor(
            name="Strict",
            fetch=AsyncMock(side_effect=ServiceUnavailableError("HTTP 503", "Strict")),
            max_retries=0,
        )
        backup = _provider("Backup", result=["backup"])
        orchestrator = ProviderOrchestrator(providers=[strict, backup], retry_executor=retry)

        assert await orchestrator.resolve("q") == ["backup"]
        assert strict.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limiter_consulted(self, retry, clock, fake_sleep):
        limiter = RateLimiter(1, clock=clock, sleep=fake_sleep)
        provider = ProviderDescriptor(
            name="Limited", fetch=AsyncMock(return_value=["x"]), rate_limiter=limiter
        )
        orchestrator = ProviderOrchestrator(providers=[provider], retry_executor=retry)

        await orchestrator.resolve("one")
        await orchestrator.resolve("two")

        assert fake_sleep.delays == [pytest.approx(1.0)]


class TestResolveCaching:
    """Tests for result caching."""

    @pytest.fixture
    def cache(self, clock):
        return CacheStore(max_size=10, enabled=True, default_ttl=60, clock=clock)

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, retry, cache):
        provider = _provider("A", result=["x"])
        orchestrator = ProviderOrchestrator(providers=[provider], retry_executor=retry, cache=cache)

        assert await orchestrator.resolve("Seattle, WA") == ["x"]
        assert await orchestrator.resolve("  seattle,   wa ") == ["x"]
        assert provider.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_limit_is_part_of_key(self, retry, cache):
        provider = _provider("A", result=["x"])
        orchestrator = ProviderOrchestrator(providers=[provider], retry_executor=retry, cache=cache)

        await orchestrator.resolve("Seattle", limit=1)
        await orchestrator.resolve("Seattle", limit=5)

        assert provider.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_failures_not_cached(self, retry, cache):
        provider = _provider("A", result=[])
        orchestrator = ProviderOrchestrator(providers=[provider], retry_executor=retry, cache=cache)

        for _ in range(2):
            with pytest.raises(DataNotFoundError):
                await orchestrator.resolve("nowhere")

        assert provider.fetch.await_count == 2
        assert cache.size == 0

    @pytest.mark.asyncio
    async def test_cached_ttl_respected(self, retry, cache, clock):
        provider = _provider("A", result=["x"])
        orchestrator = ProviderOrchestrator(
            providers=[provider], retry_executor=retry, cache=cache, cache_ttl=10
        )

        await orchestrator.resolve("q")
        clock.advance(11)
        await orchestrator.resolve("q")

        assert provider.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_returned_list_is_a_copy(self, retry, cache):
        provider = _provider("A", result=["x"])
        orchestrator = ProviderOrchestrator(providers=[provider], retry_executor=retry, cache=cache)

        first = await orchestrator.resolve("q")
        first.append("mutated")

        assert await orchestrator.resolve("q") == ["x"]


class TestSingleFlight:
    """Tests for concurrent request de-duplication."""

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_run(self, retry):
        release = asyncio.Event()

        async def slow_fetch(query, limit):
            await release.wait()
            return ["x"]

        fetch = AsyncMock(side_effect=slow_fetch)
        orchestrator = ProviderOrchestrator(
            providers=[ProviderDescriptor(name="Slow", fetch=fetch)], retry_executor=retry
        )

        waiters = [asyncio.ensure_future(orchestrator.resolve("q")) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters)

        assert results == [["x"], ["x"], ["x"]]
        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_disabled_single_flight_runs_each(self, retry):
        fetch = AsyncMock(return_value=["x"])
        orchestrator = ProviderOrchestrator(
            providers=[ProviderDescriptor(name="A", fetch=fetch)],
            retry_executor=retry,
            single_flight=False,
        )

        await asyncio.gather(*(orchestrator.resolve("q") for _ in range(3)))

        assert fetch.await_count == 3

    @pytest.mark.asyncio
    async def test_failure_shared_then_cleared(self, retry):
        fetch = AsyncMock(return_value=[])
        orchestrator = ProviderOrchestrator(
            providers=[ProviderDescriptor(name="A", fetch=fetch)], retry_executor=retry
        )

        with pytest.raises(DataNotFoundError):
            await orchestrator.resolve("q")

        assert orchestrator._in_flight == {}

    @pytest.mark.asyncio
    async def test_cancelled_leader_keeps_run_shared(self, retry):
        """Cancelling the first caller must not let a later caller start a second run."""
        release = asyncio.Event()

        async def slow_fetch(query, limit):
            await release.wait()
            return ["x"]

        fetch = AsyncMock(side_effect=slow_fetch)
        orchestrator = ProviderOrchestrator(
            providers=[ProviderDescriptor(name="Slow", fetch=fetch)], retry_executor=retry
        )

        leader = asyncio.ensure_future(orchestrator.resolve("q"))
        await asyncio.sleep(0)
        leader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await leader

        follower = asyncio.ensure_future(orchestrator.resolve("q"))
        await asyncio.sleep(0)
        release.set()

        assert await follower == ["x"]
        assert fetch.await_count == 1
        assert orchestrator._in_flight == {}


class TestNormalizeQuery:
    """Tests for query normalization."""

    def test_case_and_whitespace(self):
        assert normalize_query("  New   York ") == "new york"
