"""
Tests for the Blitzortung lightning client.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from resilience.cache import CacheStore
from resilience.errors import ServiceUnavailableError
from resilience.retry import RetryExecutor
from tools.lightning_client import (
    BlitzortungClient,
    feed_region,
    haversine_km,
    parse_strikes,
)

NOW = datetime(2024, 6, 1, 12, tzinfo=timezone.utc).timestamp()


def _json_response(data):
    return MagicMock(status_code=200, json=lambda: data, raise_for_status=lambda: None)


@pytest.fixture
def client(clock, fake_sleep, rng):
    return BlitzortungClient(
        cache=CacheStore(max_size=10, enabled=True, default_ttl=60, clock=clock),
        retry=RetryExecutor(max_retries=1, sleep=fake_sleep, rng=rng),
        timeout=5,
        clock=lambda: NOW,
    )


class TestGeometry:
    """Tests for distance and feed selection."""

    def test_zero_distance(self):
        assert haversine_km(47.6, -122.3, 47.6, -122.3) == 0.0

    def test_one_degree_of_latitude(self):
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.01)

    @pytest.mark.parametrize("lat,lon,region", [
        (47.6, -122.3, "na"),
        (48.8, 2.3, "eu"),
        (-33.9, 151.2, "oc"),
        (-23.5, -46.6, "global"),
    ])
    def test_feed_region(self, lat, lon, region):
        assert feed_region(lat, lon) == region


class TestParseStrikes:
    """Tests for radius and time window filtering."""

    def test_filters_and_sorts(self):
        payload = [
            {"time": NOW - 120, "lat": 47.7, "lon": -122.3, "pol": -1, "mcs": 22.5, "stat": 9},
            {"time": NOW - 60, "lat": 47.61, "lon": -122.3},
            {"time": NOW - 7200, "lat": 47.6, "lon": -122.3},
            {"time": NOW - 60, "lat": 45.0, "lon": -122.3},
        ]

        strikes = parse_strikes(payload, 47.6, -122.3, radius_km=50, window_minutes=60, now=NOW)

        assert len(strikes) == 2
        assert strikes[0].distance_km < strikes[1].distance_km
        assert strikes[1].polarity == -1
        assert strikes[1].amplitude_ka == 22.5
        assert strikes[1].station_count == 9

    def test_millisecond_and_nanosecond_times(self):
        payload = {"strikes": [
            {"time": (NOW - 60) * 1000, "lat": 47.6, "lon": -122.3},
            {"time": int((NOW - 60) * 1e9), "latitude": 47.6, "longitude": -122.3},
        ]}

        strikes = parse_strikes(payload, 47.6, -122.3, radius_km=10, window_minutes=5, now=NOW)

        assert len(strikes) == 2
        assert strikes[0].timestamp.year == 2024

    def test_iso_times(self):
        payload = [{"timestamp": "2024-06-01T11:59:00Z", "lat": 47.6, "lon": -122.3}]
        strikes = parse_strikes(payload, 47.6, -122.3, radius_km=10, window_minutes=5, now=NOW)
        assert len(strikes) == 1

    def test_unreadable_records_skipped(self):
        payload = [{"time": NOW, "lat": None, "lon": -122.3}, "garbage", {"lat": 47.6}]
        assert parse_strikes(payload, 47.6, -122.3, radius_km=10, window_minutes=5, now=NOW) == []


class TestBlitzortungClient:
    """Tests for BlitzortungClient requests."""

    @pytest.mark.asyncio
    async def test_get_strikes(self, client):
        feed = [{"time": NOW - 30, "lat": 47.65, "lon": -122.3}]

        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _json_response(feed)
            strikes = await client.get_strikes(47.6, -122.3, radius_km=25)
            await client.get_strikes(47.6, -122.3, radius_km=5)

        assert len(strikes) == 1
        assert mock_get.await_count == 1
        assert mock_get.call_args.kwargs["params"] == {"region": "na"}

    @pytest.mark.asyncio
    async def test_quiet_sky_is_empty(self, client):
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _json_response({"strikes": []})
            assert await client.get_strikes(47.6, -122.3) == []

    @pytest.mark.asyncio
    async def test_outage_raises_typed_error(self, client, fake_sleep):
        url = BlitzortungClient.BASE_URL + BlitzortungClient.STRIKES_PATH
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = httpx.Response(503, request=httpx.Request("GET", url))
            with pytest.raises(ServiceUnavailableError):
                await client.get_strikes(47.6, -122.3)

        assert mock_get.await_count == 2

    @pytest.mark.asyncio
    async def test_invalid_radius(self, client):
        with pytest.raises(ValueError, match="Radius"):
            await client.get_strikes(47.6, -122.3, radius_km=0)

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, client):
        with pytest.raises(ValueError, match="Invalid longitude"):
            await client.get_strikes(47.6, -200.0)
