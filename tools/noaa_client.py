"""
NOAA Weather API client (api.weather.gov).

The NWS API is free and keyless but requires an identifying User-Agent.
Most lookups are two-step: coordinates -> grid point, then grid point ->
forecast, or coordinates -> nearby stations -> observations.

Cache lifetimes follow the data's volatility (see policies/service_rules.json):
grid points never change, station lists change rarely, forecasts refresh
hourly, observations every 20-60 minutes, alerts within minutes.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from policies import SERVICE_RULES
from policies.config import (
    get_historical_data_ttl,
    load_cache_settings,
    request_timeout_seconds,
    user_agent,
)
from policies.validation import InputValidator, validator as default_validator
from resilience.cache import CacheStore
from resilience.errors import DataNotFoundError
from resilience.orchestrator import AttemptRecord
from resilience.retry import RetryExecutor
from tools.http import fetch_json

logger = logging.getLogger(__name__)


class NOAAClient:
    """
    Async client for the NOAA/NWS Weather API.

    Implements:
    - Grid point, forecast, station, observation and alert lookups
    - Classified retries with exponential backoff and jitter
    - Per-domain cache TTLs
    - Station fallback for current conditions
    """

    BASE_URL = "https://api.weather.gov"
    SERVICE_NAME = "NOAA"

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        retry: Optional[RetryExecutor] = None,
        validator: Optional[InputValidator] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the client with configuration from policies."""
        retry_rules = SERVICE_RULES.get("retry", {})
        self.cache = cache or CacheStore(name="noaa")
        self.retry = retry or RetryExecutor(
            max_retries=retry_rules.get("max_retries", 3),
            base_delay=retry_rules.get("base_delay_seconds", 1.0),
            max_jitter=retry_rules.get("max_jitter_seconds", 1.0),
            name="noaa",
        )
        self.validator = validator or default_validator
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout or request_timeout_seconds()
        self.settings = load_cache_settings()
        self.headers = {
            "User-Agent": user_agent(),
            "Accept": "application/geo+json",
        }

    async def _get(
        self,
        path: str,
        params: Optional[dict] = None,
        cache_key: Optional[str] = None,
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Cached, retried GET against the NWS API.

        Args:
            path: Endpoint path starting with "/"
            params: Query parameters
            cache_key: Key for this response; None skips the cache
            ttl: TTL in seconds for the cached response

        Returns:
            JSON response
        """
        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        url = f"{self.base_url}{path}"
        data = await self.retry.run(
            lambda: fetch_json(
                url,
                service=self.SERVICE_NAME,
                params=params,
                headers=self.headers,
                timeout=self.timeout,
            )
        )

        if cache_key is not None and data is not None:
            self.cache.set(cache_key, data, ttl)
        return data

    def _check_coordinates(self, latitude: float, longitude: float) -> None:
        self.validator.validate_coordinates(latitude, longitude).raise_for_errors()

    async def get_point_data(self, latitude: float, longitude: float) -> dict:
        """
        Convert coordinates to NWS grid information.

        This is the first step for forecast lookups.
        """
        self._check_coordinates(latitude, longitude)
        point = f"{latitude:.4f},{longitude:.4f}"
        return await self._get(
            f"/points/{point}",
            cache_key=CacheStore.generate_key("noaa_points", point),
            ttl=self.settings.ttl("grid_coordinates"),
        )

    async def get_forecast(self, office: str, grid_x: int, grid_y: int) -> dict:
        """Get the 12-hour-period forecast for a grid cell."""
        return await self._get(
            f"/gridpoints/{office}/{grid_x},{grid_y}/forecast",
            cache_key=CacheStore.generate_key("noaa_forecast", office, grid_x, grid_y),
            ttl=self.settings.ttl("forecast"),
        )

    async def get_hourly_forecast(self, office: str, grid_x: int, grid_y: int) -> dict:
        """Get the hourly forecast for a grid cell."""
        return await self._get(
            f"/gridpoints/{office}/{grid_x},{grid_y}/forecast/hourly",
            cache_key=CacheStore.generate_key("noaa_forecast_hourly", office, grid_x, grid_y),
            ttl=self.settings.ttl("forecast"),
        )

    async def get_forecast_by_coordinates(
        self,
        latitude: float,
        longitude: float,
        hourly: bool = False,
    ) -> dict:
        """
        Get a forecast for coordinates (grid lookup + forecast).

        Args:
            latitude: Location latitude
            longitude: Location longitude
            hourly: Hourly periods instead of day/night periods
        """
        point = await self.get_point_data(latitude, longitude)
        props = point.get("properties", {})
        office, grid_x, grid_y = props.get("gridId"), props.get("gridX"), props.get("gridY")
        if not office or grid_x is None or grid_y is None:
            raise ValueError(
                f"No NWS forecast grid for {latitude:.4f},{longitude:.4f} "
                "(NOAA covers US locations only)"
            )

        if hourly:
            return await self.get_hourly_forecast(office, grid_x, grid_y)
        return await self.get_forecast(office, grid_x, grid_y)

    async def get_stations(self, latitude: float, longitude: float) -> dict:
        """Get observation stations near a location, nearest first."""
        self._check_coordinates(latitude, longitude)
        point = f"{latitude:.4f},{longitude:.4f}"
        return await self._get(
            f"/points/{point}/stations",
            cache_key=CacheStore.generate_key("noaa_stations", point),
            ttl=self.settings.ttl("stations"),
        )

    async def get_latest_observation(self, station_id: str) -> dict:
        """Get the latest observation from a station."""
        return await self._get(
            f"/stations/{station_id}/observations/latest",
            cache_key=CacheStore.generate_key("noaa_latest", station_id),
            ttl=self.settings.ttl("current_conditions"),
        )

    async def get_observations(
        self,
        station_id: str,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> dict:
        """
        Get observations from a station within a time range.

        Args:
            station_id: Station identifier (e.g., "KSEA")
            start_time: Range start
            end_time: Range end
            limit: Maximum observations (clamped to 1-500)
        """
        self.validator.validate_date_range(start_time, end_time).raise_for_errors()

        params: dict[str, Any] = {}
        if start_time:
            params["start"] = start_time.isoformat()
        if end_time:
            params["end"] = end_time.isoformat()
        if limit:
            params["limit"] = max(1, min(limit, 500))

        # Open-ended ranges run up to now and may still change.
        ttl = (
            get_historical_data_ttl(end_time)
            if end_time
            else self.settings.ttl("current_conditions")
        )
        return await self._get(
            f"/stations/{station_id}/observations",
            params=params or None,
            cache_key=CacheStore.generate_key("noaa_observations", station_id, params),
            ttl=ttl,
        )

    @staticmethod
    def _station_ids(stations: dict) -> list[str]:
        return [
            feature["properties"]["stationIdentifier"]
            for feature in stations.get("features") or []
            if feature.get("properties", {}).get("stationIdentifier")
        ]

    async def get_current_conditions(self, latitude: float, longitude: float) -> dict:
        """
        Get current conditions from the nearest station that answers.

        Stations are tried nearest first; a failing station falls through
        to the next one.

        Raises:
            DataNotFoundError: No station near the location returned data
        """
        stations = await self.get_stations(latitude, longitude)
        station_ids = self._station_ids(stations)
        query = f"{latitude:.4f},{longitude:.4f}"

        attempts: list[AttemptRecord] = []
        for station_id in station_ids:
            try:
                observation = await self.get_latest_observation(station_id)
            except Exception as e:
                logger.debug(f"Station {station_id} failed: {e}")
                attempts.append(AttemptRecord(station_id, False, error_message=str(e)))
                continue

            if observation:
                return observation
            attempts.append(AttemptRecord(station_id, False))

        raise DataNotFoundError(
            query,
            attempts,
            hint="No weather stations near this location returned current conditions.",
        )

    async def get_historical_observations(
        self,
        latitude: float,
        longitude: float,
        start_time: datetime,
        end_time: datetime,
        limit: Optional[int] = None,
    ) -> dict:
        """Get observations from the nearest station for a past date range."""
        self.validator.validate_date_range(start_time, end_time).raise_for_errors()

        stations = await self.get_stations(latitude, longitude)
        station_ids = self._station_ids(stations)
        if not station_ids:
            raise DataNotFoundError(
                f"{latitude:.4f},{longitude:.4f}",
                [],
                hint="No weather stations found near the specified location.",
            )

        return await self.get_observations(station_ids[0], start_time, end_time, limit)

    async def get_alerts(
        self,
        latitude: float,
        longitude: float,
        active_only: bool = True,
    ) -> dict:
        """
        Get weather alerts affecting a point.

        Args:
            latitude: Location latitude
            longitude: Location longitude
            active_only: Only currently active alerts
        """
        self._check_coordinates(latitude, longitude)
        point = f"{latitude:.4f},{longitude:.4f}"
        path = "/alerts/active" if active_only else "/alerts"
        return await self._get(
            path,
            params={"point": point},
            cache_key=CacheStore.generate_key("noaa_alerts", point, active_only),
            ttl=self.settings.ttl("alerts"),
        )

    def get_cache_stats(self) -> dict:
        """Get cache statistics for monitoring."""
        return self.cache.stats

    def clear_cache(self) -> int:
        """Clear the cache (useful for testing)."""
        count = self.cache.clear()
        logger.info("NOAA client cache cleared")
        return count
