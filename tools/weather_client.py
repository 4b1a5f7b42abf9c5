"""
Open-Meteo API client for forecast, air quality and historical data.

Open-Meteo provides free weather APIs without authentication and with
global coverage, which makes it the fallback for locations NOAA does
not cover and the source for archival (reanalysis) data.
- Forecast API: https://api.open-meteo.com/v1/forecast
- Air Quality API: https://air-quality-api.open-meteo.com/v1/air-quality
- Archive API: https://archive-api.open-meteo.com/v1/archive

Attribution: "Weather data by Open-Meteo.com" is required.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Union

from policies import SERVICE_RULES
from policies.config import get_historical_data_ttl, load_cache_settings, request_timeout_seconds
from policies.validation import InputValidator, validator as default_validator
from resilience.cache import CacheStore
from resilience.retry import RetryExecutor
from tools.http import fetch_json

logger = logging.getLogger(__name__)

WMO_WEATHER_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def weather_code_to_description(code: Optional[int]) -> str:
    """Convert a WMO weather code to a description."""
    if code is None:
        return "Unknown"
    return WMO_WEATHER_CODES.get(code, "Unknown")


@dataclass
class AirQualityData:
    """Air quality data from Open-Meteo."""

    pm25: list[Optional[float]] = field(default_factory=list)
    pm10: list[Optional[float]] = field(default_factory=list)
    timestamps: list[str] = field(default_factory=list)

    @property
    def pm25_avg(self) -> float:
        """Calculate average PM2.5, excluding None values."""
        valid = [v for v in self.pm25 if v is not None]
        return sum(valid) / len(valid) if valid else 0.0

    @property
    def pm10_avg(self) -> float:
        """Calculate average PM10, excluding None values."""
        valid = [v for v in self.pm10 if v is not None]
        return sum(valid) / len(valid) if valid else 0.0


@dataclass
class HourlyWeather:
    """Hourly weather series."""

    timestamps: list[str] = field(default_factory=list)
    temperature: list[Optional[float]] = field(default_factory=list)
    precipitation: list[Optional[float]] = field(default_factory=list)
    weather_code: list[Optional[int]] = field(default_factory=list)

    @property
    def temp_min(self) -> Optional[float]:
        valid = [v for v in self.temperature if v is not None]
        return min(valid) if valid else None

    @property
    def temp_max(self) -> Optional[float]:
        valid = [v for v in self.temperature if v is not None]
        return max(valid) if valid else None


@dataclass
class DailyWeather:
    """Daily weather aggregates (forecast or historical)."""

    dates: list[str] = field(default_factory=list)
    temp_max: list[Optional[float]] = field(default_factory=list)
    temp_min: list[Optional[float]] = field(default_factory=list)
    precipitation_sum: list[Optional[float]] = field(default_factory=list)
    precipitation_probability: list[Optional[int]] = field(default_factory=list)
    weather_code: list[Optional[int]] = field(default_factory=list)

    def get_day_summary(self, index: int) -> dict:
        """Get a summary for a specific day."""
        if index >= len(self.dates):
            return {}

        def at(values: list, default=None):
            return values[index] if index < len(values) else default

        return {
            "date": self.dates[index],
            "temp_max": at(self.temp_max),
            "temp_min": at(self.temp_min),
            "precipitation": at(self.precipitation_sum, 0),
            "precip_probability": at(self.precipitation_probability),
            "weather": weather_code_to_description(at(self.weather_code)),
        }

    def summaries(self) -> list[dict]:
        return [self.get_day_summary(i) for i in range(len(self.dates))]


@dataclass
class HistoricalWeather:
    """Archive response for a date range."""

    latitude: float
    longitude: float
    elevation: Optional[float] = None
    hourly: Optional[HourlyWeather] = None
    daily: Optional[DailyWeather] = None


def _daily_from(data: dict) -> DailyWeather:
    daily = data.get("daily", {})
    return DailyWeather(
        dates=daily.get("time", []),
        temp_max=daily.get("temperature_2m_max", []),
        temp_min=daily.get("temperature_2m_min", []),
        precipitation_sum=daily.get("precipitation_sum", []),
        precipitation_probability=daily.get("precipitation_probability_max", []),
        weather_code=daily.get("weather_code", []),
    )


def _hourly_from(data: dict) -> HourlyWeather:
    hourly = data.get("hourly", {})
    return HourlyWeather(
        timestamps=hourly.get("time", []),
        temperature=hourly.get("temperature_2m", []),
        precipitation=hourly.get("precipitation", []),
        weather_code=hourly.get("weather_code", []),
    )


class WeatherClient:
    """
    Async client for Open-Meteo forecast, air quality and archive APIs.

    Implements:
    - Classified retries with exponential backoff and jitter
    - Per-domain cache TTLs (finalized historical data never expires)
    - Policy-driven input validation
    """

    WEATHER_BASE_URL = "https://api.open-meteo.com/v1/forecast"
    AIR_QUALITY_BASE_URL = "https://air-quality-api.open-meteo.com/v1/air-quality"
    ARCHIVE_BASE_URL = "https://archive-api.open-meteo.com/v1/archive"
    SERVICE_NAME = "Open-Meteo"

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        retry: Optional[RetryExecutor] = None,
        validator: Optional[InputValidator] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the weather client with configuration from policies."""
        retry_rules = SERVICE_RULES.get("retry", {})
        self.cache = cache or CacheStore(name="openmeteo")
        self.retry = retry or RetryExecutor(
            max_retries=retry_rules.get("max_retries", 3),
            base_delay=retry_rules.get("base_delay_seconds", 1.0),
            max_jitter=retry_rules.get("max_jitter_seconds", 1.0),
            name="openmeteo",
        )
        self.validator = validator or default_validator
        self.timeout = timeout or request_timeout_seconds()
        self.settings = load_cache_settings()

    async def _request(
        self,
        url: str,
        params: dict,
        operation_name: str,
        ttl: Optional[float],
    ) -> dict:
        """
        Cached, retried GET.

        Args:
            url: API endpoint URL
            params: Query parameters (also form the cache key)
            operation_name: Cache prefix and log label
            ttl: TTL in seconds for the cached response

        Returns:
            JSON response as dict
        """
        cache_key = CacheStore.generate_key(operation_name, params)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"{operation_name}: served from cache")
            return cached

        data = await self.retry.run(
            lambda: fetch_json(
                url,
                service=self.SERVICE_NAME,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        )

        logger.info(f"{operation_name}: Success")
        self.cache.set(cache_key, data, ttl)
        return data

    def _check_coordinates(self, latitude: float, longitude: float) -> None:
        self.validator.validate_coordinates(latitude, longitude).raise_for_errors()

    async def get_forecast(
        self,
        latitude: float,
        longitude: float,
        days: int = 7,
    ) -> DailyWeather:
        """
        Fetch a daily forecast for up to 16 days.

        Args:
            latitude: Location latitude
            longitude: Location longitude
            days: Number of forecast days (1-16)
        """
        self._check_coordinates(latitude, longitude)
        days_valid, days_error = self.validator.validate_days(days)
        if not days_valid:
            raise ValueError(days_error)

        params = {
            "latitude": latitude,
            "longitude": longitude,
            "daily": "temperature_2m_max,temperature_2m_min,precipitation_sum,"
                     "precipitation_probability_max,weather_code",
            "forecast_days": days,
            "timezone": "auto",
        }
        data = await self._request(
            self.WEATHER_BASE_URL, params, "DailyForecast", self.settings.ttl("forecast")
        )
        return _daily_from(data)

    async def get_hourly(
        self,
        latitude: float,
        longitude: float,
        hours: int = 24,
    ) -> HourlyWeather:
        """
        Fetch an hourly forecast.

        Args:
            latitude: Location latitude
            longitude: Location longitude
            hours: Number of forecast hours (capped at 384, 16 days)
        """
        self._check_coordinates(latitude, longitude)
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "hourly": "temperature_2m,precipitation,weather_code",
            "forecast_hours": max(1, min(hours, 384)),
            "timezone": "auto",
        }
        data = await self._request(
            self.WEATHER_BASE_URL, params, "HourlyForecast", self.settings.ttl("forecast")
        )
        return _hourly_from(data)

    async def get_air_quality(
        self,
        latitude: float,
        longitude: float,
        hours: int = 6,
    ) -> AirQualityData:
        """
        Fetch air quality (PM2.5, PM10) forecast.

        Args:
            latitude: Location latitude
            longitude: Location longitude
            hours: Number of forecast hours (capped at the API limit of 120)
        """
        self._check_coordinates(latitude, longitude)
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "hourly": "pm2_5,pm10",
            "forecast_hours": max(1, min(hours, 120)),
        }
        data = await self._request(
            self.AIR_QUALITY_BASE_URL, params, "AirQuality", self.settings.ttl("air_quality")
        )
        hourly = data.get("hourly", {})
        return AirQualityData(
            pm25=hourly.get("pm2_5", []),
            pm10=hourly.get("pm10", []),
            timestamps=hourly.get("time", []),
        )

    async def get_historical(
        self,
        latitude: float,
        longitude: float,
        start_date: Union[str, date],
        end_date: Union[str, date],
        hourly: bool = False,
    ) -> HistoricalWeather:
        """
        Fetch archival weather for a date range.

        Finalized data (older than a day) is cached forever.

        Args:
            latitude: Location latitude
            longitude: Location longitude
            start_date: First day (YYYY-MM-DD or date)
            end_date: Last day (YYYY-MM-DD or date)
            hourly: Hourly series instead of daily aggregates
        """
        self._check_coordinates(latitude, longitude)
        start = date.fromisoformat(str(start_date)[:10])
        end = date.fromisoformat(str(end_date)[:10])
        if start > end:
            raise ValueError(
                f"Invalid date range: start date ({start}) must be before end date ({end})"
            )
        if end > date.today():
            raise ValueError(f"End date ({end}) cannot be in the future")

        params: dict[str, Any] = {
            "latitude": latitude,
            "longitude": longitude,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "timezone": "auto",
        }
        if hourly:
            params["hourly"] = "temperature_2m,precipitation,weather_code"
        else:
            params["daily"] = (
                "temperature_2m_max,temperature_2m_min,precipitation_sum,weather_code"
            )

        data = await self._request(
            self.ARCHIVE_BASE_URL, params, "Historical", get_historical_data_ttl(end)
        )
        return HistoricalWeather(
            latitude=data.get("latitude", latitude),
            longitude=data.get("longitude", longitude),
            elevation=data.get("elevation"),
            hourly=_hourly_from(data) if hourly else None,
            daily=None if hourly else _daily_from(data),
        )

    def get_cache_stats(self) -> dict:
        return self.cache.stats
