# Tools package
"""
Upstream API clients for geocoding, forecasts, observations, alerts,
aerospace weather products and lightning.

All clients implement:
- Async HTTP calls with httpx through one transport boundary (http.py)
- Classified retries with exponential backoff and jitter
- Per-domain caching
- Data validation
"""

from .earthcast_client import EarthcastClient, EarthcastQuery, GoNoGoDecision
from .geocoding import GeocodingService, GeocodingResult
from .lightning_client import BlitzortungClient, LightningStrike
from .noaa_client import NOAAClient
from .weather_client import WeatherClient, AirQualityData, DailyWeather, HourlyWeather

__all__ = [
    "EarthcastClient",
    "EarthcastQuery",
    "GoNoGoDecision",
    "BlitzortungClient",
    "LightningStrike",
    "GeocodingService",
    "GeocodingResult",
    "NOAAClient",
    "WeatherClient",
    "AirQualityData",
    "DailyWeather",
    "HourlyWeather",
]
