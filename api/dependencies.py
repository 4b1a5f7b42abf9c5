"""
Service composition for the API layer.

Upstream clients are constructed once by the application lifespan
(see main.py) and stored on app.state; routes receive them through
the get_services dependency instead of module-level singletons.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request

from tools.earthcast_client import EarthcastClient
from tools.geocoding import GeocodingService
from tools.lightning_client import BlitzortungClient
from tools.noaa_client import NOAAClient
from tools.weather_client import WeatherClient

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """All upstream clients used by the routes."""

    geocoding: GeocodingService = field(default_factory=GeocodingService)
    noaa: NOAAClient = field(default_factory=NOAAClient)
    weather: WeatherClient = field(default_factory=WeatherClient)
    earthcast: EarthcastClient = field(default_factory=EarthcastClient)
    lightning: BlitzortungClient = field(default_factory=BlitzortungClient)

    def cache_stats(self) -> dict:
        return {
            "geocoding": self.geocoding.get_cache_stats(),
            "noaa": self.noaa.get_cache_stats(),
            "openmeteo": self.weather.get_cache_stats(),
            "earthcast": self.earthcast.get_cache_stats(),
            "lightning": self.lightning.get_cache_stats(),
        }


def build_services() -> ServiceContainer:
    """Construct every upstream client with policy defaults."""
    services = ServiceContainer()
    logger.info("Upstream services initialized (geocoding, NOAA, Open-Meteo, Earthcast, Blitzortung)")
    return services


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the app's service container."""
    services: Optional[ServiceContainer] = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized; is the application lifespan running?")
    return services
