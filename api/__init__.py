# API package
"""
HTTP tool surface: request/response models, routes and service wiring.
These models also auto-generate OpenAPI documentation.
"""

from .dependencies import ServiceContainer, build_services, get_services
from .models import (
    AlertsRequest,
    ErrorResponse,
    ForecastRequest,
    GeocodeResponse,
    HealthResponse,
    HistoricalRequest,
    LocationModel,
    LocationRequest,
    WeatherResponse,
)

__all__ = [
    "ServiceContainer",
    "build_services",
    "get_services",
    "AlertsRequest",
    "ErrorResponse",
    "ForecastRequest",
    "GeocodeResponse",
    "HealthResponse",
    "HistoricalRequest",
    "LocationModel",
    "LocationRequest",
    "WeatherResponse",
]
