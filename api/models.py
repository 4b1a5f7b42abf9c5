"""
Pydantic models for API request/response validation.

These models define the contract for the weather tool API
and are used to auto-generate OpenAPI documentation.
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class LocationRequest(BaseModel):
    """Coordinates, or a place name resolved through geocoding."""

    latitude: Optional[float] = Field(
        default=None,
        ge=-90.0,
        le=90.0,
        description="Latitude coordinate (-90 to 90)",
        examples=[47.6062]
    )
    longitude: Optional[float] = Field(
        default=None,
        ge=-180.0,
        le=180.0,
        description="Longitude coordinate (-180 to 180)",
        examples=[-122.3321]
    )
    location: Optional[str] = Field(
        default=None,
        min_length=2,
        max_length=200,
        description="Place name, used when coordinates are not given",
        examples=["Seattle, WA"]
    )

    @model_validator(mode="after")
    def require_coordinates_or_location(self):
        has_lat = self.latitude is not None
        has_lon = self.longitude is not None
        if has_lat != has_lon:
            raise ValueError("latitude and longitude must be provided together")
        if not has_lat and not self.location:
            raise ValueError("Provide either latitude/longitude or a location name")
        return self


class ForecastRequest(LocationRequest):
    """Request model for /forecast endpoint."""

    days: int = Field(
        default=7,
        ge=1,
        le=16,
        description="Number of forecast days (1-16)",
        examples=[7]
    )
    granularity: str = Field(
        default="daily",
        description="'daily' or 'hourly'",
        examples=["daily"]
    )

    @field_validator("granularity")
    @classmethod
    def check_granularity(cls, value: str) -> str:
        value = value.lower()
        if value not in ("daily", "hourly"):
            raise ValueError("granularity must be 'daily' or 'hourly'")
        return value


class HistoricalRequest(LocationRequest):
    """Request model for /historical endpoint."""

    start_date: date = Field(
        ...,
        description="First day (YYYY-MM-DD)",
        examples=["2024-01-01"]
    )
    end_date: date = Field(
        ...,
        description="Last day (YYYY-MM-DD)",
        examples=["2024-01-07"]
    )
    hourly: bool = Field(
        default=False,
        description="Hourly series instead of daily aggregates"
    )


class AlertsRequest(LocationRequest):
    """Request model for /alerts endpoint."""

    active_only: bool = Field(
        default=True,
        description="Only currently active alerts"
    )


class AirQualityRequest(LocationRequest):
    """Request model for /air-quality endpoint."""

    hours: int = Field(
        default=24,
        ge=1,
        le=120,
        description="Forecast hours (1-120)",
        examples=[24]
    )


class LightningRequest(LocationRequest):
    """Request model for /lightning endpoint."""

    radius_km: float = Field(
        default=100.0,
        gt=0,
        le=1000,
        description="Search radius around the point in kilometres",
        examples=[100.0]
    )
    window_minutes: int = Field(
        default=60,
        ge=1,
        le=1440,
        description="How far back to look, in minutes",
        examples=[60]
    )


class EarthcastDataRequest(BaseModel):
    """Request model for /earthcast/data endpoint."""

    products: list[str] = Field(
        ...,
        min_length=1,
        description="Product keys, e.g. lightning_density, turbulence_max",
        examples=[["lightning_density", "turbulence_max"]]
    )
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    bbox: Optional[str] = Field(
        default=None,
        description="Bounding box 'west,south,east,north'; wins over latitude/longitude",
        examples=["-81.0,28.0,-80.0,29.0"]
    )
    radius_km: Optional[float] = Field(default=None, gt=0, description="Radius around the point")
    altitude_km: Optional[float] = Field(default=None, ge=0, description="Single altitude")
    altitude_min_km: Optional[float] = Field(default=None, ge=0)
    altitude_max_km: Optional[float] = Field(default=None, ge=0)
    date: Optional[str] = Field(default=None, description="ISO 8601 time")
    date_start: Optional[str] = Field(default=None, description="Range start (ISO 8601)")
    date_end: Optional[str] = Field(default=None, description="Range end (ISO 8601)")
    width: Optional[int] = Field(default=None, ge=1, le=4096, description="Output grid width")
    height: Optional[int] = Field(default=None, ge=1, le=4096, description="Output grid height")

    @model_validator(mode="after")
    def check_altitude_range(self):
        if (self.altitude_min_km is None) != (self.altitude_max_km is None):
            raise ValueError("altitude_min_km and altitude_max_km must be provided together")
        if self.altitude_min_km is not None and self.altitude_min_km > self.altitude_max_km:
            raise ValueError("altitude_min_km must not exceed altitude_max_km")
        return self


class GoNoGoRequest(EarthcastDataRequest):
    """Request model for /earthcast/go-no-go endpoint."""

    site_description: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Launch site label",
        examples=["Cape Canaveral SLC-40"]
    )
    thresholds: Optional[dict[str, float]] = Field(
        default=None,
        description="Per-product threshold overrides",
        examples=[{"lightning_density": 0.5}]
    )
    use_forecast: bool = Field(
        default=False,
        description="Evaluate forecast data instead of observed data"
    )

    @model_validator(mode="after")
    def require_area(self):
        has_point = self.latitude is not None and self.longitude is not None
        if not self.bbox and not has_point:
            raise ValueError("Either bbox or latitude/longitude must be provided")
        return self


class LocationModel(BaseModel):
    """One geocoding match."""

    name: str
    display_name: str
    latitude: float
    longitude: float
    confidence: str
    source: str
    country: Optional[str] = None
    country_code: Optional[str] = None
    admin1: Optional[str] = None
    admin2: Optional[str] = None
    timezone: Optional[str] = None
    elevation: Optional[float] = None
    population: Optional[int] = None
    feature_code: Optional[str] = None


class GeocodeResponse(BaseModel):
    """Response model for /geocode endpoint."""

    query: str = Field(..., description="Query as submitted")
    results: list[LocationModel] = Field(..., description="Matches from a single provider")
    source: str = Field(..., description="Provider that answered")


class WeatherResponse(BaseModel):
    """Response model shared by the weather data endpoints."""

    latitude: float
    longitude: float
    location: Optional[LocationModel] = Field(
        default=None,
        description="Geocoding match used when a place name was given"
    )
    source: str = Field(..., description="Upstream data source")
    data: Any = Field(..., description="Upstream payload or normalized series")
    attribution: Optional[str] = Field(
        default=None,
        description="Data source attribution (required by some providers)"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="Response generation timestamp (UTC)"
    )


class ProductDecisionModel(BaseModel):
    """Go/No-Go outcome for one product."""

    product: str
    status: str = Field(..., description="'GO' or 'NO-GO'")
    threshold: Optional[float] = None
    no_go_times: list[str] = Field(default_factory=list)


class GoNoGoResponse(BaseModel):
    """Response model for /earthcast/go-no-go endpoint."""

    decision: str = Field(..., description="Overall 'GO' or 'NO-GO'")
    site_description: Optional[str] = None
    products: list[ProductDecisionModel]
    blocking_products: list[str] = Field(
        default_factory=list,
        description="Products whose evaluation was NO-GO"
    )
    source: str = "earthcast"
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class EarthcastResponse(BaseModel):
    """Response model for Earthcast data and timestamp endpoints."""

    products: list[str]
    source: str = "earthcast"
    data: Any = Field(..., description="Upstream payload")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str = Field(
        default="healthy",
        description="Service health status"
    )
    version: str = Field(
        default="1.0.0",
        description="API version"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="Health check timestamp"
    )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(
        ...,
        description="Error type/code"
    )
    message: str = Field(
        ...,
        description="Human-readable error message"
    )
    details: Optional[dict] = Field(
        default=None,
        description="Additional error details"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": "DATA_NOT_FOUND",
                    "message": 'No results found matching "Atlantis". Tried 2 provider(s): '
                               "Nominatim: No results found; Open-Meteo: No results found",
                    "details": {"providers_tried": ["Nominatim", "Open-Meteo"]},
                }
            ]
        }
    }
