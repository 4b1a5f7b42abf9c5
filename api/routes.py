"""
FastAPI routes for the weather tool API.

This module is intentionally thin - it handles HTTP concerns only
and delegates data access to the upstream clients:

- tools/geocoding.py: Location name to coordinates (multi-provider fallback)
- tools/noaa_client.py: NOAA forecasts, observations and alerts (US)
- tools/weather_client.py: Open-Meteo forecasts, air quality and archive (global)
- tools/earthcast_client.py: Earthcast aerospace products and Go/No-Go decisions
- tools/lightning_client.py: Blitzortung lightning strikes near a point

Each endpoint description tells an AI assistant when to call it.
"""

import logging
from dataclasses import asdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from api.dependencies import ServiceContainer, get_services
from api.models import (
    AirQualityRequest,
    AlertsRequest,
    EarthcastDataRequest,
    EarthcastResponse,
    ErrorResponse,
    ForecastRequest,
    GeocodeResponse,
    GoNoGoRequest,
    GoNoGoResponse,
    HealthResponse,
    HistoricalRequest,
    LightningRequest,
    LocationModel,
    LocationRequest,
    ProductDecisionModel,
    WeatherResponse,
)
from resilience.errors import (
    ApiError,
    ClientError,
    DataNotFoundError,
    ErrorKind,
)
from tools.earthcast_client import EARTHCAST_PRODUCTS, EarthcastQuery

logger = logging.getLogger(__name__)

router = APIRouter()

OPEN_METEO_ATTRIBUTION = "Weather data by Open-Meteo.com"
NOAA_ATTRIBUTION = "Data from NOAA National Weather Service"
BLITZORTUNG_ATTRIBUTION = "Lightning data by Blitzortung.org contributors"

# Older ranges come from the Open-Meteo archive, newer ones from NWS stations
HISTORICAL_THRESHOLD_DAYS = 7

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _http_error(error: Exception) -> HTTPException:
    """Map a data-access error to an HTTP error response."""
    if isinstance(error, ValueError):
        return HTTPException(
            status_code=400,
            detail={"error": "VALIDATION_ERROR", "message": str(error)},
        )
    if isinstance(error, DataNotFoundError):
        return HTTPException(
            status_code=404,
            detail={
                "error": "DATA_NOT_FOUND",
                "message": str(error),
                "details": {"providers_tried": error.providers_tried},
            },
        )
    if isinstance(error, ClientError):
        return HTTPException(
            status_code=400,
            detail={
                "error": "UPSTREAM_CLIENT_ERROR",
                "message": str(error),
                "details": {"service": error.service, "status_code": error.status_code},
            },
        )
    if isinstance(error, ApiError):
        status_code = 429 if error.kind is ErrorKind.RATE_LIMITED else 503
        return HTTPException(
            status_code=status_code,
            detail={
                "error": "UPSTREAM_RATE_LIMITED" if status_code == 429 else "UPSTREAM_UNAVAILABLE",
                "message": str(error),
                "details": {"service": error.service, "kind": error.kind.value},
            },
        )

    logger.error(f"Unexpected error: {error}")
    return HTTPException(
        status_code=500,
        detail={"error": "INTERNAL_ERROR", "message": str(error)},
    )


async def _resolve_location(
    request: LocationRequest,
    services: ServiceContainer,
) -> Tuple[float, float, Optional[LocationModel]]:
    """Use the request's coordinates, or geocode its location name."""
    if request.latitude is not None and request.longitude is not None:
        return request.latitude, request.longitude, None

    results = await services.geocoding.geocode(request.location, limit=1)
    best = results[0]
    logger.info(f"Resolved {request.location!r} via {best.source}: {best.coords}")
    return best.latitude, best.longitude, LocationModel(**asdict(best))


def _noaa_unavailable_here(error: Exception) -> bool:
    """NOAA answers 404 (or has no grid) outside its US coverage."""
    return isinstance(error, (ClientError, ValueError, DataNotFoundError))


# =============================================================================
# Health & Status Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """Service health check."""
    return HealthResponse(
        status="healthy",
        version="1.0.0",
        timestamp=datetime.utcnow(),
    )


@router.get("/status/cache", tags=["System"])
async def cache_status(services: ServiceContainer = Depends(get_services)) -> dict:
    """Cache statistics per upstream client."""
    return services.cache_stats()


@router.get("/status/geocoding", tags=["System"])
async def geocoding_status(services: ServiceContainer = Depends(get_services)) -> dict:
    """Geocoding providers in default order, their rate limits and cache contents."""
    return services.geocoding.get_service_info()


# =============================================================================
# Geocoding
# =============================================================================

@router.get(
    "/geocode",
    response_model=GeocodeResponse,
    responses=ERROR_RESPONSES,
    tags=["Location"],
    summary="Find coordinates for a place name",
    description="""
**Use this tool when the user names a place** and coordinates are needed.

Tries Census.gov (US), Nominatim and Open-Meteo in order and returns the
first provider's matches, each tagged with its source and confidence.
""",
)
async def geocode(
    query: str = Query(..., min_length=2, max_length=200, description="Place name"),
    limit: int = Query(5, ge=1, le=50, description="Maximum number of matches"),
    services: ServiceContainer = Depends(get_services),
) -> GeocodeResponse:
    """Geocode a place name."""
    logger.info(f"Geocode: {query!r} (limit={limit})")

    try:
        results = await services.geocoding.geocode(query, limit=limit)
    except Exception as e:
        raise _http_error(e)

    return GeocodeResponse(
        query=query,
        results=[LocationModel(**asdict(r)) for r in results],
        source=results[0].source,
    )


# =============================================================================
# Weather Data
# =============================================================================

@router.post(
    "/forecast",
    response_model=WeatherResponse,
    responses=ERROR_RESPONSES,
    tags=["Weather"],
    summary="Get a weather forecast",
    description="""
**Use this tool when the user asks about upcoming weather** (today, tomorrow,
this week, up to 16 days).

**Input:** Coordinates or a place name, days, daily/hourly granularity
**Output:** NOAA forecast periods for US locations, Open-Meteo data elsewhere
""",
)
async def forecast(
    request: ForecastRequest,
    services: ServiceContainer = Depends(get_services),
) -> WeatherResponse:
    """Get a forecast, preferring NOAA and falling back to Open-Meteo."""
    try:
        latitude, longitude, location = await _resolve_location(request, services)
        hourly = request.granularity == "hourly"

        try:
            data = await services.noaa.get_forecast_by_coordinates(latitude, longitude, hourly=hourly)
            periods = data.get("properties", {}).get("periods", [])
            limit = request.days * (24 if hourly else 2)
            return WeatherResponse(
                latitude=latitude,
                longitude=longitude,
                location=location,
                source="noaa",
                data={"periods": periods[:limit]},
                attribution=NOAA_ATTRIBUTION,
            )
        except Exception as e:
            if not _noaa_unavailable_here(e):
                raise
            logger.info(f"NOAA forecast unavailable ({e}); using Open-Meteo")

        if hourly:
            series = await services.weather.get_hourly(latitude, longitude, hours=request.days * 24)
            payload = asdict(series)
        else:
            daily = await services.weather.get_forecast(latitude, longitude, days=request.days)
            payload = {"days": daily.summaries()}

        return WeatherResponse(
            latitude=latitude,
            longitude=longitude,
            location=location,
            source="openmeteo",
            data=payload,
            attribution=OPEN_METEO_ATTRIBUTION,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _http_error(e)


@router.post(
    "/current-conditions",
    response_model=WeatherResponse,
    responses=ERROR_RESPONSES,
    tags=["Weather"],
    summary="Get current weather conditions",
    description="""
**Use this tool when the user asks what the weather is like right now.**

Uses the nearest NOAA station that answers (US), otherwise the current
hour from Open-Meteo.
""",
)
async def current_conditions(
    request: LocationRequest,
    services: ServiceContainer = Depends(get_services),
) -> WeatherResponse:
    """Get current conditions."""
    try:
        latitude, longitude, location = await _resolve_location(request, services)

        try:
            observation = await services.noaa.get_current_conditions(latitude, longitude)
            return WeatherResponse(
                latitude=latitude,
                longitude=longitude,
                location=location,
                source="noaa",
                data=observation.get("properties", observation),
                attribution=NOAA_ATTRIBUTION,
            )
        except Exception as e:
            if not _noaa_unavailable_here(e):
                raise
            logger.info(f"NOAA observations unavailable ({e}); using Open-Meteo")

        series = await services.weather.get_hourly(latitude, longitude, hours=1)
        return WeatherResponse(
            latitude=latitude,
            longitude=longitude,
            location=location,
            source="openmeteo",
            data=asdict(series),
            attribution=OPEN_METEO_ATTRIBUTION,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _http_error(e)


@router.post(
    "/historical",
    response_model=WeatherResponse,
    responses=ERROR_RESPONSES,
    tags=["Weather"],
    summary="Get historical weather",
    description="""
**Use this tool when the user asks about past weather** (yesterday, last
month, a specific date range).

Ranges starting more than 7 days ago use the Open-Meteo archive
(global, reanalysis); recent ranges use NOAA station observations.
""",
)
async def historical(
    request: HistoricalRequest,
    services: ServiceContainer = Depends(get_services),
) -> WeatherResponse:
    """Get historical weather for a date range."""
    try:
        if request.start_date > request.end_date:
            raise ValueError(
                f"Invalid date range: start date ({request.start_date}) "
                f"must be before end date ({request.end_date})"
            )
        today = date.today()
        if request.end_date > today:
            raise ValueError(f"End date ({request.end_date}) cannot be in the future")

        latitude, longitude, location = await _resolve_location(request, services)

        if request.start_date < today - timedelta(days=HISTORICAL_THRESHOLD_DAYS):
            archive = await services.weather.get_historical(
                latitude, longitude, request.start_date, request.end_date, hourly=request.hourly
            )
            return WeatherResponse(
                latitude=latitude,
                longitude=longitude,
                location=location,
                source="openmeteo",
                data=asdict(archive),
                attribution=OPEN_METEO_ATTRIBUTION,
            )

        start = datetime.combine(request.start_date, time.min, tzinfo=timezone.utc)
        end = min(
            datetime.combine(request.end_date, time.max, tzinfo=timezone.utc),
            datetime.now(timezone.utc),
        )
        observations = await services.noaa.get_historical_observations(latitude, longitude, start, end)
        return WeatherResponse(
            latitude=latitude,
            longitude=longitude,
            location=location,
            source="noaa",
            data={"observations": [f.get("properties", {}) for f in observations.get("features", [])]},
            attribution=NOAA_ATTRIBUTION,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _http_error(e)


@router.post(
    "/alerts",
    response_model=WeatherResponse,
    responses=ERROR_RESPONSES,
    tags=["Weather"],
    summary="Get weather alerts",
    description="""
**Use this tool when the user asks about warnings, watches or advisories.**

NOAA alerts cover US locations only.
""",
)
async def alerts(
    request: AlertsRequest,
    services: ServiceContainer = Depends(get_services),
) -> WeatherResponse:
    """Get NOAA alerts for a point."""
    try:
        latitude, longitude, location = await _resolve_location(request, services)
        data = await services.noaa.get_alerts(latitude, longitude, active_only=request.active_only)
        return WeatherResponse(
            latitude=latitude,
            longitude=longitude,
            location=location,
            source="noaa",
            data={"alerts": [f.get("properties", {}) for f in data.get("features", [])]},
            attribution=NOAA_ATTRIBUTION,
        )
    except Exception as e:
        raise _http_error(e)


@router.post(
    "/air-quality",
    response_model=WeatherResponse,
    responses=ERROR_RESPONSES,
    tags=["Weather"],
    summary="Get an air quality forecast",
    description="""
**Use this tool when the user asks about air quality, smoke or pollution.**

Hourly PM2.5 and PM10 from Open-Meteo (global), with averages over the
requested hours.
""",
)
async def air_quality(
    request: AirQualityRequest,
    services: ServiceContainer = Depends(get_services),
) -> WeatherResponse:
    """Get PM2.5/PM10 for a point."""
    try:
        latitude, longitude, location = await _resolve_location(request, services)
        data = await services.weather.get_air_quality(latitude, longitude, hours=request.hours)
        return WeatherResponse(
            latitude=latitude,
            longitude=longitude,
            location=location,
            source="openmeteo",
            data={
                **asdict(data),
                "pm25_avg": round(data.pm25_avg, 1),
                "pm10_avg": round(data.pm10_avg, 1),
            },
            attribution=OPEN_METEO_ATTRIBUTION,
        )
    except Exception as e:
        raise _http_error(e)


@router.post(
    "/lightning",
    response_model=WeatherResponse,
    responses=ERROR_RESPONSES,
    tags=["Weather"],
    summary="Get recent lightning strikes",
    description="""
**Use this tool when the user asks about lightning or thunderstorms nearby.**

Strikes detected by the Blitzortung.org network within a radius and
time window, nearest first. An empty list means no strikes were detected.
""",
)
async def lightning(
    request: LightningRequest,
    services: ServiceContainer = Depends(get_services),
) -> WeatherResponse:
    """Get lightning strikes near a point."""
    try:
        latitude, longitude, location = await _resolve_location(request, services)
        strikes = await services.lightning.get_strikes(
            latitude,
            longitude,
            radius_km=request.radius_km,
            window_minutes=request.window_minutes,
        )
        return WeatherResponse(
            latitude=latitude,
            longitude=longitude,
            location=location,
            source="blitzortung",
            data={
                "count": len(strikes),
                "nearest_km": strikes[0].distance_km if strikes else None,
                "strikes": [asdict(s) for s in strikes],
            },
            attribution=BLITZORTUNG_ATTRIBUTION,
        )
    except Exception as e:
        raise _http_error(e)


# =============================================================================
# Earthcast (aerospace weather)
# =============================================================================

def _earthcast_query(request: EarthcastDataRequest) -> EarthcastQuery:
    return EarthcastQuery(
        products=request.products,
        latitude=request.latitude,
        longitude=request.longitude,
        bbox=request.bbox,
        radius_km=request.radius_km,
        altitude_km=request.altitude_km,
        altitude_min_km=request.altitude_min_km,
        altitude_max_km=request.altitude_max_km,
        date=request.date,
        date_start=request.date_start,
        date_end=request.date_end,
        width=request.width,
        height=request.height,
    )


@router.post(
    "/earthcast/data",
    response_model=EarthcastResponse,
    responses=ERROR_RESPONSES,
    tags=["Aerospace"],
    summary="Query Earthcast weather products",
    description="""
**Use this tool for aviation and launch weather products**: lightning
density, contrails, turbulence, wind shear, ionospheric or neutral density.

Filter by bounding box or point and radius, altitude and time.
""",
)
async def earthcast_data(
    request: EarthcastDataRequest,
    services: ServiceContainer = Depends(get_services),
) -> EarthcastResponse:
    """Query one or more Earthcast products."""
    try:
        data = await services.earthcast.query_data(_earthcast_query(request))
        return EarthcastResponse(products=request.products, data=data)
    except Exception as e:
        raise _http_error(e)


@router.post(
    "/earthcast/go-no-go",
    response_model=GoNoGoResponse,
    responses=ERROR_RESPONSES,
    tags=["Aerospace"],
    summary="Launch Go/No-Go decision",
    description="""
**Use this tool when the user asks whether weather permits a launch.**

Evaluates each product against its threshold (or the given overrides)
and returns the overall decision plus the products blocking it.
""",
)
async def earthcast_go_no_go(
    request: GoNoGoRequest,
    services: ServiceContainer = Depends(get_services),
) -> GoNoGoResponse:
    """Get a threshold-based launch decision."""
    try:
        decision = await services.earthcast.get_go_no_go(
            _earthcast_query(request),
            site_description=request.site_description,
            thresholds=request.thresholds,
            use_forecast=request.use_forecast,
        )
    except Exception as e:
        raise _http_error(e)

    return GoNoGoResponse(
        decision=decision.decision,
        site_description=decision.site_description,
        products=[
            ProductDecisionModel(
                product=p.product,
                status=p.status,
                threshold=p.threshold,
                no_go_times=p.no_go_times,
            )
            for p in decision.products
        ],
        blocking_products=decision.blocking_products,
    )


@router.get(
    "/earthcast/products/{product}/timestamp",
    response_model=EarthcastResponse,
    responses=ERROR_RESPONSES,
    tags=["Aerospace"],
    summary="Latest data time for an Earthcast product",
)
async def earthcast_product_timestamp(
    product: str = Path(..., description=f"One of: {', '.join(EARTHCAST_PRODUCTS)}"),
    services: ServiceContainer = Depends(get_services),
) -> EarthcastResponse:
    """How fresh an Earthcast product is."""
    try:
        timestamp = await services.earthcast.get_product_timestamp(product)
    except Exception as e:
        raise _http_error(e)
    return EarthcastResponse(products=[product], data={"timestamp": timestamp})
