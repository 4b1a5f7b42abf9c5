"""
Weather Tools API - FastAPI Application Entry Point

This is the main entry point for the weather data tool server.
Run with: python main.py or uvicorn main:app --reload

Features:
- REST API with OpenAPI documentation (importable as assistant tools)
- Multi-provider geocoding with fallback
- NOAA and Open-Meteo weather data with per-domain caching
- Structured logging
- Environment-based configuration
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables
load_dotenv()

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# Import routes after logging is configured
from api.dependencies import ServiceContainer, build_services
from api.routes import router


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built upstream clients (tests inject mocks here);
            when None the lifespan constructs them on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Handles startup and shutdown events:
        - Construct upstream clients on startup
        - Drop them on shutdown
        """
        logger.info("=" * 60)
        logger.info("Weather Tools API Starting...")
        logger.info("=" * 60)

        app.state.services = services if services is not None else build_services()

        logger.info(f"Log level: {log_level}")
        logger.info(f"API Documentation: http://localhost:{os.getenv('PORT', 8000)}/docs")
        logger.info("=" * 60)

        yield

        logger.info("Weather Tools API Shutting down...")
        app.state.services = None

    app = FastAPI(
        title="Weather Tools API",
        description="""
## Weather Tools API

Weather data tools for AI assistants: place-name geocoding, forecasts,
current conditions, historical weather and alerts.

### Features
- **Geocoding**: Census.gov, Nominatim and Open-Meteo with automatic fallback
- **Forecasts & Observations**: NOAA for US locations, Open-Meteo worldwide
- **Historical Data**: NOAA station observations and the Open-Meteo archive
- **Smart Caching**: Per-domain TTLs; finalized historical data never expires

### Data Sources
- [NOAA / NWS](https://www.weather.gov/documentation/services-web-api)
- [Open-Meteo](https://open-meteo.com/) (no API key required)
- [Census Geocoder](https://geocoding.geo.census.gov/)
- [Nominatim](https://nominatim.org/)

### Attribution
- Weather data by Open-Meteo.com
- Geocoding data (c) OpenStreetMap contributors
""",
        version="1.0.0",
        license_info={
            "name": "MIT",
        },
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests."""
        start_time = datetime.utcnow()

        response = await call_next(request)

        duration = (datetime.utcnow() - start_time).total_seconds() * 1000
        logger.info(
            f"{request.method} {request.url.path} "
            f"- {response.status_code} "
            f"- {duration:.0f}ms"
        )

        return response

    app.include_router(router, prefix="/api/v1")

    # Also mount at root for convenience
    app.include_router(router)

    @app.get("/", include_in_schema=False)
    async def index():
        return JSONResponse({
            "message": "Weather Tools API",
            "docs": "/docs",
            "openapi": "/openapi.json",
        })

    @app.get("/openapi-export.json", include_in_schema=False)
    async def export_openapi():
        """Export the OpenAPI schema for import into an assistant as tools."""
        return JSONResponse(app.openapi())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=log_level.lower(),
    )
