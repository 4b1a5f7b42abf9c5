"""
Tests for main.py application setup.
"""

from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from api.dependencies import ServiceContainer


def _mock_services() -> ServiceContainer:
    return ServiceContainer(
        geocoding=MagicMock(),
        noaa=MagicMock(),
        weather=MagicMock(),
        earthcast=MagicMock(),
        lightning=MagicMock(),
    )


class TestApplicationStartup:
    """Test application startup and configuration."""

    def test_app_import(self):
        """Should import app successfully."""
        from main import app

        assert app is not None
        assert app.title == "Weather Tools API"

    def test_routes_included(self):
        """Should mount every tool at the root and under /api/v1."""
        from main import app

        routes = set(app.openapi()["paths"])
        assert routes
        for path in ("/health", "/geocode", "/forecast", "/current-conditions",
                     "/historical", "/alerts", "/air-quality", "/status/cache",
                     "/status/geocoding", "/earthcast/data", "/earthcast/go-no-go",
                     "/earthcast/products/{product}/timestamp", "/lightning"):
            assert path in routes
            assert f"/api/v1{path}" in routes

    def test_lifespan_builds_services(self):
        """Without injected services the lifespan constructs them."""
        from main import create_app

        services = _mock_services()
        with patch("main.build_services", return_value=services) as mock_build:
            app = create_app()
            with TestClient(app):
                assert app.state.services is services

        mock_build.assert_called_once()
        assert app.state.services is None

    def test_injected_services_used(self):
        from main import create_app

        services = _mock_services()
        with patch("main.build_services") as mock_build:
            app = create_app(services=services)
            with TestClient(app):
                assert app.state.services is services

        mock_build.assert_not_called()


class TestRootEndpoints:
    """Test non-tool endpoints."""

    def test_index(self):
        from main import create_app

        with TestClient(create_app(services=_mock_services())) as client:
            response = client.get("/")

        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"

    def test_openapi_export(self):
        from main import create_app

        with TestClient(create_app(services=_mock_services())) as client:
            response = client.get("/openapi-export.json")

        assert response.status_code == 200
        assert "/forecast" in response.json()["paths"]

    def test_services_missing_outside_lifespan(self):
        """Routes fail loudly if the lifespan never ran."""
        from main import create_app

        client = TestClient(create_app(services=_mock_services()), raise_server_exceptions=False)
        response = client.get("/status/cache")

        assert response.status_code == 500
