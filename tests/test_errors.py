"""
Tests for error classification at the transport boundary.

These tests verify:
- Status code, timeout and connection failure classification
- Translation of httpx exceptions into typed ApiErrors
- DataNotFoundError attempt trail
"""

import httpx
import pytest

from resilience.errors import (
    ApiError,
    ClientError,
    DataNotFoundError,
    ErrorKind,
    NetworkError,
    RateLimitError,
    ServiceUnavailableError,
    classify_error,
    classify_failure,
    to_api_error,
)
from resilience.orchestrator import AttemptRecord


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.com/data")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(
        f"HTTP {status_code}", request=request, response=response
    )


class TestClassifyFailure:
    """Tests for classify_failure."""

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 422])
    def test_client_errors(self, status_code):
        assert classify_failure(status_code=status_code) is ErrorKind.CLIENT_ERROR

    def test_rate_limited(self):
        assert classify_failure(status_code=429) is ErrorKind.RATE_LIMITED

    @pytest.mark.parametrize("status_code", [500, 502, 503, 504])
    def test_server_errors(self, status_code):
        assert classify_failure(status_code=status_code) is ErrorKind.SERVICE_UNAVAILABLE

    def test_timeout(self):
        assert classify_failure(timed_out=True) is ErrorKind.SERVICE_UNAVAILABLE

    def test_no_response(self):
        assert classify_failure(no_response=True) is ErrorKind.NETWORK_ERROR

    def test_nothing_to_classify(self):
        assert classify_failure() is None


class TestErrorKind:
    """Tests for ErrorKind retryability."""

    def test_only_client_error_is_fatal(self):
        assert ErrorKind.CLIENT_ERROR.retryable is False
        assert ErrorKind.RATE_LIMITED.retryable is True
        assert ErrorKind.SERVICE_UNAVAILABLE.retryable is True
        assert ErrorKind.NETWORK_ERROR.retryable is True


class TestClassifyError:
    """Tests for classify_error on raw and typed exceptions."""

    def test_typed_error_keeps_kind(self):
        assert classify_error(RateLimitError("slow down", "Nominatim")) is ErrorKind.RATE_LIMITED

    def test_http_status_error(self):
        assert classify_error(_status_error(503)) is ErrorKind.SERVICE_UNAVAILABLE
        assert classify_error(_status_error(404)) is ErrorKind.CLIENT_ERROR

    def test_timeout_exception(self):
        assert classify_error(httpx.ReadTimeout("slow")) is ErrorKind.SERVICE_UNAVAILABLE

    def test_connect_error(self):
        assert classify_error(httpx.ConnectError("refused")) is ErrorKind.NETWORK_ERROR

    def test_unrelated_exception_unclassified(self):
        assert classify_error(KeyError("lat")) is None


class TestToApiError:
    """Tests for to_api_error translation."""

    def test_status_error_becomes_client_error(self):
        error = to_api_error(_status_error(400), "NOAA")

        assert isinstance(error, ClientError)
        assert error.status_code == 400
        assert error.service == "NOAA"
        assert error.retryable is False
        assert str(error) == "NOAA: HTTP 400 from upstream"

    def test_429_becomes_rate_limit_error(self):
        assert isinstance(to_api_error(_status_error(429), "Nominatim"), RateLimitError)

    def test_timeout_becomes_service_unavailable(self):
        error = to_api_error(httpx.ConnectTimeout("timeout"), "Open-Meteo")

        assert isinstance(error, ServiceUnavailableError)
        assert error.message == "Request timed out"

    def test_connect_error_becomes_network_error(self):
        error = to_api_error(httpx.ConnectError("refused"), "Census.gov")

        assert isinstance(error, NetworkError)
        assert "ConnectError" in error.message

    def test_typed_error_passes_through(self):
        original = ServiceUnavailableError("down", "NOAA")
        assert to_api_error(original, "other") is original

    def test_explicit_kind_overrides_class_default(self):
        error = ApiError("odd", "svc", kind=ErrorKind.NETWORK_ERROR)
        assert error.kind is ErrorKind.NETWORK_ERROR


class TestDataNotFoundError:
    """Tests for DataNotFoundError messages."""

    def test_message_lists_every_attempt(self):
        attempts = [
            AttemptRecord("Census.gov", False, error_message="HTTP 500 from upstream"),
            AttemptRecord("Nominatim", False),
            AttemptRecord("Open-Meteo", False),
        ]
        error = DataNotFoundError("Atlantis", attempts)

        message = str(error)
        assert 'No results found matching "Atlantis"' in message
        assert "Tried 3 provider(s)" in message
        assert "Census.gov: HTTP 500 from upstream" in message
        assert "Nominatim: No results found" in message
        assert error.providers_tried == ["Census.gov", "Nominatim", "Open-Meteo"]

    def test_hint_appended(self):
        error = DataNotFoundError("x", [], hint="Check spelling")
        assert str(error).endswith("\n\nCheck spelling")
