"""
Error taxonomy and transport-failure classification.

Upstream failures are classified exactly once, at the transport boundary,
from structured signals (HTTP status, timeout, missing response). Retry
and fallback decisions downstream read the resulting ErrorKind and never
inspect message text.

    ClientError          4xx except 429   never retried
    RateLimitError       429              retried
    ServiceUnavailable   5xx or timeout   retried
    NetworkError         no response      retried
    DataNotFoundError    every provider exhausted, terminal
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

import httpx

if TYPE_CHECKING:
    from resilience.orchestrator import AttemptRecord


class ErrorKind(str, Enum):
    """Classification of an upstream transport failure."""
    CLIENT_ERROR = "client_error"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK_ERROR = "network_error"

    @property
    def retryable(self) -> bool:
        return self is not ErrorKind.CLIENT_ERROR


class WeatherServiceError(Exception):
    """Base class for all errors raised by the data-access layer."""


class ApiError(WeatherServiceError):
    """A classified failure talking to one upstream service."""

    kind: ErrorKind = ErrorKind.SERVICE_UNAVAILABLE

    def __init__(
        self,
        message: str,
        service: str,
        kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.status_code = status_code
        if kind is not None:
            self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __str__(self) -> str:
        return f"{self.service}: {self.message}"


class ClientError(ApiError):
    """Bad request or unauthorized. Fix the parameters or credentials."""
    kind = ErrorKind.CLIENT_ERROR


class RateLimitError(ApiError):
    """Upstream answered 429."""
    kind = ErrorKind.RATE_LIMITED


class ServiceUnavailableError(ApiError):
    """Upstream answered 5xx or the request timed out."""
    kind = ErrorKind.SERVICE_UNAVAILABLE


class NetworkError(ApiError):
    """No response was received (DNS failure, refused, reset)."""
    kind = ErrorKind.NETWORK_ERROR


_ERROR_TYPES = {
    ErrorKind.CLIENT_ERROR: ClientError,
    ErrorKind.RATE_LIMITED: RateLimitError,
    ErrorKind.SERVICE_UNAVAILABLE: ServiceUnavailableError,
    ErrorKind.NETWORK_ERROR: NetworkError,
}


class DataNotFoundError(WeatherServiceError):
    """
    Every provider was tried and none produced a result.

    Carries the per-provider attempt trail so the failure can be
    diagnosed without re-running the request.
    """

    def __init__(
        self,
        query: str,
        attempts: Sequence["AttemptRecord"],
        hint: Optional[str] = None,
    ):
        self.query = query
        self.attempts = list(attempts)
        self.hint = hint
        super().__init__(self._build_message())

    @property
    def providers_tried(self) -> list[str]:
        return [attempt.provider_name for attempt in self.attempts]

    def _build_message(self) -> str:
        trail = "; ".join(attempt.describe() for attempt in self.attempts)
        message = (
            f'No results found matching "{self.query}". '
            f"Tried {len(self.attempts)} provider(s): {trail or 'none'}"
        )
        if self.hint:
            message += f"\n\n{self.hint}"
        return message


def classify_failure(
    status_code: Optional[int] = None,
    timed_out: bool = False,
    no_response: bool = False,
) -> Optional[ErrorKind]:
    """
    Map structured failure signals to an ErrorKind.

    Args:
        status_code: HTTP status of the response, if one was received
        timed_out: The request hit its timeout
        no_response: The connection failed before any response arrived

    Returns:
        ErrorKind, or None when the signals describe no transport failure
    """
    if status_code is not None:
        if status_code == 429:
            return ErrorKind.RATE_LIMITED
        if 400 <= status_code < 500:
            return ErrorKind.CLIENT_ERROR
        if status_code >= 500:
            return ErrorKind.SERVICE_UNAVAILABLE
    if timed_out:
        return ErrorKind.SERVICE_UNAVAILABLE
    if no_response:
        return ErrorKind.NETWORK_ERROR
    return None


def classify_error(error: BaseException) -> Optional[ErrorKind]:
    """
    Default classifier used by RetryExecutor.

    Already-typed ApiErrors keep their kind; raw httpx exceptions are
    classified from their structured attributes. Anything else returns
    None and is treated as not retryable.
    """
    if isinstance(error, ApiError):
        return error.kind
    if isinstance(error, httpx.HTTPStatusError):
        return classify_failure(status_code=error.response.status_code)
    if isinstance(error, httpx.TimeoutException):
        return classify_failure(timed_out=True)
    if isinstance(error, httpx.TransportError):
        return classify_failure(no_response=True)
    return None


def to_api_error(error: Exception, service: str) -> ApiError:
    """
    Translate a transport exception into a typed ApiError.

    Args:
        error: Exception raised by the HTTP client
        service: Upstream service name, for messages

    Returns:
        ApiError subclass matching the classification
    """
    if isinstance(error, ApiError):
        return error

    status_code = None
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code

    kind = classify_error(error) or ErrorKind.SERVICE_UNAVAILABLE

    if status_code is not None:
        message = f"HTTP {status_code} from upstream"
    elif isinstance(error, httpx.TimeoutException):
        message = "Request timed out"
    elif isinstance(error, httpx.TransportError):
        message = f"Unable to connect ({type(error).__name__})"
    else:
        message = f"Request failed ({type(error).__name__})"

    return _ERROR_TYPES[kind](message, service, status_code=status_code)
