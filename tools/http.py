"""
Transport boundary for upstream HTTP calls.

Every upstream request goes through fetch_json, which performs exactly
one GET and converts httpx failures into typed ApiErrors. Retry and
caching are layered on top by the calling client.
"""

import logging
from typing import Any, Optional

import httpx

from resilience.errors import ServiceUnavailableError, to_api_error

logger = logging.getLogger(__name__)


async def fetch_json(
    url: str,
    *,
    service: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = 30.0,
) -> Any:
    """
    GET a URL and return the parsed JSON body.

    Args:
        url: Absolute endpoint URL
        service: Upstream name used in error messages
        params: Query parameters
        headers: Request headers (User-Agent, Accept)
        timeout: Per-request timeout in seconds

    Returns:
        Parsed JSON response

    Raises:
        ApiError: ClientError, RateLimitError, ServiceUnavailableError or NetworkError.
            A 2xx body that is not JSON is a ServiceUnavailableError.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, headers=headers) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
    except httpx.HTTPError as e:
        error = to_api_error(e, service)
        logger.debug(f"{service}: {error.kind.value} from {url}: {error.message}")
        raise error from e

    try:
        return response.json()
    except ValueError as e:
        logger.debug(f"{service}: invalid JSON from {url}: {e}")
        raise ServiceUnavailableError(
            "Invalid JSON in upstream response",
            service,
            status_code=response.status_code,
        ) from e
