# Resilience package
"""
Resilient multi-source data access.

Components:
- cache.py: TTL and size-bounded cache (one per data domain)
- errors.py: Error taxonomy and transport-failure classification
- retry.py: Classified retry with exponential backoff and jitter
- rate_limiter.py: Per-provider minimum-interval throttle
- orchestrator.py: Ordered provider fallback with query classification
"""

from .cache import CacheStore, CacheEntry
from .errors import (
    ErrorKind,
    WeatherServiceError,
    ApiError,
    ClientError,
    RateLimitError,
    ServiceUnavailableError,
    NetworkError,
    DataNotFoundError,
    classify_failure,
    classify_error,
    to_api_error,
)
from .rate_limiter import RateLimiter
from .retry import RetryExecutor
from .orchestrator import (
    ProviderOrchestrator,
    ProviderDescriptor,
    QueryClassification,
    AttemptRecord,
)

__all__ = [
    "CacheStore",
    "CacheEntry",
    "ErrorKind",
    "WeatherServiceError",
    "ApiError",
    "ClientError",
    "RateLimitError",
    "ServiceUnavailableError",
    "NetworkError",
    "DataNotFoundError",
    "classify_failure",
    "classify_error",
    "to_api_error",
    "RateLimiter",
    "RetryExecutor",
    "ProviderOrchestrator",
    "ProviderDescriptor",
    "QueryClassification",
    "AttemptRecord",
]
