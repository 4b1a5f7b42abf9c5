"""
Runtime configuration: policy defaults merged with environment overrides.

TTL values are chosen by data volatility:
- Grid coordinates and finalized historical data never change
- Station lists rarely change
- Forecasts are refreshed roughly hourly upstream
- Observations update every 20-60 minutes
- Alerts can change within minutes

Environment variables (read at call time, so a .env loaded by main.py applies):
- CACHE_ENABLED: "false" disables caching globally (default: enabled)
- CACHE_MAX_SIZE: maximum entries per cache before LRU eviction
- API_TIMEOUT_MS: per-request HTTP timeout in milliseconds
- NOMINATIM_USER_AGENT: identifying User-Agent for outbound requests
- ECT_API_URL: Earthcast Technologies API root (default: the sandbox)
"""

import logging
import math
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from policies import SERVICE_RULES

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


def _ttl_from_policy(value: Optional[float]) -> float:
    """JSON has no infinity literal; null means the entry never expires."""
    return math.inf if value is None else float(value)


@dataclass
class CacheSettings:
    """Effective cache configuration for one process."""

    enabled: bool = True
    max_size: int = 1000
    default_ttl: float = 600.0
    ttls: dict[str, float] = field(default_factory=dict)

    def ttl(self, domain: str) -> float:
        """TTL in seconds for a data domain, falling back to the default."""
        return self.ttls.get(domain, self.default_ttl)


def load_cache_settings(rules: Optional[dict] = None) -> CacheSettings:
    """
    Build cache settings from policy rules and environment overrides.

    Args:
        rules: Service rules dict. Defaults to the loaded policy file.

    Returns:
        CacheSettings with env overrides applied
    """
    cache_rules = (rules if rules is not None else SERVICE_RULES).get("cache", {})

    enabled = cache_rules.get("enabled", True)
    if os.getenv("CACHE_ENABLED") is not None:
        enabled = os.getenv("CACHE_ENABLED", "").strip().lower() != "false"

    max_size = int(cache_rules.get("max_size", 1000))
    env_max_size = os.getenv("CACHE_MAX_SIZE")
    if env_max_size:
        try:
            max_size = max(0, int(env_max_size))
        except ValueError:
            logger.warning(f"Ignoring invalid CACHE_MAX_SIZE={env_max_size!r}")

    ttls = {
        domain: _ttl_from_policy(value)
        for domain, value in cache_rules.get("ttl_seconds", {}).items()
    }

    return CacheSettings(
        enabled=enabled,
        max_size=max_size,
        default_ttl=_ttl_from_policy(cache_rules.get("default_ttl_seconds", 600)),
        ttls=ttls,
    )


def request_timeout_seconds(kind: str = "request") -> float:
    """
    HTTP timeout for outbound calls.

    API_TIMEOUT_MS overrides the policy value for every kind.
    """
    env_timeout = os.getenv("API_TIMEOUT_MS")
    if env_timeout:
        try:
            return int(env_timeout) / 1000
        except ValueError:
            logger.warning(f"Ignoring invalid API_TIMEOUT_MS={env_timeout!r}")

    http_rules = SERVICE_RULES.get("http", {})
    return float(http_rules.get(f"{kind}_timeout_seconds", 30))


def earthcast_base_url() -> str:
    """Earthcast API root; ECT_API_URL switches from the sandbox to production."""
    default = SERVICE_RULES.get("earthcast", {}).get("base_url", "http://ect-sandbox.com")
    return os.getenv("ECT_API_URL", default).rstrip("/")


def user_agent() -> str:
    """Identifying User-Agent sent with every upstream request."""
    return os.getenv(
        "NOMINATIM_USER_AGENT",
        SERVICE_RULES.get("http", {}).get("user_agent", "weather-insights/1.0"),
    )


def get_historical_data_ttl(
    range_end: Union[str, date, datetime],
    now: Optional[datetime] = None,
) -> float:
    """
    Pick a TTL for historical data based on how recent it is.

    Data more than one day old is finalized upstream and never changes;
    more recent data may still be corrected. A range is only as final as
    its newest day, so callers pass the END of the queried range.

    Args:
        range_end: Newest instant the query covers (ISO string, date or datetime).
            A bare date means the end of that day.
        now: Current time, for tests

    Returns:
        TTL in seconds (math.inf for finalized data)
    """
    if isinstance(range_end, str) and len(range_end) == 10:
        range_end = date.fromisoformat(range_end)

    if isinstance(range_end, str):
        end = datetime.fromisoformat(range_end.replace("Z", "+00:00"))
    elif isinstance(range_end, datetime):
        end = range_end
    else:
        end = datetime(range_end.year, range_end.month, range_end.day) + timedelta(days=1)

    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    settings = load_cache_settings()
    age_days = (now - end).total_seconds() / DAY_SECONDS
    if age_days > 1:
        return settings.ttl("historical_data")
    return settings.ttl("recent_historical")
