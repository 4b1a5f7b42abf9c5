"""
Blitzortung.org client for recent lightning strikes near a point.

Blitzortung is a community-run global detection network with free,
keyless regional JSON feeds. Strikes are filtered locally by distance
(haversine) and age, then sorted nearest first.
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from policies import SERVICE_RULES
from policies.config import load_cache_settings, request_timeout_seconds, user_agent
from policies.validation import InputValidator, validator as default_validator
from resilience.cache import CacheStore
from resilience.retry import RetryExecutor
from tools.http import fetch_json

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


@dataclass
class LightningStrike:
    """One detected strike, with its distance from the queried point."""

    timestamp: datetime
    latitude: float
    longitude: float
    distance_km: float
    polarity: int = 0
    amplitude_ka: float = 0.0
    station_count: Optional[int] = None


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def feed_region(latitude: float, longitude: float) -> str:
    """Regional feed covering a point; "global" outside the regional boxes."""
    if 24 <= latitude <= 50 and -125 <= longitude <= -66:
        return "na"
    if 35 <= latitude <= 70 and -10 <= longitude <= 40:
        return "eu"
    if -45 <= latitude <= -10 and 110 <= longitude <= 155:
        return "oc"
    return "global"


def _strike_time(raw: Any) -> datetime:
    """Feeds stamp strikes in epoch seconds, milliseconds or nanoseconds, or ISO text."""
    if isinstance(raw, (int, float)):
        seconds = float(raw)
        if seconds > 1e17:
            seconds /= 1e9
        elif seconds > 1e11:
            seconds /= 1e3
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_strikes(
    payload: Any,
    latitude: float,
    longitude: float,
    radius_km: float,
    window_minutes: int,
    now: float,
) -> list[LightningStrike]:
    """
    Filter a feed down to strikes inside the radius and time window.

    Accepts either a bare list or {"strikes": [...]}; records that
    cannot be read are skipped.
    """
    records = payload if isinstance(payload, list) else (payload or {}).get("strikes", [])
    cutoff = now - window_minutes * 60
    strikes = []
    skipped = 0

    for record in records:
        try:
            timestamp = _strike_time(record.get("time", record.get("timestamp")))
            lat = float(record.get("lat", record.get("latitude")))
            lon = float(record.get("lon", record.get("longitude")))
        except (AttributeError, TypeError, ValueError):
            skipped += 1
            continue

        if timestamp.timestamp() < cutoff:
            continue
        distance = haversine_km(latitude, longitude, lat, lon)
        if distance > radius_km:
            continue

        strikes.append(LightningStrike(
            timestamp=timestamp,
            latitude=lat,
            longitude=lon,
            distance_km=round(distance, 2),
            polarity=int(record.get("pol", record.get("polarity", 0)) or 0),
            amplitude_ka=float(record.get("mcs", record.get("amplitude", 0)) or 0),
            station_count=record.get("stat", record.get("stations")),
        ))

    if skipped:
        logger.warning(f"Skipped {skipped} unreadable lightning record(s)")
    strikes.sort(key=lambda s: s.distance_km)
    return strikes


class BlitzortungClient:
    """Client for Blitzortung.org regional strike feeds."""

    BASE_URL = "https://data.blitzortung.org"
    STRIKES_PATH = "/data/last_strikes.json"
    SERVICE_NAME = "Blitzortung"

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        retry: Optional[RetryExecutor] = None,
        validator: Optional[InputValidator] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        retry_rules = SERVICE_RULES.get("retry", {})
        self.cache = cache or CacheStore(name="lightning")
        self.retry = retry or RetryExecutor(
            max_retries=retry_rules.get("max_retries", 3),
            base_delay=retry_rules.get("base_delay_seconds", 1.0),
            max_jitter=retry_rules.get("max_jitter_seconds", 1.0),
            name="lightning",
        )
        self.validator = validator or default_validator
        self.timeout = timeout or request_timeout_seconds("lightning")
        self.settings = load_cache_settings()
        self._clock = clock

    async def _feed(self, region: str) -> Any:
        cache_key = CacheStore.generate_key("lightning", region)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        data = await self.retry.run(
            lambda: fetch_json(
                f"{self.BASE_URL}{self.STRIKES_PATH}",
                service=self.SERVICE_NAME,
                params={"region": region},
                headers={"User-Agent": user_agent()},
                timeout=self.timeout,
            )
        )
        self.cache.set(cache_key, data, self.settings.ttl("lightning"))
        return data

    async def get_strikes(
        self,
        latitude: float,
        longitude: float,
        radius_km: float = 100,
        window_minutes: int = 60,
    ) -> list[LightningStrike]:
        """
        Recent strikes within radius_km of a point, nearest first.

        An empty list means no strikes were detected, not a failure.

        Raises:
            ValueError: Invalid coordinates, radius or window
            ApiError: Feed unavailable after retries
        """
        self.validator.validate_coordinates(latitude, longitude).raise_for_errors()
        if radius_km <= 0:
            raise ValueError(f"Radius must be positive, got {radius_km}")
        if window_minutes <= 0:
            raise ValueError(f"Time window must be positive, got {window_minutes}")

        region = feed_region(latitude, longitude)
        payload = await self._feed(region)
        strikes = parse_strikes(
            payload, latitude, longitude, radius_km, window_minutes, self._clock()
        )
        logger.info(
            f"Lightning: {len(strikes)} strike(s) within {radius_km} km "
            f"of {latitude},{longitude} ({region} feed)"
        )
        return strikes

    def get_cache_stats(self) -> dict:
        return self.cache.stats
