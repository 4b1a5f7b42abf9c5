"""
Geocoding Service - Location name to coordinates conversion.

Tries several geocoding providers in order and returns the first
non-empty answer:
- Census.gov: authoritative for US locations (US only)
- Nominatim (OpenStreetMap): worldwide, strict 1 request/second policy
- Open-Meteo: worldwide fallback with timezone/elevation metadata

A query heuristic decides whether Census.gov goes first (likely US),
is skipped (clearly elsewhere), or is tried first anyway (uncertain).
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from policies import SERVICE_RULES
from policies.config import load_cache_settings, request_timeout_seconds, user_agent
from policies.validation import InputValidator, validator as default_validator
from resilience.cache import CacheStore
from resilience.orchestrator import (
    ProviderDescriptor,
    ProviderOrchestrator,
    QueryClassification,
)
from resilience.rate_limiter import RateLimiter
from resilience.retry import RetryExecutor
from tools.http import fetch_json

logger = logging.getLogger(__name__)


@dataclass
class GeocodingResult:
    """A location match in the same shape regardless of provider."""
    name: str
    display_name: str
    latitude: float
    longitude: float
    confidence: str  # "high", "medium" or "low"
    source: str  # "census", "nominatim" or "openmeteo"
    country: Optional[str] = None
    country_code: Optional[str] = None
    admin1: Optional[str] = None  # State/region
    admin2: Optional[str] = None  # County/district
    timezone: Optional[str] = None
    elevation: Optional[float] = None
    population: Optional[int] = None
    feature_code: Optional[str] = None

    @property
    def coords(self) -> Tuple[float, float]:
        """(latitude, longitude)"""
        return (self.latitude, self.longitude)


# =============================================================================
# Query classification
# =============================================================================

US_STATE_ABBREVIATIONS = {
    "al", "ak", "az", "ar", "ca", "co", "ct", "de", "fl", "ga",
    "hi", "id", "il", "in", "ia", "ks", "ky", "la", "me", "md",
    "ma", "mi", "mn", "ms", "mo", "mt", "ne", "nv", "nh", "nj",
    "nm", "ny", "nc", "nd", "oh", "ok", "or", "pa", "ri", "sc",
    "sd", "tn", "tx", "ut", "vt", "va", "wa", "wv", "wi", "wy",
    "dc", "pr",
}

# "Georgia" is left out: it is also a country.
US_STATE_NAMES = {
    "alabama", "alaska", "arizona", "arkansas", "california", "colorado",
    "connecticut", "delaware", "florida", "hawaii", "idaho", "illinois",
    "indiana", "iowa", "kansas", "kentucky", "louisiana", "maine",
    "maryland", "massachusetts", "michigan", "minnesota", "mississippi",
    "missouri", "montana", "nebraska", "nevada", "new hampshire",
    "new jersey", "new mexico", "new york", "north carolina", "north dakota",
    "ohio", "oklahoma", "oregon", "pennsylvania", "rhode island",
    "south carolina", "south dakota", "tennessee", "texas", "utah",
    "vermont", "virginia", "washington", "west virginia", "wisconsin",
    "wyoming",
}

US_MARKERS = re.compile(r"\b(usa|u\.s\.a\.?|u\.s\.|united states( of america)?)(?=\W|$)")

NON_US_COUNTRIES = [
    "france", "germany", "japan", "china", "uk", "england", "scotland",
    "wales", "ireland", "united kingdom", "canada", "mexico", "australia",
    "india", "brazil", "italy", "spain", "portugal", "netherlands",
    "belgium", "switzerland", "austria", "sweden", "norway", "denmark",
    "finland", "poland", "russia", "ukraine", "turkey", "greece", "egypt",
    "south africa", "nigeria", "kenya", "argentina", "chile", "peru",
    "colombia", "new zealand", "south korea", "korea", "indonesia",
    "thailand", "vietnam", "philippines", "bulgaria",
]
NON_US_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(c) for c in NON_US_COUNTRIES) + r")\b"
)

_STATE_NAME_ALTERNATION = "|".join(
    re.escape(name) for name in sorted(US_STATE_NAMES, key=len, reverse=True)
)
US_STATE_NAME_PATTERN = re.compile(r"\b(" + _STATE_NAME_ALTERNATION + r")\b")
TRAILING_STATE_NAME = re.compile(r"(?:^|[\s,])(" + _STATE_NAME_ALTERNATION + r")\W*$")

# US regions whose names contain a foreign country ("New England").
US_REGION_PATTERN = re.compile(r"\bnew england\b")


def classify_us_query(query: str) -> QueryClassification:
    """
    Decide whether a query is likely a US location.

    DEFINITE_MATCH: trailing state abbreviation ("Seattle, WA", "Austin TX"),
        a state name after a comma ("Portland, Oregon") or at the end
        ("Santa Fe New Mexico"), or an explicit USA marker
    DEFINITE_NON_MATCH: an explicit non-US country name that is not part of
        a US state or region name ("New Mexico", "New England")
    UNCERTAIN: anything else, including a state and a country in one query
    """
    text = re.sub(r"\s+", " ", query.strip().lower())

    segments = [s.strip() for s in text.split(",")]
    if len(segments) > 1:
        for segment in segments[1:]:
            first_token = segment.split(" ")[0] if segment else ""
            if first_token.rstrip(".") in US_STATE_ABBREVIATIONS or segment in US_STATE_NAMES:
                return QueryClassification.DEFINITE_MATCH

    tokens = text.replace(",", " ").split()
    if len(tokens) > 1 and tokens[-1].rstrip(".") in US_STATE_ABBREVIATIONS:
        return QueryClassification.DEFINITE_MATCH

    if US_MARKERS.search(text):
        return QueryClassification.DEFINITE_MATCH

    if TRAILING_STATE_NAME.search(text):
        return QueryClassification.DEFINITE_MATCH

    masked, state_names = US_STATE_NAME_PATTERN.subn(" ", text)
    masked = US_REGION_PATTERN.sub(" ", masked)
    if NON_US_PATTERN.search(masked):
        if state_names:
            return QueryClassification.UNCERTAIN
        return QueryClassification.DEFINITE_NON_MATCH

    return QueryClassification.UNCERTAIN


# =============================================================================
# Providers
# =============================================================================

class CensusGeocoder:
    """
    Census.gov geocoder.

    Best for: US cities, states and street addresses
    Coverage: United States only
    Rate limit: none published, throttled to stay polite
    """

    name = "Census.gov"
    source = "census"
    BASE_URL = "https://geocoding.geo.census.gov/geocoder/locations/onelineaddress"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or request_timeout_seconds("geocoding")

    async def geocode(self, query: str, limit: int) -> list[GeocodingResult]:
        logger.debug(f"Census.gov geocode: {query!r}")

        data = await fetch_json(
            self.BASE_URL,
            service=self.name,
            params={
                "address": query,
                "benchmark": "Public_AR_Current",
                "format": "json",
            },
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

        matches = ((data or {}).get("result") or {}).get("addressMatches") or []
        results = []

        for match in matches[:limit]:
            # Census.gov returns x = longitude, y = latitude
            coords = match.get("coordinates") or {}
            if coords.get("x") is None or coords.get("y") is None:
                continue

            components = match.get("addressComponents") or {}
            matched = match.get("matchedAddress") or query
            results.append(GeocodingResult(
                name=matched,
                display_name=matched,
                latitude=float(coords["y"]),
                longitude=float(coords["x"]),
                country="United States",
                country_code="US",
                admin1=components.get("state"),
                admin2=components.get("county"),
                confidence="high",  # authoritative for US locations
                source=self.source,
            ))

        logger.debug(f"Census.gov: Found {len(results)} result(s)")
        return results


class NominatimGeocoder:
    """
    Nominatim (OpenStreetMap) geocoder.

    Best for: worldwide places, landmarks, natural-language queries
    Coverage: global
    Rate limit: 1 request/second, strictly enforced by the usage policy
    """

    name = "Nominatim"
    source = "nominatim"
    BASE_URL = "https://nominatim.openstreetmap.org/search"
    MAX_LIMIT = 50

    FEATURE_CODES = {
        "city": "PPL",
        "town": "PPL",
        "village": "PPL",
        "administrative": "ADM1",
        "country": "PCLI",
        "state": "ADM1",
        "county": "ADM2",
        "island": "ISL",
        "airport": "AIRP",
        "park": "PRK",
        "lake": "LAKE",
    }

    def __init__(self, timeout: Optional[float] = None, agent: Optional[str] = None):
        self.timeout = timeout or request_timeout_seconds("geocoding")
        self.user_agent = agent or user_agent()

    @classmethod
    def feature_code(cls, osm_type: Optional[str]) -> Optional[str]:
        """Map an OSM type to a GeoNames-style feature code."""
        if not osm_type:
            return None
        return cls.FEATURE_CODES.get(osm_type.lower(), osm_type.upper())

    @staticmethod
    def confidence(importance: Optional[float]) -> str:
        if importance is None:
            return "medium"
        if importance > 0.6:
            return "high"
        if importance < 0.3:
            return "low"
        return "medium"

    async def geocode(self, query: str, limit: int) -> list[GeocodingResult]:
        logger.debug(f"Nominatim geocode: {query!r}")

        data = await fetch_json(
            self.BASE_URL,
            service=self.name,
            params={
                "q": query,
                "format": "json",
                "addressdetails": 1,
                "limit": min(limit, self.MAX_LIMIT),
                "accept-language": "en",  # Force English names
            },
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            timeout=self.timeout,
        )

        results = []
        for item in data or []:
            address = item.get("address") or {}
            country_code = address.get("country_code")
            results.append(GeocodingResult(
                name=item.get("name") or item.get("display_name", query),
                display_name=item.get("display_name", query),
                latitude=float(item["lat"]),
                longitude=float(item["lon"]),
                country=address.get("country"),
                country_code=country_code.upper() if country_code else None,
                admin1=address.get("state") or address.get("region"),
                admin2=address.get("county"),
                feature_code=self.feature_code(item.get("type")),
                confidence=self.confidence(item.get("importance")),
                source=self.source,
            ))

        logger.debug(f"Nominatim: Found {len(results)} result(s)")
        return results


class OpenMeteoGeocoder:
    """
    Open-Meteo geocoder.

    Best for: reliable global fallback with timezone, elevation, population
    Coverage: global
    Rate limit: shared daily quota with the other Open-Meteo APIs
    """

    name = "Open-Meteo"
    source = "openmeteo"
    BASE_URL = "https://geocoding-api.open-meteo.com/v1/search"
    MAX_LIMIT = 100

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or request_timeout_seconds("geocoding")

    async def geocode(self, query: str, limit: int) -> list[GeocodingResult]:
        logger.debug(f"Open-Meteo geocode: {query!r}")

        data = await fetch_json(
            self.BASE_URL,
            service=self.name,
            params={
                "name": query,
                "count": min(limit, self.MAX_LIMIT),
                "language": "en",
                "format": "json",
            },
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

        results = []
        for item in (data or {}).get("results") or []:
            parts = [item.get("name"), item.get("admin1"), item.get("admin2"), item.get("country")]
            results.append(GeocodingResult(
                name=item["name"],
                display_name=", ".join(p for p in parts if p),
                latitude=item["latitude"],
                longitude=item["longitude"],
                country=item.get("country"),
                country_code=item.get("country_code"),
                admin1=item.get("admin1"),
                admin2=item.get("admin2"),
                timezone=item.get("timezone"),
                elevation=item.get("elevation"),
                population=item.get("population"),
                feature_code=item.get("feature_code"),
                confidence="medium",  # reliable, not authoritative
                source=self.source,
            ))

        logger.debug(f"Open-Meteo: Found {len(results)} result(s)")
        return results


# =============================================================================
# Service
# =============================================================================

NOT_FOUND_HINT = (
    "Suggestions:\n"
    '- Add more detail (e.g., "Paris, France" instead of "Paris")\n'
    "- Check spelling\n"
    "- Use a nearby major city\n"
    "- Try providing coordinates directly (latitude, longitude)"
)


class GeocodingService:
    """
    Multi-provider geocoding with automatic fallback.

    Features:
    - Query heuristic picks Census.gov-first, international or try-all order
    - Per-provider rate limiting and classified retries
    - Results cached per normalized query and limit

    Usage:
        service = GeocodingService()
        results = await service.geocode("Seattle, WA")
        lat, lon = results[0].coords
    """

    def __init__(
        self,
        census: Optional[CensusGeocoder] = None,
        nominatim: Optional[NominatimGeocoder] = None,
        openmeteo: Optional[OpenMeteoGeocoder] = None,
        cache: Optional[CacheStore] = None,
        retry: Optional[RetryExecutor] = None,
        rate_limiters: Optional[dict[str, RateLimiter]] = None,
        validator: Optional[InputValidator] = None,
    ):
        """
        Initialize providers and the orchestrator.

        Args:
            census: Census.gov provider (specialized for US)
            nominatim: Nominatim provider
            openmeteo: Open-Meteo provider
            cache: Cache for geocoding results
            retry: Retry policy for provider calls
            rate_limiters: Limiter per provider source tag; defaults from policy
            validator: Input validator for result limits
        """
        self.census = census or CensusGeocoder()
        self.nominatim = nominatim or NominatimGeocoder()
        self.openmeteo = openmeteo or OpenMeteoGeocoder()
        self.cache = cache or CacheStore(name="geocoding")
        self.validator = validator or default_validator

        retry_rules = SERVICE_RULES.get("retry", {})
        self.retry = retry or RetryExecutor(
            max_retries=retry_rules.get("max_retries", 3),
            base_delay=retry_rules.get("base_delay_seconds", 1.0),
            max_jitter=retry_rules.get("max_jitter_seconds", 1.0),
            name="geocoding",
        )

        limiters = rate_limiters or {}
        provider_rules = SERVICE_RULES.get("providers", {})

        def limiter_for(provider) -> RateLimiter:
            if provider.source in limiters:
                return limiters[provider.source]
            rps = provider_rules.get(provider.source, {}).get("requests_per_second", 1)
            return RateLimiter(rps, name=provider.name)

        self.orchestrator: ProviderOrchestrator[GeocodingResult] = ProviderOrchestrator(
            providers=[
                ProviderDescriptor(
                    name=self.census.name,
                    fetch=self.census.geocode,
                    rate_limiter=limiter_for(self.census),
                    specialized=True,
                ),
                ProviderDescriptor(
                    name=self.nominatim.name,
                    fetch=self.nominatim.geocode,
                    rate_limiter=limiter_for(self.nominatim),
                ),
                ProviderDescriptor(
                    name=self.openmeteo.name,
                    fetch=self.openmeteo.geocode,
                    rate_limiter=limiter_for(self.openmeteo),
                ),
            ],
            classify_query=classify_us_query,
            retry_executor=self.retry,
            cache=self.cache,
            cache_prefix="geocode",
            cache_ttl=load_cache_settings().ttl("geocoding"),
            not_found_hint=NOT_FOUND_HINT,
            name="geocoding",
        )

    async def geocode(self, location_name: str, limit: int = 5) -> list[GeocodingResult]:
        """
        Convert a location name to coordinates.

        Args:
            location_name: City, address, region, or country name
            limit: Maximum number of results (1-50)

        Returns:
            Non-empty list of results from the first provider that answered

        Raises:
            ValueError: Query or limit is invalid
            DataNotFoundError: No provider found the location
        """
        # Validate input - require minimum 2 characters and at least one letter
        clean_name = location_name.strip() if location_name else ""

        if len(clean_name) < 2:
            raise ValueError(f"Location name too short (min 2 chars): {location_name!r}")

        if not any(c.isalpha() for c in clean_name):
            raise ValueError(f"Invalid location name (no letters): {location_name!r}")

        limit_valid, limit_error = self.validator.validate_limit(limit)
        if not limit_valid:
            raise ValueError(limit_error)

        return await self.orchestrator.resolve(clean_name, limit)

    def get_cache_stats(self) -> dict:
        return self.cache.stats

    def clear_cache(self) -> int:
        return self.cache.clear()

    def get_service_info(self) -> dict:
        """Providers in default order, with their rate limits and cache state."""
        providers = []
        for provider in self.orchestrator.providers:
            limiter = provider.rate_limiter
            providers.append({
                "name": provider.name,
                "specialized": provider.specialized,
                "requests_per_second": limiter.requests_per_second if limiter else None,
            })
        return {
            "strategy": "first non-empty result wins",
            "providers": providers,
            "cache": self.cache.get_cache_info(),
        }
