"""
Earthcast Technologies API client for aerospace weather products.

Earthcast serves gridded environmental products (lightning density,
contrails, turbulence, wind shear, ionospheric and neutral density)
and a threshold-based Go/No-Go evaluation used for launch decisions.

Queries are filtered spatially (bounding box, or a point with an
optional radius), by altitude and by time. The API root defaults to
the sandbox and is switched with ECT_API_URL.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from policies import SERVICE_RULES
from policies.config import (
    earthcast_base_url,
    load_cache_settings,
    request_timeout_seconds,
    user_agent,
)
from policies.validation import InputValidator, validator as default_validator
from resilience.cache import CacheStore
from resilience.retry import RetryExecutor
from tools.http import fetch_json

logger = logging.getLogger(__name__)

EARTHCAST_PRODUCTS = (
    "lightning_density",
    "contrails_max",
    "contrails",
    "ionospheric_density",
    "neutral_density",
    "low-level-windshear",
    "high-level-windshear",
    "turbulence_max",
    "reflectivity_5k",
)


@dataclass
class EarthcastQuery:
    """Product, spatial, altitude, time and resolution filters for one request."""

    products: list[str]
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    bbox: Optional[str] = None
    radius_km: Optional[float] = None
    altitude_km: Optional[float] = None
    altitude_min_km: Optional[float] = None
    altitude_max_km: Optional[float] = None
    date: Optional[str] = None
    date_start: Optional[str] = None
    date_end: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def has_area(self) -> bool:
        return bool(self.bbox) or (self.latitude is not None and self.longitude is not None)

    def to_params(self) -> dict[str, Any]:
        """
        Query parameters in Earthcast's naming.

        A bounding box wins over a point; a single altitude wins over a range.
        """
        params: dict[str, Any] = {"products": ",".join(self.products)}

        if self.bbox:
            params["bbox"] = self.bbox
        elif self.latitude is not None and self.longitude is not None:
            params["lat"] = self.latitude
            params["lon"] = self.longitude
            if self.radius_km is not None:
                params["radius"] = self.radius_km

        if self.altitude_km is not None:
            params["alt"] = self.altitude_km
        elif self.altitude_min_km is not None and self.altitude_max_km is not None:
            params["alt_min"] = self.altitude_min_km
            params["alt_max"] = self.altitude_max_km

        if self.date:
            params["date"] = self.date
        else:
            if self.date_start:
                params["date_start"] = self.date_start
            if self.date_end:
                params["date_end"] = self.date_end

        if self.width is not None:
            params["width"] = self.width
        if self.height is not None:
            params["height"] = self.height
        return params


@dataclass
class ProductDecision:
    """Go/No-Go outcome for one product across every evaluated time."""

    product: str
    go: bool
    threshold: Optional[float] = None
    no_go_times: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "GO" if self.go else "NO-GO"


@dataclass
class GoNoGoDecision:
    """Overall launch decision and its per-product breakdown."""

    go: bool
    products: list[ProductDecision] = field(default_factory=list)
    site_description: Optional[str] = None

    @property
    def decision(self) -> str:
        return "GO" if self.go else "NO-GO"

    @property
    def blocking_products(self) -> list[str]:
        return [p.product for p in self.products if not p.go]


def parse_go_no_go(payload: dict) -> GoNoGoDecision:
    """Reduce the per-product, per-time evaluations to one decision per product."""
    result = payload.get("go_nogo_result") or {}
    decisions = []
    for product, evaluations in (result.get("details") or {}).items():
        threshold = None
        no_go_times = []
        for timestamp, evaluation in (evaluations or {}).items():
            if not isinstance(evaluation, dict):
                continue
            threshold = evaluation.get("threshold", threshold)
            if not evaluation.get("go", False):
                no_go_times.append(timestamp)
        decisions.append(ProductDecision(
            product=product,
            go=not no_go_times,
            threshold=threshold,
            no_go_times=sorted(no_go_times),
        ))

    return GoNoGoDecision(
        go=bool(result.get("go", False)),
        products=decisions,
        site_description=result.get("site_description"),
    )


def format_thresholds(thresholds: dict[str, float]) -> str:
    """Encode overrides as "product:value,product:value"."""
    return ",".join(f"{product}:{value:g}" for product, value in thresholds.items())


class EarthcastClient:
    """
    Client for the Earthcast Technologies API.

    Features:
    - Cached, retried requests through the shared transport
    - Product data queries, Go/No-Go decisions and product timestamps
    - Coordinate validation before any request
    """

    SERVICE_NAME = "Earthcast"
    DATA_PATH = "/api/v1/weather/query"
    GO_NOGO_PATH = "/api/v1/decision/go-nogo"
    TIMESTAMP_PATH = "/api/v1/products/{product}/timestamp"

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        retry: Optional[RetryExecutor] = None,
        validator: Optional[InputValidator] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        retry_rules = SERVICE_RULES.get("retry", {})
        self.cache = cache or CacheStore(name="earthcast")
        self.retry = retry or RetryExecutor(
            max_retries=retry_rules.get("max_retries", 3),
            base_delay=retry_rules.get("base_delay_seconds", 1.0),
            max_jitter=retry_rules.get("max_jitter_seconds", 1.0),
            name="earthcast",
        )
        self.validator = validator or default_validator
        self.base_url = (base_url or earthcast_base_url()).rstrip("/")
        self.timeout = timeout or request_timeout_seconds()
        self.settings = load_cache_settings()
        logger.info(f"Earthcast client initialized ({self.base_url})")

    async def _get(self, path: str, params: dict, operation_name: str, ttl: float) -> Any:
        cache_key = CacheStore.generate_key(operation_name, path, params)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"{operation_name}: served from cache")
            return cached

        data = await self.retry.run(
            lambda: fetch_json(
                f"{self.base_url}{path}",
                service=self.SERVICE_NAME,
                params=params,
                headers={"User-Agent": user_agent(), "Accept": "application/json"},
                timeout=self.timeout,
            )
        )
        self.cache.set(cache_key, data, ttl)
        return data

    def _check(self, query: EarthcastQuery, require_area: bool = False) -> None:
        if not query.products:
            raise ValueError("At least one product must be specified")
        if query.latitude is not None or query.longitude is not None:
            if query.latitude is None or query.longitude is None:
                raise ValueError("latitude and longitude must be provided together")
            self.validator.validate_coordinates(
                query.latitude, query.longitude
            ).raise_for_errors()
        if require_area and not query.has_area:
            raise ValueError(
                "Either bbox or latitude/longitude must be provided for spatial filtering"
            )

    async def query_data(self, query: EarthcastQuery) -> dict:
        """
        Fetch one or more products for an area.

        Returns:
            Raw response: "requested" echo plus "conditions" keyed by product

        Raises:
            ValueError: No products, or invalid coordinates
            ApiError: Upstream failure after retries
        """
        self._check(query)
        logger.info(f"Earthcast data: {','.join(query.products)}")
        return await self._get(
            self.DATA_PATH,
            query.to_params(),
            "EarthcastData",
            self.settings.ttl("earthcast_data"),
        )

    async def get_go_no_go(
        self,
        query: EarthcastQuery,
        site_description: Optional[str] = None,
        thresholds: Optional[dict[str, float]] = None,
        use_forecast: bool = False,
    ) -> GoNoGoDecision:
        """
        Evaluate products against launch thresholds.

        Args:
            query: Products and area (bbox or point is required)
            site_description: Free-text site label echoed in the decision
            thresholds: Per-product threshold overrides
            use_forecast: Evaluate forecast rather than observed data
        """
        self._check(query, require_area=True)
        params = query.to_params()
        if site_description:
            params["site_description"] = site_description
        if thresholds:
            params["threshold_override"] = format_thresholds(thresholds)
        params["get_forecast"] = "true" if use_forecast else "false"

        logger.info(
            f"Earthcast Go/No-Go: {','.join(query.products)}"
            + (f" at {site_description}" if site_description else "")
        )
        payload = await self._get(
            self.GO_NOGO_PATH, params, "EarthcastGoNoGo", self.settings.ttl("earthcast_decision")
        )
        decision = parse_go_no_go(payload)
        if decision.site_description is None:
            decision.site_description = site_description
        return decision

    async def get_product_timestamp(self, product: str) -> str:
        """Latest available data time for a product (ISO 8601)."""
        if product not in EARTHCAST_PRODUCTS:
            raise ValueError(
                f"Unknown Earthcast product {product!r}; expected one of {', '.join(EARTHCAST_PRODUCTS)}"
            )
        data = await self._get(
            self.TIMESTAMP_PATH.format(product=product),
            {},
            "EarthcastTimestamp",
            self.settings.ttl("product_timestamp"),
        )
        timestamp = data.get("timestamp") if isinstance(data, dict) else None
        if not timestamp:
            raise ValueError(f"Earthcast returned no timestamp for {product}")
        return timestamp

    def get_cache_stats(self) -> dict:
        return self.cache.stats

    def clear_cache(self) -> int:
        count = self.cache.clear()
        logger.info("Earthcast cache cleared")
        return count
