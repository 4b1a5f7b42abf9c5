"""
TTL and size-bounded cache for upstream responses.

One CacheStore is owned by each upstream client (one per data domain),
never shared globally. Entries expire lazily on read; an entry stored
with an infinite TTL only ever leaves the cache through LRU eviction.

Cache key format: "{prefix}:{canonical JSON of parts}"
Default TTL and size come from policies/service_rules.json.
"""

import hashlib
import json
import logging
import math
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from policies.config import load_cache_settings

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_KEY_LENGTH = 200


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with value and expiration."""

    key: str
    value: T
    expires_at: float = math.inf
    created_at: float = field(default_factory=time.monotonic)
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired. Infinite entries never do."""
        return now >= self.expires_at

    def touch(self) -> None:
        """Record a cache hit."""
        self.hits += 1


def _encode_part(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(
        f"Cannot build cache key from {type(value).__name__}: {value!r}"
    )


class CacheStore(Generic[T]):
    """
    In-memory cache with per-entry TTL and LRU eviction.

    Features:
    - Lazy expiration on read (no background sweep)
    - Infinite TTL for data that never changes
    - Least-recently-used eviction at max_size (get-hit and set both count as use)
    - Statistics tracking (hits, misses, expirations, evictions)

    Usage:
        cache = CacheStore(max_size=500)
        key = CacheStore.generate_key("forecast", 47.6, -122.3)

        cached = cache.get(key)
        if cached is not None:
            return cached

        data = await fetch_forecast(...)
        cache.set(key, data, ttl_seconds=7200)
    """

    def __init__(
        self,
        max_size: Optional[int] = None,
        enabled: Optional[bool] = None,
        default_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        """
        Initialize the cache.

        Args:
            max_size: Entry limit. Defaults to policy/CACHE_MAX_SIZE; 0 disables.
            enabled: Global switch. Defaults to policy/CACHE_ENABLED.
            default_ttl: TTL in seconds used when set() gets none.
            clock: Monotonic time source in seconds
            name: Label used in logs
        """
        settings = load_cache_settings()
        self.max_size = settings.max_size if max_size is None else max_size
        self.enabled = settings.enabled if enabled is None else enabled
        self.default_ttl = settings.default_ttl if default_ttl is None else default_ttl
        self.name = name
        self._clock = clock

        self._cache: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "expired": 0,
            "evictions": 0,
        }

        logger.info(
            f"CacheStore[{name}] initialized "
            f"(enabled={self.enabled}, max_size={self.max_size})"
        )

    @property
    def active(self) -> bool:
        """False when caching is disabled or sized to zero."""
        return self.enabled and self.max_size > 0

    @staticmethod
    def generate_key(prefix: str, *parts: Any) -> str:
        """
        Generate a deterministic cache key from a prefix and parts.

        Parts are serialized as canonical JSON (sorted object keys,
        compact separators), so equal inputs in the same order always
        give the same key and differently-typed inputs never collide.

        Args:
            prefix: Data domain prefix (e.g., "forecast", "geocode")
            *parts: JSON-serializable values; dates, datetimes and enums allowed

        Returns:
            Cache key string

        Raises:
            TypeError: If a part cannot be serialized
        """
        serialized = json.dumps(
            list(parts),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=_encode_part,
        )
        key = f"{prefix}:{serialized}"

        # Use hash for very long keys
        if len(key) > MAX_KEY_LENGTH:
            key_hash = hashlib.md5(key.encode("utf-8")).hexdigest()
            return f"{prefix}:{key_hash}"

        return key

    def get(self, key: str, default: Optional[T] = None) -> Optional[T]:
        """
        Retrieve a value if it exists and hasn't expired.

        Args:
            key: Cache key
            default: Returned on miss

        Returns:
            Cached value or default if not found/expired
        """
        if not self.active:
            return default

        entry = self._cache.get(key)

        if entry is None:
            self._stats["misses"] += 1
            logger.debug(f"Cache MISS: {key}")
            return default

        if entry.is_expired(self._clock()):
            self._stats["expired"] += 1
            self._stats["misses"] += 1
            logger.debug(f"Cache EXPIRED: {key}")
            del self._cache[key]
            return default

        entry.touch()
        self._cache.move_to_end(key)
        self._stats["hits"] += 1
        logger.debug(f"Cache HIT: {key} (hits={entry.hits})")
        return entry.value

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        """
        Store a value with a TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: TTL in seconds; math.inf never expires; None uses the default
        """
        if not self.active:
            return

        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        now = self._clock()

        if key in self._cache:
            self._cache.move_to_end(key)
        else:
            while len(self._cache) >= self.max_size:
                evicted_key, _ = self._cache.popitem(last=False)
                self._stats["evictions"] += 1
                logger.debug(f"Cache EVICT (LRU): {evicted_key}")

        self._cache[key] = CacheEntry(
            key=key,
            value=value,
            expires_at=now + ttl,
            created_at=now,
        )

        logger.debug(f"Cache SET: {key} (TTL={ttl}s)")

    def invalidate(self, key: str) -> bool:
        """
        Manually invalidate a cache entry.

        Returns:
            True if entry was removed, False if not found
        """
        if key in self._cache:
            del self._cache[key]
            self._stats["evictions"] += 1
            logger.debug(f"Cache INVALIDATE: {key}")
            return True
        return False

    def clear(self) -> int:
        """
        Clear all cache entries.

        Returns:
            Number of entries cleared
        """
        count = len(self._cache)
        self._cache.clear()
        logger.info(f"Cache[{self.name}] CLEARED: {count} entries")
        return count

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries from cache.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [
            key for key, entry in self._cache.items()
            if entry.is_expired(now)
        ]

        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            self._stats["expired"] += len(expired_keys)
            logger.info(f"Cache CLEANUP: {len(expired_keys)} expired entries")

        return len(expired_keys)

    def __contains__(self, key: str) -> bool:
        entry = self._cache.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        return {
            **self._stats,
            "size": len(self._cache),
            "max_size": self.max_size,
            "enabled": self.enabled,
        }

    @property
    def size(self) -> int:
        """Get current cache size."""
        return len(self._cache)

    def get_cache_info(self) -> dict:
        """Get detailed cache information for debugging."""
        now = self._clock()
        entries = []

        for key, entry in self._cache.items():
            remaining = entry.expires_at - now
            entries.append({
                "key": key,
                "hits": entry.hits,
                "expires_in_seconds": None if math.isinf(remaining) else max(0.0, remaining),
                "is_expired": entry.is_expired(now),
            })

        return {
            "stats": self.stats,
            "entries": entries,
        }
