"""Response cache for idempotent API reads.

Cached values are decoded JSON bodies keyed by request shape. The cache is a
pure performance layer: dropping it must never change observable behaviour,
only latency.

Concurrency Model:
    ResponseCache uses threading.Lock for thread-safe access and performs
    deepcopy outside the lock to minimise contention. Concurrent async
    callers may race on get/set; a lost race costs one extra network call.

Expiry is lazy: an expired entry is dropped the next time it is read.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import threading
import urllib.parse
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 200


class TTLTier(Enum):
    """Named cache durations, chosen per endpoint by data volatility."""

    NONE = 0
    SHORT = 60
    MEDIUM = 120
    DEFAULT = 300
    LONG = 900
    VERY_LONG = 1800

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.value)


@dataclass(frozen=True)
class CacheKey:
    """Unique cache key for a request.

    Query parameters are sorted and the JSON body is reduced to a digest,
    so logically identical requests map to the same key. ``api`` names the
    REST root the path is relative to.
    """

    method: str
    path: str
    api: str = "core"
    params: tuple[tuple[str, str], ...] = ()
    body_digest: str = ""

    def __str__(self) -> str:
        key = f"{self.method} {self.api}:{self.path}"
        if self.params:
            key += "?" + urllib.parse.urlencode(self.params)
        if self.body_digest:
            key += f"#{self.body_digest}"
        return key

    @classmethod
    def for_request(
        cls,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        api: str = "core",
    ) -> CacheKey:
        """Build a key from request parts."""
        normalized_params = tuple(
            sorted((str(k), _param_value(v)) for k, v in (params or {}).items() if v is not None)
        )
        digest = ""
        if body is not None:
            encoded = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
            digest = hashlib.sha256(encoded.encode()).hexdigest()[:16]
        return cls(
            method=method.upper(),
            path=path,
            api=api,
            params=normalized_params,
            body_digest=digest,
        )


def _param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


@dataclass
class CachedResponse:
    """Cached response body with expiration metadata. All timestamps use UTC."""

    value: Any
    cached_at: datetime
    expires_at: datetime
    tags: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_expired(self) -> bool:
        """Check if this cache entry has expired."""
        return datetime.now(UTC) > self.expires_at

    @property
    def ttl_remaining(self) -> timedelta:
        """Get remaining time-to-live for this entry."""
        remaining = self.expires_at - datetime.now(UTC)
        return remaining if remaining.total_seconds() > 0 else timedelta(0)


def _path_matches(path: str, prefix: str) -> bool:
    """Segment-aware prefix match: /issue/A-1 matches /issue/A-1/comment, not /issue/A-10."""
    if path == prefix:
        return True
    return path.startswith(prefix) and path[len(prefix)] in "/?"


class ResponseCache:
    """In-memory response cache with tiered TTLs, tag invalidation and LRU eviction."""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        self.max_size = max_size
        self._cache: OrderedDict[CacheKey, CachedResponse] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: CacheKey) -> Any | None:
        """Retrieve a cached value if present and unexpired.

        Returns a deep copy to prevent callers from mutating cached data.
        """
        with self._lock:
            cached = self._cache.get(key)
            if cached is None:
                self._misses += 1
                return None

            if cached.is_expired:
                del self._cache[key]
                self._misses += 1
                logger.debug(f"Cache expired for {key}")
                return None

            self._cache.move_to_end(key)
            self._hits += 1
            logger.debug(f"Cache hit for {key}")

        return copy.deepcopy(cached.value)

    def set(
        self,
        key: CacheKey,
        value: Any,
        ttl: TTLTier | timedelta = TTLTier.DEFAULT,
        tags: Iterable[str] = (),
    ) -> None:
        """Store a value under the given TTL.

        A zero TTL (TTLTier.NONE) stores nothing.
        """
        effective_ttl = ttl.duration if isinstance(ttl, TTLTier) else ttl
        if ttl is TTLTier.NONE:
            return

        now = datetime.now(UTC)
        cached = CachedResponse(
            value=copy.deepcopy(value),
            cached_at=now,
            expires_at=now + effective_ttl,
            tags=frozenset(tags),
        )

        with self._lock:
            if key in self._cache:
                del self._cache[key]

            while self.max_size > 0 and len(self._cache) >= self.max_size:
                oldest_key, _ = self._cache.popitem(last=False)
                self._evictions += 1
                logger.debug(f"LRU evicted: {oldest_key}")

            self._cache[key] = cached
            logger.debug(f"Cached {key} with TTL {effective_ttl}")

    def invalidate(self, prefix_or_tag: str) -> int:
        """Remove every entry whose path starts with, or whose tags contain, the token.

        Returns:
            Number of entries removed
        """
        with self._lock:
            doomed = [
                key
                for key, cached in self._cache.items()
                if prefix_or_tag in cached.tags or _path_matches(key.path, prefix_or_tag)
            ]
            for key in doomed:
                del self._cache[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cache entries for {prefix_or_tag!r}")
        return len(doomed)

    def clear(self) -> None:
        """Clear all cached responses."""
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            logger.debug(f"Cleared {count} cache entries")

    def size(self) -> int:
        """Get current number of cached entries."""
        with self._lock:
            return len(self._cache)

    def stats(self) -> dict[str, int]:
        """Get hit/miss/eviction counters and current size."""
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "size": len(self._cache),
            }


__all__ = [
    "DEFAULT_MAX_SIZE",
    "CacheKey",
    "CachedResponse",
    "ResponseCache",
    "TTLTier",
]
