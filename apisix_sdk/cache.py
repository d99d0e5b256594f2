"""
In-memory response caching for idempotent Admin/Control reads

Every method is synchronous so that a lookup or store can never be interleaved
with another task on the event loop.
"""
import copy
import json
import time
from typing import Any, Callable, Dict, Optional, Union

from core.logging import get_logger

from .types import CacheEntry

DEFAULT_TTL = 30.0


class ResponseCache:
    """TTL-bounded memoization of GET responses, owned by one client"""

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.logger = get_logger("apisix.cache", domain="apisix")

        # Hit/miss tracking
        self._hits = 0
        self._misses = 0

    @staticmethod
    def generate_key(method: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        """
        Generate a cache key from method, endpoint and query parameters

        Args:
            method: HTTP method
            endpoint: Endpoint path or absolute URL
            params: Query parameters, any ordering

        Returns:
            Cache key string
        """
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        params_str = json.dumps(clean, sort_keys=True, separators=(",", ":"), default=str)
        return f"{(method or 'GET').upper()}:{endpoint}:{params_str}"

    def lookup(self, key: str) -> Optional[Any]:
        """Return a copy of the cached value, or None when absent or expired"""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._misses += 1
            self.logger.debug(f"Cache entry expired: {key}")
            return None

        self._hits += 1
        self.logger.debug(f"Cache hit: {key}")
        return copy.deepcopy(entry.value)

    def store(self, key: str, value: Any) -> None:
        """Write (or rewrite) a private copy of value with a fresh expiry"""
        self._entries[key] = CacheEntry(value=copy.deepcopy(value), expires_at=self._clock() + self.ttl)

    def invalidate(self, key: str) -> bool:
        """Remove a single key, returning whether it was present"""
        return self._entries.pop(key, None) is not None

    def invalidate_matching(self, match: Union[str, Callable[[str], bool]]) -> int:
        """
        Bulk-remove keys

        Args:
            match: Substring to look for in keys (usually an endpoint), or a predicate on keys

        Returns:
            Number of keys removed
        """
        predicate = match if callable(match) else (lambda key: match in key)
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            self.logger.debug(f"Invalidated {len(doomed)} cache entries")
        return len(doomed)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics

        Returns:
            Entry counts, approximate size and hit/miss figures
        """
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if now >= entry.expires_at)
        size = 0
        for key, entry in self._entries.items():
            size += len(key) + len(json.dumps(entry.value, default=str))

        total_requests = self._hits + self._misses
        return {
            "count": len(self._entries),
            "expired_count": expired,
            "approx_byte_size": size,
            "ttl_seconds": self.ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total_requests, 3) if total_requests else 0,
        }

    def reset_stats(self) -> None:
        """Reset hit/miss statistics"""
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

