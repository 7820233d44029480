"""TTL caches for snapshots and market context."""

import os
from typing import Any

import diskcache

CACHE_DIR = os.environ.get("CACHE_DIR", ".cache/stock-decision")
SNAPSHOT_TTL = int(os.environ.get("SNAPSHOT_TTL", "120"))  # 2 minutes
FALLBACK_SNAPSHOT_TTL = 30
MARKET_CONTEXT_TTL = int(os.environ.get("MARKET_CONTEXT_TTL", str(5 * 60 * 60)))  # 5 hours


class TTLCache:
    """
    Namespaced diskcache with per-entry expiry.

    Values are replaced wholesale on write, never patched in place.
    """

    def __init__(
        self,
        namespace: str,
        default_ttl: int,
        cache_dir: str | None = None,
    ):
        base_dir = cache_dir if cache_dir is not None else CACHE_DIR
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.cache: diskcache.Cache = diskcache.Cache(os.path.join(base_dir, namespace))

    def get(self, key: str) -> Any | None:
        """Get a live entry, or None if missing or expired."""
        return self.cache.get(key)

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store value under key with ttl seconds (default TTL if None)."""
        expire = ttl if ttl is not None else self.default_ttl
        self.cache.set(key, value, expire=expire)

    def delete(self, key: str) -> bool:
        """Remove key. Returns True if it existed."""
        return self.cache.delete(key)

    def __contains__(self, key: str) -> bool:
        return key in self.cache

    def clear(self) -> None:
        """Clear every entry in this namespace."""
        self.cache.clear()

    def close(self) -> None:
        self.cache.close()


def snapshot_cache(cache_dir: str | None = None) -> TTLCache:
    return TTLCache("snapshots", SNAPSHOT_TTL, cache_dir)


def market_context_cache(cache_dir: str | None = None) -> TTLCache:
    return TTLCache("market", MARKET_CONTEXT_TTL, cache_dir)
