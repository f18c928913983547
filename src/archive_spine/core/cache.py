"""
Caching abstraction with a transient and a lazy (shared) tier.

Provides a unified ``CacheBackend`` protocol with in-memory and Redis
implementations. The archiving layer uses the transient tier for
process-lifetime lookups (registered site lists) and the lazy tier for
shared, TTL-bound lookups (minimum activity time per site).

Manifesto:
    Freshness checks against raw activity tables are expensive. Caching
    their answers is only safe when every entry has an explicit lifetime
    and an expired entry is recomputed, never served.

    - **Protocol-based:** CacheBackend defines the contract
    - **Two tiers:** transient (per process) and lazy (shared, TTL-bound)
    - **Never stale:** Expiry is checked on every read
    - **Testable time:** InMemoryCache takes an injectable clock

Architecture:
    ::

        CacheBackend (Protocol)
        ├── InMemoryCache  : single-process, bounded LRU, TTL
        └── RedisCache     : shared across worker processes, TTL via SETEX

        CacheTiers
        ├── transient  : lifetime of the process, no TTL by default
        └── lazy       : shared, explicit TTL per entry

        API: get(key) → value | None
             set(key, value, ttl_seconds=None)
             delete(key)
             exists(key) → bool
             clear()

Examples:
    >>> from archive_spine.core.cache import InMemoryCache
    >>> cache = InMemoryCache(max_size=1000, default_ttl_seconds=3600)
    >>> cache.set("site:1", {"min_ts": "2024-03-10T08:00:00+00:00"})
    >>> cache.get("site:1")
    {'min_ts': '2024-03-10T08:00:00+00:00'}

Guardrails:
    ❌ DON'T: Store ``None`` as a cached value (indistinguishable from a miss)
    ✅ DO: Wrap nullable answers in a dict, e.g. ``{"min_ts": None}``

    ❌ DON'T: Use InMemoryCache as the lazy tier across worker processes
    ✅ DO: Use RedisCache when several workers share the lazy tier

Tags:
    cache, caching, redis, in-memory, ttl, tiers
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol


class CacheBackend(Protocol):
    """Protocol for cache backend implementations.

    Keys are strings, values are JSON-serializable.
    """

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if missing or expired."""
        ...

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value. ``ttl_seconds=None`` uses the backend default."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. No-op if the key does not exist."""
        ...

    def exists(self, key: str) -> bool:
        """Return ``True`` if the key exists and has not expired."""
        ...

    def clear(self) -> None:
        """Remove all keys."""
        ...


# ------------------------------------------------------------------ #
# In-Memory Cache
# ------------------------------------------------------------------ #


class InMemoryCache:
    """Bounded in-memory cache with TTL support.

    Uses LRU eviction when ``max_size`` is reached. An entry is considered
    expired once ``clock() >= expires_at``; expired entries are dropped
    on access.

    Attributes:
        max_size: Maximum number of keys before LRU eviction.
        default_ttl_seconds: Default TTL for keys (``None`` → no expiry).

    Example:
        cache = InMemoryCache(max_size=500, default_ttl_seconds=None)
        cache.set("sites_without_tracker", [3, 4])
    """

    def __init__(
        self,
        *,
        max_size: int = 10_000,
        default_ttl_seconds: int | None = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._store: dict[str, tuple[Any, float | None]] = {}
        self._access_order: list[str] = []
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def _touch(self, key: str) -> None:
        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        with self._lock:
            if key not in self._store:
                return None

            value, expires_at = self._store[key]
            if self._expired(expires_at):
                self.delete(key)
                return None

            self._touch(key)
            return value

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL.

        A TTL of zero or less means the value is already stale: it is not
        stored, and any previous value under ``key`` is dropped.
        """
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        if ttl is not None and ttl <= 0:
            self.delete(key)
            return
        expires_at = (self._clock() + ttl) if ttl is not None else None

        with self._lock:
            # Evict LRU if at capacity
            if key not in self._store and len(self._store) >= self._max_size:
                if self._access_order:
                    lru_key = self._access_order.pop(0)
                    self._store.pop(lru_key, None)

            self._store[key] = (value, expires_at)
            self._touch(key)

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        with self._lock:
            self._store.pop(key, None)
            if key in self._access_order:
                self._access_order.remove(key)

    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        with self._lock:
            if key not in self._store:
                return False

            _, expires_at = self._store[key]
            if self._expired(expires_at):
                self.delete(key)
                return False

            return True

    def clear(self) -> None:
        """Remove all keys."""
        with self._lock:
            self._store.clear()
            self._access_order.clear()

    def size(self) -> int:
        """Return current number of cached keys."""
        return len(self._store)


# ------------------------------------------------------------------ #
# Redis Cache
# ------------------------------------------------------------------ #


class RedisCache:
    """Redis-backed cache shared by every worker process.

    Expiry is enforced by Redis itself (``SETEX``), so an expired key is
    simply absent on the next read.

    Example:
        cache = RedisCache("redis://localhost:6379/0", default_ttl_seconds=3600)
        cache.set("archiving:min_activity:1", {"min_ts": None})
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        default_ttl_seconds: int | None = 3600,
        key_prefix: str = "",
    ):
        import redis

        self._client = redis.from_url(url, decode_responses=False)
        self._default_ttl = default_ttl_seconds
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        raw = self._client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL (zero or less: not stored)."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        if ttl is not None and ttl <= 0:
            self._client.delete(self._key(key))
            return
        serialized = json.dumps(value)

        if ttl is not None:
            self._client.setex(self._key(key), ttl, serialized)
        else:
            self._client.set(self._key(key), serialized)

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        self._client.delete(self._key(key))

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return bool(self._client.exists(self._key(key)))

    def clear(self) -> None:
        """Remove every key under this cache's prefix.

        Without a prefix this flushes the whole Redis database.
        """
        if not self._prefix:
            self._client.flushdb()
            return
        for key in self._client.scan_iter(match=f"{self._prefix}*"):
            self._client.delete(key)


# ------------------------------------------------------------------ #
# Tiers
# ------------------------------------------------------------------ #


@dataclass
class CacheTiers:
    """The two cache tiers handed to every archiving component.

    Attributes:
        transient: Lives as long as the process. Entries written without a
            TTL stay until explicitly deleted.
        lazy: Shared between processes where the backend allows it. Entries
            always carry an explicit TTL.
    """

    transient: CacheBackend = field(
        default_factory=lambda: InMemoryCache(default_ttl_seconds=None)
    )
    lazy: CacheBackend = field(
        default_factory=lambda: InMemoryCache(default_ttl_seconds=3600)
    )

    @classmethod
    def with_redis(cls, url: str, *, key_prefix: str = "archive_spine:") -> CacheTiers:
        """Transient tier in memory, lazy tier in Redis."""
        return cls(
            transient=InMemoryCache(default_ttl_seconds=None),
            lazy=RedisCache(url, key_prefix=key_prefix),
        )


__all__ = [
    "CacheBackend",
    "CacheTiers",
    "InMemoryCache",
    "RedisCache",
]
