# src/search/cache.py
from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any
from urllib.parse import quote

from src.config import SEARCH_CACHE_ENABLED, SEARCH_CACHE_TTL_SECONDS
from src.search.models import SearchQuery, SearchResponse

log = logging.getLogger(__name__)

# Default TTL: 5 minutes. Bounds staleness when an invalidation is missed.
DEFAULT_TTL_SECONDS = SEARCH_CACHE_TTL_SECONDS

# Cache key version. Bump when changing key construction or payload shape.
CACHE_KEY_VERSION = "v1"
KEY_PREFIX = "search"

_SCAN_COUNT = 500
_DELETE_BATCH = 500


def _hash_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _tenant_namespace(tenant_id: str) -> str:
    """
    Encode a tenant id for use inside a Redis key.

    Percent-encoding every reserved character keeps ":" out of the tenant
    segment (so tenant "a" never prefixes tenant "a:b") and neutralizes glob
    characters (* ? [ ]) that would otherwise leak into invalidation patterns.
    """
    return quote(str(tenant_id), safe="")


def build_fingerprint(query: SearchQuery) -> str:
    """
    Stable hash over the canonical (text, filters, pagination, options) tuple.

    json.dumps(sort_keys=True) makes the digest independent of mapping
    insertion order; skills are already sorted by SearchFilters.to_dict().
    """
    raw = json.dumps(query.canonical(), sort_keys=True, separators=(",", ":"))
    return _hash_hex(raw)


def build_cache_key(tenant_id: str, query: SearchQuery) -> str:
    return (
        f"{KEY_PREFIX}:{CACHE_KEY_VERSION}:{_tenant_namespace(tenant_id)}:"
        f"{build_fingerprint(query)}"
    )


def tenant_key_pattern(tenant_id: str) -> str:
    return f"{KEY_PREFIX}:{CACHE_KEY_VERSION}:{_tenant_namespace(tenant_id)}:*"


def _get_redis_client() -> Any | None:
    """
    Best-effort helper to obtain a Redis client.

    The returned object is expected to support:
      - get(key: str) -> bytes | str | None
      - setex(key: str, ttl: int, value: str | bytes) -> Any
      - scan_iter(match: str, count: int) -> Iterable[bytes | str]
      - delete(*keys) -> int
    """
    try:
        from src.redis_conn import get_redis
    except Exception:
        return None

    try:
        return get_redis()
    except Exception as exc:
        log.warning("search cache disabled: could not create Redis client: %s", exc)
        return None


class SearchCacheManager:
    """
    Tenant-scoped cache of full SearchResponse payloads.

    Cache policy:

      - Key: search:<version>:<tenant>:<fingerprint>; every key carries the
        tenant, and invalidation only ever matches that tenant's keys.
      - TTL is DEFAULT_TTL_SECONDS (5 minutes) by default.
      - Best-effort: any Redis or (de)serialization error is logged and
        treated as a miss / skipped write. Caching never fails a search.
    """

    def __init__(
        self,
        redis_client: Any | None = None,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        enabled: bool = SEARCH_CACHE_ENABLED,
        client_factory: Callable[[], Any | None] | None = _get_redis_client,
    ) -> None:
        self._client = redis_client
        self._client_factory = client_factory
        self.ttl_seconds = ttl_seconds
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled and self.ttl_seconds > 0

    def _redis(self) -> Any | None:
        if not self.enabled:
            return None
        if self._client is None and self._client_factory is not None:
            self._client = self._client_factory()
            # Only try the factory once per manager.
            self._client_factory = None
        return self._client

    def get(self, tenant_id: str, query: SearchQuery) -> SearchResponse | None:
        """
        Return the cached response (with from_cache=True) or None on miss.
        """
        client = self._redis()
        if client is None:
            return None

        key = build_cache_key(tenant_id, query)
        try:
            cached = client.get(key)
        except Exception as exc:
            log.warning("search cache read failed for tenant %s: %s", tenant_id, exc)
            return None

        if cached is None:
            log.debug("search cache miss tenant=%s key=%s", tenant_id, key)
            return None

        try:
            if isinstance(cached, bytes):
                cached = cached.decode("utf-8")
            response = SearchResponse.from_dict(json.loads(cached))
        except Exception as exc:
            # Undecodable entry: treat as a miss; the next write overwrites it.
            log.warning("search cache entry %s could not be decoded: %s", key, exc)
            return None

        log.debug("search cache hit tenant=%s key=%s", tenant_id, key)
        return replace(response, from_cache=True)

    def set(self, tenant_id: str, query: SearchQuery, response: SearchResponse) -> bool:
        """
        Store a response. Returns True when the write reached the store.
        """
        client = self._redis()
        if client is None:
            return False

        key = build_cache_key(tenant_id, query)
        try:
            payload = json.dumps(
                replace(response, from_cache=False).to_dict(),
                separators=(",", ":"),
            )
            client.setex(key, self.ttl_seconds, payload)
        except Exception as exc:
            log.warning("search cache write failed for tenant %s: %s", tenant_id, exc)
            return False
        return True

    def invalidate_tenant(self, tenant_id: str) -> int:
        """
        Delete every cached search for one tenant. Returns the number of keys
        removed (0 when caching is unavailable or the store errors).

        Called by employee create / update / delete handlers.
        """
        client = self._redis()
        if client is None:
            return 0

        pattern = tenant_key_pattern(tenant_id)
        removed = 0
        try:
            batch: list[Any] = []
            for key in client.scan_iter(match=pattern, count=_SCAN_COUNT):
                batch.append(key)
                if len(batch) >= _DELETE_BATCH:
                    removed += int(client.delete(*batch) or 0)
                    batch = []
            if batch:
                removed += int(client.delete(*batch) or 0)
        except Exception as exc:
            log.warning("search cache invalidation failed for tenant %s: %s", tenant_id, exc)
            return removed

        log.info("search cache invalidated for tenant %s (%d entries)", tenant_id, removed)
        return removed
