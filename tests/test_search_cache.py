# tests/test_search_cache.py
from __future__ import annotations

from typing import Any

import pytest

from src.search.cache import (
    SearchCacheManager,
    build_cache_key,
    build_fingerprint,
    tenant_key_pattern,
)
from src.search.models import Candidate, RankedResult, SearchResponse
from src.search.normalize import normalize_query


def _response(query: str = "jane") -> SearchResponse:
    cand = Candidate(
        employee_id="e1",
        first_name="Jane",
        last_name="Doe",
        email="jane@example.com",
        raw_score=1.0,
        strategy="exact",
        title="Engineer",
        skills=("python",),
        matched_fields=("first_name",),
    )
    return SearchResponse(
        results=(RankedResult(cand, 1.0),),
        total=1,
        page=1,
        page_size=20,
        has_more=False,
        query=query,
        execution_time_ms=3.2,
        suggestions=("janet",),
    )


class BrokenRedis:
    """Redis stand-in whose every call raises."""

    def get(self, key: str) -> Any:
        raise ConnectionError("redis down")

    def setex(self, key: str, ttl: int, value: str) -> Any:
        raise ConnectionError("redis down")

    def scan_iter(self, match: str, count: int) -> Any:
        raise ConnectionError("redis down")


# ---------------------------------------------------------------------------
# Keys and fingerprints
# ---------------------------------------------------------------------------


def test_fingerprint_ignores_mapping_insertion_order() -> None:
    a = normalize_query(
        {
            "query": "jane",
            "filters": {"department": "Sales", "skills": ["sql", "python"]},
            "pagination": {"page": 1, "page_size": 20},
        }
    )
    b = normalize_query(
        {
            "pagination": {"page_size": 20, "page": 1},
            "filters": {"skills": ["python", "sql"], "department": "Sales"},
            "query": "jane",
        }
    )
    assert build_fingerprint(a) == build_fingerprint(b)


def test_fingerprint_changes_with_any_query_component() -> None:
    base = build_fingerprint(normalize_query("jane"))
    assert build_fingerprint(normalize_query("janet")) != base
    assert build_fingerprint(normalize_query({"query": "jane", "pagination": {"page": 2}})) != base
    assert (
        build_fingerprint(normalize_query({"query": "jane", "filters": {"title": "cto"}})) != base
    )
    assert (
        build_fingerprint(normalize_query({"query": "jane", "options": {"include_inactive": True}}))
        != base
    )


def test_cache_key_is_tenant_scoped_and_escaped() -> None:
    q = normalize_query("jane")
    key = build_cache_key("acme", q)
    assert key.startswith("search:v1:acme:")
    assert key.endswith(build_fingerprint(q))

    # ':' and glob characters never appear raw in the tenant segment.
    assert build_cache_key("a:b", q).startswith("search:v1:a%3Ab:")
    assert tenant_key_pattern("*") == "search:v1:%2A:*"


# ---------------------------------------------------------------------------
# get / set
# ---------------------------------------------------------------------------


def test_miss_then_hit_round_trip(fake_redis) -> None:
    cache = SearchCacheManager(fake_redis, ttl_seconds=300)
    q = normalize_query("jane")

    assert cache.get("acme", q) is None
    assert cache.set("acme", q, _response()) is True

    hit = cache.get("acme", q)
    assert hit is not None
    assert hit.from_cache is True
    assert hit.results == _response().results
    assert hit.suggestions == ("janet",)

    ttl = fake_redis.ttl(build_cache_key("acme", q))
    assert 0 < ttl <= 300


def test_entries_are_not_shared_between_tenants(fake_redis) -> None:
    cache = SearchCacheManager(fake_redis)
    q = normalize_query("jane")
    cache.set("acme", q, _response())
    assert cache.get("globex", q) is None


def test_stored_payload_is_never_marked_from_cache(fake_redis) -> None:
    cache = SearchCacheManager(fake_redis)
    q = normalize_query("jane")
    cache.set("acme", q, _response())
    raw = fake_redis.get(build_cache_key("acme", q))
    assert b'"from_cache":false' in raw


def test_undecodable_entry_is_a_miss(fake_redis) -> None:
    cache = SearchCacheManager(fake_redis)
    q = normalize_query("jane")
    fake_redis.set(build_cache_key("acme", q), b"{not json")
    assert cache.get("acme", q) is None


def test_redis_errors_are_soft() -> None:
    cache = SearchCacheManager(BrokenRedis())
    q = normalize_query("jane")
    assert cache.get("acme", q) is None
    assert cache.set("acme", q, _response()) is False
    assert cache.invalidate_tenant("acme") == 0


def test_disabled_cache_never_touches_redis(fake_redis) -> None:
    q = normalize_query("jane")
    for cache in (
        SearchCacheManager(fake_redis, enabled=False),
        SearchCacheManager(fake_redis, ttl_seconds=0),
    ):
        assert cache.enabled is False
        assert cache.set("acme", q, _response()) is False
        assert cache.get("acme", q) is None
    assert fake_redis.keys("*") == []


def test_missing_client_disables_cache_quietly() -> None:
    calls: list[int] = []

    def factory() -> None:
        calls.append(1)
        return None

    cache = SearchCacheManager(client_factory=factory)
    q = normalize_query("jane")
    assert cache.get("acme", q) is None
    assert cache.set("acme", q, _response()) is False
    # Factory is only consulted once per manager.
    assert calls == [1]


# ---------------------------------------------------------------------------
# Invalidation
# ---------------------------------------------------------------------------


def test_invalidate_only_touches_one_tenant(fake_redis) -> None:
    cache = SearchCacheManager(fake_redis)
    queries = [normalize_query(text) for text in ("jane", "john", "sales")]
    for tenant in ("a", "a:b", "ab", "*"):
        for q in queries:
            cache.set(tenant, q, _response())

    assert cache.invalidate_tenant("a") == 3
    for q in queries:
        assert cache.get("a", q) is None
        assert cache.get("a:b", q) is not None
        assert cache.get("ab", q) is not None

    assert cache.invalidate_tenant("*") == 3
    assert cache.get("a:b", queries[0]) is not None
    assert cache.get("*", queries[0]) is None


@pytest.mark.parametrize("n", [0, 1, 1201])
def test_invalidate_counts_every_key(fake_redis, n: int) -> None:
    for i in range(n):
        fake_redis.set(f"search:v1:acme:{i:064x}", b"{}")
    fake_redis.set("search:v1:other:" + "0" * 64, b"{}")

    cache = SearchCacheManager(fake_redis)
    assert cache.invalidate_tenant("acme") == n
    assert fake_redis.keys("search:v1:acme:*") == []
    assert len(fake_redis.keys("search:v1:other:*")) == 1
