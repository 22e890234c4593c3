# tests/test_search_engine.py
from __future__ import annotations

import logging

import pytest
from conftest import SpyStore, make_row

from src.exceptions import SearchValidationError
from src.search.cache import SearchCacheManager
from src.search.engine import SearchEngine, build_engine


class SpyCache:
    """Records every cache call; never hits."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def get(self, tenant_id, query):
        self.calls.append("get")
        return None

    def set(self, tenant_id, query, response):
        self.calls.append("set")
        return True

    def invalidate_tenant(self, tenant_id):
        self.calls.append("invalidate")
        return 0


@pytest.fixture
def directory(directory_db):
    seed = directory_db.seed
    seed("acme", "e1", "John", "Smith", title="Software Engineer", department="Engineering")
    seed("acme", "e2", "Jonathan", "Doe", title="Account Executive", department="Sales")
    seed("acme", "e3", "Maria", "Garcia", title="Designer", department="Design")
    seed("globex", "g1", "John", "Smith", title="CEO", department="Executive")
    return directory_db


def test_exact_match_outranks_fuzzy_match(directory) -> None:
    engine = SearchEngine(directory.store)
    resp = engine.search("acme", "John")

    ids = [r.employee_id for r in resp.results]
    assert ids[:2] == ["e1", "e2"]
    assert "g1" not in ids

    john, jonathan = resp.results[:2]
    assert john.strategy == "exact"
    assert john.weighted_rank == pytest.approx(1.0)
    assert jonathan.strategy == "fuzzy"
    assert jonathan.weighted_rank < john.weighted_rank
    assert resp.query == "John"
    assert resp.from_cache is False


def test_filters_flow_through_the_engine(directory) -> None:
    engine = SearchEngine(directory.store)
    resp = engine.search("acme", {"query": "jo", "filters": {"department": "sales"}})
    assert [r.employee_id for r in resp.results] == ["e2"]


def test_fuzzy_failure_still_returns_other_strategies(caplog) -> None:
    store = SpyStore(
        exact=[make_row("e1", "John", "Smith", score=4.0)],
        partial=[make_row("e1", "John", "Smith"), make_row("e7", "Johnson", "Lee")],
    )
    store.fail["fuzzy"] = RuntimeError("boom")
    engine = SearchEngine(store)

    with caplog.at_level(logging.WARNING):
        resp = engine.search("acme", "john")

    assert [r.employee_id for r in resp.results] == ["e1", "e7"]
    assert [r.strategy for r in resp.results] == ["exact", "partial"]
    assert "fuzzy" in caplog.text


def test_every_strategy_failing_gives_empty_results() -> None:
    store = SpyStore()
    for name in ("exact", "fuzzy", "partial"):
        store.fail[name] = RuntimeError(name)
    resp = SearchEngine(store).search("acme", "john")
    assert resp.results == ()
    assert resp.total == 0


def test_degraded_results_are_not_cached(fake_redis) -> None:
    store = SpyStore(exact=[make_row("e1", "John", "Smith", score=2.0)])
    for name in ("exact", "fuzzy", "partial"):
        store.fail[name] = RuntimeError(name)
    engine = SearchEngine(store, SearchCacheManager(fake_redis))

    first = engine.search("acme", "john")
    assert first.total == 0
    assert fake_redis.keys("search:*") == []

    store.fail.clear()
    second = engine.search("acme", "john")
    assert second.from_cache is False
    assert second.total == 1

    # Once every strategy succeeds the response is cached as usual.
    assert engine.search("acme", "john").from_cache is True


def test_single_strategy_failure_is_not_cached(fake_redis) -> None:
    store = SpyStore(exact=[make_row("e1", "John", "Smith", score=2.0)])
    store.fail["partial"] = TimeoutError("slow disk")
    engine = SearchEngine(store, SearchCacheManager(fake_redis))

    assert engine.search("acme", "john").total == 1
    assert engine.search("acme", "john").from_cache is False


def test_whitespace_query_touches_neither_store_nor_cache() -> None:
    store = SpyStore()
    cache = SpyCache()
    engine = SearchEngine(store, cache)  # type: ignore[arg-type]

    resp = engine.search("acme", "   ")

    assert resp.results == ()
    assert resp.total == 0
    assert resp.has_more is False
    assert store.calls == []
    assert cache.calls == []


def test_invalid_query_raises_before_any_io() -> None:
    store = SpyStore()
    cache = SpyCache()
    engine = SearchEngine(store, cache)  # type: ignore[arg-type]
    with pytest.raises(SearchValidationError):
        engine.search("acme", "x" * 101)
    assert store.calls == []
    assert cache.calls == []


def test_results_are_deterministic(directory) -> None:
    engine = SearchEngine(directory.store)
    first = engine.search("acme", "jo")
    second = engine.search("acme", "jo")
    assert first.results == second.results
    assert first.total == second.total


def test_second_identical_search_is_served_from_cache(fake_redis) -> None:
    store = SpyStore(exact=[make_row("e1", "John", "Smith", score=1.0)])
    engine = SearchEngine(store, SearchCacheManager(fake_redis))

    first = engine.search("acme", "john")
    calls_after_first = len(store.calls)
    second = engine.search("acme", "john*")

    assert first.from_cache is False
    assert second.from_cache is True
    assert second.results == first.results
    assert second.total == first.total
    assert second.query == "john*"
    assert len(store.calls) == calls_after_first


def test_cache_is_per_tenant(directory, fake_redis) -> None:
    engine = SearchEngine(directory.store, SearchCacheManager(fake_redis))
    acme = engine.search("acme", "Smith")
    globex = engine.search("globex", "Smith")
    assert globex.from_cache is False
    assert acme.results[0].employee_id == "e1"
    assert "g1" not in [r.employee_id for r in acme.results]
    assert [r.employee_id for r in globex.results] == ["g1"]


def test_invalidate_forces_a_fresh_search(directory, fake_redis) -> None:
    engine = SearchEngine(directory.store, SearchCacheManager(fake_redis))
    engine.search("acme", "Maria")
    directory.seed("acme", "e4", "Marie", "Curie", title="Scientist")

    assert engine.search("acme", "Maria").from_cache is True
    assert engine.invalidate_tenant("acme") == 1

    fresh = engine.search("acme", "Maria")
    assert fresh.from_cache is False
    assert "e4" in [r.employee_id for r in fresh.results]


def test_invalidate_without_cache_is_a_noop(directory) -> None:
    assert SearchEngine(directory.store).invalidate_tenant("acme") == 0


def test_misspelled_query_returns_suggestions(directory) -> None:
    resp = SearchEngine(directory.store).search("acme", "Jhon")
    assert "John" in resp.suggestions
    assert len(resp.suggestions) <= 5


def test_slow_searches_are_logged(directory, caplog) -> None:
    engine = SearchEngine(directory.store, slow_query_ms=-1)
    with caplog.at_level(logging.WARNING, logger="src.search.engine"):
        engine.search("acme", "John")
    assert "slow search" in caplog.text


def test_engine_suggest_and_autocomplete(directory) -> None:
    engine = SearchEngine(directory.store)
    assert "John" in engine.suggest("acme", "Jhon")
    assert engine.autocomplete("acme", "jo", kind="names") == ["John", "Jonathan"]
    assert engine.autocomplete("acme", "(jo*", kind="names") == ["John", "Jonathan"]


def test_build_engine_wires_settings(directory, monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_PATH", directory.path)
    monkeypatch.setenv("SEARCH_CACHE_ENABLED", "0")
    monkeypatch.setenv("SEARCH_STRATEGY_TIMEOUT_SEC", "1.5")

    from src.config import load_settings

    engine = build_engine(load_settings())
    assert engine.strategy_timeout_sec == pytest.approx(1.5)
    assert engine.cache is not None and engine.cache.enabled is False
    assert engine.search("acme", "Garcia").results[0].employee_id == "e3"
