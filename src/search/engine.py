from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from src.config import SEARCH_SLOW_QUERY_MS, SEARCH_STRATEGY_TIMEOUT_SEC, SearchSettings
from src.search.cache import SearchCacheManager
from src.search.models import SearchQuery, SearchResponse, Strategy
from src.search.normalize import normalize_query, sanitize_query
from src.search.ranking import merge_candidates
from src.search.response import build_response, empty_response
from src.search.store import EmployeeStore, SqliteEmployeeStore
from src.search.strategies import StrategyRunner, run_strategies
from src.search.suggestions import MAX_SUGGESTIONS, autocomplete, suggest

log = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 3)


class SearchEngine:
    """
    Ranked, multi-strategy employee search for one deployment.

    Pipeline for search():

      normalize -> cache lookup -> [miss] exact / fuzzy / partial in parallel
      -> merge + rank -> paginate (+ suggestions) -> cache write

    Only SearchValidationError escapes; strategy, cache and suggestion
    failures degrade the response instead. The tenant id is always passed
    in explicitly and threaded through every store and cache call.
    """

    def __init__(
        self,
        store: EmployeeStore,
        cache: SearchCacheManager | None = None,
        *,
        strategy_timeout_sec: float = SEARCH_STRATEGY_TIMEOUT_SEC,
        slow_query_ms: int = SEARCH_SLOW_QUERY_MS,
        runners: Mapping[Strategy, StrategyRunner] | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.strategy_timeout_sec = strategy_timeout_sec
        self.slow_query_ms = slow_query_ms
        self._runners = runners

    def search(self, tenant_id: str, raw_query: str | Mapping[str, Any]) -> SearchResponse:
        started = time.perf_counter()
        query = normalize_query(raw_query)

        if query.is_empty:
            return empty_response(query, _elapsed_ms(started))

        if self.cache is not None:
            cached = self.cache.get(tenant_id, query)
            if cached is not None:
                return replace(
                    cached,
                    query=query.raw_text,
                    execution_time_ms=_elapsed_ms(started),
                )

        response, degraded = self._execute(tenant_id, query, started)

        # Degraded responses are never cached.
        if self.cache is not None and not degraded:
            self.cache.set(tenant_id, query, response)

        if response.execution_time_ms > self.slow_query_ms:
            log.warning(
                "slow search: %.1fms for tenant %s query %r",
                response.execution_time_ms,
                tenant_id,
                query.text,
            )
        return response

    def _execute(
        self,
        tenant_id: str,
        query: SearchQuery,
        started: float,
    ) -> tuple[SearchResponse, bool]:
        """
        Run the strategies and build the response page.

        Returns (response, degraded); degraded is True when any strategy
        failed or timed out.
        """
        outcomes = run_strategies(
            self.store,
            tenant_id,
            query,
            timeout_sec=self.strategy_timeout_sec,
            runners=self._runners,
        )
        failed = [o.strategy for o in outcomes.values() if not o.ok]
        if failed:
            log.warning(
                "search for tenant %s degraded; failed strategies: %s",
                tenant_id,
                ", ".join(failed),
            )

        ranked = merge_candidates(
            outcomes["exact"].candidates,
            outcomes["fuzzy"].candidates,
            outcomes["partial"].candidates,
            query.options.weights,
        )
        suggestions = suggest(self.store, tenant_id, query.text)
        response = build_response(
            query,
            ranked,
            suggestions=suggestions,
            execution_time_ms=_elapsed_ms(started),
        )
        return response, bool(failed)

    def suggest(self, tenant_id: str, raw_text: str, limit: int = MAX_SUGGESTIONS) -> list[str]:
        """Standalone "did you mean" lookup (no ranking, no cache)."""
        query = normalize_query(raw_text)
        return suggest(self.store, tenant_id, query.text, limit=limit)

    def autocomplete(
        self,
        tenant_id: str,
        prefix: str,
        *,
        kind: str = "all",
        limit: int = 5,
    ) -> list[str]:
        return autocomplete(self.store, tenant_id, sanitize_query(prefix), kind=kind, limit=limit)

    def invalidate_tenant(self, tenant_id: str) -> int:
        """
        Drop every cached search for `tenant_id`.

        Employee create / update / delete handlers must call this after
        committing the mutation.
        """
        if self.cache is None:
            return 0
        return self.cache.invalidate_tenant(tenant_id)


def build_engine(settings: SearchSettings) -> SearchEngine:
    """
    Wire the SQLite employee store and the Redis search cache from settings.
    """
    cache = SearchCacheManager(
        ttl_seconds=settings.cache_ttl_seconds,
        enabled=settings.cache_enabled,
    )
    return SearchEngine(
        SqliteEmployeeStore(settings.database_path),
        cache,
        strategy_timeout_sec=settings.strategy_timeout_sec,
        slow_query_ms=settings.slow_query_ms,
    )
