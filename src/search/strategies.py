from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any

from src.config import SEARCH_STRATEGY_TIMEOUT_SEC
from src.search.filters import FilterScope
from src.search.models import (
    STRATEGIES,
    Candidate,
    SearchQuery,
    Strategy,
    StrategyOutcome,
)
from src.search.similarity import best_similarity
from src.search.store import EmployeeRow, EmployeeStore

log = logging.getLogger(__name__)

# Substring matching carries no ranking signal of its own.
PARTIAL_MATCH_SCORE = 0.5

StrategyRunner = Callable[[EmployeeStore, str, SearchQuery, FilterScope], list[Candidate]]


def scope_for(query: SearchQuery) -> FilterScope:
    return FilterScope(filters=query.filters, include_inactive=query.options.include_inactive)


def _contains(haystack: str | None, needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def _exact_fields(row: EmployeeRow, term: str) -> tuple[str, ...]:
    tokens = [t.lower() for t in term.split() if t]
    fields: list[str] = []
    for name in ("first_name", "last_name", "title", "department", "email"):
        if any(_contains(row.get(name), tok) for tok in tokens):
            fields.append(name)
    skills = [s.lower() for s in row.get("skills") or []]
    if any(tok in skill for tok in tokens for skill in skills):
        fields.append("skills")
    return tuple(fields)


def _partial_fields(row: EmployeeRow, term: str) -> tuple[str, ...]:
    needle = term.lower()
    return tuple(
        name
        for name in ("first_name", "last_name", "title", "department", "email")
        if _contains(row.get(name), needle)
    )


def _to_candidate(
    row: EmployeeRow,
    strategy: Strategy,
    raw_score: float,
    matched_fields: tuple[str, ...],
) -> Candidate:
    return Candidate(
        employee_id=str(row["id"]),
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        title=row.get("title"),
        department=row.get("department"),
        email=row.get("email") or "",
        photo_url=row.get("photo_url"),
        skills=tuple(row.get("skills") or ()),
        is_active=bool(row.get("is_active", True)),
        raw_score=raw_score,
        strategy=strategy,
        matched_fields=matched_fields,
    )


def run_exact(
    store: EmployeeStore,
    tenant_id: str,
    query: SearchQuery,
    scope: FilterScope,
) -> list[Candidate]:
    """
    Full-text token match. Relevance is scaled by the best hit of this call,
    so the top exact match scores 1.0 and the rest keep their relative order.
    """
    rows = store.exact_matches(tenant_id, scope, query.text, query.fetch_limit, 0)
    relevances = [max(float(row.get("score") or 0.0), 0.0) for row in rows]
    best = max(relevances, default=0.0)
    return [
        _to_candidate(
            row,
            "exact",
            relevance / best if best > 0 else 1.0,
            _exact_fields(row, query.text),
        )
        for row, relevance in zip(rows, relevances, strict=True)
    ]


def run_fuzzy(
    store: EmployeeStore,
    tenant_id: str,
    query: SearchQuery,
    scope: FilterScope,
) -> list[Candidate]:
    floor = query.options.fuzzy_threshold
    rows = store.fuzzy_matches(
        tenant_id,
        scope,
        query.text,
        query.fetch_limit,
        0,
        floor=floor,
    )
    out: list[Candidate] = []
    for row in rows:
        _, fields = best_similarity(
            query.text,
            {
                "first_name": row.get("first_name"),
                "last_name": row.get("last_name"),
                "title": row.get("title"),
            },
            floor=floor,
        )
        out.append(_to_candidate(row, "fuzzy", float(row["score"]), tuple(fields)))
    return out


def run_partial(
    store: EmployeeStore,
    tenant_id: str,
    query: SearchQuery,
    scope: FilterScope,
) -> list[Candidate]:
    rows = store.partial_matches(tenant_id, scope, query.text, query.fetch_limit, 0)
    return [
        _to_candidate(row, "partial", PARTIAL_MATCH_SCORE, _partial_fields(row, query.text))
        for row in rows
    ]


STRATEGY_RUNNERS: dict[Strategy, StrategyRunner] = {
    "exact": run_exact,
    "fuzzy": run_fuzzy,
    "partial": run_partial,
}


def run_strategy(
    strategy: Strategy,
    runner: StrategyRunner,
    store: EmployeeStore,
    tenant_id: str,
    query: SearchQuery,
    scope: FilterScope,
) -> StrategyOutcome:
    """
    Run one strategy and capture any failure as a StrategyOutcome.
    """
    try:
        candidates = runner(store, tenant_id, query, scope)
    except Exception as exc:
        log.warning(
            "search strategy %s failed for tenant %s: %s",
            strategy,
            tenant_id,
            exc,
        )
        return StrategyOutcome.failure(strategy, f"{type(exc).__name__}: {exc}")
    return StrategyOutcome.success(strategy, candidates)


def run_strategies(
    store: EmployeeStore,
    tenant_id: str,
    query: SearchQuery,
    *,
    timeout_sec: float = SEARCH_STRATEGY_TIMEOUT_SEC,
    runners: Mapping[Strategy, StrategyRunner] | None = None,
) -> dict[Strategy, StrategyOutcome]:
    """
    Run exact, fuzzy and partial concurrently and collect their outcomes.

    Waits at most `timeout_sec`; strategies still running then are recorded
    as timeouts and left to finish in the background. Never raises for
    strategy-level problems.
    """
    active_runners: Mapping[Strategy, StrategyRunner] = runners or STRATEGY_RUNNERS
    scope = scope_for(query)

    pool = ThreadPoolExecutor(max_workers=len(STRATEGIES), thread_name_prefix="search-strategy")
    try:
        futures: dict[Any, Strategy] = {
            pool.submit(
                run_strategy,
                name,
                active_runners[name],
                store,
                tenant_id,
                query,
                scope,
            ): name
            for name in STRATEGIES
        }
        done, _pending = wait(futures, timeout=timeout_sec)

        outcomes: dict[Strategy, StrategyOutcome] = {}
        for future, name in futures.items():
            if future in done:
                outcomes[name] = future.result()
                continue
            future.cancel()
            log.warning(
                "search strategy %s timed out after %.2fs for tenant %s",
                name,
                timeout_sec,
                tenant_id,
            )
            outcomes[name] = StrategyOutcome.failure(
                name,
                f"timed out after {timeout_sec:.2f}s",
                kind="timeout",
            )
        return outcomes
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
