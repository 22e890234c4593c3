# src/search/__init__.py
"""
Ranked, multi-strategy employee search.

Callers (HTTP routes, CLI) should go through SearchEngine.search(), which
runs the exact / fuzzy / partial strategies against an EmployeeStore, merges
them into one deterministic ranking, and caches full responses per tenant.

Employee mutation handlers must call SearchEngine.invalidate_tenant() so
cached responses never outlive the data they were computed from by more than
the cache TTL.
"""

from .cache import SearchCacheManager, build_fingerprint
from .engine import SearchEngine, build_engine
from .models import (
    ActiveFilter,
    Candidate,
    DepartmentFilter,
    Pagination,
    RankedResult,
    RankingWeights,
    SearchFilters,
    SearchOptions,
    SearchQuery,
    SearchResponse,
    SkillsFilter,
    StrategyOutcome,
    TitleFilter,
)
from .normalize import normalize_query, sanitize_query
from .ranking import merge_candidates
from .response import paginate
from .store import EmployeeStore, SqliteEmployeeStore

__all__ = [
    "ActiveFilter",
    "Candidate",
    "DepartmentFilter",
    "EmployeeStore",
    "Pagination",
    "RankedResult",
    "RankingWeights",
    "SearchCacheManager",
    "SearchEngine",
    "SearchFilters",
    "SearchOptions",
    "SearchQuery",
    "SearchResponse",
    "SkillsFilter",
    "SqliteEmployeeStore",
    "StrategyOutcome",
    "TitleFilter",
    "build_engine",
    "build_fingerprint",
    "merge_candidates",
    "normalize_query",
    "paginate",
    "sanitize_query",
]
