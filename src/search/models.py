from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from src.exceptions import SearchValidationError
from src.search.similarity import DEFAULT_SIMILARITY_FLOOR

Strategy = Literal["exact", "fuzzy", "partial"]
STRATEGIES: tuple[Strategy, ...] = ("exact", "fuzzy", "partial")

MAX_QUERY_LENGTH = 100
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MIN_FUZZY_THRESHOLD = 0.1
MAX_FUZZY_THRESHOLD = 1.0

# Canonical field names reported in Candidate.matched_fields, in display order.
MATCH_FIELDS = ("first_name", "last_name", "title", "department", "email", "skills")


# ---------------------------------------------------------------------------
# Filters (tagged union)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DepartmentFilter:
    """Case-insensitive equality on employees.department."""

    value: str
    kind: Literal["department"] = "department"


@dataclass(frozen=True)
class TitleFilter:
    """Case-insensitive substring match on employees.title."""

    value: str
    kind: Literal["title"] = "title"


@dataclass(frozen=True)
class SkillsFilter:
    """Employee must carry every listed skill (case-insensitive)."""

    values: frozenset[str]
    kind: Literal["skills"] = "skills"


@dataclass(frozen=True)
class ActiveFilter:
    """Explicit active / inactive restriction."""

    value: bool
    kind: Literal["active"] = "active"


FilterClause = DepartmentFilter | TitleFilter | SkillsFilter | ActiveFilter

_FILTER_ORDER = {"department": 0, "title": 1, "skills": 2, "active": 3}


@dataclass(frozen=True)
class SearchFilters:
    """
    Structured filters applied identically by every strategy.

    Clauses are stored in a canonical order (department, title, skills,
    active) with at most one clause per kind.
    """

    clauses: tuple[FilterClause, ...] = ()

    def __post_init__(self) -> None:
        kinds = [c.kind for c in self.clauses]
        if len(kinds) != len(set(kinds)):
            raise SearchValidationError("Each filter may only be given once", "filters")
        ordered = tuple(sorted(self.clauses, key=lambda c: _FILTER_ORDER[c.kind]))
        object.__setattr__(self, "clauses", ordered)

    def get(self, kind: str) -> FilterClause | None:
        for clause in self.clauses:
            if clause.kind == kind:
                return clause
        return None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for clause in self.clauses:
            if isinstance(clause, SkillsFilter):
                out["skills"] = sorted(clause.values)
            else:
                out[clause.kind] = clause.value
        return out


# ---------------------------------------------------------------------------
# Query value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.page < 1:
            raise SearchValidationError("Page must be greater than 0", "page")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise SearchValidationError(
                f"Page size must be between 1 and {MAX_PAGE_SIZE}", "page_size"
            )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class RankingWeights:
    exact: float = 1.0
    fuzzy: float = 0.7
    partial: float = 0.4

    def __post_init__(self) -> None:
        for name in STRATEGIES:
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise SearchValidationError(
                    f"Weight for {name} must be a finite number >= 0", "ranking_weights"
                )

    def for_strategy(self, strategy: Strategy) -> float:
        return float(getattr(self, strategy))

    def to_dict(self) -> dict[str, float]:
        return {name: self.for_strategy(name) for name in STRATEGIES}


@dataclass(frozen=True)
class SearchOptions:
    weights: RankingWeights = field(default_factory=RankingWeights)
    fuzzy_threshold: float = DEFAULT_SIMILARITY_FLOOR
    include_inactive: bool = False

    def __post_init__(self) -> None:
        if not MIN_FUZZY_THRESHOLD <= self.fuzzy_threshold <= MAX_FUZZY_THRESHOLD:
            raise SearchValidationError(
                f"Fuzzy threshold must be between {MIN_FUZZY_THRESHOLD} and {MAX_FUZZY_THRESHOLD}",
                "fuzzy_threshold",
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "weights": self.weights.to_dict(),
            "fuzzy_threshold": self.fuzzy_threshold,
            "include_inactive": self.include_inactive,
        }


@dataclass(frozen=True)
class SearchQuery:
    """
    A normalized, immutable search request.

    Attributes:
        raw_text:
            The caller's text (trimmed), echoed back in SearchResponse.query.
        text:
            Sanitized text used for matching: operators stripped, whitespace
            collapsed, at most MAX_QUERY_LENGTH characters. Empty means "no
            search"; the engine short-circuits to an empty response.
    """

    raw_text: str
    text: str
    filters: SearchFilters = field(default_factory=SearchFilters)
    pagination: Pagination = field(default_factory=Pagination)
    options: SearchOptions = field(default_factory=SearchOptions)

    def __post_init__(self) -> None:
        if len(self.text) > MAX_QUERY_LENGTH:
            raise SearchValidationError(
                f"Search query must not exceed {MAX_QUERY_LENGTH} characters", "query"
            )

    @property
    def is_empty(self) -> bool:
        return not self.text

    @property
    def fetch_limit(self) -> int:
        """Per-strategy row cap: enough to fill the requested page."""
        return self.pagination.offset + self.pagination.page_size

    def canonical(self) -> dict[str, Any]:
        """
        JSON-safe canonical form used for cache fingerprints.
        """
        return {
            "text": self.text,
            "filters": self.filters.to_dict(),
            "pagination": {
                "page": self.pagination.page,
                "page_size": self.pagination.page_size,
            },
            "options": self.options.to_dict(),
        }


# ---------------------------------------------------------------------------
# Strategy output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Candidate:
    employee_id: str
    first_name: str
    last_name: str
    email: str
    raw_score: float
    strategy: Strategy
    title: str | None = None
    department: str | None = None
    photo_url: str | None = None
    skills: tuple[str, ...] = ()
    is_active: bool = True
    matched_fields: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.employee_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "title": self.title,
            "department": self.department,
            "email": self.email,
            "photo_url": self.photo_url,
            "skills": list(self.skills),
            "is_active": self.is_active,
            "raw_score": self.raw_score,
            "strategy": self.strategy,
            "matched_fields": list(self.matched_fields),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Candidate:
        return cls(
            employee_id=str(data["id"]),
            first_name=data["first_name"],
            last_name=data["last_name"],
            title=data.get("title"),
            department=data.get("department"),
            email=data["email"],
            photo_url=data.get("photo_url"),
            skills=tuple(data.get("skills") or ()),
            is_active=bool(data.get("is_active", True)),
            raw_score=float(data["raw_score"]),
            strategy=data["strategy"],
            matched_fields=tuple(data.get("matched_fields") or ()),
        )


@dataclass(frozen=True)
class StrategyOutcome:
    """
    Result of running one strategy: either candidates, or a recorded failure.

    A failed outcome always carries zero candidates, so folding outcomes into
    the merger needs no special casing.
    """

    strategy: Strategy
    candidates: tuple[Candidate, ...] = ()
    error_kind: Literal["error", "timeout"] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, strategy: Strategy, candidates: Iterable[Candidate]) -> StrategyOutcome:
        return cls(strategy=strategy, candidates=tuple(candidates))

    @classmethod
    def failure(
        cls,
        strategy: Strategy,
        error: str,
        kind: Literal["error", "timeout"] = "error",
    ) -> StrategyOutcome:
        return cls(strategy=strategy, candidates=(), error_kind=kind, error=error)


# ---------------------------------------------------------------------------
# Ranked output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RankedResult:
    candidate: Candidate
    weighted_rank: float

    @property
    def employee_id(self) -> str:
        return self.candidate.employee_id

    @property
    def strategy(self) -> Strategy:
        return self.candidate.strategy

    def to_dict(self) -> dict[str, Any]:
        data = self.candidate.to_dict()
        data["rank"] = self.weighted_rank
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RankedResult:
        return cls(candidate=Candidate.from_dict(data), weighted_rank=float(data["rank"]))


@dataclass(frozen=True)
class SearchResponse:
    results: tuple[RankedResult, ...]
    total: int
    page: int
    page_size: int
    has_more: bool
    query: str
    execution_time_ms: float = 0.0
    suggestions: tuple[str, ...] = ()
    from_cache: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "has_more": self.has_more,
            "query": self.query,
            "execution_time_ms": self.execution_time_ms,
            "suggestions": list(self.suggestions),
            "from_cache": self.from_cache,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SearchResponse:
        return cls(
            results=tuple(RankedResult.from_dict(r) for r in data["results"]),
            total=int(data["total"]),
            page=int(data["page"]),
            page_size=int(data["page_size"]),
            has_more=bool(data["has_more"]),
            query=str(data["query"]),
            execution_time_ms=float(data.get("execution_time_ms") or 0.0),
            suggestions=tuple(data.get("suggestions") or ()),
            from_cache=bool(data.get("from_cache", False)),
        )
