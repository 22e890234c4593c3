from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any

from src.exceptions import SearchValidationError
from src.search.models import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MAX_QUERY_LENGTH,
    STRATEGIES,
    ActiveFilter,
    DepartmentFilter,
    FilterClause,
    Pagination,
    RankingWeights,
    SearchFilters,
    SearchOptions,
    SearchQuery,
    SkillsFilter,
    TitleFilter,
)
from src.search.similarity import DEFAULT_SIMILARITY_FLOOR

# Characters with structural meaning in FTS5 / boolean query syntax. User text
# must never be interpreted as query syntax, so these become plain spaces.
_OPERATOR_RE = re.compile(r"[&|!()\"*^:{}\[\]+~<>=\\;]")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_INT_RE = re.compile(r"-?\d+")

_TOP_LEVEL_KEYS = {"query", "filters", "pagination", "options"}
_FILTER_KEYS = {"department", "title", "skills", "active"}
_PAGINATION_KEYS = {"page", "page_size"}
_OPTION_KEYS = {"ranking_weights", "fuzzy_threshold", "include_inactive"}


def sanitize_query(text: str | None) -> str:
    """
    Canonicalize free text for matching.

    - strips characters that act as query operators
    - collapses whitespace runs to a single space and trims
    - truncates to MAX_QUERY_LENGTH characters

    Returns "" for None / blank input.
    """
    if not text:
        return ""
    q = _CONTROL_RE.sub(" ", text)
    q = _OPERATOR_RE.sub(" ", q)
    q = _WHITESPACE_RE.sub(" ", q).strip()
    return q[:MAX_QUERY_LENGTH].rstrip()


def _check_keys(data: Mapping[str, Any], allowed: set[str], field: str) -> None:
    unknown = sorted(str(k) for k in data if k not in allowed)
    if unknown:
        raise SearchValidationError(f"Unknown {field} option(s): {', '.join(unknown)}", field)


def _as_mapping(value: Any, field: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise SearchValidationError(f"{field} must be an object", field)
    return value


def _coerce_int(value: Any, field: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise SearchValidationError(f"{field} must be an integer", field)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.fullmatch(value.strip()):
        return int(value.strip())
    raise SearchValidationError(f"{field} must be an integer", field)


def _coerce_number(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SearchValidationError(f"{field} must be a number", field)
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        raise SearchValidationError(f"{field} must be a finite number", field)
    return number


def _coerce_bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise SearchValidationError(f"{field} must be a boolean", field)
    return value


def _optional_text(value: Any, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise SearchValidationError(f"{field} must be a string", field)
    value = _WHITESPACE_RE.sub(" ", value).strip()
    return value or None


def normalize_pagination(raw: Any) -> Pagination:
    """
    Parse pagination, clamping page to >= 1 and page_size to [1, MAX_PAGE_SIZE].
    """
    data = _as_mapping(raw, "pagination")
    _check_keys(data, _PAGINATION_KEYS, "pagination")
    page = _coerce_int(data.get("page"), "page", 1)
    page_size = _coerce_int(data.get("page_size"), "page_size", DEFAULT_PAGE_SIZE)
    return Pagination(page=max(1, page), page_size=min(MAX_PAGE_SIZE, max(1, page_size)))


def normalize_filters(raw: Any) -> SearchFilters:
    data = _as_mapping(raw, "filters")
    _check_keys(data, _FILTER_KEYS, "filters")
    clauses: list[FilterClause] = []

    department = _optional_text(data.get("department"), "department")
    if department:
        clauses.append(DepartmentFilter(department))

    title = _optional_text(data.get("title"), "title")
    if title:
        clauses.append(TitleFilter(title))

    skills_raw = data.get("skills")
    if skills_raw is not None:
        if isinstance(skills_raw, str) or not isinstance(skills_raw, (list, tuple, set, frozenset)):
            raise SearchValidationError("skills must be a list of strings", "skills")
        skills: set[str] = set()
        for item in skills_raw:
            skill = _optional_text(item, "skills")
            if skill:
                skills.add(skill)
        if skills:
            clauses.append(SkillsFilter(frozenset(skills)))

    if data.get("active") is not None:
        clauses.append(ActiveFilter(_coerce_bool(data["active"], "active")))

    return SearchFilters(tuple(clauses))


def normalize_options(raw: Any) -> SearchOptions:
    data = _as_mapping(raw, "options")
    _check_keys(data, _OPTION_KEYS, "options")

    weights = RankingWeights()
    weights_raw = data.get("ranking_weights")
    if weights_raw is not None:
        weights_map = _as_mapping(weights_raw, "ranking_weights")
        _check_keys(weights_map, set(STRATEGIES), "ranking_weights")
        overrides = {
            name: _coerce_number(value, "ranking_weights")
            for name, value in weights_map.items()
            if value is not None
        }
        weights = RankingWeights(**{**weights.to_dict(), **overrides})

    threshold = DEFAULT_SIMILARITY_FLOOR
    if data.get("fuzzy_threshold") is not None:
        threshold = _coerce_number(data["fuzzy_threshold"], "fuzzy_threshold")

    include_inactive = False
    if data.get("include_inactive") is not None:
        include_inactive = _coerce_bool(data["include_inactive"], "include_inactive")

    return SearchOptions(
        weights=weights,
        fuzzy_threshold=threshold,
        include_inactive=include_inactive,
    )


def normalize_query(raw: str | Mapping[str, Any] | None) -> SearchQuery:
    """
    Validate and canonicalize a raw search request into a SearchQuery.

    `raw` is either the bare query text or a plain mapping:

        {
          "query": "jane",
          "filters": {"department": "Sales", "title": "manager",
                      "skills": ["python"], "active": True},
          "pagination": {"page": 1, "page_size": 20},
          "options": {"ranking_weights": {"exact": 1.0, "fuzzy": 0.7, "partial": 0.4},
                      "fuzzy_threshold": 0.3, "include_inactive": False},
        }

    Raises SearchValidationError for malformed input. Whitespace-only (or
    operator-only) text is *not* an error: the resulting query has an empty
    `text` and callers should return an empty response.
    """
    if raw is None or isinstance(raw, str):
        payload: Mapping[str, Any] = {"query": raw}
    elif isinstance(raw, Mapping):
        payload = raw
    else:
        raise SearchValidationError("Search request must be a string or an object", "query")

    _check_keys(payload, _TOP_LEVEL_KEYS, "request")

    text = payload.get("query")
    if text is None:
        text = ""
    if not isinstance(text, str):
        raise SearchValidationError("Search query must be a string", "query")

    trimmed = text.strip()
    if len(trimmed) > MAX_QUERY_LENGTH:
        raise SearchValidationError(
            f"Search query must not exceed {MAX_QUERY_LENGTH} characters", "query"
        )

    return SearchQuery(
        raw_text=trimmed,
        text=sanitize_query(trimmed),
        filters=normalize_filters(payload.get("filters")),
        pagination=normalize_pagination(payload.get("pagination")),
        options=normalize_options(payload.get("options")),
    )
