from __future__ import annotations

from collections.abc import Sequence

from src.search.models import RankedResult, SearchQuery, SearchResponse


def paginate(
    ranked: Sequence[RankedResult],
    page: int,
    page_size: int,
    *,
    query: str = "",
    suggestions: Sequence[str] = (),
    execution_time_ms: float = 0.0,
) -> SearchResponse:
    """
    Slice the full ranked list into one response page.

    total counts every ranked result (pre-slice). Pages past the end come
    back empty with has_more=False rather than raising.
    """
    start = (page - 1) * page_size
    end = start + page_size
    total = len(ranked)
    return SearchResponse(
        results=tuple(ranked[start:end]),
        total=total,
        page=page,
        page_size=page_size,
        has_more=end < total,
        query=query,
        execution_time_ms=execution_time_ms,
        suggestions=tuple(suggestions),
        from_cache=False,
    )


def build_response(
    query: SearchQuery,
    ranked: Sequence[RankedResult],
    *,
    suggestions: Sequence[str] = (),
    execution_time_ms: float = 0.0,
) -> SearchResponse:
    return paginate(
        ranked,
        query.pagination.page,
        query.pagination.page_size,
        query=query.raw_text,
        suggestions=suggestions,
        execution_time_ms=execution_time_ms,
    )


def empty_response(query: SearchQuery, execution_time_ms: float = 0.0) -> SearchResponse:
    return build_response(query, (), execution_time_ms=execution_time_ms)
