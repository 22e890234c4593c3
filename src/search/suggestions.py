from __future__ import annotations

import logging
from typing import get_args

from src.exceptions import SearchValidationError
from src.search.similarity import DEFAULT_SIMILARITY_FLOOR
from src.search.store import EmployeeStore, PrefixKind

log = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5
MIN_SUGGEST_LENGTH = 2
MAX_AUTOCOMPLETE = 10

AUTOCOMPLETE_KINDS: tuple[str, ...] = ("all", *get_args(PrefixKind))


def _dedupe_sorted(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return sorted(out, key=lambda v: (v.lower(), v))


def suggest(
    store: EmployeeStore,
    tenant_id: str,
    text: str,
    *,
    limit: int = MAX_SUGGESTIONS,
    floor: float = DEFAULT_SIMILARITY_FLOOR,
) -> list[str]:
    """
    "Did you mean" terms for an already-sanitized query.

    Near-miss first names, last names and titles (similarity > floor),
    excluding the query itself, deduplicated, alphabetical, at most
    min(limit, MAX_SUGGESTIONS). Best-effort: returns [] on any failure.
    """
    if len(text) < MIN_SUGGEST_LENGTH:
        return []
    cap = max(0, min(limit, MAX_SUGGESTIONS))
    if cap == 0:
        return []

    try:
        # Over-fetch a little: exclusion and dedupe happen after the query.
        terms = store.suggestion_terms(tenant_id, text, floor=floor, limit=cap * 4)
    except Exception as exc:
        log.warning("search suggestions failed for tenant %s: %s", tenant_id, exc)
        return []

    needle = text.lower()
    return _dedupe_sorted([t for t in terms if t.lower() != needle])[:cap]


def autocomplete(
    store: EmployeeStore,
    tenant_id: str,
    prefix: str,
    *,
    kind: str = "all",
    limit: int = 5,
) -> list[str]:
    """
    Prefix completions over names, titles and/or departments.

    Groups are emitted in the order names, titles, departments (each
    alphabetical), deduplicated, capped at `limit` (clamped to [1, 10]).
    """
    if kind not in AUTOCOMPLETE_KINDS:
        raise SearchValidationError(
            f"type must be one of: {', '.join(AUTOCOMPLETE_KINDS)}",
            "type",
        )
    prefix = (prefix or "").strip()
    if len(prefix) < MIN_SUGGEST_LENGTH:
        return []
    limit = min(MAX_AUTOCOMPLETE, max(1, limit))

    kinds: tuple[PrefixKind, ...] = (
        get_args(PrefixKind) if kind == "all" else (kind,)  # type: ignore[assignment]
    )
    out: list[str] = []
    seen: set[str] = set()
    for k in kinds:
        try:
            values = store.prefix_terms(tenant_id, prefix, k, limit)
        except Exception as exc:
            log.warning("autocomplete (%s) failed for tenant %s: %s", k, tenant_id, exc)
            return []
        for value in values:
            if value not in seen:
                seen.add(value)
                out.append(value)
    return out[:limit]
