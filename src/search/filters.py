from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.search.models import (
    ActiveFilter,
    DepartmentFilter,
    SearchFilters,
    SkillsFilter,
    TitleFilter,
)


@dataclass(frozen=True)
class FilterScope:
    """
    Everything that restricts *which* employees a strategy may return.

    Built once per request from the SearchQuery and handed to every strategy,
    so exact / fuzzy / partial can never disagree about tenant or filters.
    """

    filters: SearchFilters = SearchFilters()
    include_inactive: bool = False

    @property
    def active(self) -> bool | None:
        """
        Resolved active-flag restriction.

        An explicit ActiveFilter wins; otherwise only active employees are
        searched unless include_inactive is set (None = no restriction).
        """
        clause = self.filters.get("active")
        if isinstance(clause, ActiveFilter):
            return clause.value
        return None if self.include_inactive else True


@dataclass(frozen=True)
class FilterPredicate:
    sql: str
    params: dict[str, Any]


_ASCII_LOWER = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz")


def ascii_lower(value: str) -> str:
    """
    Lowercase A-Z only, the way SQLite's built-in lower() does.

    LIKE patterns are compared against lower(column), so the pattern must be
    folded the same way: "Émile" has to stay "Émile" to match lower("Émile").
    """
    return value.translate(_ASCII_LOWER)


def escape_like(value: str) -> str:
    """
    Escape LIKE wildcards so user text only ever matches literally.
    Use together with ESCAPE '\\'.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _apply_tenant(tenant_id: str, conditions: list[str], sql_params: dict[str, Any]) -> None:
    conditions.append("e.tenant_id = :tenant_id")
    sql_params["tenant_id"] = tenant_id


def _apply_active(scope: FilterScope, conditions: list[str], sql_params: dict[str, Any]) -> None:
    active = scope.active
    if active is None:
        return
    conditions.append("e.is_active = :is_active")
    sql_params["is_active"] = 1 if active else 0


def _apply_department(
    clause: DepartmentFilter,
    conditions: list[str],
    sql_params: dict[str, Any],
) -> None:
    conditions.append("lower(COALESCE(e.department, '')) = lower(:f_department)")
    sql_params["f_department"] = clause.value


def _apply_title(
    clause: TitleFilter,
    conditions: list[str],
    sql_params: dict[str, Any],
) -> None:
    conditions.append("lower(COALESCE(e.title, '')) LIKE :f_title ESCAPE '\\'")
    sql_params["f_title"] = f"%{escape_like(ascii_lower(clause.value))}%"


def _apply_skills(
    clause: SkillsFilter,
    conditions: list[str],
    sql_params: dict[str, Any],
) -> None:
    # Every requested skill must be present (hasEvery semantics).
    for idx, skill in enumerate(sorted(clause.values)):
        key = f"f_skill_{idx}"
        sql_params[key] = skill
        conditions.append(
            f"""
            EXISTS (
              SELECT 1 FROM json_each(e.skills) AS s
              WHERE lower(s.value) = lower(:{key})
            )
            """.strip()
        )


def build_filter_predicate(tenant_id: str, scope: FilterScope) -> FilterPredicate:
    """
    Build the WHERE fragment (over alias `e` = employees) shared by every
    strategy query. The tenant condition is always present and always first.
    """
    conditions: list[str] = []
    sql_params: dict[str, Any] = {}

    _apply_tenant(tenant_id, conditions, sql_params)
    _apply_active(scope, conditions, sql_params)

    for clause in scope.filters.clauses:
        if isinstance(clause, DepartmentFilter):
            _apply_department(clause, conditions, sql_params)
        elif isinstance(clause, TitleFilter):
            _apply_title(clause, conditions, sql_params)
        elif isinstance(clause, SkillsFilter):
            _apply_skills(clause, conditions, sql_params)
        # ActiveFilter is folded into _apply_active via scope.active.

    return FilterPredicate(sql=" AND ".join(conditions), params=sql_params)
