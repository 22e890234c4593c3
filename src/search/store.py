from __future__ import annotations

import json
import sqlite3
from collections.abc import Callable, Sequence
from typing import Any, Literal, Protocol

from src.db import get_connection
from src.search.filters import FilterScope, ascii_lower, build_filter_predicate, escape_like

EmployeeRow = dict[str, Any]
PrefixKind = Literal["names", "titles", "departments"]

_EMPLOYEE_COLUMNS = """
          e.id AS id,
          e.first_name AS first_name,
          e.last_name AS last_name,
          e.title AS title,
          e.department AS department,
          e.email AS email,
          e.photo_url AS photo_url,
          e.skills AS skills,
          e.is_active AS is_active
"""


class EmployeeStore(Protocol):
    """
    Read-only, tenant-scoped access to employee records.

    Each *_matches method returns plain row dicts with the employee columns
    (id, first_name, last_name, title, department, email, photo_url, skills,
    is_active) plus a strategy-specific `score`:

      * exact_matches:   full-text relevance, higher is better (opaque scale)
      * fuzzy_matches:   best similarity in [0, 1], rows below `floor` excluded
      * partial_matches: no score signal (score is None)

    Every method must confine itself to `tenant_id` and apply `scope`
    identically.
    """

    def exact_matches(
        self,
        tenant_id: str,
        scope: FilterScope,
        term: str,
        limit: int,
        offset: int = 0,
    ) -> list[EmployeeRow]: ...

    def fuzzy_matches(
        self,
        tenant_id: str,
        scope: FilterScope,
        term: str,
        limit: int,
        offset: int = 0,
        *,
        floor: float,
    ) -> list[EmployeeRow]: ...

    def partial_matches(
        self,
        tenant_id: str,
        scope: FilterScope,
        term: str,
        limit: int,
        offset: int = 0,
    ) -> list[EmployeeRow]: ...

    def suggestion_terms(
        self,
        tenant_id: str,
        term: str,
        *,
        floor: float,
        limit: int,
    ) -> list[str]: ...

    def prefix_terms(
        self,
        tenant_id: str,
        prefix: str,
        kind: PrefixKind,
        limit: int,
    ) -> list[str]: ...


def _rows_to_dicts(cursor: sqlite3.Cursor, rows: Sequence[Sequence[Any]]) -> list[dict[str, Any]]:
    cols = [desc[0] for desc in cursor.description]
    return [dict(zip(cols, row, strict=False)) for row in rows]


def _decode_skills(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [str(s) for s in raw if s]
    if not isinstance(raw, str) or not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if isinstance(data, list):
        return [str(s) for s in data if s]
    return []


def _finalize_row(row: dict[str, Any]) -> EmployeeRow:
    row["id"] = str(row["id"])
    row["skills"] = _decode_skills(row.get("skills"))
    row["is_active"] = bool(row.get("is_active"))
    return row


def fts_match_expression(term: str) -> str:
    """
    Turn sanitized text into an FTS5 MATCH expression requiring every token.

    Each token is quoted, so words like AND / OR / NEAR and punctuation such
    as "@" or "." inside emails are matched literally rather than parsed.
    """
    tokens = [tok.replace('"', "") for tok in term.split()]
    return " ".join(f'"{tok}"' for tok in tokens if tok)


class SqliteEmployeeStore:
    """
    EmployeeStore over the SQLite `employees` table and its `employees_fts`
    FTS5 index (see scripts/migrate_employee_search.py).

    A fresh connection is opened per call so concurrent strategies never
    share a sqlite3.Connection across threads.
    """

    def __init__(
        self,
        db_path: str | None = None,
        connect: Callable[[str | None], sqlite3.Connection] = get_connection,
    ) -> None:
        self._db_path = db_path
        self._connect = connect

    def _fetch(self, sql: str, sql_params: dict[str, Any]) -> list[dict[str, Any]]:
        conn = self._connect(self._db_path)
        try:
            cur = conn.execute(sql, sql_params)
            rows = cur.fetchall()
            return _rows_to_dicts(cur, rows)
        finally:
            conn.close()

    def exact_matches(
        self,
        tenant_id: str,
        scope: FilterScope,
        term: str,
        limit: int,
        offset: int = 0,
    ) -> list[EmployeeRow]:
        match = fts_match_expression(term)
        if not match:
            return []

        predicate = build_filter_predicate(tenant_id, scope)
        # bm25() is lower-is-better; flip the sign so higher means more relevant.
        sql = f"""
            SELECT
              {_EMPLOYEE_COLUMNS},
              -bm25(employees_fts) AS score
            FROM employees_fts
            JOIN employees AS e
              ON e.pk = employees_fts.rowid
            WHERE employees_fts MATCH :match
              AND {predicate.sql}
            ORDER BY score DESC, e.id ASC
            LIMIT :limit OFFSET :offset
        """
        sql_params = {**predicate.params, "match": match, "limit": limit, "offset": offset}
        return [_finalize_row(row) for row in self._fetch(sql, sql_params)]

    def fuzzy_matches(
        self,
        tenant_id: str,
        scope: FilterScope,
        term: str,
        limit: int,
        offset: int = 0,
        *,
        floor: float,
    ) -> list[EmployeeRow]:
        predicate = build_filter_predicate(tenant_id, scope)
        sql = f"""
            SELECT *
            FROM (
              SELECT
                {_EMPLOYEE_COLUMNS},
                MAX(
                  similarity(e.first_name, :term),
                  similarity(e.last_name, :term),
                  similarity(COALESCE(e.title, ''), :term)
                ) AS score
              FROM employees AS e
              WHERE {predicate.sql}
            )
            WHERE score >= :floor
            ORDER BY score DESC, id ASC
            LIMIT :limit OFFSET :offset
        """
        sql_params = {
            **predicate.params,
            "term": term,
            "floor": floor,
            "limit": limit,
            "offset": offset,
        }
        return [_finalize_row(row) for row in self._fetch(sql, sql_params)]

    def partial_matches(
        self,
        tenant_id: str,
        scope: FilterScope,
        term: str,
        limit: int,
        offset: int = 0,
    ) -> list[EmployeeRow]:
        predicate = build_filter_predicate(tenant_id, scope)
        sql = f"""
            SELECT
              {_EMPLOYEE_COLUMNS},
              NULL AS score
            FROM employees AS e
            WHERE {predicate.sql}
              AND (
                lower(e.first_name) LIKE :pattern ESCAPE '\\'
                OR lower(e.last_name) LIKE :pattern ESCAPE '\\'
                OR lower(e.email) LIKE :pattern ESCAPE '\\'
                OR lower(COALESCE(e.title, '')) LIKE :pattern ESCAPE '\\'
                OR lower(COALESCE(e.department, '')) LIKE :pattern ESCAPE '\\'
              )
            ORDER BY e.id ASC
            LIMIT :limit OFFSET :offset
        """
        sql_params = {
            **predicate.params,
            "pattern": f"%{escape_like(ascii_lower(term))}%",
            "limit": limit,
            "offset": offset,
        }
        return [_finalize_row(row) for row in self._fetch(sql, sql_params)]

    def suggestion_terms(
        self,
        tenant_id: str,
        term: str,
        *,
        floor: float,
        limit: int,
    ) -> list[str]:
        """
        Distinct first names, last names and titles of active employees that
        look similar to `term` (similarity > floor), excluding `term` itself.
        """
        predicate = build_filter_predicate(tenant_id, FilterScope())
        sql = f"""
            SELECT DISTINCT value
            FROM (
              SELECT e.first_name AS value FROM employees AS e WHERE {predicate.sql}
              UNION ALL
              SELECT e.last_name AS value FROM employees AS e WHERE {predicate.sql}
              UNION ALL
              SELECT e.title AS value FROM employees AS e
              WHERE {predicate.sql} AND e.title IS NOT NULL
            )
            WHERE similarity(value, :term) > :floor
              AND lower(value) <> lower(:term)
            ORDER BY lower(value), value
            LIMIT :limit
        """
        sql_params = {**predicate.params, "term": term, "floor": floor, "limit": limit}
        return [str(row["value"]) for row in self._fetch(sql, sql_params) if row["value"]]

    def prefix_terms(
        self,
        tenant_id: str,
        prefix: str,
        kind: PrefixKind,
        limit: int,
    ) -> list[str]:
        """
        Distinct values of active employees starting with `prefix`
        (case-insensitive), alphabetical.
        """
        predicate = build_filter_predicate(tenant_id, FilterScope())
        if kind == "names":
            source = f"""
              SELECT e.first_name AS value FROM employees AS e WHERE {predicate.sql}
              UNION ALL
              SELECT e.last_name AS value FROM employees AS e WHERE {predicate.sql}
            """
        elif kind == "titles":
            source = f"SELECT e.title AS value FROM employees AS e WHERE {predicate.sql}"
        elif kind == "departments":
            source = f"SELECT e.department AS value FROM employees AS e WHERE {predicate.sql}"
        else:
            raise ValueError(f"Unsupported autocomplete kind: {kind!r}")

        sql = f"""
            SELECT DISTINCT value
            FROM ({source})
            WHERE value IS NOT NULL
              AND lower(value) LIKE :prefix ESCAPE '\\'
            ORDER BY lower(value), value
            LIMIT :limit
        """
        sql_params = {
            **predicate.params,
            "prefix": f"{escape_like(ascii_lower(prefix))}%",
            "limit": limit,
        }
        return [str(row["value"]) for row in self._fetch(sql, sql_params)]
