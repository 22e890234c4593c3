# ruff: noqa: E402
# tests/conftest.py
from __future__ import annotations

import json
import sqlite3
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import fakeredis
import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts.migrate_employee_search import apply_schema
from src.db import get_connection
from src.search.store import SqliteEmployeeStore


@pytest.fixture
def directory_db(tmp_path: Path) -> Iterator[SimpleNamespace]:
    """
    File-backed SQLite DB with the employee search schema applied.

    A file (not :memory:) is used because SqliteEmployeeStore opens a fresh
    connection per call, from several threads.

    Exposes:
      - path: str path to the DB file
      - seed(tenant, id, first, last, **fields): insert one employee
      - store: SqliteEmployeeStore bound to the DB
    """
    db_path = tmp_path / "directory.db"
    conn = get_connection(str(db_path))
    apply_schema(conn)

    def seed(
        tenant_id: str,
        employee_id: str,
        first_name: str,
        last_name: str,
        *,
        title: str | None = None,
        department: str | None = None,
        email: str | None = None,
        skills: list[str] | None = None,
        is_active: bool = True,
        photo_url: str | None = None,
    ) -> None:
        conn.execute(
            """
            INSERT INTO employees (
              id, tenant_id, first_name, last_name, title, department,
              email, photo_url, skills, is_active
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                employee_id,
                tenant_id,
                first_name,
                last_name,
                title,
                department,
                email or f"{first_name}.{last_name}@example.com".lower(),
                photo_url,
                json.dumps(skills or []),
                1 if is_active else 0,
            ),
        )
        conn.commit()

    try:
        yield SimpleNamespace(
            path=str(db_path),
            conn=conn,
            seed=seed,
            store=SqliteEmployeeStore(str(db_path)),
        )
    finally:
        conn.close()


@pytest.fixture
def fake_redis() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis()


class SpyStore:
    """
    EmployeeStore double that records every call and returns canned rows.

    Rows are plain dicts in the shape SqliteEmployeeStore returns. Any
    method can be made to raise by putting an exception in `fail`.
    """

    def __init__(
        self,
        exact: list[dict[str, Any]] | None = None,
        fuzzy: list[dict[str, Any]] | None = None,
        partial: list[dict[str, Any]] | None = None,
        suggestions: list[str] | None = None,
        prefixes: dict[str, list[str]] | None = None,
    ) -> None:
        self.rows = {
            "exact": exact or [],
            "fuzzy": fuzzy or [],
            "partial": partial or [],
        }
        self.suggestions = suggestions or []
        self.prefixes = prefixes or {}
        self.fail: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def _record(self, name: str, tenant_id: str) -> None:
        self.calls.append((name, tenant_id))
        if name in self.fail:
            raise self.fail[name]

    def exact_matches(self, tenant_id, scope, term, limit, offset=0):
        self._record("exact", tenant_id)
        return [dict(r) for r in self.rows["exact"]][:limit]

    def fuzzy_matches(self, tenant_id, scope, term, limit, offset=0, *, floor):
        self._record("fuzzy", tenant_id)
        return [dict(r) for r in self.rows["fuzzy"] if r["score"] >= floor][:limit]

    def partial_matches(self, tenant_id, scope, term, limit, offset=0):
        self._record("partial", tenant_id)
        return [dict(r) for r in self.rows["partial"]][:limit]

    def suggestion_terms(self, tenant_id, term, *, floor, limit):
        self._record("suggestions", tenant_id)
        return list(self.suggestions)[:limit]

    def prefix_terms(self, tenant_id, prefix, kind, limit):
        self._record(f"prefix:{kind}", tenant_id)
        return list(self.prefixes.get(kind, []))[:limit]


def make_row(employee_id: str, first_name: str, last_name: str, score: Any = None, **extra: Any):
    row: dict[str, Any] = {
        "id": employee_id,
        "first_name": first_name,
        "last_name": last_name,
        "title": None,
        "department": None,
        "email": f"{first_name}.{last_name}@example.com".lower(),
        "photo_url": None,
        "skills": [],
        "is_active": True,
        "score": score,
    }
    row.update(extra)
    return row


@pytest.fixture
def spy_store_factory() -> Callable[..., SpyStore]:
    return SpyStore
