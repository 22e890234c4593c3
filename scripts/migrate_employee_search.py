# scripts/migrate_employee_search.py
from __future__ import annotations

import argparse
import sqlite3
from pathlib import Path


def get_connection(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    # Ensure foreign keys are enforced; consistent with other scripts.
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_employees_table(conn: sqlite3.Connection) -> None:
    """
    Base employee table, one row per employee per tenant.

    The employee `id` is an opaque string (UUIDs in production). `pk` aliases
    the rowid, which links each row to its employees_fts entry.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS employees (
            pk INTEGER PRIMARY KEY,
            id TEXT NOT NULL UNIQUE,
            tenant_id TEXT NOT NULL,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            title TEXT,
            department TEXT,
            email TEXT NOT NULL,
            photo_url TEXT,
            skills TEXT NOT NULL DEFAULT '[]',
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_employees_tenant_active
            ON employees (tenant_id, is_active);
        """
    )


def create_fts_table(conn: sqlite3.Connection) -> None:
    """
    FTS5 index over the searchable employee columns.

    rowid of employees_fts == employees.rowid. skills_text is the JSON skills
    array flattened to space-separated words.
    """
    conn.executescript(
        """
        CREATE VIRTUAL TABLE IF NOT EXISTS employees_fts
        USING fts5(
            first_name,
            last_name,
            title,
            department,
            email,
            skills_text
        );
        """
    )


def create_fts_triggers(conn: sqlite3.Connection) -> None:
    """
    Triggers to keep employees_fts in sync with employees.
    """
    conn.executescript(
        """
        CREATE TRIGGER IF NOT EXISTS employees_fts_ai
        AFTER INSERT ON employees
        BEGIN
          INSERT INTO employees_fts(
            rowid, first_name, last_name, title, department, email, skills_text
          )
          VALUES (
            NEW.rowid,
            NEW.first_name,
            NEW.last_name,
            COALESCE(NEW.title, ''),
            COALESCE(NEW.department, ''),
            NEW.email,
            COALESCE((SELECT group_concat(value, ' ') FROM json_each(NEW.skills)), '')
          );
        END;

        CREATE TRIGGER IF NOT EXISTS employees_fts_au
        AFTER UPDATE ON employees
        BEGIN
          DELETE FROM employees_fts WHERE rowid = OLD.rowid;

          INSERT INTO employees_fts(
            rowid, first_name, last_name, title, department, email, skills_text
          )
          VALUES (
            NEW.rowid,
            NEW.first_name,
            NEW.last_name,
            COALESCE(NEW.title, ''),
            COALESCE(NEW.department, ''),
            NEW.email,
            COALESCE((SELECT group_concat(value, ' ') FROM json_each(NEW.skills)), '')
          );
        END;

        CREATE TRIGGER IF NOT EXISTS employees_fts_ad
        AFTER DELETE ON employees
        BEGIN
          DELETE FROM employees_fts WHERE rowid = OLD.rowid;
        END;
        """
    )


def backfill_employees_fts(conn: sqlite3.Connection) -> None:
    """
    Backfill employees_fts from existing employees rows.

    This only inserts rows for employees that do not yet exist in employees_fts.
    """
    conn.execute(
        """
        INSERT INTO employees_fts(
            rowid, first_name, last_name, title, department, email, skills_text
        )
        SELECT
            e.rowid,
            e.first_name,
            e.last_name,
            COALESCE(e.title, ''),
            COALESCE(e.department, ''),
            e.email,
            COALESCE((SELECT group_concat(value, ' ') FROM json_each(e.skills)), '')
        FROM employees AS e
        WHERE e.rowid NOT IN (
            SELECT rowid FROM employees_fts
        );
        """
    )


def apply_schema(conn: sqlite3.Connection) -> None:
    create_employees_table(conn)
    create_fts_table(conn)
    create_fts_triggers(conn)
    backfill_employees_fts(conn)
    conn.commit()


def run_migration(db_path: str) -> None:
    db_file = Path(db_path)
    db_file.parent.mkdir(parents=True, exist_ok=True)
    print(f"[search] Using SQLite database at: {db_file}")

    conn = get_connection(str(db_file))
    try:
        print("[search] Creating employees table, FTS5 index and triggers if missing ...")
        apply_schema(conn)
        print("[search] Employee search migration applied successfully.")
    finally:
        conn.close()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create the employees table and its FTS5 search index."
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default="data/directory.db",
        help="Path to SQLite database file (default: data/directory.db)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    run_migration(args.db_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
