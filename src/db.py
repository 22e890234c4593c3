# src/db.py
import sqlite3

from src.config import load_settings


def _db_path() -> str:
    # DATABASE_PATH (env / .env) or data/directory.db under the project root
    return load_settings().database_path


def register_functions(con: sqlite3.Connection) -> None:
    """
    Register the Python-side SQL helpers the search queries rely on:

      similarity(a, b) -> float in [0, 1]
    """
    # Import here to avoid a circular import (src.search.store -> src.db).
    from src.search.similarity import text_similarity

    con.create_function("similarity", 2, text_similarity, deterministic=True)


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """
    Shared SQLite connection helper for libraries and scripts.

    - If db_path is None, uses _db_path() (DATABASE_PATH or data/directory.db).
    - Ensures foreign key enforcement.
    - Sets row_factory to sqlite3.Row for dict-like/dot-style access.
    - Registers the similarity() SQL function.
    """
    if db_path is None:
        db_path = _db_path()
    con = sqlite3.connect(db_path)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys=ON")
    register_functions(con)
    return con
