from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be a number; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    """
    Read a loosely-typed boolean from the environment.

    Treats "1", "true", "yes", "on" (case-insensitive) as True;
    "0", "false", "no", "off", "" as False. If unset, returns default.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off", ""}:
        return False
    # Fallback: any other non-empty value -> True
    return True


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

DEFAULT_DATABASE_PATH = (ROOT / "data" / "directory.db").as_posix()
DEFAULT_REDIS_URL = "redis://127.0.0.1:6379/0"

# -------------------------------
# Employee search
# -------------------------------
# Search results are cached for 5 minutes; employee mutations invalidate earlier.
SEARCH_CACHE_TTL_SECONDS: int = _getenv_int("SEARCH_CACHE_TTL_SECONDS", 300)
SEARCH_CACHE_ENABLED: bool = _getenv_bool("SEARCH_CACHE_ENABLED", True)
# Upper bound for a single strategy (exact / fuzzy / partial) within one request.
SEARCH_STRATEGY_TIMEOUT_SEC: float = _getenv_float("SEARCH_STRATEGY_TIMEOUT_SEC", 2.0)
# Searches slower than this are logged as warnings.
SEARCH_SLOW_QUERY_MS: int = _getenv_int("SEARCH_SLOW_QUERY_MS", 500)


@dataclass(frozen=True)
class SearchSettings:
    database_path: str
    redis_url: str
    cache_enabled: bool
    cache_ttl_seconds: int
    strategy_timeout_sec: float
    slow_query_ms: int


def load_settings() -> SearchSettings:
    """
    Build SearchSettings from the current environment.

    Read at call time (not import time) so tests can monkeypatch env vars
    and get a fresh view without reloading this module.
    """
    return SearchSettings(
        database_path=_getenv_str("DATABASE_PATH", DEFAULT_DATABASE_PATH),
        redis_url=_getenv_str("REDIS_URL", DEFAULT_REDIS_URL),
        cache_enabled=_getenv_bool("SEARCH_CACHE_ENABLED", True),
        cache_ttl_seconds=_getenv_int("SEARCH_CACHE_TTL_SECONDS", 300),
        strategy_timeout_sec=_getenv_float("SEARCH_STRATEGY_TIMEOUT_SEC", 2.0),
        slow_query_ms=_getenv_int("SEARCH_SLOW_QUERY_MS", 500),
    )
