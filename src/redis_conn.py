# src/redis_conn.py
from functools import lru_cache

from redis import Redis

from src.config import load_settings


@lru_cache(maxsize=1)
def get_redis() -> Redis:
    url = load_settings().redis_url
    # Cached payloads are JSON text; callers decode bytes themselves.
    return Redis.from_url(url, decode_responses=False, socket_connect_timeout=5)
