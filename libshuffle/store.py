from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

from spotipy.cache_handler import CacheFileHandler, CacheHandler  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = ".cache"
DEFAULT_REDIS_KEY = "libshuffle:token"


class InMemoryTokenStore(CacheHandler):
    """Keeps the token for the lifetime of the process only."""

    def __init__(self, token_info: Optional[Dict[str, Any]] = None) -> None:
        self._token_info = token_info

    def get_cached_token(self) -> Optional[Dict[str, Any]]:
        return self._token_info

    def save_token_to_cache(self, token_info: Dict[str, Any]) -> None:
        self._token_info = token_info

    def clear(self) -> None:
        self._token_info = None


class RedisTokenStore(CacheHandler):
    """Redis-backed token store, shared by every machine that runs the tool."""

    def __init__(self, url: str, key: str = DEFAULT_REDIS_KEY) -> None:
        try:
            import redis  # type: ignore
        except ImportError as exc:  # pragma: no cover - handled by dependency management
            raise RuntimeError("redis library is required for RedisTokenStore") from exc

        self._client = redis.Redis.from_url(url, decode_responses=False)
        self._key = key

        try:
            self._client.ping()
        except Exception as exc:  # pragma: no cover - network dependent
            logger.warning("Redis token store is unavailable: %s", exc)
            raise

    def get_cached_token(self) -> Optional[Dict[str, Any]]:
        raw = self._client.get(self._key)
        if raw is None:
            return None

        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            self._client.delete(self._key)
            return None

    def save_token_to_cache(self, token_info: Dict[str, Any]) -> None:
        self._client.set(self._key, json.dumps(token_info))

    def clear(self) -> None:
        self._client.delete(self._key)


def clear_token(store: CacheHandler) -> None:
    """Forget the cached token so the next sign-in starts from scratch."""

    if hasattr(store, "clear"):
        store.clear()
        return

    cache_path = getattr(store, "cache_path", None)
    if cache_path and os.path.exists(cache_path):
        os.remove(cache_path)


def create_store_from_env() -> CacheHandler:
    """Create a token store based on environment variables, falling back to a file."""

    backend = (os.getenv("TOKEN_STORE_BACKEND") or "").lower()
    redis_url = os.getenv("TOKEN_REDIS_URL") or os.getenv("REDIS_URL")

    if backend == "redis" or redis_url:
        url = redis_url or "redis://localhost:6379/0"
        try:
            return RedisTokenStore(url)
        except Exception:
            logger.info("Using the token cache file due to Redis configuration issues.")

    return CacheFileHandler(cache_path=os.getenv("TOKEN_CACHE_PATH") or DEFAULT_CACHE_PATH)
