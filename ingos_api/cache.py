"""Distributed cache with a deployment-wide key prefix.

Every entry is stored under ``CACHE_KEY_PREFIX`` so several deployments can
share one Redis instance without colliding. When ``REDIS_CONFIGURATION`` is
not set the cache keeps entries in process, which is what development runs
use. Redis failures are logged and treated as cache misses; callers fall
through to the underlying source.

Values are JSON documents::

    cache.get_or_add("localization:Ingos:en", lambda: load_texts("en"))
    # stored under "Ingos:localization:Ingos:en"
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import redis

logger = logging.getLogger("ingos.cache")

CACHE_KEY_PREFIX = "Ingos:"


class DistributedCache:
    def __init__(
        self,
        *,
        redis_url: str | None,
        default_ttl_seconds: int,
        key_prefix: str = CACHE_KEY_PREFIX,
        redis_factory: Callable[..., Any] | None = None,
    ) -> None:
        self.key_prefix = key_prefix
        self._ttl = max(0, int(default_ttl_seconds))
        self._client: Any = None
        self._local: dict[str, tuple[float | None, str]] = {}
        self._lock = threading.Lock()
        if redis_url:
            factory = redis_factory or redis.Redis.from_url
            self._client = factory(redis_url, decode_responses=True)

    @property
    def is_distributed(self) -> bool:
        return self._client is not None

    def key(self, name: str) -> str:
        return f"{self.key_prefix}{name}"

    def _ttl_for(self, ttl_seconds: int | None) -> int:
        return self._ttl if ttl_seconds is None else max(0, int(ttl_seconds))

    def get(self, name: str) -> Any | None:
        cache_key = self.key(name)
        if self._client is None:
            return self._local_get(cache_key)
        try:
            raw = self._client.get(cache_key)
            return json.loads(raw) if raw is not None else None
        except Exception as exc:
            logger.warning("cache_get_failed", extra={"key": cache_key, "error": str(exc)})
            return None

    def set(self, name: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        cache_key = self.key(name)
        ttl = self._ttl_for(ttl_seconds)
        raw = json.dumps(value, default=str)
        if self._client is None:
            with self._lock:
                now = time.monotonic()
                self._evict_expired(now)
                self._local[cache_key] = (now + ttl if ttl > 0 else None, raw)
            return
        try:
            if ttl > 0:
                self._client.setex(cache_key, ttl, raw)
            else:
                self._client.set(cache_key, raw)
        except Exception as exc:
            logger.warning("cache_set_failed", extra={"key": cache_key, "error": str(exc)})

    def remove(self, name: str) -> None:
        cache_key = self.key(name)
        if self._client is None:
            with self._lock:
                self._local.pop(cache_key, None)
            return
        try:
            self._client.delete(cache_key)
        except Exception as exc:
            logger.warning("cache_remove_failed", extra={"key": cache_key, "error": str(exc)})

    def get_or_add(self, name: str, factory: Callable[[], Any], *, ttl_seconds: int | None = None) -> Any:
        cached = self.get(name)
        if cached is not None:
            return cached
        value = factory()
        if value is not None:
            self.set(name, value, ttl_seconds=ttl_seconds)
        return value

    def _evict_expired(self, now: float) -> None:
        # Caller holds the lock.
        expired = [key for key, (expires_at, _) in self._local.items() if expires_at is not None and now >= expires_at]
        for key in expired:
            del self._local[key]

    def _local_get(self, cache_key: str) -> Any | None:
        with self._lock:
            entry = self._local.get(cache_key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at is not None and time.monotonic() >= expires_at:
                self._local.pop(cache_key, None)
                return None
        return json.loads(raw)

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as exc:
                logger.warning("cache_close_failed", extra={"error": str(exc)})
