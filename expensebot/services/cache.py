"""
Key/value cache with expiry for the engines' mutable shared state.

Two pieces of state need it: the categorization engine's category directory
(TTL 5 minutes) and the alert engine's suppression entries (window 1 hour).

Backends:
    - InMemoryCacheBackend: single-process deployments and tests
    - RedisCacheBackend: multi-process deployments; falls back to an
      in-memory backend while Redis is unreachable

Losing either cache on restart is acceptable: the directory re-warms from
storage and suppression windows simply start over.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

from redis.exceptions import RedisError

from expensebot.config.settings import Settings, get_settings
from expensebot.lib.exceptions import CacheError
from expensebot.services.redis_service import RedisService, get_redis_service

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class CacheBackend(Protocol):
    """Minimal async cache contract."""

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        ...

    async def set(self, key: str, value: Any, ttl: float) -> None:
        """Store value under key for ttl seconds."""
        ...

    async def delete(self, key: str) -> None:
        """Remove key if present."""
        ...


@dataclass
class CacheEntry:
    """A cached value with its absolute expiry time (clock seconds)."""

    value: Any
    expires_at: float


class InMemoryCacheBackend:
    """
    Process-local cache with per-entry expiry.

    Expired entries are treated as absent and pruned when touched, and
    swept in bulk on every write. Guarded by an asyncio.Lock.

    Args:
        clock: Returns the current time in seconds (defaults to time.time)
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock or time.time
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        async with self._lock:
            now = self._clock()
            self._cleanup_expired(now)
            self._entries[key] = CacheEntry(value=value, expires_at=now + ttl)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    def _cleanup_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]


class RedisCacheBackend:
    """
    Redis-backed cache. Values round-trip through JSON, so callers must
    store JSON-friendly structures (dicts, lists, numbers, strings).

    While Redis is unreachable every call is served by the fallback
    backend instead, so the engines keep working in degraded, per-process
    mode. A command that fails on a live connection raises CacheError.

    Args:
        redis_service: RedisService instance (uses singleton if None)
        fallback: Backend used while Redis is down
        namespace: Prefix applied to every key
    """

    def __init__(
        self,
        redis_service: RedisService | None = None,
        fallback: CacheBackend | None = None,
        namespace: str = "expensebot:",
    ) -> None:
        self._redis = redis_service or get_redis_service()
        self._fallback = fallback or InMemoryCacheBackend()
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def _command(self, operation: str, key: str, command: Awaitable[T]) -> T:
        try:
            return await command
        except RedisError as exc:
            logger.warning("cache_command_failed operation=%s key=%s error=%s", operation, key, exc)
            raise CacheError(f"{operation} {key} failed: {exc}") from exc

    async def get(self, key: str) -> Any | None:
        if not await self._redis.is_available():
            return await self._fallback.get(key)
        raw = await self._command("get", key, self._redis.get(self._key(key)))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("cache_decode_failed key=%s error=%s", key, exc)
            await self._command("delete", key, self._redis.delete(self._key(key)))
            return None

    async def set(self, key: str, value: Any, ttl: float) -> None:
        if not await self._redis.is_available():
            await self._fallback.set(key, value, ttl)
            return
        # Redis TTLs are whole seconds
        await self._command(
            "set", key, self._redis.set(self._key(key), value, ttl=max(1, int(round(ttl))))
        )

    async def delete(self, key: str) -> None:
        if not await self._redis.is_available():
            await self._fallback.delete(key)
            return
        await self._command("delete", key, self._redis.delete(self._key(key)))


def build_cache_backend(settings: Settings | None = None) -> CacheBackend:
    """Create the cache backend selected by EXPENSEBOT_CACHE_BACKEND."""
    settings = settings or get_settings()
    if settings.cache_backend == "redis":
        return RedisCacheBackend(redis_service=RedisService(settings.redis_url))
    return InMemoryCacheBackend()


__all__ = [
    "CacheBackend",
    "CacheEntry",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "build_cache_backend",
]
