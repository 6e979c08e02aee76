"""Redis service for caches shared across processes."""

import dataclasses
import json
import logging
import ssl
import time
from collections.abc import Callable
from datetime import date, datetime
from enum import Enum
from typing import Any

import redis.asyncio as redis

from expensebot.config.settings import get_settings

logger = logging.getLogger(__name__)

# Seconds to wait after a failed connect before trying again
RECONNECT_BACKOFF_SECONDS = 5.0


class ExpenseJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for cached values:
    - dataclasses → dict via dataclasses.asdict()
    - datetime/date → .isoformat()
    - Enum → .value
    - set/tuple → list
    - Any other non-serializable → str()

    This encoder never raises; str() is the last resort.
    """

    def default(self, obj: Any) -> Any:
        """Convert non-serializable objects to JSON-serializable types."""
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)

        if isinstance(obj, (datetime, date)):
            return obj.isoformat()

        if isinstance(obj, Enum):
            return obj.value

        if isinstance(obj, (set, frozenset)):
            return list(obj)

        try:
            return str(obj)
        except Exception:  # Intentional catch-all: JSON encoder last-resort fallback, must never raise
            return f"<non-serializable: {type(obj).__name__}>"


class RedisService:
    """Thin async Redis wrapper that degrades to no-ops when Redis is down.

    After a failed connect, further attempts are skipped for
    RECONNECT_BACKOFF_SECONDS so an outage costs one timeout, not one per call.

    Args:
        redis_url: Connection URL; defaults to the REDIS_URL setting
        clock: Monotonic seconds source (defaults to time.monotonic)
    """

    def __init__(
        self,
        redis_url: str | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._client: redis.Redis | None = None
        self._clock = clock or time.monotonic
        self._last_failure: float | None = None

    @property
    def redis_url(self) -> str:
        return self._redis_url or get_settings().redis_url

    @staticmethod
    def _tls_kwargs(redis_url: str) -> dict[str, Any]:
        """Build TLS keyword arguments when using rediss:// URLs."""
        if not redis_url.startswith("rediss://"):
            return {}
        ssl_ctx = ssl.create_default_context()
        ssl_ctx.check_hostname = True
        ssl_ctx.verify_mode = ssl.CERT_REQUIRED
        return {"ssl": ssl_ctx}

    async def _ensure_async_client(self) -> redis.Redis | None:
        """Get or create the async Redis client."""
        if self._client is not None:
            return self._client
        if (
            self._last_failure is not None
            and self._clock() - self._last_failure < RECONNECT_BACKOFF_SECONDS
        ):
            return None
        try:
            client = redis.from_url(  # type: ignore[no-untyped-call]
                self.redis_url,
                decode_responses=True,
                **self._tls_kwargs(self.redis_url),
            )
            await client.ping()
        except (redis.ConnectionError, redis.TimeoutError, OSError) as exc:
            # Callers fall back to in-memory state
            if self._last_failure is None:
                logger.warning("redis_unavailable error=%s", exc)
            self._last_failure = self._clock()
            return None
        if self._last_failure is not None:
            logger.info("redis_reconnected")
        self._client = client
        self._last_failure = None
        return self._client

    async def is_available(self) -> bool:
        """Return True if a Redis connection can be established."""
        return await self._ensure_async_client() is not None

    @property
    def client(self) -> redis.Redis | None:
        """Get the raw async Redis client for advanced operations."""
        return self._client

    async def get(self, key: str) -> str | None:
        """Get value by key."""
        client = await self._ensure_async_client()
        if client is None:
            return None
        result = await client.get(key)
        return str(result) if result is not None else None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set key to the JSON encoding of value, with optional TTL (seconds)."""
        client = await self._ensure_async_client()
        if client is None:
            return False
        payload = json.dumps(value, cls=ExpenseJSONEncoder)
        if ttl:
            return bool(await client.setex(key, ttl, payload))
        return bool(await client.set(key, payload))

    async def delete(self, key: str) -> bool:
        """Delete key."""
        client = await self._ensure_async_client()
        if client is None:
            return False
        return bool(await client.delete(key))


# Singleton instance
_redis_service: RedisService | None = None


def get_redis_service() -> RedisService:
    """Get Redis service singleton."""
    global _redis_service
    if _redis_service is None:
        _redis_service = RedisService()
    return _redis_service
