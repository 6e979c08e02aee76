"""
Alert suppression cache.

Remembers, per user, when each alert scope key last fired. An alert whose
key fired within the trailing window is withheld; entries older than the
window are inert and pruned lazily on the next evaluation for that user.

State lives in a CacheBackend (in-memory or Redis) under
"alerts:{user_id}" as {scope_key: fired_at_epoch_seconds}. Read-modify-write
cycles are serialized by an asyncio.Lock, so concurrent evaluations in one
process never double-emit. Across processes (Redis backend) the guarantee
is best effort.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime

from expensebot.modules.expense_models import Alert, SuppressionEntry
from expensebot.services.cache import CacheBackend, InMemoryCacheBackend

logger = logging.getLogger(__name__)

SUPPRESSION_PREFIX = "alerts:"
DEFAULT_WINDOW_SECONDS = 3600


class SuppressionCache:
    """
    Per-user alert de-duplication.

    Args:
        backend: Where entries are kept (in-memory if None)
        window_seconds: Suppression window length
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend or InMemoryCacheBackend()
        self._window = float(window_seconds)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()

    @property
    def window_seconds(self) -> float:
        return self._window

    @staticmethod
    def _key(user_id: str) -> str:
        return f"{SUPPRESSION_PREFIX}{user_id}"

    def _now(self) -> float:
        return self._clock().timestamp()

    async def _load(self, user_id: str, now: float) -> tuple[dict[str, float], int]:
        """Load the user's live entries, dropping stale ones. Returns (entries, pruned)."""
        raw = await self._backend.get(self._key(user_id)) or {}
        live = {
            str(key): float(fired_at)
            for key, fired_at in raw.items()
            if now - float(fired_at) < self._window
        }
        return live, len(raw) - len(live)

    async def _store(self, user_id: str, entries: dict[str, float]) -> None:
        if entries:
            await self._backend.set(self._key(user_id), entries, ttl=self._window)
        else:
            await self._backend.delete(self._key(user_id))

    async def filter_and_register(self, user_id: str, alerts: Sequence[Alert]) -> list[Alert]:
        """Drop alerts whose key fired within the window and record the rest.

        Alerts produced by the same call are checked only against earlier
        calls, never against each other.

        Args:
            user_id: Owner of the alerts
            alerts: Candidate alerts in detector order

        Returns:
            The alerts that may be emitted, in their original order
        """
        async with self._lock:
            now = self._now()
            entries, pruned = await self._load(user_id, now)
            if pruned:
                logger.debug("suppression_pruned user=%s count=%s", user_id, pruned)

            emitted = [alert for alert in alerts if alert.suppression_key not in entries]
            for alert in emitted:
                entries[alert.suppression_key] = now

            suppressed = len(alerts) - len(emitted)
            if suppressed:
                logger.info("alerts_suppressed user=%s count=%s", user_id, suppressed)

            if emitted or pruned:
                await self._store(user_id, entries)
            return emitted

    async def is_suppressed(self, user_id: str, scope_key: str) -> bool:
        """Return True if scope_key fired for this user within the window."""
        async with self._lock:
            entries, _ = await self._load(user_id, self._now())
            return scope_key in entries

    async def register(self, user_id: str, scope_keys: Iterable[str]) -> None:
        """Record scope keys as fired now."""
        async with self._lock:
            now = self._now()
            entries, _ = await self._load(user_id, now)
            for key in scope_keys:
                entries[key] = now
            await self._store(user_id, entries)

    async def prune(self, user_id: str) -> int:
        """Drop stale entries for a user. Returns how many were removed."""
        async with self._lock:
            entries, pruned = await self._load(user_id, self._now())
            if pruned:
                await self._store(user_id, entries)
            return pruned

    async def entries(self, user_id: str) -> list[SuppressionEntry]:
        """Live suppression entries for a user, oldest first."""
        async with self._lock:
            live, _ = await self._load(user_id, self._now())
        return [
            SuppressionEntry(
                user_id=user_id,
                scope_key=key,
                fired_at=datetime.fromtimestamp(fired_at, UTC),
            )
            for key, fired_at in sorted(live.items(), key=lambda item: item[1])
        ]


__all__ = ["SuppressionCache", "SUPPRESSION_PREFIX", "DEFAULT_WINDOW_SECONDS"]
