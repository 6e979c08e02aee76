"""
Storage contracts consumed by the expense engines.

The engines never run queries themselves: they read categories, budget
configuration and transaction history, and append keyword-candidate audit
records, only through the ExpenseStorage protocol below. Adapters:

    - InMemoryExpenseStorage (this module): single-process deployments and tests
    - SQLAlchemyExpenseStorage (expensebot/services/sql_storage.py)

Every call is independent and idempotent to retry; no transaction spans
more than one call.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable

from expensebot.modules.context_dictionaries import DEFAULT_CATEGORIES
from expensebot.modules.expense_models import (
    DEFAULT_CATEGORY,
    Category,
    KeywordCandidate,
    TransactionRecord,
    UserBudgetConfig,
)

logger = logging.getLogger(__name__)

InvalidationListener = Callable[[str], None]


@dataclass(frozen=True)
class TransactionQuery:
    """Filters for the transaction history read.

    Attributes:
        since: Trailing window, measured back from `until`
        category: Restrict to one category (None for all)
        until: Window end; None means "now"
    """

    since: timedelta
    category: str | None = None
    until: datetime | None = None

    def window(self, now: datetime) -> tuple[datetime, datetime]:
        """Return the (start, end) bounds of the window, both timezone-aware."""
        end = self.until or now
        return end - self.since, end


@runtime_checkable
class ExpenseStorage(Protocol):
    """Read/write contracts the engines depend on."""

    async def list_categories(self) -> list[Category]:
        """Return the category directory ordered by name."""
        ...

    async def get_user_config(self, user_id: str) -> UserBudgetConfig:
        """Return the user's budget config, creating defaults if none exists."""
        ...

    async def query_transactions(
        self,
        user_id: str,
        query: TransactionQuery,
    ) -> list[TransactionRecord]:
        """Return the user's transactions inside the query window."""
        ...

    async def record_keyword_candidate(
        self,
        user_id: str,
        category: str,
        token: str,
        frequency: int,
    ) -> None:
        """Append a keyword-candidate audit record."""
        ...

    async def update_category_keywords(self, name: str, keywords: Sequence[str]) -> bool:
        """Replace a category's keyword list. Returns False if the category is unknown."""
        ...

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        """Register a callback fired with the category name after a keyword update."""
        ...


class InvalidationNotifier:
    """Mixin that fans keyword-update notifications out to listeners."""

    def __init__(self) -> None:
        self._listeners: list[InvalidationListener] = []

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        self._listeners.append(listener)

    def _notify_invalidation(self, category: str) -> None:
        for listener in self._listeners:
            try:
                listener(category)
            except Exception as exc:  # Intentional catch-all: one bad listener must not block the others
                logger.warning("invalidation_listener_failed category=%s error=%s", category, exc)


class InMemoryExpenseStorage(InvalidationNotifier):
    """Process-local storage adapter.

    Seeds the default category directory, keeps transactions in a list and
    the keyword-candidate audit log as an append-only list. Guarded by an
    asyncio.Lock so concurrent evaluations see consistent snapshots.

    Args:
        categories: Initial directory as (name, keywords) pairs; defaults to
            DEFAULT_CATEGORIES
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        categories: Sequence[tuple[str, Sequence[str]]] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__()
        seed = DEFAULT_CATEGORIES if categories is None else categories
        self._categories: dict[str, Category] = {
            name: Category(name=name, keywords=tuple(keywords)) for name, keywords in seed
        }
        if DEFAULT_CATEGORY not in self._categories:
            self._categories[DEFAULT_CATEGORY] = Category(name=DEFAULT_CATEGORY)
        self._configs: dict[str, UserBudgetConfig] = {}
        self._transactions: dict[str, list[TransactionRecord]] = {}
        self._keyword_candidates: list[KeywordCandidate] = []
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read contracts
    # ------------------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        async with self._lock:
            return [self._categories[name] for name in sorted(self._categories)]

    async def get_user_config(self, user_id: str) -> UserBudgetConfig:
        async with self._lock:
            config = self._configs.get(user_id)
            if config is None:
                config = UserBudgetConfig(user_id=user_id)
                self._configs[user_id] = config
                logger.info("user_config_created user=%s", user_id)
            return replace(config)

    async def query_transactions(
        self,
        user_id: str,
        query: TransactionQuery,
    ) -> list[TransactionRecord]:
        async with self._lock:
            start, end = query.window(self._clock())
            return [
                txn
                for txn in self._transactions.get(user_id, [])
                if start <= txn.timestamp <= end
                and (query.category is None or txn.category == query.category)
            ]

    # ------------------------------------------------------------------
    # Write contracts
    # ------------------------------------------------------------------

    async def record_keyword_candidate(
        self,
        user_id: str,
        category: str,
        token: str,
        frequency: int,
    ) -> None:
        async with self._lock:
            self._keyword_candidates.append(
                KeywordCandidate(
                    user_id=user_id,
                    category=category,
                    token=token,
                    observed_frequency=frequency,
                    timestamp=self._clock(),
                )
            )

    async def update_category_keywords(self, name: str, keywords: Sequence[str]) -> bool:
        async with self._lock:
            if name not in self._categories:
                return False
            self._categories[name] = Category(name=name, keywords=tuple(keywords))
        self._notify_invalidation(name)
        return True

    # ------------------------------------------------------------------
    # Caller-side helpers (persistence is the caller's job, not the engines')
    # ------------------------------------------------------------------

    async def add_transaction(
        self,
        user_id: str,
        amount: float,
        description: str,
        category: str = DEFAULT_CATEGORY,
        timestamp: datetime | None = None,
    ) -> TransactionRecord:
        """Record a transaction for a user."""
        record = TransactionRecord(
            amount=amount,
            description=description,
            category=category,
            timestamp=timestamp or self._clock(),
        )
        async with self._lock:
            self._transactions.setdefault(user_id, []).append(record)
        return record

    async def set_user_config(self, config: UserBudgetConfig) -> None:
        """Replace a user's budget config."""
        async with self._lock:
            self._configs[config.user_id] = replace(config)

    @property
    def keyword_candidates(self) -> list[KeywordCandidate]:
        """Snapshot of the keyword-candidate audit log."""
        return list(self._keyword_candidates)


__all__ = [
    "ExpenseStorage",
    "InMemoryExpenseStorage",
    "InvalidationListener",
    "InvalidationNotifier",
    "TransactionQuery",
]
