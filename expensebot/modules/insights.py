"""
Spending insights: per-category and per-hour aggregates over a trailing
window, and the plain-language suggestions derived from them.

Read-only. Like the engines, a storage failure degrades (None / no
suggestions) instead of raising.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from expensebot.config.settings import Settings, get_settings
from expensebot.i18n import t
from expensebot.lib.exceptions import StorageError, call_storage
from expensebot.modules.expense_models import DEFAULT_TIMEZONE
from expensebot.services.storage import ExpenseStorage, TransactionQuery

logger = logging.getLogger(__name__)


@dataclass
class CategoryStats:
    count: int = 0
    total: float = 0.0
    min: float = float("inf")
    max: float = 0.0

    @property
    def avg(self) -> float:
        return self.total / self.count if self.count else 0.0

    def add(self, amount: float) -> None:
        self.count += 1
        self.total += amount
        self.min = min(self.min, amount)
        self.max = max(self.max, amount)


@dataclass
class HourStats:
    count: int = 0
    amount: float = 0.0


@dataclass
class SpendingPatterns:
    """Aggregates for one user over a trailing window."""

    days: int
    by_category: dict[str, CategoryStats] = field(default_factory=dict)
    by_hour: dict[int, HourStats] = field(default_factory=dict)
    total_transactions: int = 0
    total_amount: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "days": self.days,
            "by_category": {
                name: {
                    "count": stats.count,
                    "total": stats.total,
                    "avg": stats.avg,
                    "min": stats.min,
                    "max": stats.max,
                }
                for name, stats in self.by_category.items()
            },
            "by_hour": {
                hour: {"count": stats.count, "amount": stats.amount}
                for hour, stats in self.by_hour.items()
            },
            "total_transactions": self.total_transactions,
            "total_amount": self.total_amount,
        }


@dataclass(frozen=True)
class Suggestion:
    type: str  # category_alert | time_alert
    message: str
    amount: float
    category: str | None = None
    hour: int | None = None


class SpendingInsights:
    """
    Aggregate a user's history into spending patterns.

    Hours are bucketed in the user's configured timezone.

    Args:
        storage: Storage adapter implementing ExpenseStorage
        settings: Runtime settings (process-wide settings if None)
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        storage: ExpenseStorage,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def analyze_spending_patterns(self, user_id: str, days: int = 30) -> SpendingPatterns | None:
        """Aggregate the last `days` days of a user's transactions.

        Returns:
            SpendingPatterns, or None if storage fails
        """
        timeout = self._settings.storage_timeout
        try:
            config = await call_storage(
                self._storage.get_user_config(user_id), timeout, "get_user_config"
            )
            transactions = await call_storage(
                self._storage.query_transactions(
                    user_id, TransactionQuery(since=timedelta(days=days), until=self._clock())
                ),
                timeout,
                "query_transactions",
            )
        except StorageError as exc:
            logger.warning("spending_analysis_failed user=%s error=%s", user_id, exc)
            return None

        try:
            zone = ZoneInfo(config.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            zone = ZoneInfo(DEFAULT_TIMEZONE)

        patterns = SpendingPatterns(days=days)
        for txn in transactions:
            patterns.by_category.setdefault(txn.category, CategoryStats()).add(txn.amount)
            hour = patterns.by_hour.setdefault(txn.timestamp.astimezone(zone).hour, HourStats())
            hour.count += 1
            hour.amount += txn.amount
            patterns.total_transactions += 1
            patterns.total_amount += txn.amount
        return patterns

    async def suggestions(self, user_id: str) -> list[Suggestion]:
        """Top-category and top-hour suggestions from the last 30 days."""
        patterns = await self.analyze_spending_patterns(user_id)
        if patterns is None:
            return []

        lang = self._settings.language
        result: list[Suggestion] = []

        if patterns.by_category:
            name, stats = max(patterns.by_category.items(), key=lambda item: item[1].total)
            result.append(Suggestion(
                type="category_alert",
                message=t(lang, "insights", "top_category", category=name, amount=f"{stats.total:.2f}"),
                amount=stats.total,
                category=name,
            ))

        if patterns.by_hour:
            hour, hour_stats = max(patterns.by_hour.items(), key=lambda item: item[1].amount)
            result.append(Suggestion(
                type="time_alert",
                message=t(lang, "insights", "top_hour", hour=hour, amount=f"{hour_stats.amount:.2f}"),
                amount=hour_stats.amount,
                hour=hour,
            ))

        return result


__all__ = ["CategoryStats", "HourStats", "SpendingInsights", "SpendingPatterns", "Suggestion"]
