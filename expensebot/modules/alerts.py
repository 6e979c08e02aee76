"""
Alert Engine.

Evaluates a candidate expense against the user's persisted spending and
returns the alerts worth showing. Three detectors run independently:

    - Budget thresholds: day / week / month projected spend against the
      user's limits (warning bands at each threshold, exceeded when over)
    - Category anomaly: the new amount against the category's 30-day
      average and total
    - Patterns: spending at an unusual hour, or many expenses in a short burst

A detector that fails contributes nothing; the others still report. Alerts
whose scope key fired within the suppression window are dropped before
returning. Apart from that suppression state, every call recomputes
everything from storage.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from expensebot.config.settings import Settings, get_settings
from expensebot.i18n import t
from expensebot.lib.exceptions import CacheError, StorageError, call_storage
from expensebot.modules.expense_models import (
    DEFAULT_ALERT_THRESHOLDS,
    DEFAULT_TIMEZONE,
    Alert,
    AlertPriority,
    AlertType,
    BudgetPeriod,
    TransactionRecord,
    UserBudgetConfig,
)
from expensebot.services.storage import ExpenseStorage, TransactionQuery
from expensebot.services.suppression import SuppressionCache

logger = logging.getLogger(__name__)

# Trailing windows per budget period
BUDGET_WINDOWS: tuple[tuple[BudgetPeriod, timedelta], ...] = (
    (BudgetPeriod.DAY, timedelta(days=1)),
    (BudgetPeriod.WEEK, timedelta(days=7)),
    (BudgetPeriod.MONTH, timedelta(days=30)),
)
BAND_WIDTH = 10
HIGH_PRIORITY_PERCENTAGE = 90

CATEGORY_WINDOW = timedelta(days=30)
CATEGORY_MIN_HISTORY = 3
UNUSUAL_AMOUNT_FACTOR = 2.5
CATEGORY_LIMIT_FACTOR = 1.5

UNUSUAL_TIME_WINDOW = timedelta(days=60)
UNUSUAL_TIME_MIN_HISTORY = 2
UNUSUAL_TIME_MIN_AMOUNT = 100
BURST_WINDOW = timedelta(hours=2)
BURST_MIN_COUNT = 5

GENERAL_SCOPE = "general"
SUMMARY_TOP_CATEGORIES = 3


def _money(value: float) -> str:
    return f"{value:.2f}"


def _user_zone(config: UserBudgetConfig) -> ZoneInfo:
    try:
        return ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("invalid_timezone user=%s timezone=%s", config.user_id, config.timezone)
        return ZoneInfo(DEFAULT_TIMEZONE)


class AlertEngine:
    """
    Budget, anomaly and pattern alerting with per-user suppression.

    Args:
        storage: Storage adapter implementing ExpenseStorage
        suppression: Suppression cache (in-memory, settings window, if None)
        settings: Runtime settings (process-wide settings if None)
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        storage: ExpenseStorage,
        suppression: SuppressionCache | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._suppression = suppression or SuppressionCache(
            window_seconds=self._settings.suppression_window,
            clock=self._clock,
        )

    @property
    def suppression(self) -> SuppressionCache:
        return self._suppression

    @property
    def _lang(self) -> str:
        return self._settings.language

    async def _transactions(self, user_id: str, query: TransactionQuery) -> list[TransactionRecord]:
        return await call_storage(
            self._storage.query_transactions(user_id, query),
            self._settings.storage_timeout,
            "query_transactions",
        )

    async def _user_config(self, user_id: str) -> UserBudgetConfig:
        return await call_storage(
            self._storage.get_user_config(user_id),
            self._settings.storage_timeout,
            "get_user_config",
        )

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def evaluate(
        self,
        user_id: str,
        new_amount: float,
        category: str | None = None,
        pending_amount: float = 0.0,
    ) -> list[Alert]:
        """Evaluate every detector for a candidate expense.

        Args:
            user_id: Whose spending to check
            new_amount: The candidate expense amount (not yet persisted)
            category: The candidate's category; the category detector only
                runs when it is given
            pending_amount: Spend accepted earlier in the same message but
                not persisted yet; counted toward the budget projection only

        Returns:
            Alerts in detector order, minus suppressed ones. Empty on total
            failure.
        """
        try:
            config = await self._user_config(user_id)

            alerts: list[Alert] = []
            budget_amount = new_amount + pending_amount
            alerts += await self._isolated(
                "budget", user_id, lambda: self._budget_alerts(user_id, config, budget_amount)
            )
            if category and new_amount > 0:
                alerts += await self._isolated(
                    "category", user_id, lambda: self._category_alerts(user_id, category, new_amount)
                )
            alerts += await self._isolated(
                "pattern", user_id, lambda: self._pattern_alerts(user_id, config, new_amount)
            )

            emitted = await self._suppression.filter_and_register(user_id, alerts)
        except (StorageError, CacheError) as exc:
            logger.warning("alert_evaluation_failed user=%s error=%s", user_id, exc)
            return []
        except Exception as exc:  # Intentional catch-all: alerts are best-effort enrichment
            logger.warning("alert_evaluation_failed user=%s error=%s", user_id, exc, exc_info=True)
            return []

        if emitted:
            logger.info(
                "alerts_emitted user=%s types=%s",
                user_id, ",".join(alert.type.value for alert in emitted),
            )
        return emitted

    async def _isolated(
        self,
        name: str,
        user_id: str,
        detector: Callable[[], Awaitable[list[Alert]]],
    ) -> list[Alert]:
        """Run one detector, turning its failure into an empty result."""
        try:
            return await detector()
        except StorageError as exc:
            logger.warning("alert_detector_failed detector=%s user=%s error=%s", name, user_id, exc)
        except Exception as exc:  # Intentional catch-all: one detector must not sink the others
            logger.warning(
                "alert_detector_failed detector=%s user=%s error=%s",
                name, user_id, exc, exc_info=True,
            )
        return []

    # =========================================================================
    # Detectors
    # =========================================================================

    async def _budget_alerts(
        self,
        user_id: str,
        config: UserBudgetConfig,
        new_amount: float,
    ) -> list[Alert]:
        thresholds = config.alert_thresholds or DEFAULT_ALERT_THRESHOLDS
        alerts: list[Alert] = []

        for period, window in BUDGET_WINDOWS:
            limit = config.limit_for(period)
            if limit <= 0:
                logger.warning("invalid_budget_limit user=%s period=%s", user_id, period.value)
                continue

            history = await self._transactions(user_id, TransactionQuery(since=window))
            projected = sum(txn.amount for txn in history) + new_amount
            percentage = projected / limit * 100
            period_label = t(self._lang, "periods", period.value).upper()

            for threshold in thresholds:
                if threshold <= percentage < threshold + BAND_WIDTH:
                    remaining = max(0.0, limit - projected)
                    alerts.append(Alert(
                        type=AlertType.BUDGET_WARNING,
                        priority=(
                            AlertPriority.HIGH
                            if percentage >= HIGH_PRIORITY_PERCENTAGE
                            else AlertPriority.MEDIUM
                        ),
                        scope_key=period.value,
                        payload={
                            "period": period.value,
                            "percentage": round(percentage),
                            "spent": projected,
                            "limit": limit,
                            "remaining": remaining,
                            "threshold": threshold,
                            "message": t(
                                self._lang, "alerts", "budget_warning",
                                period=period_label,
                                percentage=round(percentage),
                                spent=_money(projected),
                                limit=_money(limit),
                                remaining=_money(remaining),
                            ),
                        },
                    ))

            if projected > limit:
                alerts.append(Alert(
                    type=AlertType.BUDGET_EXCEEDED,
                    priority=AlertPriority.CRITICAL,
                    scope_key=period.value,
                    payload={
                        "period": period.value,
                        "percentage": round(percentage),
                        "spent": projected,
                        "limit": limit,
                        "excess": projected - limit,
                        "message": t(
                            self._lang, "alerts", "budget_exceeded",
                            period=period_label,
                            spent=_money(projected),
                            limit=_money(limit),
                            excess=_money(projected - limit),
                        ),
                    },
                ))

        return alerts

    async def _category_alerts(
        self,
        user_id: str,
        category: str,
        new_amount: float,
    ) -> list[Alert]:
        history = await self._transactions(
            user_id, TransactionQuery(since=CATEGORY_WINDOW, category=category)
        )
        if len(history) <= CATEGORY_MIN_HISTORY:
            return []

        total = sum(txn.amount for txn in history)
        average = total / len(history)
        alerts: list[Alert] = []

        if new_amount > average * UNUSUAL_AMOUNT_FACTOR:
            alerts.append(Alert(
                type=AlertType.UNUSUAL_SPENDING,
                priority=AlertPriority.MEDIUM,
                scope_key=category,
                payload={
                    "category": category,
                    "amount": new_amount,
                    "average": average,
                    "difference": new_amount - average,
                    "message": t(
                        self._lang, "alerts", "unusual_spending",
                        category=category,
                        amount=_money(new_amount),
                        average=_money(average),
                    ),
                },
            ))

        # The baseline is the trailing total without the new expense
        limit = total * CATEGORY_LIMIT_FACTOR
        spent = total + new_amount
        if spent > limit:
            alerts.append(Alert(
                type=AlertType.CATEGORY_LIMIT,
                priority=AlertPriority.HIGH,
                scope_key=category,
                payload={
                    "category": category,
                    "spent": spent,
                    "limit": limit,
                    "message": t(
                        self._lang, "alerts", "category_limit",
                        category=category,
                        spent=_money(spent),
                        limit=_money(limit),
                    ),
                },
            ))

        return alerts

    async def _pattern_alerts(
        self,
        user_id: str,
        config: UserBudgetConfig,
        new_amount: float,
    ) -> list[Alert]:
        zone = _user_zone(config)
        hour = self._clock().astimezone(zone).hour
        alerts: list[Alert] = []

        history = await self._transactions(user_id, TransactionQuery(since=UNUSUAL_TIME_WINDOW))
        same_hour = sum(1 for txn in history if txn.timestamp.astimezone(zone).hour == hour)
        if same_hour < UNUSUAL_TIME_MIN_HISTORY and new_amount > UNUSUAL_TIME_MIN_AMOUNT:
            alerts.append(Alert(
                type=AlertType.SPENDING_PATTERN,
                priority=AlertPriority.LOW,
                scope_key=GENERAL_SCOPE,
                payload={
                    "pattern": "unusual_time",
                    "hour": hour,
                    "amount": new_amount,
                    "message": t(
                        self._lang, "alerts", "unusual_time",
                        hour=hour,
                        amount=_money(new_amount),
                    ),
                },
            ))

        recent = await self._transactions(user_id, TransactionQuery(since=BURST_WINDOW))
        if len(recent) >= BURST_MIN_COUNT:
            total = sum(txn.amount for txn in recent) + new_amount
            alerts.append(Alert(
                type=AlertType.SPENDING_PATTERN,
                priority=AlertPriority.MEDIUM,
                scope_key=GENERAL_SCOPE,
                payload={
                    "pattern": "frequent_spending",
                    "count": len(recent),
                    "total": total,
                    "message": t(
                        self._lang, "alerts", "frequent_spending",
                        count=len(recent),
                        total=_money(total),
                    ),
                },
            ))

        return alerts

    # =========================================================================
    # Summaries
    # =========================================================================

    async def daily_summary(self, user_id: str) -> Alert | None:
        """Summarize today's spending (user's local day).

        Returns:
            A Low-priority DailySummary alert, or None if storage fails
        """
        try:
            config = await self._user_config(user_id)
            return await self._daily_summary(user_id, config)
        except StorageError as exc:
            logger.warning("daily_summary_failed user=%s error=%s", user_id, exc)
        except Exception as exc:  # Intentional catch-all: summaries are best effort
            logger.warning("daily_summary_failed user=%s error=%s", user_id, exc, exc_info=True)
        return None

    async def _daily_summary(self, user_id: str, config: UserBudgetConfig) -> Alert:
        now = self._clock()
        local_now = now.astimezone(_user_zone(config))
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        transactions = await self._transactions(
            user_id, TransactionQuery(since=local_now - midnight, until=now)
        )

        counts: dict[str, int] = defaultdict(int)
        totals: dict[str, float] = defaultdict(float)
        for txn in transactions:
            counts[txn.category] += 1
            totals[txn.category] += txn.amount

        categories = sorted(
            (
                {"name": name, "amount": totals[name], "transactions": counts[name]}
                for name in totals
            ),
            key=lambda row: (-row["amount"], row["name"]),
        )
        total_spent = sum(totals.values())
        progress = total_spent / config.daily_limit * 100 if config.daily_limit > 0 else 0.0

        lines = [
            t(self._lang, "alerts", "daily_summary_title"),
            "",
            t(
                self._lang, "alerts", "daily_summary_body",
                count=len(transactions),
                total=_money(total_spent),
                progress=f"{progress:.1f}",
            ),
        ]
        if categories:
            lines += ["", t(self._lang, "alerts", "daily_summary_by_category")]
            lines += [
                f"- {row['name']}: ${_money(row['amount'])}"
                for row in categories[:SUMMARY_TOP_CATEGORIES]
            ]

        return Alert(
            type=AlertType.DAILY_SUMMARY,
            priority=AlertPriority.LOW,
            scope_key=BudgetPeriod.DAY.value,
            payload={
                "date": local_now.date().isoformat(),
                "total_transactions": len(transactions),
                "total_spent": total_spent,
                "categories": categories,
                "daily_progress": progress,
                "message": "\n".join(lines),
            },
        )

    async def scheduled_alerts(self, user_id: str) -> list[Alert]:
        """Alerts due on a schedule (meant to be polled hourly).

        The daily summary is due when the user's local hour equals the
        configured summary hour and the day has at least one transaction.
        """
        try:
            config = await self._user_config(user_id)
            local_hour = self._clock().astimezone(_user_zone(config)).hour
            if local_hour != self._settings.summary_hour:
                return []
            summary = await self._daily_summary(user_id, config)
        except StorageError as exc:
            logger.warning("scheduled_alerts_failed user=%s error=%s", user_id, exc)
            return []
        except Exception as exc:  # Intentional catch-all: scheduled alerts are best effort
            logger.warning("scheduled_alerts_failed user=%s error=%s", user_id, exc, exc_info=True)
            return []

        if summary.payload["total_transactions"] == 0:
            return []
        return [summary]


__all__ = ["AlertEngine", "BUDGET_WINDOWS", "GENERAL_SCOPE"]
