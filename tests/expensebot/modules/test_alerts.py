"""
Tests for the alert engine.

Covers:
- Budget warning bands, priorities and the exceeded alert
- Category anomaly detector and its history guard
- Unusual-hour and burst pattern detectors
- Per-detector failure isolation and total-failure degradation
- Suppression within and after the window
- Daily summary and scheduled alerts
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from expensebot.config.settings import Settings
from expensebot.lib.exceptions import CacheError, StorageError
from expensebot.modules.alerts import AlertEngine
from expensebot.modules.expense_models import AlertPriority, AlertType, UserBudgetConfig
from expensebot.services.storage import InMemoryExpenseStorage

USER = "5215512345678"

# =============================================================================
# Helpers
# =============================================================================


async def _spend(storage, clock, amount, category="other", ago=timedelta(hours=1), description="gasto"):
    await storage.add_transaction(
        USER, amount, description, category=category, timestamp=clock() - ago
    )


async def _set_limits(storage, daily=100.0, weekly=1000.0, monthly=10000.0, **kwargs):
    await storage.set_user_config(
        UserBudgetConfig(
            user_id=USER,
            daily_limit=daily,
            weekly_limit=weekly,
            monthly_limit=monthly,
            **kwargs,
        )
    )


def _types(alerts):
    return [(alert.type, alert.scope_key) for alert in alerts]


# =============================================================================
# Budget detector
# =============================================================================


class TestBudgetAlerts:

    async def test_warning_in_upper_band_is_high_priority(self, storage, clock, alert_engine):
        await _spend(storage, clock, 75)

        alerts = await alert_engine.evaluate(USER, 20)

        assert _types(alerts) == [(AlertType.BUDGET_WARNING, "day")]
        warning = alerts[0]
        assert warning.priority == AlertPriority.HIGH
        assert warning.payload["percentage"] == 95
        assert warning.payload["spent"] == 95
        assert warning.payload["remaining"] == 5
        assert warning.payload["threshold"] == 90
        assert "95%" in warning.message

    async def test_second_identical_expense_is_suppressed(self, storage, clock, alert_engine):
        await _spend(storage, clock, 75)

        assert len(await alert_engine.evaluate(USER, 20)) == 1
        clock.advance(seconds=30)
        assert await alert_engine.evaluate(USER, 20) == []

    async def test_warning_in_lower_band_is_medium_priority(self, storage, clock, alert_engine):
        await _spend(storage, clock, 65)

        alerts = await alert_engine.evaluate(USER, 10)

        assert _types(alerts) == [(AlertType.BUDGET_WARNING, "day")]
        assert alerts[0].priority == AlertPriority.MEDIUM
        assert alerts[0].payload["threshold"] == 70

    async def test_between_bands_is_silent(self, storage, clock, alert_engine):
        await _spend(storage, clock, 80)
        assert await alert_engine.evaluate(USER, 5) == []

    async def test_exceeded_is_critical(self, storage, clock, alert_engine):
        await _spend(storage, clock, 90)

        alerts = await alert_engine.evaluate(USER, 30)

        assert _types(alerts) == [(AlertType.BUDGET_EXCEEDED, "day")]
        exceeded = alerts[0]
        assert exceeded.priority == AlertPriority.CRITICAL
        assert exceeded.payload["spent"] == 120
        assert exceeded.payload["excess"] == 20

    async def test_exceeded_ignores_warning_suppression(self, storage, clock, alert_engine):
        await _spend(storage, clock, 75)
        assert _types(await alert_engine.evaluate(USER, 20)) == [(AlertType.BUDGET_WARNING, "day")]

        await _spend(storage, clock, 15, ago=timedelta(minutes=5))
        alerts = await alert_engine.evaluate(USER, 30)

        assert _types(alerts) == [(AlertType.BUDGET_EXCEEDED, "day")]

    async def test_exactly_at_limit_is_not_exceeded(self, storage, clock, alert_engine):
        await _spend(storage, clock, 60)
        assert await alert_engine.evaluate(USER, 40) == []

    async def test_every_period_is_checked(self, storage, clock, alert_engine):
        await _set_limits(storage, daily=10000, weekly=100, monthly=100)
        await _spend(storage, clock, 95, ago=timedelta(days=3))

        alerts = await alert_engine.evaluate(USER, 10)

        assert _types(alerts) == [
            (AlertType.BUDGET_EXCEEDED, "week"),
            (AlertType.BUDGET_EXCEEDED, "month"),
        ]

    async def test_custom_thresholds(self, storage, clock, alert_engine):
        await _set_limits(storage, alert_thresholds=(50,))
        await _spend(storage, clock, 50)

        alerts = await alert_engine.evaluate(USER, 5)

        assert _types(alerts) == [(AlertType.BUDGET_WARNING, "day")]
        assert alerts[0].payload["threshold"] == 50

    async def test_old_spend_leaves_the_daily_window(self, storage, clock, alert_engine):
        await _spend(storage, clock, 75, ago=timedelta(days=1, minutes=1))
        assert await alert_engine.evaluate(USER, 20) == []

    async def test_pending_amount_counts_toward_budget(self, alert_engine):
        assert await alert_engine.evaluate(USER, 50) == []

        alerts = await alert_engine.evaluate(USER, 50, "comida", pending_amount=60)

        assert _types(alerts) == [(AlertType.BUDGET_EXCEEDED, "day")]
        assert alerts[0].payload["spent"] == 110
        assert alerts[0].payload["excess"] == 10


# =============================================================================
# Category detector
# =============================================================================


class TestCategoryAlerts:

    @pytest.fixture(autouse=True)
    async def _generous_budget(self, storage):
        await _set_limits(storage, daily=100000, weekly=100000, monthly=100000)

    async def _history(self, storage, clock, count, amount=50.0):
        for day in range(1, count + 1):
            await _spend(storage, clock, amount, category="comida", ago=timedelta(days=day))

    async def test_unusual_and_limit(self, storage, clock, alert_engine):
        await self._history(storage, clock, 4)

        alerts = await alert_engine.evaluate(USER, 150, "comida")

        assert _types(alerts) == [
            (AlertType.UNUSUAL_SPENDING, "comida"),
            (AlertType.CATEGORY_LIMIT, "comida"),
        ]
        unusual, limit = alerts
        assert unusual.priority == AlertPriority.MEDIUM
        assert unusual.payload["average"] == 50
        assert limit.priority == AlertPriority.HIGH
        assert limit.payload["spent"] == 350
        assert limit.payload["limit"] == 300

    async def test_requires_more_than_three_prior(self, storage, clock, alert_engine):
        await self._history(storage, clock, 3)
        assert await alert_engine.evaluate(USER, 150, "comida") == []

    async def test_normal_amount_is_silent(self, storage, clock, alert_engine):
        await self._history(storage, clock, 4)
        assert await alert_engine.evaluate(USER, 60, "comida") == []

    async def test_thresholds_follow_history(self, storage, clock, alert_engine):
        await self._history(storage, clock, 6, amount=10.0)
        # average 10, total 60: 24 stays under 25 and 84 under 90
        assert await alert_engine.evaluate(USER, 24, "comida") == []
        # 40 is over 25 and 100 over 90
        alerts = await alert_engine.evaluate(USER, 40, "comida")
        assert _types(alerts) == [
            (AlertType.UNUSUAL_SPENDING, "comida"),
            (AlertType.CATEGORY_LIMIT, "comida"),
        ]

    async def test_skipped_without_category(self, storage, clock, alert_engine):
        await self._history(storage, clock, 4)
        assert await alert_engine.evaluate(USER, 150) == []

    async def test_other_categories_do_not_count(self, storage, clock, alert_engine):
        await self._history(storage, clock, 4)
        assert await alert_engine.evaluate(USER, 150, "transporte") == []


# =============================================================================
# Pattern detector
# =============================================================================


class TestPatternAlerts:

    @pytest.fixture(autouse=True)
    async def _generous_budget(self, storage):
        await _set_limits(storage, daily=100000, weekly=100000, monthly=100000)

    async def test_unusual_time(self, storage, alert_engine):
        alerts = await alert_engine.evaluate(USER, 150)

        assert _types(alerts) == [(AlertType.SPENDING_PATTERN, "general")]
        pattern = alerts[0]
        assert pattern.priority == AlertPriority.LOW
        assert pattern.payload["pattern"] == "unusual_time"
        # 18:30 UTC is 12:30 in Mexico City
        assert pattern.payload["hour"] == 12

    async def test_usual_hour_is_silent(self, storage, clock, alert_engine):
        await _spend(storage, clock, 10, ago=timedelta(days=2))
        await _spend(storage, clock, 10, ago=timedelta(days=3))
        assert await alert_engine.evaluate(USER, 150) == []

    async def test_small_amount_at_unusual_time_is_silent(self, alert_engine):
        assert await alert_engine.evaluate(USER, 100) == []

    async def test_hour_follows_user_timezone(self, storage, clock, alert_engine):
        await _set_limits(
            storage, daily=100000, weekly=100000, monthly=100000, timezone="Europe/Madrid"
        )
        alerts = await alert_engine.evaluate(USER, 150)
        assert alerts[0].payload["hour"] == 19

    async def test_frequent_spending(self, storage, clock, alert_engine):
        for minutes in (10, 20, 30, 40, 50):
            await _spend(storage, clock, 10, ago=timedelta(minutes=minutes))

        alerts = await alert_engine.evaluate(USER, 10)

        assert _types(alerts) == [(AlertType.SPENDING_PATTERN, "general")]
        burst = alerts[0]
        assert burst.priority == AlertPriority.MEDIUM
        assert burst.payload["pattern"] == "frequent_spending"
        assert burst.payload["count"] == 5
        assert burst.payload["total"] == 60

    async def test_four_recent_is_not_a_burst(self, storage, clock, alert_engine):
        for minutes in (10, 20, 30, 40):
            await _spend(storage, clock, 10, ago=timedelta(minutes=minutes))
        assert await alert_engine.evaluate(USER, 10) == []


# =============================================================================
# Failure handling
# =============================================================================


class CategoryQueryFailingStorage(InMemoryExpenseStorage):
    """Storage whose category-filtered history reads always fail."""

    async def query_transactions(self, user_id, query):
        if query.category is not None:
            raise StorageError("category index unavailable")
        return await super().query_transactions(user_id, query)


class SlowStorage(InMemoryExpenseStorage):
    """Storage whose history reads never finish in time."""

    async def query_transactions(self, user_id, query):
        await asyncio.sleep(10)
        return []


class TestFailureHandling:

    async def test_failing_detector_is_isolated(self, clock, settings):
        storage = CategoryQueryFailingStorage(clock=clock)
        engine = AlertEngine(storage, settings=settings, clock=clock)

        alerts = await engine.evaluate(USER, 95, "comida")

        assert _types(alerts) == [(AlertType.BUDGET_WARNING, "day")]

    async def test_unexpected_detector_error_is_isolated(self, storage, clock, alert_engine):
        await _spend(storage, clock, 75)
        with patch.object(alert_engine, "_pattern_alerts", AsyncMock(side_effect=ZeroDivisionError)):
            alerts = await alert_engine.evaluate(USER, 20)
        assert _types(alerts) == [(AlertType.BUDGET_WARNING, "day")]

    async def test_timeouts_are_detector_failures(self, clock):
        storage = SlowStorage(clock=clock)
        engine = AlertEngine(storage, settings=Settings(storage_timeout=0.01), clock=clock)

        assert await engine.evaluate(USER, 500, "comida") == []

    async def test_config_failure_returns_empty(self, storage, alert_engine):
        with patch.object(storage, "get_user_config", AsyncMock(side_effect=StorageError("down"))):
            assert await alert_engine.evaluate(USER, 500) == []

    @pytest.mark.parametrize("error", [CacheError("redis OOM"), RuntimeError("cache down")])
    async def test_suppression_failure_returns_empty(self, storage, clock, alert_engine, error):
        await _spend(storage, clock, 90)
        with patch.object(
            alert_engine.suppression,
            "filter_and_register",
            AsyncMock(side_effect=error),
        ):
            assert await alert_engine.evaluate(USER, 30) == []


# =============================================================================
# Suppression
# =============================================================================


class TestSuppression:

    async def test_alert_returns_after_window(self, storage, clock, alert_engine):
        await _spend(storage, clock, 90)
        assert len(await alert_engine.evaluate(USER, 30)) == 1

        clock.advance(minutes=59)
        assert await alert_engine.evaluate(USER, 30) == []

        clock.advance(minutes=1, seconds=1)
        assert _types(await alert_engine.evaluate(USER, 30)) == [(AlertType.BUDGET_EXCEEDED, "day")]

    async def test_suppression_is_per_user(self, storage, clock, alert_engine):
        await _spend(storage, clock, 90)
        await storage.add_transaction("other-user", 90, "gasto", timestamp=clock() - timedelta(hours=1))

        assert len(await alert_engine.evaluate(USER, 30)) == 1
        assert len(await alert_engine.evaluate("other-user", 30)) == 1

    async def test_concurrent_evaluations_emit_once(self, storage, clock, alert_engine):
        await _spend(storage, clock, 90)

        results = await asyncio.gather(*(alert_engine.evaluate(USER, 30) for _ in range(5)))

        assert sum(len(alerts) for alerts in results) == 1


# =============================================================================
# Summaries
# =============================================================================


class TestDailySummary:

    async def _today(self, storage, clock):
        await _spend(storage, clock, 40, category="comida", ago=timedelta(hours=1))
        await _spend(storage, clock, 15, category="comida", ago=timedelta(hours=2))
        await _spend(storage, clock, 25, category="transporte", ago=timedelta(hours=3))
        # 23:30 local the previous day
        await _spend(storage, clock, 500, category="compras", ago=timedelta(hours=13))

    async def test_summary_covers_local_day(self, storage, clock, alert_engine):
        await self._today(storage, clock)

        summary = await alert_engine.daily_summary(USER)

        assert summary.type == AlertType.DAILY_SUMMARY
        assert summary.priority == AlertPriority.LOW
        assert summary.payload["date"] == "2026-03-10"
        assert summary.payload["total_transactions"] == 3
        assert summary.payload["total_spent"] == 80
        assert summary.payload["daily_progress"] == pytest.approx(80.0)
        assert [row["name"] for row in summary.payload["categories"]] == ["comida", "transporte"]
        assert summary.payload["categories"][0]["transactions"] == 2
        assert "*RESUMEN DEL DIA*" in summary.message
        assert "- comida: $55.00" in summary.message

    async def test_summary_in_english(self, storage, clock):
        engine = AlertEngine(storage, settings=Settings(language="en"), clock=clock)
        await self._today(storage, clock)

        summary = await engine.daily_summary(USER)

        assert "*DAILY SUMMARY*" in summary.message

    async def test_summary_failure_returns_none(self, storage, alert_engine):
        with patch.object(storage, "get_user_config", AsyncMock(side_effect=StorageError("down"))):
            assert await alert_engine.daily_summary(USER) is None

    async def test_scheduled_at_summary_hour(self, storage, clock):
        engine = AlertEngine(storage, settings=Settings(summary_hour=12), clock=clock)
        await self._today(storage, clock)

        alerts = await engine.scheduled_alerts(USER)

        assert [alert.type for alert in alerts] == [AlertType.DAILY_SUMMARY]

    async def test_not_scheduled_at_other_hours(self, storage, clock):
        engine = AlertEngine(storage, settings=Settings(summary_hour=20), clock=clock)
        await self._today(storage, clock)
        assert await engine.scheduled_alerts(USER) == []

    async def test_not_scheduled_without_transactions(self, storage, clock):
        engine = AlertEngine(storage, settings=Settings(summary_hour=12), clock=clock)
        assert await engine.scheduled_alerts(USER) == []

