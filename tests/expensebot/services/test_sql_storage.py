"""
Tests for the SQLAlchemy storage adapter.

Runs against in-memory SQLite (see the db_session_factory fixture).
"""

from __future__ import annotations

from datetime import UTC, timedelta
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from expensebot.lib.exceptions import StorageError
from expensebot.models.finance import KeywordCandidateRow, TransactionRow
from expensebot.modules.alerts import AlertEngine
from expensebot.modules.categorization import CategorizationEngine
from expensebot.modules.context_dictionaries import DEFAULT_CATEGORIES
from expensebot.modules.expense_models import (
    DEFAULT_CATEGORY,
    AlertType,
    TransactionSource,
    UserBudgetConfig,
)
from expensebot.services.sql_storage import SQLAlchemyExpenseStorage
from expensebot.services.storage import ExpenseStorage, TransactionQuery


class TestCategories:

    async def test_seeded_directory(self, sql_storage):
        categories = await sql_storage.list_categories()
        assert [c.name for c in categories] == sorted(name for name, _ in DEFAULT_CATEGORIES)
        comida = next(c for c in categories if c.name == "comida")
        assert comida.keywords[:3] == ("restaurante", "comida", "tacos")

    async def test_seeding_is_idempotent(self, sql_storage):
        assert await sql_storage.seed_default_categories() == 0

    async def test_update_keywords_notifies(self, sql_storage):
        seen = []
        sql_storage.add_invalidation_listener(seen.append)

        assert await sql_storage.update_category_keywords("salud", ["vitaminas"]) is True
        assert await sql_storage.update_category_keywords("viajes", ["hotel"]) is False

        salud = next(c for c in await sql_storage.list_categories() if c.name == "salud")
        assert salud.keywords == ("vitaminas",)
        assert seen == ["salud"]

    async def test_satisfies_protocol(self, sql_storage):
        assert isinstance(sql_storage, ExpenseStorage)


class TestUserConfig:

    async def test_created_lazily_with_defaults(self, sql_storage):
        assert await sql_storage.get_user_config("u1") == UserBudgetConfig(user_id="u1")
        # second read finds the stored row
        assert await sql_storage.get_user_config("u1") == UserBudgetConfig(user_id="u1")

    async def test_set_user_config(self, sql_storage):
        config = UserBudgetConfig(
            user_id="u1",
            daily_limit=50.0,
            alert_thresholds=(50, 80),
            timezone="Europe/Madrid",
        )
        await sql_storage.set_user_config(config)
        assert await sql_storage.get_user_config("u1") == config


class TestTransactions:

    async def test_record_and_query(self, sql_storage, clock):
        record = await sql_storage.record_transaction(
            "u1", 30.0, "Tacos", "comida", raw_text="gaste $30 en tacos"
        )
        assert record.timestamp == clock()

        rows = await sql_storage.query_transactions("u1", TransactionQuery(since=timedelta(days=1)))
        assert rows == [record]
        assert rows[0].timestamp.tzinfo is not None

    async def test_unknown_category_is_stored_as_fallback(self, sql_storage):
        record = await sql_storage.record_transaction("u1", 10.0, "algo", "viajes")
        assert record.category == DEFAULT_CATEGORY

    async def test_source_and_raw_text_are_kept(self, sql_storage, db_session_factory):
        await sql_storage.record_transaction(
            "u1", 10.0, "cafe", "comida", source=TransactionSource.VOICE, raw_text="cafe 10"
        )
        with db_session_factory() as session:
            row = session.scalars(select(TransactionRow)).one()
        assert (row.source, row.raw_text) == ("voice", "cafe 10")

    async def test_window_and_category(self, sql_storage, clock):
        await sql_storage.record_transaction("u1", 1.0, "a", "comida", timestamp=clock() - timedelta(days=2))
        await sql_storage.record_transaction("u1", 2.0, "b", "comida", timestamp=clock() - timedelta(days=10))
        await sql_storage.record_transaction("u1", 3.0, "c", "transporte", timestamp=clock() - timedelta(hours=1))
        await sql_storage.record_transaction("u2", 4.0, "d", "comida", timestamp=clock())

        week = await sql_storage.query_transactions("u1", TransactionQuery(since=timedelta(days=7)))
        assert [r.description for r in week] == ["a", "c"]

        comida = await sql_storage.query_transactions(
            "u1", TransactionQuery(since=timedelta(days=30), category="comida")
        )
        assert [r.description for r in comida] == ["b", "a"]

    async def test_aware_timestamps_in_other_zones(self, sql_storage, clock):
        local = clock().astimezone(ZoneInfo("America/Mexico_City"))
        record = await sql_storage.record_transaction("u1", 1.0, "a", timestamp=local)

        assert record.timestamp == clock()
        assert record.timestamp.tzinfo == UTC


class TestKeywordCandidates:

    async def test_recorded(self, sql_storage, db_session_factory, clock):
        await sql_storage.record_keyword_candidate("u1", "comida", "pastor", 3)

        with db_session_factory() as session:
            row = session.scalars(select(KeywordCandidateRow)).one()
        assert (row.user_id, row.category, row.token, row.observed_frequency) == (
            "u1",
            "comida",
            "pastor",
            3,
        )
        assert row.recorded_at == clock().replace(tzinfo=None)


class TestFailures:

    @pytest.fixture()
    def broken_storage(self):
        # fresh database without tables
        engine = create_engine("sqlite://")
        yield SQLAlchemyExpenseStorage(sessionmaker(bind=engine))
        engine.dispose()

    async def test_errors_are_wrapped(self, broken_storage):
        with pytest.raises(StorageError, match="list_categories failed"):
            await broken_storage.list_categories()

    async def test_engines_degrade(self, broken_storage, settings):
        engine = CategorizationEngine(broken_storage, settings=settings)
        assert await engine.categorize("uber") == DEFAULT_CATEGORY

        alerts = AlertEngine(broken_storage, settings=settings)
        assert await alerts.evaluate("u1", 500.0, "comida") == []


class TestEnginesOnSql:

    async def test_categorize_with_history(self, sql_storage, settings, clock):
        for i in range(3):
            await sql_storage.record_transaction(
                "u1", 80.0, "Don Pepe", "comida", timestamp=clock() - timedelta(days=1, minutes=i)
            )

        engine = CategorizationEngine(sql_storage, settings=settings)
        assert await engine.categorize("don pepe", user_id="u1") == "comida"

    async def test_budget_alert(self, sql_storage, settings, clock):
        await sql_storage.record_transaction("u1", 60.0, "super", "gastos_fijos", timestamp=clock())

        engine = AlertEngine(sql_storage, settings=settings, clock=clock)
        alerts = await engine.evaluate("u1", 15.0)

        assert [a.type for a in alerts] == [AlertType.BUDGET_WARNING]
        assert alerts[0].payload["percentage"] == 75
