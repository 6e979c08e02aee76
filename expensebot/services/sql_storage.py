"""
SQLAlchemy storage adapter.

Implements the ExpenseStorage contracts on top of the tables in
expensebot/models/finance.py. Session work is synchronous and runs in a
worker thread (asyncio.to_thread), one short session per call, so no
transaction ever spans two contract calls.

Timestamps are stored as naive UTC and handed back timezone-aware.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from expensebot.lib.exceptions import StorageError
from expensebot.models.base import Base
from expensebot.models.finance import (
    CategoryRow,
    KeywordCandidateRow,
    TransactionRow,
    UserBudgetConfigRow,
)
from expensebot.modules.context_dictionaries import DEFAULT_CATEGORIES
from expensebot.modules.expense_models import (
    DEFAULT_CATEGORY,
    Category,
    TransactionRecord,
    TransactionSource,
    UserBudgetConfig,
)
from expensebot.services.storage import InvalidationNotifier, TransactionQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _to_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def create_session_factory(database_url: str, **engine_kwargs: Any) -> sessionmaker[Session]:
    """Create an engine for database_url, make sure the tables exist, and return a session factory."""
    engine = create_engine(database_url, **engine_kwargs)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


class SQLAlchemyExpenseStorage(InvalidationNotifier):
    """
    ExpenseStorage backed by a relational database.

    Args:
        session_factory: Produces SQLAlchemy sessions bound to the database
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__()
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        """Run `work` inside a fresh session on a worker thread."""

        def _in_session() -> T:
            with self._session_factory() as session:
                try:
                    result = work(session)
                    session.commit()
                    return result
                except SQLAlchemyError:
                    session.rollback()
                    raise

        try:
            return await asyncio.to_thread(_in_session)
        except SQLAlchemyError as exc:
            logger.error("storage_operation_failed operation=%s error=%s", operation, exc)
            raise StorageError(f"{operation} failed: {exc}") from exc

    # =========================================================================
    # Read contracts
    # =========================================================================

    async def list_categories(self) -> list[Category]:
        def work(session: Session) -> list[Category]:
            rows = session.scalars(select(CategoryRow).order_by(CategoryRow.name)).all()
            return [Category(name=row.name, keywords=tuple(row.keywords or ())) for row in rows]

        return await self._run("list_categories", work)

    async def get_user_config(self, user_id: str) -> UserBudgetConfig:
        def work(session: Session) -> UserBudgetConfig:
            row = session.scalars(
                select(UserBudgetConfigRow).where(UserBudgetConfigRow.user_id == user_id)
            ).first()
            if row is None:
                defaults = UserBudgetConfig(user_id=user_id)
                row = UserBudgetConfigRow(
                    user_id=user_id,
                    daily_limit=defaults.daily_limit,
                    weekly_limit=defaults.weekly_limit,
                    monthly_limit=defaults.monthly_limit,
                    alert_thresholds=list(defaults.alert_thresholds),
                    timezone=defaults.timezone,
                )
                session.add(row)
                logger.info("user_config_created user=%s", user_id)
            return UserBudgetConfig(
                user_id=row.user_id,
                daily_limit=float(row.daily_limit),
                weekly_limit=float(row.weekly_limit),
                monthly_limit=float(row.monthly_limit),
                alert_thresholds=tuple(int(value) for value in row.alert_thresholds or ()),
                timezone=row.timezone,
            )

        return await self._run("get_user_config", work)

    async def query_transactions(
        self,
        user_id: str,
        query: TransactionQuery,
    ) -> list[TransactionRecord]:
        start, end = query.window(self._clock())

        def work(session: Session) -> list[TransactionRecord]:
            stmt = (
                select(TransactionRow)
                .where(TransactionRow.user_id == user_id)
                .where(TransactionRow.timestamp >= _to_naive_utc(start))
                .where(TransactionRow.timestamp <= _to_naive_utc(end))
                .order_by(TransactionRow.timestamp)
            )
            if query.category is not None:
                stmt = stmt.where(TransactionRow.category == query.category)
            return [
                TransactionRecord(
                    amount=float(row.amount),
                    description=row.description or "",
                    timestamp=_to_aware_utc(row.timestamp),
                    category=row.category,
                )
                for row in session.scalars(stmt).all()
            ]

        return await self._run("query_transactions", work)

    # =========================================================================
    # Write contracts
    # =========================================================================

    async def record_keyword_candidate(
        self,
        user_id: str,
        category: str,
        token: str,
        frequency: int,
    ) -> None:
        recorded_at = _to_naive_utc(self._clock())

        def work(session: Session) -> None:
            session.add(KeywordCandidateRow(
                user_id=user_id,
                category=category,
                token=token,
                observed_frequency=frequency,
                recorded_at=recorded_at,
            ))

        await self._run("record_keyword_candidate", work)

    async def update_category_keywords(self, name: str, keywords: Sequence[str]) -> bool:
        def work(session: Session) -> bool:
            row = session.scalars(select(CategoryRow).where(CategoryRow.name == name)).first()
            if row is None:
                return False
            row.keywords = list(keywords)
            return True

        updated = await self._run("update_category_keywords", work)
        if updated:
            self._notify_invalidation(name)
        return updated

    # =========================================================================
    # Caller-side helpers
    # =========================================================================

    async def seed_default_categories(self) -> int:
        """Insert the default category directory where missing. Returns rows added."""

        def work(session: Session) -> int:
            existing = set(session.scalars(select(CategoryRow.name)).all())
            added = 0
            for name, keywords in DEFAULT_CATEGORIES:
                if name not in existing:
                    session.add(CategoryRow(name=name, keywords=list(keywords)))
                    added += 1
            return added

        added = await self._run("seed_default_categories", work)
        if added:
            logger.info("categories_seeded count=%s", added)
        return added

    async def record_transaction(
        self,
        user_id: str,
        amount: float,
        description: str,
        category: str = DEFAULT_CATEGORY,
        source: TransactionSource = TransactionSource.MANUAL,
        raw_text: str | None = None,
        timestamp: datetime | None = None,
    ) -> TransactionRecord:
        """Persist a transaction. Unknown categories are stored as "other"."""
        when = timestamp or self._clock()

        def work(session: Session) -> str:
            known = session.scalars(select(CategoryRow.name).where(CategoryRow.name == category)).first()
            stored_category = category if known is not None else DEFAULT_CATEGORY
            session.add(TransactionRow(
                user_id=user_id,
                amount=amount,
                description=description,
                category=stored_category,
                timestamp=_to_naive_utc(when),
                source=source.value,
                raw_text=raw_text,
            ))
            return stored_category

        stored_category = await self._run("record_transaction", work)
        return TransactionRecord(
            amount=amount,
            description=description,
            timestamp=_to_aware_utc(when),
            category=stored_category,
        )

    async def set_user_config(self, config: UserBudgetConfig) -> None:
        """Create or replace a user's budget configuration."""

        def work(session: Session) -> None:
            row = session.scalars(
                select(UserBudgetConfigRow).where(UserBudgetConfigRow.user_id == config.user_id)
            ).first()
            if row is None:
                row = UserBudgetConfigRow(user_id=config.user_id)
                session.add(row)
            row.daily_limit = config.daily_limit
            row.weekly_limit = config.weekly_limit
            row.monthly_limit = config.monthly_limit
            row.alert_thresholds = list(config.alert_thresholds)
            row.timezone = config.timezone

        await self._run("set_user_config", work)


__all__ = ["SQLAlchemyExpenseStorage", "create_session_factory"]
