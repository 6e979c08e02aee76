"""
Finance tables for the SQLAlchemy storage adapter.

The engines never touch these directly; they go through
expensebot/services/sql_storage.py, which maps rows to the dataclasses in
expensebot/modules/expense_models.py.

Reference: expensebot/services/storage.py (read/write contracts)
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String, Text

from expensebot.models.base import Base
from expensebot.modules.expense_models import (
    DEFAULT_CATEGORY,
    DEFAULT_DAILY_LIMIT,
    DEFAULT_MONTHLY_LIMIT,
    DEFAULT_TIMEZONE,
    DEFAULT_WEEKLY_LIMIT,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CategoryRow(Base):
    """Category directory entry. Keywords are a JSON list of strings."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False)
    keywords = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class TransactionRow(Base):
    """Recorded expense."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, default=DEFAULT_CATEGORY)
    # Stored as naive UTC
    timestamp = Column(DateTime, nullable=False, default=_utcnow)
    source = Column(String(20), nullable=False, default="manual")
    raw_text = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_transactions_user_id", "user_id"),
        Index("idx_transactions_timestamp", "timestamp"),
        Index("idx_transactions_category", "category"),
    )


class UserBudgetConfigRow(Base):
    """Per-user budget configuration, created lazily with defaults."""

    __tablename__ = "user_budget_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), unique=True, nullable=False)
    daily_limit = Column(Float, nullable=False, default=DEFAULT_DAILY_LIMIT)
    weekly_limit = Column(Float, nullable=False, default=DEFAULT_WEEKLY_LIMIT)
    monthly_limit = Column(Float, nullable=False, default=DEFAULT_MONTHLY_LIMIT)
    alert_thresholds = Column(JSON, nullable=False, default=lambda: [70, 90])
    timezone = Column(String(50), nullable=False, default=DEFAULT_TIMEZONE)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class KeywordCandidateRow(Base):
    """Append-only audit log of tokens proposed for keyword promotion."""

    __tablename__ = "keyword_candidates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    category = Column(String(50), nullable=False)
    token = Column(String(100), nullable=False)
    observed_frequency = Column(Integer, nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=_utcnow)
