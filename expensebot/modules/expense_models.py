"""
Expense Data Models.

Dataclasses, enums, and constants shared by the parser, the categorization
engine and the alert engine. The SQLAlchemy tables live in
expensebot/models/finance.py; these are the in-memory shapes that cross the
storage contracts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum, StrEnum
from typing import Any

# =============================================================================
# Constants
# =============================================================================

# The fallback category. Always present, never scored.
DEFAULT_CATEGORY = "other"

# Description used when neither the match nor the context yields one.
DEFAULT_DESCRIPTION = "Expense"

MAX_AMOUNT = 1_000_000.0

DEFAULT_DAILY_LIMIT = 100.0
DEFAULT_WEEKLY_LIMIT = 1000.0
DEFAULT_MONTHLY_LIMIT = 10000.0
DEFAULT_ALERT_THRESHOLDS: tuple[int, ...] = (70, 90)
DEFAULT_TIMEZONE = "America/Mexico_City"


# =============================================================================
# Enums
# =============================================================================

class AlertType(StrEnum):
    """Kinds of alert the alert engine can produce."""

    BUDGET_WARNING = "budget_warning"
    BUDGET_EXCEEDED = "budget_exceeded"
    CATEGORY_LIMIT = "category_limit"
    UNUSUAL_SPENDING = "unusual_spending"
    SPENDING_PATTERN = "spending_pattern"
    DAILY_SUMMARY = "daily_summary"


class AlertPriority(IntEnum):
    """Alert priority, ordered so that comparisons work (LOW < CRITICAL)."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class BudgetPeriod(StrEnum):
    """Budget windows evaluated by the budget-threshold detector."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class TransactionSource(StrEnum):
    """Where a recorded transaction came from."""

    MANUAL = "manual"
    OCR = "ocr"
    VOICE = "voice"


# =============================================================================
# Data classes
# =============================================================================

@dataclass(frozen=True)
class Category:
    """A category-directory entry. Keywords are kept in declaration order."""

    name: str
    keywords: tuple[str, ...] = ()


@dataclass
class UserBudgetConfig:
    """Per-user budget limits and alert thresholds."""

    user_id: str
    daily_limit: float = DEFAULT_DAILY_LIMIT
    weekly_limit: float = DEFAULT_WEEKLY_LIMIT
    monthly_limit: float = DEFAULT_MONTHLY_LIMIT
    alert_thresholds: tuple[int, ...] = DEFAULT_ALERT_THRESHOLDS
    timezone: str = DEFAULT_TIMEZONE

    def limit_for(self, period: BudgetPeriod) -> float:
        """Return the configured limit for a budget period."""
        return {
            BudgetPeriod.DAY: self.daily_limit,
            BudgetPeriod.WEEK: self.weekly_limit,
            BudgetPeriod.MONTH: self.monthly_limit,
        }[period]


@dataclass(frozen=True)
class TransactionRecord:
    """A historical transaction as returned by the history read contract."""

    amount: float
    description: str
    timestamp: datetime
    category: str = DEFAULT_CATEGORY


@dataclass(frozen=True)
class ParsedExpense:
    """An expense extracted from free-form text, before categorization."""

    amount: float
    description: str
    pattern_id: str
    original_text: str


@dataclass
class Alert:
    """A user-facing alert.

    Attributes:
        type: What kind of condition fired
        priority: How urgent it is
        scope_key: Period or category name the alert is about ("general"
            when neither applies)
        payload: Percentages, amounts and the rendered message
    """

    type: AlertType
    priority: AlertPriority
    scope_key: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def suppression_key(self) -> str:
        """Key used for de-duplication: alert type plus its scope."""
        return f"{self.type.value}_{self.scope_key}"

    @property
    def message(self) -> str:
        return str(self.payload.get("message", ""))


@dataclass(frozen=True)
class SuppressionEntry:
    """Last time an alert with a given scope key was emitted for a user."""

    user_id: str
    scope_key: str
    fired_at: datetime


@dataclass(frozen=True)
class KeywordCandidate:
    """Append-only audit record for a token that keeps co-occurring with a category."""

    user_id: str
    category: str
    token: str
    observed_frequency: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


__all__ = [
    "DEFAULT_CATEGORY",
    "DEFAULT_DESCRIPTION",
    "MAX_AMOUNT",
    "DEFAULT_DAILY_LIMIT",
    "DEFAULT_WEEKLY_LIMIT",
    "DEFAULT_MONTHLY_LIMIT",
    "DEFAULT_ALERT_THRESHOLDS",
    "DEFAULT_TIMEZONE",
    "AlertType",
    "AlertPriority",
    "BudgetPeriod",
    "TransactionSource",
    "Category",
    "UserBudgetConfig",
    "TransactionRecord",
    "ParsedExpense",
    "Alert",
    "SuppressionEntry",
    "KeywordCandidate",
]
