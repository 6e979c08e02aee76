"""SQLAlchemy models for expensebot."""

from expensebot.models.base import Base
from expensebot.models.finance import (
    CategoryRow,
    KeywordCandidateRow,
    TransactionRow,
    UserBudgetConfigRow,
)

__all__ = [
    "Base",
    "CategoryRow",
    "KeywordCandidateRow",
    "TransactionRow",
    "UserBudgetConfigRow",
]
