"""
Expense capture.

Ties the three engines together for one incoming chat message:
pre-filter -> parse (possibly several expenses) -> categorize -> alerts.

Persisting the expenses and delivering the alert text stay with the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from expensebot.lib.logging import log_context
from expensebot.modules.alerts import AlertEngine
from expensebot.modules.categorization import CategorizationEngine
from expensebot.modules.expense_models import Alert, ParsedExpense
from expensebot.modules.expense_parsing import MessageParser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategorizedExpense:
    """A parsed expense plus the category the engine assigned to it."""

    expense: ParsedExpense
    category: str

    @property
    def amount(self) -> float:
        return self.expense.amount

    @property
    def description(self) -> str:
        return self.expense.description


@dataclass
class CaptureResult:
    """
    Outcome of processing one message.

    recognized is False when the text did not even look like an expense
    (the caller should treat it as a command or chit-chat). A recognized
    message can still carry no expenses when nothing validated.
    """

    recognized: bool
    expenses: list[CategorizedExpense] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)

    @property
    def parsed(self) -> bool:
        return bool(self.expenses)

    @property
    def total(self) -> float:
        return round(sum(item.amount for item in self.expenses), 2)


class ExpenseCapture:
    """
    Message-level orchestration of parser, categorizer and alert engine.

    Args:
        categorizer: Categorization engine
        alerts: Alert engine
        parser: Message parser (default rule table if None)
    """

    def __init__(
        self,
        categorizer: CategorizationEngine,
        alerts: AlertEngine,
        parser: MessageParser | None = None,
    ) -> None:
        self._categorizer = categorizer
        self._alerts = alerts
        self._parser = parser or MessageParser()

    async def process_message(self, user_id: str, text: str) -> CaptureResult:
        """Parse, categorize and evaluate every expense in a message."""
        if not self._parser.is_expense_candidate(text):
            return CaptureResult(recognized=False)

        result = CaptureResult(recognized=True)
        with log_context(user_id=user_id):
            pending = 0.0
            for expense in self._parser.parse_multiple(text):
                category = await self._categorizer.categorize(expense.description, user_id)
                result.expenses.append(CategorizedExpense(expense=expense, category=category))
                # earlier expenses of this message are not persisted yet
                result.alerts += await self._alerts.evaluate(
                    user_id, expense.amount, category, pending_amount=pending
                )
                pending += expense.amount

            logger.info(
                "message_captured expenses=%s alerts=%s",
                len(result.expenses), len(result.alerts),
            )
        return result


__all__ = ["CaptureResult", "CategorizedExpense", "ExpenseCapture"]
