"""
expensebot: natural-language expense capture.

Three rule engines turn a chat message into a categorized expense plus
budget alerts:

    - modules/expense_parsing.py: MessageParser (text -> ParsedExpense)
    - modules/categorization.py: CategorizationEngine (description -> category)
    - modules/alerts.py: AlertEngine (amount + category -> alerts)

modules/capture.py wires them together for a single message. Storage is
consumed only through the contracts in services/storage.py.
"""

from expensebot.modules.alerts import AlertEngine
from expensebot.modules.capture import CaptureResult, ExpenseCapture
from expensebot.modules.categorization import CategorizationEngine
from expensebot.modules.expense_parsing import MessageParser, parse_expense

__version__ = "1.0.0"

__all__ = [
    "AlertEngine",
    "CaptureResult",
    "CategorizationEngine",
    "ExpenseCapture",
    "MessageParser",
    "parse_expense",
    "__version__",
]
