"""
Lib package for expensebot.

Contains shared utilities:
- exceptions.py: Exception hierarchy and the storage timeout helper
- logging.py: structlog configuration (import it directly; it depends on config)
- text.py: Accent folding and normalization shared by parser and categorizer
"""

from expensebot.lib.exceptions import (
    CacheError,
    ConfigurationError,
    ExpenseBotException,
    StorageError,
    StorageTimeoutError,
    call_storage,
)
from expensebot.lib.text import (
    collapse_whitespace,
    fold_accents,
    normalize_for_matching,
    normalize_text,
    tokenize,
)

__all__ = [
    # Exceptions
    "ExpenseBotException",
    "ConfigurationError",
    "StorageError",
    "StorageTimeoutError",
    "CacheError",
    "call_storage",
    # Text
    "collapse_whitespace",
    "fold_accents",
    "normalize_for_matching",
    "normalize_text",
    "tokenize",
]
