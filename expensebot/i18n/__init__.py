"""
i18n foundation for expensebot.

Alert and summary text is user-facing and therefore goes through the
translation registry in expensebot/i18n/strings.py, never hardcoded.
Supported languages: Spanish (es, default) and English (en).
"""

from __future__ import annotations

from typing import Literal

from expensebot.i18n.strings import t

# Supported languages (ISO 639-1 codes)
LANGUAGES: list[str] = ["es", "en"]

LanguageCode = Literal["es", "en"]

DEFAULT_LANGUAGE: LanguageCode = "es"


def is_valid_language(lang: str) -> bool:
    """Check if a language code is supported."""
    return lang in LANGUAGES


__all__ = ["LANGUAGES", "LanguageCode", "DEFAULT_LANGUAGE", "is_valid_language", "t"]
