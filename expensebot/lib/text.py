"""
Text normalization shared by the parser and the categorization engine.

Only accented Latin vowels and the enye are folded; other non-ASCII
characters are left alone so the parser keeps its currency symbols.
"""

from __future__ import annotations

import re

_ACCENT_TABLE = str.maketrans({
    "á": "a", "à": "a", "ä": "a", "â": "a",
    "é": "e", "è": "e", "ë": "e", "ê": "e",
    "í": "i", "ì": "i", "ï": "i", "î": "i",
    "ó": "o", "ò": "o", "ö": "o", "ô": "o",
    "ú": "u", "ù": "u", "ü": "u", "û": "u",
    "ñ": "n",
})

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


def fold_accents(text: str) -> str:
    """Replace accented vowels and ñ with their unaccented ASCII letters."""
    return text.translate(_ACCENT_TABLE)


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_text(text: str) -> str:
    """Lowercase, fold accents and collapse whitespace."""
    return collapse_whitespace(fold_accents(text.lower()))


def normalize_for_matching(text: str) -> str:
    """Like normalize_text, but punctuation and symbols become spaces.

    Used wherever punctuation must not contribute to keyword matching.
    """
    folded = fold_accents(text.lower())
    return collapse_whitespace(_NON_ALNUM_RE.sub(" ", folded))


def tokenize(text: str) -> list[str]:
    """Split already-normalized text into its space-separated tokens."""
    return [token for token in text.split(" ") if token]
