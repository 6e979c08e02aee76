"""
Expense Message Parser.

Turns free-form chat text into a ParsedExpense (amount + description) using
an ordered table of extraction rules. The first rule that matches and
validates wins; later rules are never consulted, even if they would give a
"better" reading.

Examples:
    "gaste $300 en tacos"  -> ParsedExpense(amount=300.0, description="Tacos", ...)
    "tacos $45"            -> ParsedExpense(amount=45.0, description="Tacos", ...)
    "hola como estas"      -> None

Malformed or unrecognized input never raises: the absence of a result is the
only failure signal.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from expensebot.lib.text import collapse_whitespace, fold_accents, normalize_text
from expensebot.modules.context_dictionaries import DESCRIPTION_HINTS
from expensebot.modules.expense_models import DEFAULT_DESCRIPTION, MAX_AMOUNT, ParsedExpense

logger = logging.getLogger(__name__)


# =============================================================================
# Vocabulary
# =============================================================================

# Inflected forms of "spend / buy / pay / give / invest / cost"
ACTION_VERBS: tuple[str, ...] = (
    "gaste", "gasto", "gastamos", "gastaron",
    "compre", "compro", "compramos", "compraron",
    "pague", "pago", "pagamos", "pagaron",
    "di", "dio", "dimos", "dieron",
    "invirti", "invirtio", "invertimos", "invirtieron",
    "costo", "cuesta",
)

# Pre-filter vocabulary: action verbs plus price words
EXPENSE_KEYWORDS: tuple[str, ...] = (*ACTION_VERBS, "vale", "precio")

CONNECTORS: tuple[str, ...] = ("en", "de", "por", "para", "con", "del", "al")

CURRENCY_TOKENS: tuple[str, ...] = ("$", "pesos", "peso", "mxn", "mx")

_ACTION = r"\b(?:" + "|".join(ACTION_VERBS) + r")\b"
_CONNECTOR = r"(?:" + "|".join(CONNECTORS) + r")"
# Grouped thousands ("1,500", "1.500,50") before plain decimals ("45,50")
_NUMBER_BODY = (
    r"\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?"
    r"|\d{1,3}(?:\.\d{3})+(?:,\d{1,2})?"
    r"|\d+(?:[.,]\d{1,2})?"
)
_NUMBER = r"(" + _NUMBER_BODY + r")"
_AMOUNT = r"\$?\s?(?<![\d.,-])" + _NUMBER + r"(?!\d)"
_CURRENCY_SUFFIX = r"(?:\s*\b(?:pesos|mxn|mx)\b)?"

_PESO_RE = re.compile(r"\bpesos?\b")
_EXPENSE_KEYWORD_RE = re.compile(r"\b(?:" + "|".join(EXPENSE_KEYWORDS) + r")\b")
_LOOSE_CURRENCY_RE = re.compile(r"\$?\d+(?:[.,]\d{1,2})?")
_AMOUNT_NOISE_RE = re.compile(r"[$\s]|pesos?|mxn|mx")
_COMMA_GROUPED_RE = re.compile(r"\d{1,3}(?:,\d{3})+(?:\.\d+)?")
_DOT_GROUPED_RE = re.compile(r"\d{1,3}(?:\.\d{3})+(?:,\d+)?")
_LEADING_CONNECTOR_RE = re.compile(r"^" + _CONNECTOR + r"\s+", re.IGNORECASE)
_TRAILING_CONNECTOR_RE = re.compile(r"\s+" + _CONNECTOR + r"$", re.IGNORECASE)
_RESIDUAL_CURRENCY_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\$\s?(?:" + _NUMBER_BODY + r")"),
    re.compile(r"(?:" + _NUMBER_BODY + r")\s*(?:pesos?|mxn)\b", re.IGNORECASE),
    re.compile(r"\$"),
)
_SEGMENT_SEPARATOR_RE = re.compile(r"(?<!\d),|,(?!\d)|;|\n|\s+y\s+", re.IGNORECASE)


# =============================================================================
# Rule table
# =============================================================================

@dataclass(frozen=True)
class ExtractionRule:
    """One declarative extraction rule.

    Attributes:
        rule_id: Provenance tag stored on the ParsedExpense
        expression: Detection regex, applied to normalized text
        amount_group: Index of the group holding the amount
        description_group: Index of the group holding the description, or
            None when the rule carries no description
    """

    rule_id: str
    expression: re.Pattern[str]
    amount_group: int
    description_group: int | None


# Priority order matters: first match wins.
EXTRACTION_RULES: tuple[ExtractionRule, ...] = (
    # "gaste $300 en tacos"
    ExtractionRule(
        rule_id="action_amount_connector_description",
        expression=re.compile(
            _ACTION + r"\s*" + _AMOUNT + _CURRENCY_SUFFIX + r"\s+" + _CONNECTOR + r"\s+(.+)"
        ),
        amount_group=1,
        description_group=2,
    ),
    # "compre gasolina por $200"
    ExtractionRule(
        rule_id="action_description_connector_amount",
        expression=re.compile(
            _ACTION + r"\s+(.+?)\s+(?:por|en|de|a)\s*" + _AMOUNT + _CURRENCY_SUFFIX
        ),
        amount_group=2,
        description_group=1,
    ),
    # "$300 en tacos"
    ExtractionRule(
        rule_id="amount_connector_description",
        expression=re.compile(
            _AMOUNT + _CURRENCY_SUFFIX + r"\s+(?:en|de|por|para)\s+(.+)"
        ),
        amount_group=1,
        description_group=2,
    ),
    # "tacos $45"
    ExtractionRule(
        rule_id="description_amount",
        expression=re.compile(
            r"^(.*?[a-z].*?)\s*" + _AMOUNT + _CURRENCY_SUFFIX + r"$"
        ),
        amount_group=2,
        description_group=1,
    ),
    # "pague 200 la renta"
    ExtractionRule(
        rule_id="action_amount_description",
        expression=re.compile(
            _ACTION + r"\s*" + _AMOUNT + _CURRENCY_SUFFIX + r"\s+(.+)"
        ),
        amount_group=1,
        description_group=2,
    ),
    # "$300"
    ExtractionRule(
        rule_id="amount_only",
        expression=re.compile(r"^\$?\s?" + _NUMBER + _CURRENCY_SUFFIX + r"$"),
        amount_group=1,
        description_group=None,
    ),
)


# =============================================================================
# Normalization helpers
# =============================================================================

def normalize_message(text: str) -> str:
    """Lowercase, fold accents, collapse whitespace and canonicalize "peso(s)"."""
    return _PESO_RE.sub("pesos", normalize_text(text))


def normalize_amount(raw: str | None) -> float | None:
    """Convert a captured amount into a bounded, 2-decimal float.

    Args:
        raw: Captured amount text (may still carry "$" or "pesos")

    Returns:
        The amount rounded to 2 decimals, or None if it is not a positive
        number or exceeds MAX_AMOUNT
    """
    if not raw:
        return None

    cleaned = _AMOUNT_NOISE_RE.sub("", raw.lower())
    if _COMMA_GROUPED_RE.fullmatch(cleaned):
        cleaned = cleaned.replace(",", "")
    elif _DOT_GROUPED_RE.fullmatch(cleaned):
        cleaned = cleaned.replace(".", "").replace(",", ".")
    else:
        cleaned = cleaned.replace(",", ".")
    try:
        amount = float(cleaned)
    except ValueError:
        return None

    if not (0 < amount <= MAX_AMOUNT):
        return None
    return round(amount, 2)


def normalize_description(raw: str | None, original_text: str = "") -> str:
    """Clean a captured description, falling back to context when it is empty.

    Args:
        raw: Captured description text, or None if the rule carries none
        original_text: The full original message, scanned by the fallback

    Returns:
        A non-empty description with its first character capitalized
    """
    description = collapse_whitespace(raw or "")
    description = _LEADING_CONNECTOR_RE.sub("", description)
    description = _TRAILING_CONNECTOR_RE.sub("", description)
    for pattern in _RESIDUAL_CURRENCY_RES:
        description = pattern.sub("", description)
    description = collapse_whitespace(description)
    # A connector can resurface once a trailing amount is stripped
    description = _TRAILING_CONNECTOR_RE.sub("", description).strip()

    if not description:
        return description_from_context(original_text)
    return description[0].upper() + description[1:]


def description_from_context(text: str) -> str:
    """Pick a description from well-known terms present in the text.

    Scans DESCRIPTION_HINTS in declaration order; the first term found is
    returned title-cased. Falls back to DEFAULT_DESCRIPTION.
    """
    haystack = fold_accents(text.lower())
    for terms in DESCRIPTION_HINTS.values():
        for term in terms:
            if term in haystack:
                return term.title()
    return DEFAULT_DESCRIPTION


# =============================================================================
# Parser
# =============================================================================

class MessageParser:
    """Rule-table parser for expense messages.

    Stateless apart from its (immutable) rule table, so a single instance can
    be shared across concurrent callers.
    """

    def __init__(self, rules: tuple[ExtractionRule, ...] = EXTRACTION_RULES) -> None:
        self._rules = rules

    @property
    def rules(self) -> tuple[ExtractionRule, ...]:
        return self._rules

    def parse(self, text: Any) -> ParsedExpense | None:
        """Parse a single expense from free-form text.

        Args:
            text: The raw message. Anything that is not a non-empty string
                yields None.

        Returns:
            ParsedExpense from the first rule that matches and validates, or
            None if no rule does
        """
        if not isinstance(text, str) or not text.strip():
            return None

        normalized = normalize_message(text)

        for rule in self._rules:
            match = rule.expression.search(normalized)
            if match is None:
                continue

            amount = normalize_amount(match.group(rule.amount_group))
            if amount is None:
                logger.debug("parse_rule_rejected rule=%s reason=amount", rule.rule_id)
                continue

            raw_description = (
                match.group(rule.description_group)
                if rule.description_group is not None
                else None
            )
            description = normalize_description(raw_description, text)

            return ParsedExpense(
                amount=amount,
                description=description,
                pattern_id=rule.rule_id,
                original_text=text,
            )

        return None

    def is_expense_candidate(self, text: Any) -> bool:
        """Cheap pre-filter: does the text look like it might describe a spend?

        True when the normalized text contains an action keyword or anything
        resembling an amount. May be True for text that parse() rejects.
        """
        if not isinstance(text, str) or not text.strip():
            return False

        normalized = normalize_message(text)
        if _EXPENSE_KEYWORD_RE.search(normalized):
            return True
        return _LOOSE_CURRENCY_RE.search(normalized) is not None

    def parse_multiple(self, text: Any) -> list[ParsedExpense]:
        """Parse every expense in a message listing several of them.

        Splits on commas (not decimal commas), semicolons, newlines and the
        conjunction "y", parsing each segment on its own. If no segment
        parses, the whole text is tried once as a single expense.
        """
        if not isinstance(text, str) or not text.strip():
            return []

        expenses: list[ParsedExpense] = []
        for segment in _SEGMENT_SEPARATOR_RE.split(text):
            segment = segment.strip()
            if not segment:
                continue
            expense = self.parse(segment)
            if expense is not None:
                expenses.append(expense)

        if not expenses:
            single = self.parse(text)
            if single is not None:
                expenses.append(single)

        return expenses

    def describe_rules(self) -> dict[str, Any]:
        """Summarize the rule table for debugging."""
        return {
            "total_rules": len(self._rules),
            "rules": [
                {"rule_id": rule.rule_id, "expression": rule.expression.pattern}
                for rule in self._rules
            ],
            "expense_keywords": len(EXPENSE_KEYWORDS),
            "currency_tokens": list(CURRENCY_TOKENS),
        }


# Shared default instance
_parser = MessageParser()


def parse_expense(text: Any) -> ParsedExpense | None:
    """Parse a single expense with the default parser."""
    return _parser.parse(text)


def parse_multiple(text: Any) -> list[ParsedExpense]:
    """Parse every expense in the text with the default parser."""
    return _parser.parse_multiple(text)


def is_expense_candidate(text: Any) -> bool:
    """Run the cheap expense pre-filter with the default parser."""
    return _parser.is_expense_candidate(text)


__all__ = [
    "ACTION_VERBS",
    "EXPENSE_KEYWORDS",
    "CONNECTORS",
    "CURRENCY_TOKENS",
    "ExtractionRule",
    "EXTRACTION_RULES",
    "MessageParser",
    "normalize_message",
    "normalize_amount",
    "normalize_description",
    "description_from_context",
    "parse_expense",
    "parse_multiple",
    "is_expense_candidate",
]
