"""
Categorization Engine.

Maps an expense description (plus, optionally, the user's own history) to a
category name by weighted rule scoring over a cached category directory.

Signals, summed per category:
    - Direct keywords: +10 per keyword found in the description, +2 per
      token that partially overlaps a keyword
    - Context dictionaries: brands +8, locations +6, actions +4
    - User history: Jaccard similarity against the user's most frequent
      descriptions in that category (90 days), capped at 20

The top score wins only above MIN_SCORE; ties go to the alphabetically
first category. Anything else, including every failure, yields "other".
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import timedelta
from typing import Any

from expensebot.config.settings import Settings, get_settings
from expensebot.lib.exceptions import CacheError, StorageError, call_storage
from expensebot.lib.text import normalize_for_matching, tokenize
from expensebot.modules.context_dictionaries import ACTIONS, BRANDS, LOCATIONS
from expensebot.modules.expense_models import DEFAULT_CATEGORY, Category
from expensebot.services.cache import CacheBackend, InMemoryCacheBackend
from expensebot.services.storage import ExpenseStorage, TransactionQuery

logger = logging.getLogger(__name__)

DIRECTORY_CACHE_KEY = "categories:directory"

# Scoring weights
EXACT_KEYWORD_WEIGHT = 10
PARTIAL_KEYWORD_WEIGHT = 2
BRAND_WEIGHT = 8
LOCATION_WEIGHT = 6
ACTION_WEIGHT = 4

MIN_SCORE = 2

HISTORY_WINDOW = timedelta(days=90)
HISTORY_TOP_DESCRIPTIONS = 20
HISTORY_MIN_SIMILARITY = 0.5
HISTORY_SCORE_CAP = 20.0

LEARNING_WINDOW = timedelta(days=30)
LEARNING_MIN_TOKEN_LENGTH = 3
LEARNING_MIN_FREQUENCY = 3


def jaccard_similarity(left: str, right: str) -> float:
    """Intersection over union of the two texts' token sets (0.0 when both are empty)."""
    left_tokens = set(tokenize(left))
    right_tokens = set(tokenize(right))
    union = left_tokens | right_tokens
    if not union:
        return 0.0
    return len(left_tokens & right_tokens) / len(union)


def keyword_score(description: str, keywords: Sequence[str]) -> int:
    """Direct-keyword signal for one category. `description` must be normalized."""
    tokens = tokenize(description)
    score = 0
    for keyword in keywords:
        normalized = normalize_for_matching(keyword)
        if not normalized:
            continue
        if normalized in description:
            score += EXACT_KEYWORD_WEIGHT
        # Tokens of any length count, so "a" or "de" alone can reach MIN_SCORE
        for token in tokens:
            if normalized in token or token in normalized:
                score += PARTIAL_KEYWORD_WEIGHT
    return score


def context_score(description: str, category: str) -> int:
    """Brand, location and action dictionary signal for one category."""
    score = 0
    for dictionary, weight in (
        (BRANDS, BRAND_WEIGHT),
        (LOCATIONS, LOCATION_WEIGHT),
        (ACTIONS, ACTION_WEIGHT),
    ):
        for term in dictionary.get(category, ()):
            if term in description:
                score += weight
    return score


def select_best(scores: dict[str, float]) -> str:
    """Pick the winning category.

    Iterates in alphabetical order and only replaces the leader on a strictly
    higher score, so ties resolve to the alphabetically first name.
    """
    best = DEFAULT_CATEGORY
    best_score = 0.0
    for name in sorted(scores):
        score = scores[name]
        if score > best_score and score > MIN_SCORE:
            best, best_score = name, score
    return best


class CategorizationEngine:
    """
    Weighted-rule categorizer with a read-through category directory cache.

    The directory is cached for `category_cache_ttl` seconds and dropped as
    soon as storage reports a keyword update. A stale read inside the TTL is
    acceptable; the cache is never refreshed mid-call.

    Args:
        storage: Storage adapter implementing ExpenseStorage
        cache: Backend for the directory cache (in-memory if None)
        settings: Runtime settings (process-wide settings if None)
    """

    def __init__(
        self,
        storage: ExpenseStorage,
        cache: CacheBackend | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._storage = storage
        self._cache = cache or InMemoryCacheBackend()
        self._settings = settings or get_settings()
        self._lock = asyncio.Lock()
        self._stale = False
        storage.add_invalidation_listener(self._on_keywords_updated)

    @property
    def _timeout(self) -> float:
        return self._settings.storage_timeout

    # =========================================================================
    # Category directory cache
    # =========================================================================

    def _on_keywords_updated(self, category: str) -> None:
        # Storage listeners are synchronous; the drop happens on the next read.
        logger.info("category_directory_invalidated category=%s", category)
        self._stale = True

    async def invalidate_cache(self) -> None:
        """Drop the cached category directory.

        If the cache backend is failing, the directory stays marked stale and
        the drop is retried on the next read.
        """
        async with self._lock:
            try:
                await self._cache.delete(DIRECTORY_CACHE_KEY)
            except CacheError as exc:
                logger.warning("category_cache_unavailable operation=delete error=%s", exc)
                self._stale = True
                return
            self._stale = False

    async def get_categories(self) -> list[Category]:
        """Return the category directory, loading it from storage on a miss."""
        async with self._lock:
            try:
                if self._stale:
                    await self._cache.delete(DIRECTORY_CACHE_KEY)
                    self._stale = False
                cached = await self._cache.get(DIRECTORY_CACHE_KEY)
            except CacheError as exc:
                # Read straight from storage while the cache is down
                logger.warning("category_cache_unavailable operation=get error=%s", exc)
                cached = None

            if cached is not None:
                return [Category(name=row["name"], keywords=tuple(row["keywords"])) for row in cached]

            categories = await call_storage(
                self._storage.list_categories(), self._timeout, "list_categories"
            )
            try:
                await self._cache.set(
                    DIRECTORY_CACHE_KEY,
                    [{"name": c.name, "keywords": list(c.keywords)} for c in categories],
                    ttl=self._settings.category_cache_ttl,
                )
            except CacheError as exc:
                logger.warning("category_cache_unavailable operation=set error=%s", exc)
            logger.debug("category_directory_loaded count=%s", len(categories))
            return list(categories)

    # =========================================================================
    # Scoring
    # =========================================================================

    async def score_categories(
        self,
        description: str,
        user_id: str | None = None,
    ) -> dict[str, float]:
        """Compute every scorable category's total score.

        Args:
            description: Raw description (normalized here)
            user_id: Enables the user-history signal when given

        Returns:
            {category name: score}, excluding the fallback category

        Raises:
            StorageError: If a storage read fails or times out
        """
        normalized = normalize_for_matching(description)
        categories = [c for c in await self.get_categories() if c.name != DEFAULT_CATEGORY]

        history: dict[str, float] = {}
        if user_id is not None and normalized:
            history = await self._history_scores(normalized, user_id)

        return {
            category.name: (
                keyword_score(normalized, category.keywords)
                + context_score(normalized, category.name)
                + history.get(category.name, 0.0)
            )
            for category in categories
        }

    async def _history_scores(self, description: str, user_id: str) -> dict[str, float]:
        transactions = await call_storage(
            self._storage.query_transactions(user_id, TransactionQuery(since=HISTORY_WINDOW)),
            self._timeout,
            "query_transactions",
        )

        by_category: dict[str, Counter[str]] = defaultdict(Counter)
        for txn in transactions:
            by_category[txn.category][normalize_for_matching(txn.description)] += 1

        scores: dict[str, float] = {}
        for category, frequencies in by_category.items():
            score = 0.0
            for past, frequency in frequencies.most_common(HISTORY_TOP_DESCRIPTIONS):
                similarity = jaccard_similarity(description, past)
                if similarity > HISTORY_MIN_SIMILARITY:
                    score += frequency * similarity * 2
            if score:
                scores[category] = min(score, HISTORY_SCORE_CAP)
        return scores

    async def categorize(self, description: Any, user_id: str | None = None) -> str:
        """Assign a category to a description.

        Never raises. Non-string or empty input, a score at or below the
        threshold, and any storage failure all yield "other".
        """
        if not isinstance(description, str) or not normalize_for_matching(description):
            return DEFAULT_CATEGORY

        try:
            scores = await self.score_categories(description, user_id)
        except StorageError as exc:
            logger.warning("categorize_failed user=%s error=%s", user_id, exc)
            return DEFAULT_CATEGORY
        except Exception as exc:  # Intentional catch-all: classification must never block recording
            logger.warning("categorize_failed user=%s error=%s", user_id, exc, exc_info=True)
            return DEFAULT_CATEGORY

        category = select_best(scores)
        logger.debug("categorized description=%r category=%s", description, category)

        if user_id is not None and category != DEFAULT_CATEGORY:
            await self._learn(user_id, description, category)
        return category

    # =========================================================================
    # Learning (audit-only)
    # =========================================================================

    async def _learn(self, user_id: str, description: str, category: str) -> None:
        """Record tokens that keep showing up in this user's category.

        Only writes keyword-candidate audit records; the live keyword set is
        never touched. Failures are logged and dropped.
        """
        tokens = list(dict.fromkeys(
            token
            for token in tokenize(normalize_for_matching(description))
            if len(token) >= LEARNING_MIN_TOKEN_LENGTH
        ))
        if not tokens:
            return

        try:
            history = await call_storage(
                self._storage.query_transactions(
                    user_id, TransactionQuery(since=LEARNING_WINDOW, category=category)
                ),
                self._timeout,
                "query_transactions",
            )
            past = [normalize_for_matching(txn.description) for txn in history]

            for token in tokens:
                frequency = sum(1 for text in past if token in text)
                if frequency < LEARNING_MIN_FREQUENCY:
                    continue
                await call_storage(
                    self._storage.record_keyword_candidate(user_id, category, token, frequency),
                    self._timeout,
                    "record_keyword_candidate",
                )
                logger.info(
                    "keyword_candidate user=%s category=%s token=%s frequency=%s",
                    user_id, category, token, frequency,
                )
        except StorageError as exc:
            logger.warning("keyword_learning_failed user=%s error=%s", user_id, exc)
        except Exception as exc:  # Intentional catch-all: the audit log is best effort
            logger.warning("keyword_learning_failed user=%s error=%s", user_id, exc, exc_info=True)

    # =========================================================================
    # Keyword maintenance
    # =========================================================================

    async def update_category_keywords(self, name: str, keywords: Sequence[str]) -> bool:
        """Replace a category's keywords and drop the directory cache.

        Returns:
            True if storage accepted the update, False otherwise
        """
        if name == DEFAULT_CATEGORY:
            logger.warning("category_update_rejected category=%s reason=fallback", name)
            return False
        try:
            updated = await call_storage(
                self._storage.update_category_keywords(name, list(keywords)),
                self._timeout,
                "update_category_keywords",
            )
        except StorageError as exc:
            logger.warning("category_update_failed category=%s error=%s", name, exc)
            return False

        await self.invalidate_cache()
        if updated:
            logger.info("category_keywords_updated category=%s count=%s", name, len(keywords))
        return bool(updated)


__all__ = [
    "CategorizationEngine",
    "DIRECTORY_CACHE_KEY",
    "MIN_SCORE",
    "context_score",
    "jaccard_similarity",
    "keyword_score",
    "select_best",
]
