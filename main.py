"""
expensebot -- Local entry point.

Reads chat lines from stdin and prints what the engines make of them.
Meant for trying the rule tables by hand; real transports call
ExpenseCapture.process_message themselves and persist the results.

Usage:
    python main.py                    # user "local", SQLite at DATABASE_URL
    EXPENSEBOT_DEV_MODE=1 python main.py
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from expensebot.config.settings import get_settings
from expensebot.lib.logging import setup_logging
from expensebot.modules.alerts import AlertEngine
from expensebot.modules.capture import ExpenseCapture
from expensebot.modules.categorization import CategorizationEngine
from expensebot.services.cache import build_cache_backend
from expensebot.services.sql_storage import SQLAlchemyExpenseStorage, create_session_factory
from expensebot.services.suppression import SuppressionCache

logger = logging.getLogger(__name__)


async def run(user_id: str) -> None:
    settings = get_settings()
    storage = SQLAlchemyExpenseStorage(create_session_factory(settings.database_url))
    await storage.seed_default_categories()

    cache = build_cache_backend(settings)
    capture = ExpenseCapture(
        categorizer=CategorizationEngine(storage, cache=cache, settings=settings),
        alerts=AlertEngine(
            storage,
            suppression=SuppressionCache(cache, window_seconds=settings.suppression_window),
            settings=settings,
        ),
    )
    logger.info("expensebot_started user=%s database=%s", user_id, settings.database_url)

    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        text = line.strip()
        if not text:
            continue

        result = await capture.process_message(user_id, text)
        if not result.recognized:
            print("(not an expense)")
            continue

        for item in result.expenses:
            await storage.record_transaction(
                user_id, item.amount, item.description, item.category, raw_text=text
            )
            print(f"${item.amount:.2f}  {item.description}  [{item.category}]")
        for alert in result.alerts:
            print(alert.message)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run(os.getenv("EXPENSEBOT_USER", "local")))
