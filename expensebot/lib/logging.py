"""
Structured logging for expensebot.

structlog renders every record, including the ones the engines emit through
plain `logging.getLogger(__name__)`, so a single handler on the root logger
produces JSON in production and a colored console in development.

Per-message context (the user being processed) is carried in structlog
contextvars and merged into every record logged while it is bound:

    from expensebot.lib.logging import log_context, setup_logging

    setup_logging()  # once, at startup

    with log_context(user_id="u1"):
        logger.info("expense_captured amount=%s", 30.0)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from expensebot.config.settings import Settings, get_settings

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS: tuple[str, ...] = ("sqlalchemy.engine", "redis", "asyncio")


def _shared_processors() -> list[structlog.types.Processor]:
    """Processors applied to structlog and stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(dev_mode: bool) -> structlog.types.Processor:
    if dev_mode:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and route stdlib logging through it.

    Args:
        settings: Runtime settings (process-wide settings if None). dev_mode
            selects console output, log_level the root level.
    """
    settings = settings or get_settings()
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.dev_mode),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind key/values to every record logged inside the block (task-local)."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
