"""
Custom exception hierarchy for expensebot.

Provides structured exception types for the subsystems that can fail:
- Configuration loading
- Storage access (read/write contracts, timeouts)
- Cache backends
- Input validation

All exceptions inherit from ExpenseBotException, enabling a catch-all for
expensebot-specific errors while keeping the ability to catch specific
error types. None of these ever escape the parsing, categorization or alert
engines: they degrade locally instead.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class ExpenseBotException(Exception):
    """Base exception for all expensebot errors."""


class ConfigurationError(ExpenseBotException):
    """Missing or invalid environment variables and settings."""


class StorageError(ExpenseBotException):
    """Storage read/write failures (driver errors, lost connections, bad rows)."""


class StorageTimeoutError(StorageError):
    """A storage call did not complete within the configured timeout."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"Storage call '{operation}' timed out after {timeout:.1f}s")


class CacheError(ExpenseBotException):
    """Cache backend failures (serialization, unreachable shared store)."""


async def call_storage(
    awaitable: Awaitable[T],
    timeout: float | None,
    operation: str = "storage",
) -> T:
    """Await a storage call, converting a timeout into StorageTimeoutError.

    Args:
        awaitable: The pending storage coroutine
        timeout: Seconds to wait, or None to wait indefinitely
        operation: Name used in the error message

    Returns:
        The storage call's result

    Raises:
        StorageTimeoutError: If the call exceeds the timeout
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as exc:
        raise StorageTimeoutError(operation, timeout) from exc


__all__ = [
    "ExpenseBotException",
    "ConfigurationError",
    "StorageError",
    "StorageTimeoutError",
    "CacheError",
    "call_storage",
]
