"""
Services for expensebot.

Infrastructure the engines depend on:
    - storage: ExpenseStorage contracts and the in-memory adapter
    - sql_storage: SQLAlchemy adapter
    - cache: Expiring key/value caches (in-memory, Redis)
    - redis_service: Async Redis wrapper
    - suppression: Per-user alert suppression
"""

from .cache import CacheBackend, InMemoryCacheBackend, RedisCacheBackend, build_cache_backend
from .redis_service import RedisService, get_redis_service
from .sql_storage import SQLAlchemyExpenseStorage, create_session_factory
from .storage import ExpenseStorage, InMemoryExpenseStorage, TransactionQuery
from .suppression import SuppressionCache

__all__ = [
    "CacheBackend",
    "ExpenseStorage",
    "InMemoryCacheBackend",
    "InMemoryExpenseStorage",
    "RedisCacheBackend",
    "RedisService",
    "SQLAlchemyExpenseStorage",
    "SuppressionCache",
    "TransactionQuery",
    "build_cache_backend",
    "create_session_factory",
    "get_redis_service",
]
