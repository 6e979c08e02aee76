"""
Shared test fixtures for expensebot.

This module provides common fixtures used across all test modules:
- Environment setup (dev mode, in-memory cache backend)
- A controllable clock (aware UTC datetimes)
- Settings with short storage timeouts
- In-memory storage and a SQLite-backed SQLAlchemy storage
- Engines wired to the fixtures above

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# ---------------------------------------------------------------------------
# 1. Environment setup -- must run before any application imports
# ---------------------------------------------------------------------------

os.environ.setdefault("EXPENSEBOT_DEV_MODE", "1")
os.environ.setdefault("EXPENSEBOT_CACHE_BACKEND", "memory")

# ---------------------------------------------------------------------------
# Application imports (after env vars are set)
# ---------------------------------------------------------------------------

from expensebot.config.settings import Settings, reset_settings  # noqa: E402
from expensebot.models.base import Base  # noqa: E402
from expensebot.modules.alerts import AlertEngine  # noqa: E402
from expensebot.modules.categorization import CategorizationEngine  # noqa: E402
from expensebot.services.cache import InMemoryCacheBackend  # noqa: E402
from expensebot.services.sql_storage import SQLAlchemyExpenseStorage  # noqa: E402
from expensebot.services.storage import InMemoryExpenseStorage  # noqa: E402
from expensebot.services.suppression import SuppressionCache  # noqa: E402

# 12:30 in America/Mexico_City (UTC-6)
FIXED_NOW = datetime(2026, 3, 10, 18, 30, tzinfo=UTC)


class FakeClock:
    """Callable clock returning a settable aware datetime."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def seconds(self) -> float:
        """Epoch seconds, for backends that take a float clock."""
        return self.now.timestamp()


# ---------------------------------------------------------------------------
# 2. Settings and clock
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_global_settings():
    """Keep the process-wide settings singleton from leaking between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    """Default settings with a short storage timeout."""
    return Settings(storage_timeout=1.0)


# ---------------------------------------------------------------------------
# 3. Storage
# ---------------------------------------------------------------------------

@pytest.fixture()
def storage(clock: FakeClock) -> InMemoryExpenseStorage:
    """In-memory storage seeded with the default category directory."""
    return InMemoryExpenseStorage(clock=clock)


@pytest.fixture()
def db_session_factory():
    """
    Provide a session factory backed by an in-memory SQLite database.

    StaticPool keeps one connection so the worker threads used by the
    storage adapter all see the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(bind=engine, expire_on_commit=False)

    engine.dispose()


@pytest.fixture()
async def sql_storage(db_session_factory, clock: FakeClock) -> SQLAlchemyExpenseStorage:
    store = SQLAlchemyExpenseStorage(db_session_factory, clock=clock)
    await store.seed_default_categories()
    return store


# ---------------------------------------------------------------------------
# 4. Engines
# ---------------------------------------------------------------------------

@pytest.fixture()
def cache(clock: FakeClock) -> InMemoryCacheBackend:
    return InMemoryCacheBackend(clock=clock.seconds)


@pytest.fixture()
def categorizer(storage, cache, settings) -> CategorizationEngine:
    return CategorizationEngine(storage, cache=cache, settings=settings)


@pytest.fixture()
def suppression(cache, clock) -> SuppressionCache:
    return SuppressionCache(cache, window_seconds=3600, clock=clock)


@pytest.fixture()
def alert_engine(storage, suppression, settings, clock) -> AlertEngine:
    return AlertEngine(storage, suppression=suppression, settings=settings, clock=clock)
