"""Fixtures shared by the service tests: an in-process stand-in for Redis."""

from __future__ import annotations

import pytest

from expensebot.services.redis_service import RedisService


class MockRedisClient:
    """Mock Redis client for testing."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value
        return True

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key):
        if key in self.data:
            del self.data[key]
            return 1
        return 0

    async def ping(self):
        return True


@pytest.fixture
def mock_redis_client():
    """Create a mock Redis client."""
    return MockRedisClient()


@pytest.fixture
def redis_service(mock_redis_client):
    """RedisService wired to the mock client."""
    service = RedisService("redis://test:6379/0")
    service._client = mock_redis_client
    return service
