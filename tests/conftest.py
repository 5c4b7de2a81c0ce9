"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Redis and platform HTTP calls are faked.
"""
import fnmatch
import os

os.environ.setdefault("APP_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_BASE_URL", "https://sync.example.com")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from unittest.mock import patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

import storesync.models  # noqa: F401  registers all tables on Base.metadata
from storesync.database import Base
from storesync.services.activity_log import ActivityLogger, LogRepository


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


class FakeRedis:
    """In-memory stand-in for the redis.asyncio client (TTL is recorded, not enforced)."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key

    async def ping(self):
        return True


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def fake_redis():
    """Fake Redis wired into every module that talks to Redis."""
    redis = FakeRedis()

    async def _get_redis():
        return redis

    with (
        patch("storesync.services.order_cache.get_redis", _get_redis),
        patch("storesync.services.oauth.get_redis", _get_redis),
    ):
        yield redis


@pytest.fixture
def activity(db):
    """Activity logger bound to the test session, 2 second dedup window."""
    return ActivityLogger(LogRepository(db), dedup_window_seconds=2)


@pytest.fixture
def webflow_order_body():
    """An ecomm_new_order delivery as Webflow sends it."""
    return {
        "triggerType": "ecomm_new_order",
        "siteId": "site_123",
        "payload": {
            "orderId": "A1",
            "status": "unfulfilled",
            "customerInfo": {"fullName": "Ada Lovelace", "email": "ada@example.com"},
            "totals": {"total": {"value": "42.50", "unit": "USD"}},
            "acceptedOn": "2024-03-01T12:00:00Z",
        },
    }
