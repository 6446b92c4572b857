import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import AsyncClient
from httpx._transports.asgi import ASGITransport

from app.api.core.config import settings
from app.api.db.kv_store import KeyValueStore

TEST_CONFIRMATION_SECRET = "test-confirmation-secret"


class FakeRedisLock:
    """In-process stand-in for ``redis.asyncio.lock.Lock``."""

    def __init__(self, locks: dict, name: str):
        self._locks = locks
        self.name = name

    async def acquire(self):
        if self.name not in self._locks:
            self._locks[self.name] = asyncio.Lock()
        await self._locks[self.name].acquire()
        return True

    async def release(self):
        self._locks[self.name].release()


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings: token secret set, SMTP and webhooks disabled."""
    monkeypatch.setattr(settings, "EMAIL_CONFIRMATION_SECRET", TEST_CONFIRMATION_SECRET)
    monkeypatch.setattr(settings, "SMTP_SERVER", "")
    monkeypatch.setattr(settings, "MAIL_USERNAME", "")
    monkeypatch.setattr(settings, "WAITLIST_ALERT_EMAIL", "")
    monkeypatch.setattr(settings, "WAITLIST_WEBHOOK_URLS", "")
    monkeypatch.setattr(settings, "WAITLIST_RATE_LIMIT_MAX", 5)
    monkeypatch.setattr(settings, "WAITLIST_RATE_LIMIT_WINDOW_SECONDS", 3600)


@pytest.fixture(autouse=True, scope="function")
def mock_redis(monkeypatch):
    """
    Mock Redis client for all tests to avoid connection errors.
    This fixture is autouse=True so it applies to all tests automatically.

    The backing dict is exposed as ``mock_redis.store`` and key expiries as
    ``mock_redis.ttls`` so tests can seed or inspect raw values.
    """
    monkeypatch.setattr(settings, "REDIS_URL", "redis://localhost:6379/0")

    redis_store = {}
    redis_ttls = {}
    redis_locks = {}

    mock_redis_client = AsyncMock()

    async def mock_get(key):
        return redis_store.get(key)

    async def mock_set(key, value, nx=False, ex=None, **kwargs):
        if nx and key in redis_store:
            return None
        redis_store[key] = str(value)
        if ex is not None:
            redis_ttls[key] = ex
        return True

    async def mock_setex(key, seconds, value):
        redis_store[key] = str(value)
        redis_ttls[key] = seconds
        return True

    async def mock_delete(*keys):
        count = 0
        for key in keys:
            if key in redis_store:
                del redis_store[key]
                redis_ttls.pop(key, None)
                count += 1
        return count

    async def mock_incr(key):
        current = int(redis_store.get(key, 0))
        new_value = current + 1
        redis_store[key] = str(new_value)
        return new_value

    async def mock_expire(key, seconds):
        if key not in redis_store:
            return False
        redis_ttls[key] = seconds
        return True

    async def mock_ttl(key):
        if key not in redis_store:
            return -2
        return redis_ttls.get(key, -1)

    async def mock_exists(key):
        return 1 if key in redis_store else 0

    async def mock_scan(cursor=0, match=None, count=None):
        # single page; callers re-filter by prefix
        return 0, list(redis_store.keys())

    async def mock_mget(keys):
        return [redis_store.get(key) for key in keys]

    def mock_lock(name, timeout=None, blocking_timeout=None):
        return FakeRedisLock(redis_locks, name)

    mock_redis_client.get.side_effect = mock_get
    mock_redis_client.set.side_effect = mock_set
    mock_redis_client.setex.side_effect = mock_setex
    mock_redis_client.delete.side_effect = mock_delete
    mock_redis_client.incr.side_effect = mock_incr
    mock_redis_client.expire.side_effect = mock_expire
    mock_redis_client.ttl.side_effect = mock_ttl
    mock_redis_client.exists.side_effect = mock_exists
    mock_redis_client.scan.side_effect = mock_scan
    mock_redis_client.mget.side_effect = mock_mget
    mock_redis_client.lock = MagicMock(side_effect=mock_lock)
    mock_redis_client.close.return_value = None
    mock_redis_client.store = redis_store
    mock_redis_client.ttls = redis_ttls

    mock_pool = MagicMock()
    mock_pool.disconnect = AsyncMock()

    with (
        patch("redis.asyncio.connection.ConnectionPool.from_url", return_value=mock_pool),
        patch("redis.asyncio.Redis", return_value=mock_redis_client),
    ):
        # Reset the global _redis_client before each test
        import app.api.core.dependencies.redis_service as redis_module

        redis_module._redis_client = None
        redis_module._connection_pool = None
        yield mock_redis_client
        redis_module._redis_client = None
        redis_module._connection_pool = None


@pytest.fixture
def kv_store(mock_redis):
    """KeyValueStore bound to the in-memory Redis mock."""
    return KeyValueStore(mock_redis)


@pytest.fixture
def mailer():
    """Async mailer that records every call and reports success."""
    return AsyncMock(return_value=True)


@pytest_asyncio.fixture
async def api_client():
    """HTTP client against the full application, Redis mocked."""
    from main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
