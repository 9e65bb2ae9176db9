"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from dispatch_backend.app.main import app
from dispatch_backend.app.db.session import SESSION_OPTIONS, get_db, Base
from dispatch_backend.app.core.redis_client import get_redis
import dispatch_backend.app.core.redis_client as redis_client_module
from dispatch_backend.tests.factories import create_user, create_ride, create_group, create_share

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(engine, **SESSION_OPTIONS)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


mock_redis = MockRedis()


@pytest.fixture(autouse=True)
def apply_overrides():
    """Point the app at the in-memory database and the mock Redis."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await mock_redis.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def fresh_session():
    """Factory for a new session, to read state written by the API."""
    return TestingSessionLocal


# --- Common actors ---

@pytest.fixture
async def admin(db_session):
    return await create_user(db_session, "admin", ["admin"])


@pytest.fixture
async def dispatcher(db_session):
    return await create_user(db_session, "dispatcher", ["dispatcher"])


@pytest.fixture
async def customer(db_session):
    return await create_user(db_session, "customer", ["client"])


@pytest.fixture
async def other_customer(db_session):
    return await create_user(db_session, "other_customer", ["client"])


@pytest.fixture
async def driver(db_session):
    return await create_user(db_session, "driver_one", ["driver"])


@pytest.fixture
async def driver2(db_session):
    return await create_user(db_session, "driver_two", ["driver"])


@pytest.fixture
async def outsider_driver(db_session):
    return await create_user(db_session, "driver_outsider", ["driver"])


@pytest.fixture
async def ride(db_session, customer):
    return await create_ride(db_session, customer)


@pytest.fixture
async def group(db_session, driver, driver2, dispatcher):
    return await create_group(db_session, "Downtown", members=[driver, driver2], owner=dispatcher)


@pytest.fixture
async def share(db_session, ride, group, dispatcher):
    return await create_share(db_session, ride, group, dispatcher)
