"""
Test infrastructure for the User Cache Service.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after.
- The cache singleton gets a fresh ``InMemoryRedis`` before each test: an
  in-process double for the handful of ``redis.asyncio.Redis`` calls the
  CacheManager makes, so the cache policy is exercised end to end without
  a Redis server.  Tests that want the degraded path set ``cache._redis``
  to None themselves.
"""
import fnmatch
import json

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from usercache.cache import cache
from usercache.database import Base, get_db
from usercache.main import app
from usercache.middleware import install_query_counter
from usercache.models import User

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Register the per-request SQL query counter on the test engine.
install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override: replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# In-memory Redis double
# ---------------------------------------------------------------------------

class InMemoryRedis:
    """
    Dict-backed stand-in for the subset of ``redis.asyncio.Redis`` used by
    ``CacheManager`` (decoded responses).  Setting ``down = True`` makes
    every call raise ``redis.exceptions.ConnectionError``.
    """

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.down = False

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("redis is down")

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str):
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value, ex: int | None = None) -> bool:
        self._check()
        self.data[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def incr(self, key: str) -> int:
        self._check()
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match: str | None = None):
        self._check()
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self) -> None:
        pass

    def decoded(self, key: str):
        return json.loads(self.data[key])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def fake_redis():
    """Install a fresh in-memory Redis on the cache singleton for each test."""
    backend = InMemoryRedis()
    cache._redis = backend
    cache.reset_stats()
    yield backend
    cache._redis = None


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call the service and mapper
    layers directly.
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_users(db_session: AsyncSession) -> list[User]:
    """Two committed users, ids 1 and 2."""
    users = [
        User(username="alice", email="alice@example.com", display_name="Alice Liddell"),
        User(username="bob", email="bob@example.com", display_name="Bob Builder", bio="Fixes things"),
    ]
    db_session.add_all(users)
    await db_session.commit()
    return users


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
