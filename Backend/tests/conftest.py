"""
Shared fixtures: an in-memory SQLite database, an ASGI client wired to it
and row factories.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from monitor_api.core.database import Base, get_db
from monitor_api.core.dependencies import get_token_manager
from monitor_api.core.security import PasswordPolicy, TokenManager
from monitor_api.main import app
from monitor_api.models import Job, NPUMetric, NPUProcess, User

TEST_SECRET = "test-secret"


def make_job(job_id, pid=None, ppid=None, node_id="n", start_time=None, **fields):
    return Job(job_id=job_id, node_id=node_id, pid=pid, ppid=ppid, start_time=start_time, **fields)


def make_occupancy(pid, npu_id, node_id="n", status="running", memory_usage_mb=1024.0):
    return NPUProcess(
        node_id=node_id,
        pid=pid,
        npu_id=npu_id,
        status=status,
        memory_usage_mb=memory_usage_mb,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def make_metric(npu_id, timestamp, node_id="n", bus_id=None, **fields):
    return NPUMetric(node_id=node_id, npu_id=npu_id, bus_id=bus_id, timestamp=timestamp, **fields)


# ============================================================================
# Database
# ============================================================================

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(db):
    """Add rows and commit them."""

    async def _seed(*rows):
        db.add_all(rows)
        await db.commit()
        return rows

    return _seed


# ============================================================================
# HTTP
# ============================================================================

@pytest.fixture
def token_manager():
    return TokenManager(secret=TEST_SECRET, expire_hours=1)


@pytest_asyncio.fixture
async def client(session_factory, token_manager):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_manager] = lambda: token_manager

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin(seed):
    user = User(username="admin", password=PasswordPolicy.hash("admin123"))
    await seed(user)
    return user


@pytest.fixture
def auth_headers(admin, token_manager):
    return {"Authorization": f"Bearer {token_manager.create(admin.id, admin.username)}"}
