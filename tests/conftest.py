"""Fixtures: a real SQLite database per test, an in-memory Redis stand-in, an HTTP client."""
import os
from datetime import datetime, timedelta, timezone

# Set before importing application modules (settings and engine are created at import)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("ANTHROPIC_API_KEY", "")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from walkbuddy.auth.jwt import create_access_token
from walkbuddy.models import Base, Profile, RequestStatus, WalkRequest
from walkbuddy.redis_client import set_redis

# San Francisco, a few blocks apart
SF_START = (37.7749, -122.4194)
SF_DEST = (37.7849, -122.4294)
SF_START_NEAR = (37.7750, -122.4195)
SF_DEST_NEAR = (37.7850, -122.4295)


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the app (get / setex)."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value.encode() if isinstance(value, str) else value
        self.ttls[key] = ttl
        return True


@pytest.fixture
def now():
    return datetime(2025, 3, 1, 18, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'walkbuddy.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    redis = FakeRedis()
    set_redis(redis)
    yield redis
    set_redis(None)


@pytest.fixture
def make_profile(session_factory):
    async def _make(user_id, trust_score=100, is_banned=False, first_name=None):
        async with session_factory() as s:
            s.add(
                Profile(
                    id=user_id,
                    email=f"user{user_id}@example.edu",
                    first_name=first_name or f"User{user_id}",
                    trust_score=trust_score,
                    is_banned=is_banned,
                )
            )
            await s.commit()
        return user_id

    return _make


@pytest.fixture
def make_request(session_factory, now):
    """Insert a walk request directly (no matching)."""

    async def _make(user_id, start=SF_START_NEAR, dest=SF_DEST_NEAR, created_at=None,
                    status=RequestStatus.WAITING, ttl_minutes=10, matched_with=None):
        created_at = created_at or now
        async with session_factory() as s:
            request = WalkRequest(
                user_id=user_id,
                start_lat=start[0],
                start_lng=start[1],
                dest_lat=dest[0],
                dest_lng=dest[1],
                status=status,
                matched_with=matched_with,
                created_at=created_at,
                expires_at=created_at + timedelta(minutes=ttl_minutes),
            )
            s.add(request)
            await s.commit()
            return request.id

    return _make


def auth_headers(user_id):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


@pytest_asyncio.fixture
async def client(session_factory, fake_redis):
    from walkbuddy.database import get_db
    from walkbuddy.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
