"""
Shared fixtures: in-memory SQLite mirror, an isolated AuthCache on a fake
clock, and an HTTP client wired to both.
"""

from __future__ import annotations

import os

os.environ.setdefault("FF_ENVIRONMENT", "test")
os.environ.setdefault("FF_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("FF_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("FF_WEBHOOK_SECRET", "whsec_MfKQ9r8GKYqrTwjUPD8ILPZIo2LaLaSw")
os.environ.setdefault("FF_LOG_FORMAT", "text")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import create_session_token
from app.core.cache import AuthCache
from app.core.database import get_session
from app.main import create_app
from fleetfusion_shared.schemas.abac import Permission
from fleetfusion_shared.schemas.auth import UserContext


class FakeClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return AuthCache(user_ttl=300, organization_ttl=600, clock=clock)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user():
    def _make(
        role: str | None = "viewer",
        *,
        user_id: str = "user_1",
        organization_id: str | None = "org_1",
        is_active: bool = True,
        permissions: tuple[str, ...] = (),
    ) -> UserContext:
        return UserContext(
            user_id=user_id,
            organization_id=organization_id,
            role=role,
            is_active=is_active,
            permissions=[Permission.parse(p) for p in permissions],
        )

    return _make


@pytest.fixture
def auth_headers():
    def _headers(role: str | None = "viewer", *, user_id: str = "user_1", org_id: str = "org_1", **kwargs):
        token, _ = create_session_token(user_id, org_id, role, **kwargs)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def api(session_factory, cache):
    application = create_app()
    application.state.auth_cache = cache

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_session] = override_session
    return application


@pytest.fixture
async def client(api):
    async with AsyncClient(transport=ASGITransport(app=api), base_url="http://test") as ac:
        yield ac
