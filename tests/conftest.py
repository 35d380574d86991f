"""
Test infrastructure for the Quickblog API.

Strategy
--------
- SQLite in-memory via aiosqlite with StaticPool, so every session in a
  test shares the one connection (in-memory databases are
  connection-scoped).
- The app's get_db dependency is overridden with the test session
  factory; all tables are created before and dropped after each test.
- The Redis feed cache is disabled by setting cache._redis = None; the
  CacheManager treats that as a permanent miss.
- Thumbnails are written to a per-test temporary directory and bcrypt
  runs with its minimum cost so registration stays fast.
"""
import io

import pytest
import pytest_asyncio
from fastapi import UploadFile
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool
from starlette.datastructures import Headers

from quickblog.cache import cache
from quickblog.config import settings
from quickblog.database import Base, get_db
from quickblog.guard import Identity
from quickblog.main import app
from quickblog.middleware import install_query_counter
from quickblog.models import ROLE_USER
from quickblog.services import user_service

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

# ---------------------------------------------------------------------------
# Test database engine - SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
            await cache.invalidate_if_stale(session)
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)
    cache._redis = None


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for tests that call services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_upload():
    """Build an UploadFile the way FastAPI hands one to a route."""

    def _make(filename: str = "thumb.png", content_type: str = "image/png", data: bytes = PNG_BYTES):
        return UploadFile(
            file=io.BytesIO(data),
            filename=filename,
            headers=Headers({"content-type": content_type}),
        )

    return _make


@pytest.fixture
def make_identity(db_session: AsyncSession):
    """Create a user in the test session and return its Identity."""

    async def _make(username: str, role: str = ROLE_USER) -> Identity:
        user = await user_service.create_user(
            db_session, username, f"{username}@example.com", "secret123", role=role
        )
        return Identity.from_user(user)

    return _make
