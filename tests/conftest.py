"""
Crowdfund payments: pytest fixtures and configuration.

Provides:
- A throwaway SQLite database (or the Postgres DATABASE_URL, when set)
- Per-test schema reset
- ASGI HTTP client wired to the test database
"""
import os
import tempfile

# Settings are read at import time; configure the environment before app imports.
_DB_DIR = tempfile.mkdtemp(prefix="crowdfund-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR}/test.db")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("STRIPE_TEST_MODE", "true")
os.environ.setdefault("STRIPE_TEST_PUBLISHED_KEY", "pk_test_crowdfund")
os.environ.setdefault("STRIPE_TEST_SECRET_KEY", "sk_test_crowdfund")
os.environ.setdefault("SITE_BASE_URL", "https://fund.example.org")
os.environ.setdefault("PROJECT_CURRENCY", "USD")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("COMMIT_RETRY_BASE_DELAY_MS", "0")
os.environ.setdefault("COMMIT_RETRY_MAX_DELAY_MS", "0")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.config import settings
from app.db.models import Base

TEST_DATABASE_URL = settings.DATABASE_URL

# NullPool: every test runs on its own event loop; pooled connections must not outlive it.
test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

TestingSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# =============================================================================
# Database
# =============================================================================
@pytest_asyncio.fixture
async def db_session():
    """Fresh schema per test; yields a session for seeding and assertions."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    """Factory for additional independent sessions (concurrency tests)."""
    return TestingSessionLocal


@pytest.fixture
def is_postgres(db_session) -> bool:
    return db_session.get_bind().dialect.name in {"postgresql", "postgres"}


# =============================================================================
# HTTP Client
# =============================================================================
@pytest_asyncio.fixture
async def client(db_session):
    from app.api import deps
    from app.main import app

    async def _get_test_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[deps.get_db] = _get_test_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
