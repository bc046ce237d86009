"""
Shared pytest configuration for tunislock tests.

By default every test gets a fresh SQLite database file (aiosqlite) under
pytest's tmp_path. Set TEST_DATABASE_URL to run against PostgreSQL instead.

SAFETY: a TEST_DATABASE_URL whose database name does not contain "test" is
refused, since tables are dropped after every test.
"""

import os

# Must be set before the routes package is imported (disables rate limiting)
os.environ.setdefault("ENV", "test")

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402
from tunislock.database.db import Base  # noqa: E402
from tunislock.database.models import User  # noqa: E402


def _resolve_test_database_url():
    """Return TEST_DATABASE_URL after the safety check, or None for SQLite."""
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        return None

    # ── Safety gate: database name MUST contain "test" ──────────────────
    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n"
            f"{'=' * 70}"
        )
    return url


TEST_DATABASE_URL = _resolve_test_database_url()


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Per-test engine with all tables created."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'tunislock_test.db'}"
    # NullPool avoids connection reuse across event loops
    engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        from tunislock.database import models  # noqa: F401
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own sessions (the aggregation queue) must hit the
    # same database as the fixtures
    from tunislock.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Session bound to the per-test database."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest_asyncio.fixture
async def make_user(db_session):
    """Factory creating users: `await make_user("alice")` returns the User row."""
    counter = {"n": 0}

    async def _make_user(name=None, email=None):
        counter["n"] += 1
        user = User(
            auth_subject=f"subject-{counter['n']}",
            name=name or f"Player {counter['n']}",
            email=email,
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)
        return user

    return _make_user
