"""Pytest fixtures for integration tests.

Provides async database fixtures backed by an in-memory SQLite database
and a file-backed configuration for driving the CLI end to end.
"""

from __future__ import annotations

from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from coachflow.persistence.models import Base
from coachflow.persistence.store import SqlProjectStore


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine for testing.

    Yields:
        Configured AsyncEngine instance using in-memory SQLite.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine.

    Args:
        engine: The test database engine.

    Returns:
        Configured async_sessionmaker for creating test sessions.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def sql_store(session_factory: async_sessionmaker[AsyncSession]) -> SqlProjectStore:
    """Create a SqlProjectStore over the test database."""
    return SqlProjectStore(session_factory)


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Write a TOML config pointing at a temporary database file.

    The working directory moves to ``tmp_path`` and any COACHFLOW_ overrides
    from the environment are removed.

    Returns:
        Path to the configuration file.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in ("COACHFLOW_AI__API_KEY", "COACHFLOW_PERSISTENCE__DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)

    path = tmp_path / "coachflow.toml"
    path.write_text(
        "[logging]\n"
        "level = \"WARNING\"\n"
        "format = \"json\"\n"
        f"file = \"{tmp_path / 'logs' / 'coachflow.log'}\"\n\n"
        "[persistence]\n"
        f"database_url = \"sqlite+aiosqlite:///{tmp_path / 'coachflow.db'}\"\n"
        "debounce_seconds = 0.0\n"
    )
    return path
