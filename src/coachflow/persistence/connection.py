"""Database connection management for Coachflow.

Factory functions for the SQLAlchemy async engine and session factory,
configured from PersistenceConfig. SQLite via aiosqlite is the default
driver; any SQLAlchemy async URL works.

Example usage:
    >>> from coachflow.config import PersistenceConfig
    >>> engine = get_engine(PersistenceConfig(database_url="sqlite+aiosqlite:///coachflow.db"))
    >>> SessionFactory = get_session_factory(engine)
    >>> await create_schema(engine)
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from coachflow.config import PersistenceConfig
from coachflow.persistence.models import Base


def get_engine(config: PersistenceConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine from persistence configuration.

    Args:
        config: Persistence configuration containing the URL and SQL echo
                preference.

    Returns:
        Configured AsyncEngine instance.
    """
    return create_async_engine(config.database_url, echo=config.echo)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the given engine.

    Sessions use expire_on_commit=False so snapshot attributes stay readable
    after commit without a lazy load.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create the snapshot tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
