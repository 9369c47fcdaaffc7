"""SQLAlchemy models for project snapshots.

One row per project. The captured design and the wizard context are stored
as JSON documents; the stage column is a resumption hint only and is always
re-validated against the captured data on load.

Example:
    >>> async with engine.begin() as conn:
    ...     await conn.run_sync(Base.metadata.create_all)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base for all Coachflow models."""

    pass


class ProjectRecord(Base):
    """A persisted design project.

    Attributes:
        id: Caller-supplied project identifier.
        stage: Last stage the engine reported (resumption hint).
        status: draft, in-progress, or ready.
        captured: Serialized CapturedData (camelCase keys).
        wizard: Serialized WizardContext.
        created_at: Row creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    stage: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    captured: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    wizard: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
