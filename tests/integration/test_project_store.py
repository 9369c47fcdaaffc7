"""Integration tests for the SQLAlchemy project store.

Tests run against an in-memory SQLite database and cover create, partial
merge, hydration, ordering, and resuming an engine session from the store.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coachflow.config import CoachflowConfig, PersistenceConfig
from coachflow.domain.captured import CapturedData, WizardContext, serialize_captured
from coachflow.domain.stages import Stage
from coachflow.engine import open_session
from coachflow.persistence.models import ProjectRecord
from coachflow.persistence.store import ProjectStore, SqlProjectStore


@pytest.mark.integration
class TestSqlProjectStore:
    """Integration tests for SqlProjectStore."""

    def test_satisfies_protocol(self, sql_store: SqlProjectStore) -> None:
        """Test that the SQL store is a ProjectStore."""
        assert isinstance(sql_store, ProjectStore)

    @pytest.mark.asyncio
    async def test_unknown_project(self, sql_store: SqlProjectStore) -> None:
        """Test that an unknown id loads as None."""
        assert await sql_store.load_project("missing") is None

    @pytest.mark.asyncio
    async def test_save_and_load(
        self, sql_store: SqlProjectStore, ideation_done: CapturedData, wizard: WizardContext
    ) -> None:
        """Test a full record round trip."""
        await sql_store.save_project(
            {
                "id": "P-1",
                "stage": "BIG_IDEA",
                "status": "in-progress",
                "captured": serialize_captured(ideation_done),
                "wizard": wizard.model_dump(mode="json", by_alias=True),
            }
        )

        snapshot = await sql_store.load_project("P-1")

        assert snapshot is not None
        assert snapshot.captured == ideation_done
        assert snapshot.wizard == wizard
        assert snapshot.stage is Stage.JOURNEY
        assert snapshot.status == "in-progress"
        assert snapshot.updated_at is not None

    @pytest.mark.asyncio
    async def test_partial_save_merges(
        self, sql_store: SqlProjectStore, ideation_done: CapturedData, wizard: WizardContext
    ) -> None:
        """Test that a partial record keeps the columns it does not name."""
        await sql_store.save_project(
            {"id": "P-1", "wizard": wizard.model_dump(mode="json", by_alias=True)}
        )
        await sql_store.save_project({"id": "P-1", "captured": serialize_captured(ideation_done)})

        snapshot = await sql_store.load_project("P-1")

        assert snapshot.wizard == wizard
        assert snapshot.captured == ideation_done

    @pytest.mark.asyncio
    async def test_list_most_recent_first(
        self, sql_store: SqlProjectStore, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Test that project ids are ordered by last update."""
        for project_id in ("old", "new", "middle"):
            await sql_store.save_project({"id": project_id, "stage": "BIG_IDEA"})

        stamps = {
            "old": datetime(2026, 1, 1, tzinfo=timezone.utc),
            "middle": datetime(2026, 1, 2, tzinfo=timezone.utc),
            "new": datetime(2026, 1, 3, tzinfo=timezone.utc),
        }
        async with session_factory() as session:
            async with session.begin():
                for project_id, stamp in stamps.items():
                    await session.execute(
                        update(ProjectRecord).where(ProjectRecord.id == project_id).values(updated_at=stamp)
                    )

        assert await sql_store.list_project_ids() == ["new", "middle", "old"]

    @pytest.mark.asyncio
    async def test_session_resumes_from_store(
        self, sql_store: SqlProjectStore, ideation_done: CapturedData, wizard: WizardContext
    ) -> None:
        """Test that an engine session writes through and resumes from the database."""
        config = CoachflowConfig(persistence=PersistenceConfig(debounce_seconds=30))

        first = await open_session(sql_store, "P-9", wizard, config=config)
        await first.handle_turn("Systems thinking reveals hidden connections")
        await first.aclose()

        resumed = await open_session(sql_store, "P-9", config=config)
        try:
            assert resumed.stage is Stage.ESSENTIAL_QUESTION
            assert resumed.captured.ideation.big_idea == "Systems thinking reveals hidden connections"
            assert resumed.wizard == wizard
        finally:
            await resumed.aclose()
