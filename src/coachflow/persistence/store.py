"""Project snapshot stores.

The engine treats persistence as an opaque key-value store keyed by project
id: ``load_project`` returns a hydrated snapshot (or None), ``save_project``
merges a partial record into whatever is stored. Hydration never raises; a
malformed record comes back as empty captured data at the first stage.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coachflow.domain.captured import CapturedData, WizardContext, hydrate_captured, serialize_captured
from coachflow.domain.coaching import ProjectStatus, compute_status
from coachflow.domain.gating import resume_stage
from coachflow.domain.stages import Stage
from coachflow.persistence.models import ProjectRecord

logger = structlog.get_logger(__name__)

SNAPSHOT_FIELDS = frozenset({"stage", "status", "captured", "wizard"})


class ProjectSnapshot(BaseModel):
    """Everything needed to resume a design session.

    Attributes:
        id: Project identifier
        stage: Stage derived from the captured data
        status: draft, in-progress, or ready
        captured: Captured design data
        wizard: Session configuration
        updated_at: When the record was last written, if known
    """

    id: str
    stage: Stage = Stage.BIG_IDEA
    status: ProjectStatus = "draft"
    captured: CapturedData = Field(default_factory=CapturedData)
    wizard: WizardContext = Field(default_factory=WizardContext)
    updated_at: datetime | None = None

    def to_record(self) -> dict[str, Any]:
        """JSON-safe record suitable for ``save_project``."""
        return {
            "id": self.id,
            "stage": self.stage.value,
            "status": self.status,
            "captured": serialize_captured(self.captured),
            "wizard": self.wizard.model_dump(mode="json", by_alias=True),
        }


def snapshot_from_record(project_id: str, record: Any) -> ProjectSnapshot:
    """Hydrate a stored record.

    The stored stage is only a hint: the returned stage is always derived
    from the captured data.

    Args:
        project_id: Identifier to stamp on the snapshot
        record: Stored record (dict), possibly malformed

    Returns:
        ProjectSnapshot, empty at BIG_IDEA when nothing is readable
    """
    if not isinstance(record, dict):
        logger.warning("snapshot_record_malformed", project_id=project_id, record_type=type(record).__name__)
        return ProjectSnapshot(id=project_id)

    captured = hydrate_captured(record.get("captured"))
    try:
        wizard = WizardContext.model_validate(record.get("wizard") or {})
    except ValidationError as e:
        logger.warning("snapshot_wizard_malformed", project_id=project_id, error=str(e))
        wizard = WizardContext()

    updated_at = record.get("updated_at")
    return ProjectSnapshot(
        id=project_id,
        stage=resume_stage(captured, record.get("stage")),
        status=compute_status(captured),
        captured=captured,
        wizard=wizard,
        updated_at=updated_at if isinstance(updated_at, datetime) else None,
    )


def _partial_fields(snapshot: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    project_id = snapshot.get("id")
    if not project_id:
        raise ValueError("Snapshot must include a project id")
    return str(project_id), {k: v for k, v in snapshot.items() if k in SNAPSHOT_FIELDS}


@runtime_checkable
class ProjectStore(Protocol):
    """Key-value store of project snapshots."""

    async def load_project(self, project_id: str) -> ProjectSnapshot | None:
        """Return the stored snapshot, or None if the project is unknown."""
        ...

    async def save_project(self, snapshot: dict[str, Any]) -> None:
        """Merge a partial record (must include ``id``) into the store."""
        ...


class InMemoryProjectStore:
    """Dict-backed store for tests and offline sessions."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    async def load_project(self, project_id: str) -> ProjectSnapshot | None:
        record = self._records.get(project_id)
        if record is None:
            return None
        return snapshot_from_record(project_id, copy.deepcopy(record))

    async def save_project(self, snapshot: dict[str, Any]) -> None:
        project_id, fields = _partial_fields(snapshot)
        record = self._records.setdefault(project_id, {})
        record.update(copy.deepcopy(fields))
        record["updated_at"] = datetime.now(timezone.utc)
        logger.debug("snapshot_saved", project_id=project_id, fields=sorted(fields))

    def raw(self, project_id: str) -> dict[str, Any] | None:
        """Stored record as written, for inspection."""
        record = self._records.get(project_id)
        return copy.deepcopy(record) if record is not None else None


class SqlProjectStore:
    """SQLAlchemy-backed store, one JSON row per project.

    Args:
        session_factory: Async session factory from ``get_session_factory``
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load_project(self, project_id: str) -> ProjectSnapshot | None:
        async with self._session_factory() as session:
            row = await session.get(ProjectRecord, project_id)
            if row is None:
                return None
            record = {
                "stage": row.stage,
                "status": row.status,
                "captured": row.captured,
                "wizard": row.wizard,
                "updated_at": row.updated_at,
            }
        return snapshot_from_record(project_id, record)

    async def save_project(self, snapshot: dict[str, Any]) -> None:
        project_id, fields = _partial_fields(snapshot)
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(ProjectRecord, project_id)
                if row is None:
                    row = ProjectRecord(id=project_id, captured={}, wizard={})
                    session.add(row)
                    logger.info("project_record_created", project_id=project_id)
                for key, value in fields.items():
                    setattr(row, key, value)
        logger.debug("snapshot_saved", project_id=project_id, fields=sorted(fields))

    async def list_project_ids(self) -> list[str]:
        """All stored project ids, most recently updated first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProjectRecord.id).order_by(ProjectRecord.updated_at.desc())
            )
            return list(result.scalars().all())
