"""Snapshot persistence for Coachflow.

Public API:
    ProjectSnapshot: Hydrated, resumable project state.
    ProjectStore: Load/save protocol consumed by the engine.
    InMemoryProjectStore: Dict-backed store.
    SqlProjectStore: SQLAlchemy async store.
    DebouncedSnapshotWriter: Coalescing background writer.
"""

from coachflow.persistence.connection import create_schema, get_engine, get_session_factory
from coachflow.persistence.models import Base, ProjectRecord
from coachflow.persistence.store import (
    InMemoryProjectStore,
    ProjectSnapshot,
    ProjectStore,
    SqlProjectStore,
    snapshot_from_record,
)
from coachflow.persistence.writer import DebouncedSnapshotWriter

__all__ = [
    # Connection
    "get_engine",
    "get_session_factory",
    "create_schema",
    # Models
    "Base",
    "ProjectRecord",
    # Stores
    "ProjectSnapshot",
    "ProjectStore",
    "InMemoryProjectStore",
    "SqlProjectStore",
    "snapshot_from_record",
    # Writer
    "DebouncedSnapshotWriter",
]
