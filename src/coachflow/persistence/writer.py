"""Debounced snapshot writer.

Engine mutations are buffered and flushed to the store once no new mutation
has arrived for a quiet period. Consecutive partial snapshots are merged, so
a flush writes the latest value of every field touched since the last
successful save. A failed save keeps the buffered fields for the next flush.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from coachflow.persistence.store import ProjectStore

logger = structlog.get_logger(__name__)


class DebouncedSnapshotWriter:
    """Coalesce snapshot writes for one project.

    Attributes:
        store: Destination store
        delay: Quiet period in seconds before a scheduled flush
    """

    def __init__(self, store: ProjectStore, delay: float = 1.0) -> None:
        self.store = store
        self.delay = delay
        self._pending: dict[str, Any] | None = None
        self._timer: asyncio.Task[None] | None = None
        self._flush_lock = asyncio.Lock()
        self._closed = False
        self.flush_count = 0

    @property
    def pending(self) -> bool:
        """Whether there are buffered fields not yet saved."""
        return self._pending is not None

    def schedule(self, snapshot: dict[str, Any]) -> None:
        """Buffer a partial snapshot and restart the quiet-period timer.

        Args:
            snapshot: Partial record including ``id``

        Raises:
            RuntimeError: If the writer has been closed
        """
        if self._closed:
            raise RuntimeError("DebouncedSnapshotWriter is closed")
        if self._pending is None:
            self._pending = dict(snapshot)
        else:
            self._pending.update(snapshot)

        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.create_task(self._delayed_flush())

    async def _delayed_flush(self) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return
        # Past this point a new schedule() must not cancel the save
        self._timer = None
        await self.flush()

    async def flush(self) -> bool:
        """Save buffered fields now.

        Returns:
            True if nothing was pending or the save succeeded
        """
        async with self._flush_lock:
            if self._pending is None:
                return True
            snapshot, self._pending = self._pending, None
            try:
                await self.store.save_project(snapshot)
            except Exception as e:
                # Newer fields buffered during the failed save take precedence
                merged = dict(snapshot)
                merged.update(self._pending or {})
                self._pending = merged
                logger.error(
                    "snapshot_flush_failed",
                    project_id=snapshot.get("id"),
                    error=str(e),
                    exc_info=True,
                )
                return False
            self.flush_count += 1
            logger.debug("snapshot_flushed", project_id=snapshot.get("id"), fields=sorted(snapshot))
            return True

    async def aclose(self) -> bool:
        """Stop the timer and flush whatever is buffered.

        Returns:
            Result of the final flush
        """
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        return await self.flush()
