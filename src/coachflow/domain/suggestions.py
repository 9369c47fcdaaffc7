"""Suggestion tracker.

Keeps the last few AI-offered options so the intent classifier can resolve
"the second one" or "yes" back to concrete text. The window is session-wide,
not per stage, and ordered most-recent-first.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from coachflow.domain.stages import Stage

logger = structlog.get_logger(__name__)

DEFAULT_WINDOW = 5

SuggestionSource = Literal["ai", "user"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Suggestion(BaseModel):
    """One option shown to the user.

    Attributes:
        id: Unique identifier
        stage: Stage the option was offered for
        text: Option text as displayed
        source: Who produced it
        offered_at: When it was shown
        selected: Whether the user picked it
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    stage: Stage
    text: str
    source: SuggestionSource = "ai"
    offered_at: datetime = Field(default_factory=_utcnow)
    selected: bool = False


class SuggestionTracker:
    """Bounded, most-recent-first ledger of offered suggestions.

    The tracker is the only writer of its buffer. Readers get copies.
    Selections are additionally appended to ``selection_log`` so the audit
    trail survives suggestions rolling out of the window.
    """

    def __init__(self, capacity: int = DEFAULT_WINDOW) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._buffer: deque[Suggestion] = deque(maxlen=capacity)
        self.selection_log: list[Suggestion] = []

    def __len__(self) -> int:
        return len(self._buffer)

    def track_multiple(
        self, stage: Stage, texts: list[str], source: SuggestionSource = "ai"
    ) -> list[Suggestion]:
        """Record a batch of options shown together.

        The batch keeps its display order at the front of the window, so the
        first option shown is index 0 for ordinal references.

        Args:
            stage: Stage the options belong to
            texts: Option texts in display order
            source: Producer of the options

        Returns:
            The created suggestions in display order
        """
        created = [
            Suggestion(stage=stage, text=text.strip(), source=source)
            for text in texts
            if text and text.strip()
        ]
        for suggestion in reversed(created):
            self._buffer.appendleft(suggestion)
        logger.debug(
            "suggestions_tracked", stage=stage.value, count=len(created), window=len(self._buffer)
        )
        return created

    def get_recent_texts(self, n: int | None = None) -> list[str]:
        """Return up to ``n`` texts, most recent first."""
        return [s.text for s in self.get_most_recent(n)]

    def get_most_recent(self, n: int | None = None) -> list[Suggestion]:
        """Return up to ``n`` suggestions (copies), most recent first."""
        items = list(self._buffer)
        if n is not None:
            items = items[: max(n, 0)]
        return [s.model_copy() for s in items]

    def record_selection(self, suggestion_id: str) -> bool:
        """Mark a suggestion as selected.

        Idempotent: selecting the same suggestion twice logs it once.

        Returns:
            False if the id is not in the window
        """
        for suggestion in self._buffer:
            if suggestion.id == suggestion_id:
                if not suggestion.selected:
                    suggestion.selected = True
                    self.selection_log.append(suggestion.model_copy())
                    logger.info(
                        "suggestion_selected", suggestion_id=suggestion_id, stage=suggestion.stage.value
                    )
                return True
        logger.debug("suggestion_selection_unknown", suggestion_id=suggestion_id)
        return False

    def clear(self) -> None:
        """Forget the offered window. The selection log is kept."""
        self._buffer.clear()
