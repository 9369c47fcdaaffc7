"""Stage definitions for the design conversation.

The five stages have a fixed total order and the conversation only ever
moves forward through it, one position at a time.
"""

from __future__ import annotations

from enum import Enum


class Stage(str, Enum):
    """Design stages in conversation order.

    Attributes:
        BIG_IDEA: Transferable concept that anchors the project
        ESSENTIAL_QUESTION: Open-ended question that drives inquiry
        CHALLENGE: Authentic task for a real audience
        JOURNEY: Sequence of learning phases
        DELIVERABLES: Milestones, artifacts, and rubric criteria
    """

    BIG_IDEA = "BIG_IDEA"
    ESSENTIAL_QUESTION = "ESSENTIAL_QUESTION"
    CHALLENGE = "CHALLENGE"
    JOURNEY = "JOURNEY"
    DELIVERABLES = "DELIVERABLES"

    @property
    def label(self) -> str:
        """Human-readable stage name, e.g. ``Essential Question``."""
        return self.value.replace("_", " ").title()


class StageError(ValueError):
    """Raised when a value cannot be interpreted as a stage."""


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.BIG_IDEA,
    Stage.ESSENTIAL_QUESTION,
    Stage.CHALLENGE,
    Stage.JOURNEY,
    Stage.DELIVERABLES,
)

IDEATION_STAGES: frozenset[Stage] = frozenset(
    {Stage.BIG_IDEA, Stage.ESSENTIAL_QUESTION, Stage.CHALLENGE}
)


def stage_index(stage: Stage) -> int:
    """Return the zero-based position of ``stage`` in STAGE_ORDER."""
    return STAGE_ORDER.index(stage)


def next_stage(current: Stage) -> Stage | None:
    """Return the stage after ``current``, or None for the final stage."""
    i = stage_index(current)
    if i == len(STAGE_ORDER) - 1:
        return None
    return STAGE_ORDER[i + 1]


def parse_stage(value: str | Stage) -> Stage:
    """Normalize loose stage spellings (``"big idea"``, ``"Journey"``).

    Args:
        value: Stage or stage-like string

    Returns:
        Matching Stage

    Raises:
        StageError: If the value names no stage
    """
    if isinstance(value, Stage):
        return value
    normalized = str(value).strip().upper().replace("-", "_").replace(" ", "_")
    try:
        return Stage(normalized)
    except ValueError as e:
        raise StageError(f"Unknown stage: {value!r}") from e
