"""Stage gating.

``validate`` decides whether the captured data for a stage is sufficient to
advance. It is a pure function of the captured data, so the current stage
never needs to be stored: ``derive_current_stage`` walks the stage order and
returns the first stage that does not yet validate.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, Field

from coachflow.domain.captured import CapturedData
from coachflow.domain.quality import MIN_GATE_CHARS, meets_substance_bar
from coachflow.domain.stages import STAGE_ORDER, Stage, StageError, parse_stage

logger = structlog.get_logger(__name__)

MIN_NAMED_PHASES = 3
MIN_MILESTONES = 3
MIN_ARTIFACTS = 1
MIN_CRITERIA = 3


class GateResult(BaseModel):
    """Outcome of validating one stage.

    Attributes:
        ok: Whether the stage's content is sufficient to advance
        reason: Human-readable explanation when not ok
    """

    ok: bool
    reason: str | None = Field(default=None)


_PASS = GateResult(ok=True)


def _named(names: list[str]) -> int:
    return sum(1 for n in names if n and n.strip())


def validate(stage: Stage, captured: CapturedData) -> GateResult:
    """Check whether ``captured`` satisfies the gate for ``stage``.

    Args:
        stage: Stage to check
        captured: Captured data (not modified)

    Returns:
        GateResult with ``ok`` and, on failure, a reason
    """
    if stage is Stage.BIG_IDEA:
        if meets_substance_bar(stage, captured.ideation.big_idea):
            return _PASS
        return GateResult(
            ok=False,
            reason=f"Please define a substantial Big Idea (at least {MIN_GATE_CHARS[stage]} characters).",
        )

    if stage is Stage.ESSENTIAL_QUESTION:
        if meets_substance_bar(stage, captured.ideation.essential_question):
            return _PASS
        return GateResult(
            ok=False,
            reason=f"Write an open-ended Essential Question (at least {MIN_GATE_CHARS[stage]} characters).",
        )

    if stage is Stage.CHALLENGE:
        if meets_substance_bar(stage, captured.ideation.challenge):
            return _PASS
        return GateResult(
            ok=False,
            reason=f"Describe an authentic Challenge (at least {MIN_GATE_CHARS[stage]} characters).",
        )

    if stage is Stage.JOURNEY:
        phases = captured.journey.phases
        named = _named([p.name for p in phases])
        if len(phases) >= MIN_NAMED_PHASES and named >= MIN_NAMED_PHASES:
            return _PASS
        return GateResult(
            ok=False,
            reason=f"Add at least {MIN_NAMED_PHASES} phases with names (currently {named}).",
        )

    if stage is Stage.DELIVERABLES:
        deliverables = captured.deliverables
        milestones = _named([m.name for m in deliverables.milestones])
        artifacts = _named([a.name for a in deliverables.artifacts])
        criteria = _named(deliverables.rubric.criteria)
        if milestones >= MIN_MILESTONES and artifacts >= MIN_ARTIFACTS and criteria >= MIN_CRITERIA:
            return _PASS
        missing: list[str] = []
        if milestones < MIN_MILESTONES:
            missing.append(f"{MIN_MILESTONES}+ milestones (have {milestones})")
        if artifacts < MIN_ARTIFACTS:
            missing.append(f"{MIN_ARTIFACTS}+ artifact (have {artifacts})")
        if criteria < MIN_CRITERIA:
            missing.append(f"{MIN_CRITERIA}+ rubric criteria (have {criteria})")
        return GateResult(ok=False, reason="Still needed: " + ", ".join(missing) + ".")

    raise StageError(f"Unknown stage: {stage!r}")


def derive_current_stage(captured: CapturedData) -> Stage:
    """Return the first stage whose gate does not pass.

    When every gate passes the final stage is returned; use
    ``is_design_complete`` to tell a finished design apart.
    """
    for stage in STAGE_ORDER:
        if not validate(stage, captured).ok:
            return stage
    return STAGE_ORDER[-1]


def is_design_complete(captured: CapturedData) -> bool:
    """Whether every stage's gate passes."""
    return all(validate(stage, captured).ok for stage in STAGE_ORDER)


def resume_stage(captured: CapturedData, stage_hint: str | Stage | None = None) -> Stage:
    """Pick the stage to resume a session at.

    The stage derived from data is authoritative. A stored cursor is only a
    hint: it is compared against the derived stage and a disagreement is
    logged, but it never overrides the data.

    Args:
        captured: Hydrated captured data
        stage_hint: Stage stored alongside the snapshot, if any

    Returns:
        The derived stage
    """
    derived = derive_current_stage(captured)
    if stage_hint is None:
        return derived
    try:
        hinted = parse_stage(stage_hint)
    except StageError:
        logger.warning("stage_hint_invalid", stage_hint=str(stage_hint), derived=derived.value)
        return derived
    if hinted is not derived:
        logger.warning("stage_hint_mismatch", stage_hint=hinted.value, derived=derived.value)
    return derived
