"""Journey micro-flow.

A nested state machine that negotiates the learning-journey phases with the
user::

    not_started -> context_gathering -> phases_proposed <-> refining
                                              |
                                      accepted | cancelled

Transitions are pure: every function takes a state and returns a new one.
Generation itself happens outside (the engine calls the AI or the template
and hands the phases back through ``apply_generated_phases``).
"""

from __future__ import annotations

import re
from enum import Enum

import structlog
from pydantic import BaseModel, Field

from coachflow.domain.captured import CapturedData, Phase, WizardContext, parse_phases
from coachflow.domain.editing import (
    EditError,
    EditKind,
    apply_edit,
    describe_edit,
    parse_edit_command,
    to_index,
)
from coachflow.domain.gating import MIN_NAMED_PHASES
from coachflow.domain.timeline import (
    allocate_week_ranges,
    estimate_duration_weeks,
    recommended_phase_count,
)

logger = structlog.get_logger(__name__)


class JourneySubStep(str, Enum):
    NOT_STARTED = "not_started"
    CONTEXT_GATHERING = "context_gathering"
    PHASES_PROPOSED = "phases_proposed"
    REFINING = "refining"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"


TERMINAL_SUB_STEPS = frozenset({JourneySubStep.ACCEPTED, JourneySubStep.CANCELLED})


class JourneyAction(str, Enum):
    SHOW_ALL = "show_all"
    NEXT_PHASE = "next_phase"
    PREVIOUS_PHASE = "previous_phase"
    SHORTEN = "shorten"
    LENGTHEN = "lengthen"
    REGENERATE = "regenerate"
    EDIT = "edit"
    ADD_ACTIVITY = "add_activity"
    CUSTOM = "custom"
    ACCEPT = "accept"
    NONE = "none"


class JourneyMicroState(BaseModel):
    """In-progress journey negotiation.

    Attributes:
        sub_step: Current position in the flow
        suggested_phases: Last generated proposal
        working_phases: Proposal with the user's edits applied; None until
            the first proposal arrives
        current_phase_index: Phase shown during a one-at-a-time walkthrough
        phase_count: Number of phases requested from generation
        weeks: Estimated project length used for week ranges
    """

    sub_step: JourneySubStep = JourneySubStep.NOT_STARTED
    suggested_phases: list[Phase] = Field(default_factory=list)
    working_phases: list[Phase] | None = None
    current_phase_index: int = 0
    phase_count: int = 4
    weeks: int = 4

    @property
    def active(self) -> bool:
        return self.sub_step not in TERMINAL_SUB_STEPS

    @property
    def phases(self) -> list[Phase]:
        """Phases that acceptance would commit."""
        if self.working_phases is not None:
            return self.working_phases
        return self.suggested_phases

    @property
    def named_count(self) -> int:
        return sum(1 for p in self.phases if p.is_named)


class JourneyChoice(BaseModel):
    """Outcome of one user turn inside the flow.

    Attributes:
        action: What the turn asked for
        state: State after the turn
        message: Text for the user, if the flow produced one
        regenerate: Whether new phases must be generated for ``state``
        feedback: User wording to pass along to generation
    """

    action: JourneyAction
    state: JourneyMicroState
    message: str | None = None
    regenerate: bool = False
    feedback: str | None = None


class JourneyFlowError(RuntimeError):
    """Raised on an illegal transition."""


def _clamp(count: int, min_phases: int, max_phases: int) -> int:
    return max(min_phases, min(max_phases, count))


def start_journey(wizard: WizardContext, *, min_phases: int = 2, max_phases: int = 6) -> JourneyMicroState:
    """Enter the flow and size the first proposal from the project duration.

    Returns:
        State in ``context_gathering``, waiting for generated phases
    """
    weeks = estimate_duration_weeks(wizard.duration)
    count = _clamp(recommended_phase_count(weeks), max(min_phases, MIN_NAMED_PHASES), max_phases)
    logger.info("journey_flow_started", weeks=weeks, phase_count=count)
    return JourneyMicroState(
        sub_step=JourneySubStep.CONTEXT_GATHERING, phase_count=count, weeks=weeks
    )


def apply_generated_phases(state: JourneyMicroState, phases: list[Phase]) -> JourneyMicroState:
    """Install a fresh proposal and move to ``phases_proposed``.

    Missing week ranges are filled in from the project length.
    """
    if not state.active:
        raise JourneyFlowError(f"Cannot propose phases in state {state.sub_step.value}")
    ranges = allocate_week_ranges(state.weeks, len(phases))
    proposal = [
        p.model_copy(update={"checkpoint": p.checkpoint or ranges[i]}) for i, p in enumerate(phases)
    ]
    return state.model_copy(
        update={
            "sub_step": JourneySubStep.PHASES_PROPOSED,
            "suggested_phases": proposal,
            "working_phases": [p.model_copy(deep=True) for p in proposal],
            "current_phase_index": 0,
            "phase_count": len(proposal),
        }
    )


def cancel_journey(state: JourneyMicroState) -> JourneyMicroState:
    logger.info("journey_flow_cancelled", sub_step=state.sub_step.value)
    return state.model_copy(update={"sub_step": JourneySubStep.CANCELLED})


def can_accept(state: JourneyMicroState) -> bool:
    """Whether the working phases are enough to accept the journey."""
    return state.active and len(state.phases) >= MIN_NAMED_PHASES and state.named_count >= MIN_NAMED_PHASES


def accept_journey(state: JourneyMicroState) -> JourneyMicroState:
    """Move to ``accepted``.

    Raises:
        JourneyFlowError: If fewer than three named phases are on offer
    """
    if not can_accept(state):
        raise JourneyFlowError(
            f"Journey needs at least {MIN_NAMED_PHASES} named phases (has {state.named_count})"
        )
    logger.info("journey_flow_accepted", phase_count=len(state.phases))
    return state.model_copy(update={"sub_step": JourneySubStep.ACCEPTED})


def commit_phases(captured: CapturedData, state: JourneyMicroState) -> CapturedData:
    """Return new captured data with the working phases as the journey."""
    nxt = captured.clone()
    nxt.journey.phases = [p.model_copy(deep=True) for p in state.phases]
    return nxt


# --- Rendering ---------------------------------------------------------------


def format_phase(phase: Phase, number: int) -> str:
    header = f"Phase {number}: {phase.name}"
    if phase.checkpoint:
        header += f" ({phase.checkpoint})"
    lines = [header]
    if phase.focus:
        lines.append(f"  {phase.focus}")
    lines.extend(f"  - {activity}" for activity in phase.activities)
    return "\n".join(lines)


def format_journey_proposal(state: JourneyMicroState) -> str:
    """Render the full proposal with the available next steps."""
    lines = ["Here's a learning journey for your project:", ""]
    for number, phase in enumerate(state.phases, start=1):
        lines.append(format_phase(phase, number))
        lines.append("")
    lines.append(
        "Say \"yes\" to use it, \"walk me through it\" to go phase by phase, "
        "\"shorter\" or \"longer\" to resize, or rename, reorder, add, or remove phases."
    )
    return "\n".join(lines)


def _format_walkthrough(state: JourneyMicroState) -> str:
    total = len(state.phases)
    index = state.current_phase_index
    text = format_phase(state.phases[index], index + 1)
    hint = "Say \"next\" to continue" if index + 1 < total else "That's the last phase. Say \"yes\" to accept"
    return f"{text}\n\n{hint}, or edit this phase."


# --- Choice handling ---------------------------------------------------------

_SHOW_ALL_RE = re.compile(
    r"\b(show (?:me )?(?:all|everything|the (?:whole|full|complete))|see (?:all|the whole|everything)|"
    r"suggest (?:a )?journey|full (?:list|journey|plan))\b",
    re.I,
)
_NEXT_RE = re.compile(r"^(?:next|continue|go on|keep going|next (?:phase|one)|walk me through(?: it| them)?|"
                      r"one at a time|step through(?: it| them)?|go through (?:it|them|each)(?: one by one)?)$", re.I)
_PREVIOUS_RE = re.compile(r"^(?:back|previous|go back|previous (?:phase|one))$", re.I)
_COUNT_RE = re.compile(r"\b(\d+|two|three|four|five|six)\s+phases?\b", re.I)
_SHORTEN_RE = re.compile(r"\b(shorter|fewer(?: phases)?|less phases|condense|compress|cut (?:it )?down)\b", re.I)
_LENGTHEN_RE = re.compile(r"\b(longer|more phases|lengthen|expand it|extend it|another phase)\b", re.I)
_REGENERATE_RE = re.compile(
    r"\b(regenerate|try again|start fresh|different (?:approach|journey|phases|ones?)|new (?:journey|phases|ones?)|"
    r"make (?:it|them) (?:more|less)\b.*|more (?:specific|hands-on|concrete)|something else)\b",
    re.I,
)
_ADD_ACTIVITY_RE = re.compile(
    r"^(?:please\s+)?add\s+(?:an?\s+)?(?:activity\s+)?(?P<value>.+?)\s+to\s+phase\s+(?P<num>\d+|one|two|three|four|five|six)\s*\.?$",
    re.I,
)
_ACCEPT_RE = re.compile(
    r"^(?:yes|yep|yeah|sure|ok(?:ay)?|perfect|great|looks good|sounds good|accept(?: all| it| them)?|"
    r"use (?:this|these|it|them)|go ahead|proceed|done|finalize(?: it)?|lock it in)[.!]*$",
    re.I,
)


def _is_resize_request(text: str) -> bool:
    return bool(_COUNT_RE.search(text) or _SHORTEN_RE.search(text) or _LENGTHEN_RE.search(text))


def _with_phases(state: JourneyMicroState, phases: list[Phase]) -> JourneyMicroState:
    return state.model_copy(update={"working_phases": phases})


def handle_journey_choice(
    state: JourneyMicroState,
    text: str,
    *,
    min_phases: int = 2,
    max_phases: int = 6,
) -> JourneyChoice:
    """Interpret one turn while the journey flow is active.

    Edits change the working phases without changing the sub-step. Size
    changes and regeneration set ``regenerate`` so the caller can produce a
    new proposal.

    Args:
        state: Current flow state (not modified)
        text: Substantive user text
        min_phases: Smallest proposal size allowed
        max_phases: Largest proposal size allowed

    Returns:
        JourneyChoice describing the outcome
    """
    if not state.active:
        raise JourneyFlowError(f"Journey flow is not active ({state.sub_step.value})")
    stripped = text.strip()

    if _ACCEPT_RE.match(stripped):
        return JourneyChoice(action=JourneyAction.ACCEPT, state=state)

    if _SHOW_ALL_RE.search(stripped):
        shown = state.model_copy(update={"sub_step": JourneySubStep.PHASES_PROPOSED, "current_phase_index": 0})
        return JourneyChoice(action=JourneyAction.SHOW_ALL, state=shown, message=format_journey_proposal(shown))

    if _NEXT_RE.match(stripped) and state.phases:
        if state.sub_step is JourneySubStep.REFINING:
            index = state.current_phase_index + 1
        else:
            index = 0
        if index >= len(state.phases):
            shown = state.model_copy(update={"sub_step": JourneySubStep.PHASES_PROPOSED, "current_phase_index": 0})
            return JourneyChoice(action=JourneyAction.SHOW_ALL, state=shown, message=format_journey_proposal(shown))
        paged = state.model_copy(update={"sub_step": JourneySubStep.REFINING, "current_phase_index": index})
        return JourneyChoice(action=JourneyAction.NEXT_PHASE, state=paged, message=_format_walkthrough(paged))

    if _PREVIOUS_RE.match(stripped) and state.sub_step is JourneySubStep.REFINING:
        paged = state.model_copy(update={"current_phase_index": max(0, state.current_phase_index - 1)})
        return JourneyChoice(action=JourneyAction.PREVIOUS_PHASE, state=paged, message=_format_walkthrough(paged))

    if match := _ADD_ACTIVITY_RE.match(stripped):
        index = to_index(match.group("num"))
        if not 0 <= index < len(state.phases):
            return JourneyChoice(
                action=JourneyAction.NONE, state=state, message=f"There is no phase {index + 1}."
            )
        phases = [p.model_copy(deep=True) for p in state.phases]
        phases[index].activities.append(match.group("value").strip())
        return JourneyChoice(
            action=JourneyAction.ADD_ACTIVITY,
            state=_with_phases(state, phases),
            message=f"Added \"{match.group('value').strip()}\" to phase {index + 1}.",
        )

    command = parse_edit_command(stripped)
    if command is not None and command.kind is EditKind.ADD and _is_resize_request(stripped):
        command = None
    if command is not None:
        try:
            phases = apply_edit(
                state.phases,
                command,
                rename=lambda p, name: p.model_copy(update={"name": name}),
                create=lambda value: (parse_phases(value) or [Phase(name=value)])[0],
            )
        except EditError as e:
            return JourneyChoice(action=JourneyAction.NONE, state=state, message=str(e))
        edited = _with_phases(state, phases)
        if edited.current_phase_index >= len(phases):
            edited = edited.model_copy(update={"current_phase_index": max(0, len(phases) - 1)})
        logger.debug("journey_phases_edited", kind=command.kind.value, phase_count=len(phases))
        return JourneyChoice(
            action=JourneyAction.EDIT,
            state=edited,
            message=f"{describe_edit(command, 'phase')}\n\n{format_journey_proposal(edited)}",
        )

    if match := _COUNT_RE.search(stripped):
        count = _clamp(to_index(match.group(1)) + 1, min_phases, max_phases)
        action = JourneyAction.SHORTEN if count < len(state.phases) else JourneyAction.LENGTHEN
        return _resize(state, count, action, stripped)

    if _SHORTEN_RE.search(stripped):
        return _resize(state, _clamp(len(state.phases) - 1, min_phases, max_phases), JourneyAction.SHORTEN, stripped)

    if _LENGTHEN_RE.search(stripped):
        return _resize(state, _clamp(len(state.phases) + 1, min_phases, max_phases), JourneyAction.LENGTHEN, stripped)

    if _REGENERATE_RE.search(stripped):
        return JourneyChoice(action=JourneyAction.REGENERATE, state=state, regenerate=True, feedback=stripped)

    custom = parse_phases(stripped)
    if len(custom) >= 2:
        proposed = state.model_copy(
            update={
                "sub_step": JourneySubStep.PHASES_PROPOSED,
                "suggested_phases": custom,
                "working_phases": [p.model_copy(deep=True) for p in custom],
                "current_phase_index": 0,
            }
        )
        return JourneyChoice(
            action=JourneyAction.CUSTOM, state=proposed, message=format_journey_proposal(proposed)
        )

    return JourneyChoice(
        action=JourneyAction.NONE,
        state=state,
        message=(
            "I'm not sure what you'd like to change. Say \"yes\" to use this journey, "
            "\"shorter\" for fewer phases, \"rename phase 2 to ...\", or list your own phases one per line."
        ),
    )


def _resize(state: JourneyMicroState, count: int, action: JourneyAction, feedback: str) -> JourneyChoice:
    if count == len(state.phases):
        return JourneyChoice(
            action=JourneyAction.NONE,
            state=state,
            message=f"The journey already has {count} phases, which is the limit for this change.",
        )
    resized = state.model_copy(update={"phase_count": count})
    return JourneyChoice(action=action, state=resized, regenerate=True, feedback=feedback)


def regenerate_request(state: JourneyMicroState) -> JourneyChoice:
    """Choice for a request-alternatives intent while the flow is active."""
    return JourneyChoice(action=JourneyAction.REGENERATE, state=state, regenerate=True)
