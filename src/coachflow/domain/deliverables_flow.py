"""Deliverables micro-flow.

A strictly linear walk through the three deliverable components::

    not_started -> intro -> review_milestones -> review_artifacts
                -> review_criteria -> accepted | cancelled

Accepting a component commits that component. Accepting the criteria
commits all three components together in one replacement of the captured
data, so no observer can see milestones from one proposal next to criteria
from another.
"""

from __future__ import annotations

import re
from enum import Enum

import structlog
from pydantic import BaseModel, Field

from coachflow.domain.captured import CapturedData, NamedItem, WizardContext, split_items
from coachflow.domain.editing import EditError, apply_edit, describe_edit, parse_edit_command
from coachflow.domain.gating import MIN_ARTIFACTS, MIN_CRITERIA, MIN_MILESTONES
from coachflow.domain.quality import word_count
from coachflow.domain.templates import template_artifacts, template_criteria, template_milestones

logger = structlog.get_logger(__name__)


class DeliverablesSubStep(str, Enum):
    NOT_STARTED = "not_started"
    INTRO = "intro"
    REVIEW_MILESTONES = "review_milestones"
    REVIEW_ARTIFACTS = "review_artifacts"
    REVIEW_CRITERIA = "review_criteria"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"


class DeliverableComponent(str, Enum):
    MILESTONES = "milestones"
    ARTIFACTS = "artifacts"
    CRITERIA = "criteria"

    @property
    def noun(self) -> str:
        return {"milestones": "milestone", "artifacts": "artifact", "criteria": "criterion"}[self.value]

    @property
    def minimum(self) -> int:
        return {"milestones": MIN_MILESTONES, "artifacts": MIN_ARTIFACTS, "criteria": MIN_CRITERIA}[self.value]


_REVIEW_STEPS: dict[DeliverablesSubStep, DeliverableComponent] = {
    DeliverablesSubStep.REVIEW_MILESTONES: DeliverableComponent.MILESTONES,
    DeliverablesSubStep.REVIEW_ARTIFACTS: DeliverableComponent.ARTIFACTS,
    DeliverablesSubStep.REVIEW_CRITERIA: DeliverableComponent.CRITERIA,
}
_NEXT_STEP: dict[DeliverablesSubStep, DeliverablesSubStep] = {
    DeliverablesSubStep.INTRO: DeliverablesSubStep.REVIEW_MILESTONES,
    DeliverablesSubStep.REVIEW_MILESTONES: DeliverablesSubStep.REVIEW_ARTIFACTS,
    DeliverablesSubStep.REVIEW_ARTIFACTS: DeliverablesSubStep.REVIEW_CRITERIA,
    DeliverablesSubStep.REVIEW_CRITERIA: DeliverablesSubStep.ACCEPTED,
}
TERMINAL_SUB_STEPS = frozenset({DeliverablesSubStep.ACCEPTED, DeliverablesSubStep.CANCELLED})


class DeliverablesMicroState(BaseModel):
    """In-progress deliverables negotiation.

    Attributes:
        sub_step: Current position in the flow
        suggested: Last generated proposal per component
        working: Proposal per component with the user's edits applied
        variants: Template variant per component, bumped on regeneration
    """

    sub_step: DeliverablesSubStep = DeliverablesSubStep.NOT_STARTED
    suggested: dict[DeliverableComponent, list[str]] = Field(default_factory=dict)
    working: dict[DeliverableComponent, list[str]] = Field(default_factory=dict)
    variants: dict[DeliverableComponent, int] = Field(default_factory=dict)

    @property
    def active(self) -> bool:
        return self.sub_step not in TERMINAL_SUB_STEPS

    @property
    def component(self) -> DeliverableComponent | None:
        """Component under review, or None outside the review steps."""
        return _REVIEW_STEPS.get(self.sub_step)

    def items(self, component: DeliverableComponent) -> list[str]:
        """Items acceptance would commit. An emptied working list stays empty."""
        if component in self.working:
            return list(self.working[component])
        return list(self.suggested.get(component, []))


class DeliverablesAction(str, Enum):
    INTRO_ACCEPTED = "intro_accepted"
    ACCEPT_COMPONENT = "accept_component"
    ACCEPT_ALL = "accept_all"
    SHOW_ALL = "show_all"
    REGENERATE = "regenerate"
    EDIT = "edit"
    CUSTOM = "custom"
    NONE = "none"


class DeliverablesChoice(BaseModel):
    """Outcome of one user turn inside the flow.

    Attributes:
        action: What the turn asked for
        state: State after the turn
        message: Text for the user, if the flow produced one
        commit: Component to write into captured data; ``None`` for no
            write. For ACCEPT_ALL every component is written.
        regenerate: Component that needs a new proposal
        feedback: User wording to pass along to generation
    """

    action: DeliverablesAction
    state: DeliverablesMicroState
    message: str | None = None
    commit: DeliverableComponent | None = None
    regenerate: DeliverableComponent | None = None
    feedback: str | None = None


class DeliverablesFlowError(RuntimeError):
    """Raised on an illegal transition."""


def template_component(
    component: DeliverableComponent, captured: CapturedData, wizard: WizardContext, variant: int = 0
) -> list[str]:
    """Deterministic proposal for one component."""
    if component is DeliverableComponent.MILESTONES:
        return template_milestones(captured, variant)
    if component is DeliverableComponent.ARTIFACTS:
        return template_artifacts(captured, wizard, variant)
    return template_criteria(captured, wizard, variant)


def start_deliverables(captured: CapturedData, wizard: WizardContext) -> DeliverablesMicroState:
    """Enter the flow with template proposals for every component."""
    suggested = {c: template_component(c, captured, wizard) for c in DeliverableComponent}
    logger.info("deliverables_flow_started", milestones=len(suggested[DeliverableComponent.MILESTONES]))
    return DeliverablesMicroState(
        sub_step=DeliverablesSubStep.INTRO,
        suggested=suggested,
        working={c: list(items) for c, items in suggested.items()},
        variants={c: 0 for c in DeliverableComponent},
    )


def apply_generated_component(
    state: DeliverablesMicroState, component: DeliverableComponent, items: list[str]
) -> DeliverablesMicroState:
    """Replace one component's proposal with freshly generated items."""
    if not state.active:
        raise DeliverablesFlowError(f"Cannot update proposals in state {state.sub_step.value}")
    suggested = dict(state.suggested)
    working = dict(state.working)
    suggested[component] = list(items)
    working[component] = list(items)
    return state.model_copy(update={"suggested": suggested, "working": working})


def bump_variant(state: DeliverablesMicroState, component: DeliverableComponent) -> DeliverablesMicroState:
    variants = dict(state.variants)
    variants[component] = variants.get(component, 0) + 1
    return state.model_copy(update={"variants": variants})


def cancel_deliverables(state: DeliverablesMicroState) -> DeliverablesMicroState:
    logger.info("deliverables_flow_cancelled", sub_step=state.sub_step.value)
    return state.model_copy(update={"sub_step": DeliverablesSubStep.CANCELLED})


def _write_component(target: CapturedData, state: DeliverablesMicroState, component: DeliverableComponent) -> None:
    items = [i.strip() for i in state.items(component) if i.strip()]
    if component is DeliverableComponent.MILESTONES:
        target.deliverables.milestones = [NamedItem(name=i) for i in items]
    elif component is DeliverableComponent.ARTIFACTS:
        target.deliverables.artifacts = [NamedItem(name=i) for i in items]
    else:
        target.deliverables.rubric.criteria = items


def commit_component(
    captured: CapturedData, state: DeliverablesMicroState, component: DeliverableComponent
) -> CapturedData:
    """Return new captured data with one component replaced."""
    nxt = captured.clone()
    _write_component(nxt, state, component)
    return nxt


def commit_all(captured: CapturedData, state: DeliverablesMicroState) -> CapturedData:
    """Return new captured data with all three components replaced."""
    nxt = captured.clone()
    for component in DeliverableComponent:
        _write_component(nxt, state, component)
    return nxt


# --- Rendering ---------------------------------------------------------------

_HEADINGS: dict[DeliverableComponent, tuple[str, str, str]] = {
    DeliverableComponent.MILESTONES: (
        "Milestones: progress checkpoints showing students are on track",
        "Based on your journey, here are suggested milestones:",
        "Do these milestones work for tracking progress?",
    ),
    DeliverableComponent.ARTIFACTS: (
        "Final artifacts: what students create and present",
        "Based on your challenge, here are suggested artifacts:",
        "Do these match what you picture students creating?",
    ),
    DeliverableComponent.CRITERIA: (
        "Rubric criteria: how you'll evaluate quality",
        "Here are criteria that assess both outcomes and process:",
        "Do these cover what matters most for this project?",
    ),
}


def format_intro() -> str:
    return (
        "Time to define deliverables. We'll go through three components:\n\n"
        "1. Milestones: checkpoints during the journey (e.g. \"Research synthesis complete\")\n"
        "2. Artifacts: final products students create (e.g. \"Campaign toolkit for community partners\")\n"
        "3. Rubric criteria: qualities you'll assess (e.g. \"Evidence supports claims\")\n\n"
        "I'll suggest each one based on your journey. Ready to start with milestones?"
    )


def format_review(state: DeliverablesMicroState, component: DeliverableComponent) -> str:
    title, lead, question = _HEADINGS[component]
    lines = [title, "", lead]
    lines.extend(f"{i}. {item}" for i, item in enumerate(state.items(component), start=1))
    lines.extend(["", f"{question} Say \"yes\" to continue, edit by number, or ask for different ones."])
    return "\n".join(lines)


def format_all(state: DeliverablesMicroState) -> str:
    lines = ["Here's the complete deliverables structure so far:"]
    for component in DeliverableComponent:
        lines.extend(["", component.value.capitalize()])
        lines.extend(f"{i}. {item}" for i, item in enumerate(state.items(component), start=1))
    return "\n".join(lines)


def format_current(state: DeliverablesMicroState) -> str:
    """Render whatever the current sub-step is asking about."""
    component = state.component
    if component is None:
        return format_intro()
    return format_review(state, component)


# --- Choice handling ---------------------------------------------------------

_ACCEPT_RE = re.compile(
    r"^(?:yes|yep|yeah|yup|sure|ok(?:ay)?|perfect|great|looks good|sounds good|these work|"
    r"continue|next|move on|ready|let's start|start|go ahead|accept(?: all| them| these)?|"
    r"use (?:this|these|them|it))[.!]*$",
    re.I,
)
_SHOW_ALL_RE = re.compile(r"\b(show (?:me )?(?:all|everything)|see everything|complete structure)\b", re.I)
_REFINE_RE = re.compile(
    r"\b(regenerate|try again|different (?:ones?|milestones|artifacts|criteria)|new (?:ones|milestones|artifacts|criteria)|"
    r"make (?:it|them) (?:more|less)|more (?:specific|measurable|student-friendly|concrete)|simpler)\b",
    re.I,
)
_CRITERION_PREFIX_RE = re.compile(r"^(?:rubric\s+)?(?:criterion|criteria)\s*[:\-]?\s*", re.I)


def accept_current(state: DeliverablesMicroState) -> DeliverablesChoice:
    """Accept the current step and advance.

    The component under review must meet its minimum count; otherwise the
    state is unchanged and the message says what is missing.
    """
    if not state.active:
        raise DeliverablesFlowError(f"Deliverables flow is not active ({state.sub_step.value})")

    if state.sub_step in (DeliverablesSubStep.NOT_STARTED, DeliverablesSubStep.INTRO):
        nxt = state.model_copy(update={"sub_step": DeliverablesSubStep.REVIEW_MILESTONES})
        return DeliverablesChoice(
            action=DeliverablesAction.INTRO_ACCEPTED,
            state=nxt,
            message=format_review(nxt, DeliverableComponent.MILESTONES),
        )

    component = state.component
    assert component is not None
    items = [i for i in state.items(component) if i.strip()]
    if len(items) < component.minimum:
        return DeliverablesChoice(
            action=DeliverablesAction.NONE,
            state=state,
            message=f"Add at least {component.minimum} {component.value} before moving on (have {len(items)}).",
        )

    nxt = state.model_copy(update={"sub_step": _NEXT_STEP[state.sub_step]})
    if nxt.sub_step is DeliverablesSubStep.ACCEPTED:
        return DeliverablesChoice(action=DeliverablesAction.ACCEPT_ALL, state=nxt, commit=None)
    return DeliverablesChoice(
        action=DeliverablesAction.ACCEPT_COMPONENT,
        state=nxt,
        commit=component,
        message=format_review(nxt, nxt.component),
    )


def regenerate_current(state: DeliverablesMicroState, feedback: str | None = None) -> DeliverablesChoice:
    """Ask for a new proposal for the component under review."""
    if state.sub_step is DeliverablesSubStep.INTRO:
        state = state.model_copy(update={"sub_step": DeliverablesSubStep.REVIEW_MILESTONES})
    component = state.component
    if component is None:
        raise DeliverablesFlowError(f"Nothing to regenerate in state {state.sub_step.value}")
    return DeliverablesChoice(
        action=DeliverablesAction.REGENERATE,
        state=bump_variant(state, component),
        regenerate=component,
        feedback=feedback,
    )


def _clean_item(component: DeliverableComponent, item: str) -> str:
    if component is DeliverableComponent.CRITERIA:
        return _CRITERION_PREFIX_RE.sub("", item).strip()
    return item.strip()


def _with_items(
    state: DeliverablesMicroState, component: DeliverableComponent, items: list[str]
) -> DeliverablesMicroState:
    working = dict(state.working)
    working[component] = items
    return state.model_copy(update={"working": working})


def handle_deliverables_choice(state: DeliverablesMicroState, text: str) -> DeliverablesChoice:
    """Interpret one turn while the deliverables flow is active.

    Args:
        state: Current flow state (not modified)
        text: Substantive user text

    Returns:
        DeliverablesChoice describing the outcome
    """
    if not state.active:
        raise DeliverablesFlowError(f"Deliverables flow is not active ({state.sub_step.value})")
    stripped = text.strip()

    if _ACCEPT_RE.match(stripped):
        return accept_current(state)

    if _SHOW_ALL_RE.search(stripped):
        return DeliverablesChoice(action=DeliverablesAction.SHOW_ALL, state=state, message=format_all(state))

    component = state.component
    if component is None:
        return DeliverablesChoice(
            action=DeliverablesAction.NONE,
            state=state,
            message="Say \"yes\" when you're ready to review milestones, or \"show all\" to see every component.",
        )

    if _REFINE_RE.search(stripped):
        return regenerate_current(state, feedback=stripped)

    command = parse_edit_command(stripped)
    if command is not None:
        try:
            items = apply_edit(
                state.items(component),
                command,
                rename=lambda _old, new: _clean_item(component, new),
                create=lambda value: _clean_item(component, value),
            )
        except EditError as e:
            return DeliverablesChoice(action=DeliverablesAction.NONE, state=state, message=str(e))
        edited = _with_items(state, component, items)
        return DeliverablesChoice(
            action=DeliverablesAction.EDIT,
            state=edited,
            message=f"{describe_edit(command, component.noun)}\n\n{format_review(edited, component)}",
        )

    listed = [_clean_item(component, i) for i in split_items(stripped)]
    listed = [i for i in listed if i]
    if len(listed) >= 2:
        replaced = _with_items(state, component, listed)
        return DeliverablesChoice(
            action=DeliverablesAction.CUSTOM, state=replaced, message=format_review(replaced, component)
        )
    if len(listed) == 1 and word_count(listed[0]) >= 2:
        added = _with_items(state, component, [*state.items(component), listed[0]])
        return DeliverablesChoice(
            action=DeliverablesAction.EDIT,
            state=added,
            message=f"Added {component.noun} \"{listed[0]}\".\n\n{format_review(added, component)}",
        )

    return DeliverablesChoice(
        action=DeliverablesAction.NONE,
        state=state,
        message=(
            f"I'm not sure what you'd like to change. Say \"yes\" to keep these {component.value}, "
            f"\"rename 2 to ...\", \"remove 3\", or list your own {component.value} one per line."
        ),
    )
