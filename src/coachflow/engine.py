"""Stage progression engine.

The engine receives one user utterance per turn, classifies it, routes it to
the matching handler or to the active micro-flow, writes into the captured
data, and decides whether the stage pointer advances. Turns are serialized
with a lock; the only operation that suspends is AI generation.

A ``cancel`` that arrives while a micro-flow is waiting on generation is
handled immediately, without waiting for the lock. Every generation records
the flow epoch it started in and its result is dropped if the epoch has
moved on (cancelled, or the stage advanced) by the time it resolves.

Example usage:
    >>> store = InMemoryProjectStore()
    >>> engine = await open_session(store, "P-1", WizardContext(grade_level="6-8"))
    >>> for message in await engine.start():
    ...     print(message.text)
    >>> result = await engine.handle_turn("Systems thinking reveals hidden connections")
    >>> result.stage
    <Stage.ESSENTIAL_QUESTION: 'ESSENTIAL_QUESTION'>
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from coachflow.ai.client import AIClientError, GenerationOptions, TextGenerator
from coachflow.ai.prompts import (
    SYSTEM_PROMPT,
    build_deliverables_prompt,
    build_journey_prompt,
    build_stage_prompt,
    build_suggestion_prompt,
    parse_list_response,
    parse_phase_response,
)
from coachflow.config import CoachflowConfig
from coachflow.domain.captured import CapturedData, WizardContext, capture_stage_input
from coachflow.domain.coaching import (
    COMPLETION_MESSAGE,
    compute_status,
    dynamic_suggestions,
    fallback_for_stage,
    stage_guide,
    summarize_captured,
    transition_message_for,
)
from coachflow.domain.deliverables_flow import (
    DeliverableComponent,
    DeliverablesAction,
    DeliverablesChoice,
    DeliverablesMicroState,
    accept_current,
    apply_generated_component,
    cancel_deliverables,
    commit_all,
    commit_component,
    format_all,
    format_current,
    format_intro,
    format_review,
    handle_deliverables_choice,
    regenerate_current,
    start_deliverables,
    template_component,
)
from coachflow.domain.gating import is_design_complete, resume_stage, validate
from coachflow.domain.intent import (
    ConversationTurn,
    IntentResult,
    UserIntent,
    detect_intent,
    resolve_suggestion,
)
from coachflow.domain.journey_flow import (
    JourneyAction,
    JourneyMicroState,
    accept_journey,
    apply_generated_phases,
    cancel_journey,
    commit_phases,
    format_journey_proposal,
    handle_journey_choice,
    regenerate_request,
    start_journey,
)
from coachflow.domain.quality import assess_input, meets_substance_bar
from coachflow.domain.stages import IDEATION_STAGES, Stage, next_stage, stage_index
from coachflow.domain.suggestions import SuggestionTracker
from coachflow.domain.templates import template_phases
from coachflow.domain.timeline import allocate_week_ranges
from coachflow.logging import bind_session_context, set_correlation_id
from coachflow.persistence.store import ProjectSnapshot, ProjectStore
from coachflow.persistence.writer import DebouncedSnapshotWriter

logger = structlog.get_logger(__name__)

JOURNEY_MAX_TOKENS = 1200
LIST_MAX_TOKENS = 600


class MessageKind(str, Enum):
    """What an assistant message is for, so renderers can style it."""

    COACHING = "coaching"
    TRANSITION = "transition"
    CORRECTION = "correction"
    PROPOSAL = "proposal"
    SUGGESTIONS = "suggestions"
    PROGRESS = "progress"
    CLARIFICATION = "clarification"
    DEGRADED = "degraded"
    COMPLETION = "completion"
    INFO = "info"


class CoachMessage(BaseModel):
    """One assistant-role message, displayed verbatim.

    Attributes:
        kind: Message category
        text: Message body
        suggestions: Options offered with the message, in display order
    """

    kind: MessageKind
    text: str
    suggestions: list[str] = Field(default_factory=list)


class TurnResult(BaseModel):
    """Outcome of one user turn.

    Attributes:
        intent: Classified intent
        stage: Stage after the turn
        messages: Assistant messages produced by the turn
        captured_changed: Whether captured data was replaced
        advanced: Whether the stage pointer moved forward
        complete: Whether every stage gate now passes
        rejection_reason: Input-quality reason when the input was rejected
        gating_reason: Gate reason when captured content is not yet enough
        discarded_generation: Whether a generation result was dropped as stale
    """

    intent: UserIntent
    stage: Stage
    messages: list[CoachMessage] = Field(default_factory=list)
    captured_changed: bool = False
    advanced: bool = False
    complete: bool = False
    rejection_reason: str | None = None
    gating_reason: str | None = None
    discarded_generation: bool = False

    @property
    def text(self) -> str:
        """All message bodies joined by blank lines."""
        return "\n\n".join(m.text for m in self.messages)


@dataclass
class _Turn:
    intent: IntentResult
    messages: list[CoachMessage] = field(default_factory=list)
    captured_changed: bool = False
    advanced: bool = False
    rejection_reason: str | None = None
    gating_reason: str | None = None
    discarded_generation: bool = False

    def say(self, kind: MessageKind, text: str | None, suggestions: list[str] | None = None) -> None:
        if text:
            self.messages.append(CoachMessage(kind=kind, text=text, suggestions=suggestions or []))


class StageProgressionEngine:
    """Per-session orchestrator of the design conversation.

    Attributes:
        project_id: Project being designed
        wizard: Immutable session configuration
        stage: Current stage (only ever moves forward)
        suggestions: Recently offered options
        journey: Journey micro-state while that flow is active
        deliverables: Deliverables micro-state while that flow is active
        history: Recent conversation turns, oldest first
    """

    def __init__(
        self,
        project_id: str,
        wizard: WizardContext | None = None,
        captured: CapturedData | None = None,
        *,
        ai: TextGenerator | None = None,
        config: CoachflowConfig | None = None,
        writer: DebouncedSnapshotWriter | None = None,
        stage_hint: str | Stage | None = None,
    ) -> None:
        self.project_id = project_id
        self.wizard = wizard or WizardContext()
        self.config = config or CoachflowConfig()
        self.ai = ai
        self.writer = writer
        self._captured = captured.clone() if captured is not None else CapturedData()
        self.stage = resume_stage(self._captured, stage_hint)
        self.stage_turns = 0
        self.suggestions = SuggestionTracker(self.config.conversation.suggestion_window)
        self.journey: JourneyMicroState | None = None
        self.deliverables: DeliverablesMicroState | None = None
        self.history: list[ConversationTurn] = []
        self._turn_lock = asyncio.Lock()
        self._flow_epoch = 0
        self._generating = False
        logger.info(
            "engine_initialized",
            project_id=project_id,
            stage=self.stage.value,
            ai_enabled=ai is not None,
        )

    # --- State accessors -----------------------------------------------------

    @property
    def captured(self) -> CapturedData:
        """Current captured data. Replaced wholesale on every write."""
        return self._captured

    @property
    def complete(self) -> bool:
        return is_design_complete(self._captured)

    @property
    def generating(self) -> bool:
        """Whether an AI generation call is outstanding."""
        return self._generating

    def snapshot(self) -> ProjectSnapshot:
        return ProjectSnapshot(
            id=self.project_id,
            stage=self.stage,
            status=compute_status(self._captured),
            captured=self._captured,
            wizard=self.wizard,
        )

    def _persist(self) -> None:
        if self.writer is None:
            return
        record = self.snapshot().to_record()
        del record["wizard"]
        self.writer.schedule(record)

    def _commit(self, turn: _Turn, captured: CapturedData) -> None:
        self._captured = captured
        turn.captured_changed = True
        self._persist()

    def _recent_history(self) -> list[ConversationTurn]:
        limit = self.config.conversation.history_turns
        return self.history[-limit:] if limit else []

    def _stage_suggestion_texts(self) -> list[str]:
        return [s.text for s in self.suggestions.get_most_recent() if s.stage is self.stage]

    def _flow_active(self) -> bool:
        return (self.journey is not None and self.journey.active) or (
            self.deliverables is not None and self.deliverables.active
        )

    # --- Public API ----------------------------------------------------------

    async def start(self) -> list[CoachMessage]:
        """Produce the opening messages for the current stage.

        Entering the session at JOURNEY or DELIVERABLES starts the matching
        micro-flow.
        """
        async with self._turn_lock:
            turn = _Turn(intent=IntentResult(intent=UserIntent.REQUEST_CLARIFICATION, rule="start"))
            if self.complete:
                turn.say(MessageKind.COMPLETION, COMPLETION_MESSAGE)
                turn.say(MessageKind.PROGRESS, summarize_captured(self.wizard, self._captured, self.stage))
            elif self.stage is Stage.JOURNEY:
                await self._enter_journey(turn)
            elif self.stage is Stage.DELIVERABLES:
                self._enter_deliverables(turn)
            else:
                guide = stage_guide(self.stage)
                turn.say(MessageKind.COACHING, f"{guide.what} {guide.why}")
                turn.say(MessageKind.COACHING, fallback_for_stage(self.stage, self._captured))
            self._remember(None, turn)
            return turn.messages

    async def handle_turn(self, text: str) -> TurnResult:
        """Process one user utterance.

        Turns run one at a time in submission order. A cancel submitted while
        an earlier turn is waiting on generation takes effect immediately.

        Args:
            text: Raw user text

        Returns:
            TurnResult describing what happened
        """
        if self._generating and self._turn_lock.locked():
            probe = detect_intent(text, self._stage_suggestion_texts(), self._recent_history())
            if probe.intent is UserIntent.CANCEL_FLOW:
                return self._cancel_in_flight(text, probe)

        async with self._turn_lock:
            set_correlation_id(uuid4().hex[:12])
            try:
                return await self._run_turn(text)
            finally:
                set_correlation_id(None)

    async def aclose(self) -> None:
        """Flush pending snapshots."""
        if self.writer is not None:
            await self.writer.aclose()

    # --- Turn dispatch -------------------------------------------------------

    async def _run_turn(self, text: str) -> TurnResult:
        intent = detect_intent(text, self._stage_suggestion_texts(), self._recent_history())
        turn = _Turn(intent=intent)
        self.stage_turns += 1
        logger.info(
            "turn_started",
            stage=self.stage.value,
            intent=intent.intent.value,
            stage_turns=self.stage_turns,
        )

        kind = intent.intent
        if kind is UserIntent.ACCEPT_SUGGESTION:
            await self._handle_accept(turn)
        elif kind is UserIntent.REQUEST_ALTERNATIVES:
            await self._handle_alternatives(turn, text)
        elif kind is UserIntent.REQUEST_CLARIFICATION:
            self._handle_clarification(turn)
        elif kind is UserIntent.SHOW_PROGRESS:
            self._handle_progress(turn)
        elif kind is UserIntent.MODIFY_PREVIOUS:
            await self._handle_modify(turn)
        elif kind is UserIntent.CANCEL_FLOW:
            self._handle_cancel(turn)
        elif self.journey is not None and self.journey.active:
            await self._journey_turn(turn, intent.extracted_value or text)
        elif self.deliverables is not None and self.deliverables.active:
            await self._deliverables_turn(turn, intent.extracted_value or text)
        else:
            await self._capture(turn, intent.extracted_value or text)

        self._remember(text, turn)
        return TurnResult(
            intent=kind,
            stage=self.stage,
            messages=turn.messages,
            captured_changed=turn.captured_changed,
            advanced=turn.advanced,
            complete=self.complete,
            rejection_reason=turn.rejection_reason,
            gating_reason=turn.gating_reason,
            discarded_generation=turn.discarded_generation,
        )

    def _remember(self, user_text: str | None, turn: _Turn) -> None:
        if user_text is not None:
            self.history.append(ConversationTurn(role="user", text=user_text))
        if turn.messages:
            offered = tuple(s for m in turn.messages for s in m.suggestions)
            self.history.append(
                ConversationTurn(
                    role="assistant",
                    text="\n\n".join(m.text for m in turn.messages),
                    suggestions=offered,
                )
            )
        keep = max(self.config.conversation.history_turns, 2) * 2
        del self.history[:-keep]

    # --- Capture and advancement ---------------------------------------------

    async def _capture(self, turn: _Turn, value: str, *, assess: bool = True) -> None:
        stage = self.stage
        if assess:
            assessment = assess_input(stage, value)
            if not assessment.ok:
                logger.info("input_rejected", stage=stage.value, reason=assessment.reason)
                turn.rejection_reason = assessment.reason
                turn.say(MessageKind.CORRECTION, assessment.hint)
                return

        self._commit(turn, capture_stage_input(self._captured, stage, value))
        gate = validate(stage, self._captured)
        if gate.ok:
            await self._advance(turn)
            return

        logger.info("gating_failed", stage=stage.value, reason=gate.reason)
        turn.gating_reason = gate.reason
        coaching = await self._coach(turn, value, gate.reason)
        turn.say(MessageKind.COACHING, coaching)

    async def _coach(self, turn: _Turn, value: str, reason: str | None) -> str | None:
        """AI coaching after a capture that did not pass the gate."""
        fallback = fallback_for_stage(self.stage, self._captured, reason)
        if self.ai is None:
            return fallback
        prompt = build_stage_prompt(self.stage, self.wizard, self._captured, value, reason)
        text, stale = await self._generate(turn, prompt, label="stage_coaching")
        if stale:
            return None
        return text or fallback

    async def _advance(self, turn: _Turn) -> None:
        previous = self.stage
        upcoming = next_stage(previous)
        self._flow_epoch += 1
        if upcoming is None:
            logger.info("design_completed", project_id=self.project_id)
            turn.say(MessageKind.COMPLETION, COMPLETION_MESSAGE)
            self._persist()
            return

        self.stage = upcoming
        self.stage_turns = 0
        turn.advanced = True
        logger.info("stage_advanced", from_stage=previous.value, to_stage=upcoming.value)
        self._persist()
        turn.say(MessageKind.TRANSITION, transition_message_for(previous))

        if upcoming is Stage.JOURNEY:
            await self._enter_journey(turn)
        elif upcoming is Stage.DELIVERABLES:
            self._enter_deliverables(turn)
        else:
            turn.say(MessageKind.COACHING, fallback_for_stage(upcoming, self._captured))

    # --- AI generation -------------------------------------------------------

    async def _generate(
        self, turn: _Turn, prompt: str, *, label: str, max_tokens: int | None = None
    ) -> tuple[str | None, bool]:
        """Run one generation.

        Returns:
            ``(text, stale)``: text is None when the AI failed (a degraded
            message has been added to the turn); stale is True when the flow
            epoch moved while the call was outstanding
        """
        assert self.ai is not None
        epoch = self._flow_epoch
        options = GenerationOptions(
            system_prompt=SYSTEM_PROMPT,
            history=self._recent_history(),
            max_tokens=max_tokens,
            label=label,
        )
        self._generating = True
        try:
            text: str | None = await self.ai.generate(prompt, options)
            failure: AIClientError | None = None
        except AIClientError as e:
            text, failure = None, e
        finally:
            self._generating = False

        if epoch != self._flow_epoch:
            logger.info("stale_generation_discarded", label=label, started_epoch=epoch, epoch=self._flow_epoch)
            turn.discarded_generation = True
            return None, True
        if failure is not None:
            logger.warning(
                "ai_generation_degraded",
                label=label,
                error_type=type(failure).__name__,
                error=str(failure),
            )
            turn.say(MessageKind.DEGRADED, failure.user_message)
        return text, False

    # --- Journey micro-flow --------------------------------------------------

    async def _enter_journey(self, turn: _Turn) -> None:
        conversation = self.config.conversation
        state = start_journey(
            self.wizard, min_phases=conversation.min_phases, max_phases=conversation.max_phases
        )
        self.journey = state
        await self._propose_phases(turn, state)

    async def _propose_phases(
        self, turn: _Turn, state: JourneyMicroState, feedback: str | None = None
    ) -> None:
        phases = None
        if self.ai is not None:
            prompt = build_journey_prompt(
                self.wizard,
                self._captured,
                state.phase_count,
                allocate_week_ranges(state.weeks, state.phase_count),
                feedback,
            )
            text, stale = await self._generate(turn, prompt, label="journey", max_tokens=JOURNEY_MAX_TOKENS)
            if stale:
                return
            if text is not None:
                phases = parse_phase_response(text, state.phase_count)
        if phases is None:
            phases = template_phases(self._captured, self.wizard, state.phase_count)
            logger.debug("journey_template_used", phase_count=len(phases))
        self.journey = apply_generated_phases(state, phases)
        turn.say(MessageKind.PROPOSAL, format_journey_proposal(self.journey))

    async def _journey_turn(self, turn: _Turn, text: str) -> None:
        assert self.journey is not None
        conversation = self.config.conversation
        choice = handle_journey_choice(
            self.journey, text, min_phases=conversation.min_phases, max_phases=conversation.max_phases
        )
        if choice.action is JourneyAction.ACCEPT:
            await self._journey_accept(turn)
        elif choice.regenerate:
            self.journey = choice.state
            await self._propose_phases(turn, choice.state, choice.feedback)
        else:
            self.journey = choice.state
            turn.say(MessageKind.PROPOSAL, choice.message)

    async def _journey_accept(self, turn: _Turn) -> None:
        assert self.journey is not None
        candidate = commit_phases(self._captured, self.journey)
        gate = validate(Stage.JOURNEY, candidate)
        if not gate.ok:
            logger.info("journey_accept_rejected", reason=gate.reason, named=self.journey.named_count)
            turn.gating_reason = gate.reason
            turn.say(
                MessageKind.CORRECTION,
                f"{gate.reason} Say \"longer\" for another phase, or add one "
                "with \"add a phase called ...\".",
            )
            return
        self.journey = accept_journey(self.journey)
        self._commit(turn, candidate)
        self.journey = None
        await self._advance(turn)

    # --- Deliverables micro-flow ---------------------------------------------

    def _enter_deliverables(self, turn: _Turn) -> None:
        self.deliverables = start_deliverables(self._captured, self.wizard)
        turn.say(MessageKind.PROPOSAL, format_intro())

    async def _deliverables_turn(self, turn: _Turn, text: str) -> None:
        assert self.deliverables is not None
        await self._apply_deliverables_choice(turn, handle_deliverables_choice(self.deliverables, text))

    async def _apply_deliverables_choice(self, turn: _Turn, choice: DeliverablesChoice) -> None:
        if choice.action is DeliverablesAction.ACCEPT_ALL:
            candidate = commit_all(self._captured, choice.state)
            gate = validate(Stage.DELIVERABLES, candidate)
            if not gate.ok:
                logger.info("deliverables_accept_rejected", reason=gate.reason)
                turn.gating_reason = gate.reason
                turn.say(MessageKind.CORRECTION, gate.reason)
                return
            self._commit(turn, candidate)
            self.deliverables = None
            logger.info("deliverables_flow_accepted")
            await self._advance(turn)
            return

        if choice.commit is not None:
            self._commit(turn, commit_component(self._captured, choice.state, choice.commit))
            logger.info("deliverables_component_committed", component=choice.commit.value)

        state = choice.state
        self.deliverables = state
        upcoming = state.component
        if choice.regenerate is not None:
            await self._refresh_component(turn, state, choice.regenerate, choice.feedback)
        elif choice.action in (DeliverablesAction.INTRO_ACCEPTED, DeliverablesAction.ACCEPT_COMPONENT) and (
            upcoming is not None and self.ai is not None
        ):
            await self._refresh_component(turn, state, upcoming, None)
        else:
            turn.say(MessageKind.PROPOSAL, choice.message)

    async def _refresh_component(
        self,
        turn: _Turn,
        state: DeliverablesMicroState,
        component: DeliverableComponent,
        feedback: str | None,
    ) -> None:
        items = None
        if self.ai is not None:
            prompt = build_deliverables_prompt(component, self.wizard, self._captured, feedback)
            text, stale = await self._generate(
                turn, prompt, label=f"deliverables_{component.value}", max_tokens=LIST_MAX_TOKENS
            )
            if stale:
                return
            if text is not None:
                items = parse_list_response(text, min_items=component.minimum)
        if items is None:
            items = template_component(component, self._captured, self.wizard, state.variants.get(component, 0))
        self.deliverables = apply_generated_component(state, component, items)
        turn.say(MessageKind.PROPOSAL, format_review(self.deliverables, component))

    # --- Intent handlers -----------------------------------------------------

    async def _handle_accept(self, turn: _Turn) -> None:
        if self.journey is not None and self.journey.active:
            await self._journey_accept(turn)
            return
        if self.deliverables is not None and self.deliverables.active:
            await self._apply_deliverables_choice(turn, accept_current(self.deliverables))
            return

        offered = [s for s in self.suggestions.get_most_recent() if s.stage is self.stage]
        index = turn.intent.last_suggestion_index
        selected = resolve_suggestion(index, [s.text for s in offered])
        if selected is None:
            if offered:
                turn.say(
                    MessageKind.CLARIFICATION,
                    f"I only have {len(offered)} options on the table. Which one did you mean?",
                )
            else:
                logger.info("accept_without_suggestions", stage=self.stage.value)
                turn.say(
                    MessageKind.CLARIFICATION,
                    "There's nothing to accept yet. Share your own idea, or ask me for suggestions.",
                )
            return

        position = 0 if index is None or index == -1 else index
        self.suggestions.record_selection(offered[position].id)
        await self._capture(turn, selected, assess=False)

    async def _handle_alternatives(self, turn: _Turn, text: str) -> None:
        if self.journey is not None and self.journey.active:
            choice = regenerate_request(self.journey)
            self.journey = choice.state
            await self._propose_phases(turn, choice.state, text)
            return
        if self.deliverables is not None and self.deliverables.active:
            await self._apply_deliverables_choice(turn, regenerate_current(self.deliverables, text))
            return
        if self.stage is Stage.JOURNEY and not self.complete:
            await self._enter_journey(turn)
            return
        if self.stage is Stage.DELIVERABLES and not self.complete:
            self._enter_deliverables(turn)
            return
        await self._offer_suggestions(turn)

    async def _offer_suggestions(self, turn: _Turn) -> None:
        already = {t.lower() for t in self._stage_suggestion_texts()}
        options = None
        if self.ai is not None:
            prompt = build_suggestion_prompt(self.stage, self.wizard, self._captured)
            text, stale = await self._generate(turn, prompt, label="suggestions", max_tokens=LIST_MAX_TOKENS)
            if stale:
                return
            if text is not None:
                options = parse_list_response(text, max_items=3)
        if options is None:
            starters = dynamic_suggestions(self.stage, self.wizard, self._captured)
            options = [s for s in starters if s.lower() not in already] or starters

        self.suggestions.track_multiple(self.stage, options, source="ai")
        lines = [f"Here are some options for the {self.stage.label}:"]
        lines.extend(f"{i}. {option}" for i, option in enumerate(options, start=1))
        lines.append("Say \"the second one\" to use one, or write your own.")
        turn.say(MessageKind.SUGGESTIONS, "\n".join(lines), options)

    def _handle_clarification(self, turn: _Turn) -> None:
        guide = stage_guide(self.stage)
        turn.say(MessageKind.CLARIFICATION, f"{guide.what} {guide.why} Tip: {guide.tip}")
        if self.journey is not None and self.journey.active and self.journey.phases:
            turn.say(
                MessageKind.CLARIFICATION,
                "We're reviewing a proposed journey. Say \"yes\" to use it, \"walk me through it\", "
                "\"shorter\" or \"longer\", or edit a phase (\"rename phase 2 to ...\").",
            )
        elif self.deliverables is not None and self.deliverables.active:
            turn.say(MessageKind.CLARIFICATION, format_current(self.deliverables))

    def _handle_progress(self, turn: _Turn) -> None:
        summary = summarize_captured(self.wizard, self._captured, self.stage)
        turn.say(MessageKind.PROGRESS, f"{summary}\nStatus: {compute_status(self._captured)}")
        if self.journey is not None and self.journey.active and self.journey.phases:
            turn.say(MessageKind.PROPOSAL, format_journey_proposal(self.journey))
        elif self.deliverables is not None and self.deliverables.active:
            turn.say(MessageKind.PROPOSAL, format_all(self.deliverables))

    async def _handle_modify(self, turn: _Turn) -> None:
        target = turn.intent.target_stage
        value = turn.intent.extracted_value
        if target is None or target not in IDEATION_STAGES:
            turn.say(MessageKind.CLARIFICATION, "Which part would you like to change?")
            return
        if stage_index(target) > stage_index(self.stage):
            logger.info("modify_ahead_rejected", target=target.value, stage=self.stage.value)
            turn.say(
                MessageKind.CLARIFICATION,
                f"We haven't reached the {target.label} yet. Let's finish the {self.stage.label} first.",
            )
            return
        if not value:
            turn.say(MessageKind.CLARIFICATION, f"What should the new {target.label} be?")
            return

        assessment = assess_input(target, value)
        if not assessment.ok:
            turn.rejection_reason = assessment.reason
            turn.say(MessageKind.CORRECTION, assessment.hint)
            return
        candidate = capture_stage_input(self._captured, target, value)
        field_value = {
            Stage.BIG_IDEA: candidate.ideation.big_idea,
            Stage.ESSENTIAL_QUESTION: candidate.ideation.essential_question,
            Stage.CHALLENGE: candidate.ideation.challenge,
        }[target]
        if not meets_substance_bar(target, field_value):
            reason = validate(target, candidate).reason
            turn.gating_reason = reason
            turn.say(MessageKind.CORRECTION, reason)
            return

        self._commit(turn, candidate)
        logger.info("previous_stage_modified", target=target.value, stage=self.stage.value)
        turn.say(MessageKind.INFO, f"Updated the {target.label}: \"{field_value}\".")
        if target is self.stage:
            await self._advance(turn)

    def _handle_cancel(self, turn: _Turn) -> None:
        if self.journey is not None and self.journey.active:
            cancel_journey(self.journey)
            self.journey = None
            self._flow_epoch += 1
            turn.say(
                MessageKind.INFO,
                "Okay, I've set the journey proposal aside. Describe your phases in your own words, "
                "one per line, or ask for suggestions to bring a proposal back.",
            )
            return
        if self.deliverables is not None and self.deliverables.active:
            cancel_deliverables(self.deliverables)
            self.deliverables = None
            self._flow_epoch += 1
            kept = len(self._captured.deliverables.milestones)
            note = f" The {kept} milestones you accepted are kept." if kept else ""
            turn.say(
                MessageKind.INFO,
                f"Okay, I've stopped the deliverables walkthrough.{note} "
                "List deliverables in your own words, or ask for suggestions to restart.",
            )
            return
        turn.say(MessageKind.INFO, "There's nothing in progress to cancel.")
        turn.say(MessageKind.COACHING, fallback_for_stage(self.stage, self._captured))

    def _cancel_in_flight(self, text: str, intent: IntentResult) -> TurnResult:
        logger.info("generation_cancel_requested", stage=self.stage.value, epoch=self._flow_epoch)
        turn = _Turn(intent=intent)
        if self._flow_active():
            self._handle_cancel(turn)
        else:
            self._flow_epoch += 1
            turn.say(MessageKind.INFO, "Okay, I've stopped that request.")
        self._remember(text, turn)
        return TurnResult(intent=intent.intent, stage=self.stage, messages=turn.messages, complete=self.complete)


async def open_session(
    store: ProjectStore,
    project_id: str,
    wizard: WizardContext | None = None,
    *,
    ai: TextGenerator | None = None,
    config: CoachflowConfig | None = None,
) -> StageProgressionEngine:
    """Load or create a project and return an engine wired to a debounced writer.

    The resumed stage is derived from the stored captured data; the stored
    stage is only compared against it.

    Args:
        store: Snapshot store
        project_id: Project to open
        wizard: Session configuration; when None the stored one is used
        ai: Optional text generator (offline template mode when None)
        config: Configuration (defaults when None)

    Returns:
        Ready StageProgressionEngine
    """
    config = config or CoachflowConfig()
    snapshot = await store.load_project(project_id)
    if snapshot is None:
        snapshot = ProjectSnapshot(id=project_id, wizard=wizard or WizardContext())
        await store.save_project(snapshot.to_record())
        logger.info("project_created", project_id=project_id)
    elif wizard is not None and wizard != snapshot.wizard:
        await store.save_project({"id": project_id, "wizard": wizard.model_dump(mode="json", by_alias=True)})
        snapshot = snapshot.model_copy(update={"wizard": wizard})

    bind_session_context(project_id=project_id, session_id=uuid4().hex[:8])
    writer = DebouncedSnapshotWriter(store, config.persistence.debounce_seconds)
    engine = StageProgressionEngine(
        project_id,
        snapshot.wizard,
        snapshot.captured,
        ai=ai,
        config=config,
        writer=writer,
        stage_hint=snapshot.stage,
    )
    logger.info("session_opened", project_id=project_id, stage=engine.stage.value)
    return engine
