"""Conversation domain for Coachflow.

Pure, synchronous building blocks of the design conversation: the stage
order and gating, captured data, input quality checks, intent
classification, the suggestion ledger, and the journey and deliverables
micro-flows. Nothing in this package performs I/O.

Public API:
    Stage: Ordered design stages.
    CapturedData: Accumulating design document.
    validate: Stage gate check.
    derive_current_stage: First stage whose gate does not pass.
    detect_intent: Rule-based intent classification.
    SuggestionTracker: Recent-suggestion ring buffer.
"""

from coachflow.domain.captured import (
    CapturedData,
    DeliverablesData,
    Ideation,
    JourneyData,
    NamedItem,
    Phase,
    Rubric,
    WizardContext,
    capture_stage_input,
    hydrate_captured,
    serialize_captured,
)
from coachflow.domain.coaching import (
    compute_status,
    dynamic_suggestions,
    fallback_for_stage,
    stage_guide,
    stage_suggestions,
    summarize_captured,
    transition_message_for,
)
from coachflow.domain.deliverables_flow import (
    DeliverableComponent,
    DeliverablesMicroState,
    DeliverablesSubStep,
    handle_deliverables_choice,
    start_deliverables,
)
from coachflow.domain.gating import (
    GateResult,
    derive_current_stage,
    is_design_complete,
    resume_stage,
    validate,
)
from coachflow.domain.intent import ConversationTurn, IntentResult, UserIntent, detect_intent
from coachflow.domain.journey_flow import (
    JourneyMicroState,
    JourneySubStep,
    handle_journey_choice,
    start_journey,
)
from coachflow.domain.quality import QualityAssessment, assess_input, strip_conversational_wrapper
from coachflow.domain.stages import STAGE_ORDER, Stage, StageError, next_stage
from coachflow.domain.suggestions import Suggestion, SuggestionTracker

__all__ = [
    # Stages
    "Stage",
    "StageError",
    "STAGE_ORDER",
    "next_stage",
    # Captured data
    "CapturedData",
    "Ideation",
    "JourneyData",
    "DeliverablesData",
    "NamedItem",
    "Phase",
    "Rubric",
    "WizardContext",
    "capture_stage_input",
    "serialize_captured",
    "hydrate_captured",
    # Gating
    "GateResult",
    "validate",
    "derive_current_stage",
    "is_design_complete",
    "resume_stage",
    # Quality
    "QualityAssessment",
    "assess_input",
    "strip_conversational_wrapper",
    # Intent
    "UserIntent",
    "IntentResult",
    "ConversationTurn",
    "detect_intent",
    # Suggestions
    "Suggestion",
    "SuggestionTracker",
    # Coaching copy
    "stage_guide",
    "stage_suggestions",
    "dynamic_suggestions",
    "transition_message_for",
    "fallback_for_stage",
    "compute_status",
    "summarize_captured",
    # Micro-flows
    "JourneyMicroState",
    "JourneySubStep",
    "start_journey",
    "handle_journey_choice",
    "DeliverablesMicroState",
    "DeliverablesSubStep",
    "DeliverableComponent",
    "start_deliverables",
    "handle_deliverables_choice",
]
