"""Static and context-aware coaching copy.

Everything here is deterministic text used when the AI collaborator is not
configured or fails: stage guides, starter suggestions, transition lines,
fallback coaching, and the plain-text progress summary.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel

from coachflow.domain.captured import CapturedData, WizardContext
from coachflow.domain.gating import MIN_CRITERIA, MIN_MILESTONES, MIN_NAMED_PHASES
from coachflow.domain.stages import Stage

ProjectStatus = Literal["draft", "in-progress", "ready"]


class StageGuide(BaseModel):
    """What a stage asks for, why it matters, and a practical tip."""

    what: str
    why: str
    tip: str


_GUIDES: dict[Stage, StageGuide] = {
    Stage.BIG_IDEA: StageGuide(
        what="Define the Big Idea: a transferable concept that anchors the project.",
        why="It keeps the work coherent and guides every later decision.",
        tip="Write a short, strong concept. We can refine the wording later.",
    ),
    Stage.ESSENTIAL_QUESTION: StageGuide(
        what="Shape an Essential Question that invites sustained inquiry.",
        why="A strong question drives curiosity and connects the Big Idea to action.",
        tip="Keep it open-ended, debatable, and tied to your Big Idea.",
    ),
    Stage.CHALLENGE: StageGuide(
        what="Define an authentic Challenge for a real audience.",
        why="Real stakes create purpose and raise the quality of student work.",
        tip="Name the audience and the outcome, and keep the scope achievable.",
    ),
    Stage.JOURNEY: StageGuide(
        what="Outline the learning phases (e.g. Analyze, Brainstorm, Prototype, Evaluate).",
        why="A clear journey builds momentum and manages complexity.",
        tip="Three or four phases are enough, with one or two activities each.",
    ),
    Stage.DELIVERABLES: StageGuide(
        what="List the final artifacts, 3+ milestones, and a simple rubric.",
        why="Clear outcomes and quality criteria support student success.",
        tip="Aim for 1-3 artifacts, 3+ milestones, and 3-6 rubric criteria.",
    ),
}

_STARTERS: dict[Stage, tuple[str, ...]] = {
    Stage.BIG_IDEA: (
        "How systems change over time",
        "How innovation emerges from constraints",
        "The relationship between people and place",
    ),
    Stage.ESSENTIAL_QUESTION: (
        "How might we reduce local waste?",
        "What makes a solution fair for everyone?",
        "How do policies shape everyday choices?",
    ),
    Stage.CHALLENGE: (
        "Design an evidence-based proposal for the city council",
        "Prototype a solution for a school exhibition",
        "Produce a community resource that shifts everyday habits",
    ),
    Stage.JOURNEY: (
        "List 3-4 phases (Analyze, Brainstorm, Prototype, Evaluate)",
        "Add 1-2 activities to each phase",
        "Name 3 helpful resources",
    ),
    Stage.DELIVERABLES: (
        "List 3+ milestones with names",
        "Name 1-3 final artifacts",
        "List 3-6 rubric criteria",
    ),
}

_TRANSITIONS: dict[Stage, str] = {
    Stage.BIG_IDEA: "Big Idea captured. Next up: an Essential Question that invites inquiry.",
    Stage.ESSENTIAL_QUESTION: "Excellent Essential Question. Let's define the authentic Challenge.",
    Stage.CHALLENGE: "Challenge locked in. Let's map the journey phases so we can see the path.",
    Stage.JOURNEY: "Journey mapped. Finish strong with milestones, artifacts, and rubric criteria.",
}

COMPLETION_MESSAGE = (
    "Your project design is complete: every stage is in place. "
    "Ask to see progress any time for the full summary."
)


def stage_guide(stage: Stage) -> StageGuide:
    """Return the what/why/tip guide for ``stage``."""
    return _GUIDES[stage]


def stage_suggestions(stage: Stage) -> list[str]:
    """Return static starter suggestions for ``stage``."""
    return list(_STARTERS[stage])


def dynamic_suggestions(stage: Stage, wizard: WizardContext, captured: CapturedData) -> list[str]:
    """Return starters that reflect the project topic and what is captured.

    Falls back to ``stage_suggestions`` when there is nothing to tailor to.
    """
    topic = wizard.project_topic.strip()
    subject = wizard.primary_subject
    ideation = captured.ideation

    if stage is Stage.BIG_IDEA:
        if ideation.big_idea:
            return [
                f"Refine the Big Idea by naming the transferable concept behind {topic or 'this project'}",
                f"Check that the Big Idea connects to {subject or 'your subject'} and to real-world use",
                "Restate the Big Idea in one memorable sentence",
            ]
    elif stage is Stage.ESSENTIAL_QUESTION:
        if ideation.essential_question:
            return [
                "Test the question: is it open-ended, and does it invite debate?",
                f"Try a \"How might...\" framing tied to {topic or 'your context'}",
                "Make sure it leads to investigation rather than a yes/no answer",
            ]
        if ideation.big_idea:
            return [
                f"How might students explore \"{ideation.big_idea}\" through action?",
                f"What would your community love answered about {topic or 'this theme'}?",
                "How can students compare perspectives to answer this question?",
            ]
    elif stage is Stage.CHALLENGE:
        if ideation.challenge:
            return [
                "Clarify the audience and what they receive at the end",
                "Scope the challenge to your timeline: which milestone marks success?",
                "List the constraints students must respect while tackling it",
            ]
        if ideation.essential_question:
            audience = subject.lower() if subject else "students"
            return [
                f"Design a challenge that helps answer \"{ideation.essential_question}\"",
                f"Plan a showcase where {audience} pitch to an authentic reviewer",
                "Choose an audience who benefits from the solution (families, partners, community)",
            ]
    elif stage is Stage.JOURNEY:
        if len(captured.journey.phases) >= MIN_NAMED_PHASES:
            return [
                "Add one inquiry or making activity to each phase",
                "Mark feedback checkpoints in the middle phases",
                "Identify 2-3 resources or experts for key moments",
            ]
        return [
            "Phase ideas: Investigate, Ideate, Prototype, Share",
            "Begin with research or empathy and end with reflection or exhibition prep",
            f"Name the milestone students reach after the {'next' if captured.journey.phases else 'first'} phase",
        ]
    elif stage is Stage.DELIVERABLES:
        deliverables = captured.deliverables
        if len(deliverables.milestones) >= MIN_MILESTONES and deliverables.artifacts:
            return [
                "Pair each milestone with evidence students submit",
                "Refine each rubric criterion so it describes quality",
                "Plan the exhibition: who attends and what do they experience?",
            ]
        return [
            "List three milestones that mark progress (research, prototype, rehearsal)",
            f"Name the final artifact for {topic or 'the project'} (pitch deck, model, campaign)",
            f"Draft {MIN_CRITERIA} rubric criteria in student-friendly language",
        ]

    return stage_suggestions(stage)


def transition_message_for(stage: Stage) -> str | None:
    """Return the line shown after ``stage`` is completed, if any."""
    return _TRANSITIONS.get(stage)


def _base_fallback(stage: Stage, captured: CapturedData) -> str:
    ideation = captured.ideation
    if stage is Stage.BIG_IDEA:
        return (
            "Let's capture a clear Big Idea that students can carry with them. "
            "What core concept sums up your project?"
        )
    if stage is Stage.ESSENTIAL_QUESTION:
        if ideation.big_idea:
            return (
                f"Think about your Big Idea: \"{ideation.big_idea}\". "
                "What open-ended question will drive inquiry toward it?"
            )
        return "Let's craft an Essential Question. Make it open-ended and worth debating."
    if stage is Stage.CHALLENGE:
        if ideation.essential_question:
            return (
                f"Your Essential Question is \"{ideation.essential_question}\". "
                "What real-world challenge will students tackle to answer it?"
            )
        return "Define a concrete challenge for a real audience. Include who benefits and what they receive."
    if stage is Stage.JOURNEY:
        return "Outline 3-4 phases for the learning journey, each with 1-2 key activities."
    return "List 3+ milestones, the final artifacts students will produce, and 3-6 rubric criteria."


def fallback_for_stage(stage: Stage, captured: CapturedData, gating_reason: str | None = None) -> str:
    """Return deterministic coaching for ``stage``, optionally with a gating reason.

    Args:
        stage: Current stage
        captured: Captured data, used to quote earlier answers
        gating_reason: Reason from a failed gate, appended as a sentence

    Returns:
        Single-paragraph coaching text
    """
    base = _base_fallback(stage, captured)
    if not gating_reason:
        return base
    reason = re.sub(r"[\r\n]+", " ", gating_reason.strip())
    if not reason.endswith("."):
        reason = f"{reason}."
    return re.sub(r"\s+", " ", f"{base} {reason}").strip()


def compute_status(captured: CapturedData) -> ProjectStatus:
    """Summarize how far the design has come.

    Returns:
        ``draft`` when nothing is captured, ``ready`` when every stage has
        content, otherwise ``in-progress``
    """
    deliverables = captured.deliverables
    checks = [
        bool(captured.ideation.big_idea),
        bool(captured.ideation.essential_question),
        bool(captured.ideation.challenge),
        len(captured.journey.phases) >= MIN_NAMED_PHASES,
        len(deliverables.milestones) >= MIN_MILESTONES
        and len(deliverables.artifacts) >= 1
        and len(deliverables.rubric.criteria) >= MIN_CRITERIA,
    ]
    done = sum(checks)
    if done == len(checks):
        return "ready"
    if done:
        return "in-progress"
    return "draft"


def summarize_captured(wizard: WizardContext, captured: CapturedData, stage: Stage) -> str:
    """Render captured data as a plain-text progress summary.

    Args:
        wizard: Session configuration (topic, subjects)
        captured: Captured data
        stage: Current stage

    Returns:
        Multi-line summary
    """
    lines = [f"Current Stage: {stage.label}"]
    if wizard.project_topic:
        lines.append(f"Project Topic: {wizard.project_topic}")
    if wizard.subjects:
        lines.append(f"Subjects: {', '.join(wizard.subjects)}")

    ideation = captured.ideation
    if ideation.big_idea:
        lines.append(f"Big Idea: {ideation.big_idea}")
    if ideation.essential_question:
        lines.append(f"Essential Question: {ideation.essential_question}")
    if ideation.challenge:
        lines.append(f"Challenge: {ideation.challenge}")

    if captured.journey.phases:
        lines.append("Journey Plan:")
        for index, phase in enumerate(captured.journey.phases, start=1):
            activities = f" (activities: {', '.join(phase.activities[:2])})" if phase.activities else ""
            lines.append(f"  Phase {index}: {phase.name}{activities}")
    if captured.journey.resources:
        lines.append(f"Resources: {', '.join(captured.journey.resources)}")

    deliverables = captured.deliverables
    if deliverables.milestones:
        lines.append(f"Milestones: {', '.join(m.name for m in deliverables.milestones)}")
    if deliverables.artifacts:
        lines.append(f"Artifacts: {', '.join(a.name for a in deliverables.artifacts)}")
    if deliverables.rubric.criteria:
        lines.append(f"Rubric Criteria: {', '.join(deliverables.rubric.criteria)}")

    if len(lines) == 1:
        lines.append("No substantive entries captured yet.")
    return "\n".join(lines)
