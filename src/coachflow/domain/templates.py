"""Deterministic proposals used when AI generation is off or fails.

Journey phases come from subject-specific templates sized to the project
duration; deliverables are derived from the captured journey and challenge.
"""

from __future__ import annotations

import re

from pydantic import BaseModel

from coachflow.domain.captured import CapturedData, Phase, WizardContext
from coachflow.domain.timeline import allocate_week_ranges, estimate_duration_weeks


class PhaseTemplate(BaseModel):
    title: str
    summary: str
    activities: tuple[str, ...]


_SCIENCE = (
    PhaseTemplate(
        title="Research & Explore",
        summary="Investigate the science behind {topic} through research and experiments.",
        activities=("Literature review", "Lab experiments", "Data collection"),
    ),
    PhaseTemplate(
        title="Hypothesis & Design",
        summary="Form testable hypotheses and design the {deliverable} approach.",
        activities=("Develop hypotheses", "Create an experimental design", "Plan methodology"),
    ),
    PhaseTemplate(
        title="Build & Test",
        summary="Construct prototypes and test them with feedback from {audience}.",
        activities=("Build prototype", "Run tests", "Collect feedback"),
    ),
    PhaseTemplate(
        title="Analyze & Present",
        summary="Analyze results and present findings to {audience}.",
        activities=("Data analysis", "Create visualizations", "Practice presentation"),
    ),
)

_HUMANITIES = (
    PhaseTemplate(
        title="Investigate Context",
        summary="Audit current realities around {topic} and interview {audience}.",
        activities=("Research historical context", "Conduct interviews", "Analyze primary sources"),
    ),
    PhaseTemplate(
        title="Analyze & Synthesize",
        summary="Compare perspectives and identify patterns related to {topic}.",
        activities=("Compare viewpoints", "Identify themes", "Create a synthesis"),
    ),
    PhaseTemplate(
        title="Co-Design Solutions",
        summary="Run brainstorming sprints and pick a direction for the {deliverable}.",
        activities=("Brainstorm ideas", "Evaluate options", "Select an approach"),
    ),
    PhaseTemplate(
        title="Launch & Reflect",
        summary="Finalize the {deliverable} and present it to {audience}.",
        activities=("Refine final work", "Rehearse presentation", "Reflect on process"),
    ),
)

_ARTS = (
    PhaseTemplate(
        title="Explore & Experiment",
        summary="Investigate techniques and experiment with approaches to {topic}.",
        activities=("Research artists and styles", "Experimental sketches", "Try multiple mediums"),
    ),
    PhaseTemplate(
        title="Develop Concept",
        summary="Refine the artistic vision and plan the {deliverable} for {audience}.",
        activities=("Concept development", "Storyboarding", "Collect feedback"),
    ),
    PhaseTemplate(
        title="Create & Iterate",
        summary="Produce the {deliverable} and refine it through critique.",
        activities=("Create first draft", "Peer critique", "Revise work"),
    ),
    PhaseTemplate(
        title="Exhibition & Reflection",
        summary="Present the work to {audience} and reflect on artistic growth.",
        activities=("Install or stage work", "Artist talk", "Reflection"),
    ),
)

_DEFAULT = (
    PhaseTemplate(
        title="Investigate the Context",
        summary="Audit current realities around {topic} and interview {audience}.",
        activities=("Research topic", "Conduct interviews", "Identify key issues"),
    ),
    PhaseTemplate(
        title="Co-Design Possibilities",
        summary="Brainstorm, analyze models, and pick a direction for the {deliverable}.",
        activities=("Brainstorm solutions", "Analyze examples", "Choose direction"),
    ),
    PhaseTemplate(
        title="Prototype & Test",
        summary="Build a draft, run a critique, and gather feedback from peers and {audience}.",
        activities=("Create prototype", "Peer review", "Gather feedback"),
    ),
    PhaseTemplate(
        title="Launch & Reflect",
        summary="Finalize the {deliverable}, rehearse, and reflect on impact.",
        activities=("Final revisions", "Rehearse presentation", "Deliver to audience"),
    ),
)

# Inserted before the final phase when more phases are requested
_EXTRA_PHASES = (
    PhaseTemplate(
        title="Expert Feedback",
        summary="Share work in progress with an expert connected to {topic}.",
        activities=("Prepare questions", "Expert consultation", "Plan revisions"),
    ),
    PhaseTemplate(
        title="Revise & Refine",
        summary="Act on critique to strengthen the {deliverable}.",
        activities=("Prioritize feedback", "Revise draft", "Quality check"),
    ),
)

_DELIVERABLE_KEYWORDS = (
    "exhibit", "campaign", "proposal", "prototype", "podcast", "documentary", "portfolio", "toolkit",
)


def infer_deliverable_type(captured: CapturedData) -> str:
    """Guess the final product from the challenge text."""
    challenge = (captured.ideation.challenge or "").lower()
    for keyword in _DELIVERABLE_KEYWORDS:
        if keyword in challenge:
            return "exhibition" if keyword == "exhibit" else keyword
    return "project deliverable"


def infer_audience(captured: CapturedData, wizard: WizardContext) -> str:
    """Guess the authentic audience from the challenge or the grade level."""
    challenge = captured.ideation.challenge or ""
    match = re.search(r"\bfor\s+([^.,;]+)", challenge, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    grade = wizard.grade_level.lower()
    if "elementary" in grade:
        return "families and younger students"
    if "middle" in grade:
        return "school leaders and community partners"
    if "high" in grade:
        return "community partners and decision makers"
    return "the audience"


def select_template(wizard: WizardContext) -> tuple[PhaseTemplate, ...]:
    subject = wizard.primary_subject.lower()
    if "science" in subject or "stem" in subject:
        return _SCIENCE
    if any(key in subject for key in ("history", "social", "humanities")):
        return _HUMANITIES
    if any(key in subject for key in ("art", "music", "theatre", "theater")):
        return _ARTS
    return _DEFAULT


def _sized(template: tuple[PhaseTemplate, ...], count: int) -> list[PhaseTemplate]:
    phases = list(template)
    extras = iter(_EXTRA_PHASES)
    while len(phases) < count:
        extra = next(extras, None)
        if extra is None:
            break
        phases.insert(len(phases) - 1, extra)
    if count < len(phases):
        # Keep the opening phases and the closing one
        phases = phases[: max(count - 1, 0)] + phases[-1:]
    return phases[:count]


def template_phases(captured: CapturedData, wizard: WizardContext, count: int) -> list[Phase]:
    """Build ``count`` phases from the subject template.

    Args:
        captured: Captured ideation, used to fill in topic and audience
        wizard: Session configuration
        count: Number of phases wanted

    Returns:
        Named phases with focus, activities, and week-range checkpoints
    """
    topic = (
        wizard.project_topic
        or captured.ideation.big_idea
        or captured.ideation.essential_question
        or "this topic"
    )
    deliverable = infer_deliverable_type(captured)
    audience = infer_audience(captured, wizard)
    chosen = _sized(select_template(wizard), count)
    ranges = allocate_week_ranges(estimate_duration_weeks(wizard.duration), len(chosen))
    return [
        Phase(
            name=t.title,
            focus=t.summary.format(topic=topic, deliverable=deliverable, audience=audience),
            activities=list(t.activities),
            checkpoint=ranges[i] if i < len(ranges) else None,
        )
        for i, t in enumerate(chosen)
    ]


# --- Deliverables ------------------------------------------------------------

_DEFAULT_MILESTONES = (
    (
        "Research insights synthesized",
        "Initial draft completed",
        "Prototype critiqued and revised",
        "Launch rehearsal complete",
    ),
    (
        "Project proposal approved",
        "Mid-point critique held",
        "Final draft peer reviewed",
        "Public presentation delivered",
    ),
)

_ARTIFACTS: dict[str, tuple[str, ...]] = {
    "exhibition": ("Exhibition ready for {audience}", "Curator statement and labels", "Process portfolio documenting decisions"),
    "campaign": ("Campaign materials for {audience}", "Campaign strategy document", "Metrics and success criteria"),
    "proposal": ("Evidence-based proposal for {audience}", "Supporting research documentation", "Implementation timeline"),
    "prototype": ("Working prototype demonstrated to {audience}", "Technical documentation", "User feedback report"),
    "podcast": ("Podcast episode for {audience}", "Script and show notes", "Reflection on production process"),
    "documentary": ("Documentary screened for {audience}", "Director's statement", "Production journal"),
    "portfolio": ("Portfolio presented to {audience}", "Reflective statements", "Evidence of growth over time"),
}
_ALT_ARTIFACTS = (
    "Public presentation for {audience}",
    "Project website or digital showcase",
    "Individual reflection essay",
)

_CRITERIA: dict[str, tuple[str, ...]] = {
    "science": (
        "Scientific evidence is credible and relevant",
        "Methodology is sound and documented",
        "Conclusions are supported by data",
        "Communication is clear for {audience}",
    ),
    "history": (
        "Historical evidence is accurate and well-sourced",
        "Multiple perspectives are examined",
        "Connections to the present are meaningful",
        "Narrative engages {audience}",
    ),
    "art": (
        "Artistic choices support the concept",
        "Technical skill shows growth",
        "Personal voice is evident",
        "Work resonates with {audience}",
    ),
    "english": (
        "Writing is clear and purposeful",
        "Evidence supports claims",
        "Voice and style suit the purpose",
        "Message connects with {audience}",
    ),
}
_DEFAULT_CRITERIA = (
    "Evidence is credible and relevant",
    "Quality meets professional standards",
    "Impact on {audience} is clear",
    "Student voice and reflection show growth",
)
_ALT_CRITERIA = (
    "Research is thorough and cited",
    "Design decisions are justified",
    "Collaboration is effective and documented",
    "Presentation is polished for {audience}",
)


def template_milestones(captured: CapturedData, variant: int = 0) -> list[str]:
    """Milestones derived from the journey phases, or generic ones."""
    phases = [p for p in captured.journey.phases if p.is_named]
    if phases and variant % 2 == 0:
        return [f"{p.name} checkpoint complete" for p in phases[:4]]
    return list(_DEFAULT_MILESTONES[variant % 2])


def template_artifacts(captured: CapturedData, wizard: WizardContext, variant: int = 0) -> list[str]:
    """Artifacts matched to the inferred deliverable type."""
    deliverable = infer_deliverable_type(captured)
    audience = infer_audience(captured, wizard)
    if variant % 2:
        base = _ALT_ARTIFACTS
    else:
        base = _ARTIFACTS.get(
            deliverable,
            (f"{deliverable.capitalize()} ready for {{audience}}", "Process documentation", "Reflection on learning"),
        )
    return [a.format(audience=audience) for a in base]


def template_criteria(captured: CapturedData, wizard: WizardContext, variant: int = 0) -> list[str]:
    """Rubric criteria matched to the primary subject."""
    audience = infer_audience(captured, wizard)
    if variant % 2:
        base = _ALT_CRITERIA
    else:
        subject = wizard.primary_subject.lower()
        base = next((c for key, c in _CRITERIA.items() if key in subject), _DEFAULT_CRITERIA)
    return [c.format(audience=audience) for c in base]
