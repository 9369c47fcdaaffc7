"""Prompt construction and AI output parsing.

Prompts carry the captured design, the session context, and grade-band
guardrails. Parsers accept a JSON array first and fall back to one item per
line; too few usable items is reported as ``None`` so callers can switch to
the deterministic templates.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from pydantic import BaseModel

from coachflow.domain.captured import CapturedData, Phase, WizardContext, parse_phases
from coachflow.domain.coaching import stage_guide, summarize_captured
from coachflow.domain.deliverables_flow import DeliverableComponent
from coachflow.domain.stages import Stage

logger = structlog.get_logger(__name__)

MIN_USABLE_ITEMS = 3

SYSTEM_PROMPT = (
    "You are an experienced project-based learning coach helping an educator design a project. "
    "Be warm, concise, and concrete. Reply in at most three short sentences unless asked for a list. "
    "Never invent decisions the educator has not made."
)


class GradeBand(BaseModel):
    key: str
    summary: str
    guardrails: tuple[str, ...]


GRADE_BANDS: dict[str, GradeBand] = {
    "K-2": GradeBand(
        key="K-2",
        summary="Play-based sense-making with concrete, hands-on experiences and predictable routines.",
        guardrails=(
            "Keep cycles short (10-20 minutes) and work in 1-2 week sprints.",
            "Outputs stay tactile: models, class books, audio recordings shared with families.",
            "No heat, sharp tools, chemicals, or student accounts on outside platforms.",
        ),
    ),
    "3-5": GradeBand(
        key="3-5",
        summary="Hands-on investigators who can hold defined roles and explain evidence to others.",
        guardrails=(
            "Use 20-30 minute work blocks inside 2-4 week arcs with visible checkpoints.",
            "Aim for data posters, explainer videos, prototypes, or cross-age teaching.",
            "Hand tools only with safety demos; avoid unsupervised internet research.",
        ),
    ),
    "6-8": GradeBand(
        key="6-8",
        summary="Identity-driven collaborators ready for multi-step inquiry and authentic audiences.",
        guardrails=(
            "Plan 3-6 week timelines with sprint routines and peer feedback clinics.",
            "Expect evidence-backed decisions, cited sources, and documented design rationale.",
            "No promises of large-scale implementation or publishing data without partner approval.",
        ),
    ),
    "9-12": GradeBand(
        key="9-12",
        summary="Purpose-driven designers capable of abstraction, systems thinking, and client-ready work.",
        guardrails=(
            "Support 4-10 week projects with student-run project management.",
            "Deliverables can meet professional standards and serve real clients.",
            "Route human-subject research and off-campus fieldwork through district review.",
        ),
    ),
}


def resolve_grade_band(grade_level: str | None) -> GradeBand | None:
    """Map a free-text grade level onto a grade band.

    Args:
        grade_level: e.g. "Middle School", "Grades 3-5", "10th grade"

    Returns:
        Matching band, or None for empty or mixed-age input
    """
    if not grade_level:
        return None
    text = re.sub(r"\(.*?\)", "", grade_level.replace("–", "-").replace("—", "-")).upper().strip()
    if not text or "MIXED" in text:
        return None
    if "EARLY" in text or "K-2" in text or "K2" in text:
        return GRADE_BANDS["K-2"]
    if "ELEMENTARY" in text:
        return GRADE_BANDS["K-2" if "LOWER" in text else "3-5"]
    if "3-5" in text or "PRIMARY" in text:
        return GRADE_BANDS["3-5"]
    if "6-8" in text or "MIDDLE" in text:
        return GRADE_BANDS["6-8"]
    if "9-12" in text or "HIGH" in text:
        return GRADE_BANDS["9-12"]

    match = re.search(r"(K|\d{1,2})\s*-\s*(\d{1,2})", text) or re.search(r"\b(K|\d{1,2})(?:ST|ND|RD|TH)?\b", text)
    if not match:
        return None
    last = match.group(match.lastindex or 1)
    grade = 0 if last == "K" else int(last)
    if grade <= 2:
        return GRADE_BANDS["K-2"]
    if grade <= 5:
        return GRADE_BANDS["3-5"]
    if grade <= 8:
        return GRADE_BANDS["6-8"]
    if grade <= 12:
        return GRADE_BANDS["9-12"]
    return None


def _context_block(wizard: WizardContext) -> str:
    lines = [
        f"- Grade level: {wizard.grade_level or 'unspecified'}",
        f"- Subjects: {', '.join(wizard.subjects) or 'unspecified'}",
        f"- Duration: {wizard.duration or 'unspecified'}",
    ]
    if wizard.space:
        lines.append(f"- Learning space: {wizard.space}")
    if wizard.materials:
        lines.append(f"- Materials: {wizard.materials}")
    if wizard.prior_experience:
        lines.append(f"- Educator's PBL experience: {wizard.prior_experience}")
    if wizard.project_topic:
        lines.append(f"- Topic: {wizard.project_topic}")
    return "\n".join(lines)


def _guardrails_block(wizard: WizardContext) -> str:
    band = resolve_grade_band(wizard.grade_level)
    if band is None:
        return ""
    rules = "\n".join(f"- {rule}" for rule in band.guardrails)
    return f"\nGRADE-BAND GUARDRAILS ({band.key}): {band.summary}\n{rules}\n"


def build_stage_prompt(
    stage: Stage,
    wizard: WizardContext,
    captured: CapturedData,
    user_text: str,
    gating_reason: str | None = None,
) -> str:
    """Prompt for the coaching reply after the user contributed to ``stage``."""
    guide = stage_guide(stage)
    next_step = (
        f"The stage is not complete yet: {gating_reason} Ask one focused question to get there."
        if gating_reason
        else "Affirm what is strong and suggest one way to sharpen it."
    )
    return (
        f"CURRENT STAGE: {stage.label}\n"
        f"GOAL: {guide.what}\n\n"
        f"PROJECT CONTEXT:\n{_context_block(wizard)}\n"
        f"{_guardrails_block(wizard)}\n"
        f"DESIGN SO FAR:\n{summarize_captured(wizard, captured, stage)}\n\n"
        f"EDUCATOR SAID: {user_text}\n\n"
        f"{next_step}"
    )


def build_suggestion_prompt(
    stage: Stage, wizard: WizardContext, captured: CapturedData, count: int = 3
) -> str:
    """Prompt for ``count`` alternative options for ``stage``."""
    guide = stage_guide(stage)
    return (
        f"Suggest {count} distinct options for the {stage.label} of this project.\n"
        f"GOAL: {guide.what} {guide.tip}\n\n"
        f"PROJECT CONTEXT:\n{_context_block(wizard)}\n"
        f"{_guardrails_block(wizard)}\n"
        f"DESIGN SO FAR:\n{summarize_captured(wizard, captured, stage)}\n\n"
        f"Return ONLY a JSON array of {count} strings, each under 25 words."
    )


def build_journey_prompt(
    wizard: WizardContext,
    captured: CapturedData,
    phase_count: int,
    week_ranges: list[str],
    feedback: str | None = None,
) -> str:
    """Prompt for a ``phase_count``-phase learning journey as JSON."""
    ideation = captured.ideation
    request = f"\nEDUCATOR FEEDBACK ON THE LAST PROPOSAL: {feedback}\n" if feedback else ""
    first_range = week_ranges[0] if week_ranges else "Week 1"
    return (
        f"Generate a {phase_count}-phase learning journey for this project.\n\n"
        "PROJECT FOUNDATION:\n"
        f"- Big Idea: {ideation.big_idea or ''}\n"
        f"- Essential Question: {ideation.essential_question or ''}\n"
        f"- Challenge: {ideation.challenge or ''}\n\n"
        f"CONTEXT:\n{_context_block(wizard)}\n"
        f"- Week ranges: {', '.join(week_ranges)}\n"
        f"{_guardrails_block(wizard)}{request}\n"
        "REQUIREMENTS:\n"
        "1. Phases build toward answering the Essential Question\n"
        "2. Each phase has 2-3 specific activities that name the actual topic\n"
        "3. The final phase delivers the Challenge to its audience\n\n"
        "OUTPUT FORMAT (JSON):\n"
        f'[{{"name": "Phase title (3-6 words)", "duration": "{first_range}", '
        '"summary": "One sentence on how the phase advances the inquiry", '
        '"activities": ["...", "..."]}]\n\n'
        "Return ONLY valid JSON."
    )


_COMPONENT_GUIDANCE: dict[DeliverableComponent, str] = {
    DeliverableComponent.MILESTONES: "progress checkpoints students reach during the journey (3-5 items)",
    DeliverableComponent.ARTIFACTS: "final products students create and present (1-3 items)",
    DeliverableComponent.CRITERIA: "rubric criteria describing quality in student-friendly language (3-6 items)",
}


def build_deliverables_prompt(
    component: DeliverableComponent,
    wizard: WizardContext,
    captured: CapturedData,
    feedback: str | None = None,
) -> str:
    """Prompt for one deliverables component as a JSON string array."""
    request = f"\nEDUCATOR FEEDBACK: {feedback}\n" if feedback else ""
    return (
        f"Propose {component.value} for this project: {_COMPONENT_GUIDANCE[component]}.\n\n"
        f"PROJECT CONTEXT:\n{_context_block(wizard)}\n"
        f"{_guardrails_block(wizard)}\n"
        f"DESIGN SO FAR:\n{summarize_captured(wizard, captured, Stage.DELIVERABLES)}\n"
        f"{request}\n"
        "Return ONLY a JSON array of strings."
    )


# --- Parsing -----------------------------------------------------------------

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)
_LIST_LINE_RE = re.compile(r"^\s*(?:[-*•]+\s*|\(?\d+[.)]\s+)")


def _load_json_array(text: str) -> list[Any] | None:
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    start, end = cleaned.find("["), cleaned.rfind("]")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, list) else None


def _item_text(item: Any) -> str:
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict):
        for key in ("name", "text", "title", "criterion", "value"):
            if isinstance(item.get(key), str):
                return item[key].strip()
    return ""


def parse_list_response(text: str, min_items: int = MIN_USABLE_ITEMS, max_items: int = 6) -> list[str] | None:
    """Parse an AI list answer.

    Args:
        text: Raw model output
        min_items: Fewest usable items to accept
        max_items: Items beyond this are dropped

    Returns:
        Items, or None when fewer than ``min_items`` are usable
    """
    data = _load_json_array(text)
    if data is not None:
        items = [_item_text(item) for item in data]
    else:
        items = [_LIST_LINE_RE.sub("", line).strip().strip('"') for line in text.splitlines()]
        items = [i for i in items if i and not i.endswith(":")]
    seen: set[str] = set()
    unique = []
    for item in items:
        if item and item.lower() not in seen:
            seen.add(item.lower())
            unique.append(item)
    if len(unique) < min_items:
        logger.warning("ai_list_unusable", usable=len(unique), required=min_items)
        return None
    return unique[:max_items]


def parse_phase_response(text: str, phase_count: int) -> list[Phase] | None:
    """Parse a generated journey.

    Returns:
        Up to ``phase_count`` phases, or None when fewer than
        ``min(3, phase_count)`` named phases are usable
    """
    required = min(MIN_USABLE_ITEMS, phase_count)
    data = _load_json_array(text)
    phases: list[Phase] = []
    if data is not None:
        for item in data:
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "").strip()
            if not name:
                continue
            activities = item.get("activities")
            phases.append(
                Phase(
                    name=name,
                    focus=str(item.get("summary") or item.get("focus") or "").strip() or None,
                    activities=[str(a).strip() for a in activities if str(a).strip()]
                    if isinstance(activities, list)
                    else [],
                    checkpoint=str(item.get("duration") or "").strip() or None,
                )
            )
    else:
        phases = [p for p in parse_phases(text) if p.is_named]
    if len(phases) < required:
        logger.warning("ai_journey_unusable", usable=len(phases), required=required)
        return None
    return phases[:phase_count]
