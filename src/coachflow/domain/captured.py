"""Captured design data and session configuration models.

CapturedData is the accumulating, stage-partitioned record of everything the
user has decided. It is only ever replaced wholesale: every capture builds a
new instance from the previous one, so observers never see a half-applied
write.

Serialization uses camelCase keys (``bigIdea``, ``essentialQuestion``) so
snapshots stay compatible with records written by earlier clients, and
``hydrate_captured`` also understands the legacy flat-key layout
(``journey.phase.1.name``).
"""

from __future__ import annotations

import re
from typing import Any
from uuid import uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from coachflow.domain.stages import Stage

logger = structlog.get_logger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def new_phase_id() -> str:
    """Return a short random phase identifier."""
    return f"phase-{uuid4().hex[:8]}"


class Phase(_CamelModel):
    """One phase of the learning journey.

    Attributes:
        id: Stable identifier, preserved across renames and reorders
        name: Phase title
        focus: Optional one-line summary of what the phase advances
        activities: Key activities for the phase
        checkpoint: Optional checkpoint or week range
    """

    id: str = Field(default_factory=new_phase_id)
    name: str = ""
    focus: str | None = None
    activities: list[str] = Field(default_factory=list)
    checkpoint: str | None = None

    @property
    def is_named(self) -> bool:
        return bool(self.name.strip())


class NamedItem(_CamelModel):
    """A milestone or artifact."""

    name: str


class Ideation(_CamelModel):
    big_idea: str | None = None
    essential_question: str | None = None
    challenge: str | None = None


class JourneyData(_CamelModel):
    phases: list[Phase] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)


class Rubric(_CamelModel):
    criteria: list[str] = Field(default_factory=list)


class DeliverablesData(_CamelModel):
    milestones: list[NamedItem] = Field(default_factory=list)
    artifacts: list[NamedItem] = Field(default_factory=list)
    rubric: Rubric = Field(default_factory=Rubric)


class CapturedData(_CamelModel):
    """The accumulating design document, partitioned by stage."""

    ideation: Ideation = Field(default_factory=Ideation)
    journey: JourneyData = Field(default_factory=JourneyData)
    deliverables: DeliverablesData = Field(default_factory=DeliverablesData)

    def clone(self) -> CapturedData:
        """Return a deep copy that can be modified without touching self."""
        return self.model_copy(deep=True)


class WizardContext(_CamelModel):
    """Immutable per-session configuration captured before the conversation.

    Attributes:
        grade_level: Learner grade band or level (e.g. "Middle School", "9-12")
        subjects: Subjects the project spans
        duration: Free-text duration (e.g. "4 weeks", "a semester")
        space: Learning space (classroom, makerspace, outdoors)
        materials: Available materials
        prior_experience: The designer's prior experience level
        project_topic: Optional starting topic
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    grade_level: str = ""
    subjects: tuple[str, ...] = ()
    duration: str = ""
    space: str = ""
    materials: str = ""
    prior_experience: str = ""
    project_topic: str = ""

    @property
    def primary_subject(self) -> str:
        return self.subjects[0] if self.subjects else ""


# --- Free-text parsing -------------------------------------------------------

_BULLET_RE = re.compile(r"^\s*(?:[-*•]+\s*|\(?\d+[.)]\s+)")
_PHASE_SPLIT_RE = re.compile(r"\s*(?::|\s[–—-]\s)\s*")
_PHASE_PREFIX_RE = re.compile(r"^phase\s*\d+\s*[:.\-–—]?\s*", re.IGNORECASE)
_RESOURCES_RE = re.compile(r"\bresources?\s*:", re.IGNORECASE)
_CRITERION_PREFIX_RE = re.compile(r"^(?:rubric\s+)?(?:criterion|criteria)\s*[:\-]?\s*", re.IGNORECASE)
_CRITERION_RE = re.compile(r"(criterion|criteria|rubric|performance|quality of|assess)", re.IGNORECASE)
_ARTIFACT_RE = re.compile(
    r"(artifact|deliverable|product|presentation|prototype|exhibit|showcase|portfolio|"
    r"podcast|documentary|campaign|proposal|model|video|report)",
    re.IGNORECASE,
)


def split_items(value: str, *, split_commas: bool = True) -> list[str]:
    """Split a free-text list into items.

    Newline-separated entries win; a single line falls back to commas and
    semicolons. Leading bullets and list numbering are stripped.

    Args:
        value: Raw user text
        split_commas: Whether a single line may be split on commas

    Returns:
        Non-empty trimmed items in input order
    """
    normalized = value.replace("\r", "\n")
    lines = [_BULLET_RE.sub("", line).strip() for line in normalized.split("\n")]
    lines = [line for line in lines if line]
    if len(lines) > 1:
        return lines

    if split_commas:
        alt = [item.strip() for item in re.split(r"[,;]+", normalized) if item.strip()]
        if len(alt) > 1:
            return [_BULLET_RE.sub("", item).strip() for item in alt]

    return lines


def _split_activities(value: str) -> list[str]:
    return [a.strip() for a in re.split(r"[,;]+", value) if a.strip()]


def parse_phases(value: str) -> list[Phase]:
    """Parse ``Name: activity, activity`` lines into phases."""
    phases: list[Phase] = []
    for index, item in enumerate(split_items(value, split_commas=False)):
        item = _PHASE_PREFIX_RE.sub("", item).strip() or item
        parts = _PHASE_SPLIT_RE.split(item, maxsplit=1)
        name = parts[0].strip() or f"Phase {index + 1}"
        activities = _split_activities(parts[1]) if len(parts) > 1 else []
        phases.append(Phase(name=name, activities=activities))
    return phases


def classify_deliverable_item(item: str) -> str:
    """Classify a deliverables line as ``milestone``, ``artifact`` or ``criterion``."""
    if _CRITERION_RE.search(item):
        return "criterion"
    if _ARTIFACT_RE.search(item):
        return "artifact"
    return "milestone"


def _append_unique(target: list[str], items: list[str]) -> list[str]:
    seen = {t.lower() for t in target}
    merged = list(target)
    for item in items:
        if item.lower() not in seen:
            merged.append(item)
            seen.add(item.lower())
    return merged


def capture_stage_input(previous: CapturedData, stage: Stage, content: str) -> CapturedData:
    """Write free-text content into the field owned by ``stage``.

    The previous instance is never modified; a new CapturedData is returned.
    Data belonging to other stages is carried over untouched.

    Args:
        previous: Current captured data
        stage: Stage whose field receives the content
        content: Assessed user text

    Returns:
        New CapturedData with the content applied
    """
    nxt = previous.clone()
    text = content.strip()

    if stage is Stage.BIG_IDEA:
        nxt.ideation.big_idea = text
    elif stage is Stage.ESSENTIAL_QUESTION:
        nxt.ideation.essential_question = text
    elif stage is Stage.CHALLENGE:
        nxt.ideation.challenge = text
    elif stage is Stage.JOURNEY:
        parts = _RESOURCES_RE.split(text, maxsplit=1)
        phases = parse_phases(parts[0]) if parts[0].strip() else []
        if len(phases) > 1:
            nxt.journey.phases = phases
        elif phases:
            nxt.journey.phases = [*nxt.journey.phases, *phases]
        if len(parts) > 1:
            nxt.journey.resources = _append_unique(
                nxt.journey.resources, split_items(parts[1])[:10]
            )
    elif stage is Stage.DELIVERABLES:
        milestones: list[str] = []
        artifacts: list[str] = []
        criteria: list[str] = []
        for raw in split_items(text):
            kind = classify_deliverable_item(raw)
            if kind == "criterion":
                criterion = _CRITERION_PREFIX_RE.sub("", raw).strip()
                if criterion:
                    criteria.append(criterion)
            elif kind == "artifact":
                artifacts.append(raw)
            else:
                milestones.append(raw)
        deliverables = nxt.deliverables
        deliverables.milestones = [
            NamedItem(name=n)
            for n in _append_unique([m.name for m in deliverables.milestones], milestones)
        ]
        deliverables.artifacts = [
            NamedItem(name=n)
            for n in _append_unique([a.name for a in deliverables.artifacts], artifacts)
        ]
        deliverables.rubric.criteria = _append_unique(deliverables.rubric.criteria, criteria)

    return nxt


# --- Serialization -----------------------------------------------------------


def serialize_captured(captured: CapturedData) -> dict[str, Any]:
    """Return a JSON-safe nested dict with camelCase keys."""
    return captured.model_dump(mode="json", by_alias=True, exclude_none=True)


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [s.strip() for s in re.split(r"[,;]+", value) if s.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def _named_items(value: Any, default_prefix: str) -> list[NamedItem]:
    items: list[NamedItem] = []
    if not isinstance(value, (list, tuple)):
        return items
    for index, raw in enumerate(value):
        if isinstance(raw, dict):
            name = str(raw.get("name") or "").strip() or f"{default_prefix} {index + 1}"
        elif raw is not None and str(raw).strip():
            name = str(raw).strip()
        else:
            continue
        items.append(NamedItem(name=name))
    return items


def _phase_from_raw(raw: Any, index: int) -> Phase | None:
    if isinstance(raw, str):
        return Phase(name=raw.strip()) if raw.strip() else None
    if not isinstance(raw, dict):
        return None
    data: dict[str, Any] = {
        "name": str(raw.get("name") or f"Phase {index + 1}"),
        "activities": _as_str_list(raw.get("activities")),
    }
    if raw.get("id"):
        data["id"] = str(raw["id"])
    for key in ("focus", "checkpoint"):
        if raw.get(key):
            data[key] = str(raw[key])
    return Phase(**data)


def _apply_flat_keys(base: CapturedData, record: dict[str, Any]) -> None:
    phases: dict[int, Phase] = {}
    milestones: dict[int, str] = {}
    artifacts: dict[int, str] = {}

    for key, value in record.items():
        if not isinstance(value, str):
            continue
        if key == "ideation.bigIdea":
            base.ideation.big_idea = value
        elif key == "ideation.essentialQuestion":
            base.ideation.essential_question = value
        elif key == "ideation.challenge":
            base.ideation.challenge = value
        elif key == "journey.resources":
            base.journey.resources = _as_str_list(value)
        elif key == "deliverables.rubric.criteria":
            base.deliverables.rubric.criteria = _as_str_list(value)
        elif match := re.match(r"^journey\.phase\.(\d+)\.(name|activities)$", key):
            phase = phases.setdefault(int(match.group(1)), Phase())
            if match.group(2) == "name":
                phase.name = value
            else:
                phase.activities = _as_str_list(value)
        elif match := re.match(r"^deliverables\.milestone\.(\d+)$", key):
            milestones[int(match.group(1))] = value
        elif match := re.match(r"^deliverables\.artifact\.(\d+)$", key):
            artifacts[int(match.group(1))] = value

    if phases:
        base.journey.phases = [phases[i] for i in sorted(phases)]
    if milestones:
        base.deliverables.milestones = [NamedItem(name=milestones[i]) for i in sorted(milestones)]
    if artifacts:
        base.deliverables.artifacts = [NamedItem(name=artifacts[i]) for i in sorted(artifacts)]


def hydrate_captured(record: Any) -> CapturedData:
    """Rebuild CapturedData from a persisted record.

    Accepts the nested camelCase shape written by ``serialize_captured`` and
    the legacy flat-key shape. Anything unreadable yields empty data instead
    of an exception.

    Args:
        record: Persisted value, usually a dict

    Returns:
        Hydrated CapturedData (empty when the record is missing or malformed)
    """
    base = CapturedData()
    if not isinstance(record, dict):
        if record is not None:
            logger.warning("captured_record_malformed", record_type=type(record).__name__)
        return base

    try:
        ideation = record.get("ideation")
        if isinstance(ideation, dict):
            for attr, key in (
                ("big_idea", "bigIdea"),
                ("essential_question", "essentialQuestion"),
                ("challenge", "challenge"),
            ):
                value = ideation.get(key, ideation.get(attr))
                if value:
                    setattr(base.ideation, attr, str(value).strip())

        journey = record.get("journey")
        if isinstance(journey, dict):
            raw_phases = journey.get("phases")
            if isinstance(raw_phases, list):
                parsed = (_phase_from_raw(p, i) for i, p in enumerate(raw_phases))
                base.journey.phases = [p for p in parsed if p is not None]
            base.journey.resources = _as_str_list(journey.get("resources"))

        deliverables = record.get("deliverables")
        if isinstance(deliverables, dict):
            base.deliverables.milestones = _named_items(deliverables.get("milestones"), "Milestone")
            base.deliverables.artifacts = _named_items(deliverables.get("artifacts"), "Artifact")
            rubric = deliverables.get("rubric")
            if isinstance(rubric, dict):
                base.deliverables.rubric.criteria = _as_str_list(rubric.get("criteria"))

        _apply_flat_keys(base, record)
    except (ValidationError, TypeError, ValueError, AttributeError) as e:
        logger.warning("captured_record_malformed", error=str(e))
        return CapturedData()

    return base
