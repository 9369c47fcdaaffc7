"""Input quality assessment.

Runs before anything is written to CapturedData and rejects input that
carries no real substance: blank text, placeholders, too few words, and
stage-specific anti-patterns such as a Challenge phrased as a question.

The same module owns conversational-wrapper stripping ("what about X",
"how about we say X"), which the intent classifier also applies before
matching, and the stricter substance bar that stage gating applies to
ideation fields.
"""

from __future__ import annotations

import re

import structlog
from pydantic import BaseModel, Field

from coachflow.domain.stages import Stage

logger = structlog.get_logger(__name__)


class QualityAssessment(BaseModel):
    """Result of assessing one utterance.

    Attributes:
        ok: Whether the text may be committed
        reason: Machine-usable rejection code (None when ok)
        hint: Coaching hint for the correction message (None when ok)
    """

    ok: bool
    reason: str | None = Field(default=None)
    hint: str | None = Field(default=None)


# Rejection codes
EMPTY = "empty"
PLACEHOLDER = "placeholder"
REPETITIVE = "repetitive"
TOO_SHORT = "too_short"
CLOSED_QUESTION = "closed_question"
QUESTION_AS_CHALLENGE = "question_as_challenge"
NO_LIST_ITEMS = "no_list_items"

MIN_WORDS: dict[Stage, int] = {
    Stage.BIG_IDEA: 3,
    Stage.ESSENTIAL_QUESTION: 4,
    Stage.CHALLENGE: 5,
    Stage.JOURNEY: 2,
    Stage.DELIVERABLES: 2,
}

# Gate thresholds for ideation fields
MIN_GATE_CHARS: dict[Stage, int] = {
    Stage.BIG_IDEA: 10,
    Stage.ESSENTIAL_QUESTION: 10,
    Stage.CHALLENGE: 15,
}
MIN_GATE_WORDS: dict[Stage, int] = {
    Stage.BIG_IDEA: 2,
    Stage.ESSENTIAL_QUESTION: 3,
    Stage.CHALLENGE: 3,
}

_PLACEHOLDERS = frozenset(
    {
        "idk", "i dont know", "i don't know", "dunno", "test", "testing", "asdf",
        "qwerty", "lorem ipsum", "n/a", "na", "none", "nothing", "whatever",
        "something", "stuff", "tbd", "todo", "blah", "blah blah", "xyz", "abc",
    }
)

_WORD_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9'’-]*")
_QUESTION_WORD_RE = re.compile(
    r"^(how|what|why|who|where|when|which|should|could|would|can|is|are|do|does|did|will)\b",
    re.IGNORECASE,
)
_CLOSED_QUESTION_RE = re.compile(
    r"^(is|are|do|does|did|can|will|was|were|has|have)\b", re.IGNORECASE
)
_CHALLENGE_QUESTION_RE = re.compile(
    r"^(how|what|why|who|where|when|which|should|could|would|is|are|does|did)\b", re.IGNORECASE
)
_OPEN_MARKER_RE = re.compile(r"\b(how|why|what|in what ways|to what extent)\b", re.IGNORECASE)

_WRAPPER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"^(?:so\s+|ok(?:ay)?,?\s+|hmm+,?\s+)?(?:what|how)\s+about\s+"
        r"(?:if\s+)?(?:we\s+|i\s+)?(?:say|said|saying|use|used|using|go\s+with|going\s+with|try|call\s+it)?\s*(?P<payload>.+)$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:maybe|perhaps)\s+(?:something\s+like|we\s+could\s+(?:say|use|try)|it\s+could\s+be)\s*(?P<payload>.+)$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:let'?s|let\s+us)\s+(?:go\s+with|use|say|try|call\s+it)\s*(?P<payload>.+)$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^i(?:'m|\s+am|\s+was|'ve\s+been)?\s+think(?:ing)?\s+(?:that\s+|of\s+|about\s+)?(?P<payload>.+)$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:could|can)\s+(?:it|we)\s+be\s+(?P<payload>.+)$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:my|our|the)\s+(?:big\s+idea|essential\s+question|eq|challenge|idea|answer)\s+"
        r"(?:is|would\s+be|could\s+be|will\s+be)\s*:?\s*(?P<payload>.+)$",
        re.IGNORECASE,
    ),
    re.compile(r"^something\s+like\s*:?\s+(?P<payload>.+)$", re.IGNORECASE),
)

_QUOTES = "\"'“”‘’"


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] in _QUOTES and text[-1] in _QUOTES:
        return text[1:-1].strip()
    return text


def strip_conversational_wrapper(text: str) -> str:
    """Unwrap "what about X" style phrasing to its payload X.

    Wrappers are peeled repeatedly ("how about we say something like X").
    A trailing question mark that belongs to the wrapper is dropped, but a
    payload that is itself a question keeps it.

    Args:
        text: Raw utterance

    Returns:
        The payload, or the trimmed input when no wrapper matched
    """
    current = text.strip()
    for _ in range(4):
        unwrapped = None
        for pattern in _WRAPPER_PATTERNS:
            match = pattern.match(current)
            if match and match.group("payload").strip():
                unwrapped = match.group("payload").strip()
                break
        if unwrapped is None:
            break
        had_question_mark = unwrapped.endswith("?")
        payload = _unquote(unwrapped.rstrip("?").rstrip())
        if had_question_mark and _QUESTION_WORD_RE.match(payload):
            payload = f"{payload}?"
        current = payload
    return _unquote(current)


def word_count(text: str) -> int:
    """Count word-like tokens in ``text``."""
    return len(_WORD_RE.findall(text))


def _normalized(text: str) -> str:
    return re.sub(r"[\s.!?,]+", " ", text.lower()).strip()


def _reject(stage: Stage, reason: str, hint: str) -> QualityAssessment:
    logger.debug("input_quality_rejected", stage=stage.value, reason=reason)
    return QualityAssessment(ok=False, reason=reason, hint=hint)


def assess_input(stage: Stage, text: str) -> QualityAssessment:
    """Score an utterance against the substance heuristics for ``stage``.

    Args:
        stage: Stage the text would be captured into
        text: Raw (wrapper-stripped) user text

    Returns:
        QualityAssessment with ``ok`` or a reason/hint pair
    """
    stripped = text.strip()
    if not stripped:
        return _reject(stage, EMPTY, "Share a few words so we have something to build on.")

    normalized = _normalized(stripped)
    if normalized in _PLACEHOLDERS:
        return _reject(
            stage,
            PLACEHOLDER,
            f"That looks like a placeholder. Try a first draft of the {stage.label}; rough is fine.",
        )

    words = _WORD_RE.findall(stripped)
    if len(words) > 1 and len({w.lower() for w in words}) == 1:
        return _reject(stage, REPETITIVE, "Try describing the idea in your own words.")

    minimum = MIN_WORDS[stage]
    if len(words) < minimum:
        return _reject(
            stage,
            TOO_SHORT,
            f"Add a little more detail: aim for at least {minimum} words for the {stage.label}.",
        )

    if stage is Stage.ESSENTIAL_QUESTION:
        if _CLOSED_QUESTION_RE.match(stripped) and not _OPEN_MARKER_RE.search(stripped):
            return _reject(
                stage,
                CLOSED_QUESTION,
                "That reads as a yes/no question. Reframe it to open inquiry, e.g. start with "
                "\"How might\" or \"Why does\".",
            )

    if stage is Stage.CHALLENGE:
        if stripped.endswith("?") or _CHALLENGE_QUESTION_RE.match(stripped):
            return _reject(
                stage,
                QUESTION_AS_CHALLENGE,
                "Phrase the Challenge as an action students will take, e.g. \"Design a ... for ...\".",
            )

    if stage is Stage.JOURNEY and not re.search(r"[A-Za-z]{3,}", stripped):
        return _reject(stage, NO_LIST_ITEMS, "List phase names, one per line.")

    return QualityAssessment(ok=True)


def meets_substance_bar(stage: Stage, text: str | None) -> bool:
    """Stricter check applied by stage gating to ideation fields.

    Requires a trimmed value with a minimum character and word count and no
    placeholder content.

    Args:
        stage: An ideation stage
        text: Captured field value

    Returns:
        True when the value is substantial enough to advance
    """
    value = (text or "").strip()
    if not value:
        return False
    if _normalized(value) in _PLACEHOLDERS:
        return False
    return len(value) >= MIN_GATE_CHARS.get(stage, 1) and word_count(value) >= MIN_GATE_WORDS.get(stage, 1)
