"""Rule-based intent classification for free-text turns.

Each rule is an independent predicate over a preprocessed utterance. Rules
run in the fixed order of ``INTENT_RULES`` and the first match wins, so the
order of that list is part of the contract: an utterance that both affirms
and asks for more options ("yes, show me something else") must resolve as a
request for alternatives because acceptance only matches when the whole
utterance is an affirmation or a selection.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Literal

import structlog
from pydantic import BaseModel, Field

from coachflow.domain.quality import strip_conversational_wrapper
from coachflow.domain.stages import Stage

logger = structlog.get_logger(__name__)


class UserIntent(str, Enum):
    """Closed set of turn intents."""

    ACCEPT_SUGGESTION = "accept_suggestion"
    REQUEST_ALTERNATIVES = "request_alternatives"
    REQUEST_CLARIFICATION = "request_clarification"
    SHOW_PROGRESS = "show_progress"
    MODIFY_PREVIOUS = "modify_previous"
    CANCEL_FLOW = "cancel_flow"
    SUBSTANTIVE_INPUT = "substantive_input"


class ConversationTurn(BaseModel):
    """One entry of the short conversational history.

    Attributes:
        role: Who spoke
        text: What was said
        suggestions: Options shown with an assistant turn
    """

    role: Literal["user", "assistant"]
    text: str
    suggestions: tuple[str, ...] = ()


class IntentResult(BaseModel):
    """Classified intent.

    Attributes:
        intent: Detected intent
        last_suggestion_index: For acceptance, index into the recent
            suggestion texts (-1 means most recent); None selects everything
            on offer
        extracted_value: Payload to capture (substantive input, or the new
            value for modify_previous)
        target_stage: Stage addressed by modify_previous
        rule: Name of the rule that matched
    """

    intent: UserIntent
    last_suggestion_index: int | None = Field(default=None)
    extracted_value: str | None = Field(default=None)
    target_stage: Stage | None = Field(default=None)
    rule: str = ""


@dataclass(frozen=True)
class Utterance:
    """Preprocessed input shared by every rule."""

    raw: str
    text: str
    normalized: str
    words: tuple[str, ...]
    recent_suggestions: tuple[str, ...]
    history: tuple[ConversationTurn, ...]


IntentRule = tuple[str, Callable[[Utterance], IntentResult | None]]


def _normalize(text: str) -> str:
    lowered = text.lower().replace("’", "'")
    lowered = re.sub(r"[^\w\s'#]", " ", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


def preprocess(
    text: str,
    recent_suggestion_texts: Sequence[str] = (),
    conversation_history: Sequence[ConversationTurn] = (),
) -> Utterance:
    """Strip conversational wrappers and normalize ``text`` for matching."""
    stripped = strip_conversational_wrapper(text or "")
    normalized = _normalize(stripped)
    return Utterance(
        raw=text or "",
        text=stripped,
        normalized=normalized,
        words=tuple(normalized.split()),
        recent_suggestions=tuple(recent_suggestion_texts),
        history=tuple(conversation_history),
    )


# --- accept_suggestion -------------------------------------------------------

_ORDINALS: dict[str, int] = {
    "first": 0, "1st": 0, "second": 1, "2nd": 1, "third": 2, "3rd": 2,
    "fourth": 3, "4th": 3, "fifth": 4, "5th": 4,
    "last": -1, "latest": -1, "final": -1,
}

_AFFIRMATION_RE = re.compile(
    r"^(?:yes|yeah|yea|yep|yup|sure|ok|okay|k|absolutely|definitely|exactly|perfect|great|"
    r"awesome|nice|cool|good|fine|correct|right|please|thanks|thank you|"
    r"sounds (?:good|great|perfect)|looks (?:good|great|perfect)|that works|works for me|"
    r"love (?:it|that)|i (?:like|love) (?:it|that)|let's do (?:it|that)|do it|go for it|"
    r"i agree|agreed|deal)\b\s*"
)
_SELECT_VERB_RE = re.compile(
    r"^(?:i(?:'ll| will|'d like to| want to)? |let's |we'll )?"
    r"(?:go with|take|pick|choose|select|use|accept|keep|approve)\b\s*"
)
_ORDINAL_RE = re.compile(
    r"^(?:the )?(?P<ord>first|1st|second|2nd|third|3rd|fourth|4th|fifth|5th|last|latest|final)"
    r"(?: (?:one|option|idea|suggestion|choice))?$"
)
_NUMBERED_RE = re.compile(r"^(?:(?:option|number|choice|idea|suggestion) ?|#)?(?P<num>[1-9])$")
_DEICTIC_RE = re.compile(r"^(?:that|this|it)(?: (?:one|option|idea|suggestion))?$")
_ALL_RE = re.compile(
    r"^(?:all|everything|them all|these|those|the lot|as is)"
    r"(?: (?:of )?(?:them|these|those|it|phases|milestones|artifacts|criteria|items|suggestions|options))?$"
)


def _trailing_politeness(text: str) -> str:
    return re.sub(r"\s*\b(?:please|thanks|thank you)$", "", text).strip()


def _accept_rule(u: Utterance) -> IntentResult | None:
    rest = u.normalized
    if not rest:
        return None

    affirmed = False
    while True:
        match = _AFFIRMATION_RE.match(rest)
        if not match or not match.group(0):
            break
        affirmed = True
        rest = rest[match.end():].strip()

    verb = _SELECT_VERB_RE.match(rest)
    if verb:
        rest = rest[verb.end():].strip()
    rest = _trailing_politeness(rest)

    if not rest:
        if affirmed or verb:
            return IntentResult(intent=UserIntent.ACCEPT_SUGGESTION, last_suggestion_index=-1)
        return None
    if match := _ORDINAL_RE.match(rest):
        return IntentResult(
            intent=UserIntent.ACCEPT_SUGGESTION, last_suggestion_index=_ORDINALS[match.group("ord")]
        )
    if match := _NUMBERED_RE.match(rest):
        return IntentResult(
            intent=UserIntent.ACCEPT_SUGGESTION, last_suggestion_index=int(match.group("num")) - 1
        )
    if _DEICTIC_RE.match(rest):
        return IntentResult(intent=UserIntent.ACCEPT_SUGGESTION, last_suggestion_index=-1)
    if _ALL_RE.match(rest) and (affirmed or verb or rest in ("all", "everything")):
        return IntentResult(intent=UserIntent.ACCEPT_SUGGESTION, last_suggestion_index=None)
    return None


# --- cancel_flow -------------------------------------------------------------

_CANCEL_WHOLE_RE = re.compile(
    r"^(?:(?:no|ok|okay|actually|please|let's|just|hmm|wait|um)\s+)*"
    r"(?:cancel|stop|abort|quit|exit|scrap)(?: (?:this|that|it|here|the flow))?"
    r"(?: (?:please|now|then|for now|thanks))?$"
)
_CANCEL_ANYWHERE_RE = re.compile(
    r"\b(?:never ?mind|start (?:over|again)|forget (?:it|that|this)|cancel (?:this|that|it)|"
    r"let's stop|scrap (?:this|that)|stop (?:this|that) flow)\b"
)
_MAX_CANCEL_WORDS = 8


def _cancel_rule(u: Utterance) -> IntentResult | None:
    if _CANCEL_WHOLE_RE.match(u.normalized) or (
        len(u.words) <= _MAX_CANCEL_WORDS and _CANCEL_ANYWHERE_RE.search(u.normalized)
    ):
        return IntentResult(intent=UserIntent.CANCEL_FLOW)
    return None


# --- request_alternatives ----------------------------------------------------

# Words that may precede a request phrase without turning it into content.
_REQUEST_LEAD_WORDS = frozenset(
    {
        "yes", "yeah", "no", "nope", "ok", "okay", "hmm", "um", "well", "actually", "please",
        "maybe", "but", "so", "can", "could", "would", "you", "we", "i", "i'd", "like", "to",
        "want", "let's", "see", "get", "have", "try", "give", "show", "me", "us", "do", "there",
        "are", "any", "some", "got", "suggest", "hear", "what", "about", "how", "a", "the",
        "quick", "our", "my", "just", "then", "now", "where",
    }
)

_ALTERNATIVES_RE = re.compile(
    r"\b(?:something else|anything else|other (?:ideas|options|suggestions|ones)|"
    r"(?:more|new|different|fresh) (?:ideas|options|suggestions|ones)|"
    r"different (?:one|idea|option|suggestion)|another (?:one|idea|option|suggestion|set)|"
    r"(?:show|give) me (?:more|others|other|different)|(?:any|some|more) alternatives|"
    r"none of (?:these|those|them)|try again|regenerate|different approach)\b"
)
_ALTERNATIVES_WHOLE_RE = re.compile(r"^(?:alternatives?|more|others|again)$")
_BARE_NO_RE = re.compile(r"^(?:no|nope|nah|not quite|not really|neither|not those|no thanks)$")
_MAX_REQUEST_WORDS = 12


def _request_match(pattern: re.Pattern[str], u: Utterance) -> bool:
    if len(u.words) > _MAX_REQUEST_WORDS:
        return False
    match = pattern.search(u.normalized)
    if not match:
        return False
    lead = u.normalized[: match.start()].split()
    return all(word in _REQUEST_LEAD_WORDS for word in lead)


def _offered_options(u: Utterance) -> bool:
    for turn in reversed(u.history):
        if turn.role == "assistant":
            return bool(turn.suggestions)
    return bool(u.recent_suggestions)


def _alternatives_rule(u: Utterance) -> IntentResult | None:
    if _ALTERNATIVES_WHOLE_RE.match(u.normalized) or _request_match(_ALTERNATIVES_RE, u):
        return IntentResult(intent=UserIntent.REQUEST_ALTERNATIVES)
    if _BARE_NO_RE.match(u.normalized) and _offered_options(u):
        return IntentResult(intent=UserIntent.REQUEST_ALTERNATIVES)
    return None


# --- request_clarification ---------------------------------------------------

_STAGE_NOUNS = (
    r"(?:big idea|essential question|eq|challenge|journey|phase|deliverable|milestone|"
    r"artifact|rubric|criteria|criterion)s?"
)
_CLARIFY_RE = re.compile(
    r"^(?:what do you mean|what does (?:that|this|it) mean|i don't (?:understand|get it)|"
    r"i'm (?:confused|lost|not sure what)|how does (?:this|that|it) work|"
    rf"what (?:is|are|'s) (?:a |an |the )?{_STAGE_NOUNS}(?: again| exactly| here)?$|"
    r"what should i (?:do|write|say|put)|what am i supposed to|"
    r"(?:can|could) you explain|explain (?:that|this|it|again|more)|"
    r"(?:i need )?help(?: me| please)?$|huh$|confused$|what$|why$)"
)


def _clarification_rule(u: Utterance) -> IntentResult | None:
    if _CLARIFY_RE.match(u.normalized):
        return IntentResult(intent=UserIntent.REQUEST_CLARIFICATION)
    if _BARE_NO_RE.match(u.normalized):
        return IntentResult(intent=UserIntent.REQUEST_CLARIFICATION)
    return None


# --- show_progress -----------------------------------------------------------

_PROGRESS_RE = re.compile(
    r"\b(?:what (?:have we|do we have|did we) (?:got |get |captured |done |decided )?so far|"
    r"what have we (?:got|captured|done|decided)|what we have so far|"
    r"show (?:me )?(?:my |our |the )?(?:progress|summary|status|plan|design|work so far)|"
    r"where are we|recap|summar(?:y|ize|ise)|progress so far|status update|how far (?:along )?are we)\b"
)


def _show_progress_rule(u: Utterance) -> IntentResult | None:
    if _request_match(_PROGRESS_RE, u):
        return IntentResult(intent=UserIntent.SHOW_PROGRESS)
    return None


# --- modify_previous ---------------------------------------------------------

_TARGETS: dict[str, Stage] = {
    "big idea": Stage.BIG_IDEA,
    "essential question": Stage.ESSENTIAL_QUESTION,
    "eq": Stage.ESSENTIAL_QUESTION,
    "question": Stage.ESSENTIAL_QUESTION,
    "challenge": Stage.CHALLENGE,
}
_MODIFY_RE = re.compile(
    r"^(?:can we |could we |let's |i want to |i'd like to |please |actually,? )?"
    r"(?:change|update|edit|revise|rewrite|replace|modify|fix|go back to)\s+"
    r"(?:the |my |our )?(?P<target>big idea|essential question|eq|question|challenge)"
    r"(?:\s+(?:to|with|so it says|so it reads|as)\b|\s*:)?\s*(?P<value>.*)$",
    re.IGNORECASE | re.DOTALL,
)
_QUOTES = "\"'“”‘’"


def _modify_rule(u: Utterance) -> IntentResult | None:
    match = _MODIFY_RE.match(u.text.strip())
    if not match:
        return None
    value = match.group("value").strip().strip(_QUOTES).strip()
    return IntentResult(
        intent=UserIntent.MODIFY_PREVIOUS,
        target_stage=_TARGETS[match.group("target").lower()],
        extracted_value=value or None,
    )


# --- substantive_input -------------------------------------------------------


def _substantive_rule(u: Utterance) -> IntentResult | None:
    if re.search(r"[A-Za-z0-9]", u.text):
        return IntentResult(intent=UserIntent.SUBSTANTIVE_INPUT, extracted_value=u.text)
    return None


INTENT_RULES: tuple[IntentRule, ...] = (
    ("accept", _accept_rule),
    ("cancel", _cancel_rule),
    ("alternatives", _alternatives_rule),
    ("clarification", _clarification_rule),
    ("show_progress", _show_progress_rule),
    ("modify_previous", _modify_rule),
    ("substantive", _substantive_rule),
)


def detect_intent(
    text: str,
    recent_suggestion_texts: Sequence[str] = (),
    conversation_history: Sequence[ConversationTurn] = (),
) -> IntentResult:
    """Classify one user utterance.

    Args:
        text: Raw user text
        recent_suggestion_texts: Recently offered options, most recent first
        conversation_history: Short history, oldest first

    Returns:
        IntentResult from the first matching rule; text with no content
        resolves to a clarification request
    """
    utterance = preprocess(text, recent_suggestion_texts, conversation_history)
    for name, rule in INTENT_RULES:
        result = rule(utterance)
        if result is not None:
            result.rule = name
            logger.debug("intent_detected", intent=result.intent.value, rule=name)
            return result
    logger.debug("intent_detected", intent=UserIntent.REQUEST_CLARIFICATION.value, rule="empty")
    return IntentResult(intent=UserIntent.REQUEST_CLARIFICATION, rule="empty")


def resolve_suggestion(index: int | None, recent_suggestion_texts: Sequence[str]) -> str | None:
    """Map an acceptance index to suggestion text.

    Args:
        index: Index from IntentResult (-1 and None mean most recent)
        recent_suggestion_texts: Options, most recent first

    Returns:
        The selected text, or None when the index is out of range
    """
    if not recent_suggestion_texts:
        return None
    if index is None or index == -1:
        return recent_suggestion_texts[0]
    if 0 <= index < len(recent_suggestion_texts):
        return recent_suggestion_texts[index]
    return None
