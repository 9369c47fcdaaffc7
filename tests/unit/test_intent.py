"""Unit tests for rule-based intent classification.

Tests cover:
- Acceptance with ordinals, numbers and deictic references
- Rule precedence (affirm-then-request resolves as alternatives)
- Cancel phrases and content that merely contains cancel words
- Bare "no" with and without options on the table
- Progress, clarification and modify-previous requests
- Suggestion resolution
"""

from __future__ import annotations

import pytest

from coachflow.domain.intent import (
    INTENT_RULES,
    ConversationTurn,
    UserIntent,
    detect_intent,
    resolve_suggestion,
)
from coachflow.domain.stages import Stage

OPTIONS = ["Energy is never lost", "Cities are ecosystems", "Maps tell stories"]


class TestAcceptSuggestion:
    """Test acceptance detection."""

    @pytest.mark.parametrize(
        "text,index",
        [
            ("yes", -1),
            ("Sounds good!", -1),
            ("yes please", -1),
            ("that one", -1),
            ("the second one", 1),
            ("yes, the second one", 1),
            ("let's go with the first one", 0),
            ("option 3", 2),
            ("#2", 1),
            ("last one", -1),
        ],
    )
    def test_selection_index(self, text: str, index: int) -> None:
        """Test that selections resolve to the right suggestion index."""
        result = detect_intent(text, OPTIONS)
        assert result.intent is UserIntent.ACCEPT_SUGGESTION
        assert result.last_suggestion_index == index
        assert result.rule == "accept"

    def test_accept_all(self) -> None:
        """Test that "accept all" selects everything on offer."""
        result = detect_intent("accept all")
        assert result.intent is UserIntent.ACCEPT_SUGGESTION
        assert result.last_suggestion_index is None

    def test_affirmation_followed_by_content_is_not_acceptance(self) -> None:
        """Test that an utterance starting with an affirming word can still be content."""
        result = detect_intent("Good communities share resources fairly")
        assert result.intent is UserIntent.SUBSTANTIVE_INPUT
        assert result.extracted_value == "Good communities share resources fairly"


class TestPrecedence:
    """Test the fixed rule order."""

    def test_rule_order(self) -> None:
        """Test that acceptance is checked first and content last."""
        names = [name for name, _ in INTENT_RULES]
        assert names[0] == "accept"
        assert names[-1] == "substantive"

    def test_affirm_then_request_more(self) -> None:
        """Test that "yes, show me something else" asks for alternatives."""
        result = detect_intent("yes, show me something else", OPTIONS)
        assert result.intent is UserIntent.REQUEST_ALTERNATIVES

    @pytest.mark.parametrize("text", ["show me other ideas", "any alternatives?", "try again", "more"])
    def test_alternatives(self, text: str) -> None:
        """Test request-for-alternatives phrasings."""
        assert detect_intent(text).intent is UserIntent.REQUEST_ALTERNATIVES

    def test_content_mentioning_more_is_substantive(self) -> None:
        """Test that "more" inside content does not request alternatives."""
        result = detect_intent("More people should ride bikes to school")
        assert result.intent is UserIntent.SUBSTANTIVE_INPUT


class TestCancel:
    """Test cancel detection."""

    @pytest.mark.parametrize(
        "text", ["cancel", "Cancel.", "never mind", "stop please", "actually let's stop", "no, cancel", "forget it"]
    )
    def test_cancel_phrases(self, text: str) -> None:
        """Test that short cancel phrases cancel the flow."""
        result = detect_intent(text)
        assert result.intent is UserIntent.CANCEL_FLOW
        assert result.rule == "cancel"

    @pytest.mark.parametrize(
        "text",
        [
            "Stop the spread of invasive species in our river",
            "Design a campaign so families never mind the extra effort of saving water",
        ],
    )
    def test_cancel_words_inside_content(self, text: str) -> None:
        """Test that content containing cancel words stays substantive."""
        assert detect_intent(text).intent is UserIntent.SUBSTANTIVE_INPUT


class TestBareNo:
    """Test "no" with and without options on the table."""

    def test_no_after_options_requests_alternatives(self) -> None:
        """Test that "no" after an offer asks for different options."""
        history = [
            ConversationTurn(role="user", text="show me ideas"),
            ConversationTurn(role="assistant", text="Here are some options", suggestions=tuple(OPTIONS)),
        ]
        result = detect_intent("no", OPTIONS, history)
        assert result.intent is UserIntent.REQUEST_ALTERNATIVES

    def test_no_without_options_asks_for_clarification(self) -> None:
        """Test that a bare "no" with nothing offered asks what to do."""
        history = [ConversationTurn(role="assistant", text="What is your Big Idea?")]
        result = detect_intent("no", OPTIONS, history)
        assert result.intent is UserIntent.REQUEST_CLARIFICATION

    def test_no_with_recent_options_and_no_history(self) -> None:
        """Test that recent suggestions count as an offer when history is empty."""
        assert detect_intent("nope", OPTIONS).intent is UserIntent.REQUEST_ALTERNATIVES


class TestOtherIntents:
    """Test clarification, progress and modify-previous."""

    @pytest.mark.parametrize("text", ["what is a big idea", "help", "what do you mean?", "I'm confused"])
    def test_clarification(self, text: str) -> None:
        """Test clarification requests."""
        assert detect_intent(text).intent is UserIntent.REQUEST_CLARIFICATION

    @pytest.mark.parametrize("text", ["what have we got so far", "where are we?", "show me the summary"])
    def test_show_progress(self, text: str) -> None:
        """Test progress requests."""
        assert detect_intent(text).intent is UserIntent.SHOW_PROGRESS

    def test_modify_previous(self) -> None:
        """Test that a change request names the target and the new value."""
        result = detect_intent("change the big idea to Water shapes every community")
        assert result.intent is UserIntent.MODIFY_PREVIOUS
        assert result.target_stage is Stage.BIG_IDEA
        assert result.extracted_value == "Water shapes every community"

    def test_modify_previous_with_colon(self) -> None:
        """Test the ``update the essential question: ...`` form."""
        result = detect_intent("update the essential question: How might we share water fairly?")
        assert result.target_stage is Stage.ESSENTIAL_QUESTION
        assert result.extracted_value == "How might we share water fairly?"

    def test_modify_previous_without_value(self) -> None:
        """Test that a target with no value is still recognized."""
        result = detect_intent("go back to the challenge")
        assert result.intent is UserIntent.MODIFY_PREVIOUS
        assert result.target_stage is Stage.CHALLENGE
        assert result.extracted_value is None

    @pytest.mark.parametrize("text", ["", "   ", "?!"])
    def test_no_content(self, text: str) -> None:
        """Test that text without content asks for clarification."""
        result = detect_intent(text)
        assert result.intent is UserIntent.REQUEST_CLARIFICATION
        assert result.rule == "empty"

    def test_substantive_strips_wrapper(self) -> None:
        """Test that the extracted value has the conversational wrapper removed."""
        result = detect_intent("what about water connects us?")
        assert result.intent is UserIntent.SUBSTANTIVE_INPUT
        assert result.extracted_value == "water connects us"


class TestResolveSuggestion:
    """Test mapping indices to suggestion text."""

    @pytest.mark.parametrize(
        "index,expected",
        [(None, OPTIONS[0]), (-1, OPTIONS[0]), (1, OPTIONS[1]), (2, OPTIONS[2]), (3, None)],
    )
    def test_resolve(self, index: int | None, expected: str | None) -> None:
        """Test in-range and out-of-range indices."""
        assert resolve_suggestion(index, OPTIONS) == expected

    def test_nothing_offered(self) -> None:
        """Test that nothing resolves when nothing was offered."""
        assert resolve_suggestion(-1, []) is None
