"""Unit tests for input quality assessment and wrapper stripping."""

from __future__ import annotations

import pytest

from coachflow.domain.quality import (
    CLOSED_QUESTION,
    EMPTY,
    NO_LIST_ITEMS,
    PLACEHOLDER,
    QUESTION_AS_CHALLENGE,
    REPETITIVE,
    TOO_SHORT,
    assess_input,
    meets_substance_bar,
    strip_conversational_wrapper,
    word_count,
)
from coachflow.domain.stages import Stage


class TestAssessInput:
    """Test per-stage substance heuristics."""

    @pytest.mark.parametrize(
        "stage,text,reason",
        [
            (Stage.BIG_IDEA, "   ", EMPTY),
            (Stage.BIG_IDEA, "idk", PLACEHOLDER),
            (Stage.BIG_IDEA, "Lorem ipsum.", PLACEHOLDER),
            (Stage.BIG_IDEA, "water water water", REPETITIVE),
            (Stage.BIG_IDEA, "Ecosystems", TOO_SHORT),
            (Stage.ESSENTIAL_QUESTION, "Why recycle?", TOO_SHORT),
            (Stage.ESSENTIAL_QUESTION, "Do plants need water daily?", CLOSED_QUESTION),
            (Stage.CHALLENGE, "Design a garden for seniors?", QUESTION_AS_CHALLENGE),
            (Stage.CHALLENGE, "What should students build for the town?", QUESTION_AS_CHALLENGE),
            (Stage.JOURNEY, "1, 2", NO_LIST_ITEMS),
        ],
    )
    def test_rejections(self, stage: Stage, text: str, reason: str) -> None:
        """Test that weak input is rejected with the right code and a hint."""
        result = assess_input(stage, text)
        assert result.ok is False
        assert result.reason == reason
        assert result.hint

    @pytest.mark.parametrize(
        "stage,text",
        [
            (Stage.BIG_IDEA, "Systems thinking reveals hidden connections"),
            (Stage.ESSENTIAL_QUESTION, "How might we reduce waste at school?"),
            (Stage.ESSENTIAL_QUESTION, "Is it fair, and why do rules differ?"),
            (Stage.CHALLENGE, "Design a water campaign for local families"),
            (Stage.JOURNEY, "Explore, Build, Share"),
            (Stage.DELIVERABLES, "Podcast episode"),
        ],
    )
    def test_accepted(self, stage: Stage, text: str) -> None:
        """Test that substantive input passes."""
        result = assess_input(stage, text)
        assert result.ok is True
        assert result.reason is None


class TestSubstanceBar:
    """Test the gating substance bar for ideation fields."""

    def test_thresholds(self) -> None:
        """Test character and word minimums."""
        assert not meets_substance_bar(Stage.BIG_IDEA, None)
        assert not meets_substance_bar(Stage.BIG_IDEA, "Ecosystems")
        assert meets_substance_bar(Stage.BIG_IDEA, "Water connects")
        assert not meets_substance_bar(Stage.CHALLENGE, "Build a bridge")
        assert meets_substance_bar(Stage.CHALLENGE, "Build a footbridge")

    def test_placeholder_never_passes(self) -> None:
        """Test that placeholders fail even when long enough."""
        assert not meets_substance_bar(Stage.BIG_IDEA, "I don't know")


class TestWrapperStripping:
    """Test conversational wrapper removal."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("what about water connects us?", "water connects us"),
            ("How about we say \"Cities are ecosystems\"", "Cities are ecosystems"),
            ("maybe something like energy is never lost", "energy is never lost"),
            ("I'm thinking community resilience", "community resilience"),
            ("My big idea is: systems change over time", "systems change over time"),
            ("what about how might we save water?", "how might we save water?"),
            ("Design a water campaign", "Design a water campaign"),
        ],
    )
    def test_strip(self, text: str, expected: str) -> None:
        """Test that the payload is extracted."""
        assert strip_conversational_wrapper(text) == expected

    def test_word_count(self) -> None:
        """Test word counting ignores punctuation."""
        assert word_count("Don't stop -- keep going!") == 4
