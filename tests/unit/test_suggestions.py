"""Unit tests for the suggestion tracker."""

from __future__ import annotations

import pytest

from coachflow.domain.stages import Stage
from coachflow.domain.suggestions import SuggestionTracker


@pytest.fixture
def tracker() -> SuggestionTracker:
    """Create a tracker with the default window."""
    return SuggestionTracker()


class TestTracking:
    """Test the bounded most-recent-first window."""

    def test_batch_keeps_display_order(self, tracker: SuggestionTracker) -> None:
        """Test that the first option shown is index 0."""
        tracker.track_multiple(Stage.BIG_IDEA, ["A", "B", "C"])
        assert tracker.get_recent_texts() == ["A", "B", "C"]

    def test_newer_batch_goes_first(self, tracker: SuggestionTracker) -> None:
        """Test that later batches push earlier ones back."""
        tracker.track_multiple(Stage.BIG_IDEA, ["A", "B", "C"])
        tracker.track_multiple(Stage.ESSENTIAL_QUESTION, ["D", "E"])
        assert tracker.get_recent_texts() == ["D", "E", "A", "B", "C"]

    def test_window_is_bounded(self, tracker: SuggestionTracker) -> None:
        """Test that the oldest suggestions roll out."""
        tracker.track_multiple(Stage.BIG_IDEA, ["A", "B", "C"])
        tracker.track_multiple(Stage.BIG_IDEA, ["D", "E"])
        tracker.track_multiple(Stage.BIG_IDEA, ["F"])
        assert tracker.get_recent_texts() == ["F", "D", "E", "A", "B"]
        assert len(tracker) == 5

    def test_blank_texts_skipped(self, tracker: SuggestionTracker) -> None:
        """Test that empty options are not tracked."""
        created = tracker.track_multiple(Stage.BIG_IDEA, ["  Water  ", "", "   "])
        assert [s.text for s in created] == ["Water"]
        assert tracker.get_recent_texts() == ["Water"]

    def test_limit(self, tracker: SuggestionTracker) -> None:
        """Test the optional count limit."""
        tracker.track_multiple(Stage.BIG_IDEA, ["A", "B", "C"])
        assert tracker.get_recent_texts(2) == ["A", "B"]
        assert tracker.get_recent_texts(0) == []

    def test_invalid_capacity(self) -> None:
        """Test that a zero window is rejected."""
        with pytest.raises(ValueError, match="at least 1"):
            SuggestionTracker(capacity=0)


class TestSelection:
    """Test selection bookkeeping."""

    def test_readers_get_copies(self, tracker: SuggestionTracker) -> None:
        """Test that mutating returned suggestions does not change the tracker."""
        tracker.track_multiple(Stage.BIG_IDEA, ["A"])
        copy = tracker.get_most_recent()[0]
        copy.selected = True
        assert tracker.get_most_recent()[0].selected is False

    def test_record_selection_is_idempotent(self, tracker: SuggestionTracker) -> None:
        """Test that selecting twice logs once."""
        [suggestion] = tracker.track_multiple(Stage.CHALLENGE, ["Build a garden"])

        assert tracker.record_selection(suggestion.id) is True
        assert tracker.record_selection(suggestion.id) is True
        assert len(tracker.selection_log) == 1
        assert tracker.get_most_recent()[0].selected is True

    def test_unknown_selection(self, tracker: SuggestionTracker) -> None:
        """Test that an id outside the window is reported."""
        assert tracker.record_selection("missing") is False

    def test_clear_keeps_log(self, tracker: SuggestionTracker) -> None:
        """Test that clearing the window keeps the audit trail."""
        [suggestion] = tracker.track_multiple(Stage.BIG_IDEA, ["A"])
        tracker.record_selection(suggestion.id)
        tracker.clear()

        assert len(tracker) == 0
        assert [s.text for s in tracker.selection_log] == ["A"]
