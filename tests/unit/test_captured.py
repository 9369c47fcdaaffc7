"""Unit tests for captured data, capture and hydration."""

from __future__ import annotations

import pytest

from coachflow.domain.captured import (
    CapturedData,
    classify_deliverable_item,
    capture_stage_input,
    hydrate_captured,
    parse_phases,
    serialize_captured,
    split_items,
)
from coachflow.domain.stages import Stage


class TestSplitItems:
    """Test free-text list splitting."""

    def test_newlines_win(self) -> None:
        """Test that newline-separated items keep their commas."""
        assert split_items("- Research, interviews\n- Prototype") == ["Research, interviews", "Prototype"]

    def test_single_line_commas(self) -> None:
        """Test that a single line falls back to commas and semicolons."""
        assert split_items("one; two, three") == ["one", "two", "three"]

    def test_numbering_is_stripped(self) -> None:
        """Test that list numbering is removed."""
        assert split_items("1. Alpha\n2) Beta") == ["Alpha", "Beta"]


class TestParsePhases:
    """Test phase parsing."""

    def test_name_and_activities(self) -> None:
        """Test ``Name: activity, activity`` lines."""
        phases = parse_phases("Phase 1: Explore: site visit, interviews\nBuild - prototype")
        assert [p.name for p in phases] == ["Explore", "Build"]
        assert phases[0].activities == ["site visit", "interviews"]
        assert phases[1].activities == ["prototype"]


class TestCaptureStageInput:
    """Test writing stage input into captured data."""

    def test_previous_instance_untouched(self) -> None:
        """Test that capture returns a new instance."""
        before = CapturedData()
        after = capture_stage_input(before, Stage.BIG_IDEA, "  Water connects us  ")

        assert before.ideation.big_idea is None
        assert after.ideation.big_idea == "Water connects us"
        assert after is not before

    def test_other_stages_carried_over(self, ideation_done: CapturedData) -> None:
        """Test that writing one field leaves the others alone."""
        after = capture_stage_input(ideation_done, Stage.CHALLENGE, "Build a rain garden for the school")

        assert after.ideation.big_idea == ideation_done.ideation.big_idea
        assert after.ideation.challenge == "Build a rain garden for the school"

    def test_journey_list_replaces_phases(self, journey_done: CapturedData) -> None:
        """Test that several phases replace the journey."""
        after = capture_stage_input(journey_done, Stage.JOURNEY, "Plan\nMake\nShow")
        assert [p.name for p in after.journey.phases] == ["Plan", "Make", "Show"]

    def test_single_journey_phase_appends(self, journey_done: CapturedData) -> None:
        """Test that a single phase is appended."""
        after = capture_stage_input(journey_done, Stage.JOURNEY, "Celebrate: gallery walk")
        assert [p.name for p in after.journey.phases][-1] == "Celebrate"
        assert len(after.journey.phases) == 4

    def test_journey_resources(self) -> None:
        """Test that a resources clause is captured separately."""
        after = capture_stage_input(
            CapturedData(), Stage.JOURNEY, "Explore\nBuild\nResources: city engineer, river map"
        )
        assert [p.name for p in after.journey.phases] == ["Explore", "Build"]
        assert after.journey.resources == ["city engineer", "river map"]

    def test_deliverables_are_classified(self) -> None:
        """Test that deliverables lines are sorted into the three components."""
        after = capture_stage_input(
            CapturedData(),
            Stage.DELIVERABLES,
            "Research complete\nPodcast episode\nCriterion: Evidence supports claims",
        )
        deliverables = after.deliverables
        assert [m.name for m in deliverables.milestones] == ["Research complete"]
        assert [a.name for a in deliverables.artifacts] == ["Podcast episode"]
        assert deliverables.rubric.criteria == ["Evidence supports claims"]

    def test_deliverables_deduplicate(self) -> None:
        """Test that repeated items are not added twice."""
        first = capture_stage_input(CapturedData(), Stage.DELIVERABLES, "Draft done, Launch done")
        second = capture_stage_input(first, Stage.DELIVERABLES, "draft done, Review held")
        assert [m.name for m in second.deliverables.milestones] == ["Draft done", "Launch done", "Review held"]

    @pytest.mark.parametrize(
        "item,kind",
        [
            ("Rubric: clarity", "criterion"),
            ("Final video", "artifact"),
            ("Interviews finished", "milestone"),
        ],
    )
    def test_classify(self, item: str, kind: str) -> None:
        """Test deliverable line classification."""
        assert classify_deliverable_item(item) == kind


class TestSerialization:
    """Test serialization and hydration."""

    def test_camel_case_keys(self, ideation_done: CapturedData) -> None:
        """Test that serialized keys use camelCase and omit empty values."""
        data = serialize_captured(ideation_done)
        assert data["ideation"]["bigIdea"] == "Water connects every community"
        assert "essentialQuestion" in data["ideation"]

    def test_round_trip(self, journey_done: CapturedData) -> None:
        """Test that hydrate inverts serialize."""
        assert hydrate_captured(serialize_captured(journey_done)) == journey_done

    def test_legacy_flat_keys(self) -> None:
        """Test that flat dotted keys from older records are understood."""
        captured = hydrate_captured(
            {
                "ideation.bigIdea": "Water connects us",
                "journey.phase.2.name": "Build",
                "journey.phase.1.name": "Explore",
                "journey.phase.1.activities": "walk, map",
                "deliverables.milestone.1": "Map drafted",
                "deliverables.rubric.criteria": "Accurate; Clear",
            }
        )
        assert captured.ideation.big_idea == "Water connects us"
        assert [p.name for p in captured.journey.phases] == ["Explore", "Build"]
        assert captured.journey.phases[0].activities == ["walk", "map"]
        assert [m.name for m in captured.deliverables.milestones] == ["Map drafted"]
        assert captured.deliverables.rubric.criteria == ["Accurate", "Clear"]

    @pytest.mark.parametrize("record", [None, "garbage", 42, ["list"]])
    def test_malformed_record_is_empty(self, record) -> None:
        """Test that unreadable records hydrate to empty data."""
        assert hydrate_captured(record) == CapturedData()

    def test_unnamed_items_get_defaults(self) -> None:
        """Test that dict items without names get positional names."""
        captured = hydrate_captured({"deliverables": {"milestones": [{"name": ""}, "Launch"]}})
        assert [m.name for m in captured.deliverables.milestones] == ["Milestone 1", "Launch"]
