"""Unit tests for the deliverables micro-flow."""

from __future__ import annotations

import pytest

from coachflow.domain.captured import CapturedData, WizardContext
from coachflow.domain.deliverables_flow import (
    DeliverableComponent,
    DeliverablesAction,
    DeliverablesFlowError,
    DeliverablesMicroState,
    DeliverablesSubStep,
    accept_current,
    apply_generated_component,
    cancel_deliverables,
    commit_all,
    commit_component,
    handle_deliverables_choice,
    regenerate_current,
    start_deliverables,
)

MILESTONES = DeliverableComponent.MILESTONES
ARTIFACTS = DeliverableComponent.ARTIFACTS
CRITERIA = DeliverableComponent.CRITERIA


@pytest.fixture
def intro(journey_done: CapturedData, wizard: WizardContext) -> DeliverablesMicroState:
    """Flow at the intro step."""
    return start_deliverables(journey_done, wizard)


def _advance(state: DeliverablesMicroState, steps: int) -> DeliverablesMicroState:
    for _ in range(steps):
        state = accept_current(state).state
    return state


class TestStart:
    """Test flow entry."""

    def test_template_proposals(self, intro: DeliverablesMicroState) -> None:
        """Test that every component gets a proposal up front."""
        assert intro.sub_step is DeliverablesSubStep.INTRO
        assert intro.items(MILESTONES) == [
            "Investigate checkpoint complete",
            "Design checkpoint complete",
            "Launch checkpoint complete",
        ]
        assert intro.items(ARTIFACTS)[0] == "Campaign materials for local families"
        assert len(intro.items(CRITERIA)) == 4
        assert intro.variants == {MILESTONES: 0, ARTIFACTS: 0, CRITERIA: 0}
        assert intro.component is None


class TestLinearWalk:
    """Test moving through the components in order."""

    def test_intro_then_milestones(self, intro: DeliverablesMicroState) -> None:
        """Test that "yes" at the intro opens the milestone review."""
        choice = handle_deliverables_choice(intro, "ready")
        assert choice.action is DeliverablesAction.INTRO_ACCEPTED
        assert choice.state.sub_step is DeliverablesSubStep.REVIEW_MILESTONES
        assert choice.commit is None
        assert choice.message.startswith("Milestones: progress checkpoints")
        assert "1. Investigate checkpoint complete" in choice.message

    def test_accepting_components(self, intro: DeliverablesMicroState) -> None:
        """Test that each acceptance commits the reviewed component."""
        milestones = _advance(intro, 1)

        choice = handle_deliverables_choice(milestones, "Looks good")
        assert choice.action is DeliverablesAction.ACCEPT_COMPONENT
        assert choice.commit is MILESTONES
        assert choice.state.sub_step is DeliverablesSubStep.REVIEW_ARTIFACTS
        assert choice.message.startswith("Final artifacts")

        choice = handle_deliverables_choice(choice.state, "yes")
        assert choice.commit is ARTIFACTS
        assert choice.state.component is CRITERIA

        choice = handle_deliverables_choice(choice.state, "yes")
        assert choice.action is DeliverablesAction.ACCEPT_ALL
        assert choice.commit is None
        assert choice.state.sub_step is DeliverablesSubStep.ACCEPTED
        assert not choice.state.active

    def test_minimum_enforced(self, intro: DeliverablesMicroState) -> None:
        """Test that a component below its minimum cannot be accepted."""
        milestones = _advance(intro, 1)
        trimmed = handle_deliverables_choice(milestones, "remove 3").state
        assert len(trimmed.items(MILESTONES)) == 2

        choice = handle_deliverables_choice(trimmed, "yes")
        assert choice.action is DeliverablesAction.NONE
        assert choice.state == trimmed
        assert choice.message == "Add at least 3 milestones before moving on (have 2)."

    def test_removing_every_item_keeps_list_empty(
        self, intro: DeliverablesMicroState, journey_done: CapturedData
    ) -> None:
        """Test that deleted items do not come back from the original proposal."""
        state = _advance(intro, 2)
        assert state.sub_step is DeliverablesSubStep.REVIEW_ARTIFACTS
        for _ in range(len(state.items(ARTIFACTS))):
            state = handle_deliverables_choice(state, "remove 1").state

        assert state.items(ARTIFACTS) == []
        assert state.suggested[ARTIFACTS]

        choice = handle_deliverables_choice(state, "yes")
        assert choice.action is DeliverablesAction.NONE
        assert choice.message == "Add at least 1 artifacts before moving on (have 0)."
        assert commit_component(journey_done, state, ARTIFACTS).deliverables.artifacts == []

    def test_finished_flow(self, intro: DeliverablesMicroState) -> None:
        """Test that a cancelled flow takes no more turns."""
        with pytest.raises(DeliverablesFlowError):
            handle_deliverables_choice(cancel_deliverables(intro), "yes")


class TestEditing:
    """Test edits, custom lists and regeneration."""

    def test_rename(self, intro: DeliverablesMicroState) -> None:
        """Test renaming a milestone by number."""
        choice = handle_deliverables_choice(_advance(intro, 1), "rename 1 to Field notes reviewed")
        assert choice.action is DeliverablesAction.EDIT
        assert choice.state.items(MILESTONES)[0] == "Field notes reviewed"
        assert intro.items(MILESTONES)[0] == "Investigate checkpoint complete"

    def test_custom_list_replaces(self, intro: DeliverablesMicroState) -> None:
        """Test that a typed list replaces the component."""
        choice = handle_deliverables_choice(_advance(intro, 2), "Interview log, Site map")
        assert choice.action is DeliverablesAction.CUSTOM
        assert choice.state.items(ARTIFACTS) == ["Interview log", "Site map"]

    def test_single_item_is_added(self, intro: DeliverablesMicroState) -> None:
        """Test that one item is appended with its prefix removed."""
        criteria = _advance(intro, 3)
        choice = handle_deliverables_choice(criteria, "criterion: Evidence is cited")
        assert choice.action is DeliverablesAction.EDIT
        assert choice.state.items(CRITERIA)[-1] == "Evidence is cited"
        assert len(choice.state.items(CRITERIA)) == 5

    def test_regenerate(self, intro: DeliverablesMicroState) -> None:
        """Test that a refine request asks for a new proposal."""
        choice = handle_deliverables_choice(_advance(intro, 1), "make them more measurable")
        assert choice.action is DeliverablesAction.REGENERATE
        assert choice.regenerate is MILESTONES
        assert choice.state.variants[MILESTONES] == 1
        assert choice.feedback == "make them more measurable"

    def test_regenerate_from_intro(self, intro: DeliverablesMicroState) -> None:
        """Test that regenerating at the intro starts the milestone review."""
        choice = regenerate_current(intro)
        assert choice.state.sub_step is DeliverablesSubStep.REVIEW_MILESTONES
        assert choice.regenerate is MILESTONES

    def test_apply_generated_component(self, intro: DeliverablesMicroState) -> None:
        """Test that generated items replace the proposal and the edits."""
        updated = apply_generated_component(intro, ARTIFACTS, ["Public service video"])
        assert updated.suggested[ARTIFACTS] == ["Public service video"]
        assert updated.items(ARTIFACTS) == ["Public service video"]
        assert intro.items(ARTIFACTS) != ["Public service video"]

    def test_show_all_and_unclear(self, intro: DeliverablesMicroState) -> None:
        """Test the overview and the intro help text."""
        overview = handle_deliverables_choice(intro, "show me everything")
        assert overview.action is DeliverablesAction.SHOW_ALL
        assert "Milestones" in overview.message
        assert "Criteria" in overview.message

        unclear = handle_deliverables_choice(intro, "hmm")
        assert unclear.action is DeliverablesAction.NONE
        assert "review milestones" in unclear.message


class TestCommit:
    """Test writing components into captured data."""

    def test_commit_component(self, intro: DeliverablesMicroState, journey_done: CapturedData) -> None:
        """Test that only the named component is written."""
        committed = commit_component(journey_done, intro, MILESTONES)
        assert [m.name for m in committed.deliverables.milestones] == intro.items(MILESTONES)
        assert committed.deliverables.artifacts == []
        assert journey_done.deliverables.milestones == []

    def test_commit_all(self, intro: DeliverablesMicroState, journey_done: CapturedData) -> None:
        """Test that all three components are written together."""
        committed = commit_all(journey_done, intro)
        assert len(committed.deliverables.milestones) == 3
        assert len(committed.deliverables.artifacts) == 3
        assert committed.deliverables.rubric.criteria == intro.items(CRITERIA)
        assert committed.journey == journey_done.journey
