"""Unit tests for deterministic journey and deliverables proposals."""

from __future__ import annotations

import pytest

from coachflow.domain.captured import CapturedData, WizardContext
from coachflow.domain.templates import (
    infer_audience,
    infer_deliverable_type,
    select_template,
    template_artifacts,
    template_criteria,
    template_milestones,
    template_phases,
)


class TestInference:
    """Test deliverable type and audience inference."""

    def test_deliverable_from_challenge(self, ideation_done: CapturedData) -> None:
        """Test that a keyword in the challenge names the deliverable."""
        assert infer_deliverable_type(ideation_done) == "campaign"
        assert infer_deliverable_type(CapturedData()) == "project deliverable"

    def test_audience_from_challenge(self, ideation_done: CapturedData, wizard: WizardContext) -> None:
        """Test that a ``for ...`` clause names the audience."""
        assert infer_audience(ideation_done, wizard) == "local families"

    def test_audience_from_grade(self, wizard: WizardContext) -> None:
        """Test the grade-level fallback."""
        assert infer_audience(CapturedData(), wizard) == "school leaders and community partners"
        assert infer_audience(CapturedData(), WizardContext()) == "the audience"

    @pytest.mark.parametrize(
        "subject,first_title",
        [
            ("Science", "Research & Explore"),
            ("US History", "Investigate Context"),
            ("Visual Art", "Explore & Experiment"),
            ("Math", "Investigate the Context"),
        ],
    )
    def test_template_by_subject(self, subject: str, first_title: str) -> None:
        """Test subject-specific templates."""
        assert select_template(WizardContext(subjects=(subject,)))[0].title == first_title


class TestTemplatePhases:
    """Test template journey phases."""

    def test_filled_in_and_scheduled(self, ideation_done: CapturedData, wizard: WizardContext) -> None:
        """Test that placeholders are filled and week ranges allocated."""
        phases = template_phases(ideation_done, wizard, 4)

        assert [p.name for p in phases] == [
            "Research & Explore",
            "Hypothesis & Design",
            "Build & Test",
            "Analyze & Present",
        ]
        assert phases[0].focus == (
            "Investigate the science behind Local watershed through research and experiments."
        )
        assert phases[2].focus == "Construct prototypes and test them with feedback from local families."
        assert [p.checkpoint for p in phases] == ["Week 1", "Week 2", "Week 3", "Week 4"]

    def test_extra_phases_inserted_before_last(
        self, ideation_done: CapturedData, wizard: WizardContext
    ) -> None:
        """Test that longer journeys keep the closing phase last."""
        names = [p.name for p in template_phases(ideation_done, wizard, 6)]
        assert names == [
            "Research & Explore",
            "Hypothesis & Design",
            "Build & Test",
            "Expert Feedback",
            "Revise & Refine",
            "Analyze & Present",
        ]

    def test_shorter_keeps_closing_phase(self, ideation_done: CapturedData, wizard: WizardContext) -> None:
        """Test that shorter journeys drop middle phases."""
        names = [p.name for p in template_phases(ideation_done, wizard, 3)]
        assert names == ["Research & Explore", "Hypothesis & Design", "Analyze & Present"]


class TestTemplateDeliverables:
    """Test template milestones, artifacts and criteria."""

    def test_milestones_from_journey(self, journey_done: CapturedData) -> None:
        """Test that milestones follow the journey phases."""
        assert template_milestones(journey_done) == [
            "Investigate checkpoint complete",
            "Design checkpoint complete",
            "Launch checkpoint complete",
        ]

    def test_milestone_variants(self, journey_done: CapturedData) -> None:
        """Test the alternate and no-journey milestone sets."""
        assert template_milestones(journey_done, variant=1)[0] == "Project proposal approved"
        assert template_milestones(CapturedData())[0] == "Research insights synthesized"

    def test_artifacts(self, ideation_done: CapturedData, wizard: WizardContext) -> None:
        """Test deliverable-specific and alternate artifacts."""
        assert template_artifacts(ideation_done, wizard)[0] == "Campaign materials for local families"
        assert template_artifacts(ideation_done, wizard, variant=1)[0] == "Public presentation for local families"

    def test_generic_artifacts(self, wizard: WizardContext) -> None:
        """Test artifacts when no deliverable type is recognized."""
        assert template_artifacts(CapturedData(), wizard)[0] == (
            "Project deliverable ready for school leaders and community partners"
        )

    def test_criteria(self, ideation_done: CapturedData, wizard: WizardContext) -> None:
        """Test subject-specific and default criteria."""
        criteria = template_criteria(ideation_done, wizard)
        assert criteria[0] == "Scientific evidence is credible and relevant"
        assert criteria[-1] == "Communication is clear for local families"

        math = template_criteria(ideation_done, WizardContext(subjects=("Math",)))
        assert math[0] == "Evidence is credible and relevant"
