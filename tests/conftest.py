"""Shared fixtures for the whole test suite.

Provides session context and captured-data builders for putting a design
at a given stage.
"""

from __future__ import annotations

import pytest

from coachflow.domain.captured import CapturedData, Ideation, JourneyData, Phase, WizardContext


@pytest.fixture
def wizard() -> WizardContext:
    """Middle-school science project context."""
    return WizardContext(
        grade_level="Middle School",
        subjects=("Science",),
        duration="4 weeks",
        project_topic="Local watershed",
    )


@pytest.fixture
def ideation_done() -> CapturedData:
    """Captured data with every ideation field filled in."""
    return CapturedData(
        ideation=Ideation(
            big_idea="Water connects every community",
            essential_question="How might we protect our local watershed?",
            challenge="Design a water conservation campaign for local families",
        )
    )


@pytest.fixture
def journey_done(ideation_done: CapturedData) -> CapturedData:
    """Captured data through the journey stage (three named phases)."""
    captured = ideation_done.clone()
    captured.journey = JourneyData(
        phases=[Phase(name="Investigate"), Phase(name="Design"), Phase(name="Launch")]
    )
    return captured
