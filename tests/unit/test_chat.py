"""Unit tests for the interactive chat loop."""

from __future__ import annotations

from collections.abc import Callable
from io import StringIO

import pytest
from rich.console import Console

from coachflow.cli.chat import render_message, render_stage_table, run_chat
from coachflow.domain.stages import Stage
from coachflow.engine import CoachMessage, MessageKind, StageProgressionEngine


@pytest.fixture
def output() -> StringIO:
    """Capture console output."""
    return StringIO()


@pytest.fixture
def console(output: StringIO) -> Console:
    """Plain-text console writing into ``output``."""
    return Console(file=output, width=200, color_system=None)


def scripted(lines: list[str]) -> Callable[[str], str]:
    """Reader that replays ``lines`` and then signals end of input."""
    remaining = list(lines)

    def read(_prompt: str) -> str:
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return read


class TestRunChat:
    """Test the chat loop."""

    @pytest.mark.asyncio
    async def test_turns_and_commands(self, console: Console, output: StringIO) -> None:
        """Test that commands are handled locally and text goes to the engine."""
        engine = StageProgressionEngine("P-1")
        reader = scripted(["", "  ", "/stages", "Systems thinking reveals hidden connections", "/quit", "ignored"])

        turns = await run_chat(engine, console, read_line=reader)

        text = output.getvalue()
        assert turns == 1
        assert "Design stages" in text
        assert "Stage: Essential Question" in text
        assert "Saving..." in text
        assert engine.captured.ideation.big_idea == "Systems thinking reveals hidden connections"
        assert engine.stage is Stage.ESSENTIAL_QUESTION

    @pytest.mark.asyncio
    async def test_end_of_input(self, console: Console, output: StringIO) -> None:
        """Test that EOF ends the loop cleanly."""
        engine = StageProgressionEngine("P-1")

        turns = await run_chat(engine, console, read_line=scripted([]))

        assert turns == 0
        assert "Big Idea" in output.getvalue()

    @pytest.mark.asyncio
    async def test_exit_command_case_insensitive(self, console: Console) -> None:
        """Test that /EXIT quits without a turn."""
        engine = StageProgressionEngine("P-1")
        assert await run_chat(engine, console, read_line=scripted(["/EXIT"])) == 0


class TestRendering:
    """Test rich rendering helpers."""

    def test_render_message(self, console: Console, output: StringIO) -> None:
        """Test that a message is shown with the stage in the title."""
        render_message(console, CoachMessage(kind=MessageKind.COACHING, text="Hello there"), Stage.BIG_IDEA)
        text = output.getvalue()
        assert "coach · Big Idea" in text
        assert "Hello there" in text

    def test_render_stage_table_marks_current(self, console: Console, output: StringIO) -> None:
        """Test that the current stage is marked."""
        render_stage_table(console, Stage.JOURNEY)
        text = output.getvalue()
        assert "Journey ←" in text
        assert "Deliverables" in text
