"""Interactive chat loop and rich rendering of engine output."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from coachflow.domain.coaching import stage_guide
from coachflow.domain.stages import STAGE_ORDER, Stage
from coachflow.engine import CoachMessage, MessageKind, StageProgressionEngine

EXIT_COMMANDS = frozenset({"/quit", "/exit", ":q"})

_BORDER_STYLES: dict[MessageKind, str] = {
    MessageKind.TRANSITION: "green",
    MessageKind.COMPLETION: "bold green",
    MessageKind.CORRECTION: "yellow",
    MessageKind.DEGRADED: "red",
    MessageKind.PROPOSAL: "magenta",
    MessageKind.SUGGESTIONS: "magenta",
    MessageKind.PROGRESS: "blue",
}


def render_message(console: Console, message: CoachMessage, stage: Stage) -> None:
    """Print one assistant message as a panel."""
    console.print(
        Panel(
            message.text,
            title=f"coach · {stage.label}",
            title_align="left",
            border_style=_BORDER_STYLES.get(message.kind, "cyan"),
        )
    )


def render_stage_table(console: Console, current: Stage | None = None) -> None:
    """Print the stage guide as a table, marking ``current``."""
    table = Table(title="Design stages")
    table.add_column("#", justify="right")
    table.add_column("Stage", style="bold")
    table.add_column("What")
    table.add_column("Tip", style="dim")
    for number, stage in enumerate(STAGE_ORDER, start=1):
        guide = stage_guide(stage)
        marker = " ←" if stage is current else ""
        table.add_row(str(number), f"{stage.label}{marker}", guide.what, guide.tip)
    console.print(table)


async def run_chat(
    engine: StageProgressionEngine,
    console: Console,
    read_line: Callable[[str], str] | None = None,
) -> int:
    """Drive the engine from console input until the user quits.

    Args:
        engine: Ready engine
        console: Output console
        read_line: Prompt-and-read callable (defaults to ``console.input``)

    Returns:
        Number of user turns processed
    """
    reader = read_line or console.input
    for message in await engine.start():
        render_message(console, message, engine.stage)

    turns = 0
    while True:
        try:
            line = await asyncio.to_thread(reader, "[bold]you>[/bold] ")
        except EOFError:
            break
        text = line.strip()
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            break
        if text.lower() == "/stages":
            render_stage_table(console, engine.stage)
            continue

        result = await engine.handle_turn(text)
        turns += 1
        for message in result.messages:
            render_message(console, message, result.stage)
        if result.advanced:
            console.print(f"[dim]Stage: {result.stage.label}[/dim]")

    console.print("[dim]Saving...[/dim]")
    return turns
