"""Main CLI entry point for Coachflow.

This module provides the Typer application for running a design
conversation in the terminal and inspecting stored projects.

Usage:
    coachflow chat --project-id water-unit --grade "Middle School" --subject Science
    coachflow show water-unit
    coachflow list
    coachflow stages
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional
from uuid import uuid4

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from coachflow.ai.client import GeminiClient
from coachflow.cli.chat import render_stage_table, run_chat
from coachflow.config import CoachflowConfig, load_config
from coachflow.domain.captured import WizardContext
from coachflow.domain.coaching import summarize_captured
from coachflow.engine import open_session
from coachflow.logging import setup_logging
from coachflow.persistence.connection import create_schema, get_engine, get_session_factory
from coachflow.persistence.store import SqlProjectStore

app = typer.Typer(
    name="coachflow",
    help="Coachflow: conversational project design coach",
    no_args_is_help=True,
)

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded Coachflow configuration
        engine: Async SQLAlchemy engine
        session_factory: Factory for creating database sessions
    """

    def __init__(self, config: CoachflowConfig):
        self.config = config
        self.engine = get_engine(config.persistence)
        self.session_factory = get_session_factory(self.engine)

    def store(self) -> SqlProjectStore:
        return SqlProjectStore(self.session_factory)


# Global context holder
_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: CoachflowConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.command()
def chat(
    project_id: Annotated[
        Optional[str],
        typer.Option("--project-id", "-p", help="Project to create or resume"),
    ] = None,
    grade: Annotated[
        Optional[str],
        typer.Option("--grade", "-g", help="Grade level (e.g. \"Middle School\", \"9-12\")"),
    ] = None,
    subject: Annotated[
        Optional[list[str]],
        typer.Option("--subject", "-s", help="Subject (repeatable)"),
    ] = None,
    duration: Annotated[
        Optional[str],
        typer.Option("--duration", "-d", help="Project length (e.g. \"4 weeks\")"),
    ] = None,
    topic: Annotated[
        Optional[str],
        typer.Option("--topic", "-t", help="Starting topic"),
    ] = None,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Use built-in templates even if an API key is configured"),
    ] = False,
) -> None:
    """Start or resume a design conversation.

    Type /stages to see the stage guide and /quit to leave. Progress is
    saved automatically.
    """
    ctx = get_app_context()
    pid = project_id or uuid4().hex[:8]
    wizard = None
    if any(v for v in (grade, subject, duration, topic)):
        wizard = WizardContext(
            grade_level=grade or "",
            subjects=tuple(subject or ()),
            duration=duration or "",
            project_topic=topic or "",
        )

    async def _chat() -> int:
        await create_schema(ctx.engine)
        try:
            if ctx.config.ai.enabled and not offline:
                async with GeminiClient(ctx.config.ai) as client:
                    return await _session(client)
            return await _session(None)
        finally:
            await ctx.engine.dispose()

    async def _session(client: GeminiClient | None) -> int:
        session = await open_session(ctx.store(), pid, wizard, ai=client, config=ctx.config)
        try:
            return await run_chat(session, console)
        finally:
            await session.aclose()

    console.print(f"[bold cyan]Coachflow[/bold cyan] [dim]project {pid}[/dim]")
    if not ctx.config.ai.enabled or offline:
        console.print("[dim]AI collaborator not configured; using built-in guidance.[/dim]")

    try:
        turns = asyncio.run(_chat())
    except KeyboardInterrupt:
        raise typer.Exit(code=130)
    except Exception as e:
        console.print(f"[red]Error during chat:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[dim]{turns} turns saved to project {pid}.[/dim]")


@app.command()
def show(
    project_id: Annotated[str, typer.Argument(help="Project ID")],
) -> None:
    """Show the captured design for a project."""
    ctx = get_app_context()

    async def _load():
        await create_schema(ctx.engine)
        try:
            return await ctx.store().load_project(project_id)
        finally:
            await ctx.engine.dispose()

    try:
        snapshot = asyncio.run(_load())
    except Exception as e:
        console.print(f"[red]Error loading project:[/red] {e}")
        raise typer.Exit(code=1)

    if snapshot is None:
        console.print(f"[red]Project not found:[/red] {project_id}")
        raise typer.Exit(code=1)

    panel = Panel(
        f"{summarize_captured(snapshot.wizard, snapshot.captured, snapshot.stage)}\n\n"
        f"[bold]Status:[/bold] {snapshot.status}",
        title=f"Project {project_id}",
        border_style="cyan",
    )
    console.print(panel)


@app.command(name="list")
def list_projects() -> None:
    """List stored projects, most recently updated first."""
    ctx = get_app_context()

    async def _list():
        await create_schema(ctx.engine)
        try:
            store = ctx.store()
            ids = await store.list_project_ids()
            return [await store.load_project(pid) for pid in ids]
        finally:
            await ctx.engine.dispose()

    try:
        snapshots = asyncio.run(_list())
    except Exception as e:
        console.print(f"[red]Error listing projects:[/red] {e}")
        raise typer.Exit(code=1)

    if not snapshots:
        console.print("[yellow]No projects found[/yellow]")
        return

    table = Table(title="Projects")
    table.add_column("ID", style="cyan")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Updated", style="dim")
    for snapshot in snapshots:
        if snapshot is None:
            continue
        updated = snapshot.updated_at.strftime("%Y-%m-%d %H:%M") if snapshot.updated_at else "-"
        table.add_row(snapshot.id, snapshot.stage.label, snapshot.status, updated)
    console.print(table)


@app.command()
def stages() -> None:
    """Print the design stages and what each one asks for."""
    render_stage_table(console)


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context."""
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    logging_config = config.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    setup_logging(logging_config)

    try:
        initialize_context(config)
    except Exception as e:
        console.print(f"[red]Error initializing application:[/red] {e}")
        raise typer.Exit(code=1)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
