"""Integration tests for CLI commands.

This module drives the Typer-based CLI end to end against a temporary
SQLite database: an offline chat session, then inspecting the stored
project with ``show`` and ``list``.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from coachflow.cli.main import app, get_app_context


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI runner.

    Returns:
        CliRunner instance for invoking CLI commands
    """
    return CliRunner()


@pytest.mark.integration
class TestCoachflowCLI:
    """Integration tests for the coachflow commands."""

    def test_stages(self, cli_runner: CliRunner, config_file: Path) -> None:
        """Test that the stage guide is printed."""
        result = cli_runner.invoke(app, ["--config", str(config_file), "stages"])

        assert result.exit_code == 0
        assert "Design stages" in result.output
        assert "Essential Question" in result.output

    def test_context_uses_config(self, cli_runner: CliRunner, config_file: Path, tmp_path: Path) -> None:
        """Test that the callback initializes the context from the TOML file."""
        result = cli_runner.invoke(app, ["--config", str(config_file), "stages"])

        assert result.exit_code == 0
        ctx = get_app_context()
        assert ctx.config.persistence.database_url.endswith(str(tmp_path / "coachflow.db"))
        assert ctx.config.ai.enabled is False

    def test_show_unknown_project(self, cli_runner: CliRunner, config_file: Path) -> None:
        """Test that showing a missing project fails."""
        result = cli_runner.invoke(app, ["--config", str(config_file), "show", "nope"])

        assert result.exit_code == 1
        assert "Project not found" in result.output

    def test_list_empty(self, cli_runner: CliRunner, config_file: Path) -> None:
        """Test listing with no stored projects."""
        result = cli_runner.invoke(app, ["--config", str(config_file), "list"])

        assert result.exit_code == 0
        assert "No projects found" in result.output

    def test_chat_then_show_and_list(self, cli_runner: CliRunner, config_file: Path) -> None:
        """Test an offline session is saved and can be inspected afterwards."""
        result = cli_runner.invoke(
            app,
            [
                "--config",
                str(config_file),
                "chat",
                "--offline",
                "--project-id",
                "water",
                "--grade",
                "Middle School",
                "--subject",
                "Science",
                "--topic",
                "Local watershed",
            ],
            input="Systems thinking reveals hidden connections\n/quit\n",
        )

        assert result.exit_code == 0, result.output
        assert "project water" in result.output
        assert "1 turns saved to project water" in result.output

        shown = cli_runner.invoke(app, ["--config", str(config_file), "show", "water"])
        assert shown.exit_code == 0
        assert "Big Idea: Systems thinking reveals hidden connections" in shown.output
        assert "Current Stage: Essential Question" in shown.output
        assert "in-progress" in shown.output

        listed = cli_runner.invoke(app, ["--config", str(config_file), "list"])
        assert listed.exit_code == 0
        assert "water" in listed.output

    def test_missing_config_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        """Test that a nonexistent --config path is rejected."""
        result = cli_runner.invoke(app, ["--config", str(tmp_path / "missing.toml"), "stages"])

        assert result.exit_code != 0
