"""Configuration management for Coachflow.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to CoachflowConfig constructor)
2. Environment variables (COACHFLOW_* prefix)
3. TOML configuration file
4. Default values defined in this module

Example TOML configuration:
    [ai]
    api_key = "..."
    model = "gemini-1.5-flash"

    [persistence]
    database_url = "sqlite+aiosqlite:///coachflow.db"
    debounce_seconds = 1.0

Example environment variable override:
    COACHFLOW_AI__MODEL="gemini-1.5-pro"
    COACHFLOW_CONVERSATION__SUGGESTION_WINDOW=3
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stdout only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="COACHFLOW_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=20, ge=1, le=1000)
    retention_count: int = Field(default=5, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class AIConfig(BaseSettings):
    """AI text-generation service configuration.

    Attributes:
        base_url: Base URL of the generation API
        api_key: API key; when unset the engine runs in offline template mode
        model: Default model identifier
        timeout_seconds: Request timeout in seconds
        max_retries: Retry attempts for timeouts and connection failures
        initial_backoff_seconds: First retry delay, doubled per attempt
        temperature: Default sampling temperature
        max_tokens: Default maximum output tokens
    """

    model_config = SettingsConfigDict(
        env_prefix="COACHFLOW_AI__",
        extra="forbid",
    )

    base_url: str = Field(default="https://generativelanguage.googleapis.com")
    api_key: str | None = Field(default=None)
    model: str = Field(default="gemini-1.5-flash")
    timeout_seconds: int = Field(default=30, ge=1, le=300)
    max_retries: int = Field(default=2, ge=0, le=10)
    initial_backoff_seconds: float = Field(default=1.0, ge=0.0, le=30.0)
    temperature: float = Field(default=0.6, ge=0.0, le=2.0)
    max_tokens: int = Field(default=400, ge=16, le=8192)

    @property
    def enabled(self) -> bool:
        """Whether an API key is configured."""
        return bool(self.api_key)


class PersistenceConfig(BaseSettings):
    """Snapshot persistence configuration.

    Attributes:
        database_url: SQLAlchemy async database URL
        echo: Enable SQL query logging
        debounce_seconds: Quiet period before buffered snapshots are flushed
    """

    model_config = SettingsConfigDict(
        env_prefix="COACHFLOW_PERSISTENCE__",
        extra="forbid",
    )

    database_url: str = Field(default="sqlite+aiosqlite:///coachflow.db")
    echo: bool = Field(default=False)
    debounce_seconds: float = Field(default=1.0, ge=0.0, le=60.0)


class ConversationConfig(BaseSettings):
    """Conversation engine tuning.

    Attributes:
        suggestion_window: How many recent suggestions the intent classifier
            may reference ("that one", "the second one")
        history_turns: Conversation turns forwarded to the AI and classifier
        min_phases: Fewest phases a journey proposal may be shortened to
        max_phases: Most phases a journey proposal may be lengthened to
    """

    model_config = SettingsConfigDict(
        env_prefix="COACHFLOW_CONVERSATION__",
        extra="forbid",
    )

    suggestion_window: int = Field(default=5, ge=1, le=20)
    history_turns: int = Field(default=6, ge=0, le=50)
    min_phases: int = Field(default=2, ge=1, le=10)
    max_phases: int = Field(default=6, ge=3, le=12)

    @model_validator(mode="after")
    def validate_phase_bounds(self) -> ConversationConfig:
        """Ensure min_phases does not exceed max_phases."""
        if self.min_phases > self.max_phases:
            raise ValueError(
                f"min_phases ({self.min_phases}) must not exceed max_phases ({self.max_phases})"
            )
        return self


class CoachflowConfig(BaseSettings):
    """Root configuration for Coachflow.

    Environment variable format for nested config:
        COACHFLOW_<SECTION>__<KEY>=value

    Example:
        COACHFLOW_AI__API_KEY="..."
        COACHFLOW_PERSISTENCE__DEBOUNCE_SECONDS=2
    """

    model_config = SettingsConfigDict(
        env_prefix="COACHFLOW_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)


def load_config(config_path: Path | None = None) -> CoachflowConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./coachflow.toml (current directory)
    3. ~/.config/coachflow/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        CoachflowConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path: Path | None = config_path
    else:
        search_paths = [
            Path.cwd() / "coachflow.toml",
            Path.home() / ".config" / "coachflow" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    # Pydantic overlays environment variables on top of the TOML values
    try:
        return CoachflowConfig(**toml_data)
    except Exception as e:
        if selected_path:
            raise ValueError(f"Invalid configuration in {selected_path}: {e}") from e
        raise ValueError(f"Invalid configuration: {e}") from e
