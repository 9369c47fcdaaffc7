"""Shared fixtures for unit tests.

Provides an in-process text generator double standing in for the AI client.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import structlog

from coachflow.ai.client import AIClientError, AIEmptyResponseError, GenerationOptions


class FakeGenerator:
    """Scripted TextGenerator.

    Args:
        responses: Texts returned in order, one per call
        error: Raised on every call instead of returning text
        gate: When set, each call blocks until the event is set
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        *,
        error: AIClientError | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.error = error
        self.gate = gate
        self.started = asyncio.Event()
        self.calls: list[tuple[str, GenerationOptions | None]] = []

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        self.calls.append((prompt, options))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise AIEmptyResponseError("No scripted response left")
        return self.responses.pop(0)


@pytest.fixture(autouse=True)
def reset_structlog_context() -> None:
    """Clear bound session context between tests."""
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def make_generator() -> Any:
    """Factory for FakeGenerator instances."""
    return FakeGenerator
