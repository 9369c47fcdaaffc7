"""AI text-generation client.

This module provides an async HTTP client for the Gemini ``generateContent``
API. It handles timeouts, retries with exponential backoff, and maps
upstream failures onto a small exception hierarchy whose members each carry
a user-facing fallback string.

Example usage:
    >>> from coachflow.config import AIConfig
    >>> config = AIConfig(api_key="...")
    >>> async with GeminiClient(config) as client:
    ...     text = await client.generate("Suggest three Big Ideas about water")
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog
from pydantic import BaseModel, Field

from coachflow.config import AIConfig
from coachflow.domain.intent import ConversationTurn

logger = structlog.get_logger(__name__)


class AIClientError(Exception):
    """Base exception for text-generation failures."""

    user_message = "I couldn't reach the AI collaborator. Let's keep going with built-in guidance."


class AIServiceUnavailableError(AIClientError):
    """Raised on timeouts and connection failures after all retries."""

    user_message = (
        "The AI collaborator is unavailable right now. I'll keep guiding you with built-in suggestions."
    )


class AIRateLimitedError(AIClientError):
    """Raised when the service answers HTTP 429."""

    user_message = (
        "The AI collaborator is handling too many requests. Give it a moment, "
        "or keep going with the built-in suggestions."
    )


class AIAuthError(AIClientError):
    """Raised when the service rejects the credentials (HTTP 401/403)."""

    user_message = (
        "The AI collaborator isn't set up correctly (check the API key). Continuing with built-in guidance."
    )


class AIUpstreamError(AIClientError):
    """Raised on any other non-200 response."""

    user_message = "The AI collaborator returned an error. Continuing with built-in guidance."


class AIEmptyResponseError(AIClientError):
    """Raised when a well-formed response carries no usable text."""

    user_message = "The AI collaborator didn't return a usable answer, so here is a built-in suggestion."


class GenerationOptions(BaseModel):
    """Per-call generation settings.

    Attributes:
        model: Model identifier (config default when None)
        temperature: Sampling temperature (config default when None)
        max_tokens: Output token limit (config default when None)
        system_prompt: Optional system instruction
        history: Prior conversation turns, oldest first
    """

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    system_prompt: str | None = None
    history: list[ConversationTurn] = Field(default_factory=list)
    label: str = "generation"


@runtime_checkable
class TextGenerator(Protocol):
    """Protocol for anything that turns a prompt into text.

    The engine depends only on this interface so tests can substitute an
    in-process double for the HTTP client.
    """

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        """Generate text for ``prompt``.

        Raises:
            AIClientError: On any failure, including an empty answer
        """
        ...


def extract_text(data: Any) -> str:
    """Pull the concatenated text out of a generateContent response.

    Raises:
        AIEmptyResponseError: If the structure is valid but holds no text
        AIUpstreamError: If the structure is not a generateContent response
    """
    if not isinstance(data, dict):
        raise AIUpstreamError("Invalid response structure: expected an object")
    candidates = data.get("candidates")
    if not isinstance(candidates, list):
        raise AIUpstreamError("Invalid response structure: missing 'candidates'")
    if not candidates:
        raise AIEmptyResponseError("Response contained no candidates")
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise AIEmptyResponseError("First candidate has no content parts")
    text = "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
    if not text:
        raise AIEmptyResponseError("First candidate has no text")
    return text


class GeminiClient:
    """Async client for the Gemini generateContent API.

    Attributes:
        config: AI configuration containing URL, key, model, and retry settings
    """

    def __init__(self, config: AIConfig, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the client.

        Args:
            config: AIConfig instance with connection settings
            client: Optional pre-built httpx client (used as-is and not closed)
        """
        self.config = config
        self._client = client
        self._owns_client = client is None
        logger.info(
            "ai_client_initialized",
            base_url=config.base_url,
            model=config.model,
            timeout=config.timeout_seconds,
        )

    async def __aenter__(self) -> GeminiClient:
        """Async context manager entry."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
            )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get the active HTTP client.

        Raises:
            RuntimeError: If called outside the async context manager
        """
        if self._client is None:
            raise RuntimeError("GeminiClient must be used as async context manager")
        return self._client

    def build_payload(self, prompt: str, options: GenerationOptions) -> dict[str, Any]:
        """Build the generateContent request body."""
        contents: list[dict[str, Any]] = [
            {"role": "model" if turn.role == "assistant" else "user", "parts": [{"text": turn.text}]}
            for turn in options.history
            if turn.text.strip()
        ]
        contents.append({"role": "user", "parts": [{"text": prompt}]})
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": options.temperature
                if options.temperature is not None
                else self.config.temperature,
                "maxOutputTokens": options.max_tokens or self.config.max_tokens,
            },
        }
        if options.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": options.system_prompt}]}
        return payload

    @staticmethod
    def _classify_status(status_code: int, detail: str) -> AIClientError:
        if status_code == 429:
            return AIRateLimitedError(f"Rate limited: HTTP 429: {detail}")
        if status_code in (401, 403):
            return AIAuthError(f"Authentication failed: HTTP {status_code}: {detail}")
        if status_code in (502, 503, 504):
            return AIServiceUnavailableError(f"Service unavailable: HTTP {status_code}: {detail}")
        return AIUpstreamError(f"API error: HTTP {status_code}: {detail}")

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        """Generate text for a prompt.

        Retries timeouts, connection failures, and 5xx responses with
        exponential backoff. Client errors are not retried.

        Args:
            prompt: User prompt
            options: Per-call overrides

        Returns:
            Generated text (never empty)

        Raises:
            AIServiceUnavailableError: Timeout/network failure after all retries
            AIRateLimitedError: HTTP 429
            AIAuthError: HTTP 401/403
            AIUpstreamError: Other non-200 responses or malformed bodies
            AIEmptyResponseError: Valid response without usable text
        """
        options = options or GenerationOptions()
        client = self._get_client()
        model = options.model or self.config.model
        endpoint = f"/v1beta/models/{model}:generateContent"
        params = {"key": self.config.api_key} if self.config.api_key else None
        payload = self.build_payload(prompt, options)
        max_retries = self.config.max_retries
        initial_backoff = self.config.initial_backoff_seconds

        for attempt in range(max_retries + 1):
            try:
                logger.debug(
                    "ai_generate_request",
                    label=options.label,
                    model=model,
                    attempt=attempt + 1,
                    max_attempts=max_retries + 1,
                    prompt_length=len(prompt),
                )
                response = await client.post(endpoint, json=payload, params=params)

                if response.status_code == 200:
                    try:
                        data = response.json()
                    except ValueError as e:
                        raise AIUpstreamError("Response body is not valid JSON") from e
                    text = extract_text(data)
                    logger.info(
                        "ai_generate_completed",
                        label=options.label,
                        model=model,
                        response_length=len(text),
                        attempt=attempt + 1,
                    )
                    return text

                detail = response.text[:200]
                if 500 <= response.status_code < 600 and attempt < max_retries:
                    backoff = initial_backoff * (2**attempt)
                    logger.warning(
                        "ai_server_error_retry",
                        status_code=response.status_code,
                        attempt=attempt + 1,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue

                error = self._classify_status(response.status_code, detail)
                logger.error(
                    "ai_generate_failed",
                    label=options.label,
                    status_code=response.status_code,
                    error_type=type(error).__name__,
                )
                raise error

            except httpx.TimeoutException as e:
                if attempt < max_retries:
                    backoff = initial_backoff * (2**attempt)
                    logger.warning(
                        "ai_timeout_retry", attempt=attempt + 1, backoff_seconds=backoff, error=str(e)
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.error(
                    "ai_timeout_exhausted",
                    max_retries=max_retries,
                    timeout_seconds=self.config.timeout_seconds,
                )
                raise AIServiceUnavailableError(
                    f"Request timed out after {max_retries} retries"
                ) from e

            except httpx.TransportError as e:
                if attempt < max_retries:
                    backoff = initial_backoff * (2**attempt)
                    logger.warning(
                        "ai_connection_error_retry",
                        attempt=attempt + 1,
                        backoff_seconds=backoff,
                        error=str(e),
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.error("ai_connection_exhausted", base_url=self.config.base_url, max_retries=max_retries)
                raise AIServiceUnavailableError(
                    f"Failed to connect to {self.config.base_url}"
                ) from e

        # Unreachable: every loop iteration returns, continues, or raises
        raise AIClientError("Unexpected retry loop exit")
