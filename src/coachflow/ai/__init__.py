"""AI text generation for Coachflow.

Public API:
    TextGenerator: Protocol the engine depends on.
    GeminiClient: httpx-based generateContent client.
    GenerationOptions: Per-call settings.
    AIClientError: Root of the failure taxonomy.
"""

from coachflow.ai.client import (
    AIAuthError,
    AIClientError,
    AIEmptyResponseError,
    AIRateLimitedError,
    AIServiceUnavailableError,
    AIUpstreamError,
    GeminiClient,
    GenerationOptions,
    TextGenerator,
    extract_text,
)
from coachflow.ai.prompts import (
    SYSTEM_PROMPT,
    build_deliverables_prompt,
    build_journey_prompt,
    build_stage_prompt,
    build_suggestion_prompt,
    parse_list_response,
    parse_phase_response,
    resolve_grade_band,
)

__all__ = [
    # Client
    "TextGenerator",
    "GeminiClient",
    "GenerationOptions",
    "extract_text",
    # Errors
    "AIClientError",
    "AIServiceUnavailableError",
    "AIRateLimitedError",
    "AIAuthError",
    "AIUpstreamError",
    "AIEmptyResponseError",
    # Prompts
    "SYSTEM_PROMPT",
    "resolve_grade_band",
    "build_stage_prompt",
    "build_suggestion_prompt",
    "build_journey_prompt",
    "build_deliverables_prompt",
    "parse_list_response",
    "parse_phase_response",
]
