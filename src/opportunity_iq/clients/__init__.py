"""Generative completion clients for OpportunityIQ."""

from typing import Any

from opportunity_iq.clients.base import (
    ChatTurn,
    CompletionClient,
    CompletionError,
    FatalCompletionError,
    RetryableCompletionError,
    classify_failure,
)
from opportunity_iq.clients.claude import ClaudeClient
from opportunity_iq.clients.gemini import GeminiClient
from opportunity_iq.clients.openai_client import OpenAIClient
from opportunity_iq.config import AIConfig


def create_completion_client(config: AIConfig) -> CompletionClient:
    """Build the client for the configured provider."""
    kwargs: dict[str, Any] = {
        "api_key": config.api_key,
        "temperature": config.temperature,
        "max_tokens": config.max_tokens,
        "timeout_seconds": config.timeout_seconds,
    }
    if config.provider == "openai":
        return OpenAIClient(**kwargs)
    if config.provider == "claude":
        return ClaudeClient(**kwargs)
    if config.provider == "gemini":
        return GeminiClient(**kwargs)
    raise ValueError(f"Unknown AI provider: {config.provider}")


__all__ = [
    "ChatTurn",
    "ClaudeClient",
    "CompletionClient",
    "CompletionError",
    "FatalCompletionError",
    "GeminiClient",
    "OpenAIClient",
    "RetryableCompletionError",
    "classify_failure",
    "create_completion_client",
]
