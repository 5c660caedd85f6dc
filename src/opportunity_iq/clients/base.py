"""Shared types for generative completion clients."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable


class CompletionError(Exception):
    """A completion request failed."""

    retryable: bool = False

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableCompletionError(CompletionError):
    """Rate limit, server error, timeout or empty response; another model may succeed."""

    retryable = True


class FatalCompletionError(CompletionError):
    """Rejected key or malformed request; no other model will do better."""

    retryable = False


FATAL_STATUS_CODES = frozenset({400, 401, 403})
FATAL_MARKERS = ("API key not valid", "API_KEY_INVALID", "PERMISSION_DENIED")


def classify_failure(message: str, status_code: int | None = None) -> CompletionError:
    """Map a provider failure onto the retryable/fatal split."""
    if status_code in FATAL_STATUS_CODES or any(marker in message for marker in FATAL_MARKERS):
        return FatalCompletionError(message, status_code=status_code)
    return RetryableCompletionError(message, status_code=status_code)


@dataclass
class ChatTurn:
    """One message of a chat conversation."""

    role: Literal["user", "model"]
    content: str


@runtime_checkable
class CompletionClient(Protocol):
    """What the advisor needs from a provider.

    ``complete`` returns the generated text, raising CompletionError on
    failure (an empty response counts as a retryable failure). ``stream``
    yields text chunks of the reply to the last user turn.
    """

    provider: str

    async def complete(
        self,
        model: str,
        prompt: str,
        system_instruction: str,
        response_schema: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> str: ...

    def stream(
        self,
        model: str,
        system_instruction: str,
        messages: list[ChatTurn],
    ) -> AsyncIterator[str]: ...

    async def aclose(self) -> None: ...
