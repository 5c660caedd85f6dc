"""Claude (Anthropic) completion client."""

import json
from collections.abc import AsyncIterator
from typing import Any

import anthropic
import structlog

from opportunity_iq.clients.base import (
    ChatTurn,
    CompletionError,
    RetryableCompletionError,
    classify_failure,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOKENS = 4096


class ClaudeClient:
    """Completion client for Anthropic's Messages API."""

    provider = "claude"

    def __init__(
        self,
        api_key: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self._temperature = temperature
        self._max_tokens = max_tokens or DEFAULT_MAX_TOKENS
        client_kwargs: dict[str, Any] = {"api_key": api_key}
        if timeout_seconds:
            client_kwargs["timeout"] = timeout_seconds
        self._client = client or anthropic.AsyncAnthropic(**client_kwargs)
        self._logger = logger.bind(client="claude")

    @staticmethod
    def _map_error(e: anthropic.AnthropicError) -> CompletionError:
        if isinstance(e, anthropic.APIStatusError):
            return classify_failure(str(e), status_code=e.status_code)
        if isinstance(e, anthropic.APIConnectionError):
            return RetryableCompletionError(f"Connection failed: {e}")
        return classify_failure(str(e))

    async def complete(
        self,
        model: str,
        prompt: str,
        system_instruction: str,
        response_schema: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> str:
        # No native JSON mode: the schema travels in the system prompt
        system = system_instruction
        if json_mode and response_schema:
            system += "\nSchema: " + json.dumps(response_schema, ensure_ascii=False)

        self._logger.debug("generating_response", model=model, json_mode=json_mode)
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.AnthropicError as e:
            self._logger.warning("api_error", model=model, error=str(e))
            raise self._map_error(e) from e

        content = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not content:
            raise RetryableCompletionError("Empty response")

        self._logger.info(
            "response_generated",
            model=model,
            stop_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return content

    async def stream(
        self,
        model: str,
        system_instruction: str,
        messages: list[ChatTurn],
    ) -> AsyncIterator[str]:
        anthropic_messages: list[Any] = [
            {"role": "assistant" if turn.role == "model" else "user", "content": turn.content}
            for turn in messages
        ]
        self._logger.debug("streaming_response", model=model, message_count=len(messages))
        try:
            async with self._client.messages.stream(
                model=model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                system=system_instruction,
                messages=anthropic_messages,
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.AnthropicError as e:
            self._logger.warning("api_error", model=model, error=str(e))
            raise self._map_error(e) from e

    async def aclose(self) -> None:
        await self._client.close()
