"""OpenAI GPT completion client."""

import json
from collections.abc import AsyncIterator
from typing import Any

import openai
import structlog

from opportunity_iq.clients.base import (
    ChatTurn,
    CompletionError,
    RetryableCompletionError,
    classify_failure,
)

logger = structlog.get_logger(__name__)


class OpenAIClient:
    """Completion client for OpenAI's chat API.

    Also supports OpenAI-compatible APIs via custom base_url.
    """

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
        client: openai.AsyncOpenAI | None = None,
    ):
        self._temperature = temperature
        self._max_tokens = max_tokens

        client_kwargs: dict[str, Any] = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url
        if timeout_seconds:
            client_kwargs["timeout"] = timeout_seconds
        self._client = client or openai.AsyncOpenAI(**client_kwargs)
        self._logger = logger.bind(client="openai")

    def _request_kwargs(self, model: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
        # GPT-5+ models use max_completion_tokens and nano models only
        # support the default temperature
        is_gpt5_plus = model.startswith("gpt-5") or model.startswith("o3")
        kwargs: dict[str, Any] = {"model": model, "messages": messages}
        if "nano" not in model:
            kwargs["temperature"] = self._temperature
        if self._max_tokens:
            key = "max_completion_tokens" if is_gpt5_plus else "max_tokens"
            kwargs[key] = self._max_tokens
        return kwargs

    @staticmethod
    def _map_error(e: openai.OpenAIError) -> CompletionError:
        if isinstance(e, openai.APIStatusError):
            return classify_failure(str(e), status_code=e.status_code)
        if isinstance(e, openai.APIConnectionError):
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
        system = system_instruction
        if json_mode and response_schema:
            system += "\nSchema: " + json.dumps(response_schema, ensure_ascii=False)
        kwargs = self._request_kwargs(
            model,
            [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        )
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        self._logger.debug("generating_response", model=model, json_mode=json_mode)
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            self._logger.warning("api_error", model=model, error=str(e))
            raise self._map_error(e) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise RetryableCompletionError("Empty response")

        self._logger.info(
            "response_generated",
            model=model,
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
        )
        return content

    async def stream(
        self,
        model: str,
        system_instruction: str,
        messages: list[ChatTurn],
    ) -> AsyncIterator[str]:
        openai_messages: list[dict[str, Any]] = [{"role": "system", "content": system_instruction}]
        openai_messages.extend(
            {"role": "assistant" if turn.role == "model" else "user", "content": turn.content}
            for turn in messages
        )
        kwargs = self._request_kwargs(model, openai_messages)

        self._logger.debug("streaming_response", model=model, message_count=len(messages))
        try:
            stream = await self._client.chat.completions.create(stream=True, **kwargs)
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.OpenAIError as e:
            self._logger.warning("api_error", model=model, error=str(e))
            raise self._map_error(e) from e

    async def aclose(self) -> None:
        await self._client.close()
