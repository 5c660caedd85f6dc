"""Google Gemini completion client.

Uses the google-genai SDK's async surface for both one-shot and streamed
generation.
"""

from collections.abc import AsyncIterator
from typing import Any, cast

import httpx
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from opportunity_iq.clients.base import (
    ChatTurn,
    CompletionError,
    RetryableCompletionError,
    classify_failure,
)

logger = structlog.get_logger(__name__)


def convert_json_schema_to_gemini(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert JSON Schema to Gemini's schema format.

    Gemini uses a subset of OpenAPI schema format.
    """
    gemini_schema: dict[str, Any] = {}

    if "type" in schema:
        type_map = {
            "string": "STRING",
            "integer": "INTEGER",
            "number": "NUMBER",
            "boolean": "BOOLEAN",
            "array": "ARRAY",
            "object": "OBJECT",
        }
        gemini_schema["type"] = type_map.get(schema["type"], "STRING")

    for key in ("description", "enum", "required"):
        if key in schema:
            gemini_schema[key] = schema[key]

    if "properties" in schema:
        gemini_schema["properties"] = {
            k: convert_json_schema_to_gemini(v) for k, v in schema["properties"].items()
        }

    if "items" in schema:
        gemini_schema["items"] = convert_json_schema_to_gemini(schema["items"])

    return gemini_schema


class GeminiClient:
    """Completion client for Google's Gemini API."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
        client: genai.Client | None = None,
    ):
        self._temperature = temperature
        self._max_tokens = max_tokens
        http_options = (
            types.HttpOptions(timeout=int(timeout_seconds * 1000)) if timeout_seconds else None
        )
        self._client = client or genai.Client(api_key=api_key, http_options=http_options)
        self._logger = logger.bind(client="gemini")

    def _config(
        self,
        system_instruction: str,
        response_schema: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> types.GenerateContentConfig:
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=self._temperature,
            max_output_tokens=self._max_tokens,
        )
        if json_mode:
            config.response_mime_type = "application/json"
            if response_schema:
                config.response_schema = types.Schema.model_validate(
                    convert_json_schema_to_gemini(response_schema)
                )
        return config

    @staticmethod
    def _to_contents(messages: list[ChatTurn]) -> list[types.Content]:
        return [
            types.Content(role=turn.role, parts=[types.Part(text=turn.content)])
            for turn in messages
        ]

    @staticmethod
    def _map_error(e: Exception) -> CompletionError:
        if isinstance(e, genai_errors.APIError):
            return classify_failure(f"{e.code} {e.message or e}", status_code=e.code)
        if isinstance(e, httpx.TimeoutException):
            return RetryableCompletionError(f"Timed out: {e}")
        if isinstance(e, httpx.TransportError):
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
        self._logger.debug("generating_response", model=model, json_mode=json_mode)
        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=prompt,
                config=self._config(system_instruction, response_schema, json_mode),
            )
        except (genai_errors.APIError, httpx.HTTPError) as e:
            self._logger.warning("api_error", model=model, error=str(e))
            raise self._map_error(e) from e

        text = response.text if response else None
        if not text:
            raise RetryableCompletionError("Empty response")

        usage = getattr(response, "usage_metadata", None)
        self._logger.info(
            "response_generated",
            model=model,
            input_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) or 0,
        )
        return text

    async def stream(
        self,
        model: str,
        system_instruction: str,
        messages: list[ChatTurn],
    ) -> AsyncIterator[str]:
        self._logger.debug("streaming_response", model=model, message_count=len(messages))
        try:
            chunks = await self._client.aio.models.generate_content_stream(
                model=model,
                contents=cast(list[Any], self._to_contents(messages)),
                config=self._config(system_instruction),
            )
            async for chunk in chunks:
                if chunk.text:
                    yield chunk.text
        except (genai_errors.APIError, httpx.HTTPError) as e:
            self._logger.warning("api_error", model=model, error=str(e))
            raise self._map_error(e) from e

    async def aclose(self) -> None:
        return None
