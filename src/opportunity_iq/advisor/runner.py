"""Model cascade: try each configured model until one answers."""

from collections.abc import AsyncIterator, Sequence
from typing import Any

import structlog

from opportunity_iq.clients import (
    ChatTurn,
    CompletionClient,
    FatalCompletionError,
    RetryableCompletionError,
)

logger = structlog.get_logger(__name__)


class ModelCascadeRunner:
    """Runs a request against models in priority order.

    Retryable failures (rate limits, server errors, unknown models, empty
    replies) move on to the next model. A fatal failure (rejected key,
    malformed request) stops the cascade at once, since no other model would
    accept it either.
    """

    def __init__(self, client: CompletionClient, models: Sequence[str]):
        if not models:
            raise ValueError("At least one model is required")
        self.client = client
        self.models = tuple(models)
        self._logger = logger.bind(provider=client.provider)

    async def run(
        self,
        prompt: str,
        system_instruction: str,
        response_schema: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> str:
        last_error: Exception | None = None
        for model in self.models:
            try:
                return await self.client.complete(
                    model=model,
                    prompt=prompt,
                    system_instruction=system_instruction,
                    response_schema=response_schema,
                    json_mode=json_mode,
                )
            except FatalCompletionError as e:
                self._logger.error(
                    "security_block", model=model, status_code=e.status_code, error=str(e)
                )
                raise
            except Exception as e:
                last_error = e
                self._logger.warning("model_failed_trying_next", model=model, error=str(e))

        self._logger.error("all_models_failed", models=list(self.models), error=str(last_error))
        raise last_error or RetryableCompletionError("All models failed")

    async def stream(
        self, system_instruction: str, messages: list[ChatTurn]
    ) -> AsyncIterator[str]:
        """Stream a chat reply, falling back to the next model only before the first chunk."""
        last_error: Exception | None = None
        for model in self.models:
            started = False
            try:
                async for chunk in self.client.stream(model, system_instruction, messages):
                    started = True
                    yield chunk
                return
            except FatalCompletionError as e:
                self._logger.error(
                    "security_block", model=model, status_code=e.status_code, error=str(e)
                )
                raise
            except Exception as e:
                if started:
                    raise
                last_error = e
                self._logger.warning("model_failed_trying_next", model=model, error=str(e))

        self._logger.error("all_models_failed", models=list(self.models), error=str(last_error))
        raise last_error or RetryableCompletionError("All models failed")
