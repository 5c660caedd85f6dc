"""Specialist chat: a streamed conversation bound to the user's THL and context."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass

import structlog

from opportunity_iq.advisor.prompts import PromptCatalog, load_prompts
from opportunity_iq.advisor.runner import ModelCascadeRunner
from opportunity_iq.advisor.service import AdvisorUnavailableError
from opportunity_iq.clients import ChatTurn, CompletionError, FatalCompletionError
from opportunity_iq.models import CalculatedTHL, LifeContext

logger = structlog.get_logger(__name__)

GREETING = (
    "Eu sou seu Estrategista. Analiso sua vida através de **Nietzsche** e **Pareto**. "
    "Onde dói a sua ineficiência hoje?"
)
SILENT_ORACLE = "O Oráculo silenciou. Verifique sua conexão."
INVALID_KEY = (
    "ERRO CRÍTICO: Chave de API inválida ou ausente.\n\n"
    "Verifique se o ambiente define uma das variáveis:\n"
    "OIQ_API_KEY\nAPI_KEY\nGEMINI_API_KEY\nGOOGLE_API_KEY"
)
RATE_LIMITED = "Tráfego intenso no Oráculo (Erro 429). Tente novamente em alguns segundos."


@dataclass
class ChatMessage:
    role: str  # "user" or "model"
    text: str
    is_error: bool = False


def error_message(error: Exception) -> str:
    """Canned reply shown in place of a failed answer."""
    if isinstance(error, (FatalCompletionError, AdvisorUnavailableError)):
        return INVALID_KEY
    if isinstance(error, CompletionError) and error.status_code == 429:
        return RATE_LIMITED
    return SILENT_ORACLE


class SpecialistChat:
    """Conversation with the Nietzsche + Pareto persona.

    The model session is tied to (real THL, routine, assets). When any of
    them changes the session is dropped and rebuilt lazily on the next send,
    so stale context never leaks into new advice. The visible transcript is
    kept across sessions.

    Starting a new stream supersedes the one in flight: the older stream stops
    appending at its next chunk.
    """

    def __init__(
        self,
        runner: ModelCascadeRunner | None,
        prompts: PromptCatalog | None = None,
    ):
        self.runner = runner
        self.prompts = prompts or load_prompts()
        self.messages: list[ChatMessage] = [ChatMessage(role="model", text=GREETING)]
        self._history: list[ChatTurn] = []
        self._session_key: tuple[float, str, str] | None = None
        self._system_instruction: str | None = None
        self._stop: asyncio.Event | None = None
        self._logger = logger.bind(component="chat")

    @property
    def has_session(self) -> bool:
        return self._session_key is not None

    def system_instruction_for(self, thl: float, life_context: LifeContext | None) -> str:
        if life_context:
            context = self.prompts.chat_context.format(
                routine=life_context.routine_description,
                assets=life_context.assets_description,
            )
        else:
            context = self.prompts.chat_no_context
        return self.prompts.chat_system.format(thl=thl, context=context)

    def _ensure_session(self, thl: CalculatedTHL, life_context: LifeContext | None) -> None:
        key = (
            thl.real_thl,
            life_context.routine_description if life_context else "",
            life_context.assets_description if life_context else "",
        )
        if key != self._session_key:
            if self._session_key is not None:
                self._logger.info("chat_session_reset")
            self._session_key = key
            self._history = []
            self._system_instruction = self.system_instruction_for(thl.real_thl, life_context)

    def reset(self) -> None:
        """Drop the model session; the next send starts a fresh one."""
        self._session_key = None
        self._history = []
        self._system_instruction = None

    def stop(self) -> None:
        """Stop appending chunks of the stream in flight, if any."""
        if self._stop is not None:
            self._stop.set()

    async def stream(
        self,
        text: str,
        thl: CalculatedTHL,
        life_context: LifeContext | None = None,
    ) -> AsyncIterator[str]:
        """Send a message and yield the reply as it arrives.

        On failure the canned error text is yielded instead and recorded as an
        error message in the transcript.
        """
        if not text.strip():
            return

        self.stop()
        stop = asyncio.Event()
        self._stop = stop

        self.messages.append(ChatMessage(role="user", text=text))
        reply = ChatMessage(role="model", text="")
        self.messages.append(reply)

        try:
            if self.runner is None:
                raise AdvisorUnavailableError("No AI API key configured")
            self._ensure_session(thl, life_context)
            turns = self._history + [ChatTurn(role="user", content=text)]

            async with aclosing(
                self.runner.stream(self._system_instruction or "", turns)
            ) as chunks:
                async for chunk in chunks:
                    if stop.is_set():
                        self._logger.info("chat_stream_stopped", received=len(reply.text))
                        break
                    reply.text += chunk
                    yield chunk

            if not stop.is_set():
                self._history = turns + [ChatTurn(role="model", content=reply.text)]
        except Exception as e:
            self._logger.error("chat_failed", error=str(e))
            if not reply.text and self.messages and self.messages[-1] is reply:
                self.messages.pop()
            failure = ChatMessage(role="model", text=error_message(e), is_error=True)
            self.messages.append(failure)
            yield failure.text
        finally:
            if self._stop is stop:
                self._stop = None

    async def send(
        self,
        text: str,
        thl: CalculatedTHL,
        life_context: LifeContext | None = None,
    ) -> ChatMessage | None:
        """Send a message and return the final reply once complete."""
        if not text.strip():
            return None
        async with aclosing(self.stream(text, thl, life_context)) as chunks:
            async for _ in chunks:
                pass
        return self.messages[-1] if self.messages and self.messages[-1].role == "model" else None
