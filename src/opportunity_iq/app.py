"""Application wiring: settings, persistence, advisor and sessions."""

from typing import Any

import httpx
import structlog

from opportunity_iq.advisor import (
    AdvisorService,
    ModelCascadeRunner,
    PromptCatalog,
    SpecialistChat,
    load_prompts,
)
from opportunity_iq.clients import CompletionClient, create_completion_client
from opportunity_iq.config import (
    ConfigurationError,
    Settings,
    configure_logging,
    get_settings,
    resolve_ai_config,
)
from opportunity_iq.persistence import PersistenceAdapter, create_persistence_adapter
from opportunity_iq.sync import UserSession

logger = structlog.get_logger(__name__)


class OpportunityIQ:
    """Holds the resolved adapter and advisor and hands out sessions.

    The persistence backend and the AI client are resolved once at startup.
    Without an AI key the advisor runs degraded: every operation returns its
    fallback and the chat answers with the invalid-key message.

    Usage:
        async with create_app() as app:
            session = app.new_session()
            await session.sign_in("user-1")
    """

    def __init__(
        self,
        settings: Settings,
        adapter: PersistenceAdapter,
        completion_client: CompletionClient | None,
        models: tuple[str, ...] = (),
        prompts: PromptCatalog | None = None,
    ):
        self.settings = settings
        self.adapter = adapter
        self.completion_client = completion_client
        self.prompts = prompts or load_prompts()
        self.runner = (
            ModelCascadeRunner(completion_client, models)
            if completion_client is not None and models
            else None
        )
        self.advisor = AdvisorService(self.runner, self.prompts)
        self._sessions: list[UserSession] = []
        self._logger = logger.bind(component="app", backend=adapter.name)

    async def __aenter__(self) -> "OpportunityIQ":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def new_session(self) -> UserSession:
        session = UserSession(self.adapter, self.advisor, self.settings)
        self._sessions.append(session)
        return session

    def new_chat(self) -> SpecialistChat:
        return SpecialistChat(self.runner, self.prompts)

    async def aclose(self) -> None:
        """Let in-flight writes finish, then release clients."""
        self._logger.info("shutting_down")
        for session in self._sessions:
            await session.close()
        self._sessions.clear()
        await self.adapter.aclose()
        if self.completion_client is not None:
            await self.completion_client.aclose()


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    completion_client: CompletionClient | None = None,
    setup_logging: bool = True,
) -> OpportunityIQ:
    """Resolve configuration once and build the application.

    Args:
        settings: Settings to use. Defaults to the cached environment settings.
        transport: httpx transport for the remote backend (tests).
        completion_client: Client to use instead of the configured provider.
        setup_logging: Whether to configure structlog from settings.
    """
    settings = settings or get_settings()
    if setup_logging:
        configure_logging(settings.log_level, settings.log_format)

    adapter = create_persistence_adapter(settings, transport=transport)

    models: tuple[str, ...] = settings.model_cascade
    if completion_client is None:
        try:
            config = resolve_ai_config(settings)
        except ConfigurationError as e:
            logger.warning("advisor_degraded", reason=str(e))
        else:
            completion_client = create_completion_client(config)
            models = config.models

    app = OpportunityIQ(settings, adapter, completion_client, models)
    logger.info(
        "app_created",
        backend=adapter.name,
        advisor_available=app.advisor.is_available,
        models=list(models) if app.runner else [],
    )
    return app
