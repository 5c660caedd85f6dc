"""Pytest configuration and fixtures."""

import asyncio
import json
import os
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Set test environment variables before importing settings
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from opportunity_iq.clients import ChatTurn, RetryableCompletionError  # noqa: E402
from opportunity_iq.config import Settings, SupabaseConfig, get_settings  # noqa: E402
from opportunity_iq.persistence import (  # noqa: E402
    LocalPersistenceAdapter,
    PersistenceAdapter,
    RemotePersistenceAdapter,
    SaveStatus,
)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Each test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with a temporary local store and short debounce windows."""
    return get_settings().model_copy(
        update={
            "local_storage_path": tmp_path / "storage.json",
            "supabase_url": None,
            "supabase_anon_key": None,
            "profile_debounce_seconds": 0.05,
            "compass_debounce_seconds": 0.05,
            "context_debounce_seconds": 0.05,
        }
    )


@pytest.fixture
def local_adapter(tmp_path) -> LocalPersistenceAdapter:
    return LocalPersistenceAdapter(path=tmp_path / "storage.json", storage_key="oiq_test")


@pytest.fixture
def mock_adapter():
    """Adapter mock whose writes all succeed."""
    adapter = MagicMock(spec=PersistenceAdapter)
    adapter.name = "mock"
    for method in (
        "save_profile",
        "save_compass",
        "save_context",
        "save_note",
        "add_delegation",
        "remove_delegation",
        "add_asset",
        "remove_asset",
    ):
        setattr(adapter, method, AsyncMock(return_value=SaveStatus.SAVED))
    adapter.aclose = AsyncMock()
    return adapter


# === In-memory PostgREST ===


class FakePostgrest:
    """Just enough of PostgREST for the remote adapter: eq filters, upsert, patch, delete."""

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None
        self.connect_failures = 0
        self._next_id = 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @staticmethod
    def _filters(request: httpx.Request) -> dict[str, str]:
        return {
            key: value[3:]
            for key, value in request.url.params.items()
            if value.startswith("eq.")
        }

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, str]) -> bool:
        return all(str(row.get(column)) == value for column, value in filters.items())

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.connect_failures:
            self.connect_failures -= 1
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"message": "boom"})

        table = request.url.path.rsplit("/", 1)[-1]
        rows = self.tables[table]
        filters = self._filters(request)
        body = json.loads(request.content) if request.content else None

        if request.method == "GET":
            return httpx.Response(200, json=[row for row in rows if self._matches(row, filters)])

        if request.method == "POST":
            on_conflict = request.url.params.get("on_conflict")
            if on_conflict:
                for row in rows:
                    if row.get(on_conflict) == body.get(on_conflict):
                        row.update(body)
                        return httpx.Response(201)
            row = dict(body)
            if "id" not in row:
                row["id"] = self._next_id
                self._next_id += 1
            rows.append(row)
            return httpx.Response(201)

        if request.method == "PATCH":
            for row in rows:
                if self._matches(row, filters):
                    row.update(body)
            return httpx.Response(204)

        if request.method == "DELETE":
            self.tables[table] = [row for row in rows if not self._matches(row, filters)]
            return httpx.Response(204)

        return httpx.Response(405)


@pytest.fixture
def postgrest() -> FakePostgrest:
    return FakePostgrest()


@pytest.fixture
def supabase_config() -> SupabaseConfig:
    return SupabaseConfig(
        url="https://project.supabase.co",
        anon_key="anon-key",
        timeout=5.0,
        max_retries=2,
    )


@pytest.fixture
def remote_adapter(supabase_config, postgrest) -> RemotePersistenceAdapter:
    return RemotePersistenceAdapter(supabase_config, transport=postgrest.transport)


# === Completion client ===


class FakeCompletionClient:
    """Scripted completion client.

    ``responses`` maps a model name to a reply string, an exception to raise,
    or a callable taking the prompt. Unknown models get ``default``.
    """

    provider = "fake"

    def __init__(
        self,
        default: str | Exception | Callable[[str], str] = "{}",
        responses: dict[str, Any] | None = None,
        chunks: list[str] | None = None,
    ):
        self.default = default
        self.responses = responses or {}
        self.chunks = chunks if chunks is not None else ["Olá, ", "estrategista."]
        self.calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    def _reply_for(self, model: str, prompt: str) -> str:
        reply = self.responses.get(model, self.default)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply

    async def complete(
        self,
        model: str,
        prompt: str,
        system_instruction: str,
        response_schema: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> str:
        self.calls.append(
            {
                "model": model,
                "prompt": prompt,
                "system_instruction": system_instruction,
                "response_schema": response_schema,
                "json_mode": json_mode,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        return self._reply_for(model, prompt)

    async def stream(
        self,
        model: str,
        system_instruction: str,
        messages: list[ChatTurn],
    ) -> AsyncIterator[str]:
        self.stream_calls.append(
            {"model": model, "system_instruction": system_instruction, "messages": list(messages)}
        )
        reply = self.responses.get(model, self.default)
        if isinstance(reply, Exception):
            raise reply
        for chunk in self.chunks:
            if self.gate is not None:
                await self.gate.wait()
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def failing_client() -> FakeCompletionClient:
    """Every model fails with a retryable error."""
    return FakeCompletionClient(default=RetryableCompletionError("Service Unavailable", 503))


@pytest.fixture
def client_factory() -> type[FakeCompletionClient]:
    """The scripted client class, for tests that need a custom reply."""
    return FakeCompletionClient
