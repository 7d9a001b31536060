"""Shared fixtures and fakes for bridge tests."""

from typing import Optional

import httpx
import pytest

from luxrig_bridge.config import Settings
from luxrig_bridge.errors import AdapterUnavailable
from luxrig_bridge.provider import (
    ChatOptions,
    ChatResult,
    ModelDescriptor,
    ProviderAdapter,
    ProviderStatus,
)


class FakeAdapter(ProviderAdapter):
    """In-memory adapter that records every call."""

    def __init__(
        self,
        provider_id: str,
        models: Optional[list[str]] = None,
        online: bool = True,
        reply: str = "hello",
        chat_error: Optional[Exception] = None,
    ):
        self.provider_id = provider_id
        self.display_name = provider_id.title()
        self.base_url = f"http://{provider_id}.test"
        self.default_model = f"{provider_id}-default"
        self.models = models if models is not None else []
        self.online = online
        self.reply = reply
        self.chat_error = chat_error
        self.chat_calls: list[tuple] = []
        self.status_calls = 0
        self.initialized = False

    async def initialize(self) -> None:
        self.initialized = True

    async def shutdown(self) -> None:
        self.initialized = False

    async def get_status(self) -> ProviderStatus:
        self.status_calls += 1
        if not self.online:
            return self.offline("connection refused")
        return ProviderStatus(
            provider_id=self.provider_id,
            online=True,
            base_url=self.base_url,
            model_count=len(self.models),
            loaded_model=self.models[0] if self.models else None,
        )

    async def list_models(self) -> list[ModelDescriptor]:
        if not self.online:
            return []
        return [
            ModelDescriptor(id=m, provider=self.provider_id, display_name=m)
            for m in self.models
        ]

    async def chat(self, messages, model, options: ChatOptions) -> ChatResult:
        self.chat_calls.append((messages, model, options))
        if self.chat_error is not None:
            raise self.chat_error
        if not self.online:
            raise AdapterUnavailable(self.provider_id, f"{self.display_name} unreachable")
        return ChatResult(
            provider=self.provider_id,
            model=self.resolve_model(model),
            content=self.reply,
        )


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler(request)."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def refuse_connection(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("All connection attempts failed", request=request)


@pytest.fixture
def settings():
    return Settings(
        broadcast_interval=60.0,
        send_timeout=0.5,
        gemini_api_key="",
        log_path="",
        provider_priority="lmstudio,ollama",
        default_provider="lmstudio",
    )
