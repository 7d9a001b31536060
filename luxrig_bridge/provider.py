"""
Abstract base class for provider adapters.

Every upstream LLM service (LM Studio, Ollama, Gemini) is wrapped in a
ProviderAdapter that normalizes status, model listing and chat into the
shapes defined here. The aggregator only ever talks to this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ProviderStatus:
    """Point-in-time status of one provider."""
    provider_id: str
    online: bool
    base_url: str
    model_count: int = 0
    loaded_model: Optional[str] = None
    error: Optional[str] = None
    running_models: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "providerId": self.provider_id,
            "online": self.online,
            "baseUrl": self.base_url,
            "url": self.base_url,
            "modelCount": self.model_count,
            "loadedModel": self.loaded_model,
            "runningModels": list(self.running_models),
            "error": self.error,
        }


@dataclass
class ModelDescriptor:
    """A model as reported by a provider."""
    id: str
    provider: str
    display_name: str
    owned_by: Optional[str] = None
    size_bytes: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider": self.provider,
            "displayName": self.display_name,
            "ownedBy": self.owned_by,
            "sizeBytes": self.size_bytes,
        }


@dataclass
class Usage:
    """Token counts for a completion."""
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None

    @property
    def total_tokens(self) -> Optional[int]:
        if self.prompt_tokens is None and self.completion_tokens is None:
            return None
        return (self.prompt_tokens or 0) + (self.completion_tokens or 0)


@dataclass
class ChatOptions:
    """Sampling options for a chat call."""
    temperature: float = 0.7
    max_tokens: int = 2000
    json_mode: bool = False


@dataclass
class ChatResult:
    """Result from a chat completion."""
    provider: str
    model: str
    content: str
    usage: Optional[Usage] = None
    data: Any = None  # extracted JSON payload, json_mode only


class ProviderAdapter(ABC):
    """
    Interface that all provider adapters must satisfy.

    Implementations should:
    1. Set provider_id, display_name, base_url and default_model in __init__
    2. Create their HTTP client in initialize() and close it in shutdown()
    3. Never raise from get_status() or list_models()
    """

    provider_id: str     # e.g. "lmstudio", "ollama"
    display_name: str    # e.g. "LM Studio"
    base_url: str
    default_model: str

    @abstractmethod
    async def initialize(self) -> None:
        """Called on application startup. Set up clients."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Called on application shutdown. Close clients."""

    @abstractmethod
    async def get_status(self) -> ProviderStatus:
        """
        Check whether the provider is reachable.

        Should be fast (a list-models call with a short timeout). Any failure
        is reported as online=False with an error message.
        """

    @abstractmethod
    async def list_models(self) -> list[ModelDescriptor]:
        """List available models. Failures degrade to an empty list."""

    @abstractmethod
    async def chat(
        self,
        messages: list[dict],
        model: Optional[str],
        options: ChatOptions,
    ) -> ChatResult:
        """
        Perform a single chat completion.

        Args:
            messages: Ordered list of {"role": str, "content": str} dicts
            model: Model id, or None for the provider default
            options: Sampling options

        Raises:
            AdapterUnavailable if the upstream cannot be reached
            UpstreamError if the upstream answers with an error
        """

    def offline(self, error: str) -> ProviderStatus:
        return ProviderStatus(
            provider_id=self.provider_id,
            online=False,
            base_url=self.base_url,
            error=error,
        )

    def resolve_model(self, model: Optional[str]) -> str:
        return model or self.default_model


def describe_error(exc: Exception) -> str:
    """Readable message for transport errors, some of which stringify empty."""
    message = str(exc)
    if message:
        return message
    return exc.__class__.__name__


def token_count(value) -> Optional[int]:
    """Token counts from upstream bodies are trusted only when they are ints."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None
