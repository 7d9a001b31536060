"""
Ollama provider adapter.

Talks to a local Ollama server over its native HTTP API.
"""

import logging
from typing import Optional

import httpx

from ..errors import AdapterUnavailable, UpstreamError
from ..provider import (
    ChatOptions,
    ChatResult,
    ModelDescriptor,
    ProviderAdapter,
    ProviderStatus,
    Usage,
    describe_error,
    token_count,
)


logger = logging.getLogger(__name__)


def _named(models) -> list[dict]:
    """Model entries that are objects with a non-empty string name."""
    return [
        m for m in models
        if isinstance(m, dict) and isinstance(m.get("name"), str) and m["name"]
    ]


class OllamaAdapter(ProviderAdapter):
    """Adapter for a local Ollama server."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        default_model: str = "llama3",
        status_timeout: float = 3.0,
        chat_timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider_id = "ollama"
        self.display_name = "Ollama"
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self._status_timeout = status_timeout
        self._chat_timeout = chat_timeout
        self._client = client

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._chat_timeout)
        logger.info("Ollama adapter ready: %s", self.base_url)

    async def shutdown(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get_tags(self) -> list[dict]:
        response = await self._client.get(
            f"{self.base_url}/api/tags",
            timeout=self._status_timeout,
        )
        response.raise_for_status()
        models = response.json().get("models") or []
        return _named(models)

    async def _get_running(self) -> list[str]:
        """Models currently loaded in memory. Best effort."""
        try:
            response = await self._client.get(
                f"{self.base_url}/api/ps",
                timeout=self._status_timeout,
            )
            response.raise_for_status()
            models = response.json().get("models") or []
            return [m["name"] for m in _named(models)]
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            logger.debug("Ollama /api/ps unavailable: %s", describe_error(e))
            return []

    async def get_status(self) -> ProviderStatus:
        if self._client is None:
            return self.offline("Client not initialized")

        try:
            models = await self._get_tags()
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            return self.offline(describe_error(e))

        running = await self._get_running()
        names = [m["name"] for m in models]

        return ProviderStatus(
            provider_id=self.provider_id,
            online=True,
            base_url=self.base_url,
            model_count=len(names),
            loaded_model=running[0] if running else (names[0] if names else None),
            running_models=running,
        )

    def _to_descriptor(self, model: dict) -> ModelDescriptor:
        name = model["name"]
        details = model.get("details")
        parameter_size = details.get("parameter_size") if isinstance(details, dict) else None
        size = model.get("size")
        return ModelDescriptor(
            id=name,
            provider=self.provider_id,
            display_name=f"{name} ({parameter_size})" if parameter_size else name,
            owned_by=None,
            size_bytes=size if isinstance(size, int) else None,
        )

    async def list_models(self) -> list[ModelDescriptor]:
        if self._client is None:
            logger.warning("Ollama listModels: client not initialized")
            return []

        try:
            models = await self._get_tags()
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            logger.warning("Ollama listModels error: %s", describe_error(e))
            return []

        return [self._to_descriptor(model) for model in models]

    async def chat(
        self,
        messages: list[dict],
        model: Optional[str],
        options: ChatOptions,
    ) -> ChatResult:
        if self._client is None:
            raise AdapterUnavailable(self.provider_id, "Ollama client not initialized")

        model_name = self.resolve_model(model)
        payload = {
            "model": model_name,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
            },
        }

        if options.json_mode:
            payload["format"] = "json"

        try:
            response = await self._client.post(
                f"{self.base_url}/api/chat",
                json=payload,
                timeout=self._chat_timeout,
            )
        except httpx.TransportError as e:
            raise AdapterUnavailable(
                self.provider_id, f"Ollama unreachable: {describe_error(e)}"
            ) from e

        if response.is_error:
            raise UpstreamError(
                self.provider_id,
                f"Ollama error: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            result = response.json()
            content = (result.get("message") or {}).get("content") or ""
            if not isinstance(content, str):
                raise TypeError(f"message content is {type(content).__name__}")

            usage = None
            if "prompt_eval_count" in result or "eval_count" in result:
                usage = Usage(
                    prompt_tokens=token_count(result.get("prompt_eval_count")),
                    completion_tokens=token_count(result.get("eval_count")),
                )
            returned_model = result.get("model")
            if not isinstance(returned_model, str) or not returned_model:
                returned_model = model_name
        except (ValueError, AttributeError, TypeError) as e:
            raise UpstreamError(
                self.provider_id,
                "Ollama returned a malformed response",
                status_code=response.status_code,
                body=response.text[:500],
            ) from e

        return ChatResult(
            provider=self.provider_id,
            model=returned_model,
            content=content,
            usage=usage,
        )
