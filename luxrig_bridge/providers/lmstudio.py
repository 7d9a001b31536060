"""
LM Studio provider adapter.

LM Studio serves an OpenAI-compatible API, so this adapter drives it with the
OpenAI SDK pointed at the local server.
"""

import logging
from typing import Optional

import httpx
import openai
from openai import AsyncOpenAI

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


class LMStudioAdapter(ProviderAdapter):
    """Adapter for LM Studio's OpenAI-compatible server."""

    def __init__(
        self,
        base_url: str = "http://localhost:1234",
        default_model: str = "default",
        status_timeout: float = 3.0,
        chat_timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider_id = "lmstudio"
        self.display_name = "LM Studio"
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self._status_timeout = status_timeout
        self._chat_timeout = chat_timeout
        self._http_client = http_client
        self._client: Optional[AsyncOpenAI] = None

    async def initialize(self) -> None:
        # LM Studio ignores the key but the SDK requires one
        self._client = AsyncOpenAI(
            api_key="lm-studio",
            base_url=f"{self.base_url}/v1",
            timeout=self._chat_timeout,
            max_retries=0,
            http_client=self._http_client,
        )
        logger.info("LM Studio adapter ready: %s", self.base_url)

    async def shutdown(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    async def _fetch_models(self) -> list:
        page = await self._client.models.list(timeout=self._status_timeout)
        return [m for m in page.data or [] if isinstance(getattr(m, "id", None), str) and m.id]

    async def get_status(self) -> ProviderStatus:
        if self._client is None:
            return self.offline("Client not initialized")

        try:
            models = await self._fetch_models()
        except (openai.APIError, ValueError, TypeError, AttributeError) as e:
            return self.offline(describe_error(e))

        return ProviderStatus(
            provider_id=self.provider_id,
            online=True,
            base_url=self.base_url,
            model_count=len(models),
            loaded_model=models[0].id if models else None,
        )

    async def list_models(self) -> list[ModelDescriptor]:
        if self._client is None:
            logger.warning("LM Studio listModels: client not initialized")
            return []

        try:
            models = await self._fetch_models()
        except (openai.APIError, ValueError, TypeError, AttributeError) as e:
            logger.warning("LM Studio listModels error: %s", describe_error(e))
            return []

        return [
            ModelDescriptor(
                id=model.id,
                provider=self.provider_id,
                display_name=model.id,
                owned_by=getattr(model, "owned_by", None),
            )
            for model in models
        ]

    async def chat(
        self,
        messages: list[dict],
        model: Optional[str],
        options: ChatOptions,
    ) -> ChatResult:
        if self._client is None:
            raise AdapterUnavailable(self.provider_id, "LM Studio client not initialized")

        model_name = self.resolve_model(model)
        params = {
            "model": model_name,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "stream": False,
        }

        if options.json_mode:
            params["response_format"] = {"type": "json_object"}

        try:
            completion = await self._client.chat.completions.create(**params)
        except openai.APIConnectionError as e:
            raise AdapterUnavailable(
                self.provider_id, f"LM Studio unreachable: {describe_error(e)}"
            ) from e
        except openai.APIStatusError as e:
            raise UpstreamError(
                self.provider_id,
                f"LM Studio error: {e.status_code}",
                status_code=e.status_code,
                body=e.response.text,
            ) from e
        except (openai.APIError, ValueError) as e:
            raise UpstreamError(
                self.provider_id,
                f"LM Studio returned a malformed response: {describe_error(e)}",
            ) from e

        try:
            content = ""
            if completion.choices:
                message = completion.choices[0].message
                content = (message.content if message else None) or ""
                if not isinstance(content, str):
                    raise TypeError(f"message content is {type(content).__name__}")

            usage = None
            if completion.usage:
                usage = Usage(
                    prompt_tokens=token_count(completion.usage.prompt_tokens),
                    completion_tokens=token_count(completion.usage.completion_tokens),
                )
            returned_model = completion.model
            if not isinstance(returned_model, str) or not returned_model:
                returned_model = model_name
        except (AttributeError, IndexError, TypeError) as e:
            raise UpstreamError(
                self.provider_id,
                "LM Studio returned a malformed response",
            ) from e

        return ChatResult(
            provider=self.provider_id,
            model=returned_model,
            content=content,
            usage=usage,
        )
