"""
Google Gemini provider adapter.

Uses the Generative Language REST API. Only registered when an API key is
configured.
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

# Gemini has no "assistant" role
ROLE_MAP = {"user": "user", "assistant": "model"}


def to_gemini_payload(messages: list[dict], options: ChatOptions) -> dict:
    """Convert OpenAI-style messages into a generateContent request body."""
    contents = []
    system_parts = []

    for message in messages:
        role = message.get("role", "user")
        text = message.get("content", "")
        if role == "system":
            system_parts.append({"text": text})
            continue
        contents.append({
            "role": ROLE_MAP.get(role, "user"),
            "parts": [{"text": text}],
        })

    generation_config = {
        "temperature": options.temperature,
        "topK": 40,
        "topP": 0.95,
        "maxOutputTokens": options.max_tokens,
    }
    if options.json_mode:
        generation_config["responseMimeType"] = "application/json"

    payload = {
        "contents": contents,
        "generationConfig": generation_config,
    }
    if system_parts:
        payload["systemInstruction"] = {"parts": system_parts}
    return payload


def extract_text(data: dict) -> str:
    """Text of the first candidate, or '' when there is none."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text") or "" for part in parts)


class GeminiAdapter(ProviderAdapter):
    """Adapter for the Google Gemini API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        default_model: str = "gemini-pro",
        status_timeout: float = 3.0,
        chat_timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider_id = "gemini"
        self.display_name = "Gemini"
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self._api_key = api_key
        self._status_timeout = status_timeout
        self._chat_timeout = chat_timeout
        self._client = client

    async def initialize(self) -> None:
        if not self._api_key:
            logger.error("GEMINI_API_KEY not set!")
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._chat_timeout)
        logger.info("Gemini adapter ready: %s", self.base_url)

    async def shutdown(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _fetch_models(self) -> list[dict]:
        response = await self._client.get(
            f"{self.base_url}/models",
            params={"key": self._api_key},
            timeout=self._status_timeout,
        )
        response.raise_for_status()
        models = response.json().get("models") or []
        return [
            m for m in models
            if isinstance(m, dict)
            and isinstance(m.get("name"), str)
            and m["name"].removeprefix("models/")
            and "generateContent" in (m.get("supportedGenerationMethods") or ["generateContent"])
        ]

    async def get_status(self) -> ProviderStatus:
        if not self._api_key:
            return self.offline("GEMINI_API_KEY not configured")
        if self._client is None:
            return self.offline("Client not initialized")

        try:
            models = await self._fetch_models()
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            return self.offline(describe_error(e))

        return ProviderStatus(
            provider_id=self.provider_id,
            online=True,
            base_url=self.base_url,
            model_count=len(models),
            loaded_model=self.default_model,
        )

    async def list_models(self) -> list[ModelDescriptor]:
        if not self._api_key or self._client is None:
            return []

        try:
            models = await self._fetch_models()
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            logger.warning("Gemini listModels error: %s", describe_error(e))
            return []

        descriptors = []
        for model in models:
            model_id = model["name"].removeprefix("models/")
            display_name = model.get("displayName")
            if not isinstance(display_name, str) or not display_name:
                display_name = model_id
            descriptors.append(ModelDescriptor(
                id=model_id,
                provider=self.provider_id,
                display_name=display_name,
                owned_by="google",
            ))
        return descriptors

    async def chat(
        self,
        messages: list[dict],
        model: Optional[str],
        options: ChatOptions,
    ) -> ChatResult:
        if not self._api_key:
            raise AdapterUnavailable(self.provider_id, "Gemini API key is missing")
        if self._client is None:
            raise AdapterUnavailable(self.provider_id, "Gemini client not initialized")

        model_name = self.resolve_model(model)

        try:
            response = await self._client.post(
                f"{self.base_url}/models/{model_name}:generateContent",
                params={"key": self._api_key},
                json=to_gemini_payload(messages, options),
                timeout=self._chat_timeout,
            )
        except httpx.TransportError as e:
            raise AdapterUnavailable(
                self.provider_id, f"Gemini unreachable: {describe_error(e)}"
            ) from e

        if response.is_error:
            message = f"Gemini API Error: {response.status_code}"
            try:
                message = response.json().get("error", {}).get("message") or message
            except (ValueError, AttributeError):
                pass
            raise UpstreamError(
                self.provider_id,
                message,
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
            content = extract_text(data)

            usage = None
            metadata = data.get("usageMetadata")
            if metadata:
                usage = Usage(
                    prompt_tokens=token_count(metadata.get("promptTokenCount")),
                    completion_tokens=token_count(metadata.get("candidatesTokenCount")),
                )
            returned_model = data.get("modelVersion")
            if not isinstance(returned_model, str) or not returned_model:
                returned_model = model_name
        except (ValueError, AttributeError, TypeError) as e:
            raise UpstreamError(
                self.provider_id,
                "Gemini returned a malformed response",
                status_code=response.status_code,
                body=response.text[:500],
            ) from e

        return ChatResult(
            provider=self.provider_id,
            model=returned_model,
            content=content,
            usage=usage,
        )
