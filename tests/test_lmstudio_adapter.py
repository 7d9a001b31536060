"""
Tests for the LM Studio adapter. The OpenAI SDK is pointed at a mocked
OpenAI-compatible server.
"""

import json

import httpx
import pytest

from conftest import mock_client, refuse_connection
from luxrig_bridge.errors import AdapterUnavailable, UpstreamError
from luxrig_bridge.provider import ChatOptions
from luxrig_bridge.providers.lmstudio import LMStudioAdapter


MODELS = {
    "object": "list",
    "data": [
        {"id": "qwen2.5-7b-instruct", "object": "model", "owned_by": "organization_owner"},
        {"id": "text-embedding-nomic", "object": "model", "owned_by": "organization_owner"},
    ],
}


async def make_adapter(handler) -> LMStudioAdapter:
    adapter = LMStudioAdapter(base_url="http://lmstudio.test", http_client=mock_client(handler))
    await adapter.initialize()
    return adapter


class TestLMStudioStatus:
    @pytest.mark.asyncio
    async def test_online_status(self):
        def handler(request):
            assert request.url.path == "/v1/models"
            return httpx.Response(200, json=MODELS)

        adapter = await make_adapter(handler)
        status = await adapter.get_status()

        assert status.online is True
        assert status.provider_id == "lmstudio"
        assert status.base_url == "http://lmstudio.test"
        assert status.model_count == 2
        assert status.loaded_model == "qwen2.5-7b-instruct"

    @pytest.mark.asyncio
    async def test_connection_refused_is_offline(self):
        adapter = await make_adapter(refuse_connection)
        status = await adapter.get_status()

        assert status.online is False
        assert status.error

    @pytest.mark.asyncio
    async def test_server_error_is_offline(self):
        adapter = await make_adapter(
            lambda request: httpx.Response(500, json={"error": "crashed"})
        )
        status = await adapter.get_status()

        assert status.online is False
        assert status.error


class TestLMStudioModels:
    @pytest.mark.asyncio
    async def test_list_models(self):
        adapter = await make_adapter(lambda request: httpx.Response(200, json=MODELS))
        models = await adapter.list_models()

        assert [m.id for m in models] == ["qwen2.5-7b-instruct", "text-embedding-nomic"]
        assert all(m.provider == "lmstudio" for m in models)
        assert models[0].owned_by == "organization_owner"

    @pytest.mark.asyncio
    async def test_list_models_failure_is_empty(self):
        adapter = await make_adapter(refuse_connection)
        assert await adapter.list_models() == []


class TestLMStudioChat:
    @pytest.mark.asyncio
    async def test_chat_round_trip(self):
        seen = {}

        def handler(request):
            assert request.url.path == "/v1/chat/completions"
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={
                "model": "m",
                "choices": [{"message": {"content": "hello"}}],
            })

        adapter = await make_adapter(handler)
        result = await adapter.chat(
            [{"role": "user", "content": "hi"}],
            "m",
            ChatOptions(temperature=0.7, max_tokens=2000),
        )

        assert result.provider == "lmstudio"
        assert result.model == "m"
        assert result.content == "hello"
        assert result.usage is None
        assert seen["model"] == "m"
        assert seen["messages"] == [{"role": "user", "content": "hi"}]
        assert seen["temperature"] == 0.7
        assert seen["max_tokens"] == 2000
        assert seen["stream"] is False

    @pytest.mark.asyncio
    async def test_chat_reports_usage(self):
        def handler(request):
            return httpx.Response(200, json={
                "model": "m",
                "choices": [{"message": {"role": "assistant", "content": "ok"}}],
                "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6},
            })

        adapter = await make_adapter(handler)
        result = await adapter.chat([{"role": "user", "content": "hi"}], None, ChatOptions())

        assert result.usage.prompt_tokens == 5
        assert result.usage.completion_tokens == 1
        assert result.usage.total_tokens == 6

    @pytest.mark.asyncio
    async def test_missing_model_uses_default(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"model": "loaded", "choices": []})

        adapter = await make_adapter(handler)
        result = await adapter.chat([{"role": "user", "content": "hi"}], None, ChatOptions())

        assert seen["model"] == "default"
        assert result.content == ""

    @pytest.mark.asyncio
    async def test_json_mode_sets_response_format(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"model": "m", "choices": [{"message": {"content": "{}"}}]})

        adapter = await make_adapter(handler)
        await adapter.chat([{"role": "user", "content": "hi"}], "m", ChatOptions(json_mode=True))

        assert seen["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_http_error_raises_upstream_error(self):
        adapter = await make_adapter(
            lambda request: httpx.Response(400, json={"error": "No models loaded"})
        )

        with pytest.raises(UpstreamError) as exc_info:
            await adapter.chat([{"role": "user", "content": "hi"}], None, ChatOptions())

        assert exc_info.value.status_code == 400
        assert "No models loaded" in exc_info.value.body
        assert "LM Studio" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unreachable_raises_adapter_unavailable(self):
        adapter = await make_adapter(refuse_connection)

        with pytest.raises(AdapterUnavailable) as exc_info:
            await adapter.chat([{"role": "user", "content": "hi"}], None, ChatOptions())

        assert "LM Studio unreachable" in exc_info.value.message
