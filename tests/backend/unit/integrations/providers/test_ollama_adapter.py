"""Tests for the Ollama adapter using an in-process HTTP transport."""

from __future__ import annotations

import json

from collections.abc import Callable

import httpx
import pytest

from api.middleware.exception_handlers import ProviderError
from integrations.providers.ollama import OllamaAdapter
from models.chat_models import ChatMessage
from models.error_models import ErrorCode


def make_adapter(handler: Callable[[httpx.Request], httpx.Response]) -> OllamaAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaAdapter("http://ollama:11434/", client)


MESSAGES = [
    ChatMessage(role="user", content="hi"),
    ChatMessage(role="assistant", content="hello"),
    ChatMessage(role="user", content="how are you?"),
]


class TestOllamaAdapterRequest:
    @pytest.mark.asyncio
    async def test_posts_messages_in_order_without_streaming(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "fine"}, "done": True})

        adapter = make_adapter(handler)
        reply = await adapter.complete("llama3", MESSAGES, stream=True)

        assert reply == ChatMessage(role="assistant", content="fine")
        assert len(seen) == 1
        assert str(seen[0].url) == "http://ollama:11434/api/chat"
        body = json.loads(seen[0].content)
        assert body == {
            "model": "llama3",
            "messages": [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
                {"role": "user", "content": "how are you?"},
            ],
            "stream": False,
        }

    @pytest.mark.asyncio
    async def test_missing_content_yields_empty_reply(self) -> None:
        adapter = make_adapter(lambda _: httpx.Response(200, json={"message": {"role": "assistant"}}))

        reply = await adapter.complete("llama3", MESSAGES)

        assert reply.role == "assistant"
        assert reply.content == ""

    @pytest.mark.asyncio
    async def test_reply_role_is_always_assistant(self) -> None:
        adapter = make_adapter(lambda _: httpx.Response(200, json={"message": {"role": "user", "content": "echo"}}))

        reply = await adapter.complete("llama3", MESSAGES)

        assert reply == ChatMessage(role="assistant", content="echo")


class TestOllamaAdapterErrors:
    @pytest.mark.asyncio
    async def test_non_2xx_carries_status_and_body(self) -> None:
        adapter = make_adapter(lambda _: httpx.Response(500, text="model not loaded"))

        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete("llama3", MESSAGES)

        error = exc_info.value
        assert error.code == ErrorCode.PROVIDER_ERROR
        assert error.status == 500
        assert error.body == "model not loaded"
        assert error.provider == "ollama"

    @pytest.mark.asyncio
    async def test_long_error_body_is_truncated(self) -> None:
        adapter = make_adapter(lambda _: httpx.Response(404, text="x" * 2000))

        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete("missing", MESSAGES)

        assert exc_info.value.body is not None
        assert len(exc_info.value.body) == 500

    @pytest.mark.asyncio
    async def test_timeout_maps_to_provider_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        adapter = make_adapter(handler)

        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete("llama3", MESSAGES)

        assert exc_info.value.code == ErrorCode.PROVIDER_TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_failure_is_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        adapter = make_adapter(handler)

        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete("llama3", MESSAGES)

        assert exc_info.value.code == ErrorCode.PROVIDER_ERROR
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"done": True}),
            httpx.Response(200, json={"message": {"content": 42}}),
        ],
    )
    async def test_malformed_body_is_provider_error(self, response: httpx.Response) -> None:
        adapter = make_adapter(lambda _: response)

        with pytest.raises(ProviderError):
            await adapter.complete("llama3", MESSAGES)
