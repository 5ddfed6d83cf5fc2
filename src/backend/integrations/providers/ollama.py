"""
Ollama adapter.

Posts ``{model, messages, stream}`` to ``{base_url}/api/chat`` and reads the
reply from ``message.content``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from api.middleware.exception_handlers import ProviderError
from core.constants import PROVIDER_OLLAMA
from integrations.providers.base import ProviderAdapter
from models.chat_models import ChatMessage
from models.error_models import ErrorCode
from utils.logger import logger

CHAT_PATH = "/api/chat"
BODY_PREVIEW_LENGTH = 500


class OllamaAdapter(ProviderAdapter):
    """Adapter for a local Ollama server."""

    name = PROVIDER_OLLAMA

    def __init__(self, base_url: str, http_client: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self._client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{CHAT_PATH}"

    async def complete(
        self,
        model_name: str,
        messages: Sequence[ChatMessage],
        stream: bool = False,
    ) -> ChatMessage:
        # Ollama streams NDJSON when stream is true; one body is always requested
        payload = {
            "model": model_name,
            "messages": self._wire_messages(messages),
            "stream": False,
        }
        logger.debug(f"Ollama request: model={model_name} messages={len(messages)} stream_requested={stream}")

        try:
            response = await self._client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderError(
                self.name, f"request timed out: {e}", code=ErrorCode.PROVIDER_TIMEOUT, cause=e
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}", cause=e) from e

        if not response.is_success:
            body = response.text
            raise ProviderError(
                self.name,
                f"HTTP {response.status_code}",
                status=response.status_code,
                body=body[:BODY_PREVIEW_LENGTH],
            )

        return self._parse_reply(response)

    def _parse_reply(self, response: httpx.Response) -> ChatMessage:
        try:
            data: Any = response.json()
        except ValueError as e:
            raise ProviderError(
                self.name,
                "response body is not JSON",
                status=response.status_code,
                body=response.text[:BODY_PREVIEW_LENGTH],
                cause=e,
            ) from e

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise ProviderError(
                self.name,
                "response is missing 'message'",
                status=response.status_code,
                body=response.text[:BODY_PREVIEW_LENGTH],
            )

        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise ProviderError(self.name, "'message.content' is not a string", status=response.status_code)

        return self._reply(content)
