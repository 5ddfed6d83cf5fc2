"""
OpenAI-compatible adapter.

Uses the official SDK against api.openai.com or any server exposing
``/v1/chat/completions``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError

from api.middleware.exception_handlers import ProviderError
from core.constants import PROVIDER_OPENAI
from integrations.providers.base import ProviderAdapter
from models.chat_models import ChatMessage
from models.error_models import ErrorCode
from utils.logger import logger

BODY_PREVIEW_LENGTH = 500


class OpenAICompatAdapter(ProviderAdapter):
    """Adapter for the OpenAI chat completions API."""

    name = PROVIDER_OPENAI

    def __init__(self, client: AsyncOpenAI):
        self._client = client

    async def complete(
        self,
        model_name: str,
        messages: Sequence[ChatMessage],
        stream: bool = False,
    ) -> ChatMessage:
        logger.debug(f"OpenAI request: model={model_name} messages={len(messages)} stream_requested={stream}")

        try:
            completion: Any = await self._client.chat.completions.create(
                model=model_name,
                messages=self._wire_messages(messages),  # type: ignore[arg-type]
                stream=False,
            )
        except APITimeoutError as e:
            raise ProviderError(
                self.name, "request timed out", code=ErrorCode.PROVIDER_TIMEOUT, cause=e
            ) from e
        except APIStatusError as e:
            raise ProviderError(
                self.name,
                f"HTTP {e.status_code}",
                status=e.status_code,
                body=e.response.text[:BODY_PREVIEW_LENGTH],
                cause=e,
            ) from e
        except APIConnectionError as e:
            raise ProviderError(self.name, f"connection failed: {e}", cause=e) from e
        except OpenAIError as e:
            raise ProviderError(self.name, f"unexpected SDK error: {e}", cause=e) from e

        choices = getattr(completion, "choices", None)
        if not choices:
            raise ProviderError(self.name, "response has no choices")

        message = choices[0].message
        return self._reply(message.content)
