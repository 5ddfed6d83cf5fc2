"""
Provider adapter contract.

Each backend translates an ordered list of neutral ``ChatMessage`` objects
into its wire format, performs the call, and returns one assistant message.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from core.constants import ROLE_ASSISTANT
from models.chat_models import ChatMessage


class ProviderAdapter(ABC):
    """Backend capable of producing a single chat completion."""

    #: Prefix that selects this adapter in a model identifier
    name: str

    @abstractmethod
    async def complete(
        self,
        model_name: str,
        messages: Sequence[ChatMessage],
        stream: bool = False,
    ) -> ChatMessage:
        """Return the assistant reply for ``messages``.

        ``stream`` is accepted for compatibility; the full reply is always
        returned as one message. Content may be empty when the backend
        produced no text.

        Raises:
            ProviderError: non-2xx response, transport failure, or malformed body
        """

    async def aclose(self) -> None:  # noqa: B027
        """Release adapter-owned resources. Shared clients are closed by the app."""

    @staticmethod
    def _wire_messages(messages: Sequence[ChatMessage]) -> list[dict[str, str]]:
        return [{"role": m.role, "content": m.content} for m in messages]

    @staticmethod
    def _reply(content: str | None) -> ChatMessage:
        """The reply is always an assistant message, whatever role the backend echoed."""
        return ChatMessage(role=ROLE_ASSISTANT, content=content or "")
