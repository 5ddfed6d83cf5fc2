"""
Domain models for the chat relay.

Stored entities (conversations, messages), the provider-neutral chat message
shape, and the collaborator protocols the relay consumes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

from core.constants import MODEL_ID_SEPARATOR

Role = Literal["user", "assistant"]


class Identity(BaseModel):
    """Authenticated principal. Only the id matters to the relay."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str | None = None


class Conversation(BaseModel):
    """A conversation owned by exactly one identity."""

    id: int
    user_id: int
    title: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Message(BaseModel):
    """A persisted message. Never mutated after creation."""

    id: int
    conversation_id: int
    role: Role
    content: str
    created_at: datetime

    def to_chat_message(self) -> ChatMessage:
        """Strip storage fields before sending to a provider."""
        return ChatMessage(role=self.role, content=self.content)

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe payload for realtime ``message`` events."""
        return self.model_dump(mode="json")


class ChatMessage(BaseModel):
    """Provider-neutral message: role and content only."""

    role: str
    content: str


class ModelIdentifier(BaseModel):
    """Parsed ``<provider>/<provider-model-name>`` string."""

    model_config = ConfigDict(frozen=True)

    provider: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)

    @classmethod
    def parse(cls, model_id: str) -> ModelIdentifier | None:
        """Split on the first separator. Returns None when malformed."""
        provider, sep, name = model_id.partition(MODEL_ID_SEPARATOR)
        if not sep or not provider or not name:
            return None
        return cls(provider=provider, name=name)

    def __str__(self) -> str:
        return f"{self.provider}{MODEL_ID_SEPARATOR}{self.name}"


# ============================================================================
# Collaborator Protocols
# ============================================================================


class CredentialVerifier(Protocol):
    """Validates an opaque token and resolves the identity behind it.

    Must be side-effect free and safe to call concurrently.
    """

    async def verify(self, token: str) -> Identity:
        """Return the identity or raise ``AuthenticationError``."""
        ...


class ConversationStore(Protocol):
    """Persistence the relay needs: append, ordered read, ownership."""

    async def append_message(self, conversation_id: int, role: str, content: str) -> Message:
        """Persist a message and return it with id and created_at assigned."""
        ...

    async def list_messages(self, conversation_id: int) -> list[Message]:
        """All messages of a conversation, ``created_at`` ascending, ties by id."""
        ...

    async def owned_by(self, conversation_id: int, user_id: int) -> bool:
        """Whether the conversation exists and belongs to the user."""
        ...


class Broadcaster(Protocol):
    """Room fan-out used by the pipeline."""

    async def publish(self, room: str, event: str, payload: Any) -> int:
        """Deliver to every connection in the room. Returns the number queued."""
        ...


__all__ = [
    "Broadcaster",
    "ChatMessage",
    "Conversation",
    "ConversationStore",
    "CredentialVerifier",
    "Identity",
    "Message",
    "ModelIdentifier",
    "Role",
]
