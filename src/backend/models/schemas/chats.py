"""
Chat API schemas.

Request and response models for conversations, messages, and
model completions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.chat_models import ChatMessage, Conversation, Message, Role


class ConversationCreate(BaseModel):
    """Request body for creating a conversation."""

    title: str = Field(default="New Chat", max_length=255, description="Conversation title")

    @field_validator("title")
    @classmethod
    def default_blank_title(cls, v: str) -> str:
        return v.strip() or "New Chat"


class ConversationResponse(BaseModel):
    """A conversation as returned to its owner."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 42,
                "user_id": 7,
                "title": "New Chat",
                "created_at": "2025-01-15T10:30:00Z",
                "updated_at": "2025-01-15T10:30:00Z",
            }
        }
    )

    id: int
    user_id: int
    title: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> ConversationResponse:
        return cls(**conversation.model_dump())


class MessageCreate(BaseModel):
    """Request body for posting a message into a conversation."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "role": "user",
                "content": "Hello there",
                "model": "ollama/llama3",
            }
        }
    )

    role: Literal["user"] = Field(default="user", description="Message role; replies are produced by the service")
    content: str = Field(..., description="Message text")
    model: str | None = Field(
        default=None,
        description="Model identifier for the reply; the configured default when omitted",
    )

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be empty")
        return v


class MessageResponse(BaseModel):
    """A persisted message."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 101,
                "conversation_id": 42,
                "role": "user",
                "content": "Hello there",
                "created_at": "2025-01-15T10:30:00Z",
            }
        }
    )

    id: int
    conversation_id: int
    role: Role
    content: str
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> MessageResponse:
        return cls(**message.model_dump())


class CompletionRequest(BaseModel):
    """Request body for a direct model completion."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "model": "openai/gpt-4o-mini",
                "messages": [{"role": "user", "content": "Summarize our chat"}],
                "stream": False,
                "conversation_id": 42,
            }
        }
    )

    model: str = Field(..., description="Provider-prefixed model identifier")
    messages: list[ChatMessage] = Field(default_factory=list, description="Context for stateless calls")
    stream: bool = Field(default=False, description="Accepted for compatibility; replies are never streamed")
    conversation_id: int | None = Field(
        default=None,
        description="When set, context is the stored history and the reply is persisted and broadcast",
    )


class CompletionResponse(BaseModel):
    """Assistant reply from a completion call."""

    model: str
    message: ChatMessage
    conversation_id: int | None = None
    message_id: int | None = Field(default=None, description="Id of the persisted reply, if any")
