"""Tests for chat domain models and API schemas."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from pydantic import ValidationError

from models.chat_models import ChatMessage, Identity, Message
from models.error_models import ErrorCode, WebSocketError, get_status_code
from models.schemas.chats import CompletionRequest, ConversationCreate, MessageCreate


class TestMessage:
    def test_to_chat_message_drops_storage_fields(self) -> None:
        message = Message(
            id=1,
            conversation_id=42,
            role="user",
            content="hi",
            created_at=datetime(2025, 1, 15, 10, 30, tzinfo=UTC),
        )

        assert message.to_chat_message() == ChatMessage(role="user", content="hi")

    def test_payload_is_json_safe(self) -> None:
        message = Message(
            id=1,
            conversation_id=42,
            role="assistant",
            content="hello",
            created_at=datetime(2025, 1, 15, 10, 30, tzinfo=UTC),
        )

        payload = message.to_payload()

        assert payload["created_at"] == "2025-01-15T10:30:00Z"
        assert payload["conversation_id"] == 42

    def test_role_is_restricted(self) -> None:
        with pytest.raises(ValidationError):
            Message(id=1, conversation_id=1, role="system", content="x", created_at=datetime.now(UTC))


class TestIdentity:
    def test_frozen_and_hashable(self) -> None:
        identity = Identity(id=7, email="user@example.com")

        with pytest.raises(ValidationError):
            identity.id = 8  # type: ignore[misc]
        assert identity == Identity(id=7, email="user@example.com")
        assert len({identity, Identity(id=7, email="user@example.com")}) == 1


class TestSchemas:
    def test_conversation_title_defaults(self) -> None:
        assert ConversationCreate().title == "New Chat"
        assert ConversationCreate(title="   ").title == "New Chat"
        assert ConversationCreate(title=" Trip ").title == "Trip"

    def test_message_create_defaults(self) -> None:
        body = MessageCreate(content="hi")

        assert body.role == "user"
        assert body.model is None

    def test_message_create_rejects_blank(self) -> None:
        with pytest.raises(ValidationError, match="content must not be empty"):
            MessageCreate(content=" \n ")

    @pytest.mark.parametrize("role", ["assistant", "system"])
    def test_message_create_accepts_only_user_role(self, role: str) -> None:
        with pytest.raises(ValidationError):
            MessageCreate(role=role, content="hi")

    def test_completion_request_defaults(self) -> None:
        body = CompletionRequest(model="ollama/llama3")

        assert body.messages == []
        assert body.stream is False
        assert body.conversation_id is None


class TestErrorModels:
    @pytest.mark.parametrize(
        ("code", "status"),
        [
            (ErrorCode.AUTH_REQUIRED, 401),
            (ErrorCode.CONVERSATION_NOT_FOUND, 404),
            (ErrorCode.VALIDATION_EMPTY_CONTENT, 422),
            (ErrorCode.PROVIDER_UNSUPPORTED, 400),
            (ErrorCode.PROVIDER_ERROR, 502),
            (ErrorCode.PROVIDER_TIMEOUT, 504),
            (ErrorCode.PERSIST_FAILED, 500),
            (ErrorCode.INTERNAL_ERROR, 500),
        ],
    )
    def test_status_codes(self, code: ErrorCode, status: int) -> None:
        assert get_status_code(code) == status

    def test_websocket_error_omits_none(self) -> None:
        error = WebSocketError(code=ErrorCode.WS_MESSAGE_INVALID, message="bad frame")

        payload = error.to_dict()

        assert payload["code"] == "WS_6002"
        assert "request_id" not in payload
        assert "conversation_id" not in payload
        assert "timestamp" in payload
