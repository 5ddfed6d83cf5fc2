"""
Conversation and message endpoints (v1).

Posting a message returns the stored user message immediately; the
assistant reply is generated afterwards and delivered over the realtime
channel.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Path, status

from api.dependencies import Pipeline, Store
from api.middleware.auth import CurrentUser
from api.middleware.exception_handlers import ConversationAccessError
from api.middleware.request_context import update_request_context
from models.schemas.chats import (
    ConversationCreate,
    ConversationResponse,
    MessageCreate,
    MessageResponse,
)

router = APIRouter()

ConversationIdPath = Annotated[
    int,
    Path(..., ge=1, description="Conversation identifier", examples=[42]),
]


@router.post(
    "",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create conversation",
)
async def create_conversation(
    user: CurrentUser,
    store: Store,
    body: ConversationCreate | None = None,
) -> ConversationResponse:
    """Create an empty conversation owned by the caller."""
    title = body.title if body else ConversationCreate().title
    conversation = await store.create_conversation(user.id, title)
    return ConversationResponse.from_conversation(conversation)


@router.get(
    "",
    response_model=list[ConversationResponse],
    summary="List conversations",
)
async def list_conversations(user: CurrentUser, store: Store) -> list[ConversationResponse]:
    """The caller's conversations, newest first."""
    conversations = await store.list_conversations(user.id)
    return [ConversationResponse.from_conversation(c) for c in conversations]


@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageResponse],
    summary="List messages",
    responses={404: {"description": "Conversation not found or not owned by caller"}},
)
async def list_messages(
    conversation_id: ConversationIdPath,
    user: CurrentUser,
    store: Store,
) -> list[MessageResponse]:
    """All messages of a conversation in creation order."""
    update_request_context(conversation_id=conversation_id)
    if not await store.owned_by(conversation_id, user.id):
        raise ConversationAccessError(conversation_id)
    messages = await store.list_messages(conversation_id)
    return [MessageResponse.from_message(m) for m in messages]


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post message",
    responses={
        404: {"description": "Conversation not found or not owned by caller"},
        422: {"description": "Empty content"},
    },
)
async def create_message(
    conversation_id: ConversationIdPath,
    body: MessageCreate,
    user: CurrentUser,
    pipeline: Pipeline,
) -> MessageResponse:
    """Store a message and broadcast it to the conversation's room.

    The reply is produced in the background with ``model`` (or the
    configured default) and broadcast to the same room when ready.
    """
    update_request_context(conversation_id=conversation_id)
    message = await pipeline.post_message(
        user,
        conversation_id,
        body.content,
        model=body.model,
    )
    return MessageResponse.from_message(message)
