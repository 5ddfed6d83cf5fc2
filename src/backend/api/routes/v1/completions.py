"""
Direct completion endpoint (v1).
"""

from __future__ import annotations

from fastapi import APIRouter

from api.dependencies import Pipeline
from api.middleware.auth import CurrentUser
from api.middleware.request_context import update_request_context
from models.schemas.chats import CompletionRequest, CompletionResponse

router = APIRouter()


@router.post(
    "/completions",
    response_model=CompletionResponse,
    summary="Create completion",
    responses={
        400: {"description": "Model identifier does not name a registered provider"},
        404: {"description": "Conversation not found or not owned by caller"},
        502: {"description": "Provider returned an error"},
        504: {"description": "Provider timed out"},
    },
)
async def create_completion(
    body: CompletionRequest,
    user: CurrentUser,
    pipeline: Pipeline,
) -> CompletionResponse:
    """Ask a provider for one reply.

    With ``conversation_id`` the stored history is the context and the
    reply is persisted and broadcast. Without it, ``messages`` is sent as-is
    and nothing is stored.
    """
    if body.conversation_id is not None:
        update_request_context(conversation_id=body.conversation_id)

    reply, stored = await pipeline.complete(
        user,
        body.model,
        messages=body.messages,
        stream=body.stream,
        conversation_id=body.conversation_id,
    )
    return CompletionResponse(
        model=body.model,
        message=reply,
        conversation_id=body.conversation_id,
        message_id=stored.id if stored else None,
    )
