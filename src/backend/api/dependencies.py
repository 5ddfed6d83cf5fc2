from __future__ import annotations

from typing import Annotated

import asyncpg

from fastapi import Depends, Request

from api.services.auth_service import AuthService
from api.services.chat_pipeline import ChatPipeline
from api.services.conversation_store import ConversationStore
from core.constants import Settings, get_settings


def get_app_settings() -> Settings:
    """Provide application settings via dependency injection.

    Usage in routes:
        @router.get("/example")
        async def example(settings: AppSettings):
            return {"debug": settings.debug}
    """
    return get_settings()


async def get_db(request: Request) -> asyncpg.Pool:
    """Get database connection pool from application state."""
    return request.app.state.db_pool


def get_credential_verifier(request: Request) -> AuthService:
    """Get the token verifier from application state."""
    return request.app.state.verifier


def get_conversation_store(request: Request) -> ConversationStore:
    return request.app.state.store


def get_chat_pipeline(request: Request) -> ChatPipeline:
    return request.app.state.pipeline


# Type aliases for cleaner route signatures
DB = Annotated[asyncpg.Pool, Depends(get_db)]
Store = Annotated[ConversationStore, Depends(get_conversation_store)]
Pipeline = Annotated[ChatPipeline, Depends(get_chat_pipeline)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
