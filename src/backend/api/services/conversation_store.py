from __future__ import annotations

import asyncpg

from api.middleware.exception_handlers import PersistError
from models.chat_models import Conversation, Message
from utils.db_utils import DatabaseUnavailable, timed_query, with_retry
from utils.logger import logger

# Failures that mean a write did not land
PERSIST_FAILURES: tuple[type[Exception], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    DatabaseUnavailable,
    OSError,
    TimeoutError,
)


def row_to_conversation(row: asyncpg.Record) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def row_to_message(row: asyncpg.Record) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        created_at=row["created_at"],
    )


class ConversationStore:
    """Conversations and messages backed by PostgreSQL.

    Reads retry on transient connection failures. Writes do not: a retried
    insert could store the same message twice.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create_conversation(self, user_id: int, title: str) -> Conversation:
        try:
            async with self.pool.acquire() as conn, timed_query("insert"):
                row = await conn.fetchrow(
                    """
                    INSERT INTO conversations (user_id, title)
                    VALUES ($1, $2)
                    RETURNING id, user_id, title, created_at, updated_at
                    """,
                    user_id,
                    title,
                )
        except PERSIST_FAILURES as exc:
            raise PersistError("Failed to create conversation", cause=exc) from exc
        return row_to_conversation(row)

    @with_retry(max_attempts=3)
    async def list_conversations(self, user_id: int) -> list[Conversation]:
        """Conversations owned by the user, newest first."""
        async with self.pool.acquire() as conn, timed_query("select"):
            rows = await conn.fetch(
                """
                SELECT id, user_id, title, created_at, updated_at
                FROM conversations
                WHERE user_id = $1
                ORDER BY created_at DESC, id DESC
                """,
                user_id,
            )
        return [row_to_conversation(r) for r in rows]

    @with_retry(max_attempts=3)
    async def owned_by(self, conversation_id: int, user_id: int) -> bool:
        async with self.pool.acquire() as conn, timed_query("select"):
            owned = await conn.fetchval(
                "SELECT EXISTS(SELECT 1 FROM conversations WHERE id = $1 AND user_id = $2)",
                conversation_id,
                user_id,
            )
        return bool(owned)

    async def append_message(self, conversation_id: int, role: str, content: str) -> Message:
        """Insert a message and bump the conversation's ``updated_at``.

        Raises:
            PersistError: the message was not stored
        """
        try:
            async with self.pool.acquire() as conn, timed_query("insert"), conn.transaction():
                row = await conn.fetchrow(
                    """
                    INSERT INTO messages (conversation_id, role, content)
                    VALUES ($1, $2, $3)
                    RETURNING id, conversation_id, role, content, created_at
                    """,
                    conversation_id,
                    role,
                    content,
                )
                await conn.execute(
                    "UPDATE conversations SET updated_at = now() WHERE id = $1",
                    conversation_id,
                )
        except PERSIST_FAILURES as exc:
            logger.error(
                f"Failed to persist {role} message: {exc}",
                exc_info=True,
                conversation_id=conversation_id,
            )
            raise PersistError(cause=exc) from exc
        return row_to_message(row)

    @with_retry(max_attempts=3)
    async def list_messages(self, conversation_id: int) -> list[Message]:
        """All messages in creation order; id breaks timestamp ties."""
        async with self.pool.acquire() as conn, timed_query("select"):
            rows = await conn.fetch(
                """
                SELECT id, conversation_id, role, content, created_at
                FROM messages
                WHERE conversation_id = $1
                ORDER BY created_at ASC, id ASC
                """,
                conversation_id,
            )
        return [row_to_message(r) for r in rows]
