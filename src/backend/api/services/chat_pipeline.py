"""
Chat pipeline: persist a user message, fan it out, then generate, persist
and fan out the assistant reply.

User-message durability and visibility always come first and are never
undone by a later routing or provider failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import weakref

from collections.abc import Coroutine, Sequence
from typing import Any

from api.middleware.exception_handlers import (
    AppException,
    ConversationAccessError,
    InvalidInputError,
    PersistError,
    ProviderError,
    UnsupportedProviderError,
)
from core.constants import ERROR_EMPTY_CONTENT, EVENT_MESSAGE, ROLE_ASSISTANT, ROLE_USER, room_for
from integrations.providers.registry import ProviderRouter
from models.chat_models import Broadcaster, ChatMessage, ConversationStore, Identity, Message
from models.error_models import ErrorCode
from utils.logger import logger
from utils.metrics import pipeline_outcomes_total, provider_request_duration_seconds, provider_requests_total


class ChatPipeline:
    """Orchestrates one message from receipt to broadcast reply.

    The store, broadcaster and router are injected so each can be faked.
    A per-conversation lock serializes append+broadcast and the context
    read, so viewers see messages in stored order and context is always a
    committed snapshot.
    """

    def __init__(
        self,
        store: ConversationStore,
        broadcaster: Broadcaster,
        router: ProviderRouter,
        default_model: str,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.router = router
        self.default_model = default_model
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()
        self._tasks: set[asyncio.Task[Any]] = set()

    def _lock_for(self, conversation_id: int) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def post_message(
        self,
        identity: Identity,
        conversation_id: int,
        content: str,
        model: str | None = None,
    ) -> Message:
        """Persist and broadcast a user message, then schedule the reply.

        Returns the stored message as soon as it is durable and broadcast;
        reply generation continues in a tracked background task.
        """
        await self._check_input(identity, conversation_id, content)
        message = await self._append_and_publish(conversation_id, ROLE_USER, content)
        self.spawn(self._reply_in_background(conversation_id, model or self.default_model, content))
        return message

    async def complete(
        self,
        identity: Identity,
        model: str,
        messages: Sequence[ChatMessage] = (),
        stream: bool = False,
        conversation_id: int | None = None,
    ) -> tuple[ChatMessage, Message | None]:
        """Direct completion.

        With a conversation id the context is the stored history (inline
        ``messages`` are ignored) and a non-empty reply is persisted and
        broadcast. Without one, ``messages`` is passed through statelessly.
        """
        if conversation_id is not None:
            await self._check_owner(identity, conversation_id)
            return await self.generate_reply(conversation_id, model, stream=stream)

        if not messages:
            pipeline_outcomes_total.labels(state="rejected_input").inc()
            raise InvalidInputError("messages must not be empty")

        start = time.perf_counter()
        reply = await self._dispatch(model, messages, stream)
        pipeline_outcomes_total.labels(state="done").inc()
        logger.log_relay_turn(
            None,
            model,
            messages[-1].content,
            reply.content,
            duration_ms=(time.perf_counter() - start) * 1000,
            persisted=False,
        )
        return reply, None

    async def generate_reply(
        self,
        conversation_id: int,
        model: str,
        stream: bool = False,
    ) -> tuple[ChatMessage, Message | None]:
        """Build context from the store, dispatch, persist and broadcast the reply.

        Returns the provider reply and the stored assistant message, which is
        None when the provider produced no text.
        """
        start = time.perf_counter()

        async with self._lock_for(conversation_id):
            history = await self.store.list_messages(conversation_id)
        context = build_context(history)
        if not context:
            pipeline_outcomes_total.labels(state="rejected_input").inc()
            raise InvalidInputError("Conversation has no messages to reply to")

        reply = await self._dispatch(model, context, stream)

        stored: Message | None = None
        if reply.content.strip():
            stored = await self._append_and_publish(conversation_id, ROLE_ASSISTANT, reply.content)
        else:
            logger.info(f"Provider returned no text for {model}; nothing persisted", conversation_id=conversation_id)

        pipeline_outcomes_total.labels(state="done").inc()
        logger.log_relay_turn(
            conversation_id,
            model,
            context[-1].content if context else "",
            reply.content,
            duration_ms=(time.perf_counter() - start) * 1000,
            persisted=stored is not None,
        )
        return reply, stored

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _check_input(self, identity: Identity, conversation_id: int, content: str) -> None:
        if not content or not content.strip():
            pipeline_outcomes_total.labels(state="rejected_input").inc()
            raise InvalidInputError(ERROR_EMPTY_CONTENT, code=ErrorCode.VALIDATION_EMPTY_CONTENT)
        await self._check_owner(identity, conversation_id)

    async def _check_owner(self, identity: Identity, conversation_id: int) -> None:
        if not await self.store.owned_by(conversation_id, identity.id):
            pipeline_outcomes_total.labels(state="rejected_input").inc()
            raise ConversationAccessError(conversation_id)

    async def _append_and_publish(self, conversation_id: int, role: str, content: str) -> Message:
        async with self._lock_for(conversation_id):
            try:
                message = await self.store.append_message(conversation_id, role, content)
            except PersistError:
                pipeline_outcomes_total.labels(state="persist_failed").inc()
                raise
            await self._publish(message)
        return message

    async def _publish(self, message: Message) -> None:
        """Best-effort fan-out; delivery problems never fail the pipeline."""
        room = room_for(message.conversation_id)
        try:
            delivered = await self.broadcaster.publish(room, EVENT_MESSAGE, message.to_payload())
        except Exception as e:
            logger.warning(f"Broadcast of message {message.id} to {room} failed: {e}")
            return
        logger.debug(f"Broadcast {message.role} message {message.id} to {delivered} viewer(s) in {room}")

    async def _dispatch(self, model: str, context: Sequence[ChatMessage], stream: bool) -> ChatMessage:
        try:
            adapter, model_name = self.router.resolve(model)
        except UnsupportedProviderError:
            pipeline_outcomes_total.labels(state="route_failed").inc()
            raise

        start = time.perf_counter()
        try:
            reply = await adapter.complete(model_name, context, stream=stream)
        except ProviderError as e:
            provider_requests_total.labels(provider=adapter.name, outcome="error").inc()
            pipeline_outcomes_total.labels(state="provider_failed").inc()
            logger.warning(f"Provider call failed for {model}: {e.message}", status=e.status)
            raise
        finally:
            provider_request_duration_seconds.labels(provider=adapter.name).observe(time.perf_counter() - start)

        outcome = "success" if reply.content.strip() else "empty"
        provider_requests_total.labels(provider=adapter.name, outcome=outcome).inc()
        return reply

    # ------------------------------------------------------------------
    # Background replies
    # ------------------------------------------------------------------

    async def _reply_in_background(self, conversation_id: int, model: str, prompt: str) -> None:
        try:
            await self.generate_reply(conversation_id, model)
        except AppException as e:
            # The user message is already stored and broadcast; nothing to undo
            logger.error(
                f"Reply generation failed for conversation {conversation_id}: {e.code.value} {e.message}",
                conversation_id=conversation_id,
                model=model,
                prompt_chars=len(prompt),
            )
        except Exception as e:
            logger.error(
                f"Unexpected error generating reply for conversation {conversation_id}: {e}",
                exc_info=True,
                conversation_id=conversation_id,
                model=model,
            )

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run ``coro`` in the background, keeping a strong reference until done."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending_replies(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 30.0) -> None:
        """Wait for in-flight replies, cancelling whatever is left after ``timeout``."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        logger.info(f"Waiting for {len(pending)} in-flight replies (timeout: {timeout}s)")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        for task in still_running:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} replies still running at shutdown")


def build_context(history: Sequence[Message]) -> list[ChatMessage]:
    """Ordered role/content pairs with each stored message included once."""
    ordered = sorted(history, key=lambda m: (m.created_at, m.id))
    seen: set[int] = set()
    context: list[ChatMessage] = []
    for message in ordered:
        if message.id in seen:
            continue
        seen.add(message.id)
        context.append(message.to_chat_message())
    return context
