from __future__ import annotations

import asyncio
import contextlib
import secrets
import time

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import WebSocket

from api.middleware.exception_handlers import AuthenticationError
from api.middleware.request_context import update_request_context
from api.websocket.errors import WSCloseCode, error_payload, make_frame, truncate_reason
from core.constants import (
    ERROR_CONVERSATION_NOT_FOUND,
    ERROR_NOT_AUTHENTICATED,
    EVENT_AUTH_ERROR,
    EVENT_AUTHENTICATED,
    EVENT_ERROR,
    EVENT_JOINED_CHAT,
    EVENT_LEFT_CHAT,
    EVENT_SERVER_SHUTDOWN,
    room_for,
)
from models.chat_models import ConversationStore, CredentialVerifier, Identity
from models.error_models import ErrorCode
from utils.logger import logger
from utils.metrics import (
    ws_connections_active,
    ws_connections_total,
    ws_deliveries_dropped_total,
    ws_handshakes_total,
    ws_messages_total,
)

CONNECTION_ID_PREFIX = "conn_"


class Connection:
    """One live realtime channel.

    Frames are never written to the socket directly: they go through a
    bounded outbox drained by a single writer task, so one slow viewer
    only ever fills its own queue.
    """

    def __init__(
        self,
        websocket: WebSocket,
        outbox_size: int,
        send_timeout: float,
        on_send_failure: Callable[[Connection], Awaitable[None]],
    ) -> None:
        self.id = f"{CONNECTION_ID_PREFIX}{secrets.token_hex(6)}"
        self.websocket = websocket
        self.identity: Identity | None = None
        self.rooms: set[str] = set()
        self.last_activity = time.monotonic()
        self.closed = False
        self.send_timeout = send_timeout
        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=outbox_size)
        self._on_send_failure = on_send_failure
        self._writer: asyncio.Task[None] | None = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop(), name=f"ws-writer-{self.id}")

    def offer(self, frame: dict[str, Any]) -> bool:
        """Queue a frame without waiting. False when closed or the outbox is full."""
        if self.closed:
            return False
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await asyncio.wait_for(self.websocket.send_json(frame), timeout=self.send_timeout)
            except TimeoutError:
                logger.warning(f"Closing slow realtime connection {self.id}: send exceeded {self.send_timeout}s")
                await self._on_send_failure(self)
                return
            except Exception as e:
                logger.info(f"Realtime send failed on {self.id}, closing: {e}")
                await self._on_send_failure(self)
                return
            ws_messages_total.labels(direction="outbound").inc()

    async def _stop_writer(self) -> None:
        task = self._writer
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def close(
        self,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
        final_frame: dict[str, Any] | None = None,
    ) -> None:
        """Stop the writer, optionally send one last frame, then close the socket."""
        if self.closed:
            return
        self.closed = True
        await self._stop_writer()
        if final_frame is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(self.websocket.send_json(final_frame), timeout=self.send_timeout)
        with contextlib.suppress(Exception):
            await self.websocket.close(code=code, reason=truncate_reason(reason))


class ConnectionRegistry:
    """Live realtime connections, their identities, and room memberships.

    ``_connections``, ``_rooms`` and ``_pending_accepts`` are only touched
    while holding ``_lock``. Nothing awaits a socket under the lock: accepts
    run on a reserved slot outside it, and publishing enqueues with
    ``put_nowait``, so a disconnect can never be observed half-applied.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        store: ConversationStore,
        *,
        max_connections: int = 500,
        outbox_size: int = 64,
        send_timeout: float = 5.0,
        idle_timeout_seconds: float = 600.0,
    ) -> None:
        self.verifier = verifier
        self.store = store
        self.max_connections = max_connections
        self.outbox_size = outbox_size
        self.send_timeout = send_timeout
        self.idle_timeout = idle_timeout_seconds
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[Connection]] = {}
        self._lock = asyncio.Lock()
        self._pending_accepts = 0
        self._idle_checker_task: asyncio.Task[None] | None = None
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def register(self, websocket: WebSocket) -> Connection | None:
        """Accept the socket and track it as an unauthenticated connection.

        Returns:
            The connection, or None if rejected due to shutdown or limits
            (the socket is left unaccepted). A socket accepted while shutdown
            began is closed with 1001 before returning None.
        """
        async with self._lock:
            if self._shutting_down:
                logger.warning("Rejecting realtime connection during shutdown")
                return None
            if len(self._connections) + self._pending_accepts >= self.max_connections:
                logger.warning(f"Rejecting realtime connection: max connections ({self.max_connections}) reached")
                return None
            self._pending_accepts += 1

        # The slot is reserved; the handshake itself runs without the lock
        try:
            await websocket.accept()
        except BaseException:
            async with self._lock:
                self._pending_accepts -= 1
            raise

        connection = Connection(
            websocket,
            outbox_size=self.outbox_size,
            send_timeout=self.send_timeout,
            on_send_failure=self._handle_send_failure,
        )
        async with self._lock:
            self._pending_accepts -= 1
            if not self._shutting_down:
                self._connections[connection.id] = connection
                connection.start()

        if connection.id not in self._connections:
            # Shutdown began while the socket was being accepted
            await connection.close(code=WSCloseCode.GOING_AWAY, reason="Server shutdown")
            return None

        ws_connections_active.inc()
        ws_connections_total.inc()
        logger.info(f"Realtime connection {connection.id} opened (total: {self.connection_count})")
        return connection

    async def disconnect(
        self,
        connection: Connection,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
        final_frame: dict[str, Any] | None = None,
    ) -> None:
        """Drop the connection and every room membership in one step, then close it."""
        async with self._lock:
            removed = self._connections.pop(connection.id, None) is not None
            for room in connection.rooms:
                members = self._rooms.get(room)
                if members is not None:
                    members.discard(connection)
                    if not members:
                        del self._rooms[room]
            connection.rooms.clear()

        await connection.close(code=code, reason=reason, final_frame=final_frame)

        if removed:
            ws_connections_active.dec()
            logger.info(f"Realtime connection {connection.id} closed (total: {self.connection_count})")

    async def _handle_send_failure(self, connection: Connection) -> None:
        await self.disconnect(connection, code=WSCloseCode.SLOW_CONSUMER, reason="Send failed")

    async def touch(self, connection: Connection) -> None:
        connection.last_activity = time.monotonic()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def emit(self, connection: Connection, event: str, data: Any) -> bool:
        """Queue a frame for a single connection."""
        delivered = connection.offer(make_frame(event, data))
        if not delivered and not connection.closed:
            ws_deliveries_dropped_total.inc()
            logger.warning(f"Dropped '{event}' for {connection.id}: outbox full")
        return delivered

    async def handshake(self, connection: Connection, token: str | None) -> Identity | None:
        """Authenticate the connection. On failure the connection is closed."""
        if not token:
            ws_handshakes_total.labels(outcome="failure").inc()
            await self.disconnect(
                connection,
                code=WSCloseCode.AUTH_REQUIRED,
                reason=ERROR_NOT_AUTHENTICATED,
                final_frame=make_frame(EVENT_AUTH_ERROR, error_payload(ErrorCode.WS_AUTH_REQUIRED, "Token required")),
            )
            return None

        try:
            identity = await self.verifier.verify(token)
        except AuthenticationError as e:
            ws_handshakes_total.labels(outcome="failure").inc()
            logger.info(f"Realtime handshake rejected for {connection.id}: {e.message}")
            await self.disconnect(
                connection,
                code=WSCloseCode.AUTH_INVALID,
                reason=e.message,
                final_frame=make_frame(EVENT_AUTH_ERROR, error_payload(e.code, e.message)),
            )
            return None
        except Exception as e:
            ws_handshakes_total.labels(outcome="failure").inc()
            logger.error(f"Realtime handshake failed for {connection.id}: {e}", exc_info=True)
            await self.disconnect(
                connection,
                code=WSCloseCode.INTERNAL_ERROR,
                reason="Authentication unavailable",
                final_frame=make_frame(
                    EVENT_AUTH_ERROR, error_payload(ErrorCode.INTERNAL_ERROR, "Authentication unavailable")
                ),
            )
            return None

        async with self._lock:
            if connection.id not in self._connections:
                return None
            if connection.identity is not None and connection.identity.id != identity.id:
                # Memberships were authorized for the previous identity
                self._drop_rooms_locked(connection)
            connection.identity = identity

        ws_handshakes_total.labels(outcome="success").inc()
        update_request_context(user_id=identity.id)
        self.emit(connection, EVENT_AUTHENTICATED, identity.id)
        logger.info(f"Realtime connection {connection.id} authenticated as user {identity.id}")
        return identity

    async def join(self, connection: Connection, conversation_id: int) -> bool:
        """Add a room membership if the bound identity owns the conversation."""
        identity = connection.identity
        if identity is None:
            self.emit(connection, EVENT_ERROR, error_payload(ErrorCode.WS_AUTH_REQUIRED, ERROR_NOT_AUTHENTICATED))
            return False

        try:
            owned = await self.store.owned_by(conversation_id, identity.id)
        except Exception as e:
            logger.error(f"Ownership check failed for conversation {conversation_id}: {e}", exc_info=True)
            self.emit(
                connection,
                EVENT_ERROR,
                error_payload(ErrorCode.DATABASE_ERROR, "Could not join chat", conversation_id),
            )
            return False

        if not owned:
            self.emit(
                connection,
                EVENT_ERROR,
                error_payload(ErrorCode.CONVERSATION_NOT_FOUND, ERROR_CONVERSATION_NOT_FOUND, conversation_id),
            )
            return False

        room = room_for(conversation_id)
        async with self._lock:
            # Identity may have changed or the connection closed during the ownership check
            if connection.id not in self._connections or connection.identity != identity:
                return False
            self._rooms.setdefault(room, set()).add(connection)
            connection.rooms.add(room)

        self.emit(connection, EVENT_JOINED_CHAT, conversation_id)
        logger.debug(f"{connection.id} joined {room}")
        return True

    async def leave(self, connection: Connection, conversation_id: int) -> bool:
        """Remove a room membership. Leaving a room not joined is a no-op."""
        if connection.identity is None:
            self.emit(connection, EVENT_ERROR, error_payload(ErrorCode.WS_AUTH_REQUIRED, ERROR_NOT_AUTHENTICATED))
            return False

        room = room_for(conversation_id)
        async with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._rooms[room]
            connection.rooms.discard(room)

        self.emit(connection, EVENT_LEFT_CHAT, conversation_id)
        return True

    async def publish(self, room: str, event: str, payload: Any) -> int:
        """Queue ``payload`` for every connection currently in ``room``.

        Returns:
            Number of connections the frame was queued for. Viewers with a
            full outbox miss the event.
        """
        frame = make_frame(event, payload, room=room)
        delivered = 0
        dropped = 0
        async with self._lock:
            for connection in self._rooms.get(room, ()):
                if connection.offer(frame):
                    delivered += 1
                else:
                    dropped += 1

        if dropped:
            ws_deliveries_dropped_total.inc(dropped)
            logger.warning(f"Dropped '{event}' in {room} for {dropped} slow connection(s)")
        return delivered

    def _drop_rooms_locked(self, connection: Connection) -> None:
        for room in connection.rooms:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._rooms[room]
        connection.rooms.clear()

    # ------------------------------------------------------------------
    # Idle checking & shutdown
    # ------------------------------------------------------------------

    async def start_idle_checker(self) -> None:
        """Start background task to close idle connections."""
        if self._idle_checker_task is None:
            self._idle_checker_task = asyncio.create_task(self._check_idle_connections())
            logger.info(f"Realtime idle checker started (timeout: {self.idle_timeout}s)")

    async def stop_idle_checker(self) -> None:
        if self._idle_checker_task:
            self._idle_checker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._idle_checker_task
            self._idle_checker_task = None
            logger.info("Realtime idle checker stopped")

    async def _check_idle_connections(self) -> None:
        check_interval = min(60.0, self.idle_timeout / 2)
        while True:
            await asyncio.sleep(check_interval)
            await self._close_idle_connections()

    async def _close_idle_connections(self) -> None:
        now = time.monotonic()
        async with self._lock:
            idle = [c for c in self._connections.values() if now - c.last_activity > self.idle_timeout]

        # Closed outside the lock; disconnect takes it again
        for connection in idle:
            logger.info(f"Closing idle realtime connection {connection.id}")
            await self.disconnect(connection, code=WSCloseCode.IDLE_TIMEOUT, reason="Idle timeout")

    async def graceful_shutdown(self, timeout: float = 10.0) -> None:
        """Notify every connection, then close them all within ``timeout``."""
        self._shutting_down = True
        logger.info(f"Initiating graceful realtime shutdown (timeout: {timeout}s)")

        await self.stop_idle_checker()

        async with self._lock:
            connections = list(self._connections.values())
        for connection in connections:
            self.emit(connection, EVENT_SERVER_SHUTDOWN, {"message": "Server is shutting down"})

        # Give writers a moment to flush the notice
        if connections:
            await asyncio.sleep(0.5)

        close_tasks = [
            self.disconnect(connection, code=WSCloseCode.GOING_AWAY, reason="Server shutdown")
            for connection in connections
        ]
        if close_tasks:
            try:
                await asyncio.wait_for(asyncio.gather(*close_tasks), timeout=timeout)
            except TimeoutError:
                logger.warning(f"Timeout closing {len(close_tasks)} realtime connections")

        logger.info(f"Realtime shutdown complete (closed {len(connections)} connections)")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def room_members(self, room: str) -> set[Connection]:
        """Snapshot of a room's members."""
        return set(self._rooms.get(room, ()))

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_connections": self.connection_count,
            "authenticated_connections": sum(1 for c in self._connections.values() if c.authenticated),
            "active_rooms": self.room_count,
            "max_connections": self.max_connections,
            "outbox_size": self.outbox_size,
            "idle_timeout": self.idle_timeout,
            "shutting_down": self._shutting_down,
        }
