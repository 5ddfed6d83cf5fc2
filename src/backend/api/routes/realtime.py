"""
Realtime endpoint.

Speaks JSON frames ``{"event": <name>, "data": <payload>}``. Clients
authenticate with an ``auth`` event (or a ``token`` query parameter), then
``joinChat``/``leaveChat`` conversation rooms to receive ``message`` events.
"""

from __future__ import annotations

import asyncio
import contextlib
import json

from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from api.middleware.request_context import create_websocket_context
from api.websocket.errors import close_with_error, error_payload
from api.websocket.manager import Connection, ConnectionRegistry
from core.constants import (
    ERROR_INVALID_CONVERSATION_ID,
    EVENT_AUTH,
    EVENT_ERROR,
    EVENT_JOIN_CHAT,
    EVENT_LEAVE_CHAT,
    EVENT_PING,
    EVENT_PONG,
    get_settings,
)
from models.error_models import ErrorCode
from utils.logger import logger
from utils.metrics import ws_messages_total

router = APIRouter()


@router.websocket("/ws")
async def realtime_websocket(
    websocket: WebSocket,
    token: str | None = Query(default=None),
) -> None:
    """Realtime endpoint for room membership and message fan-out."""
    registry: ConnectionRegistry = websocket.app.state.registry
    settings = get_settings()

    client_ip = websocket.client.host if websocket.client else None
    create_websocket_context(client_ip=client_ip)

    connection = await registry.register(websocket)
    if connection is None:
        if websocket.client_state != WebSocketState.CONNECTING:
            # Accepted and already closed by a concurrent shutdown
            return
        # Not yet accepted; accept so the close code reaches the client
        await websocket.accept()
        await close_with_error(
            websocket,
            code=ErrorCode.WS_CONNECTION_LIMIT,
            message="Service unavailable - connection limit reached",
        )
        return

    try:
        if token and await registry.handshake(connection, token) is None:
            return

        keepalive_task = asyncio.create_task(_keepalive(registry, connection, settings.ws_heartbeat_interval))
        try:
            async for raw in websocket.iter_text():
                await registry.touch(connection)
                ws_messages_total.labels(direction="inbound").inc()
                if not await handle_frame(registry, connection, raw):
                    break
        finally:
            keepalive_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await keepalive_task
    except WebSocketDisconnect:
        pass  # Normal client disconnect
    except RuntimeError as e:
        # Raised when the socket was closed by the writer (slow consumer, idle)
        if "not connected" not in str(e).lower() and "disconnect" not in str(e).lower():
            raise
    finally:
        await registry.disconnect(connection)


async def handle_frame(registry: ConnectionRegistry, connection: Connection, raw: str) -> bool:
    """Dispatch one inbound frame. Returns False once the connection is closed."""
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        registry.emit(connection, EVENT_ERROR, error_payload(ErrorCode.WS_MESSAGE_INVALID, "Frame is not valid JSON"))
        return True

    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        registry.emit(connection, EVENT_ERROR, error_payload(ErrorCode.WS_MESSAGE_INVALID, "Frame needs an 'event'"))
        return True

    event: str = frame["event"]
    data: Any = frame.get("data")

    if event == EVENT_AUTH:
        identity = await registry.handshake(connection, _token_from(data))
        return identity is not None

    if event in (EVENT_JOIN_CHAT, EVENT_LEAVE_CHAT):
        conversation_id = parse_conversation_id(data)
        if conversation_id is None:
            registry.emit(
                connection,
                EVENT_ERROR,
                error_payload(ErrorCode.VALIDATION_ERROR, ERROR_INVALID_CONVERSATION_ID),
            )
            return True
        if event == EVENT_JOIN_CHAT:
            await registry.join(connection, conversation_id)
        else:
            await registry.leave(connection, conversation_id)
        return True

    if event == EVENT_PING:
        registry.emit(connection, EVENT_PONG, data)
        return True

    logger.debug(f"Unknown realtime event '{event}' from {connection.id}")
    registry.emit(connection, EVENT_ERROR, error_payload(ErrorCode.WS_MESSAGE_INVALID, f"Unknown event '{event}'"))
    return True


def _token_from(data: Any) -> str | None:
    if isinstance(data, str):
        return data
    if isinstance(data, dict) and isinstance(data.get("token"), str):
        return data["token"]
    return None


def parse_conversation_id(data: Any) -> int | None:
    """Accept ``42``, ``"42"`` or ``{"conversation_id": 42}``."""
    if isinstance(data, dict):
        data = data.get("conversation_id", data.get("chat_id"))
    if isinstance(data, bool):
        return None
    if isinstance(data, int):
        return data if data > 0 else None
    if isinstance(data, str):
        try:
            value = int(data.strip())
        except ValueError:
            return None
        return value if value > 0 else None
    return None


async def _keepalive(registry: ConnectionRegistry, connection: Connection, interval: float) -> None:
    """Queue periodic ping frames."""
    while not connection.closed:
        await asyncio.sleep(interval)
        registry.emit(connection, EVENT_PING, None)
