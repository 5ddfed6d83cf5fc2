"""
Realtime error handling utilities for Chat Relay.

Provides consistent error frames and close codes for realtime connections.
"""

from __future__ import annotations

import contextlib

from typing import Any

from fastapi import WebSocket

from api.middleware.request_context import get_request_id
from core.constants import EVENT_ERROR
from models.error_models import ErrorCode, WebSocketError
from utils.logger import logger

# Close reasons are limited to 123 bytes by RFC 6455
MAX_CLOSE_REASON_BYTES = 123


class WSCloseCode:
    """WebSocket close codes for error scenarios."""

    # Standard codes
    NORMAL = 1000
    GOING_AWAY = 1001
    POLICY_VIOLATION = 1008
    INTERNAL_ERROR = 1011
    TRY_AGAIN_LATER = 1013

    # Application-specific codes (4000-4999)
    IDLE_TIMEOUT = 4000
    AUTH_REQUIRED = 4401
    AUTH_INVALID = 4403
    SLOW_CONSUMER = 4408
    SERVICE_UNAVAILABLE = 4503


ERROR_CODE_TO_WS_CLOSE: dict[ErrorCode, int] = {
    ErrorCode.AUTH_REQUIRED: WSCloseCode.AUTH_REQUIRED,
    ErrorCode.WS_AUTH_REQUIRED: WSCloseCode.AUTH_REQUIRED,
    ErrorCode.AUTH_INVALID_TOKEN: WSCloseCode.AUTH_INVALID,
    ErrorCode.AUTH_USER_NOT_FOUND: WSCloseCode.AUTH_INVALID,
    ErrorCode.WS_CONNECTION_LIMIT: WSCloseCode.SERVICE_UNAVAILABLE,
    ErrorCode.INTERNAL_ERROR: WSCloseCode.INTERNAL_ERROR,
}


def make_frame(event: str, data: Any, room: str | None = None) -> dict[str, Any]:
    """Build the ``{"event", "data"}`` frame; room fan-out adds ``room``."""
    frame: dict[str, Any] = {"event": event, "data": data}
    if room is not None:
        frame["room"] = room
    return frame


def error_payload(
    code: ErrorCode,
    message: str,
    conversation_id: int | None = None,
) -> dict[str, Any]:
    """Payload for an ``error`` event."""
    return WebSocketError(
        code=code,
        message=message,
        request_id=get_request_id(),
        conversation_id=conversation_id,
    ).to_dict()


def truncate_reason(reason: str) -> str:
    return reason.encode("utf-8")[:MAX_CLOSE_REASON_BYTES].decode("utf-8", errors="ignore")


async def close_with_error(
    websocket: WebSocket,
    code: ErrorCode,
    message: str,
    event: str = EVENT_ERROR,
) -> None:
    """Send an error frame directly and close the socket.

    Only for sockets with no writer task running, e.g. rejected before
    registration.
    """
    try:
        await websocket.send_json(make_frame(event, error_payload(code, message)))
    except Exception as e:
        logger.warning(f"Failed to send realtime error: {e}")

    ws_close_code = ERROR_CODE_TO_WS_CLOSE.get(code, WSCloseCode.INTERNAL_ERROR)
    with contextlib.suppress(Exception):
        await websocket.close(code=ws_close_code, reason=truncate_reason(message))


__all__ = [
    "ERROR_CODE_TO_WS_CLOSE",
    "WSCloseCode",
    "close_with_error",
    "error_payload",
    "make_frame",
    "truncate_reason",
]
