"""Realtime utilities for Chat Relay.

Provides connection/room management and error frame helpers.
"""

from __future__ import annotations

from api.websocket.errors import WSCloseCode, close_with_error, error_payload, make_frame
from api.websocket.manager import Connection, ConnectionRegistry

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "WSCloseCode",
    "close_with_error",
    "error_payload",
    "make_frame",
]
