"""
Standardized error response models for Chat Relay API.

Provides consistent error formatting across REST and realtime endpoints
with support for request tracking and error categorization.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Application-specific error codes for categorization."""

    # Authentication errors (1xxx)
    AUTH_REQUIRED = "AUTH_1001"
    AUTH_INVALID_TOKEN = "AUTH_1002"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_1004"
    AUTH_USER_NOT_FOUND = "AUTH_1005"

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VAL_2001"
    VALIDATION_EMPTY_CONTENT = "VAL_2005"

    # Resource errors (3xxx)
    RESOURCE_NOT_FOUND = "RES_3001"
    CONVERSATION_NOT_FOUND = "RES_3010"

    # Realtime errors (6xxx)
    WS_MESSAGE_INVALID = "WS_6002"
    WS_AUTH_REQUIRED = "WS_6003"
    WS_CONNECTION_LIMIT = "WS_6006"

    # Provider errors (7xxx)
    PROVIDER_UNSUPPORTED = "EXT_7004"
    PROVIDER_ERROR = "EXT_7010"
    PROVIDER_TIMEOUT = "EXT_7002"

    # Database errors (8xxx)
    DATABASE_ERROR = "DB_8001"
    PERSIST_FAILED = "DB_8005"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "INT_9001"
    INTERNAL_UNEXPECTED = "INT_9999"


class ErrorDetail(BaseModel):
    """Detailed information about a specific validation or sub-error."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """Standardized error response model for REST endpoints.

    Example response:
    {
        "error": {
            "code": "RES_3010",
            "message": "Chat not found or unauthorized",
            "request_id": "req_abc123",
            "timestamp": "2025-01-15T10:30:00Z",
            "path": "/api/v1/chats/42/messages"
        }
    }
    """

    code: ErrorCode
    message: str
    request_id: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: list[ErrorDetail] | None = None
    path: str | None = None
    # Debug info - only included in development mode
    debug: dict[str, Any] | None = Field(default=None, exclude=True)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        data = self.model_dump(mode="json", exclude_none=True)
        if include_debug and self.debug:
            data["debug"] = self.debug
        return {"error": data}


class WebSocketError(BaseModel):
    """Payload of an ``error`` event sent over a realtime connection.

    Example frame:
    {
        "event": "error",
        "data": {
            "code": "RES_3010",
            "message": "Chat not found or unauthorized",
            "request_id": "ws_abc123"
        }
    }
    """

    code: ErrorCode
    message: str
    request_id: str | None = None
    conversation_id: int | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the event payload."""
        return self.model_dump(mode="json", exclude_none=True)


# HTTP status code mappings for error codes
ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    # 400 Bad Request
    ErrorCode.PROVIDER_UNSUPPORTED: 400,
    # 401 Unauthorized
    ErrorCode.AUTH_REQUIRED: 401,
    ErrorCode.AUTH_INVALID_TOKEN: 401,
    ErrorCode.AUTH_USER_NOT_FOUND: 401,
    # 403 Forbidden
    ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS: 403,
    # 404 Not Found
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.CONVERSATION_NOT_FOUND: 404,
    # 422 Unprocessable Entity
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.VALIDATION_EMPTY_CONTENT: 422,
    # 500 Internal Server Error
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.INTERNAL_UNEXPECTED: 500,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.PERSIST_FAILED: 500,
    # 502 Bad Gateway
    ErrorCode.PROVIDER_ERROR: 502,
    # 504 Gateway Timeout
    ErrorCode.PROVIDER_TIMEOUT: 504,
}


def get_status_code(error_code: ErrorCode) -> int:
    """Get HTTP status code for an error code."""
    return ERROR_CODE_TO_STATUS.get(error_code, 500)


__all__ = [
    "ERROR_CODE_TO_STATUS",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "WebSocketError",
    "get_status_code",
]
