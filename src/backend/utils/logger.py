"""
Logging setup for Chat Relay using Python's standard logging
with JSON formatting for structured logs.

Log destinations:
- Console (stderr): Human-readable format for debugging
- logs/relay.jsonl: JSON format for relay activity (messages, replies, connections)
- logs/errors.jsonl: JSON format for error tracking
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import uuid

from typing import Any, cast

from pythonjsonlogger import json as jsonlogger

from api.middleware.request_context import get_request_context
from core.constants import (
    INSTANCE_ID_LENGTH,
    LOG_BACKUP_COUNT_ERRORS,
    LOG_BACKUP_COUNT_RELAY,
    LOG_MAX_SIZE,
    LOG_PREVIEW_LENGTH,
    PROJECT_ROOT,
    get_settings,
)

# PII Redaction patterns
REDACTION_PATTERNS = [
    (r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", "[EMAIL]"),
    (r"\b(?:\d{4}[- ]?){3}\d{4}\b", "[CARD]"),
    (r"\b(sk-|pk-|api[-_]?key[-_]?)[A-Za-z0-9]{20,}\b", "[API_KEY]"),
    (r"\b(password|secret|token)\s*[:=]\s*\S+", "[REDACTED]"),
]


class RelayFilter(logging.Filter):
    """Allow INFO and above into the relay log."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.INFO


class ErrorFilter(logging.Filter):
    """Only allow ERROR and CRITICAL logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that colors the level and standardizes layout.
    Format: HH:MM:SS [LEVEL] logger_name - message
    """

    GREY = "\x1b[38;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def _status_color(self, status_code: int) -> str:
        if status_code < 400:
            return self.GREEN
        if status_code < 500:
            return self.YELLOW
        return self.RED

    def format(self, record: logging.LogRecord) -> str:
        level_fmt = f"[{record.levelname}]"
        color = self.LEVEL_COLORS.get(record.levelno)
        if color:
            level_fmt = f"{color}{level_fmt}{self.RESET}"

        record.asctime = self.formatTime(record, "%H:%M:%S")

        # uvicorn access args: (client_addr, method, full_path, http_version, status_code)
        if record.name == "uvicorn.access" and record.args and len(record.args) == 5:
            client_addr, method, full_path, http_version, status_code = cast(tuple[Any, ...], record.args)
            status_fmt = f"{self._status_color(int(status_code))}{status_code}{self.RESET}"
            message = f'{client_addr} - "\x1b[1m{method}\x1b[0m {full_path} HTTP/{http_version}" {status_fmt}'
            return f"{record.asctime} {level_fmt} {record.name} - {message}"

        message = record.getMessage()
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message = f"{message}\n{record.exc_text}"
        return f"{record.asctime} {level_fmt} {record.name} - {message}"


def configure_uvicorn_logging() -> None:
    """Route uvicorn's access and error loggers through the colored formatter."""
    formatter = ColoredConsoleFormatter()

    main_logger = logging.getLogger("uvicorn")
    main_logger.handlers = []
    main_logger.setLevel(logging.INFO)

    for name in ("uvicorn.access", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = []
        uv_logger.setLevel(logging.INFO)
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        uv_logger.addHandler(handler)
        uv_logger.propagate = False


def setup_logging(name: str = "chat-relay", debug: bool | None = None) -> logging.Logger:
    """
    Set up logging with console and rotating JSON file handlers.

    Args:
        name: Logger name
        debug: Enable debug logging (overrides DEBUG env var)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    logger.handlers = []

    if debug is None:
        debug = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")

    # --- Console Handler (Human-readable) ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    log_dir = PROJECT_ROOT / "logs"
    log_dir.mkdir(exist_ok=True)

    # --- Relay Log Handler (JSON) ---
    relay_handler = logging.handlers.RotatingFileHandler(
        log_dir / "relay.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_RELAY,
        encoding="utf-8",
    )
    relay_handler.setLevel(logging.INFO)
    relay_handler.addFilter(RelayFilter())
    relay_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(message)s %(instance_id)s %(conversation_id)s %(model)s",
            timestamp=True,
        )
    )
    logger.addHandler(relay_handler)

    # --- Error Log Handler (JSON) ---
    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / "errors.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_ERRORS,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.addFilter(ErrorFilter())
    error_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(name)s %(message)s",
            timestamp=True,
        )
    )
    logger.addHandler(error_handler)

    return logger


def redact_content(text: str) -> str:
    """Redact PII from text using the defined patterns."""
    if not text:
        return text
    redacted = text
    for pattern, replacement in REDACTION_PATTERNS:
        redacted = re.sub(pattern, replacement, redacted)
    return redacted


def preview_content(text: str) -> str:
    """Short single-line redacted preview of message content."""
    preview = redact_content(text[:LOG_PREVIEW_LENGTH].replace("\n", " "))
    if len(text) > LOG_PREVIEW_LENGTH:
        preview += "..."
    return preview


class RelayLogger:
    """
    High-level logging interface for Chat Relay.
    Wraps standard Python logging with request-context enrichment.
    """

    def __init__(self, name: str = "chat-relay"):
        self.logger = setup_logging(name)
        self.instance_id = str(uuid.uuid4())[:INSTANCE_ID_LENGTH]

    def _enrich_context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        """Add the instance id and any active request context."""
        kwargs.setdefault("instance_id", self.instance_id)
        if ctx := get_request_context():
            for key, value in ctx.to_log_context().items():
                kwargs.setdefault(key, value)
        return kwargs

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._enrich_context(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._enrich_context(kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._enrich_context(kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Error level logging with optional exception info."""
        self.logger.error(message, extra=self._enrich_context(kwargs), exc_info=exc_info)

    def _should_log_content(self) -> bool:
        return bool(get_settings().enable_content_logging)

    def log_relay_turn(
        self,
        conversation_id: int | None,
        model: str,
        user_content: str,
        reply_content: str,
        duration_ms: float | None = None,
        persisted: bool = True,
    ) -> None:
        """Log one prompt/reply exchange, hiding content unless enabled."""
        should_log_content = self._should_log_content()

        if should_log_content:
            user_preview = preview_content(user_content)
            reply_preview = preview_content(reply_content)
        else:
            user_preview = "[HIDDEN]"
            reply_preview = "[HIDDEN]"

        msg_parts = [f"User: {user_preview} -> {model}: {reply_preview}"]
        if duration_ms is not None:
            msg_parts.append(f"[{duration_ms:.0f}ms]")
        if not persisted:
            msg_parts.append("[not persisted]")

        extra_data: dict[str, Any] = {
            "relay_turn": True,
            "conversation_id": conversation_id,
            "model": model,
            "chars_input": len(user_content),
            "chars_response": len(reply_content),
            "content_logging": should_log_content,
        }
        if duration_ms is not None:
            extra_data["ms"] = int(duration_ms)

        self.logger.info(" ".join(msg_parts), extra=self._enrich_context(extra_data))


# Global logger instance
logger = RelayLogger()
