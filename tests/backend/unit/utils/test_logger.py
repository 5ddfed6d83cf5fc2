"""Tests for logger module with security improvements.

Tests logging configuration, handlers, structure, and secure PII redaction.
"""

from __future__ import annotations

import logging

from unittest.mock import Mock, patch

from utils.logger import ErrorFilter, RelayFilter, RelayLogger, preview_content, redact_content, setup_logging


def _record(level: int) -> logging.LogRecord:
    return logging.LogRecord(name="test", level=level, pathname="", lineno=0, msg="test", args=(), exc_info=None)


class TestRelayFilter:
    """Tests for RelayFilter."""

    def test_filter_allows_info(self) -> None:
        assert RelayFilter().filter(_record(logging.INFO)) is True

    def test_filter_allows_error(self) -> None:
        assert RelayFilter().filter(_record(logging.ERROR)) is True

    def test_filter_blocks_debug(self) -> None:
        assert RelayFilter().filter(_record(logging.DEBUG)) is False


class TestErrorFilter:
    """Tests for ErrorFilter."""

    def test_filter_allows_error(self) -> None:
        assert ErrorFilter().filter(_record(logging.ERROR)) is True

    def test_filter_allows_critical(self) -> None:
        assert ErrorFilter().filter(_record(logging.CRITICAL)) is True

    def test_filter_blocks_warning(self) -> None:
        assert ErrorFilter().filter(_record(logging.WARNING)) is False


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_creates_logger(self) -> None:
        logger = setup_logging("test-logger")

        assert logger.name == "test-logger"
        assert logger.level == logging.DEBUG

    def test_setup_logging_with_debug_enabled(self) -> None:
        logger = setup_logging("test-debug", debug=True)

        console_handlers = [h for h in logger.handlers if type(h) is logging.StreamHandler]
        assert console_handlers
        assert console_handlers[0].level == logging.DEBUG

    def test_setup_logging_with_debug_disabled(self) -> None:
        logger = setup_logging("test-no-debug", debug=False)

        console_handlers = [h for h in logger.handlers if type(h) is logging.StreamHandler]
        assert console_handlers[0].level == logging.INFO

    def test_setup_logging_respects_debug_env_var(self) -> None:
        with patch.dict("os.environ", {"DEBUG": "true"}):
            logger = setup_logging("test-env-debug")

        console_handlers = [h for h in logger.handlers if type(h) is logging.StreamHandler]
        assert console_handlers[0].level == logging.DEBUG

    def test_setup_logging_clears_existing_handlers(self) -> None:
        logger = logging.getLogger("test-clear-handlers")
        logger.addHandler(logging.NullHandler())

        logger = setup_logging("test-clear-handlers")

        # console, relay, errors
        assert len(logger.handlers) == 3
        assert not any(isinstance(h, logging.NullHandler) for h in logger.handlers)


class TestRedaction:
    """PII redaction and previews."""

    def test_redact_content_email(self) -> None:
        redacted = redact_content("Contact me at user@example.com please.")
        assert "[EMAIL]" in redacted
        assert "user@example.com" not in redacted

    def test_redact_content_credit_card(self) -> None:
        redacted = redact_content("My card is 1234-5678-9012-3456 used here.")
        assert "[CARD]" in redacted
        assert "1234-5678-9012-3456" not in redacted

    def test_redact_content_api_key(self) -> None:
        redacted = redact_content("Key: sk-1234567890abcdef12345678 is secret.")
        assert "[API_KEY]" in redacted
        assert "sk-1234567890abcdef12345678" not in redacted

    def test_redact_content_token_assignment(self) -> None:
        assert redact_content("token=abc123") == "[REDACTED]"

    def test_redact_content_empty(self) -> None:
        assert redact_content("") == ""

    def test_preview_truncates_and_flattens(self) -> None:
        preview = preview_content("line one\nline two " + "x" * 100)

        assert "\n" not in preview
        assert preview.endswith("...")
        assert len(preview) == 53

    def test_preview_short_text_unchanged(self) -> None:
        assert preview_content("hi") == "hi"


class TestRelayLogger:
    """Tests for RelayLogger class."""

    def test_initialization(self) -> None:
        relay_logger = RelayLogger("test-relay-logger")

        assert relay_logger.logger.name == "test-relay-logger"
        assert len(relay_logger.instance_id) == 8

    def test_levels_add_instance_id(self) -> None:
        relay_logger = RelayLogger("test-levels")
        relay_logger.logger = Mock()

        relay_logger.debug("d", extra_key="x")
        relay_logger.info("i")
        relay_logger.warning("w")

        for method in (relay_logger.logger.debug, relay_logger.logger.info, relay_logger.logger.warning):
            method.assert_called_once()
            assert method.call_args.kwargs["extra"]["instance_id"] == relay_logger.instance_id
        assert relay_logger.logger.debug.call_args.kwargs["extra"]["extra_key"] == "x"

    def test_error_with_exc_info(self) -> None:
        relay_logger = RelayLogger("test-error-exc")
        relay_logger.logger = Mock()

        relay_logger.error("Test error", exc_info=True)

        assert relay_logger.logger.error.call_args.kwargs["exc_info"] is True

    def test_context_injection(self) -> None:
        from api.middleware.request_context import RequestContext, clear_request_context, set_request_context

        set_request_context(RequestContext(request_id="req_123", user_id=7, conversation_id=42))
        try:
            relay_logger = RelayLogger("test-context")
            relay_logger.logger = Mock()

            relay_logger.info("Test context")

            extra = relay_logger.logger.info.call_args.kwargs["extra"]
            assert extra["request_id"] == "req_123"
            assert extra["user_id"] == 7
            assert extra["conversation_id"] == 42
        finally:
            clear_request_context()

    def test_explicit_kwargs_win_over_context(self) -> None:
        from api.middleware.request_context import RequestContext, clear_request_context, set_request_context

        set_request_context(RequestContext(request_id="req_123", conversation_id=42))
        try:
            relay_logger = RelayLogger("test-context-override")
            relay_logger.logger = Mock()

            relay_logger.info("Test", conversation_id=99)

            assert relay_logger.logger.info.call_args.kwargs["extra"]["conversation_id"] == 99
        finally:
            clear_request_context()


class TestLogRelayTurn:
    """Content is hidden unless content logging is enabled."""

    def test_content_hidden_by_default(self) -> None:
        with patch("utils.logger.get_settings") as mock_settings:
            mock_settings.return_value.enable_content_logging = False

            relay_logger = RelayLogger("test-hidden")
            relay_logger.logger = Mock()

            relay_logger.log_relay_turn(42, "ollama/llama3", "Secret input", "Secret output", duration_ms=12.6)

            message = relay_logger.logger.info.call_args.args[0]
            extra = relay_logger.logger.info.call_args.kwargs["extra"]

            assert "[HIDDEN]" in message
            assert "Secret" not in message
            assert "[13ms]" in message
            assert extra["content_logging"] is False
            assert extra["conversation_id"] == 42
            assert extra["model"] == "ollama/llama3"
            assert extra["chars_input"] == len("Secret input")
            assert extra["ms"] == 12

    def test_content_enabled_is_redacted(self) -> None:
        with patch("utils.logger.get_settings") as mock_settings:
            mock_settings.return_value.enable_content_logging = True

            relay_logger = RelayLogger("test-visible")
            relay_logger.logger = Mock()

            relay_logger.log_relay_turn(42, "ollama/llama3", "My email is test@test.com", "Confirmed test@test.com")

            message = relay_logger.logger.info.call_args.args[0]

            assert "[EMAIL]" in message
            assert "test@test.com" not in message

    def test_not_persisted_marker(self) -> None:
        with patch("utils.logger.get_settings") as mock_settings:
            mock_settings.return_value.enable_content_logging = False

            relay_logger = RelayLogger("test-stateless")
            relay_logger.logger = Mock()

            relay_logger.log_relay_turn(None, "openai/gpt-4o-mini", "q", "a", persisted=False)

            message = relay_logger.logger.info.call_args.args[0]
            assert message.endswith("[not persisted]")
            assert "ms" not in relay_logger.logger.info.call_args.kwargs["extra"]


def test_global_logger_instance() -> None:
    from utils.logger import logger as global_logger

    assert isinstance(global_logger, RelayLogger)
