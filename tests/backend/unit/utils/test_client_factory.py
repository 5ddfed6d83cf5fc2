"""Tests for provider client factory utilities.

Tests client creation and configuration.
"""

from __future__ import annotations

from unittest.mock import ANY, Mock, patch

import httpx

from utils.client_factory import create_http_client, create_openai_client


class TestCreateHttpClient:
    """Tests for create_http_client function."""

    def test_create_http_client_with_logging_enabled(self) -> None:
        """Test creating HTTP client with logging enabled."""
        with patch("utils.client_factory.create_logging_client") as mock_create:
            mock_client = Mock()
            mock_create.return_value = mock_client

            result = create_http_client(enable_logging=True)

            assert result is mock_client
            mock_create.assert_called_once_with(enabled=True, timeout=ANY)
            assert isinstance(mock_create.call_args[1]["timeout"], httpx.Timeout)

    def test_create_http_client_default(self) -> None:
        """Test creating HTTP client with default settings (no logging)."""
        result = create_http_client()

        assert isinstance(result, httpx.AsyncClient)
        assert result.event_hooks["request"] == []

    def test_create_http_client_custom_read_timeout(self) -> None:
        result = create_http_client(read_timeout=45.0)

        assert result.timeout.read == 45.0

    def test_create_http_client_default_timeout_values(self) -> None:
        result = create_http_client()

        assert result.timeout.connect == 10.0
        assert result.timeout.read == 120.0
        assert result.timeout.write == 30.0
        assert result.timeout.pool == 30.0


class TestCreateOpenAIClient:
    """Tests for create_openai_client function."""

    def test_create_openai_client_minimal(self) -> None:
        with patch("utils.client_factory.AsyncOpenAI") as mock_async_openai:
            result = create_openai_client(api_key="test-key")

            assert result is mock_async_openai.return_value
            call_kwargs = mock_async_openai.call_args[1]
            assert call_kwargs["api_key"] == "test-key"
            assert call_kwargs["http_client"] is None
            assert call_kwargs["max_retries"] == 0
            assert "base_url" not in call_kwargs

    def test_create_openai_client_all_params(self) -> None:
        with patch("utils.client_factory.AsyncOpenAI") as mock_async_openai:
            mock_http_client = Mock()

            create_openai_client(
                api_key="test-key",
                base_url="https://api.example.com/v1",
                http_client=mock_http_client,
                max_retries=2,
            )

            call_kwargs = mock_async_openai.call_args[1]
            assert call_kwargs["base_url"] == "https://api.example.com/v1"
            assert call_kwargs["http_client"] is mock_http_client
            assert call_kwargs["max_retries"] == 2

    def test_real_client_uses_base_url(self) -> None:
        client = create_openai_client(api_key="test-key", base_url="http://localhost:8000/v1")

        assert str(client.base_url).rstrip("/") == "http://localhost:8000/v1"
        assert client.max_retries == 0
