"""
Provider client factory utilities.
Centralizes httpx and AsyncOpenAI client creation with consistent configuration.
"""

from __future__ import annotations

from typing import Any

import httpx

from openai import AsyncOpenAI

from utils.http_logger import create_logging_client

# Local models can take a long time to produce a first token on cold load,
# so reads get a generous timeout while connects fail fast.
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 120.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_POOL_TIMEOUT = 30.0


def create_http_client(
    enable_logging: bool = False,
    read_timeout: float | None = None,
) -> httpx.AsyncClient:
    """Create the shared HTTP client used for provider calls.

    Args:
        enable_logging: Enable HTTP request/response logging
        read_timeout: Read timeout in seconds (default: 120s)
    """
    timeout = httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT,
        read=read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )

    if enable_logging:
        return create_logging_client(enabled=True, timeout=timeout)

    return httpx.AsyncClient(timeout=timeout)


def create_openai_client(
    api_key: str,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
    max_retries: int = 0,
) -> AsyncOpenAI:
    """Create an AsyncOpenAI client for an OpenAI-compatible endpoint.

    Retries default to 0: failed completions surface to the caller
    instead of being replayed by the SDK.
    """
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client, "max_retries": max_retries}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)
