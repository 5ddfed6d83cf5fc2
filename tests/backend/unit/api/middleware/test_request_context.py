import asyncio
import time

from typing import Any

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.middleware.request_context import (
    REQUEST_ID_PREFIX,
    WEBSOCKET_ID_PREFIX,
    RequestContext,
    RequestContextMiddleware,
    clear_request_context,
    conversation_id_from_path,
    create_websocket_context,
    generate_request_id,
    get_request_context,
    get_request_id,
    set_request_context,
    update_request_context,
)


def test_request_context_dataclass() -> None:
    ctx = RequestContext(request_id="123")
    assert ctx.request_id == "123"
    assert ctx.elapsed_ms >= 0
    assert "request_id" in ctx.to_log_context()

    time.sleep(0.01)
    assert ctx.elapsed_ms > 0


def test_log_context_includes_ids_when_set() -> None:
    ctx = RequestContext(request_id="123", user_id=7, conversation_id=42)

    log_ctx = ctx.to_log_context()

    assert log_ctx["user_id"] == 7
    assert log_ctx["conversation_id"] == 42


def test_generate_request_id() -> None:
    rid1 = generate_request_id()
    rid2 = generate_request_id()
    assert rid1.startswith(REQUEST_ID_PREFIX)
    assert rid1 != rid2

    ws_rid = generate_request_id(WEBSOCKET_ID_PREFIX)
    assert ws_rid.startswith(WEBSOCKET_ID_PREFIX)


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/api/v1/chats/42/messages", 42),
        ("/api/v1/chats/42", 42),
        ("/api/v1/chats", None),
        ("/api/v1/chats/abc/messages", None),
        ("/api/v1/health", None),
    ],
)
def test_conversation_id_from_path(path: str, expected: int | None) -> None:
    assert conversation_id_from_path(path) == expected


@pytest.mark.asyncio
async def test_context_var_management() -> None:
    ctx = RequestContext(request_id="test")

    set_request_context(ctx)
    assert get_request_context() == ctx
    assert get_request_id() == "test"

    update_request_context(user_id=7, model="ollama/llama3")
    assert get_request_context().user_id == 7
    assert get_request_context().extra == {"model": "ollama/llama3"}

    clear_request_context()
    assert get_request_context() is None


def test_update_without_context_is_noop() -> None:
    clear_request_context()
    update_request_context(user_id=7)
    assert get_request_context() is None


def test_create_websocket_context() -> None:
    ctx = create_websocket_context(client_ip="10.0.0.1")
    try:
        assert ctx.request_id.startswith(WEBSOCKET_ID_PREFIX)
        assert ctx.method == "WEBSOCKET"
        assert ctx.path == "/ws"
        assert get_request_context() is ctx
    finally:
        clear_request_context()


@pytest.fixture
def app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/context")
    def get_ctx() -> dict[str, Any]:
        ctx = get_request_context()
        return {
            "request_id": ctx.request_id,
            "conversation_id": ctx.conversation_id,
            "client_ip": ctx.client_ip,
        }

    @app.get("/api/v1/chats/{conversation_id}/messages")
    def get_chat_ctx(conversation_id: int) -> dict[str, Any]:
        ctx = get_request_context()
        return {"conversation_id": ctx.conversation_id}

    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def test_middleware_request_id(client: TestClient) -> None:
    response = client.get("/context")
    assert response.status_code == 200
    data = response.json()

    assert response.headers["x-request-id"].startswith(REQUEST_ID_PREFIX)
    assert "x-response-time" in response.headers
    assert data["request_id"] == response.headers["x-request-id"]


def test_middleware_existing_request_id(client: TestClient) -> None:
    response = client.get("/context", headers={"X-Request-ID": "external_123"})
    assert response.status_code == 200
    assert response.headers["x-request-id"] == "external_123"
    assert response.json()["request_id"] == "external_123"


def test_middleware_conversation_id_extraction(client: TestClient) -> None:
    response = client.get("/api/v1/chats/42/messages")
    assert response.status_code == 200
    assert response.json()["conversation_id"] == 42


def test_middleware_client_ip(client: TestClient) -> None:
    response = client.get("/context")
    assert response.json()["client_ip"] == "testclient"

    response = client.get("/context", headers={"X-Forwarded-For": "10.0.0.1, 192.168.1.1"})
    assert response.json()["client_ip"] == "10.0.0.1"


@pytest.mark.asyncio
async def test_async_context_isolation() -> None:
    async def task(name: str, delay: float) -> str | None:
        ctx = RequestContext(request_id=name)
        set_request_context(ctx)
        await asyncio.sleep(delay)
        val: str | None = get_request_id()
        clear_request_context()
        return val

    results = await asyncio.gather(task("req1", 0.05), task("req2", 0.01))

    assert results[0] == "req1"
    assert results[1] == "req2"
