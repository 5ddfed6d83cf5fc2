from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_db
from api.routes.v1.health import router


@pytest.fixture
def mock_db_pool() -> MagicMock:
    pool = MagicMock()
    pool.get_size.return_value = 10
    pool.get_idle_size.return_value = 8

    cm = MagicMock()
    conn = AsyncMock()
    cm.__aenter__ = AsyncMock(return_value=conn)
    cm.__aexit__ = AsyncMock(return_value=None)
    pool.acquire.return_value = cm

    return pool


@pytest.fixture
def mock_registry() -> MagicMock:
    registry = MagicMock()
    registry.get_stats.return_value = {
        "active_connections": 5,
        "authenticated_connections": 4,
        "active_rooms": 3,
        "shutting_down": False,
    }
    return registry


@pytest.fixture
def mock_provider_router() -> MagicMock:
    provider_router = MagicMock()
    provider_router.providers = ["ollama", "openai"]
    return provider_router


@pytest.fixture
def app(mock_db_pool: MagicMock, mock_registry: MagicMock, mock_provider_router: MagicMock) -> FastAPI:
    app = FastAPI()
    app.include_router(router, prefix="")  # router has paths starting with /health

    app.dependency_overrides[get_db] = lambda: mock_db_pool

    app.state.registry = mock_registry
    app.state.provider_router = mock_provider_router

    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def test_liveness_check(client: TestClient) -> None:
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["alive"] is True


def test_readiness_check_success(client: TestClient, mock_db_pool: MagicMock) -> None:
    conn = mock_db_pool.acquire.return_value.__aenter__.return_value
    conn.fetchval.return_value = 1

    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["ready"] is True


def test_readiness_check_failure(client: TestClient, mock_db_pool: MagicMock) -> None:
    mock_db_pool.acquire.side_effect = Exception("DB Down")

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["ready"] is False
    assert "DB Down" in response.json()["error"]


def test_health_check_healthy(client: TestClient) -> None:
    with patch("api.routes.v1.health.check_pool_health", new_callable=AsyncMock) as mock_check:
        mock_check.return_value = {"healthy": True, "pool_size": 10, "pool_free": 8, "pool_used": 2}

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["database"]["healthy"] is True
        assert data["realtime"]["active_connections"] == 5
        assert data["realtime"]["active_rooms"] == 3
        assert data["providers"]["registered"] == ["ollama", "openai"]
        assert data["providers"]["default_model"] == "ollama/llama3"


def test_health_check_degraded_without_providers(client: TestClient, mock_provider_router: MagicMock) -> None:
    mock_provider_router.providers = []

    with patch("api.routes.v1.health.check_pool_health", new_callable=AsyncMock) as mock_check:
        mock_check.return_value = {"healthy": True, "pool_size": 10, "pool_free": 8, "pool_used": 2}

        data = client.get("/health").json()

    assert data["status"] == "degraded"


def test_health_check_degraded_database(client: TestClient) -> None:
    with patch("api.routes.v1.health.check_pool_health", new_callable=AsyncMock) as mock_check:
        mock_check.return_value = {"healthy": False, "error": "Connection failed"}

        data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["database"]["healthy"] is False
    assert data["database"]["error"] == "Connection failed"


def test_health_check_unhealthy(client: TestClient, mock_registry: MagicMock) -> None:
    mock_registry.get_stats.return_value = {"shutting_down": True}

    with patch("api.routes.v1.health.check_pool_health", new_callable=AsyncMock) as mock_check:
        mock_check.return_value = {"healthy": False}

        data = client.get("/health").json()

    assert data["status"] == "unhealthy"
