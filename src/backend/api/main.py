from __future__ import annotations

import asyncio

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware.exception_handlers import register_exception_handlers
from api.middleware.request_context import RequestContextMiddleware
from api.routes import realtime
from api.routes.v1 import health as v1_health
from api.routes.v1 import router as v1_router
from api.services.auth_service import AuthService
from api.services.chat_pipeline import ChatPipeline
from api.services.conversation_store import ConversationStore
from api.websocket.manager import ConnectionRegistry
from core.constants import get_settings
from integrations.providers.registry import build_provider_router
from utils.client_factory import create_http_client
from utils.db_utils import check_pool_health, create_database_pool, graceful_pool_close
from utils.logger import configure_uvicorn_logging, logger

# Settings are loaded via Pydantic Settings with environment-specific file support
# (.env, .env.{APP_ENV}, .env.local) - no manual dotenv loading needed
settings = get_settings()

if settings.debug:
    from core.constants import _get_env_files

    logger.info(f"Env files: {[f.name for f in _get_env_files()]}")
    logger.info(
        f"Settings: app_env={settings.app_env}, "
        f"db_pool=[{settings.db_pool_min_size},{settings.db_pool_max_size}], "
        f"providers={settings.enabled_providers_list}, default_model={settings.default_model}"
    )

# Configure uvicorn logging at module level to ensure workers use it
configure_uvicorn_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown with graceful handling."""
    shutdown_event = asyncio.Event()
    app.state.shutdown_event = shutdown_event

    app.state.db_pool = await create_database_pool(
        dsn=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout,
        connection_timeout=settings.db_connection_timeout,
        statement_cache_size=settings.db_statement_cache_size,
        max_inactive_connection_lifetime=settings.db_max_inactive_connection_lifetime,
    )

    health = await check_pool_health(app.state.db_pool)
    if not health["healthy"]:
        logger.error("Database health check failed during startup")
        raise RuntimeError("Database connection failed")
    logger.info(f"Database pool healthy: {health}")

    # One HTTP client shared by every provider adapter
    app.state.http_client = create_http_client(
        enable_logging=settings.http_request_logging,
        read_timeout=settings.provider_timeout,
    )
    app.state.provider_router = build_provider_router(settings, app.state.http_client)

    app.state.store = ConversationStore(app.state.db_pool)
    app.state.verifier = AuthService(app.state.db_pool, settings)

    app.state.registry = ConnectionRegistry(
        app.state.verifier,
        app.state.store,
        max_connections=settings.ws_max_connections,
        outbox_size=settings.ws_outbox_size,
        send_timeout=settings.ws_send_timeout,
        idle_timeout_seconds=settings.ws_idle_timeout,
    )
    await app.state.registry.start_idle_checker()

    app.state.pipeline = ChatPipeline(
        app.state.store,
        app.state.registry,
        app.state.provider_router,
        default_model=settings.default_model,
    )

    try:
        yield
    finally:
        logger.info("Initiating graceful shutdown sequence")
        shutdown_event.set()

        # Phase 1: Stop accepting realtime connections and drain existing
        await app.state.registry.graceful_shutdown(timeout=settings.shutdown_connection_drain_timeout)

        # Phase 2: Let in-flight replies finish (they may still persist)
        await app.state.pipeline.drain(timeout=settings.shutdown_timeout)

        # Phase 3: Close provider clients
        await app.state.provider_router.aclose()
        await app.state.http_client.aclose()

        # Phase 4: Gracefully close database pool
        await graceful_pool_close(app.state.db_pool, timeout=settings.shutdown_timeout)


app = FastAPI(
    title="Chat Relay API",
    description="""
## Chat Relay API

Persists chat messages, fans them out to live viewers in real time, and
relays conversations to interchangeable language-model providers.

### Features
- **Conversations**: Create and list conversations, read ordered history
- **Messages**: Post a message; the assistant reply follows over the realtime channel
- **Completions**: Call any registered provider with a `<provider>/<model>` identifier
- **Realtime**: `/ws` with `auth`, `joinChat`, `leaveChat` events and room fan-out

### Authentication
Endpoints except health checks require a JWT, sent as `Authorization: Bearer <token>`
or in the `token` cookie.

### Versioning
API uses URL path versioning: `/api/v1/...`
""",
    version=settings.app_version,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints for monitoring and orchestration"},
        {"name": "Chats", "description": "Conversations and their messages"},
        {"name": "Completions", "description": "Direct model completions"},
        {"name": "Realtime", "description": "Room membership and live message fan-out"},
    ],
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/v1/docs",
    redoc_url="/api/v1/redoc",
)

# Register global exception handlers for consistent error responses
register_exception_handlers(app)

# Note: Middleware is executed in reverse order of registration
app.add_middleware(RequestContextMiddleware)

# Production: Set CORS_ALLOW_ORIGINS to an explicit list of allowed domains
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_methods_list,
    allow_headers=settings.cors_headers_list,
)

# Routes - API v1
app.include_router(v1_router, prefix="/api/v1")

# Unversioned liveness for load balancers
app.add_api_route("/health", v1_health.liveness_check, methods=["GET"], tags=["Health"])

# Realtime route (not versioned - protocol-level)
app.include_router(realtime.router, tags=["Realtime"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        reload_dirs=["src"],
        log_config=None,
    )
