"""
Health check endpoints (v1).

Provides health, readiness, and liveness probes.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.dependencies import DB, AppSettings
from models.schemas.health import (
    DatabaseHealth,
    HealthResponse,
    LivenessResponse,
    ProvidersHealth,
    ReadinessResponse,
    RealtimeHealth,
)
from utils.db_utils import check_pool_health

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Health of the database pool, realtime registry, and provider registration.",
    tags=["Health"],
)
async def health_check(db: DB, request: Request, settings: AppSettings) -> HealthResponse:
    """Comprehensive health check endpoint."""
    db_health_data = await check_pool_health(db)

    registry = getattr(request.app.state, "registry", None)
    if registry:
        stats = registry.get_stats()
        realtime = RealtimeHealth(
            active_connections=stats.get("active_connections", 0),
            authenticated_connections=stats.get("authenticated_connections", 0),
            active_rooms=stats.get("active_rooms", 0),
            shutting_down=stats.get("shutting_down", False),
        )
    else:
        realtime = RealtimeHealth(error="not initialized")

    provider_router = getattr(request.app.state, "provider_router", None)
    providers = ProvidersHealth(
        registered=provider_router.providers if provider_router else [],
        default_model=settings.default_model,
    )

    db_healthy = db_health_data.get("healthy", False)
    realtime_healthy = not realtime.shutting_down and realtime.error is None

    if db_healthy and realtime_healthy and providers.registered:
        status = "healthy"
    elif db_healthy or realtime_healthy:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        database=DatabaseHealth(
            healthy=db_healthy,
            pool_size=db_health_data.get("pool_size", 0),
            pool_free=db_health_data.get("pool_free", 0),
            pool_used=db_health_data.get("pool_used", 0),
            error=db_health_data.get("error"),
        ),
        realtime=realtime,
        providers=providers,
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    responses={503: {"description": "Service not ready"}},
    tags=["Health"],
)
async def readiness_check(db: DB) -> ReadinessResponse | JSONResponse:
    """Kubernetes-style readiness probe."""
    try:
        async with db.acquire(timeout=5.0) as conn:
            await conn.fetchval("SELECT 1")
        return ReadinessResponse(ready=True)
    except Exception as e:
        return JSONResponse(status_code=503, content={"ready": False, "error": str(e)})


@router.get(
    "/health/live",
    response_model=LivenessResponse,
    summary="Liveness probe",
    tags=["Health"],
)
async def liveness_check() -> LivenessResponse:
    """Kubernetes-style liveness probe."""
    return LivenessResponse(alive=True)
