"""
Health check API schemas.

Response models for health, readiness, and liveness probes.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DatabaseHealth(BaseModel):
    """Database connection pool health."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "healthy": True,
                "pool_size": 10,
                "pool_free": 8,
                "pool_used": 2,
            }
        }
    )

    healthy: bool = Field(..., description="Database is accessible")
    pool_size: int = Field(default=0, ge=0, description="Total pool size")
    pool_free: int = Field(default=0, ge=0, description="Available connections")
    pool_used: int = Field(default=0, ge=0, description="Active connections")
    error: str | None = Field(default=None, description="Error if unhealthy")


class RealtimeHealth(BaseModel):
    """Realtime connection registry health."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "active_connections": 5,
                "authenticated_connections": 4,
                "active_rooms": 3,
                "shutting_down": False,
            }
        }
    )

    active_connections: int = Field(default=0, ge=0, description="Open connections")
    authenticated_connections: int = Field(default=0, ge=0, description="Connections that completed auth")
    active_rooms: int = Field(default=0, ge=0, description="Rooms with at least one member")
    shutting_down: bool = Field(default=False, description="Shutdown in progress")
    error: str | None = Field(default=None, description="Error if unhealthy")


class ProvidersHealth(BaseModel):
    """Registered provider adapters."""

    registered: list[str] = Field(default_factory=list, description="Provider prefixes accepting requests")
    default_model: str = Field(..., description="Model used when a posted message names none")


class HealthResponse(BaseModel):
    """Comprehensive health check response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "database": {
                    "healthy": True,
                    "pool_size": 10,
                    "pool_free": 8,
                    "pool_used": 2,
                },
                "realtime": {
                    "active_connections": 5,
                    "authenticated_connections": 4,
                    "active_rooms": 3,
                    "shutting_down": False,
                },
                "providers": {
                    "registered": ["ollama"],
                    "default_model": "ollama/llama3",
                },
            }
        }
    )

    status: Literal["healthy", "degraded", "unhealthy"] = Field(
        ...,
        description="Overall system health status",
    )
    version: str = Field(..., description="Application version")
    database: DatabaseHealth = Field(..., description="Database health")
    realtime: RealtimeHealth = Field(..., description="Realtime registry health")
    providers: ProvidersHealth = Field(..., description="Provider adapters")


class ReadinessResponse(BaseModel):
    """Kubernetes-style readiness probe response."""

    ready: bool = Field(..., description="Service is ready to accept traffic")
    error: str | None = Field(default=None, description="Error message if not ready")


class LivenessResponse(BaseModel):
    """Kubernetes-style liveness probe response."""

    alive: bool = Field(default=True, description="Process is running")
