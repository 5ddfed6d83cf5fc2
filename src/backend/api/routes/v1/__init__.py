"""
API v1 Router - Aggregates all v1 endpoints.

Usage in main.py:
    from api.routes.v1 import router as v1_router
    app.include_router(v1_router, prefix="/api/v1")
"""

from fastapi import APIRouter

from api.routes.v1 import chats, completions, health

router = APIRouter()

# Health endpoints (no auth required)
router.include_router(
    health.router,
    tags=["Health"],
)

# Conversations and their messages
router.include_router(
    chats.router,
    prefix="/chats",
    tags=["Chats"],
)

# Direct model completions
router.include_router(
    completions.router,
    prefix="/chat",
    tags=["Completions"],
)

__all__ = ["router"]
