"""
CodeCollab - API Router

Main API router that includes all endpoint modules.
"""

from fastapi import APIRouter

from codecollab.api.v1.endpoints import tracking

api_router = APIRouter()

api_router.include_router(tracking.router, prefix="/track", tags=["tracking"])


@api_router.get("/health")
async def api_health():
    """Liveness check used by the browser client."""
    return {"ok": True}


@api_router.get("/status")
async def api_status():
    """Show the available API endpoints."""
    return {
        "message": "CodeCollab API",
        "status": "running",
        "endpoints": [
            "/health",
            "/track/download",
        ]
    }
