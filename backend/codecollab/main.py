"""
CodeCollab - FastAPI Application Entry Point

Main application configuration and startup logic for the CodeCollab backend.
"""

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog

from codecollab.core.config import settings
from codecollab.core.database import close_db, init_db
from codecollab.core.logging import setup_logging
from codecollab.api.v1.api import api_router
from codecollab.websocket.router import execution_manager, room_router, websocket_router

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="CodeCollab - Collaborative Code Runner",
        version=settings.VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(api_router, prefix="/api")

    # Include WebSocket routes
    app.include_router(websocket_router)

    @app.get("/info")
    async def app_info():
        """Get application information."""
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "debug": settings.DEBUG,
            "health_url": "/health",
            "api_base_url": "/api",
            "execution_socket": "/ws/execute",
            "room_socket": "/ws/rooms",
        }

    @app.get("/ping")
    async def ping():
        """Simple ping endpoint for testing."""
        return {"message": "pong", "status": "ok"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "active_executions": len(execution_manager.sessions),
            "room_connections": len(room_router.connections),
        }

    @app.on_event("startup")
    async def startup_event():
        """Application startup event handler."""
        logger.info("Starting CodeCollab application", version=settings.VERSION)

        os.makedirs(settings.SCRATCH_DIR, exist_ok=True)
        logger.info("Scratch directory ready", scratch_dir=settings.SCRATCH_DIR)

        try:
            await init_db()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            raise

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event handler."""
        logger.info("Shutting down CodeCollab application")

        # No orphaned processes survive the server
        await execution_manager.close_all()
        await close_db()

    return app


# Create application instance
app = create_application()

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 5000))
    uvicorn.run(
        "codecollab.main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
        log_level="info"
    )
