"""
FastAPI application for the sync health monitor.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.health import create_health_router
from configs.settings import validate_settings
from infrastructure.container import MonitoringContainer
from utils.logging import configure_from_settings, get_logger

logger = get_logger(__name__)


def create_app(container: MonitoringContainer, start_monitoring: bool = True) -> FastAPI:
    """
    Create the API application for a monitoring container.

    Args:
        container: Wired monitoring components
        start_monitoring: Start and stop the container's loops with the app

    Returns:
        FastAPI application
    """
    settings = container.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        # Startup
        logger.info(f"Starting {settings.app_name}")

        if not validate_settings(settings):
            logger.error("Configuration validation failed")
            raise RuntimeError("Invalid configuration")

        logger.info(f"Environment: {settings.environment}")
        if start_monitoring:
            container.start_all()

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.app_name}")
        if start_monitoring:
            await container.stop_all()

    app = FastAPI(
        title=settings.app_name,
        description="Health monitoring and automated recovery for the offline-first sync engine",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.container = container

    # CORS middleware
    allowed_origins = ["*"] if settings.debug else ["http://localhost:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(create_health_router(container))

    @app.get("/ping")
    async def ping() -> Dict[str, str]:
        """Basic availability check."""
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "service": "sync-health-monitor"
        }

    return app


def serve(container: MonitoringContainer, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the API with uvicorn until interrupted."""
    settings = container.settings
    configure_from_settings(settings)
    uvicorn.run(
        create_app(container),
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower()
    )
