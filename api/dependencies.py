"""
FastAPI dependency injection functions.
"""

from fastapi import HTTPException, Request

from infrastructure.container import MonitoringContainer
from utils.logging import get_logger

logger = get_logger(__name__)


def get_container(request: Request) -> MonitoringContainer:
    """
    Get the monitoring container attached to the application.

    Returns:
        MonitoringContainer: The container created by ``create_app``
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        logger.error("Monitoring container is not attached to the application")
        raise HTTPException(status_code=503, detail="Monitoring not initialized")
    return container
