"""
System API Endpoints

Service information and health monitoring for the Taskflow backend.
"""

from typing import Any, Dict

from fastapi import APIRouter

from database.database import db_manager
from utils.logging import get_logger
from utils.redis_manager import check_redis_connection

logger = get_logger("system-api")
router = APIRouter(tags=["System"])

SERVICE_NAME = "taskflow-backend"
SERVICE_VERSION = "1.0.0"


@router.get("/")
async def root() -> Dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": "Taskflow Backend API - task assignment, negotiation and submission workflow",
        "docs": "/docs",
        "health": "/health"
    }


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint.

    The database is required; Redis only carries change notifications, so an
    unreachable Redis degrades the status without failing it.
    """
    try:
        await db_manager.ping()
        db_status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "unhealthy"

    redis_status = "healthy" if await check_redis_connection() else "unavailable"

    if db_status != "healthy":
        status = "unhealthy"
    elif redis_status != "healthy":
        status = "degraded"
    else:
        status = "healthy"

    return {
        "status": status,
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "database": db_status,
        "redis": redis_status,
    }
