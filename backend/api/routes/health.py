"""Health check endpoints.

Provides:
- Basic liveness probe (/health)
- Readiness check with a database ping (/health/ready)
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from app.config import get_settings
from db import database

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=dict[str, Any])
async def health() -> dict[str, Any]:
    """
    Liveness probe with app name and version.
    """
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
    }


@router.get("/ready", response_model=dict[str, Any])
async def readiness() -> dict[str, Any]:
    """
    Readiness probe. Returns 503 when the database is unreachable.
    """
    try:
        await database.ping_db()
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "database": "unavailable"},
        )
    return {"status": "healthy", "database": "ok"}
