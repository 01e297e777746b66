"""
Health check endpoints.
"""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brrp.core.config import get_settings
from brrp.core.database import get_session, ping_db

router = APIRouter(prefix="/health", tags=["health"])
settings = get_settings()
logger = logging.getLogger(__name__)


@router.get("")
async def health_check():
    """Service identity and status."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version
    }


@router.get("/live")
async def liveness():
    """Liveness probe endpoint."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(session: AsyncSession = Depends(get_session)):
    """Readiness probe: the database must answer."""
    try:
        await ping_db(session)
    except SQLAlchemyError as e:
        logger.error("Readiness check failed: %s", e)
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "down"})
    return {"status": "ready", "database": "up"}
