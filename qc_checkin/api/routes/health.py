'''
Health checks: simple API status and full API plus database connectivity.
'''
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from qc_checkin.db.session import get_db
from qc_checkin.services.realtime import feed

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

@router.get("/health")
async def health():
    """
    Simple liveness check for deployments.
    Does not require database connectivity.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "message": "API is running",
        "service": "qc-checkin-api",
        "realtime_subscribers": feed.subscriber_count(),
    }

@router.get("/health/full")
async def health_full(db: AsyncSession = Depends(get_db)):
    """
    Verifies both API and database connectivity.
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "unknown",
        "service": "qc-checkin-api"
    }

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        health_status["database"] = "connected"
        logger.info("Database health check successful")
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))
        health_status["status"] = "unhealthy"
        health_status["database"] = "disconnected"
        health_status["error"] = str(e)

    return health_status
