import logging
from http import HTTPStatus

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from src.fieldtrack.database.database import db
from src.fieldtrack.redis.redis import redis_manager

logger = logging.getLogger(__name__)

health_router = APIRouter(prefix="/health", tags=["Health Check"])


@health_router.get("")
async def health_check():
    """Check the health of the API and its backing stores."""
    logger.info("Health check requested")
    database_ok = await db.ping()
    status_code = HTTPStatus.OK if database_ok else HTTPStatus.SERVICE_UNAVAILABLE
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ok" if database_ok else "degraded",
            "database": "connected" if database_ok else "disconnected",
            "redis": "connected" if redis_manager.is_ready else "disconnected",
        },
    )
