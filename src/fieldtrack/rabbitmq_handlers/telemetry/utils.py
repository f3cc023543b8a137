import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.fieldtrack.rabbitmq_handlers.telemetry.exceptions import (
    TelemetryDatabaseException,
    TelemetryRedisException,
)
from src.fieldtrack.rabbitmq_handlers.telemetry.repositories import (
    ITelemetryPointRepository,
    TelemetryPointRepository,
)
from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint
from src.fieldtrack.redis.redis import redis_manager

logger = logging.getLogger(__name__)
telemetry_repo: ITelemetryPointRepository = TelemetryPointRepository()


def last_accepted_key(device_id: str) -> str:
    return f"telemetry:last_ts:{device_id}"


async def read_cached_last_accepted(device_id: str) -> Optional[datetime]:
    if redis_manager.redis_client is None:
        return None

    key = last_accepted_key(device_id)
    try:
        cached = await redis_manager.redis_client.get(key)
    except Exception as e:
        raise TelemetryRedisException("get", key, str(e))
    return datetime.fromisoformat(cached) if cached else None


async def get_last_accepted(db: AsyncSession, device_id: str) -> Optional[datetime]:
    """Ordering watermark for a device: Redis first, then the point store."""
    try:
        cached = await read_cached_last_accepted(device_id)
    except TelemetryRedisException as e:
        logger.error(f"Redis error, falling back to point store: {e}")
        cached = None
    if cached is not None:
        return cached
    return await telemetry_repo.last_timestamp(db, device_id)


async def remember_last_accepted(point: TelemetryPoint) -> None:
    if redis_manager.redis_client is None:
        return

    key = last_accepted_key(point.device_id)
    try:
        await redis_manager.redis_client.set(key, point.timestamp.isoformat())
    except Exception as e:
        # The point store still answers the ordering check on the next ping
        logger.error(str(TelemetryRedisException("set", key, str(e))))


async def persist_point(db: AsyncSession, point: TelemetryPoint) -> None:
    """Upsert keyed by (device_id, timestamp) so retried pings never duplicate."""
    try:
        await telemetry_repo.upsert(db, point)
    except Exception as e:
        await db.rollback()
        logger.error(f"Error saving telemetry point: {e}")
        raise TelemetryDatabaseException(
            point.device_id, point.timestamp.isoformat(), str(e)
        )
