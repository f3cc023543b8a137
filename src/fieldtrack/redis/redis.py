import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.fieldtrack.config import get_settings

logger = logging.getLogger(__name__)


class RedisManager:
    """Client for the ingest ordering cache. Ingest keeps working without it."""

    def __init__(self):
        self.redis_client: Optional[redis.Redis] = None

    async def init_redis(self):
        settings = get_settings()
        address = f"{settings.REDIS_HOST}:{settings.REDIS_PORT}"
        client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            decode_responses=True,
        )
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            logger.warning(
                f"Ordering cache at {address} unreachable, ingest falls back to "
                f"the point store: {str(e)}"
            )
            return
        self.redis_client = client
        logger.info(f"Ordering cache ready at {address}")

    async def close_redis(self):
        if self.redis_client is None:
            return
        await self.redis_client.aclose()
        self.redis_client = None
        logger.info("Ordering cache closed")

    @property
    def is_ready(self) -> bool:
        return self.redis_client is not None


redis_manager = RedisManager()
