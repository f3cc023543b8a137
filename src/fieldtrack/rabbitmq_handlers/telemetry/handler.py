import logging
from typing import Union, cast

from sqlalchemy.ext.asyncio import AsyncSession

from src.fieldtrack.rabbitmq_handlers.telemetry.exceptions import (
    TelemetryValidationError,
)
from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPing
from src.fieldtrack.rabbitmq_handlers.telemetry.utils import (
    get_last_accepted,
    persist_point,
    remember_last_accepted,
)
from src.fieldtrack.rabbitmq_handlers.telemetry.validator import TelemetryValidator

logger = logging.getLogger(__name__)
validator: TelemetryValidator = TelemetryValidator()


async def handle_telemetry_event(db: AsyncSession, payload: Union[str, bytes]) -> dict:
    """
    Validate one ingest payload and store it.

    Returns the accepted point, or ``{"error": kind, "detail": ...}`` for a
    rejected one. Rejections never raise, so the consumer keeps going.
    """
    try:
        ping = TelemetryPing.from_json(payload)
        last_accepted_at = await get_last_accepted(db, ping.device_id)
        point = validator.validate(ping, last_accepted_at)
    except TelemetryValidationError as e:
        logger.warning(f"Rejected telemetry point ({e.kind}): {e.message}")
        return {"error": e.kind, "detail": e.message}

    await persist_point(db, point)
    await remember_last_accepted(point)
    logger.info(f"Accepted point for {point.device_id} at {point.timestamp.isoformat()}")

    return cast(dict, point.model_dump(mode="json"))
