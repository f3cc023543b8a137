import logging
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.fieldtrack.rabbitmq_handlers.telemetry.exceptions import (
    MalformedTelemetryPayload,
)

logger = logging.getLogger(__name__)


class TelemetryPing(BaseModel):
    """Raw ingest payload as sent by a device or mobile client.

    Only the shape is checked here. Range and ordering checks belong to
    ``TelemetryValidator`` so that each failure maps to its own error kind.
    """

    device_id: str = Field(..., min_length=1)
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    speed: float
    timestamp_ms: Any
    status: bool

    @classmethod
    def from_json(cls, payload: Union[str, bytes]) -> "TelemetryPing":
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            raw = payload.decode("utf-8", "replace") if isinstance(payload, bytes) else payload
            logger.error(f"Failed to decode telemetry payload: {e.error_count()} error(s)")
            raise MalformedTelemetryPayload(raw, str(e).splitlines()[0])


class TelemetryPoint(BaseModel):
    """A validated ping. Timestamps are always UTC-aware."""

    device_id: str
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    speed: float = Field(..., ge=0)
    timestamp: datetime
    status: bool

    model_config = ConfigDict(from_attributes=True, frozen=True)
