import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pendulum

from src.fieldtrack.rabbitmq_handlers.telemetry.exceptions import (
    NegativeSpeed,
    OutOfOrderTimestamp,
    OutOfRangeCoordinate,
    TelemetryValidationError,
    UnparsableTimestamp,
)
from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import (
    TelemetryPing,
    TelemetryPoint,
)

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an epoch-milliseconds value (number or numeric string) or an
    ISO-8601 string into a UTC-aware datetime.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if isinstance(value, (int, float)):
        millis = float(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            millis = float(text)
        except ValueError:
            parsed = pendulum.parse(text)
            if not isinstance(parsed, datetime):
                raise ValueError(f"Not a point in time: {text!r}")
            return parsed.in_timezone("UTC")
    else:
        raise ValueError(f"Unsupported timestamp type: {type(value).__name__}")

    if not math.isfinite(millis):
        raise ValueError(f"Non-finite timestamp: {value!r}")
    return pendulum.from_timestamp(millis / 1000.0, tz="UTC")


@dataclass
class RejectedPing:
    ping: TelemetryPing
    error: TelemetryValidationError


@dataclass
class ValidationOutcome:
    accepted: List[TelemetryPoint] = field(default_factory=list)
    rejected: List[RejectedPing] = field(default_factory=list)


class TelemetryValidator:
    def validate(
        self, ping: TelemetryPing, last_accepted_at: Optional[datetime] = None
    ) -> TelemetryPoint:
        """
        Validate one ping against the last accepted timestamp for its device.

        Raises a ``TelemetryValidationError`` subclass naming the first check
        that failed. The caller drops the point and carries on.
        """
        try:
            timestamp = parse_timestamp(ping.timestamp_ms)
        except (ValueError, TypeError, OverflowError, OSError):
            raise UnparsableTimestamp(ping.device_id, ping.timestamp_ms)

        if not (
            math.isfinite(ping.latitude)
            and math.isfinite(ping.longitude)
            and -90.0 <= ping.latitude <= 90.0
            and -180.0 <= ping.longitude <= 180.0
        ):
            raise OutOfRangeCoordinate(ping.device_id, ping.latitude, ping.longitude)

        if not math.isfinite(ping.speed) or ping.speed < 0:
            raise NegativeSpeed(ping.device_id, ping.speed)

        if last_accepted_at is not None and timestamp < last_accepted_at:
            raise OutOfOrderTimestamp(ping.device_id, timestamp, last_accepted_at)

        altitude = ping.altitude
        if altitude is not None and not math.isfinite(altitude):
            altitude = None

        return TelemetryPoint(
            device_id=ping.device_id,
            latitude=ping.latitude,
            longitude=ping.longitude,
            altitude=altitude,
            speed=ping.speed,
            timestamp=timestamp,
            status=ping.status,
        )

    def validate_stream(
        self,
        pings: Iterable[TelemetryPing],
        last_accepted: Optional[Dict[str, datetime]] = None,
    ) -> ValidationOutcome:
        """Validate a batch in order, never stopping on a bad ping."""
        watermarks: Dict[str, datetime] = dict(last_accepted or {})
        outcome = ValidationOutcome()

        for ping in pings:
            try:
                point = self.validate(ping, watermarks.get(ping.device_id))
            except TelemetryValidationError as e:
                logger.warning(f"Rejected {e.kind} for device {ping.device_id}: {e}")
                outcome.rejected.append(RejectedPing(ping=ping, error=e))
                continue
            watermarks[point.device_id] = point.timestamp
            outcome.accepted.append(point)

        return outcome
