from datetime import datetime


class TelemetryEventException(Exception):
    """Base exception class for telemetry processing errors."""

    message = "An error occurred during telemetry processing."

    def __init__(self, message: str = "An error occurred during telemetry processing."):
        self.message = message or self.message
        super().__init__(self.message)


class TelemetryValidationError(TelemetryEventException):
    """A single ping failed validation and was dropped."""

    kind = "ValidationError"
    message = "Telemetry point failed validation."

    def __init__(self, device_id: str, details: str = ""):
        self.device_id = device_id
        self.details = details
        message = f"{self.message} Device ID: {device_id}"
        if details != "":
            message += f" Details: {details}"
        super().__init__(message)


class OutOfRangeCoordinate(TelemetryValidationError):
    kind = "OutOfRangeCoordinate"
    message = "Coordinate is out of range."

    def __init__(self, device_id: str, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(device_id, f"latitude={latitude}, longitude={longitude}")


class NegativeSpeed(TelemetryValidationError):
    kind = "NegativeSpeed"
    message = "Speed must be a non-negative number."

    def __init__(self, device_id: str, speed: float):
        self.speed = speed
        super().__init__(device_id, f"speed={speed}")


class UnparsableTimestamp(TelemetryValidationError):
    kind = "UnparsableTimestamp"
    message = "Timestamp could not be parsed."

    def __init__(self, device_id: str, raw_timestamp: object):
        self.raw_timestamp = raw_timestamp
        super().__init__(device_id, f"timestamp={raw_timestamp!r}")


class OutOfOrderTimestamp(TelemetryValidationError):
    kind = "OutOfOrderTimestamp"
    message = "Timestamp is earlier than the last accepted point."

    def __init__(self, device_id: str, timestamp: datetime, last_accepted_at: datetime):
        self.timestamp = timestamp
        self.last_accepted_at = last_accepted_at
        super().__init__(
            device_id,
            f"timestamp={timestamp.isoformat()}, "
            f"last_accepted={last_accepted_at.isoformat()}",
        )


class MalformedTelemetryPayload(TelemetryValidationError):
    kind = "MalformedTelemetryPayload"
    message = "Failed to decode telemetry payload."

    def __init__(self, payload: str, details: str = ""):
        self.payload = payload
        super().__init__("unknown", f"{details} Payload: {payload}".strip())


class TelemetryRedisException(TelemetryEventException):
    """Exception for Redis operation errors."""

    message = "Failed to perform Redis operation."

    def __init__(self, operation: str, key: str, details: str = ""):
        self.operation = operation
        self.key = key
        self.details = details
        message = f"{self.message} Operation: {operation}, Key: {key}"
        if details != "":
            message += f" Details: {details}"
        super().__init__(message)


class TelemetryDatabaseException(TelemetryEventException):
    """Exception for database operation errors."""

    message = "Failed to save telemetry point to database."

    def __init__(self, device_id: str, timestamp: str, details: str = ""):
        self.device_id = device_id
        self.timestamp = timestamp
        self.details = details
        message = f"{self.message} Device ID: {device_id}, Timestamp: {timestamp}"
        if details != "":
            message += f" Details: {details}"
        super().__init__(message)
