from enum import Enum

from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint

DEFAULT_SPEED_THRESHOLD_KMH = 2.0


class MotionState(Enum):
    MOVING = "moving"
    STOPPED = "stopped"


def classify(
    point: TelemetryPoint, speed_threshold: float = DEFAULT_SPEED_THRESHOLD_KMH
) -> MotionState:
    if point.speed > speed_threshold:
        return MotionState.MOVING
    return MotionState.STOPPED
