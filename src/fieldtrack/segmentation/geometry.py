"""Great-circle distance and per-segment metrics. Everything here is pure."""

import math
from datetime import datetime
from typing import Optional, Protocol, Sequence

from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint
from src.fieldtrack.segmentation.schemas import SegmentMetrics
from src.fieldtrack.segmentation.states import (
    DEFAULT_SPEED_THRESHOLD_KMH,
    MotionState,
    classify,
)

EARTH_RADIUS_METERS = 6_371_000.0


class HasCoordinates(Protocol):
    latitude: float
    longitude: float


def haversine_distance(p1: HasCoordinates, p2: HasCoordinates) -> float:
    """
    Distance in meters between two lat/lon points.

    The pair is put in a canonical order first, so the result is bit-for-bit
    identical whichever way round the points are passed.
    """
    (lat1, lon1), (lat2, lon2) = sorted(
        ((p1.latitude, p1.longitude), (p2.latitude, p2.longitude))
    )
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_METERS * c


def path_distance(points: Sequence[HasCoordinates]) -> float:
    return sum(
        haversine_distance(prev, cur) for prev, cur in zip(points, points[1:])
    )


def elapsed_seconds(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds()


def average_speed_kmh(distance_meters: float, duration_seconds: float) -> float:
    if duration_seconds <= 0:
        return 0.0
    return distance_meters / duration_seconds * 3.6


def segment_metrics(points: Sequence[TelemetryPoint]) -> SegmentMetrics:
    if len(points) < 2:
        return SegmentMetrics()

    distance = path_distance(points)
    duration = elapsed_seconds(points[0].timestamp, points[-1].timestamp)
    return SegmentMetrics(
        distance_meters=distance,
        duration_seconds=duration,
        average_speed_kmh=average_speed_kmh(distance, duration),
    )


def device_on_time(points: Sequence[TelemetryPoint]) -> Optional[datetime]:
    """Timestamp of the first point reporting the device as on."""
    for point in points:
        if point.status:
            return point.timestamp
    return None


def first_movement_time(
    points: Sequence[TelemetryPoint],
    speed_threshold: float = DEFAULT_SPEED_THRESHOLD_KMH,
    min_consecutive: int = 1,
) -> Optional[datetime]:
    """
    Timestamp of the first moving point that starts a run of at least
    ``min_consecutive`` moving points.
    """
    run_start: Optional[datetime] = None
    run_length = 0
    for point in points:
        if classify(point, speed_threshold) is MotionState.MOVING:
            if run_length == 0:
                run_start = point.timestamp
            run_length += 1
            if run_length >= max(min_consecutive, 1):
                return run_start
        else:
            run_start = None
            run_length = 0
    return None
