import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint
from src.fieldtrack.segmentation.geometry import segment_metrics
from src.fieldtrack.segmentation.schemas import Movement, Segment, Stoppage
from src.fieldtrack.segmentation.states import (
    DEFAULT_SPEED_THRESHOLD_KMH,
    MotionState,
    classify,
)

logger = logging.getLogger(__name__)

DEFAULT_IGNORED_STOPPAGE_SECONDS = 60.0


@dataclass(frozen=True)
class Run:
    state: MotionState
    points: Tuple[TelemetryPoint, ...]


def split_runs(
    points: Sequence[TelemetryPoint],
    speed_threshold: float = DEFAULT_SPEED_THRESHOLD_KMH,
) -> List[Run]:
    """Group consecutive points of the same classification, in one pass."""
    runs: List[Run] = []
    current: List[TelemetryPoint] = []
    current_state: Optional[MotionState] = None
    previous: Optional[TelemetryPoint] = None

    for point in points:
        if previous is not None:
            if point.device_id != previous.device_id:
                raise ValueError(
                    f"Mixed devices in one window: {previous.device_id}, {point.device_id}"
                )
            if point.timestamp < previous.timestamp:
                raise ValueError(
                    f"Points out of order for {point.device_id}: "
                    f"{point.timestamp.isoformat()} < {previous.timestamp.isoformat()}"
                )

        state = classify(point, speed_threshold)
        if current and state is not current_state:
            runs.append(Run(current_state, tuple(current)))  # type: ignore[arg-type]
            current = []
        current.append(point)
        current_state = state
        previous = point

    if current:
        runs.append(Run(current_state, tuple(current)))  # type: ignore[arg-type]
    return runs


def build_segment(run: Run, closing_point: Optional[TelemetryPoint]) -> Segment:
    path = list(run.points)
    if closing_point is not None:
        path.append(closing_point)
    metrics = segment_metrics(path)

    common = dict(
        start_time=path[0].timestamp,
        end_time=path[-1].timestamp,
        start_point=path[0],
        end_point=path[-1],
        duration_seconds=metrics.duration_seconds,
        point_count=len(run.points),
    )
    if run.state is MotionState.MOVING:
        return Movement(
            **common,
            distance_meters=metrics.distance_meters,
            average_speed=metrics.average_speed_kmh,
            max_speed=max(point.speed for point in run.points),
        )
    return Stoppage(
        **common,
        status=run.points[0].status,
        drift_distance_meters=metrics.distance_meters,
    )


def build_segments(runs: Sequence[Run]) -> List[Segment]:
    """
    Turn runs into contiguous segments.

    The first point of each run also closes the previous segment. A trailing
    run of one point has no duration of its own and is owned by the segment
    it closes.
    """
    segments: List[Segment] = []
    for index, run in enumerate(runs):
        closing = runs[index + 1].points[0] if index + 1 < len(runs) else None
        if closing is None and len(run.points) < 2:
            if segments:
                last = segments[-1]
                segments[-1] = last.model_copy(
                    update={"point_count": last.point_count + len(run.points)}
                )
            continue
        segments.append(build_segment(run, closing))
    return segments


def _absorbing_movement(segments: Sequence[Segment], index: int) -> Optional[int]:
    for candidate in (index - 1, index + 1):
        if 0 <= candidate < len(segments) and isinstance(segments[candidate], Movement):
            return candidate
    return None


def merge_short_stoppages(
    segments: Sequence[Segment],
    min_duration_seconds: float = DEFAULT_IGNORED_STOPPAGE_SECONDS,
) -> List[Segment]:
    """
    Mark stoppages shorter than ``min_duration_seconds`` as ignored and fold
    their time and drift into the neighbouring movement.

    Stoppages already marked ignored are left alone, so running the pass
    twice changes nothing.
    """
    merged: List[Segment] = list(segments)
    for index, segment in enumerate(merged):
        if not isinstance(segment, Stoppage) or segment.ignored:
            continue
        if segment.duration_seconds >= min_duration_seconds:
            continue

        host = _absorbing_movement(merged, index)
        merged[index] = segment.model_copy(update={"ignored": True, "absorbed_by": host})
        if host is None:
            continue

        movement = merged[host]
        assert isinstance(movement, Movement)
        merged[host] = movement.model_copy(
            update={
                "absorbed_seconds": movement.absorbed_seconds + segment.duration_seconds,
                "absorbed_distance_meters": movement.absorbed_distance_meters
                + segment.drift_distance_meters,
            }
        )
    return merged


class SegmentationEngine:
    def __init__(
        self,
        speed_threshold: float = DEFAULT_SPEED_THRESHOLD_KMH,
        ignored_stoppage_seconds: float = DEFAULT_IGNORED_STOPPAGE_SECONDS,
    ):
        self.speed_threshold = speed_threshold
        self.ignored_stoppage_seconds = ignored_stoppage_seconds

    def segment(self, points: Sequence[TelemetryPoint]) -> List[Segment]:
        if len(points) < 2:
            return []

        runs = split_runs(points, self.speed_threshold)
        segments = merge_short_stoppages(
            build_segments(runs), self.ignored_stoppage_seconds
        )
        logger.debug(
            f"Segmented {len(points)} points for {points[0].device_id} "
            f"into {len(segments)} segments"
        )
        return segments
