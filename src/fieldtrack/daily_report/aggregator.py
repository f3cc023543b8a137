import logging
from datetime import date
from typing import Optional, Sequence

from src.fieldtrack.daily_report.schemas import DailyReport
from src.fieldtrack.daily_report.strategies import IEfficiencyPolicy
from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint
from src.fieldtrack.segmentation.geometry import (
    average_speed_kmh,
    device_on_time,
    first_movement_time,
)
from src.fieldtrack.segmentation.schemas import Movement, Segment, Stoppage
from src.fieldtrack.segmentation.states import DEFAULT_SPEED_THRESHOLD_KMH

logger = logging.getLogger(__name__)

ADDITIVE_FIELDS = (
    "traveled_distance",
    "work_duration",
    "elapsed_duration",
    "movement_count",
    "stoppage_count",
    "stoppage_duration",
    "stoppage_duration_while_on",
    "stoppage_duration_while_off",
    "ignored_stoppage_count",
    "ignored_stoppage_duration",
    "total_records",
)


class DailyAggregator:
    def __init__(
        self,
        efficiency_policy: IEfficiencyPolicy,
        attribute_ignored_stoppage_distance: bool = False,
        speed_threshold: float = DEFAULT_SPEED_THRESHOLD_KMH,
        first_movement_min_points: int = 1,
    ):
        self.efficiency_policy = efficiency_policy
        self.attribute_ignored_stoppage_distance = attribute_ignored_stoppage_distance
        self.speed_threshold = speed_threshold
        self.first_movement_min_points = first_movement_min_points

    def aggregate(
        self,
        segments: Sequence[Segment],
        device_id: str,
        period: date,
        points: Optional[Sequence[TelemetryPoint]] = None,
    ) -> DailyReport:
        """
        Fold a segment list into a report. Pure: the same segments (and
        points) always give the same report.
        """
        report = DailyReport(
            device_id=device_id,
            period=period,
            efficiency_policy=self.efficiency_policy.name,
        )

        for segment in segments:
            report.elapsed_duration += segment.duration_seconds
            if isinstance(segment, Movement):
                report.movement_count += 1
                report.traveled_distance += segment.distance_meters
                if self.attribute_ignored_stoppage_distance:
                    report.traveled_distance += segment.absorbed_distance_meters
                report.work_duration += segment.work_seconds
                report.max_speed = max(report.max_speed, segment.max_speed)
            elif segment.ignored:
                report.ignored_stoppage_count += 1
                report.ignored_stoppage_duration += segment.duration_seconds
                if segment.absorbed_by is None:
                    # No movement in the window took it, so count it as work here
                    report.work_duration += segment.duration_seconds
            else:
                self._add_stoppage(report, segment)

        report.average_speed = average_speed_kmh(
            report.traveled_distance, report.work_duration
        )
        report.efficiency = self.efficiency_policy.compute(
            report.work_duration,
            report.stoppage_duration_while_on,
            report.elapsed_duration,
        )

        if segments:
            report.start_time = segments[0].start_time
            report.end_time = segments[-1].end_time
        if points:
            self._add_activation(report, points)

        logger.debug(
            f"Aggregated {len(segments)} segments for {device_id} on {period}: "
            f"{report.traveled_distance:.1f} m, {report.work_duration:.0f} s work"
        )
        return report

    def combine(
        self, reports: Sequence[DailyReport], device_id: str, period: date
    ) -> DailyReport:
        """
        Merge reports of disjoint, chronological windows into one. Totals add
        up; activation times come from the first window that has them and the
        latest status from the last window.
        """
        combined = DailyReport(
            device_id=device_id,
            period=period,
            efficiency_policy=self.efficiency_policy.name,
        )
        for report in reports:
            for name in ADDITIVE_FIELDS:
                setattr(combined, name, getattr(combined, name) + getattr(report, name))
            combined.max_speed = max(combined.max_speed, report.max_speed)
            combined.device_on_time = combined.device_on_time or report.device_on_time
            combined.first_movement_time = (
                combined.first_movement_time or report.first_movement_time
            )
            combined.start_time = combined.start_time or report.start_time

        if reports:
            combined.end_time = reports[-1].end_time
            combined.latest_status = reports[-1].latest_status
        combined.average_speed = average_speed_kmh(
            combined.traveled_distance, combined.work_duration
        )
        combined.efficiency = self.efficiency_policy.compute(
            combined.work_duration,
            combined.stoppage_duration_while_on,
            combined.elapsed_duration,
        )
        return combined

    @staticmethod
    def _add_stoppage(report: DailyReport, stoppage: Stoppage) -> None:
        report.stoppage_count += 1
        report.stoppage_duration += stoppage.duration_seconds
        if stoppage.status:
            report.stoppage_duration_while_on += stoppage.duration_seconds
        else:
            report.stoppage_duration_while_off += stoppage.duration_seconds

    def _add_activation(
        self, report: DailyReport, points: Sequence[TelemetryPoint]
    ) -> None:
        report.total_records = len(points)
        report.latest_status = points[-1].status
        report.start_time = points[0].timestamp
        report.end_time = points[-1].timestamp
        report.device_on_time = device_on_time(points)
        report.first_movement_time = first_movement_time(
            points, self.speed_threshold, self.first_movement_min_points
        )
