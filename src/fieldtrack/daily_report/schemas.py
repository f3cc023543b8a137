from datetime import date, datetime
from typing import List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from src.fieldtrack.daily_report.models import DailyReportModel
from src.fieldtrack.daily_report.utils import format_duration, to_local
from src.fieldtrack.segmentation.schemas import Movement, Segment, Stoppage

REPORT_VALUE_FIELDS = (
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
    "average_speed",
    "max_speed",
    "efficiency",
    "efficiency_policy",
    "device_on_time",
    "first_movement_time",
    "start_time",
    "end_time",
    "total_records",
    "latest_status",
)


class DailyReport(BaseModel):
    """Per-device, per-period report. Distances in meters, durations in seconds."""

    device_id: str = Field(..., max_length=50)
    period: date
    traveled_distance: float = 0.0
    work_duration: float = 0.0
    elapsed_duration: float = 0.0
    movement_count: int = 0
    stoppage_count: int = 0
    stoppage_duration: float = 0.0
    stoppage_duration_while_on: float = 0.0
    stoppage_duration_while_off: float = 0.0
    ignored_stoppage_count: int = 0
    ignored_stoppage_duration: float = 0.0
    average_speed: float = 0.0
    max_speed: float = 0.0
    efficiency: float = 0.0
    efficiency_policy: str = "work_vs_stoppage_on"
    device_on_time: Optional[datetime] = None
    first_movement_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_records: int = 0
    latest_status: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)

    def to_model(self) -> DailyReportModel:
        return DailyReportModel(
            device_id=self.device_id,
            period=self.period,
            **{name: getattr(self, name) for name in REPORT_VALUE_FIELDS},
        )


class MovementView(BaseModel):
    kind: Literal["movement"] = "movement"
    label: str
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    duration: str
    distance_meters: float
    average_speed: float
    start_latitude: float
    start_longitude: float
    end_latitude: float
    end_longitude: float

    @classmethod
    def from_segment(cls, segment: Movement, label: str, tz: str) -> "MovementView":
        return cls(
            label=label,
            start_time=to_local(segment.start_time, tz),
            end_time=to_local(segment.end_time, tz),
            duration_seconds=segment.duration_seconds,
            duration=format_duration(segment.duration_seconds),
            distance_meters=segment.distance_meters,
            average_speed=segment.average_speed,
            start_latitude=segment.start_point.latitude,
            start_longitude=segment.start_point.longitude,
            end_latitude=segment.end_point.latitude,
            end_longitude=segment.end_point.longitude,
        )


class StoppageView(BaseModel):
    kind: Literal["stoppage"] = "stoppage"
    label: str
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    duration: str
    latitude: float
    longitude: float
    status: bool
    ignored: bool

    @classmethod
    def from_segment(cls, segment: Stoppage, label: str, tz: str) -> "StoppageView":
        return cls(
            label=label,
            start_time=to_local(segment.start_time, tz),
            end_time=to_local(segment.end_time, tz),
            duration_seconds=segment.duration_seconds,
            duration=format_duration(segment.duration_seconds),
            latitude=segment.start_point.latitude,
            longitude=segment.start_point.longitude,
            status=segment.status,
            ignored=segment.ignored,
        )


SegmentView = Union[MovementView, StoppageView]


def build_segment_views(segments: Sequence[Segment], tz: str) -> List[SegmentView]:
    """
    Chronological breakdown with display labels: movements and stoppages are
    numbered 1, 2, ... separately, ignored stoppages I1, I2, ...
    """
    views: List[SegmentView] = []
    movements = stoppages = ignored = 0
    for segment in segments:
        if isinstance(segment, Movement):
            movements += 1
            views.append(MovementView.from_segment(segment, str(movements), tz))
        elif segment.ignored:
            ignored += 1
            views.append(StoppageView.from_segment(segment, f"I{ignored}", tz))
        else:
            stoppages += 1
            views.append(StoppageView.from_segment(segment, str(stoppages), tz))
    return views


class DailyReportView(BaseModel):
    report: DailyReport
    finalized: bool = False
    work_duration: str
    stoppage_duration: str
    stoppage_duration_while_on: str
    stoppage_duration_while_off: str
    ignored_stoppage_duration: str
    segments: List[SegmentView] = []

    @classmethod
    def build(
        cls,
        report: DailyReport,
        segments: Sequence[Segment],
        tz: str,
        finalized: bool = False,
    ) -> "DailyReportView":
        return cls(
            report=report,
            finalized=finalized,
            work_duration=format_duration(report.work_duration),
            stoppage_duration=format_duration(report.stoppage_duration),
            stoppage_duration_while_on=format_duration(report.stoppage_duration_while_on),
            stoppage_duration_while_off=format_duration(
                report.stoppage_duration_while_off
            ),
            ignored_stoppage_duration=format_duration(report.ignored_stoppage_duration),
            segments=build_segment_views(segments, tz),
        )


class ReportRangeResponse(BaseModel):
    device_id: str
    date_start: date
    date_end: date
    reports: List[DailyReportView]


class ZoneReportRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    polygon: List[Tuple[float, float]] = Field(
        ..., min_length=3, description="Zone vertices as (latitude, longitude) pairs"
    )


class ZonePresence(BaseModel):
    """One uninterrupted visit to the zone."""

    start_time: datetime
    end_time: datetime
    point_count: int
    traveled_distance: float
    work_duration: float
    stoppage_duration: float

    @classmethod
    def from_report(cls, report: DailyReport, tz: str) -> "ZonePresence":
        return cls(
            start_time=to_local(report.start_time, tz),
            end_time=to_local(report.end_time, tz),
            point_count=report.total_records,
            traveled_distance=report.traveled_distance,
            work_duration=report.work_duration,
            stoppage_duration=report.stoppage_duration,
        )


class ZoneReportResponse(BaseModel):
    device_id: str
    start_time: datetime
    end_time: datetime
    report: DailyReport
    work_duration: str
    stoppage_duration: str
    presences: List[ZonePresence] = []

    @classmethod
    def build(
        cls,
        start_time: datetime,
        end_time: datetime,
        report: DailyReport,
        window_reports: Sequence[DailyReport],
        tz: str,
    ) -> "ZoneReportResponse":
        return cls(
            device_id=report.device_id,
            start_time=to_local(start_time, tz),
            end_time=to_local(end_time, tz),
            report=report,
            work_duration=format_duration(report.work_duration),
            stoppage_duration=format_duration(report.stoppage_duration),
            presences=[ZonePresence.from_report(r, tz) for r in window_reports],
        )
