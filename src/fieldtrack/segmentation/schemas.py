from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint


class Coordinate(BaseModel):
    latitude: float
    longitude: float

    model_config = ConfigDict(frozen=True)


class SegmentMetrics(BaseModel):
    distance_meters: float = 0.0
    duration_seconds: float = 0.0
    average_speed_kmh: float = 0.0


class SegmentBase(BaseModel):
    """
    Common part of a segment.

    ``end_point`` is the first point of the next run when there is one, so
    consecutive segments share a boundary instant and never overlap.
    ``point_count`` counts only the points the segment owns.
    """

    start_time: datetime
    end_time: datetime
    start_point: TelemetryPoint
    end_point: TelemetryPoint
    duration_seconds: float = Field(..., ge=0)
    point_count: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)


class Movement(SegmentBase):
    kind: Literal["movement"] = "movement"
    distance_meters: float = 0.0
    average_speed: float = 0.0
    max_speed: float = 0.0
    # Folded in from ignored stoppages
    absorbed_seconds: float = 0.0
    absorbed_distance_meters: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def work_seconds(self) -> float:
        return self.duration_seconds + self.absorbed_seconds


class Stoppage(SegmentBase):
    kind: Literal["stoppage"] = "stoppage"
    status: bool
    drift_distance_meters: float = 0.0
    ignored: bool = False
    # Index of the movement that absorbed this stoppage, if any
    absorbed_by: Optional[int] = None


Segment = Annotated[Union[Movement, Stoppage], Field(discriminator="kind")]
