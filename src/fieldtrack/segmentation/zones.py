"""Task zones: a polygon a piece of work is restricted to, and the device's visits to it."""

from typing import List, Sequence, Tuple, TypeVar

from shapely.geometry import Point, Polygon

from src.fieldtrack.segmentation.geometry import HasCoordinates

P = TypeVar("P", bound=HasCoordinates)


class TaskZone:
    def __init__(self, vertices: Sequence[Tuple[float, float]]):
        """``vertices`` are (latitude, longitude) pairs; the ring closes itself."""
        if len(vertices) < 3:
            raise ValueError(f"A zone needs at least 3 vertices, got {len(vertices)}")
        # x is longitude
        self.polygon = Polygon([(lon, lat) for lat, lon in vertices])
        if not self.polygon.is_valid:
            raise ValueError("Zone polygon must not intersect itself")

    def contains(self, point: HasCoordinates) -> bool:
        """Points on the boundary count as inside."""
        return self.polygon.covers(Point(point.longitude, point.latitude))


def presence_windows(points: Sequence[P], zone: TaskZone) -> List[List[P]]:
    """
    Split an ordered point list into the runs spent inside ``zone``.

    A window opens on the first point inside and closes on the last point
    before the device leaves. Every re-entry opens a new window, so time
    spent outside is never counted.
    """
    windows: List[List[P]] = []
    current: List[P] = []
    for point in points:
        if zone.contains(point):
            current.append(point)
        elif current:
            windows.append(current)
            current = []
    if current:
        windows.append(current)
    return windows
