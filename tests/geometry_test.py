import pytest

from src.fieldtrack.segmentation.geometry import (
    average_speed_kmh,
    device_on_time,
    first_movement_time,
    haversine_distance,
    path_distance,
    segment_metrics,
)
from src.fieldtrack.segmentation.schemas import Coordinate


def test_haversine_same_point_is_zero():
    a = Coordinate(latitude=35.6892, longitude=51.3890)
    assert haversine_distance(a, a) == 0.0


def test_haversine_is_exactly_symmetric():
    a = Coordinate(latitude=35.6892, longitude=51.3890)
    b = Coordinate(latitude=32.6546, longitude=51.6680)
    assert haversine_distance(a, b) == haversine_distance(b, a)


def test_haversine_one_degree_on_equator():
    a = Coordinate(latitude=0.0, longitude=0.0)
    b = Coordinate(latitude=0.0, longitude=1.0)
    assert haversine_distance(a, b) == pytest.approx(111_194.93, abs=0.01)


def test_path_distance_sums_hops():
    points = [
        Coordinate(latitude=0.0, longitude=0.0),
        Coordinate(latitude=0.0, longitude=1.0),
        Coordinate(latitude=0.0, longitude=2.0),
    ]
    assert path_distance(points) == pytest.approx(2 * 111_194.93, abs=0.02)
    assert path_distance(points[:1]) == 0.0


def test_average_speed_zero_duration():
    assert average_speed_kmh(1000.0, 0.0) == 0.0
    assert average_speed_kmh(1000.0, 60.0) == pytest.approx(60.0)


def test_segment_metrics(make_point):
    points = [
        make_point(seconds=0, latitude=0.0, longitude=0.0, speed=120),
        make_point(seconds=3600, latitude=0.0, longitude=1.0, speed=120),
    ]
    metrics = segment_metrics(points)

    assert metrics.duration_seconds == 3600
    assert metrics.distance_meters == pytest.approx(111_194.93, abs=0.01)
    assert metrics.average_speed_kmh == pytest.approx(111.19, abs=0.01)


def test_segment_metrics_single_point(make_point):
    metrics = segment_metrics([make_point()])
    assert metrics.distance_meters == 0.0
    assert metrics.duration_seconds == 0.0
    assert metrics.average_speed_kmh == 0.0


def test_device_on_time(make_point):
    points = [
        make_point(seconds=0, status=False),
        make_point(seconds=60, status=False),
        make_point(seconds=120, status=True),
        make_point(seconds=180, status=True),
    ]
    assert device_on_time(points) == points[2].timestamp
    assert device_on_time(points[:2]) is None


def test_first_movement_time_plain_rule(make_point):
    points = [
        make_point(seconds=0, speed=0),
        make_point(seconds=60, speed=5),
        make_point(seconds=120, speed=0),
    ]
    assert first_movement_time(points) == points[1].timestamp


def test_first_movement_time_requires_consecutive_points(make_point):
    points = [
        make_point(seconds=0, speed=5),
        make_point(seconds=60, speed=0),
        make_point(seconds=120, speed=6),
        make_point(seconds=180, speed=7),
        make_point(seconds=240, speed=8),
    ]
    assert first_movement_time(points, min_consecutive=3) == points[2].timestamp
    assert first_movement_time(points[:4], min_consecutive=3) is None


def test_first_movement_time_threshold_is_strict(make_point):
    points = [make_point(seconds=0, speed=2.0), make_point(seconds=60, speed=2.0)]
    assert first_movement_time(points, speed_threshold=2.0) is None
