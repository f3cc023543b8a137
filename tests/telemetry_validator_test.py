import json
import math

import pendulum
import pytest

from src.fieldtrack.rabbitmq_handlers.telemetry.exceptions import (
    MalformedTelemetryPayload,
    NegativeSpeed,
    OutOfOrderTimestamp,
    OutOfRangeCoordinate,
    UnparsableTimestamp,
)
from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPing
from src.fieldtrack.rabbitmq_handlers.telemetry.validator import (
    TelemetryValidator,
    parse_timestamp,
)

EPOCH_MS = 1716193800000  # 2024-05-20T08:30:00Z


# region Fixtures
@pytest.fixture
def validator():
    return TelemetryValidator()


@pytest.fixture
def ping():
    def _ping(**overrides):
        data = {
            "device_id": "device_123",
            "latitude": 35.7,
            "longitude": 51.4,
            "altitude": 1200.0,
            "speed": 12.5,
            "timestamp_ms": EPOCH_MS,
            "status": True,
        }
        data.update(overrides)
        return TelemetryPing(**data)

    return _ping


# endregion


@pytest.mark.parametrize(
    "value",
    [EPOCH_MS, float(EPOCH_MS), str(EPOCH_MS), "2024-05-20T08:30:00Z", "2024-05-20T12:00:00+03:30"],
)
def test_parse_timestamp_accepts_supported_forms(value):
    parsed = parse_timestamp(value)
    assert parsed == pendulum.datetime(2024, 5, 20, 8, 30, tz="UTC")
    assert parsed.utcoffset().total_seconds() == 0


@pytest.mark.parametrize("value", [None, True, "yesterday-ish", math.inf, [1, 2]])
def test_parse_timestamp_rejects_unsupported_values(value):
    with pytest.raises(ValueError):
        parse_timestamp(value)


def test_validate_accepts_good_ping(validator, ping):
    point = validator.validate(ping())

    assert point.device_id == "device_123"
    assert point.timestamp == pendulum.datetime(2024, 5, 20, 8, 30, tz="UTC")
    assert point.speed == 12.5
    assert point.status is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"latitude": 90.5},
        {"latitude": -91.0},
        {"longitude": 180.01},
        {"longitude": float("nan")},
    ],
)
def test_validate_rejects_out_of_range_coordinates(validator, ping, overrides):
    with pytest.raises(OutOfRangeCoordinate) as exc_info:
        validator.validate(ping(**overrides))
    assert exc_info.value.kind == "OutOfRangeCoordinate"


def test_validate_accepts_boundary_coordinates(validator, ping):
    point = validator.validate(ping(latitude=-90.0, longitude=180.0))
    assert point.latitude == -90.0


@pytest.mark.parametrize("speed", [-0.1, float("inf")])
def test_validate_rejects_bad_speed(validator, ping, speed):
    with pytest.raises(NegativeSpeed):
        validator.validate(ping(speed=speed))


def test_validate_rejects_unparsable_timestamp(validator, ping):
    with pytest.raises(UnparsableTimestamp) as exc_info:
        validator.validate(ping(timestamp_ms="not a time"))
    assert exc_info.value.device_id == "device_123"


def test_timestamp_checked_before_coordinates(validator, ping):
    with pytest.raises(UnparsableTimestamp):
        validator.validate(ping(timestamp_ms=None, latitude=200.0))


def test_validate_rejects_out_of_order(validator, ping):
    last = pendulum.datetime(2024, 5, 20, 9, 0, tz="UTC")
    with pytest.raises(OutOfOrderTimestamp):
        validator.validate(ping(), last_accepted_at=last)


def test_validate_accepts_equal_timestamp_retry(validator, ping):
    last = pendulum.datetime(2024, 5, 20, 8, 30, tz="UTC")
    point = validator.validate(ping(), last_accepted_at=last)
    assert point.timestamp == last


def test_non_finite_altitude_is_dropped(validator, ping):
    point = validator.validate(ping(altitude=float("nan")))
    assert point.altitude is None


def test_validate_stream_keeps_going_after_bad_points(validator, ping):
    pings = [
        ping(timestamp_ms=EPOCH_MS),
        ping(timestamp_ms=EPOCH_MS + 60_000, latitude=123.0),
        ping(timestamp_ms=EPOCH_MS - 60_000),
        ping(timestamp_ms=EPOCH_MS + 120_000, speed=-4),
        ping(timestamp_ms=EPOCH_MS + 180_000),
        ping(device_id="device_456", timestamp_ms=EPOCH_MS - 3_600_000),
    ]
    outcome = validator.validate_stream(pings)

    assert len(outcome.accepted) == 3
    assert [rejected.error.kind for rejected in outcome.rejected] == [
        "OutOfRangeCoordinate",
        "OutOfOrderTimestamp",
        "NegativeSpeed",
    ]


def test_validate_stream_logs_rejections(validator, ping, caplog):
    with caplog.at_level("WARNING"):
        validator.validate_stream([ping(speed=-1)])
    assert "NegativeSpeed" in caplog.text


def test_validate_stream_uses_given_watermarks(validator, ping):
    last = {"device_123": pendulum.datetime(2024, 5, 21, tz="UTC")}
    outcome = validator.validate_stream([ping()], last_accepted=last)
    assert outcome.accepted == []
    assert outcome.rejected[0].error.kind == "OutOfOrderTimestamp"


def test_from_json_decodes_payload():
    payload = json.dumps(
        {
            "device_id": "device_123",
            "latitude": 35.7,
            "longitude": 51.4,
            "speed": 0,
            "timestamp_ms": EPOCH_MS,
            "status": False,
        }
    )
    parsed = TelemetryPing.from_json(payload)
    assert parsed.altitude is None
    assert parsed.status is False


@pytest.mark.parametrize(
    "payload",
    ["not json", json.dumps({"device_id": "device_123"}), b'{"device_id": ""}'],
)
def test_from_json_rejects_malformed_payload(payload):
    with pytest.raises(MalformedTelemetryPayload) as exc_info:
        TelemetryPing.from_json(payload)
    assert exc_info.value.kind == "MalformedTelemetryPayload"
