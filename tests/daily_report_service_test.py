import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pendulum
import pytest

from src.fieldtrack.alerting.evaluator import AlertEvaluator
from src.fieldtrack.alerting.policies import InactivityPolicy, StoppagePolicy
from src.fieldtrack.alerting.schemas import ThresholdConfig
from src.fieldtrack.alerting.states import AlertType
from src.fieldtrack.daily_report.aggregator import DailyAggregator
from src.fieldtrack.daily_report.exceptions import (
    PeriodNotClosedError,
    ReportNotFoundException,
)
from src.fieldtrack.daily_report.repositories import IDailyReportRepository
from src.fieldtrack.daily_report.scheduler import DailyReportScheduler
from src.fieldtrack.daily_report.services import DailyReportService
from src.fieldtrack.daily_report.strategies import WorkVsStoppageOnPolicy
from src.fieldtrack.daily_report.utils import period_bounds
from src.fieldtrack.rabbitmq_handlers.telemetry.repositories import (
    ITelemetryPointRepository,
)
from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint
from src.fieldtrack.segmentation.engine import SegmentationEngine
from src.fieldtrack.segmentation.zones import TaskZone
from tests.alert_evaluator_test import InMemoryAlertStateRepository

TZ = "Asia/Tehran"
DAY = date(2024, 5, 20)
DAY_START, DAY_END = period_bounds(DAY, TZ)


# region Fixtures
class InMemoryTelemetryRepository(ITelemetryPointRepository):
    def __init__(self, points=None):
        self.points = {}
        for point in points or []:
            self.points[(point.device_id, point.timestamp)] = point

    async def upsert(self, db, point):
        self.points[(point.device_id, point.timestamp)] = point

    async def exists(self, db, device_id):
        return any(key[0] == device_id for key in self.points)

    async def fetch_window(self, db, device_id, start, end):
        return sorted(
            (
                point
                for (device, timestamp), point in self.points.items()
                if device == device_id and start <= timestamp < end
            ),
            key=lambda point: point.timestamp,
        )

    async def last_timestamp(self, db, device_id):
        stamps = [ts for (device, ts) in self.points if device == device_id]
        return max(stamps) if stamps else None

    async def last_movement_time(self, db, device_id, speed_threshold):
        stamps = [
            point.timestamp
            for (device, _), point in self.points.items()
            if device == device_id and point.speed > speed_threshold
        ]
        return max(stamps) if stamps else None

    async def list_devices(self, db, start=None, end=None):
        return sorted(
            {
                device
                for (device, timestamp) in self.points
                if (start is None or timestamp >= start)
                and (end is None or timestamp < end)
            }
        )


class InMemoryReportRepository(IDailyReportRepository):
    def __init__(self):
        self.rows = {}

    async def upsert(self, db, report):
        self.rows[(report.device_id, report.period)] = report.model_copy()

    async def get(self, db, device_id, period):
        return self.rows.get((device_id, period))

    async def fetch_range(self, db, device_id, date_start, date_end):
        return [
            report
            for (device, period), report in sorted(self.rows.items())
            if device == device_id and date_start <= period <= date_end
        ]


def point_at(offset_seconds, speed, status=True, device_id="device_123", longitude=51.4):
    return TelemetryPoint(
        device_id=device_id,
        latitude=35.7,
        longitude=longitude,
        speed=speed,
        timestamp=pendulum.instance(DAY_START).add(hours=8, seconds=offset_seconds),
        status=status,
    )


@pytest.fixture
def day_points():
    # 4 h stopped with the device on, then 10 min of driving
    points = [point_at(minutes * 60, 0) for minutes in range(0, 240, 20)]
    points += [
        point_at(240 * 60 + step * 60, 30, longitude=51.4 + step * 0.005)
        for step in range(10)
    ]
    return points


@pytest.fixture
def make_service():
    def _make_service(points, now, with_alerts=True):
        state_repo = InMemoryAlertStateRepository()
        evaluator = AlertEvaluator(
            state_repo=state_repo,
            policies={
                AlertType.STOPPAGE: StoppagePolicy(),
                AlertType.INACTIVITY: InactivityPolicy(),
            },
            configs={
                AlertType.STOPPAGE: ThresholdConfig(
                    alert_type=AlertType.STOPPAGE, threshold=3 * 3600
                ),
                AlertType.INACTIVITY: ThresholdConfig(
                    alert_type=AlertType.INACTIVITY, threshold=86400
                ),
            },
        )
        service = DailyReportService(
            InMemoryTelemetryRepository(points),
            InMemoryReportRepository(),
            SegmentationEngine(),
            DailyAggregator(WorkVsStoppageOnPolicy()),
            alert_evaluator=evaluator if with_alerts else None,
            timezone=TZ,
            finalize_grace_seconds=300,
            clock=lambda: now,
        )
        return service

    return _make_service


@pytest.fixture
def after_close():
    return pendulum.instance(DAY_END).add(minutes=10)


# endregion


@patch("src.fieldtrack.alerting.utils.send_alert_event", new_callable=AsyncMock)
async def test_finalize_twice_is_idempotent(mock_send, make_service, day_points, after_close):
    service = make_service(day_points, after_close)
    db = AsyncMock()

    first = await service.finalize(db, "device_123", DAY)
    second = await service.finalize(db, "device_123", DAY)

    assert first == second
    assert list(service.report_repo.rows) == [("device_123", DAY)]
    assert service.report_repo.rows[("device_123", DAY)] == first
    assert first.stoppage_duration_while_on == 4 * 3600
    assert first.total_records == len(day_points)


@patch("src.fieldtrack.alerting.utils.send_alert_event", new_callable=AsyncMock)
async def test_finalize_fires_stoppage_alert_once(
    mock_send, make_service, day_points, after_close
):
    service = make_service(day_points, after_close)
    db = AsyncMock()

    await service.finalize(db, "device_123", DAY)
    await service.finalize(db, "device_123", DAY)

    mock_send.assert_awaited_once()
    event = mock_send.await_args.args[0]
    assert event.alert_type is AlertType.STOPPAGE
    assert event.period == DAY


@patch("src.fieldtrack.alerting.utils.send_alert_event", new_callable=AsyncMock)
async def test_alert_delivery_failure_keeps_report(
    mock_send, make_service, day_points, after_close
):
    mock_send.side_effect = Exception("dispatcher down")
    service = make_service(day_points, after_close)

    report = await service.finalize(AsyncMock(), "device_123", DAY)

    assert service.report_repo.rows[("device_123", DAY)] == report


async def test_finalize_open_period_raises(make_service, day_points):
    service = make_service(day_points, pendulum.instance(DAY_END).add(seconds=60))

    with pytest.raises(PeriodNotClosedError):
        await service.finalize(AsyncMock(), "device_123", DAY)
    assert service.report_repo.rows == {}


async def test_is_closed_honours_grace(make_service, day_points):
    service = make_service(day_points, pendulum.instance(DAY_END).add(seconds=300))
    assert service.is_closed(DAY) is True
    assert service.is_closed(date(2024, 5, 21)) is False


async def test_recompute_unknown_device(make_service, after_close):
    service = make_service([], after_close)

    with pytest.raises(ReportNotFoundException) as exc_info:
        await service.recompute(AsyncMock(), "ghost", DAY)
    assert exc_info.value.status_code == 404


async def test_recompute_known_device_without_points_stores_zero_report(
    make_service, after_close
):
    other_day = point_at(0, 0)
    other_day = other_day.model_copy(
        update={"timestamp": pendulum.instance(DAY_START).subtract(days=3)}
    )
    service = make_service([other_day], after_close, with_alerts=False)

    report = await service.recompute(AsyncMock(), "device_123", DAY)

    assert report.total_records == 0
    assert report.work_duration == 0
    assert service.report_repo.rows[("device_123", DAY)] == report


async def test_finalize_all_covers_every_device(make_service, day_points, after_close):
    other = [point_at(offset, 20, device_id="device_456", longitude=51.4 + offset / 10000) for offset in (0, 60, 120)]
    service = make_service(day_points + other, after_close, with_alerts=False)

    count = await service.finalize_all(AsyncMock(), DAY)

    assert count == 2
    assert set(service.report_repo.rows) == {("device_123", DAY), ("device_456", DAY)}


async def test_finalize_all_continues_after_device_failure(
    make_service, day_points, after_close, caplog
):
    other = [point_at(0, 20, device_id="device_456"), point_at(60, 20, device_id="device_456")]
    service = make_service(day_points + other, after_close, with_alerts=False)
    original = service.report_repo.upsert

    async def flaky_upsert(db, report):
        if report.device_id == "device_123":
            raise RuntimeError("write failed")
        await original(db, report)

    service.report_repo.upsert = flaky_upsert
    db = AsyncMock()

    with caplog.at_level("ERROR"):
        count = await service.finalize_all(db, DAY)

    assert count == 1
    assert "Failed to finalize report for device_123" in caplog.text
    db.rollback.assert_awaited_once()


async def test_report_range_builds_views(make_service, day_points, after_close):
    service = make_service(day_points, after_close, with_alerts=False)
    await service.finalize(AsyncMock(), "device_123", DAY)

    response = await service.report_range(
        AsyncMock(), "device_123", date(2024, 5, 19), date(2024, 5, 21)
    )

    assert [view.report.period for view in response.reports] == [DAY]
    view = response.reports[0]
    assert view.finalized is True
    assert view.stoppage_duration_while_on == "04:00:00"
    assert [segment.kind for segment in view.segments] == ["stoppage", "movement"]


async def test_report_range_without_points(make_service, day_points, after_close):
    service = make_service(day_points, after_close)

    with pytest.raises(ReportNotFoundException):
        await service.report_range(
            AsyncMock(), "device_123", date(2024, 6, 1), date(2024, 6, 2)
        )


@patch("src.fieldtrack.alerting.utils.send_alert_event", new_callable=AsyncMock)
async def test_evaluate_live_checks_inactivity_and_today(mock_send, make_service):
    idle = [
        point_at(0, 25, device_id="idle_device"),
        point_at(60, 0, device_id="idle_device"),
    ]
    now = pendulum.instance(DAY_START).add(days=3)
    service = make_service(idle, now)

    events = await service.evaluate_live(AsyncMock())

    assert [event.alert_type for event in events] == [AlertType.INACTIVITY]
    assert events[0].device_id == "idle_device"
    assert mock_send.await_count == 1


@patch("src.fieldtrack.alerting.utils.send_alert_event", new_callable=AsyncMock)
async def test_evaluate_live_stoppage_for_open_period(mock_send, make_service, day_points):
    now = pendulum.instance(day_points[-1].timestamp).add(minutes=1)
    service = make_service(day_points, now)

    events = await service.evaluate_live(AsyncMock())

    assert [event.alert_type for event in events] == [AlertType.STOPPAGE]
    assert events[0].period == DAY

    # Finalizing the same day later stays quiet
    service.clock = lambda: pendulum.instance(DAY_END).add(minutes=10)
    await service.finalize(AsyncMock(), "device_123", DAY)
    assert mock_send.await_count == 1


# region Scheduler
async def test_scheduler_finalizes_previous_local_day(make_service, day_points, after_close):
    service = make_service(day_points, after_close, with_alerts=False)
    scheduler = DailyReportScheduler(service, asyncio.get_running_loop())

    session_cm = AsyncMock()
    session_cm.__aenter__.return_value = AsyncMock()
    with patch("src.fieldtrack.daily_report.scheduler.db") as mock_db:
        mock_db.get_client = AsyncMock(return_value=session_cm)
        count = await scheduler.finalize_period()

    assert count == 1
    assert ("device_123", DAY) in service.report_repo.rows


async def test_scheduler_logs_open_period(make_service, day_points, caplog):
    service = make_service(day_points, pendulum.instance(DAY_END).subtract(hours=1))
    scheduler = DailyReportScheduler(service, asyncio.get_running_loop())

    session_cm = AsyncMock()
    session_cm.__aenter__.return_value = AsyncMock()
    with patch("src.fieldtrack.daily_report.scheduler.db") as mock_db:
        mock_db.get_client = AsyncMock(return_value=session_cm)
        with caplog.at_level("WARNING"):
            result = await scheduler.finalize_period(DAY)

    assert result is None
    assert "Reporting period is still open" in caplog.text


def test_scheduler_run_registers_jobs():
    service = MagicMock()
    scheduler = DailyReportScheduler(
        service, MagicMock(), finalize_time="00:15", live_interval_minutes=10
    )

    with patch("src.fieldtrack.daily_report.scheduler.threading.Thread") as mock_thread:
        scheduler.run()

    assert len(scheduler.scheduler.jobs) == 2
    mock_thread.return_value.start.assert_called_once()
    scheduler.stop()
    assert scheduler.scheduler.jobs == []


@patch("src.fieldtrack.daily_report.scheduler.asyncio.run_coroutine_threadsafe")
def test_scheduler_jobs_submit_to_loop(mock_submit):
    loop = MagicMock()
    scheduler = DailyReportScheduler(MagicMock(), loop)

    scheduler.run_live_job()
    scheduler.run_finalize_job()

    assert mock_submit.call_count == 2
    for args, _ in mock_submit.call_args_list:
        assert args[1] is loop
        args[0].close()


# endregion


async def test_analyze_zone_counts_only_time_inside(make_service, after_close):
    # Parked inside, out for a drive, back inside and parked again
    points = [
        point_at(0, 0, longitude=51.405),
        point_at(600, 0, longitude=51.405),
        point_at(660, 30, longitude=51.415),
        point_at(1200, 30, longitude=51.425),
        point_at(1800, 0, longitude=51.405),
        point_at(2400, 0, longitude=51.405),
    ]
    service = make_service(points, after_close, with_alerts=False)
    zone = TaskZone([(35.69, 51.40), (35.69, 51.41), (35.71, 51.41), (35.71, 51.40)])

    result = await service.analyze_zone(AsyncMock(), "device_123", DAY_START, DAY_END, zone)

    assert len(result.presences) == 2
    assert [p.point_count for p in result.presences] == [2, 2]
    assert result.presences[1].start_time == points[4].timestamp
    assert result.report.total_records == 4
    assert result.report.stoppage_count == 2
    assert result.report.stoppage_duration == 1200
    assert result.report.elapsed_duration == 1200
    assert result.report.traveled_distance == 0
    assert result.report.period == DAY
    assert result.stoppage_duration == "00:20:00"
    assert service.report_repo.rows == {}


async def test_analyze_zone_outside_window_is_empty(make_service, day_points, after_close):
    service = make_service(day_points, after_close, with_alerts=False)
    elsewhere = TaskZone([(36.0, 52.0), (36.0, 52.1), (36.1, 52.1)])

    result = await service.analyze_zone(
        AsyncMock(), "device_123", DAY_START, DAY_END, elsewhere
    )

    assert result.presences == []
    assert result.report.total_records == 0
    assert result.work_duration == "00:00:00"


async def test_analyze_zone_unknown_device(make_service, after_close):
    service = make_service([], after_close, with_alerts=False)
    zone = TaskZone([(35.69, 51.40), (35.69, 51.41), (35.71, 51.41)])

    with pytest.raises(ReportNotFoundException):
        await service.analyze_zone(AsyncMock(), "ghost", DAY_START, DAY_END, zone)
