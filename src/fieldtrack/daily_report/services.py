import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

import pendulum
from sqlalchemy.ext.asyncio import AsyncSession

from src.fieldtrack.alerting.evaluator import AlertEvaluator
from src.fieldtrack.alerting.exceptions import AlertStateConflictError
from src.fieldtrack.alerting.schemas import AlertMetrics
from src.fieldtrack.alerting.states import AlertType
from src.fieldtrack.alerting.utils import evaluate_and_dispatch
from src.fieldtrack.daily_report.aggregator import DailyAggregator
from src.fieldtrack.daily_report.exceptions import (
    PeriodNotClosedError,
    ReportNotFoundException,
)
from src.fieldtrack.daily_report.repositories import IDailyReportRepository
from src.fieldtrack.daily_report.schemas import (
    DailyReport,
    DailyReportView,
    ReportRangeResponse,
    ZoneReportResponse,
)
from src.fieldtrack.daily_report.utils import iter_days, period_bounds, to_local
from src.fieldtrack.rabbitmq_handlers.telemetry.repositories import (
    ITelemetryPointRepository,
)
from src.fieldtrack.segmentation.engine import SegmentationEngine
from src.fieldtrack.segmentation.schemas import Segment
from src.fieldtrack.segmentation.zones import TaskZone, presence_windows
from src.fieldtrack.websocket.models import AlertEvent

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return pendulum.now("UTC")


class DailyReportService:
    def __init__(
        self,
        telemetry_repo: ITelemetryPointRepository,
        report_repo: IDailyReportRepository,
        engine: SegmentationEngine,
        aggregator: DailyAggregator,
        alert_evaluator: Optional[AlertEvaluator] = None,
        timezone: str = "UTC",
        finalize_grace_seconds: int = 300,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.telemetry_repo = telemetry_repo
        self.report_repo = report_repo
        self.engine = engine
        self.aggregator = aggregator
        self.alert_evaluator = alert_evaluator
        self.timezone = timezone
        self.finalize_grace_seconds = finalize_grace_seconds
        self.clock = clock

    def local_today(self) -> date:
        return pendulum.instance(self.clock()).in_timezone(self.timezone).date()

    def is_closed(self, period: date) -> bool:
        _, end = period_bounds(period, self.timezone)
        return end + timedelta(seconds=self.finalize_grace_seconds) <= self.clock()

    async def analyze(
        self, db: AsyncSession, device_id: str, period: date
    ) -> Tuple[DailyReport, List[Segment]]:
        """Segment and aggregate one device-day from stored points. Writes nothing."""
        start, end = period_bounds(period, self.timezone)
        points = await self.telemetry_repo.fetch_window(db, device_id, start, end)
        segments = self.engine.segment(points)
        report = self.aggregator.aggregate(segments, device_id, period, points)
        return report, segments

    async def finalize(self, db: AsyncSession, device_id: str, period: date) -> DailyReport:
        """Compute and upsert the report of a closed period, then check the stoppage alert."""
        if not self.is_closed(period):
            raise PeriodNotClosedError(device_id, period)

        report, _ = await self.analyze(db, device_id, period)
        await self.report_repo.upsert(db, report)
        await self._evaluate_stoppage(db, report)
        return report

    async def recompute(self, db: AsyncSession, device_id: str, period: date) -> DailyReport:
        if not await self.telemetry_repo.exists(db, device_id):
            raise ReportNotFoundException(
                device_id, period.isoformat(), period.isoformat()
            )
        return await self.finalize(db, device_id, period)

    async def finalize_all(self, db: AsyncSession, period: date) -> int:
        if not self.is_closed(period):
            raise PeriodNotClosedError("*", period)

        start, end = period_bounds(period, self.timezone)
        devices = await self.telemetry_repo.list_devices(db, start, end)
        finalized = 0
        for device_id in devices:
            try:
                await self.finalize(db, device_id, period)
                finalized += 1
            except Exception as e:
                await db.rollback()
                logger.error(
                    f"Failed to finalize report for {device_id} on {period}: {e}",
                    exc_info=True,
                )
        logger.info(f"Finalized {finalized}/{len(devices)} reports for {period}")
        return finalized

    async def report_range(
        self, db: AsyncSession, device_id: str, date_start: date, date_end: date
    ) -> ReportRangeResponse:
        if not await self.telemetry_repo.exists(db, device_id):
            raise ReportNotFoundException(
                device_id, date_start.isoformat(), date_end.isoformat()
            )

        stored = await self.report_repo.fetch_range(db, device_id, date_start, date_end)
        finalized_periods = {report.period for report in stored}

        views = []
        for day in iter_days(date_start, date_end):
            report, segments = await self.analyze(db, device_id, day)
            if report.total_records == 0:
                continue
            views.append(
                DailyReportView.build(
                    report, segments, self.timezone, finalized=day in finalized_periods
                )
            )

        if not views:
            raise ReportNotFoundException(
                device_id, date_start.isoformat(), date_end.isoformat()
            )
        return ReportRangeResponse(
            device_id=device_id, date_start=date_start, date_end=date_end, reports=views
        )

    async def analyze_zone(
        self,
        db: AsyncSession,
        device_id: str,
        start: datetime,
        end: datetime,
        zone: TaskZone,
    ) -> ZoneReportResponse:
        """
        Work done inside ``zone`` between ``start`` and ``end``. Each visit is
        segmented on its own, so travel outside the zone and the gaps between
        visits add nothing. Writes nothing.
        """
        if not await self.telemetry_repo.exists(db, device_id):
            raise ReportNotFoundException(device_id, start.isoformat(), end.isoformat())

        points = await self.telemetry_repo.fetch_window(db, device_id, start, end)
        period = to_local(start, self.timezone).date()
        window_reports = [
            self.aggregator.aggregate(self.engine.segment(window), device_id, period, window)
            for window in presence_windows(points, zone)
        ]
        report = self.aggregator.combine(window_reports, device_id, period)
        logger.info(
            f"Zone report for {device_id}: {len(window_reports)} visit(s), "
            f"{report.total_records}/{len(points)} points inside"
        )
        return ZoneReportResponse.build(start, end, report, window_reports, self.timezone)

    async def evaluate_live(self, db: AsyncSession) -> List[AlertEvent]:
        """
        Inactivity for every known device, and stoppage for today's open
        period of every device that reported today.
        """
        if self.alert_evaluator is None:
            return []

        now = self.clock()
        events: List[Optional[AlertEvent]] = []

        for device_id in await self.telemetry_repo.list_devices(db):
            last_movement_at = await self.telemetry_repo.last_movement_time(
                db, device_id, self.engine.speed_threshold
            )
            metrics = AlertMetrics(
                device_id=device_id, observed_at=now, last_movement_at=last_movement_at
            )
            events.append(await self._evaluate(db, AlertType.INACTIVITY, metrics))

        today = self.local_today()
        start, end = period_bounds(today, self.timezone)
        for device_id in await self.telemetry_repo.list_devices(db, start, end):
            report, _ = await self.analyze(db, device_id, today)
            events.append(await self._evaluate_stoppage(db, report))

        return [event for event in events if event is not None]

    async def _evaluate_stoppage(
        self, db: AsyncSession, report: DailyReport
    ) -> Optional[AlertEvent]:
        metrics = AlertMetrics(
            device_id=report.device_id,
            observed_at=self.clock(),
            period=report.period,
            stoppage_duration_while_on=report.stoppage_duration_while_on,
        )
        return await self._evaluate(db, AlertType.STOPPAGE, metrics)

    async def _evaluate(
        self, db: AsyncSession, alert_type: AlertType, metrics: AlertMetrics
    ) -> Optional[AlertEvent]:
        if self.alert_evaluator is None:
            return None
        try:
            return await evaluate_and_dispatch(
                db, self.alert_evaluator, alert_type, metrics
            )
        except AlertStateConflictError as e:
            # The stored report stays; the next pass decides again
            logger.error(f"Alert evaluation gave up: {e.message}")
            return None
