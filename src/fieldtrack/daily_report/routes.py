import logging
from http import HTTPStatus
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fastapi import APIRouter, Depends, Query
from src.fieldtrack.config import get_settings
from src.fieldtrack.daily_report.dependencies import get_daily_report_service
from src.fieldtrack.daily_report.exceptions import (
    PeriodNotClosedError,
    ReportInvalidZoneException,
    ReportPeriodNotClosedException,
)
from src.fieldtrack.daily_report.schemas import (
    DailyReport,
    ReportRangeResponse,
    ZoneReportRequest,
    ZoneReportResponse,
)
from src.fieldtrack.daily_report.services import DailyReportService
from src.fieldtrack.daily_report.utils import (
    parse_day,
    resolve_date_range,
    resolve_time_window,
)
from src.fieldtrack.database.dependencies import verify_database
from src.fieldtrack.segmentation.zones import TaskZone

logger = logging.getLogger(__name__)
settings = get_settings()
report_router = APIRouter(prefix="/reports", tags=["Daily Reports"])


@report_router.get(
    "/{device_id}", response_model=ReportRangeResponse, status_code=HTTPStatus.OK
)
async def get_device_report(
    device_id: str,
    date: Optional[str] = Query(None, description="Date in YYYY-MM-DD format"),
    date_start: Optional[str] = Query(None, description="Range start, YYYY-MM-DD"),
    date_end: Optional[str] = Query(None, description="Range end, YYYY-MM-DD"),
    db_session: AsyncSession = Depends(verify_database),
    service: DailyReportService = Depends(get_daily_report_service),
):
    start, end = resolve_date_range(
        date, date_start, date_end, settings.MAX_REPORT_RANGE_DAYS
    )
    logger.info(f"Request report for {device_id} from {start} to {end}")
    return await service.report_range(db_session, device_id, start, end)


@report_router.post(
    "/{device_id}/recompute", response_model=DailyReport, status_code=HTTPStatus.OK
)
async def recompute_device_report(
    device_id: str,
    date: str = Query(..., description="Date in YYYY-MM-DD format"),
    db_session: AsyncSession = Depends(verify_database),
    service: DailyReportService = Depends(get_daily_report_service),
):
    day = parse_day(date)
    logger.info(f"Recompute report for {device_id} on {day}")
    try:
        return await service.recompute(db_session, device_id, day)
    except PeriodNotClosedError as e:
        logger.warning(e.message)
        raise ReportPeriodNotClosedException(device_id, date)


@report_router.post(
    "/{device_id}/zone", response_model=ZoneReportResponse, status_code=HTTPStatus.OK
)
async def get_zone_report(
    device_id: str,
    body: ZoneReportRequest,
    db_session: AsyncSession = Depends(verify_database),
    service: DailyReportService = Depends(get_daily_report_service),
):
    start, end = resolve_time_window(
        body.start_time, body.end_time, settings.MAX_REPORT_RANGE_DAYS
    )
    try:
        zone = TaskZone(body.polygon)
    except ValueError as e:
        raise ReportInvalidZoneException(str(e))
    logger.info(f"Request zone report for {device_id} from {start} to {end}")
    return await service.analyze_zone(db_session, device_id, start, end, zone)
