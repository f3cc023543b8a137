import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.fieldtrack.daily_report.models import DailyReportModel
from src.fieldtrack.daily_report.schemas import REPORT_VALUE_FIELDS, DailyReport

logger = logging.getLogger(__name__)


def build_report_upsert(report: DailyReport) -> Insert:
    """INSERT ... ON CONFLICT (device_id, period) DO UPDATE with every report value."""
    values = {name: getattr(report, name) for name in REPORT_VALUE_FIELDS}
    return (
        insert(DailyReportModel)
        .values(device_id=report.device_id, period=report.period, **values)
        .on_conflict_do_update(index_elements=["device_id", "period"], set_=values)
    )


class IDailyReportRepository(ABC):
    @abstractmethod
    async def upsert(self, db: AsyncSession, report: DailyReport) -> None:
        pass

    @abstractmethod
    async def get(
        self, db: AsyncSession, device_id: str, period: date
    ) -> Optional[DailyReport]:
        pass

    @abstractmethod
    async def fetch_range(
        self, db: AsyncSession, device_id: str, date_start: date, date_end: date
    ) -> List[DailyReport]:
        """Stored reports with date_start <= period <= date_end, oldest first."""
        ...


class DailyReportRepository(IDailyReportRepository):
    async def upsert(self, db: AsyncSession, report: DailyReport) -> None:
        await db.execute(build_report_upsert(report))
        await db.commit()
        logger.info(f"Upserted report for {report.device_id} on {report.period}")

    async def get(
        self, db: AsyncSession, device_id: str, period: date
    ) -> Optional[DailyReport]:
        q = await db.execute(
            select(DailyReportModel).where(
                DailyReportModel.device_id == device_id,
                DailyReportModel.period == period,
            )
        )
        row = q.scalar_one_or_none()
        return DailyReport.model_validate(row) if row is not None else None

    async def fetch_range(
        self, db: AsyncSession, device_id: str, date_start: date, date_end: date
    ) -> List[DailyReport]:
        q = await db.execute(
            select(DailyReportModel)
            .where(
                DailyReportModel.device_id == device_id,
                DailyReportModel.period >= date_start,
                DailyReportModel.period <= date_end,
            )
            .order_by(DailyReportModel.period.asc())
        )
        return [DailyReport.model_validate(row) for row in q.scalars().all()]
