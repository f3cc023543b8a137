from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.fieldtrack.rabbitmq_handlers.telemetry.models import TelemetryPointModel
from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint


def build_point_upsert(point: TelemetryPoint) -> Insert:
    """INSERT ... ON CONFLICT (device_id, timestamp) DO UPDATE for one point."""
    return (
        insert(TelemetryPointModel)
        .values(
            device_id=point.device_id,
            timestamp=point.timestamp,
            latitude=point.latitude,
            longitude=point.longitude,
            altitude=point.altitude,
            speed=point.speed,
            status=point.status,
        )
        .on_conflict_do_update(
            index_elements=["device_id", "timestamp"],
            set_={
                "latitude": point.latitude,
                "longitude": point.longitude,
                "altitude": point.altitude,
                "speed": point.speed,
                "status": point.status,
            },
        )
    )


class ITelemetryPointRepository(ABC):
    @abstractmethod
    async def upsert(self, db: AsyncSession, point: TelemetryPoint) -> None:
        pass

    @abstractmethod
    async def exists(self, db: AsyncSession, device_id: str) -> bool:
        pass

    @abstractmethod
    async def fetch_window(
        self, db: AsyncSession, device_id: str, start: datetime, end: datetime
    ) -> List[TelemetryPoint]:
        """Points with start <= timestamp < end, oldest first."""
        ...

    @abstractmethod
    async def last_timestamp(
        self, db: AsyncSession, device_id: str
    ) -> Optional[datetime]:
        pass

    @abstractmethod
    async def last_movement_time(
        self, db: AsyncSession, device_id: str, speed_threshold: float
    ) -> Optional[datetime]:
        pass

    @abstractmethod
    async def list_devices(
        self,
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[str]:
        pass


class TelemetryPointRepository(ITelemetryPointRepository):
    async def upsert(self, db: AsyncSession, point: TelemetryPoint) -> None:
        await db.execute(build_point_upsert(point))
        await db.commit()

    async def exists(self, db: AsyncSession, device_id: str) -> bool:
        q = await db.execute(
            select(TelemetryPointModel.id)
            .where(TelemetryPointModel.device_id == device_id)
            .limit(1)
        )
        return q.scalars().first() is not None

    async def fetch_window(
        self, db: AsyncSession, device_id: str, start: datetime, end: datetime
    ) -> List[TelemetryPoint]:
        q = await db.execute(
            select(TelemetryPointModel)
            .where(
                TelemetryPointModel.device_id == device_id,
                TelemetryPointModel.timestamp >= start,
                TelemetryPointModel.timestamp < end,
            )
            .order_by(TelemetryPointModel.timestamp.asc(), TelemetryPointModel.id.asc())
        )
        return [TelemetryPoint.model_validate(row) for row in q.scalars().all()]

    async def last_timestamp(
        self, db: AsyncSession, device_id: str
    ) -> Optional[datetime]:
        q = await db.execute(
            select(func.max(TelemetryPointModel.timestamp)).where(
                TelemetryPointModel.device_id == device_id
            )
        )
        return q.scalar_one_or_none()

    async def last_movement_time(
        self, db: AsyncSession, device_id: str, speed_threshold: float
    ) -> Optional[datetime]:
        q = await db.execute(
            select(func.max(TelemetryPointModel.timestamp)).where(
                TelemetryPointModel.device_id == device_id,
                TelemetryPointModel.speed > speed_threshold,
            )
        )
        return q.scalar_one_or_none()

    async def list_devices(
        self,
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[str]:
        stmt = select(TelemetryPointModel.device_id).distinct()
        if start is not None:
            stmt = stmt.where(TelemetryPointModel.timestamp >= start)
        if end is not None:
            stmt = stmt.where(TelemetryPointModel.timestamp < end)
        q = await db.execute(stmt.order_by(TelemetryPointModel.device_id))
        return list(q.scalars().all())
