from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.fieldtrack.alerting.models import AlertThresholdStateModel
from src.fieldtrack.alerting.schemas import AlertThresholdState
from src.fieldtrack.alerting.states import AlertType


def _state_values(state: AlertThresholdState) -> dict:
    return {
        "state": state.state.value,
        "last_alert_fired_at": state.last_alert_fired_at,
        "last_condition_value": state.last_condition_value,
        "condition_period": state.condition_period,
    }


def build_state_insert(state: AlertThresholdState) -> Insert:
    """First write for a (device_id, alert_type) pair. Does nothing if another writer got there first."""
    return (
        insert(AlertThresholdStateModel)
        .values(
            device_id=state.device_id,
            alert_type=state.alert_type.value,
            version=1,
            **_state_values(state),
        )
        .on_conflict_do_nothing(index_elements=["device_id", "alert_type"])
        .returning(AlertThresholdStateModel.id)
    )


class IAlertStateRepository(ABC):
    @abstractmethod
    async def get(
        self, db: AsyncSession, device_id: str, alert_type: AlertType
    ) -> Optional[AlertThresholdState]:
        pass

    @abstractmethod
    async def insert_if_absent(self, db: AsyncSession, state: AlertThresholdState) -> bool:
        """Returns False when a row already exists."""
        ...

    @abstractmethod
    async def compare_and_set(
        self, db: AsyncSession, state: AlertThresholdState, expected_version: int
    ) -> bool:
        """Returns False when the stored version is no longer ``expected_version``."""
        ...


class AlertStateRepository(IAlertStateRepository):
    async def get(
        self, db: AsyncSession, device_id: str, alert_type: AlertType
    ) -> Optional[AlertThresholdState]:
        q = await db.execute(
            select(AlertThresholdStateModel).where(
                AlertThresholdStateModel.device_id == device_id,
                AlertThresholdStateModel.alert_type == alert_type.value,
            )
        )
        row = q.scalar_one_or_none()
        return AlertThresholdState.model_validate(row) if row is not None else None

    async def insert_if_absent(self, db: AsyncSession, state: AlertThresholdState) -> bool:
        result = await db.execute(build_state_insert(state))
        inserted = result.scalar_one_or_none() is not None
        await db.commit()
        return inserted

    async def compare_and_set(
        self, db: AsyncSession, state: AlertThresholdState, expected_version: int
    ) -> bool:
        result = await db.execute(
            update(AlertThresholdStateModel)
            .where(
                AlertThresholdStateModel.device_id == state.device_id,
                AlertThresholdStateModel.alert_type == state.alert_type.value,
                AlertThresholdStateModel.version == expected_version,
            )
            .values(version=expected_version + 1, **_state_values(state))
        )
        await db.commit()
        return result.rowcount == 1
