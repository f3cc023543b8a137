from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.fieldtrack.alerting.states import AlertState, AlertType
from src.fieldtrack.config import Settings


class ThresholdConfig(BaseModel):
    """Threshold for one alert type. ``threshold`` is always in seconds."""

    alert_type: AlertType
    threshold: float = Field(..., ge=0)
    enabled: bool = True

    @classmethod
    def from_settings(cls, alert_type: AlertType, settings: Settings) -> "ThresholdConfig":
        if alert_type is AlertType.INACTIVITY:
            return cls(
                alert_type=alert_type,
                threshold=settings.INACTIVITY_THRESHOLD_DAYS * 86400,
                enabled=settings.INACTIVITY_ALERT_ENABLED,
            )
        return cls(
            alert_type=alert_type,
            threshold=settings.STOPPAGE_THRESHOLD_HOURS * 3600,
            enabled=settings.STOPPAGE_ALERT_ENABLED,
        )


class AlertMetrics(BaseModel):
    """What a policy looks at for one device at one moment."""

    device_id: str
    observed_at: datetime
    period: Optional[date] = None
    stoppage_duration_while_on: Optional[float] = None
    last_movement_at: Optional[datetime] = None


class AlertThresholdState(BaseModel):
    device_id: str
    alert_type: AlertType
    state: AlertState = AlertState.CLEAR
    last_alert_fired_at: Optional[datetime] = None
    last_condition_value: Optional[float] = None
    condition_period: Optional[date] = None
    # 0 means never stored
    version: int = 0

    model_config = ConfigDict(from_attributes=True, frozen=True)
