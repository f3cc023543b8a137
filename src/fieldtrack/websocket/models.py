from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from src.fieldtrack.alerting.states import AlertType


class AlertEvent(BaseModel):
    """Schema for alert events sent to the notification dispatcher"""

    device_id: str
    alert_type: AlertType
    metric_value: float
    threshold: float
    occurred_at: datetime
    period: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)
