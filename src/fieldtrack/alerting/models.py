from sqlalchemy import (
    TIMESTAMP,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    func,
)

from src.fieldtrack.database.database import Base


class AlertThresholdStateModel(Base):
    __tablename__ = "alert_threshold_states"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(50), index=True, nullable=False)
    alert_type = Column(String(20), nullable=False)
    state = Column(String(20), nullable=False)
    last_alert_fired_at = Column(TIMESTAMP(timezone=True), nullable=True)
    last_condition_value = Column(Float, nullable=True)
    condition_period = Column(Date, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("device_id", "alert_type", name="uq_alert_threshold_state"),
    )
