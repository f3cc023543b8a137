from sqlalchemy import (
    TIMESTAMP,
    Boolean,
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


class DailyReportModel(Base):
    __tablename__ = "daily_device_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(50), index=True, nullable=False)
    period = Column(Date, nullable=False, index=True)
    traveled_distance = Column(Float, nullable=False)
    work_duration = Column(Float, nullable=False)
    elapsed_duration = Column(Float, nullable=False)
    movement_count = Column(Integer, nullable=False)
    stoppage_count = Column(Integer, nullable=False)
    stoppage_duration = Column(Float, nullable=False)
    stoppage_duration_while_on = Column(Float, nullable=False)
    stoppage_duration_while_off = Column(Float, nullable=False)
    ignored_stoppage_count = Column(Integer, nullable=False)
    ignored_stoppage_duration = Column(Float, nullable=False)
    average_speed = Column(Float, nullable=False)
    max_speed = Column(Float, nullable=False)
    efficiency = Column(Float, nullable=False)
    efficiency_policy = Column(String(40), nullable=False)
    device_on_time = Column(TIMESTAMP(timezone=True), nullable=True)
    first_movement_time = Column(TIMESTAMP(timezone=True), nullable=True)
    start_time = Column(TIMESTAMP(timezone=True), nullable=True)
    end_time = Column(TIMESTAMP(timezone=True), nullable=True)
    total_records = Column(Integer, nullable=False)
    latest_status = Column(Boolean, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("device_id", "period", name="uq_device_report_period"),
    )
