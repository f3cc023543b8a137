from src.fieldtrack.alerting.dependencies import alert_evaluator
from src.fieldtrack.config import get_settings
from src.fieldtrack.daily_report.aggregator import DailyAggregator
from src.fieldtrack.daily_report.repositories import DailyReportRepository
from src.fieldtrack.daily_report.services import DailyReportService
from src.fieldtrack.daily_report.strategies import EfficiencyPolicyFactory
from src.fieldtrack.rabbitmq_handlers.telemetry.repositories import (
    TelemetryPointRepository,
)
from src.fieldtrack.segmentation.engine import SegmentationEngine

settings = get_settings()

telemetry_repo = TelemetryPointRepository()
report_repo = DailyReportRepository()
engine = SegmentationEngine(
    speed_threshold=settings.MOVING_SPEED_THRESHOLD_KMH,
    ignored_stoppage_seconds=settings.IGNORED_STOPPAGE_SECONDS,
)
aggregator = DailyAggregator(
    efficiency_policy=EfficiencyPolicyFactory.create(
        settings.EFFICIENCY_POLICY, settings.EXPECTED_DAILY_WORK_HOURS
    ),
    attribute_ignored_stoppage_distance=settings.ATTRIBUTE_IGNORED_STOPPAGE_DISTANCE,
    speed_threshold=settings.MOVING_SPEED_THRESHOLD_KMH,
    first_movement_min_points=settings.FIRST_MOVEMENT_MIN_POINTS,
)
service = DailyReportService(
    telemetry_repo,
    report_repo,
    engine,
    aggregator,
    alert_evaluator=alert_evaluator,
    timezone=settings.TIMEZONE,
    finalize_grace_seconds=settings.FINALIZE_GRACE_SECONDS,
)


def get_daily_report_service() -> DailyReportService:
    return service
