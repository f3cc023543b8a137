import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.fieldtrack.alerting.evaluator import AlertEvaluator
from src.fieldtrack.alerting.schemas import AlertMetrics
from src.fieldtrack.alerting.states import AlertType
from src.fieldtrack.websocket.client import send_alert_event
from src.fieldtrack.websocket.models import AlertEvent

logger = logging.getLogger(__name__)


async def dispatch_alert(event: AlertEvent) -> bool:
    """Hand an event to the dispatcher. Failures are logged and reported as False."""
    try:
        await send_alert_event(event)
        return True
    except Exception as e:
        logger.error(
            f"Failed to dispatch {event.alert_type.value} alert "
            f"for {event.device_id}: {e}",
            exc_info=True,
        )
        return False


async def evaluate_and_dispatch(
    db: AsyncSession,
    evaluator: AlertEvaluator,
    alert_type: AlertType,
    metrics: AlertMetrics,
) -> Optional[AlertEvent]:
    event = await evaluator.evaluate(db, alert_type, metrics)
    if event is not None:
        await dispatch_alert(event)
    return event
