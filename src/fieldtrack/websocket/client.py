import logging

import websockets
from tenacity import before_sleep_log, retry, stop_after_attempt, wait_fixed

from src.fieldtrack.config import get_settings
from src.fieldtrack.websocket.models import AlertEvent

logger = logging.getLogger(__name__)
settings = get_settings()
ALERTING_URL = f"ws://{settings.ALERTING_HOST}:{settings.ALERTING_PORT}"
DELIVERY_ATTEMPTS = 3


@retry(
    stop=stop_after_attempt(DELIVERY_ATTEMPTS),
    wait=wait_fixed(2),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def send_alert_event(alert_event: AlertEvent) -> str:
    """Hand one alert to the dispatcher and return its acknowledgement."""
    label = f"{alert_event.alert_type.value} alert for {alert_event.device_id}"
    try:
        async with websockets.connect(ALERTING_URL) as connection:
            await connection.send(alert_event.model_dump_json())
            ack = await connection.recv()
    except Exception as e:
        logger.error(f"Dispatcher at {ALERTING_URL} did not take the {label}: {str(e)}")
        raise

    if isinstance(ack, bytes):
        ack = ack.decode("utf-8")
    logger.info(f"Dispatcher acknowledged the {label}: {ack}")
    return ack
