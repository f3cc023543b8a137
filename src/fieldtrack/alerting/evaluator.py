import logging
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from src.fieldtrack.alerting.exceptions import AlertStateConflictError
from src.fieldtrack.alerting.policies import IAlertPolicy
from src.fieldtrack.alerting.repositories import IAlertStateRepository
from src.fieldtrack.alerting.schemas import AlertMetrics, ThresholdConfig
from src.fieldtrack.alerting.states import AlertType
from src.fieldtrack.websocket.models import AlertEvent

logger = logging.getLogger(__name__)


class AlertEvaluator:
    """
    Runs a policy against the stored state and persists the outcome with
    compare-and-set on the state row's version.

    A lost race reloads the state and decides again, so two passes over the
    same condition emit at most one event between them.
    """

    def __init__(
        self,
        state_repo: IAlertStateRepository,
        policies: Dict[AlertType, IAlertPolicy],
        configs: Dict[AlertType, ThresholdConfig],
        max_attempts: int = 3,
    ):
        self.state_repo = state_repo
        self.policies = policies
        self.configs = configs
        self.max_attempts = max_attempts

    async def evaluate(
        self, db: AsyncSession, alert_type: AlertType, metrics: AlertMetrics
    ) -> Optional[AlertEvent]:
        config = self.configs[alert_type]
        if not config.enabled:
            return None

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception_type(AlertStateConflictError),
            reraise=True,
        ):
            with attempt:
                return await self._evaluate_once(
                    db, alert_type, metrics, attempt.retry_state.attempt_number
                )
        return None

    async def _evaluate_once(
        self,
        db: AsyncSession,
        alert_type: AlertType,
        metrics: AlertMetrics,
        attempt_number: int,
    ) -> Optional[AlertEvent]:
        policy = self.policies[alert_type]
        prior = await self.state_repo.get(db, metrics.device_id, alert_type)
        event, new_state = policy.evaluate(metrics, self.configs[alert_type], prior)
        if new_state is None:
            return event

        if prior is None:
            stored = await self.state_repo.insert_if_absent(db, new_state)
        else:
            stored = await self.state_repo.compare_and_set(db, new_state, prior.version)

        if not stored:
            logger.warning(
                f"Alert state for {metrics.device_id}/{alert_type.value} changed "
                f"concurrently (attempt {attempt_number})"
            )
            raise AlertStateConflictError(metrics.device_id, alert_type, attempt_number)

        logger.info(
            f"Alert state for {metrics.device_id}/{alert_type.value} "
            f"is now {new_state.state.value}"
        )
        return event
