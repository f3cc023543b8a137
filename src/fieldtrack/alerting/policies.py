"""
Threshold policies. Each one is a pure decision over the current metrics and
the last stored state for a (device, alert type) pair:

    Clear --condition met--> ConditionMet   (fires one AlertEvent)
    ConditionMet --condition met--> ConditionMet   (debounced, nothing)
    ConditionMet --condition not met--> Clear   (no event)
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, Tuple

from src.fieldtrack.alerting.schemas import (
    AlertMetrics,
    AlertThresholdState,
    ThresholdConfig,
)
from src.fieldtrack.alerting.states import AlertState, AlertType
from src.fieldtrack.websocket.models import AlertEvent

Decision = Tuple[Optional[AlertEvent], Optional[AlertThresholdState]]


class IAlertPolicy(ABC):
    alert_type: AlertType

    @abstractmethod
    def measure(self, metrics: AlertMetrics) -> Optional[float]:
        """Current condition value, or None when no decision can be made."""
        ...

    def instance_of(self, metrics: AlertMetrics) -> Optional[date]:
        """Condition instance the metrics belong to. None means one instance forever."""
        return None

    def evaluate(
        self,
        metrics: AlertMetrics,
        config: ThresholdConfig,
        prior: Optional[AlertThresholdState],
    ) -> Decision:
        if not config.enabled:
            return None, None

        value = self.measure(metrics)
        if value is None:
            return None, None

        if prior is None:
            prior = AlertThresholdState(
                device_id=metrics.device_id, alert_type=self.alert_type
            )

        instance = self.instance_of(metrics)
        recorded = prior.condition_period
        if instance is not None and recorded is not None and instance < recorded:
            # Late evaluation for a period that is already superseded
            return None, None
        new_instance = (
            instance is not None and recorded is not None and instance > recorded
        )

        if value > config.threshold:
            if prior.state is AlertState.CONDITION_MET and not new_instance:
                return None, None
            event = AlertEvent(
                device_id=metrics.device_id,
                alert_type=self.alert_type,
                metric_value=value,
                threshold=config.threshold,
                occurred_at=metrics.observed_at,
                period=instance,
            )
            state = prior.model_copy(
                update={
                    "state": AlertState.CONDITION_MET,
                    "last_alert_fired_at": metrics.observed_at,
                    "last_condition_value": value,
                    "condition_period": instance,
                }
            )
            return event, state

        if prior.state is AlertState.CONDITION_MET:
            return None, prior.model_copy(
                update={
                    "state": AlertState.CLEAR,
                    "last_condition_value": value,
                    "condition_period": instance,
                }
            )
        return None, None


class InactivityPolicy(IAlertPolicy):
    """Seconds since the last observed movement. A device that never moved is skipped."""

    alert_type = AlertType.INACTIVITY

    def measure(self, metrics: AlertMetrics) -> Optional[float]:
        if metrics.last_movement_at is None:
            return None
        return max((metrics.observed_at - metrics.last_movement_at).total_seconds(), 0.0)


class StoppagePolicy(IAlertPolicy):
    """Stoppage time with the device on, per reporting period."""

    alert_type = AlertType.STOPPAGE

    def measure(self, metrics: AlertMetrics) -> Optional[float]:
        if metrics.period is None:
            return None
        return metrics.stoppage_duration_while_on

    def instance_of(self, metrics: AlertMetrics) -> Optional[date]:
        return metrics.period


class AlertPolicyFactory:
    @staticmethod
    def create(alert_type: AlertType) -> IAlertPolicy:
        if alert_type == AlertType.INACTIVITY:
            return InactivityPolicy()
        elif alert_type == AlertType.STOPPAGE:
            return StoppagePolicy()
        else:
            raise ValueError("Unsupported alert type")
