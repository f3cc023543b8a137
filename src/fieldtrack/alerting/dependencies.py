from src.fieldtrack.alerting.evaluator import AlertEvaluator
from src.fieldtrack.alerting.policies import AlertPolicyFactory
from src.fieldtrack.alerting.repositories import AlertStateRepository
from src.fieldtrack.alerting.schemas import ThresholdConfig
from src.fieldtrack.alerting.states import AlertType
from src.fieldtrack.config import Settings, get_settings


def build_alert_evaluator(settings: Settings) -> AlertEvaluator:
    return AlertEvaluator(
        state_repo=AlertStateRepository(),
        policies={
            alert_type: AlertPolicyFactory.create(alert_type) for alert_type in AlertType
        },
        configs={
            alert_type: ThresholdConfig.from_settings(alert_type, settings)
            for alert_type in AlertType
        },
    )


alert_evaluator = build_alert_evaluator(get_settings())
