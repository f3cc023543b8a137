from src.fieldtrack.alerting.states import AlertType


class AlertException(Exception):
    """Base exception class for alert evaluation errors."""

    message = "An error occurred while evaluating alerts."

    def __init__(self, message: str = ""):
        self.message = message or self.message
        super().__init__(self.message)


class AlertStateConflictError(AlertException):
    """Raised when alert state keeps changing under the evaluator."""

    message = "Alert state was modified concurrently."

    def __init__(self, device_id: str, alert_type: AlertType, attempts: int):
        self.device_id = device_id
        self.alert_type = alert_type
        self.attempts = attempts
        super().__init__(
            f"{self.message} Device ID: {device_id}, "
            f"Alert: {alert_type.value}, Attempts: {attempts}"
        )
