from datetime import date
from http import HTTPStatus

from fastapi import HTTPException


class PeriodNotClosedError(Exception):
    """Raised when finalizing a period whose window has not closed yet."""

    message = "Reporting period is still open."

    def __init__(self, device_id: str, period: date):
        self.device_id = device_id
        self.period = period
        self.message = f"{self.message} Device ID: {device_id}, Date: {period.isoformat()}"
        super().__init__(self.message)


class ReportException(HTTPException):
    """Base exception class for reporting errors."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    message = "An error occurred while building the report."

    def __init__(
        self,
        status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR,
        message: str = "An error occurred while building the report.",
    ):
        self.status_code = status_code
        self.message = message or self.message
        super().__init__(status_code=status_code, detail=self.message)


class ReportInvalidDateException(ReportException):
    """Exception for an unparsable date or an invalid date range."""

    status_code = HTTPStatus.BAD_REQUEST
    message = "Invalid date format."

    def __init__(self, date: str, details: str = ""):
        self.date = date
        self.details = details
        message = f"{self.message} Provided date: {date}"
        if details:
            message += f" Details: {details}"
        super().__init__(status_code=self.status_code, message=message)


class ReportNotFoundException(ReportException):
    """Exception for when the device has no points in the requested range."""

    status_code = HTTPStatus.NOT_FOUND
    message = "No telemetry found for the specified device and dates."

    def __init__(self, device_id: str, date_start: str, date_end: str):
        self.device_id = device_id
        self.date_start = date_start
        self.date_end = date_end
        message = f"{self.message} Device ID: {device_id}, Dates: {date_start}..{date_end}"
        super().__init__(status_code=self.status_code, message=message)


class ReportPeriodNotClosedException(ReportException):
    """Exception for a recompute request on a period that is still open."""

    status_code = HTTPStatus.CONFLICT
    message = "The reporting period has not closed yet."

    def __init__(self, device_id: str, date: str):
        self.device_id = device_id
        self.date = date
        message = f"{self.message} Device ID: {device_id}, Date: {date}"
        super().__init__(status_code=self.status_code, message=message)


class ReportInvalidZoneException(ReportException):
    """Exception for a zone polygon that cannot be built."""

    status_code = HTTPStatus.BAD_REQUEST
    message = "Invalid zone polygon."

    def __init__(self, details: str = ""):
        self.details = details
        message = self.message
        if details:
            message += f" Details: {details}"
        super().__init__(status_code=self.status_code, message=message)
