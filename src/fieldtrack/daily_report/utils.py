from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Tuple

import pendulum

from src.fieldtrack.daily_report.exceptions import ReportInvalidDateException


def period_bounds(day: date, tz: str) -> Tuple[datetime, datetime]:
    """UTC window [start, end) covering the local calendar day ``day`` in ``tz``."""
    start = pendulum.datetime(day.year, day.month, day.day, tz=tz)
    end = start.add(days=1)
    return start.in_timezone("UTC"), end.in_timezone("UTC")


def to_local(dt: datetime, tz: str) -> datetime:
    return pendulum.instance(dt).in_timezone(tz)


def format_duration(seconds: float) -> str:
    """HH:MM:SS. Hours are not wrapped at 24."""
    total = int(round(max(seconds, 0.0)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_day(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ReportInvalidDateException(value)


def resolve_date_range(
    day: Optional[str],
    date_start: Optional[str],
    date_end: Optional[str],
    max_days: int,
) -> Tuple[date, date]:
    """Either ``day`` alone or both ends of a range, at most ``max_days`` long."""
    if day is not None:
        if date_start is not None or date_end is not None:
            raise ReportInvalidDateException(day, "Use either date or date_start/date_end.")
        single = parse_day(day)
        return single, single

    if date_start is None or date_end is None:
        raise ReportInvalidDateException(
            f"{date_start}..{date_end}", "Both date_start and date_end are required."
        )
    start, end = parse_day(date_start), parse_day(date_end)
    if end < start:
        raise ReportInvalidDateException(
            f"{date_start}..{date_end}", "date_end must not be before date_start."
        )
    if (end - start).days + 1 > max_days:
        raise ReportInvalidDateException(
            f"{date_start}..{date_end}", f"Range exceeds {max_days} days."
        )
    return start, end


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def resolve_time_window(
    start: datetime, end: datetime, max_days: int
) -> Tuple[datetime, datetime]:
    """UTC [start, end). Naive datetimes are taken as UTC."""
    start_utc = pendulum.instance(start).in_timezone("UTC")
    end_utc = pendulum.instance(end).in_timezone("UTC")
    label = f"{start_utc.isoformat()}..{end_utc.isoformat()}"
    if end_utc <= start_utc:
        raise ReportInvalidDateException(label, "end_time must be after start_time.")
    if end_utc - start_utc > timedelta(days=max_days):
        raise ReportInvalidDateException(label, f"Window exceeds {max_days} days.")
    return start_utc, end_utc
