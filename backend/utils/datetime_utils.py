from datetime import datetime, date, timedelta
from typing import Iterable

# date.weekday() order
WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

DATE_FORMAT = "%Y-%m-%d"


def today_local() -> date:
    """Return today's calendar date on the server's local clock."""
    return datetime.now().date()


def as_date(value: date | datetime | str) -> date:
    """Coerce a date, datetime or YYYY-MM-DD string to a plain date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value)


def parse_date(raw: str) -> date:
    """Parse a YYYY-MM-DD string. Raises ValueError on anything else."""
    text = str(raw or "").strip()
    parsed = datetime.strptime(text, DATE_FORMAT).date()
    # strptime tolerates missing zero padding ("2023-1-5").
    if parsed.strftime(DATE_FORMAT) != text:
        raise ValueError(f"Date must be YYYY-MM-DD: {raw!r}")
    return parsed


def format_date(d: date | datetime) -> str:
    return as_date(d).strftime(DATE_FORMAT)


def weekday_name(d: date) -> str:
    return WEEKDAY_NAMES[d.weekday()]


def days_between(earlier: date, later: date) -> int:
    return (as_date(later) - as_date(earlier)).days


def start_of_week(d: date) -> date:
    """Return Monday of the week containing d."""
    return d - timedelta(days=d.weekday())


def start_of_month(d: date) -> date:
    return d.replace(day=1)


def interval_dates(start: date | datetime, end: date | datetime, increment: int) -> list[date]:
    """
    Dates start, start+increment, start+2*increment, ... up to and including end.

    Returns an empty list when start > end and [start] when start == end.
    """
    step = int(increment)
    if step <= 0:
        raise ValueError(f"increment must be positive, got {increment!r}")
    current = as_date(start)
    last = as_date(end)
    dates: list[date] = []
    while current <= last:
        dates.append(current)
        current = current + timedelta(days=step)
    return dates


def weekly_dates(start: date | datetime, end: date | datetime, selected_weekdays: Iterable[str]) -> list[date]:
    """Every date in [start, end] whose weekday name is in selected_weekdays."""
    selected = {str(day).strip().capitalize() for day in selected_weekdays or []}
    if not selected:
        return []
    current = as_date(start)
    last = as_date(end)
    dates: list[date] = []
    while current <= last:
        if weekday_name(current) in selected:
            dates.append(current)
        current = current + timedelta(days=1)
    return dates
