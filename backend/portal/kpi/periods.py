"""Calendar helpers: month normalization, stay length, history windows."""

from calendar import monthrange
from datetime import date, datetime

from portal.kpi.errors import InvalidDateError


def parse_date(value: date | datetime | str, field: str = "date") -> date:
    """Coerce ``value`` to a calendar date or raise ``InvalidDateError``.

    Strings must be ISO ``YYYY-MM-DD``; datetimes are truncated to their date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidDateError(f"{field} must be YYYY-MM-DD, got {value!r}", value) from exc
    raise InvalidDateError(f"{field} must be a date, got {type(value).__name__}", value)


def month_start(value: date) -> date:
    return value.replace(day=1)


def days_in_month(month: date) -> int:
    return monthrange(month.year, month.month)[1]


def add_months(month: date, count: int) -> date:
    """Shift a first-of-month date by ``count`` months (negative goes back)."""
    index = month.year * 12 + (month.month - 1) + count
    return date(index // 12, index % 12 + 1, 1)


def nights_between(check_in: date | str, check_out: date | str) -> int:
    """Calendar nights of a stay. Same-day stays are 0 nights."""
    start = parse_date(check_in, "check_in")
    end = parse_date(check_out, "check_out")
    if end < start:
        raise InvalidDateError(f"check_out {end} is before check_in {start}", end)
    return (end - start).days


def history_window(today: date, months: int) -> tuple[date, date]:
    """Return the first and last month of a ``months``-long window ending at ``today``."""
    last = month_start(today)
    return add_months(last, -(months - 1)), last


def parse_month(value: str) -> date:
    """Parse ``YYYY-MM`` (or a full ISO date) into a first-of-month date."""
    text = value.strip()
    if len(text) == 7:
        text = f"{text}-01"
    return month_start(parse_date(text, "month"))
