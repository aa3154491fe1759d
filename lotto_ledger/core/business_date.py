"""
Business date helpers.

Every ledger row is keyed by the calendar day in the operating timezone
(settings.OPERATING_TIMEZONE), never by the UTC wall-clock day.
"""
import calendar
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

from lotto_ledger.config import settings

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_business_date(now: Optional[datetime] = None) -> date:
    """Calendar day in the operating timezone for the given instant (default: now)."""
    instant = now or now_utc()
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(settings.operating_tz).date()


def month_key(day: date) -> str:
    """YYYY-MM for a date."""
    return f"{day.year:04d}-{day.month:02d}"


def validate_month(closing_month: str) -> str:
    if not isinstance(closing_month, str) or not MONTH_PATTERN.match(closing_month):
        raise ValueError(f"Invalid month format: {closing_month}. Expected YYYY-MM")
    return closing_month


def month_bounds(closing_month: str) -> Tuple[date, date]:
    """First and last calendar day of a YYYY-MM month (both inclusive)."""
    validate_month(closing_month)
    year, month = (int(part) for part in closing_month.split("-"))
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def previous_month(today: Optional[date] = None) -> str:
    """The month before the one containing `today` (operating timezone)."""
    today = today or today_business_date()
    first_of_month = today.replace(day=1)
    return month_key(first_of_month - timedelta(days=1))


def settlement_cutoff(age_days: int, today: Optional[date] = None) -> date:
    """Rows dated strictly before this day are old enough to settle."""
    today = today or today_business_date()
    return today - timedelta(days=age_days)
