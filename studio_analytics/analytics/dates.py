"""Date normalization and calendar bucketing helpers.

The booking platform exports dates in several shapes depending on whether a
report was scraped from HTML, downloaded as CSV or pulled from the API:

    scraped   "Thu, 2/12/26 2:00 PM EST"  or  "2/12/26 4:23 PM"
    CSV       "2024-01-28 22:46:51 -0500"
    ISO 8601  "2024-01-28T22:46:51Z"
    bare      "1/28/2024"

All of them normalize to a naive ``datetime`` in studio wall-clock time.
Scraped and bare dates are already local; a zone abbreviation on them is
dropped. Values carrying a numeric offset or ``Z`` are converted into the
studio zone first, so the same instant always lands in the same bucket.
"""

import calendar
import re
from datetime import date, datetime, timedelta, tzinfo

from dateutil import tz
from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

_WEEKDAY_PREFIX = re.compile(r"^[A-Za-z]+,\s*")
_ZONE_SUFFIX = re.compile(r"\s*\b(?:EST|EDT|CST|CDT|MST|MDT|PST|PDT|UTC|GMT)\s*$", re.IGNORECASE)
_SCRAPED = re.compile(
    r"^(\d{1,2})/(\d{1,2})/(\d{2,4})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?$",
    re.IGNORECASE,
)
_CSV = re.compile(r"^(\d{4}-\d{2}-\d{2})\s+(\d{2}:\d{2}:\d{2})\s*(?:([+-]\d{2})(\d{2}))?$")
_BARE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")

DAYS_PER_MONTH = 30.4375

DEFAULT_STUDIO_TIMEZONE = "America/New_York"


def _expand_year(year: int) -> int:
    return year + 2000 if year < 100 else year


def to_wall_clock(value: datetime, studio_tz: tzinfo | None = None) -> datetime:
    """Naive studio-local time for ``value``; naive input is returned unchanged."""
    if value.tzinfo is None:
        return value
    zone = studio_tz or tz.gettz(DEFAULT_STUDIO_TIMEZONE)
    return value.astimezone(zone).replace(tzinfo=None)


def normalize_date(raw: str | None, studio_tz: tzinfo | None = None) -> datetime | None:
    """Parse any supported export date shape; None when unparseable.

    Never raises: callers treat None as a missing value.
    """
    if not raw or not raw.strip():
        return None

    cleaned = _ZONE_SUFFIX.sub("", _WEEKDAY_PREFIX.sub("", raw.strip())).strip()

    try:
        match = _SCRAPED.match(cleaned)
        if match:
            month, day, year, hour, minute, second, meridiem = match.groups()
            hour_value = int(hour)
            if meridiem:
                if meridiem.upper() == "PM" and hour_value < 12:
                    hour_value += 12
                elif meridiem.upper() == "AM" and hour_value == 12:
                    hour_value = 0
            return datetime(
                _expand_year(int(year)),
                int(month),
                int(day),
                hour_value,
                int(minute),
                int(second or 0),
            )

        match = _CSV.match(cleaned)
        if match:
            day, clock, offset_hours, offset_minutes = match.groups()
            offset = f"{offset_hours}:{offset_minutes}" if offset_hours else ""
            return to_wall_clock(isoparse(f"{day}T{clock}{offset}"), studio_tz)

        match = _BARE.match(cleaned)
        if match:
            month, day, year = match.groups()
            return datetime(_expand_year(int(year)), int(month), int(day))

        return to_wall_clock(isoparse(cleaned), studio_tz)
    except (ValueError, OverflowError):
        return None


def week_start(value: date | datetime) -> date:
    """Monday of the week containing ``value``."""
    day = value.date() if isinstance(value, datetime) else value
    return day - timedelta(days=day.weekday())


def week_key(value: date | datetime) -> str:
    return week_start(value).isoformat()


def month_key(value: date | datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_start(value: date | datetime) -> datetime:
    return datetime(value.year, value.month, 1)


def add_months(value: datetime, months: int) -> datetime:
    return value + relativedelta(months=months)


def month_bounds(key: str) -> tuple[datetime, datetime]:
    """``[start, end)`` of a ``YYYY-MM`` month key."""
    year, month = (int(part) for part in key.split("-"))
    start = datetime(year, month, 1)
    return start, add_months(start, 1)


def trailing_month_keys(now: datetime, completed: int) -> list[str]:
    """``completed`` full months before ``now`` plus the current month, oldest first."""
    current = month_start(now)
    return [month_key(add_months(current, -offset)) for offset in range(completed, -1, -1)]


def days_in_month(value: date | datetime) -> int:
    return calendar.monthrange(value.year, value.month)[1]


def months_between(start: datetime, end: datetime) -> float:
    """Elapsed months as a fraction, using the mean Gregorian month length."""
    return (end - start).total_seconds() / 86400 / DAYS_PER_MONTH


def day_offset(start: date | datetime, end: date | datetime) -> int:
    """Whole calendar days from ``start`` to ``end``."""
    start_day = start.date() if isinstance(start, datetime) else start
    end_day = end.date() if isinstance(end, datetime) else end
    return (end_day - start_day).days
