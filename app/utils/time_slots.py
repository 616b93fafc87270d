"""
Helpers for the "HH:MM" time-of-day and "YYYY-MM-DD" date strings used on
the wire and in the settings table.
"""

import re
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
LENIENT_HHMM_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> time:
    """Parse a strict zero-padded "HH:MM" string."""
    match = HHMM_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def normalize_hhmm(value: str) -> str:
    """Accept "H:MM" as well as "HH:MM" and return the zero-padded form."""
    match = LENIENT_HHMM_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def format_hhmm(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def is_hhmm(value: object) -> bool:
    return isinstance(value, str) and bool(HHMM_PATTERN.match(value))


def parse_date(value: str) -> date:
    """Parse a strict "YYYY-MM-DD" string."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValueError(f"Invalid date: {value!r}")
    return date.fromisoformat(value)


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising ValueError for unknown zones."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def local_datetime(day: date, slot: str, tz_name: str) -> datetime:
    """Aware datetime for a slot on a day, in the given zone."""
    return datetime.combine(day, parse_hhmm(slot), tzinfo=get_zone(tz_name))


def slot_bounds_utc(day: date, slot: str, tz_name: str, duration_minutes: int) -> tuple[datetime, datetime]:
    """UTC [start, end) of a slot. Computed in UTC so DST transitions add real minutes."""
    start = local_datetime(day, slot, tz_name).astimezone(UTC)
    return start, start + timedelta(minutes=duration_minutes)


def local_day_window(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """Host-local midnight to next midnight for a date, as aware datetimes."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start, end


def today_in(tz_name: str, now: datetime | None = None) -> date:
    """Current calendar date in the given zone."""
    current = now or datetime.now(UTC)
    return current.astimezone(get_zone(tz_name)).date()
