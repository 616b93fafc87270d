"""
Resolves the business-hours configuration from the settings table.

Called at the top of every request that needs it; admins may change the
settings at any time, so nothing here is cached. Each field is parsed on its
own and falls back to its default when missing or malformed, so one corrupt
field never invalidates the rest.
"""

import json
from collections.abc import Callable
from datetime import date
from typing import Any, TypeVar

from app.config import settings
from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.models.domain.scheduling_domain import (
    DEFAULT_AVAILABLE_WEEKDAYS,
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_BUSINESS_END,
    DEFAULT_BUSINESS_START,
    DEFAULT_HOST_TIMEZONE,
    DEFAULT_SLOT_DURATION_MINUTES,
    BusinessHours,
    CalendarConfig,
)
from app.services.scheduling.settings_store import (
    CALENDAR_CONFIG_KEY,
    CALENDAR_SLOTS_KEY,
    HOST_EMAIL_KEY,
    HOST_TIMEZONE_KEY,
    TEST_MODE_KEY,
    SettingsStore,
)
from app.utils.time_slots import get_zone, is_hhmm, normalize_hhmm, parse_date, parse_hhmm

logger = get_logger(__name__)

T = TypeVar("T")

MAX_SLOT_MINUTES = 24 * 60


def _parse_weekdays(raw: Any) -> frozenset[int]:
    if not isinstance(raw, list):
        raise ValueError("availableDays must be a list")
    days = set()
    for day in raw:
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            raise ValueError(f"invalid weekday {day!r}")
        days.add(day)
    return frozenset(days)


def _parse_business_hours(raw: Any) -> BusinessHours:
    if not isinstance(raw, dict):
        raise ValueError("businessHours must be an object")
    start = normalize_hhmm(raw.get("start", DEFAULT_BUSINESS_START))
    end = normalize_hhmm(raw.get("end", DEFAULT_BUSINESS_END))
    if parse_hhmm(start) >= parse_hhmm(end):
        raise ValueError("businessHours start must be before end")
    return BusinessHours(start=start, end=end)


def _parse_minutes(raw: Any, *, minimum: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or not minimum <= raw <= MAX_SLOT_MINUTES:
        raise ValueError(f"invalid minutes {raw!r}")
    return raw


def _parse_blocked_dates(raw: Any) -> frozenset[date]:
    if not isinstance(raw, list):
        raise ValueError("blockedDates must be a list")
    return frozenset(parse_date(value) for value in raw)


def _parse_slot_overrides(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        raise ValueError("calendar_slots must be a list")
    if not all(is_hhmm(slot) for slot in raw):
        raise ValueError("calendar_slots entries must be HH:MM")
    return tuple(raw)


def _parse_timezone(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("timezone must be a non-empty string")
    name = raw.strip()
    get_zone(name)
    return name


def _parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
        return raw.strip().lower() == "true"
    raise ValueError(f"invalid boolean {raw!r}")


def _field(source: dict, key: str, parser: Callable[[Any], T], default: T) -> T:
    """Parse one field, falling back to its default on absence or error."""
    if key not in source or source[key] is None:
        return default
    try:
        return parser(source[key])
    except (ValueError, TypeError) as e:
        logger.warning("Ignoring malformed calendar setting", field=key, error=str(e))
        return default


def _load_json(raw: str | None, key: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning("Ignoring unparseable calendar setting", key=key, error=str(e))
        return None


def build_config(values: dict[str, str]) -> CalendarConfig:
    """Build a CalendarConfig from raw settings rows plus environment fallbacks."""
    blob = _load_json(values.get(CALENDAR_CONFIG_KEY), CALENDAR_CONFIG_KEY)
    if not isinstance(blob, dict):
        blob = {}

    # host_timezone row wins, then a timezone inside calendar_config
    timezone_source = {"timezone": values.get(HOST_TIMEZONE_KEY) or blob.get("timezone")}

    slots_source = {"slots": _load_json(values.get(CALENDAR_SLOTS_KEY), CALENDAR_SLOTS_KEY)}

    test_mode_source = {"test_mode": values.get(TEST_MODE_KEY)}

    return CalendarConfig(
        available_weekdays=_field(blob, "availableDays", _parse_weekdays, DEFAULT_AVAILABLE_WEEKDAYS),
        business_hours=_field(blob, "businessHours", _parse_business_hours, BusinessHours()),
        slot_duration_minutes=_field(
            blob, "slotDuration", lambda v: _parse_minutes(v, minimum=1), DEFAULT_SLOT_DURATION_MINUTES
        ),
        buffer_minutes=_field(blob, "bufferTime", lambda v: _parse_minutes(v, minimum=0), DEFAULT_BUFFER_MINUTES),
        blocked_dates=_field(blob, "blockedDates", _parse_blocked_dates, frozenset()),
        host_timezone=_field(timezone_source, "timezone", _parse_timezone, DEFAULT_HOST_TIMEZONE),
        slot_overrides=_field(slots_source, "slots", _parse_slot_overrides, ()),
        host_email=(values.get(HOST_EMAIL_KEY) or "").strip() or settings.GOOGLE_CALENDAR_EMAIL,
        test_mode=_field(test_mode_source, "test_mode", _parse_bool, settings.TEST_MODE),
    )


class ConfigResolver:
    """Loads a fresh CalendarConfig; never raises."""

    def __init__(self, store: SettingsStore | None = None):
        self.store = store or SettingsStore()

    async def resolve(self) -> CalendarConfig:
        try:
            values = await self.store.get_many()
        except DatabaseError as e:
            logger.warning("Settings store unavailable, using default calendar config", error=str(e))
            values = {}
        return build_config(values)
