"""
Date and slot rules shared by the availability query and the booking flows.
"""

from datetime import date, datetime

from app.models.domain.scheduling_domain import WEEKDAY_NAMES, CalendarConfig, weekday_index
from app.services.scheduling.errors import BookingValidationError
from app.services.scheduling.slot_generator import generate_slots
from app.utils.time_slots import local_datetime, today_in

PAST_DATE_MESSAGE = "Cannot book past dates"
BLOCKED_DATE_MESSAGE = "This date is not available"


def unavailable_reason(config: CalendarConfig, day: date, now: datetime) -> str | None:
    """Why a whole date cannot be booked, or None when it can."""
    if day < today_in(config.host_timezone, now):
        return PAST_DATE_MESSAGE
    if not config.is_business_day(day):
        return f"Not available on {WEEKDAY_NAMES[weekday_index(day)]}s"
    if config.is_blocked(day):
        return BLOCKED_DATE_MESSAGE
    return None


def slot_has_started(config: CalendarConfig, day: date, slot: str, now: datetime) -> bool:
    return local_datetime(day, slot, config.host_timezone) <= now


def bookable_candidates(config: CalendarConfig, day: date, now: datetime) -> list[str]:
    """Candidate slots for a bookable date, minus any that already started today."""
    return [slot for slot in generate_slots(config) if not slot_has_started(config, day, slot, now)]


def validate_slot(config: CalendarConfig, day: date, slot: str, now: datetime) -> None:
    """
    Raise BookingValidationError unless (day, slot) is a bookable candidate slot.
    """
    reason = unavailable_reason(config, day, now)
    if reason:
        raise BookingValidationError(reason)
    if slot not in generate_slots(config):
        raise BookingValidationError("Please select one of the offered time slots")
    if slot_has_started(config, day, slot, now):
        raise BookingValidationError(PAST_DATE_MESSAGE)
