"""
Candidate slot generation for a business day.
"""

from app.models.domain.scheduling_domain import CalendarConfig
from app.utils.time_slots import parse_hhmm


def generate_slots(config: CalendarConfig) -> list[str]:
    """
    Ordered "HH:MM" candidate slots for one business day.

    A non-empty operator override list is returned verbatim. Otherwise slots
    start at business_hours.start and advance by duration + buffer, stopping
    strictly before business_hours.end.
    """
    if config.slot_overrides:
        return list(config.slot_overrides)

    step = config.slot_duration_minutes + config.buffer_minutes
    if step <= 0:
        return []

    start = parse_hhmm(config.business_hours.start)
    end = parse_hhmm(config.business_hours.end)
    current = start.hour * 60 + start.minute
    stop = end.hour * 60 + end.minute

    slots = []
    while current < stop:
        slots.append(f"{current // 60:02d}:{current % 60:02d}")
        current += step
    return slots
