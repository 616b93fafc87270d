# app/models/domain/scheduling_domain.py
"""
Scheduling Domain Models
Value objects and records used by the availability and booking services.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_AVAILABLE_WEEKDAYS = frozenset({1, 2, 3, 4, 5})  # 0 = Sunday
DEFAULT_BUSINESS_START = "09:00"
DEFAULT_BUSINESS_END = "17:00"
DEFAULT_SLOT_DURATION_MINUTES = 30
DEFAULT_BUFFER_MINUTES = 0
DEFAULT_HOST_TIMEZONE = "America/New_York"

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def weekday_index(day: date) -> int:
    """Weekday number with Sunday = 0, matching the stored availableDays."""
    return (day.weekday() + 1) % 7


class BusinessHours(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str = DEFAULT_BUSINESS_START
    end: str = DEFAULT_BUSINESS_END


class CalendarConfig(BaseModel):
    """Business-hours configuration resolved for a single request."""

    model_config = ConfigDict(frozen=True)

    available_weekdays: frozenset[int] = DEFAULT_AVAILABLE_WEEKDAYS
    business_hours: BusinessHours = Field(default_factory=BusinessHours)
    slot_duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES
    blocked_dates: frozenset[date] = frozenset()
    host_timezone: str = DEFAULT_HOST_TIMEZONE
    slot_overrides: tuple[str, ...] = ()
    host_email: str | None = None
    test_mode: bool = False

    @property
    def meeting_minutes(self) -> int:
        """Minutes a booking occupies: the slot plus its trailing buffer."""
        return self.slot_duration_minutes + self.buffer_minutes

    def is_business_day(self, day: date) -> bool:
        return weekday_index(day) in self.available_weekdays

    def is_blocked(self, day: date) -> bool:
        return day in self.blocked_dates

    def to_public_dict(self) -> dict[str, Any]:
        """Shape served to the booking widget (camelCase, no host identity)."""
        return {
            "availableDays": sorted(self.available_weekdays),
            "businessHours": {
                "start": self.business_hours.start,
                "end": self.business_hours.end,
            },
            "slotDuration": self.slot_duration_minutes,
            "bufferTime": self.buffer_minutes,
            "blockedDates": sorted(d.isoformat() for d in self.blocked_dates),
            "timezone": self.host_timezone,
        }


@dataclass(slots=True, frozen=True)
class BusyInterval:
    """A span of host time that no slot may overlap."""

    start: datetime | None
    end: datetime | None
    blocks_all_day: bool = False
    event_id: str | None = None

    def overlaps(self, slot_start: datetime, slot_end: datetime) -> bool:
        """Half-open intersection test; touching boundaries do not overlap."""
        if self.blocks_all_day:
            return True
        return slot_start < self.end and slot_end > self.start


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class BookingSubmission(BaseModel):
    """A visitor's validated request for a slot, before any side effects."""

    model_config = ConfigDict(frozen=True)

    first_name: str
    last_name: str
    email: str
    website: str
    industry: str | None = None
    heard_from: str | None = None
    objective: str | None = None
    budget: str | None = None
    role_type: str | None = None

    scheduled_date: date
    scheduled_time: str
    timezone: str | None = None
    visitor_id: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Booking(BaseModel):
    """Durable record of a booked meeting (bookings row)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    visitor_id: str | None = None

    first_name: str
    last_name: str
    email: str
    website: str
    industry: str | None = None
    heard_from: str | None = None
    objective: str | None = None
    budget: str | None = None
    role_type: str | None = None

    scheduled_date: date | None = None
    scheduled_time: str | None = None
    timezone: str | None = None

    google_event_id: str | None = None
    google_meet_link: str | None = None
    hubspot_contact_id: str | None = None
    hubspot_deal_id: str | None = None
    hubspot_meeting_id: str | None = None

    status: BookingStatus = BookingStatus.PENDING
    is_test: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
