# app/models/api/booking_response.py
"""
Booking API response models.
Used by routes for output formatting.
"""

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field

from app.models.domain.scheduling_domain import Booking


class SlotsResponse(BaseModel):
    """Free slots for a date; an empty list carries the reason in ``message``."""

    date: dt.date = Field(..., description="Requested date")
    slots: list[str] = Field(default_factory=list, description="Free HH:MM slots in host time, ascending")
    message: str | None = Field(None, description="Why no slots are offered")
    test_mode: bool = Field(default=False)


class CalendarConfigResponse(BaseModel):
    """Public business configuration for the booking widget."""

    config: dict[str, Any]
    slots: list[str] = Field(..., description="Candidate slots of a business day")


class BookingResponse(BaseModel):
    booking_id: str
    scheduled_date: dt.date | None = None
    scheduled_time: str | None = None
    timezone: str | None = None
    google_meet_link: str | None = None
    status: str
    test_mode: bool = False

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            booking_id=booking.id,
            scheduled_date=booking.scheduled_date,
            scheduled_time=booking.scheduled_time,
            timezone=booking.timezone,
            google_meet_link=booking.google_meet_link,
            status=booking.status.value,
            test_mode=booking.is_test,
        )


class ManagedBookingResponse(BookingResponse):
    first_name: str
    last_name: str
    email: str

    @classmethod
    def from_booking(cls, booking: Booking) -> "ManagedBookingResponse":
        base = BookingResponse.from_booking(booking).model_dump()
        return cls(**base, first_name=booking.first_name, last_name=booking.last_name, email=booking.email)


class VerifyCodeResponse(BaseModel):
    session_token: str
    bookings: list[ManagedBookingResponse]


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    retryable: bool = False
