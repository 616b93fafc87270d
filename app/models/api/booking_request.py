# app/models/api/booking_request.py
"""
Booking API request models.
Used by routes for input validation.
"""

import datetime as dt

from pydantic import BaseModel, Field, field_validator

from app.models.domain.scheduling_domain import BookingSubmission
from app.utils.time_slots import parse_date

HHMM_REGEX = r"^([01]\d|2[0-3]):[0-5]\d$"
EMAIL_REGEX = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _strict_date(value):
    return parse_date(value) if isinstance(value, str) else value


class SlotsRequest(BaseModel):
    """Request for the free slots of one date."""

    date: dt.date = Field(..., description="Date in YYYY-MM-DD")

    @field_validator("date", mode="before")
    @classmethod
    def strict_date(cls, value):
        return _strict_date(value)


class CreateBookingRequest(BaseModel):
    """Final step of the qualification form: contact details plus the chosen slot."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254, pattern=EMAIL_REGEX)
    website: str = Field(..., min_length=1, max_length=500)
    industry: str | None = Field(None, max_length=100)
    heard_from: str | None = Field(None, max_length=100)
    objective: str | None = Field(None, max_length=1000)
    budget: str | None = Field(None, max_length=100)
    role_type: str | None = Field(None, max_length=100)

    date: dt.date = Field(..., description="Meeting date in YYYY-MM-DD (host calendar)")
    time: str = Field(..., pattern=HHMM_REGEX, description="Slot start in HH:MM (host timezone)")
    timezone: str | None = Field(None, max_length=64, description="Visitor's display timezone")
    visitor_id: str | None = Field(None, max_length=100)

    @field_validator("date", mode="before")
    @classmethod
    def strict_date(cls, value):
        return _strict_date(value)

    def to_submission(self) -> BookingSubmission:
        return BookingSubmission(
            first_name=self.first_name.strip(),
            last_name=self.last_name.strip(),
            email=self.email.strip().lower(),
            website=self.website.strip(),
            industry=self.industry,
            heard_from=self.heard_from,
            objective=self.objective,
            budget=self.budget,
            role_type=self.role_type,
            scheduled_date=self.date,
            scheduled_time=self.time,
            timezone=self.timezone,
            visitor_id=self.visitor_id,
        )


class SendCodeRequest(BaseModel):
    email: str = Field(..., max_length=254, pattern=EMAIL_REGEX)


class VerifyCodeRequest(BaseModel):
    email: str = Field(..., max_length=254, pattern=EMAIL_REGEX)
    code: str = Field(..., pattern=r"^\d{6}$", description="Six-digit verification code")


class RescheduleRequest(BaseModel):
    booking_id: str = Field(..., min_length=1)
    new_date: dt.date = Field(..., description="New date in YYYY-MM-DD")
    new_time: str = Field(..., pattern=HHMM_REGEX, description="New slot in HH:MM")

    @field_validator("new_date", mode="before")
    @classmethod
    def strict_date(cls, value):
        return _strict_date(value)


class CancelRequest(BaseModel):
    booking_id: str = Field(..., min_length=1)
    reason: str | None = Field(None, max_length=500)
