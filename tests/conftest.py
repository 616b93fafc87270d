import asyncio
import itertools
from datetime import UTC, date, datetime

import pytest

from app.db.helpers import DatabaseError, UniqueViolationError
from app.models.domain.calendar_domain import CalendarEvent
from app.models.domain.scheduling_domain import Booking, BookingStatus, BookingSubmission, CalendarConfig
from app.services.calendar.availability_service import CalendarAvailabilityClient
from app.services.calendar.google_client import GoogleCalendarError
from app.services.crm.hubspot_client import HubSpotError
from app.services.scheduling.booking_service import BookingService

# 2030-01-07 is a Monday
FIXED_NOW = datetime(2030, 1, 7, 12, 0, tzinfo=UTC)
TUESDAY = date(2030, 1, 8)
THURSDAY = date(2030, 1, 10)
HOST_EMAIL = "host@example.com"


class FakeLockStore:
    """In-memory slot locks with the (date, time) uniqueness of the real table."""

    def __init__(self):
        self.locks: dict[str, tuple[date, str]] = {}
        self.fail_acquire = False
        self.release_calls: list[str] = []

    def _holder(self, scheduled_date: date, scheduled_time: str) -> str | None:
        for booking_id, slot in self.locks.items():
            if slot == (scheduled_date, scheduled_time):
                return booking_id
        return None

    async def acquire(self, booking_id: str, scheduled_date: date, scheduled_time: str) -> bool:
        if self.fail_acquire:
            raise DatabaseError("connection refused", operation="execute")
        if self._holder(scheduled_date, scheduled_time) is not None:
            return False
        self.locks[booking_id] = (scheduled_date, scheduled_time)
        return True

    async def move(self, booking_id: str, new_date: date, new_time: str) -> bool:
        holder = self._holder(new_date, new_time)
        if holder is not None and holder != booking_id:
            return False
        self.locks[booking_id] = (new_date, new_time)
        return True

    async def release(self, booking_id: str) -> None:
        self.release_calls.append(booking_id)
        self.locks.pop(booking_id, None)

    async def list_locked(self, scheduled_date: date) -> set[str]:
        return {slot_time for slot_date, slot_time in self.locks.values() if slot_date == scheduled_date}

    async def sweep_expired(self, ttl_minutes: int) -> int:
        return 0


class FakeBookingRepository:
    """In-memory bookings with the partial unique index on active slots."""

    def __init__(self):
        self.rows: dict[str, Booking] = {}
        self.fail_insert = False
        self.fail_update_schedule = False

    async def insert(self, booking: Booking) -> None:
        if self.fail_insert:
            raise DatabaseError("connection lost", operation="execute")
        if booking.is_active():
            for other in self.rows.values():
                if other.is_active() and (other.scheduled_date, other.scheduled_time) == (
                    booking.scheduled_date,
                    booking.scheduled_time,
                ):
                    raise UniqueViolationError(
                        "duplicate key", operation="execute", constraint="uidx_bookings_active_slot"
                    )
        self.rows[booking.id] = booking

    async def get(self, booking_id: str) -> Booking | None:
        return self.rows.get(booking_id)

    async def find_active_at(self, scheduled_date, scheduled_time, exclude_id=None):
        for booking in self.rows.values():
            if (
                booking.id != exclude_id
                and booking.is_active()
                and booking.scheduled_date == scheduled_date
                and booking.scheduled_time == scheduled_time
            ):
                return booking
        return None

    async def list_upcoming_for_email(self, email: str, from_date: date) -> list[Booking]:
        return sorted(
            (
                b
                for b in self.rows.values()
                if b.email.lower() == email.lower() and b.is_active() and b.scheduled_date >= from_date
            ),
            key=lambda b: (b.scheduled_date, b.scheduled_time),
        )

    async def update_schedule(self, booking_id: str, scheduled_date: date, scheduled_time: str) -> bool:
        if self.fail_update_schedule:
            raise DatabaseError("connection lost", operation="execute")
        booking = self.rows[booking_id]
        self.rows[booking_id] = booking.model_copy(
            update={"scheduled_date": scheduled_date, "scheduled_time": scheduled_time}
        )
        return True

    async def update_status(self, booking_id: str, status: BookingStatus) -> bool:
        self.rows[booking_id] = self.rows[booking_id].model_copy(update={"status": status})
        return True


class FakeConfigResolver:
    def __init__(self, config: CalendarConfig):
        self.config = config

    async def resolve(self) -> CalendarConfig:
        return self.config


class FakeCalendar:
    """Stands in for GoogleCalendarService; events are raw API dicts."""

    def __init__(self):
        self.events: list[dict] = []
        self._ids = itertools.count(1)
        self.fail_list = False
        self.fail_create = False
        self.fail_update = False
        self.created: list[dict] = []
        self.updated: list[tuple[str, datetime, datetime]] = []
        self.deleted: list[str] = []

    def add_busy(self, start: datetime, end: datetime, event_id: str | None = None) -> None:
        self.events.append(
            {
                "id": event_id or f"busy-{next(self._ids)}",
                "start": {"dateTime": start.isoformat()},
                "end": {"dateTime": end.isoformat()},
            }
        )

    def add_all_day(self, day: date) -> None:
        self.events.append({"id": f"allday-{next(self._ids)}", "start": {"date": day.isoformat()}, "end": {}})

    async def list_events(self, time_min: datetime, time_max: datetime) -> list[CalendarEvent]:
        # Yield so concurrent requests interleave at the calendar call
        await asyncio.sleep(0)
        if self.fail_list:
            raise GoogleCalendarError("Calendar unreachable", status_code=503)
        events = [CalendarEvent(data) for data in self.events]
        return [
            event
            for event in events
            if event.is_all_day()
            or (event.has_concrete_bounds() and event.start_time < time_max and event.end_time > time_min)
        ]

    async def create_event(self, summary, start_time, end_time, attendee_email, description="", timezone_str="UTC"):
        await asyncio.sleep(0)
        if self.fail_create:
            raise GoogleCalendarError("Calendar create failed", status_code=500)
        event_id = f"evt-{next(self._ids)}"
        data = {
            "id": event_id,
            "summary": summary,
            "start": {"dateTime": start_time.isoformat()},
            "end": {"dateTime": end_time.isoformat()},
            "attendees": [{"email": attendee_email}],
            "conferenceData": {
                "entryPoints": [{"entryPointType": "video", "uri": f"https://meet.google.com/{event_id}"}]
            },
        }
        self.events.append(data)
        self.created.append(data)
        return CalendarEvent(data)

    async def update_event_time(self, event_id, start_time, end_time, timezone_str="UTC"):
        if self.fail_update:
            raise GoogleCalendarError("Calendar update failed", status_code=500)
        for data in self.events:
            if data["id"] == event_id:
                data["start"] = {"dateTime": start_time.isoformat()}
                data["end"] = {"dateTime": end_time.isoformat()}
        self.updated.append((event_id, start_time, end_time))
        return CalendarEvent({"id": event_id})

    async def delete_event(self, event_id: str) -> bool:
        self.deleted.append(event_id)
        self.events = [data for data in self.events if data["id"] != event_id]
        return True


class FakeCalendarFactory:
    def __init__(self, calendar: FakeCalendar | None):
        self.calendar = calendar

    def calendar_for(self, host_email):
        return self.calendar if host_email else None

    def availability_for(self, host_email):
        calendar = self.calendar_for(host_email)
        return CalendarAvailabilityClient(calendar) if calendar else None

    async def close(self) -> None:
        pass


class FakeCrm:
    def __init__(self):
        self.calls: list[str] = []
        self.fail = False

    async def _record(self, name: str, result):
        self.calls.append(name)
        if self.fail:
            raise HubSpotError(f"{name} failed", status_code=500)
        return result

    async def upsert_contact(self, lead):
        return await self._record("upsert_contact", "contact-1")

    async def create_deal(self, contact_id, lead):
        return await self._record("create_deal", "deal-1")

    async def create_meeting(self, contact_id, lead, start_time, end_time, meet_link):
        return await self._record("create_meeting", "meeting-1")

    async def reschedule_meeting(self, meeting_id, start_time, end_time):
        return await self._record("reschedule_meeting", None)

    async def cancel_meeting(self, meeting_id):
        return await self._record("cancel_meeting", None)


@pytest.fixture
def live_config() -> CalendarConfig:
    return CalendarConfig(host_email=HOST_EMAIL, host_timezone="America/New_York")


@pytest.fixture
def lock_store() -> FakeLockStore:
    return FakeLockStore()


@pytest.fixture
def booking_repo() -> FakeBookingRepository:
    return FakeBookingRepository()


@pytest.fixture
def fake_calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def fake_crm() -> FakeCrm:
    return FakeCrm()


@pytest.fixture
def make_submission():
    def _make(scheduled_date: date = TUESDAY, scheduled_time: str = "14:00", email: str = "lead@example.com"):
        return BookingSubmission(
            first_name="Ada",
            last_name="Lovelace",
            email=email,
            website="https://example.org",
            industry="Fintech",
            objective="Scale acquisition",
            budget="10k-50k",
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            timezone="Europe/London",
        )

    return _make


@pytest.fixture
def make_booking_service(lock_store, booking_repo, fake_calendar, fake_crm, live_config):
    def _make(config: CalendarConfig | None = None, calendar: FakeCalendar | None = fake_calendar, crm=fake_crm):
        return BookingService(
            FakeConfigResolver(config or live_config),
            lock_store,
            booking_repo,
            FakeCalendarFactory(calendar),
            crm=crm,
            now=lambda: FIXED_NOW,
            min_notice_days=2,
        )

    return _make
