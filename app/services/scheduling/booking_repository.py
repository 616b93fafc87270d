"""
Persistence for bookings rows.
"""

from datetime import date

from app.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from app.models.domain.scheduling_domain import ACTIVE_STATUSES, Booking, BookingStatus

BOOKING_COLUMNS = (
    "id",
    "visitor_id",
    "first_name",
    "last_name",
    "email",
    "website",
    "industry",
    "heard_from",
    "objective",
    "budget",
    "role_type",
    "scheduled_date",
    "scheduled_time",
    "timezone",
    "google_event_id",
    "google_meet_link",
    "hubspot_contact_id",
    "hubspot_deal_id",
    "hubspot_meeting_id",
    "status",
    "is_test",
)

_ACTIVE = [status.value for status in ACTIVE_STATUSES]


class BookingRepository:
    """Single-row reads and writes on the bookings table."""

    async def insert(self, booking: Booking) -> None:
        values = booking.model_dump(include=set(BOOKING_COLUMNS))
        values["status"] = booking.status.value
        placeholders = ", ".join(["%s"] * len(BOOKING_COLUMNS))
        await execute_query(
            f"""
            INSERT INTO bookings ({", ".join(BOOKING_COLUMNS)}, created_at, updated_at)
            VALUES ({placeholders}, NOW(), NOW())
            """,
            tuple(values[column] for column in BOOKING_COLUMNS),
        )

    @with_db_retry(max_retries=2, base_delay=0.05)
    async def get(self, booking_id: str) -> Booking | None:
        row = await fetch_one("SELECT * FROM bookings WHERE id = %s", (booking_id,))
        return Booking(**row) if row else None

    @with_db_retry(max_retries=2, base_delay=0.05)
    async def find_active_at(
        self, scheduled_date: date, scheduled_time: str, exclude_id: str | None = None
    ) -> Booking | None:
        """Another pending/confirmed booking holding the slot, if any."""
        row = await fetch_one(
            """
            SELECT * FROM bookings
            WHERE scheduled_date = %s AND scheduled_time = %s
              AND status = ANY(%s) AND id <> %s
            LIMIT 1
            """,
            (scheduled_date, scheduled_time, _ACTIVE, exclude_id or ""),
        )
        return Booking(**row) if row else None

    @with_db_retry(max_retries=2, base_delay=0.05)
    async def list_upcoming_for_email(self, email: str, from_date: date) -> list[Booking]:
        rows = await fetch_all(
            """
            SELECT * FROM bookings
            WHERE lower(email) = lower(%s) AND scheduled_date >= %s AND status = ANY(%s)
            ORDER BY scheduled_date, scheduled_time
            """,
            (email, from_date, _ACTIVE),
        )
        return [Booking(**row) for row in rows]

    async def update_schedule(self, booking_id: str, scheduled_date: date, scheduled_time: str) -> bool:
        updated = await execute_query(
            """
            UPDATE bookings
            SET scheduled_date = %s, scheduled_time = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (scheduled_date, scheduled_time, booking_id),
        )
        return updated == 1

    async def update_status(self, booking_id: str, status: BookingStatus) -> bool:
        updated = await execute_query(
            "UPDATE bookings SET status = %s, updated_at = NOW() WHERE id = %s",
            (status.value, booking_id),
        )
        return updated == 1
