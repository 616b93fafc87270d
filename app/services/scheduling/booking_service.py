"""
Booking orchestration: create, reschedule and cancel.

Every flow runs the same skeleton: validate, claim the slot in the lock
table, verify against the live calendar, apply external side effects, then
persist. Any failure after the claim unwinds what was already done before
the error propagates. The lock table's unique index is the only thing that
arbitrates between concurrent requests for one slot.
"""

import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, timedelta
from typing import TypeVar

from app.config import settings
from app.db.helpers import DatabaseError, UniqueViolationError
from app.infrastructure.observability.logging import get_logger
from app.models.domain.scheduling_domain import Booking, BookingStatus, BookingSubmission
from app.services.calendar.availability_service import CalendarAvailabilityClient, CalendarClientFactory
from app.services.calendar.google_client import GoogleCalendarError, GoogleCalendarService
from app.services.crm.hubspot_client import CrmSyncResult, HubSpotClient, HubSpotError, LeadDetails
from app.services.scheduling.booking_repository import BookingRepository
from app.services.scheduling.booking_rules import validate_slot
from app.services.scheduling.config_resolver import ConfigResolver
from app.services.scheduling.errors import (
    BookingInternalError,
    BookingNotFoundError,
    BookingUnauthorizedError,
    BookingUnavailableError,
    BookingValidationError,
    SlotConflictError,
)
from app.services.scheduling.slot_lock_store import SlotLockStore
from app.utils.time_slots import slot_bounds_utc

logger = get_logger(__name__)

T = TypeVar("T")

EVENT_SUMMARY_PREFIX = "Verification Call"
TEST_ID_PREFIX = "test-"

# Failures of these never abort a booking
BEST_EFFORT_ERRORS = (HubSpotError, GoogleCalendarError, DatabaseError)


async def best_effort(operation: str, call: Awaitable[T], **context) -> T | None:
    """Await a non-critical step; log and return None when it fails."""
    try:
        return await call
    except BEST_EFFORT_ERRORS as e:
        logger.warning(
            "Best-effort step failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
            **context,
        )
        return None


def _lead_details(submission: BookingSubmission) -> LeadDetails:
    return LeadDetails(
        email=submission.email,
        first_name=submission.first_name,
        last_name=submission.last_name,
        website=submission.website,
        industry=submission.industry,
        heard_from=submission.heard_from,
        objective=submission.objective,
        budget=submission.budget,
        role_type=submission.role_type,
    )


def _event_description(submission: BookingSubmission) -> str:
    return "\n".join(
        [
            f"Client: {submission.email}",
            f"Website: {submission.website}",
            f"Goal: {submission.objective or 'N/A'}",
            f"Budget: {submission.budget or 'N/A'}",
        ]
    )


class BookingService:
    """Drives the lock, calendar, CRM and persistence steps of each booking flow."""

    def __init__(
        self,
        config_resolver: ConfigResolver,
        lock_store: SlotLockStore,
        bookings: BookingRepository,
        calendar_factory: CalendarClientFactory,
        crm: HubSpotClient | None = None,
        now: Callable[[], datetime] | None = None,
        min_notice_days: int | None = None,
    ):
        self.config_resolver = config_resolver
        self.lock_store = lock_store
        self.bookings = bookings
        self.calendar_factory = calendar_factory
        self.crm = crm
        self._now = now or (lambda: datetime.now(UTC))
        self.min_notice_days = (
            settings.MIN_RESCHEDULE_NOTICE_DAYS if min_notice_days is None else min_notice_days
        )

    # =================================================================
    # CREATE
    # =================================================================

    async def create_booking(self, submission: BookingSubmission) -> Booking:
        """
        Book a slot for a visitor.

        Raises:
            BookingValidationError: The date or slot is not bookable
            SlotConflictError: Another booking or a calendar event holds the slot
            BookingUnavailableError: The calendar or lock store cannot be used
            BookingInternalError: The booking could not be saved after the event was created
        """
        config = await self.config_resolver.resolve()
        day, slot = submission.scheduled_date, submission.scheduled_time
        validate_slot(config, day, slot, self._now())

        booking_id = str(uuid.uuid4())
        log = logger.bind(booking_id=booking_id, date=day.isoformat(), time=slot)

        if config.test_mode:
            log.info("Creating test booking")
            await self._acquire(booking_id, day, slot)
            booking = Booking(
                id=booking_id,
                **submission.model_dump(),
                google_event_id=f"{TEST_ID_PREFIX}event-{booking_id[:8]}",
                google_meet_link=None,
                hubspot_contact_id=f"{TEST_ID_PREFIX}contact-{booking_id[:8]}",
                status=BookingStatus.CONFIRMED,
                is_test=True,
            )
            return await self._commit(booking)

        calendar = self.calendar_factory.calendar_for(config.host_email)
        if calendar is None:
            log.error("Calendar integration not configured, refusing booking")
            raise BookingUnavailableError("Calendar integration not configured", booking_id=booking_id)

        await self._acquire(booking_id, day, slot)

        availability = CalendarAvailabilityClient(calendar)
        free = await availability.is_slot_free(day, slot, config.host_timezone, config.meeting_minutes, strict=True)
        if not free:
            await self._release_quietly(booking_id)
            log.info("Slot busy on calendar, lock released")
            raise SlotConflictError("Slot is busy on the host calendar", booking_id=booking_id)

        start_time, end_time = slot_bounds_utc(day, slot, config.host_timezone, config.slot_duration_minutes)
        try:
            event = await calendar.create_event(
                summary=f"{EVENT_SUMMARY_PREFIX}: {submission.full_name}",
                start_time=start_time,
                end_time=end_time,
                attendee_email=submission.email,
                description=_event_description(submission),
                timezone_str=config.host_timezone,
            )
        except GoogleCalendarError as e:
            await self._release_quietly(booking_id)
            log.error("Calendar event creation failed, lock released", error=str(e))
            raise BookingUnavailableError(f"Calendar event creation failed: {e}", booking_id=booking_id) from e

        meet_link = event.meet_link()
        crm = await self._sync_crm(submission, start_time, end_time, meet_link, booking_id)

        booking = Booking(
            id=booking_id,
            **submission.model_dump(),
            google_event_id=event.id,
            google_meet_link=meet_link,
            hubspot_contact_id=crm.contact_id,
            hubspot_deal_id=crm.deal_id,
            hubspot_meeting_id=crm.meeting_id,
            status=BookingStatus.CONFIRMED,
        )
        return await self._commit(booking, calendar)

    async def _acquire(self, booking_id: str, day: date, slot: str) -> None:
        try:
            acquired = await self.lock_store.acquire(booking_id, day, slot)
        except DatabaseError as e:
            raise BookingUnavailableError(f"Slot lock store unavailable: {e}", booking_id=booking_id) from e
        if not acquired:
            raise SlotConflictError("Slot lock held by another booking", booking_id=booking_id)

    async def _sync_crm(
        self,
        submission: BookingSubmission,
        start_time: datetime,
        end_time: datetime,
        meet_link: str | None,
        booking_id: str,
    ) -> CrmSyncResult:
        result = CrmSyncResult()
        if self.crm is None:
            return result

        lead = _lead_details(submission)
        result.contact_id = await best_effort("crm_upsert_contact", self.crm.upsert_contact(lead), booking_id=booking_id)
        if not result.contact_id:
            return result

        result.deal_id = await best_effort(
            "crm_create_deal", self.crm.create_deal(result.contact_id, lead), booking_id=booking_id
        )
        result.meeting_id = await best_effort(
            "crm_create_meeting",
            self.crm.create_meeting(result.contact_id, lead, start_time, end_time, meet_link),
            booking_id=booking_id,
        )
        return result

    async def _commit(self, booking: Booking, calendar: GoogleCalendarService | None = None) -> Booking:
        """Duplicate guard then insert; unwinds the event and lock on any failure."""
        log = logger.bind(
            booking_id=booking.id,
            date=booking.scheduled_date.isoformat(),
            time=booking.scheduled_time,
        )

        try:
            existing = await self.bookings.find_active_at(
                booking.scheduled_date, booking.scheduled_time, exclude_id=booking.id
            )
        except DatabaseError as e:
            await self._unwind(booking, calendar)
            raise BookingUnavailableError(f"Duplicate check failed: {e}", booking_id=booking.id) from e

        if existing:
            await self._unwind(booking, calendar)
            log.warning("Active booking already holds slot", existing_booking_id=existing.id)
            raise SlotConflictError("Active booking already holds the slot", booking_id=booking.id)

        try:
            await self.bookings.insert(booking)
        except UniqueViolationError as e:
            await self._unwind(booking, calendar)
            log.warning("Booking insert rejected by unique index", constraint=e.constraint)
            raise SlotConflictError("Active booking already holds the slot", booking_id=booking.id) from e
        except DatabaseError as e:
            await self._release_quietly(booking.id)
            log.error(
                "Booking persistence failed after calendar event creation, manual reconciliation needed",
                google_event_id=booking.google_event_id,
                hubspot_contact_id=booking.hubspot_contact_id,
                error=str(e),
            )
            raise BookingInternalError(f"Booking insert failed: {e}", booking_id=booking.id) from e

        log.info("Booking confirmed", is_test=booking.is_test, google_event_id=booking.google_event_id)
        return booking

    async def _unwind(self, booking: Booking, calendar: GoogleCalendarService | None) -> None:
        if calendar is not None and booking.google_event_id:
            await best_effort(
                "delete_calendar_event",
                calendar.delete_event(booking.google_event_id),
                booking_id=booking.id,
            )
        await self._release_quietly(booking.id)

    async def _release_quietly(self, booking_id: str) -> None:
        # A lock left behind here is reclaimed once it outlives the orphan TTL
        await best_effort("release_slot_lock", self.lock_store.release(booking_id), booking_id=booking_id)

    # =================================================================
    # MANAGE
    # =================================================================

    async def _load_owned(self, booking_id: str, requester_email: str) -> Booking:
        try:
            booking = await self.bookings.get(booking_id)
        except DatabaseError as e:
            raise BookingUnavailableError(f"Booking lookup failed: {e}", booking_id=booking_id) from e

        if booking is None:
            raise BookingNotFoundError(booking_id=booking_id)
        if booking.email.strip().lower() != requester_email.strip().lower():
            logger.warning("Booking ownership mismatch", booking_id=booking_id)
            raise BookingUnauthorizedError(booking_id=booking_id)
        return booking

    async def reschedule_booking(
        self,
        booking_id: str,
        requester_email: str,
        new_date: date,
        new_time: str,
    ) -> Booking:
        """
        Move a booking to a new slot, keeping its calendar event and CRM meeting.

        The lock moves first; if anything after that fails the lock is moved
        back and the booking row is left untouched.
        """
        booking = await self._load_owned(booking_id, requester_email)
        log = logger.bind(booking_id=booking_id, new_date=new_date.isoformat(), new_time=new_time)

        if not booking.is_active():
            raise BookingValidationError("This booking cannot be rescheduled", booking_id=booking_id)
        if booking.scheduled_date is None or booking.scheduled_time is None:
            raise BookingValidationError("This booking has no scheduled time", booking_id=booking_id)
        if not booking.is_test and not booking.google_event_id:
            raise BookingValidationError("This booking cannot be rescheduled", booking_id=booking_id)

        earliest = booking.scheduled_date + timedelta(days=self.min_notice_days)
        if new_date < earliest:
            raise BookingValidationError(
                f"Please choose a date on or after {earliest.isoformat()}", booking_id=booking_id
            )

        config = await self.config_resolver.resolve()
        validate_slot(config, new_date, new_time, self._now())

        calendar = None
        if not booking.is_test:
            calendar = self.calendar_factory.calendar_for(config.host_email)
            if calendar is None:
                raise BookingUnavailableError("Calendar integration not configured", booking_id=booking_id)

        try:
            moved = await self.lock_store.move(booking_id, new_date, new_time)
        except DatabaseError as e:
            raise BookingUnavailableError(f"Slot lock store unavailable: {e}", booking_id=booking_id) from e
        if not moved:
            raise SlotConflictError("New slot is held by another booking", booking_id=booking_id)

        try:
            existing = await self.bookings.find_active_at(new_date, new_time, exclude_id=booking_id)
        except DatabaseError as e:
            await self._restore_lock(booking)
            raise BookingUnavailableError(f"Duplicate check failed: {e}", booking_id=booking_id) from e
        if existing:
            await self._restore_lock(booking)
            raise SlotConflictError("Active booking already holds the new slot", booking_id=booking_id)

        if calendar is not None:
            availability = CalendarAvailabilityClient(calendar)
            free = await availability.is_slot_free(
                new_date,
                new_time,
                config.host_timezone,
                config.meeting_minutes,
                exclude_event_id=booking.google_event_id,
                strict=True,
            )
            if not free:
                await self._restore_lock(booking)
                log.info("New slot busy on calendar, lock restored")
                raise SlotConflictError("New slot is busy on the host calendar", booking_id=booking_id)

            start_time, end_time = slot_bounds_utc(
                new_date, new_time, config.host_timezone, config.slot_duration_minutes
            )
            try:
                await calendar.update_event_time(booking.google_event_id, start_time, end_time, config.host_timezone)
            except GoogleCalendarError as e:
                await self._restore_lock(booking)
                log.error("Calendar event update failed, lock restored", error=str(e))
                raise BookingUnavailableError(f"Calendar event update failed: {e}", booking_id=booking_id) from e

            if self.crm is not None and booking.hubspot_meeting_id:
                await best_effort(
                    "crm_reschedule_meeting",
                    self.crm.reschedule_meeting(booking.hubspot_meeting_id, start_time, end_time),
                    booking_id=booking_id,
                )

        try:
            await self.bookings.update_schedule(booking_id, new_date, new_time)
        except DatabaseError as e:
            log.error(
                "Booking row update failed after calendar move, manual reconciliation needed",
                google_event_id=booking.google_event_id,
                error=str(e),
            )
            raise BookingInternalError(f"Booking update failed: {e}", booking_id=booking_id) from e

        log.info(
            "Booking rescheduled",
            old_date=booking.scheduled_date.isoformat(),
            old_time=booking.scheduled_time,
            is_test=booking.is_test,
        )
        return booking.model_copy(update={"scheduled_date": new_date, "scheduled_time": new_time})

    async def _restore_lock(self, booking: Booking) -> None:
        try:
            restored = await self.lock_store.move(booking.id, booking.scheduled_date, booking.scheduled_time)
        except DatabaseError as e:
            restored = False
            logger.error("Slot lock restore failed", booking_id=booking.id, error=str(e))

        if not restored:
            logger.error(
                "Original slot could not be re-locked",
                booking_id=booking.id,
                date=booking.scheduled_date.isoformat(),
                time=booking.scheduled_time,
            )

    async def cancel_booking(self, booking_id: str, requester_email: str, reason: str | None = None) -> Booking:
        """
        Cancel a booking. The calendar and CRM updates are best effort; the
        booking row and the lock are always cleared.
        """
        booking = await self._load_owned(booking_id, requester_email)
        if booking.status == BookingStatus.CANCELLED:
            raise BookingValidationError("This booking is already cancelled", booking_id=booking_id)

        if not booking.is_test:
            if booking.google_event_id:
                config = await self.config_resolver.resolve()
                calendar = self.calendar_factory.calendar_for(config.host_email)
                if calendar is None:
                    logger.warning(
                        "Calendar integration not configured, event left in place",
                        booking_id=booking_id,
                        google_event_id=booking.google_event_id,
                    )
                else:
                    await best_effort(
                        "delete_calendar_event",
                        calendar.delete_event(booking.google_event_id),
                        booking_id=booking_id,
                    )

            if self.crm is not None and booking.hubspot_meeting_id:
                await best_effort(
                    "crm_cancel_meeting",
                    self.crm.cancel_meeting(booking.hubspot_meeting_id),
                    booking_id=booking_id,
                )

        try:
            await self.bookings.update_status(booking_id, BookingStatus.CANCELLED)
        except DatabaseError as e:
            raise BookingInternalError(f"Booking status update failed: {e}", booking_id=booking_id) from e

        await self._release_quietly(booking_id)

        logger.info(
            "Booking cancelled",
            booking_id=booking_id,
            reason=reason or "not given",
            is_test=booking.is_test,
        )
        return booking.model_copy(update={"status": BookingStatus.CANCELLED})
