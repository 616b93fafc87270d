"""
Tests for the booking orchestrator: create, reschedule and cancel.
"""

import asyncio
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from app.models.domain.scheduling_domain import Booking, BookingStatus
from app.services.scheduling.errors import (
    BookingInternalError,
    BookingNotFoundError,
    BookingUnauthorizedError,
    BookingUnavailableError,
    BookingValidationError,
    SlotConflictError,
)
from tests.conftest import THURSDAY, TUESDAY

NY = ZoneInfo("America/New_York")
WEDNESDAY = date(2030, 1, 9)
LEAD_EMAIL = "lead@example.com"


# =================================================================
# CREATE
# =================================================================


@pytest.mark.asyncio
async def test_create_booking_confirms_and_syncs_crm(
    make_booking_service, make_submission, lock_store, booking_repo, fake_calendar, fake_crm
):
    service = make_booking_service()

    booking = await service.create_booking(make_submission())

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.is_test is False
    assert booking.google_event_id == fake_calendar.created[0]["id"]
    assert booking.google_meet_link == f"https://meet.google.com/{booking.google_event_id}"
    assert booking.hubspot_contact_id == "contact-1"
    assert booking.hubspot_deal_id == "deal-1"
    assert booking.hubspot_meeting_id == "meeting-1"
    assert fake_crm.calls == ["upsert_contact", "create_deal", "create_meeting"]
    assert lock_store.locks == {booking.id: (TUESDAY, "14:00")}
    assert booking_repo.rows[booking.id].status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_replayed_booking_is_conflict(make_booking_service, make_submission, fake_calendar):
    service = make_booking_service()

    await service.create_booking(make_submission())
    with pytest.raises(SlotConflictError):
        await service.create_booking(make_submission(email="other@example.com"))

    assert len(fake_calendar.created) == 1


@pytest.mark.asyncio
async def test_concurrent_creates_have_exactly_one_winner(
    make_booking_service, make_submission, booking_repo, fake_calendar
):
    service = make_booking_service()

    results = await asyncio.gather(
        *(service.create_booking(make_submission(email=f"lead{i}@example.com")) for i in range(5)),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, Booking)]
    conflicts = [r for r in results if isinstance(r, SlotConflictError)]
    assert len(winners) == 1
    assert len(conflicts) == 4
    assert len(booking_repo.rows) == 1
    assert len(fake_calendar.created) == 1


@pytest.mark.asyncio
async def test_busy_calendar_releases_lock(make_booking_service, make_submission, lock_store, fake_calendar):
    fake_calendar.add_busy(datetime(2030, 1, 8, 14, 15, tzinfo=NY), datetime(2030, 1, 8, 14, 45, tzinfo=NY))
    service = make_booking_service()

    with pytest.raises(SlotConflictError):
        await service.create_booking(make_submission())

    assert lock_store.locks == {}
    assert len(lock_store.release_calls) == 1
    assert fake_calendar.created == []


@pytest.mark.asyncio
async def test_adjacent_event_does_not_block(make_booking_service, make_submission, fake_calendar):
    fake_calendar.add_busy(datetime(2030, 1, 8, 14, 30, tzinfo=NY), datetime(2030, 1, 8, 15, 0, tzinfo=NY))
    service = make_booking_service()

    booking = await service.create_booking(make_submission())

    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_unreachable_calendar_fails_closed(make_booking_service, make_submission, lock_store, fake_calendar):
    fake_calendar.fail_list = True
    service = make_booking_service()

    with pytest.raises(SlotConflictError):
        await service.create_booking(make_submission())

    assert lock_store.locks == {}
    assert fake_calendar.created == []


@pytest.mark.asyncio
async def test_missing_calendar_integration_is_unavailable(make_booking_service, make_submission, lock_store):
    service = make_booking_service(calendar=None)

    with pytest.raises(BookingUnavailableError):
        await service.create_booking(make_submission())

    assert lock_store.locks == {}


@pytest.mark.asyncio
async def test_event_creation_failure_releases_lock(
    make_booking_service, make_submission, lock_store, booking_repo, fake_calendar
):
    fake_calendar.fail_create = True
    service = make_booking_service()

    with pytest.raises(BookingUnavailableError):
        await service.create_booking(make_submission())

    assert lock_store.locks == {}
    assert booking_repo.rows == {}


@pytest.mark.asyncio
async def test_crm_failure_does_not_abort_booking(make_booking_service, make_submission, fake_crm):
    fake_crm.fail = True
    service = make_booking_service()

    booking = await service.create_booking(make_submission())

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.hubspot_contact_id is None
    assert booking.hubspot_meeting_id is None
    assert fake_crm.calls == ["upsert_contact"]


@pytest.mark.asyncio
async def test_existing_active_booking_unwinds_event_and_lock(
    make_booking_service, make_submission, lock_store, booking_repo, fake_calendar
):
    # Row without a lock, e.g. written before locks existed
    booking_repo.rows["legacy"] = Booking(
        id="legacy",
        first_name="Grace",
        last_name="Hopper",
        email="grace@example.com",
        website="https://example.com",
        scheduled_date=TUESDAY,
        scheduled_time="14:00",
        status=BookingStatus.CONFIRMED,
    )
    service = make_booking_service()

    with pytest.raises(SlotConflictError):
        await service.create_booking(make_submission())

    assert fake_calendar.deleted == [fake_calendar.created[0]["id"]]
    assert lock_store.locks == {}


@pytest.mark.asyncio
async def test_persistence_failure_is_internal_and_keeps_event(
    make_booking_service, make_submission, lock_store, booking_repo, fake_calendar
):
    booking_repo.fail_insert = True
    service = make_booking_service()

    with pytest.raises(BookingInternalError):
        await service.create_booking(make_submission())

    assert lock_store.locks == {}
    assert fake_calendar.deleted == []
    assert len(fake_calendar.created) == 1


@pytest.mark.asyncio
async def test_lock_store_outage_is_unavailable(make_booking_service, make_submission, lock_store, fake_calendar):
    lock_store.fail_acquire = True
    service = make_booking_service()

    with pytest.raises(BookingUnavailableError):
        await service.create_booking(make_submission())

    assert fake_calendar.created == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "day, slot, message",
    [
        (date(2030, 1, 4), "14:00", "Cannot book past dates"),
        (date(2030, 1, 12), "14:00", "Not available on Saturdays"),
        (TUESDAY, "14:10", "Please select one of the offered time slots"),
    ],
)
async def test_invalid_slots_rejected_before_side_effects(
    make_booking_service, make_submission, lock_store, fake_calendar, day, slot, message
):
    service = make_booking_service()

    with pytest.raises(BookingValidationError) as exc_info:
        await service.create_booking(make_submission(scheduled_date=day, scheduled_time=slot))

    assert exc_info.value.user_message == message
    assert lock_store.locks == {}
    assert fake_calendar.created == []


@pytest.mark.asyncio
async def test_blocked_date_rejected(make_booking_service, make_submission, live_config):
    config = live_config.model_copy(update={"blocked_dates": frozenset({TUESDAY})})
    service = make_booking_service(config=config)

    with pytest.raises(BookingValidationError):
        await service.create_booking(make_submission())


@pytest.mark.asyncio
async def test_test_mode_skips_external_calls(
    make_booking_service, make_submission, live_config, lock_store, fake_calendar, fake_crm
):
    service = make_booking_service(config=live_config.model_copy(update={"test_mode": True}))

    booking = await service.create_booking(make_submission())

    assert booking.is_test is True
    assert booking.google_event_id.startswith("test-")
    assert fake_calendar.created == []
    assert fake_crm.calls == []
    assert booking.id in lock_store.locks

    with pytest.raises(SlotConflictError):
        await service.create_booking(make_submission(email="other@example.com"))


# =================================================================
# RESCHEDULE
# =================================================================


@pytest.mark.asyncio
async def test_reschedule_requires_minimum_notice(make_booking_service, make_submission):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())

    with pytest.raises(BookingValidationError):
        await service.reschedule_booking(booking.id, LEAD_EMAIL, WEDNESDAY, "10:00")

    moved = await service.reschedule_booking(booking.id, LEAD_EMAIL, THURSDAY, "10:00")
    assert (moved.scheduled_date, moved.scheduled_time) == (THURSDAY, "10:00")


@pytest.mark.asyncio
async def test_reschedule_moves_lock_event_and_row(
    make_booking_service, make_submission, lock_store, booking_repo, fake_calendar, fake_crm
):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())

    await service.reschedule_booking(booking.id, LEAD_EMAIL.upper(), THURSDAY, "10:00")

    assert lock_store.locks[booking.id] == (THURSDAY, "10:00")
    assert booking_repo.rows[booking.id].scheduled_date == THURSDAY
    assert fake_calendar.updated[0][0] == booking.google_event_id
    assert fake_calendar.updated[0][1] == datetime(2030, 1, 10, 10, 0, tzinfo=NY)
    assert "reschedule_meeting" in fake_crm.calls


@pytest.mark.asyncio
async def test_reschedule_event_update_failure_restores_lock(
    make_booking_service, make_submission, lock_store, booking_repo, fake_calendar
):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())
    fake_calendar.fail_update = True

    with pytest.raises(BookingUnavailableError):
        await service.reschedule_booking(booking.id, LEAD_EMAIL, THURSDAY, "10:00")

    assert lock_store.locks[booking.id] == (TUESDAY, "14:00")
    row = booking_repo.rows[booking.id]
    assert (row.scheduled_date, row.scheduled_time) == (TUESDAY, "14:00")


@pytest.mark.asyncio
async def test_reschedule_into_busy_slot_restores_lock(
    make_booking_service, make_submission, lock_store, fake_calendar
):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())
    fake_calendar.add_busy(datetime(2030, 1, 10, 9, 45, tzinfo=NY), datetime(2030, 1, 10, 10, 15, tzinfo=NY))

    with pytest.raises(SlotConflictError):
        await service.reschedule_booking(booking.id, LEAD_EMAIL, THURSDAY, "10:00")

    assert lock_store.locks[booking.id] == (TUESDAY, "14:00")
    assert fake_calendar.updated == []


@pytest.mark.asyncio
async def test_reschedule_into_locked_slot_is_conflict(make_booking_service, make_submission, lock_store, fake_calendar):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())
    lock_store.locks["someone-else"] = (THURSDAY, "10:00")

    with pytest.raises(SlotConflictError):
        await service.reschedule_booking(booking.id, LEAD_EMAIL, THURSDAY, "10:00")

    assert lock_store.locks[booking.id] == (TUESDAY, "14:00")
    assert fake_calendar.updated == []


@pytest.mark.asyncio
async def test_reschedule_checks_ownership(make_booking_service, make_submission):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())

    with pytest.raises(BookingUnauthorizedError):
        await service.reschedule_booking(booking.id, "intruder@example.com", THURSDAY, "10:00")
    with pytest.raises(BookingNotFoundError):
        await service.reschedule_booking("missing", LEAD_EMAIL, THURSDAY, "10:00")


# =================================================================
# CANCEL
# =================================================================


@pytest.mark.asyncio
async def test_cancel_deletes_event_and_releases_lock(
    make_booking_service, make_submission, lock_store, booking_repo, fake_calendar, fake_crm
):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())

    cancelled = await service.cancel_booking(booking.id, LEAD_EMAIL, reason="Found another vendor")

    assert cancelled.status == BookingStatus.CANCELLED
    assert booking_repo.rows[booking.id].status == BookingStatus.CANCELLED
    assert fake_calendar.deleted == [booking.google_event_id]
    assert lock_store.locks == {}
    assert "cancel_meeting" in fake_crm.calls


@pytest.mark.asyncio
async def test_second_cancel_is_rejected_without_second_delete(make_booking_service, make_submission, fake_calendar):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())
    await service.cancel_booking(booking.id, LEAD_EMAIL)

    with pytest.raises(BookingValidationError):
        await service.cancel_booking(booking.id, LEAD_EMAIL)

    assert len(fake_calendar.deleted) == 1


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_booked_again(make_booking_service, make_submission):
    service = make_booking_service()
    booking = await service.create_booking(make_submission())
    await service.cancel_booking(booking.id, LEAD_EMAIL)

    rebooked = await service.create_booking(make_submission(email="next@example.com"))

    assert rebooked.status == BookingStatus.CONFIRMED
