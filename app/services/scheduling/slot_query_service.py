"""
"Which slots can I pick on date D?" for a browsing visitor.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime

from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.services.calendar.availability_service import CalendarClientFactory
from app.services.scheduling.booking_rules import bookable_candidates, unavailable_reason
from app.services.scheduling.config_resolver import ConfigResolver
from app.services.scheduling.errors import BookingUnavailableError
from app.services.scheduling.slot_lock_store import SlotLockStore

logger = get_logger(__name__)


@dataclass(slots=True)
class SlotAvailability:
    slots: list[str]
    message: str | None = None
    test_mode: bool = False


def demo_slot_sample(candidates: list[str]) -> list[str]:
    """Deterministic subset shown in test mode so the widget still renders gaps."""
    return [slot for index, slot in enumerate(candidates) if index % 2 == 0 or index % 3 == 0]


class SlotQueryService:
    """Combines config, candidate slots, the live calendar and in-flight locks."""

    def __init__(
        self,
        config_resolver: ConfigResolver,
        lock_store: SlotLockStore,
        calendar_factory: CalendarClientFactory,
        now: Callable[[], datetime] | None = None,
    ):
        self.config_resolver = config_resolver
        self.lock_store = lock_store
        self.calendar_factory = calendar_factory
        self._now = now or (lambda: datetime.now(UTC))

    async def list_available(self, day: date) -> SlotAvailability:
        config = await self.config_resolver.resolve()
        now = self._now()

        reason = unavailable_reason(config, day, now)
        if reason:
            return SlotAvailability(slots=[], message=reason, test_mode=config.test_mode)

        candidates = bookable_candidates(config, day, now)
        if not candidates:
            return SlotAvailability(slots=[], test_mode=config.test_mode)

        try:
            locked = await self.lock_store.list_locked(day)
        except DatabaseError as e:
            logger.warning("Slot locks unreadable, showing no slots", date=day.isoformat(), error=str(e))
            return SlotAvailability(slots=[], message=BookingUnavailableError.user_message)

        if config.test_mode:
            sample = demo_slot_sample(candidates)
            return SlotAvailability(slots=[slot for slot in sample if slot not in locked], test_mode=True)

        availability = self.calendar_factory.availability_for(config.host_email)
        if availability is None:
            logger.error("Calendar integration not configured, showing no slots", date=day.isoformat())
            return SlotAvailability(slots=[], message=BookingUnavailableError.user_message)

        free = await availability.available_slots(
            day, candidates, config.host_timezone, config.meeting_minutes, strict=True
        )
        slots = [slot for slot in free if slot not in locked]

        logger.info(
            "Slots listed",
            date=day.isoformat(),
            candidates=len(candidates),
            calendar_free=len(free),
            locked=len(locked),
            returned=len(slots),
        )
        return SlotAvailability(slots=slots)
