"""
Calendar availability for the host calendar.

Turns the host's events for a day into busy intervals and filters candidate
slots against them. Every read here is fail-closed: when the calendar cannot
be consulted, no slot is reported free.
"""

from collections.abc import Callable, Iterable
from datetime import date

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.scheduling_domain import BusyInterval
from app.services.calendar.google_client import GoogleCalendarError, GoogleCalendarService
from app.services.calendar.service_account_auth import (
    ServiceAccountAuthError,
    ServiceAccountCredentials,
    ServiceAccountTokenProvider,
)
from app.utils.time_slots import local_day_window, slot_bounds_utc

logger = get_logger(__name__)


def fail_closed(operation: str, error: Exception, strict: bool, fallback, **context):
    """
    Result of a calendar read that failed.

    Strict callers get the empty answer; only explicitly lenient previews get
    the unverified fallback.
    """
    logger.warning(
        "Calendar unavailable, failing closed" if strict else "Calendar unavailable, returning unverified result",
        operation=operation,
        error=str(error),
        error_type=type(error).__name__,
        strict=strict,
        **context,
    )
    return fallback


def compute_available(
    day: date,
    candidate_slots: Iterable[str],
    busy: list[BusyInterval],
    host_timezone: str,
    duration_minutes: int,
    exclude_event_id: str | None = None,
) -> list[str]:
    """Candidate slots with zero overlap against every busy interval, in input order."""
    relevant = [interval for interval in busy if not (exclude_event_id and interval.event_id == exclude_event_id)]

    if any(interval.blocks_all_day for interval in relevant):
        return []

    free = []
    for slot in candidate_slots:
        slot_start, slot_end = slot_bounds_utc(day, slot, host_timezone, duration_minutes)
        if not any(interval.overlaps(slot_start, slot_end) for interval in relevant):
            free.append(slot)
    return free


class CalendarAvailabilityClient:
    """Read-only availability view of the host calendar."""

    def __init__(self, calendar: GoogleCalendarService):
        self.calendar = calendar

    async def list_busy_intervals(self, day: date, host_timezone: str) -> list[BusyInterval]:
        """
        Busy intervals for the host-local day.

        Raises:
            GoogleCalendarError: If the calendar cannot be read
            ValueError: If the timezone or a slot is invalid
        """
        window_start, window_end = local_day_window(day, host_timezone)
        events = await self.calendar.list_events(window_start, window_end)
        return [event.to_busy_interval() for event in events if not event.is_cancelled()]

    async def available_slots(
        self,
        day: date,
        candidate_slots: list[str],
        host_timezone: str,
        duration_minutes: int,
        *,
        exclude_event_id: str | None = None,
        strict: bool = True,
    ) -> list[str]:
        """Candidate slots the calendar shows as free; [] on any error when strict."""
        try:
            busy = await self.list_busy_intervals(day, host_timezone)
            available = compute_available(
                day, candidate_slots, busy, host_timezone, duration_minutes, exclude_event_id
            )
        except (GoogleCalendarError, ServiceAccountAuthError, httpx.HTTPError, ValueError, TypeError) as e:
            return fail_closed(
                "available_slots",
                e,
                strict,
                [] if strict else list(candidate_slots),
                date=day.isoformat(),
            )

        logger.info(
            "Availability computed",
            date=day.isoformat(),
            candidates=len(candidate_slots),
            available=len(available),
            busy_intervals=len(busy),
        )
        return available

    async def is_slot_free(
        self,
        day: date,
        slot: str,
        host_timezone: str,
        duration_minutes: int,
        *,
        exclude_event_id: str | None = None,
        strict: bool = True,
    ) -> bool:
        """Whether a single slot is free on the live calendar; False on any error when strict."""
        available = await self.available_slots(
            day,
            [slot],
            host_timezone,
            duration_minutes,
            exclude_event_id=exclude_event_id,
            strict=strict,
        )
        return slot in available


class CalendarClientFactory:
    """
    Builds calendar clients for the configured host.

    Holds one token provider per impersonated mailbox so bearer tokens are
    reused across requests until they near expiry. Owned by the application
    lifespan rather than living at module level.
    """

    def __init__(
        self,
        service_account_json: str | None,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ):
        self._service_account_json = service_account_json
        self._http_client_factory = http_client_factory
        self._providers: dict[str, ServiceAccountTokenProvider] = {}
        self._calendars: dict[str, GoogleCalendarService] = {}

    @classmethod
    def from_settings(cls) -> "CalendarClientFactory":
        return cls(settings.GOOGLE_SERVICE_ACCOUNT)

    def is_configured(self, host_email: str | None) -> bool:
        return bool(self._service_account_json) and bool(host_email)

    def _new_http_client(self) -> httpx.AsyncClient | None:
        return self._http_client_factory() if self._http_client_factory else None

    def calendar_for(self, host_email: str | None) -> GoogleCalendarService | None:
        """Calendar API client impersonating host_email, or None when not configured."""
        if not self.is_configured(host_email):
            return None

        if host_email not in self._calendars:
            try:
                credentials = ServiceAccountCredentials.from_json(self._service_account_json)
            except ServiceAccountAuthError as e:
                logger.error("Service account credentials unusable", error=str(e))
                return None

            provider = ServiceAccountTokenProvider(credentials, host_email, http_client=self._new_http_client())
            self._providers[host_email] = provider
            self._calendars[host_email] = GoogleCalendarService(provider, http_client=self._new_http_client())

        return self._calendars[host_email]

    def availability_for(self, host_email: str | None) -> CalendarAvailabilityClient | None:
        calendar = self.calendar_for(host_email)
        return CalendarAvailabilityClient(calendar) if calendar else None

    async def close(self) -> None:
        for calendar in self._calendars.values():
            await calendar.close()
        for provider in self._providers.values():
            await provider.close()
        self._calendars.clear()
        self._providers.clear()
