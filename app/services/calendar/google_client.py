"""
Google Calendar API client for the host calendar.
Handles event listing and the create/update/delete operations the booking
flows need, with retry and error mapping.
"""

import asyncio
import time
import uuid
from datetime import datetime
from typing import Protocol

import httpx

from app.infrastructure.observability.logging import get_logger, log_integration_call
from app.models.domain.calendar_domain import CalendarEvent

logger = get_logger(__name__)

# Google Calendar API configuration
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_PRIMARY = "primary"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 20  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 0.5
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
MAX_EVENTS_PER_DAY = 250
MAX_EVENT_PAGES = 10


class GoogleCalendarError(Exception):
    """Custom exception for Google Calendar API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class AccessTokenProvider(Protocol):
    async def get_access_token(self) -> str: ...

    def invalidate(self) -> None: ...


class GoogleCalendarService:
    """
    Client for one Google calendar, authenticated through a token provider.

    Every public method raises GoogleCalendarError on failure; callers decide
    whether that failure is fatal (availability) or best-effort (cleanup).
    """

    def __init__(
        self,
        token_provider: AccessTokenProvider,
        calendar_id: str = CALENDAR_PRIMARY,
        http_client: httpx.AsyncClient | None = None,
        max_retries: int = MAX_RETRIES,
    ):
        self.token_provider = token_provider
        self.calendar_id = calendar_id
        self.max_retries = max(1, max_retries)
        self._client = http_client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client for Calendar API."""
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @property
    def events_url(self) -> str:
        return f"{CALENDAR_API_BASE_URL}/calendars/{self.calendar_id}/events"

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < self.max_retries:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Calendar API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= self.max_retries:
                    raise
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Calendar API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Calendar API retry loop exhausted")

    async def _get_auth_headers(self) -> dict:
        access_token = await self.token_provider.get_access_token()
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _call(self, method: str, url: str, operation: str, **kwargs) -> httpx.Response:
        """Authenticated request with integration timing; transport errors become GoogleCalendarError."""
        started = time.perf_counter()
        try:
            headers = await self._get_auth_headers()
            response = await self._request_with_retry(method, url, headers=headers, **kwargs)
        except GoogleCalendarError:
            raise
        except Exception as e:
            log_integration_call(
                "google_calendar", operation, False, (time.perf_counter() - started) * 1000, error=str(e)
            )
            raise GoogleCalendarError(f"Calendar {operation} failed: {e}") from e

        if response.status_code == 401:
            # Force a fresh assertion on the next call
            self.token_provider.invalidate()

        log_integration_call(
            "google_calendar",
            operation,
            response.is_success,
            (time.perf_counter() - started) * 1000,
            status_code=response.status_code,
        )
        return response

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Handle and validate Calendar API response.

        Returns:
            dict: Parsed response data

        Raises:
            GoogleCalendarError: If response contains errors
        """
        if response.is_success:
            try:
                data = response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse Calendar API {operation} response", error=str(e))
                raise GoogleCalendarError(f"Invalid response format: {e}") from e
            if not isinstance(data, dict):
                raise GoogleCalendarError(f"Unexpected {operation} payload type: {type(data).__name__}")
            return data

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                f"Calendar API {operation} failed with non-JSON response",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise GoogleCalendarError(
                f"Calendar API error (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
        if not isinstance(error_info, dict):
            error_info = {"message": str(error_info)}
        error_code = str(error_info.get("code", response.status_code))
        error_message = error_info.get("message", "Unknown Calendar API error")

        logger.error(
            f"Calendar API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )

        raise GoogleCalendarError(
            self._map_calendar_error(error_code, error_message),
            error_code=error_code,
            status_code=response.status_code,
            response_data=error_data if isinstance(error_data, dict) else {},
        )

    def _map_calendar_error(self, error_code: str, error_message: str) -> str:
        """Map Calendar API error codes to operator-readable messages."""
        error_mappings = {
            "403": "Calendar access denied. Check domain-wide delegation for the service account.",
            "404": "Calendar or event not found.",
            "400": "Invalid calendar request format.",
            "401": "Calendar authorization rejected.",
            "410": "Calendar event already deleted.",
            "429": "Calendar rate limit reached.",
            "500": "Google Calendar service temporarily unavailable.",
        }
        return error_mappings.get(error_code, f"Calendar error: {error_message}")

    async def list_events(self, time_min: datetime, time_max: datetime) -> list[CalendarEvent]:
        """
        List events intersecting [time_min, time_max), recurring events expanded.

        Raises:
            GoogleCalendarError: If listing events fails or the payload is malformed
        """
        params = {
            "singleEvents": "true",
            "orderBy": "startTime",
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "maxResults": MAX_EVENTS_PER_DAY,
        }

        events: list[CalendarEvent] = []
        for _ in range(MAX_EVENT_PAGES):
            response = await self._call("GET", self.events_url, "list_events", params=params)
            data = self._handle_api_response(response, "list_events")

            items = data.get("items", [])
            if not isinstance(items, list):
                raise GoogleCalendarError("Malformed list_events payload: items is not a list")
            events.extend(CalendarEvent(item) for item in items if isinstance(item, dict))

            next_page = data.get("nextPageToken")
            if not next_page:
                break
            params = {**params, "pageToken": next_page}
        else:
            # A partial listing would hide busy time
            raise GoogleCalendarError(f"list_events exceeded {MAX_EVENT_PAGES} pages")

        logger.debug(
            "Events listed",
            calendar_id=self.calendar_id,
            time_min=params["timeMin"],
            time_max=params["timeMax"],
            event_count=len(events),
        )
        return events

    async def create_event(
        self,
        summary: str,
        start_time: datetime,
        end_time: datetime,
        attendee_email: str,
        description: str = "",
        timezone_str: str = "UTC",
        with_conference: bool = True,
    ) -> CalendarEvent:
        """
        Create an event with the visitor as attendee and a Meet conference.

        Raises:
            GoogleCalendarError: If creating event fails
        """
        event_data = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": start_time.isoformat(), "timeZone": timezone_str},
            "end": {"dateTime": end_time.isoformat(), "timeZone": timezone_str},
            "attendees": [{"email": attendee_email}],
        }
        params = {"sendUpdates": "all"}

        if with_conference:
            event_data["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = "1"

        logger.info("Creating calendar event", start_time=start_time.isoformat(), calendar_id=self.calendar_id)

        response = await self._call("POST", self.events_url, "create_event", params=params, json=event_data)
        data = self._handle_api_response(response, "create_event")

        event = CalendarEvent(data)
        if not event.id:
            raise GoogleCalendarError("Calendar create_event response has no event id")

        logger.info("Event created successfully", event_id=event.id)
        return event

    async def update_event_time(
        self,
        event_id: str,
        start_time: datetime,
        end_time: datetime,
        timezone_str: str = "UTC",
    ) -> CalendarEvent:
        """
        Move an existing event; attendees are notified.

        Raises:
            GoogleCalendarError: If updating event fails
        """
        update_data = {
            "start": {"dateTime": start_time.isoformat(), "timeZone": timezone_str},
            "end": {"dateTime": end_time.isoformat(), "timeZone": timezone_str},
        }

        logger.info("Updating calendar event", event_id=event_id, start_time=start_time.isoformat())

        response = await self._call(
            "PATCH",
            f"{self.events_url}/{event_id}",
            "update_event",
            params={"sendUpdates": "all"},
            json=update_data,
        )
        data = self._handle_api_response(response, "update_event")

        logger.info("Event updated successfully", event_id=event_id)
        return CalendarEvent(data)

    async def delete_event(self, event_id: str) -> bool:
        """
        Delete an event. An event that is already gone counts as deleted.

        Raises:
            GoogleCalendarError: If deleting event fails
        """
        logger.info("Deleting calendar event", event_id=event_id, calendar_id=self.calendar_id)

        response = await self._call(
            "DELETE", f"{self.events_url}/{event_id}", "delete_event", params={"sendUpdates": "all"}
        )

        if response.status_code in (204, 410):
            logger.info("Event deleted successfully", event_id=event_id, status_code=response.status_code)
            return True

        self._handle_api_response(response, "delete_event")
        return True
