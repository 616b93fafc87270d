# app/models/domain/calendar_domain.py
"""
Calendar Domain Models
Wraps Google Calendar event payloads and turns them into busy intervals.
"""

from datetime import UTC, datetime

from app.models.domain.scheduling_domain import BusyInterval


class CalendarEvent:
    """Domain model for a Google Calendar event."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.summary = data.get("summary", "")
        self.description = data.get("description", "")
        self.start_time = self._parse_datetime(data.get("start") or {})
        self.end_time = self._parse_datetime(data.get("end") or {})
        self.timezone = (data.get("start") or {}).get("timeZone", "UTC")
        self.status = data.get("status", "confirmed")
        self.html_link = data.get("htmlLink")
        self.attendees = data.get("attendees", [])
        self.raw_data = data

    def _parse_datetime(self, dt_data: dict) -> datetime | None:
        """Parse a concrete dateTime; date-only (all-day) values are not instants."""
        dt_str = dt_data.get("dateTime")
        if not dt_str:
            return None
        try:
            parsed = datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    def is_all_day(self) -> bool:
        """All-day events carry a date instead of a dateTime."""
        return "date" in (self.raw_data.get("start") or {})

    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def has_concrete_bounds(self) -> bool:
        return self.start_time is not None and self.end_time is not None

    def meet_link(self) -> str | None:
        """Video entry point of the attached conference, falling back to hangoutLink."""
        conference = self.raw_data.get("conferenceData") or {}
        for entry in conference.get("entryPoints") or []:
            if entry.get("entryPointType") == "video" and entry.get("uri"):
                return entry["uri"]
        return self.raw_data.get("hangoutLink")

    def to_busy_interval(self) -> BusyInterval:
        """Any event without a concrete start and end blocks the whole day."""
        if self.is_all_day() or not self.has_concrete_bounds():
            return BusyInterval(start=None, end=None, blocks_all_day=True, event_id=self.id)
        return BusyInterval(start=self.start_time, end=self.end_time, event_id=self.id)
