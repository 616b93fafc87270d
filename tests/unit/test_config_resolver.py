"""
Tests for calendar configuration resolution with per-field fallbacks.
"""

import json
from datetime import date
from unittest.mock import AsyncMock

import pytest

from app.db.helpers import DatabaseError
from app.services.scheduling import config_resolver
from app.services.scheduling.config_resolver import ConfigResolver, build_config


@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    monkeypatch.setattr(config_resolver.settings, "GOOGLE_CALENDAR_EMAIL", "env-host@example.com")
    monkeypatch.setattr(config_resolver.settings, "TEST_MODE", False)


def test_empty_settings_use_defaults():
    config = build_config({})

    assert config.available_weekdays == frozenset({1, 2, 3, 4, 5})
    assert (config.business_hours.start, config.business_hours.end) == ("09:00", "17:00")
    assert config.slot_duration_minutes == 30
    assert config.buffer_minutes == 0
    assert config.blocked_dates == frozenset()
    assert config.host_timezone == "America/New_York"
    assert config.host_email == "env-host@example.com"
    assert config.test_mode is False


def test_stored_values_are_parsed():
    config = build_config(
        {
            "calendar_config": json.dumps(
                {
                    "availableDays": [2, 4],
                    "businessHours": {"start": "10:00", "end": "12:00"},
                    "slotDuration": 45,
                    "bufferTime": 15,
                    "blockedDates": ["2030-01-10"],
                }
            ),
            "host_timezone": "Europe/Berlin",
            "host_email": "host@example.com",
            "test_mode": "true",
        }
    )

    assert config.available_weekdays == frozenset({2, 4})
    assert config.business_hours.start == "10:00"
    assert config.meeting_minutes == 60
    assert config.blocked_dates == frozenset({date(2030, 1, 10)})
    assert config.host_timezone == "Europe/Berlin"
    assert config.host_email == "host@example.com"
    assert config.test_mode is True


def test_unpadded_business_hours_are_normalized():
    config = build_config({"calendar_config": json.dumps({"businessHours": {"start": "9:00", "end": "17:30"}})})

    assert (config.business_hours.start, config.business_hours.end) == ("09:00", "17:30")


def test_business_hours_reject_out_of_range_values():
    config = build_config({"calendar_config": json.dumps({"businessHours": {"start": "9:75", "end": "12:00"}})})

    assert (config.business_hours.start, config.business_hours.end) == ("09:00", "17:00")


def test_one_corrupt_field_keeps_the_others():
    config = build_config(
        {
            "calendar_config": json.dumps(
                {
                    "availableDays": "weekdays",
                    "businessHours": {"start": "18:00", "end": "09:00"},
                    "slotDuration": 20,
                    "blockedDates": ["not-a-date"],
                }
            ),
            "host_timezone": "Mars/Olympus_Mons",
        }
    )

    assert config.available_weekdays == frozenset({1, 2, 3, 4, 5})
    assert config.business_hours.start == "09:00"
    assert config.slot_duration_minutes == 20
    assert config.blocked_dates == frozenset()
    assert config.host_timezone == "America/New_York"


def test_unparseable_json_falls_back():
    config = build_config({"calendar_config": "{not json", "calendar_slots": "[oops"})

    assert config.slot_duration_minutes == 30
    assert config.slot_overrides == ()


def test_slot_overrides_must_all_be_valid():
    assert build_config({"calendar_slots": '["09:00", "9am"]'}).slot_overrides == ()
    assert build_config({"calendar_slots": '["09:00", "11:30"]'}).slot_overrides == ("09:00", "11:30")


@pytest.mark.asyncio
async def test_resolve_uses_defaults_when_store_fails():
    store = AsyncMock()
    store.get_many.side_effect = DatabaseError("connection refused", operation="fetch_all")

    config = await ConfigResolver(store).resolve()

    assert config.slot_duration_minutes == 30
    assert config.host_email == "env-host@example.com"


@pytest.mark.asyncio
async def test_resolve_reads_fresh_each_call():
    store = AsyncMock()
    store.get_many.side_effect = [{"test_mode": "false"}, {"test_mode": "true"}]
    resolver = ConfigResolver(store)

    assert (await resolver.resolve()).test_mode is False
    assert (await resolver.resolve()).test_mode is True
