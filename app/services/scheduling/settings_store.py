"""
Flat key/value settings table maintained by admins.
"""

from app.db.helpers import fetch_all, with_db_retry

CALENDAR_CONFIG_KEY = "calendar_config"
CALENDAR_SLOTS_KEY = "calendar_slots"
HOST_TIMEZONE_KEY = "host_timezone"
HOST_EMAIL_KEY = "host_email"
TEST_MODE_KEY = "test_mode"

SCHEDULING_KEYS = (
    CALENDAR_CONFIG_KEY,
    CALENDAR_SLOTS_KEY,
    HOST_TIMEZONE_KEY,
    HOST_EMAIL_KEY,
    TEST_MODE_KEY,
)


class SettingsStore:
    """Reads rows of the settings table."""

    @with_db_retry(max_retries=2, base_delay=0.05)
    async def get_many(self, keys: tuple[str, ...] = SCHEDULING_KEYS) -> dict[str, str]:
        rows = await fetch_all(
            "SELECT key, value FROM settings WHERE key = ANY(%s)",
            (list(keys),),
        )
        return {row["key"]: row["value"] for row in rows}
