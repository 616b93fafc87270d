"""
Slot lock ledger.

One row per in-flight or committed booking, unique on (date, time). The
unique index is the only synchronisation primitive between concurrent
requests: every write below is a single statement that either succeeds or is
rejected by the index, so there is no read-then-write gap.
"""

from datetime import date

from app.db.helpers import UniqueViolationError, execute_query, fetch_all, with_db_retry
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ACTIVE_BOOKING_STATUSES = ("pending", "confirmed")

# Orphan = older than the TTL and not owned by an active booking
_ORPHAN_CONDITION = """
    created_at < NOW() - make_interval(mins => %s)
    AND NOT EXISTS (
        SELECT 1 FROM bookings b
        WHERE b.id = slot_locks.id AND b.status = ANY(%s)
    )
"""


class SlotLockStore:
    """Postgres-backed slot locks."""

    def __init__(self, orphan_ttl_minutes: int | None = None):
        self.orphan_ttl_minutes = orphan_ttl_minutes

    async def acquire(self, booking_id: str, scheduled_date: date, scheduled_time: str) -> bool:
        """Claim a slot. False means another booking holds it."""
        if self.orphan_ttl_minutes:
            await self._reclaim_orphan(scheduled_date, scheduled_time)

        inserted = await execute_query(
            """
            INSERT INTO slot_locks (id, scheduled_date, scheduled_time, created_at)
            VALUES (%s, %s, %s, NOW())
            ON CONFLICT DO NOTHING
            """,
            (booking_id, scheduled_date, scheduled_time),
        )

        acquired = inserted == 1
        logger.info(
            "Slot lock acquired" if acquired else "Slot lock conflict",
            booking_id=booking_id,
            date=scheduled_date.isoformat(),
            time=scheduled_time,
        )
        return acquired

    async def move(self, booking_id: str, new_date: date, new_time: str) -> bool:
        """
        Point the booking's lock at a new slot, freeing the old one in the same statement.

        Creates the lock if the booking has none. False means the new slot is held.
        """
        try:
            await execute_query(
                """
                INSERT INTO slot_locks (id, scheduled_date, scheduled_time, created_at)
                VALUES (%s, %s, %s, NOW())
                ON CONFLICT (id) DO UPDATE
                SET scheduled_date = EXCLUDED.scheduled_date,
                    scheduled_time = EXCLUDED.scheduled_time,
                    created_at = NOW()
                """,
                (booking_id, new_date, new_time),
            )
        except UniqueViolationError:
            logger.info(
                "Slot lock move conflict",
                booking_id=booking_id,
                date=new_date.isoformat(),
                time=new_time,
            )
            return False

        logger.info("Slot lock moved", booking_id=booking_id, date=new_date.isoformat(), time=new_time)
        return True

    async def release(self, booking_id: str) -> None:
        """Drop the booking's lock; no-op when it has none."""
        deleted = await execute_query("DELETE FROM slot_locks WHERE id = %s", (booking_id,))
        logger.info("Slot lock released", booking_id=booking_id, existed=deleted > 0)

    @with_db_retry(max_retries=2, base_delay=0.05)
    async def list_locked(self, scheduled_date: date) -> set[str]:
        rows = await fetch_all(
            "SELECT scheduled_time FROM slot_locks WHERE scheduled_date = %s",
            (scheduled_date,),
        )
        return {row["scheduled_time"] for row in rows}

    async def _reclaim_orphan(self, scheduled_date: date, scheduled_time: str) -> None:
        reclaimed = await execute_query(
            f"""
            DELETE FROM slot_locks
            WHERE scheduled_date = %s AND scheduled_time = %s AND {_ORPHAN_CONDITION}
            """,
            (scheduled_date, scheduled_time, self.orphan_ttl_minutes, list(ACTIVE_BOOKING_STATUSES)),
        )
        if reclaimed:
            logger.warning(
                "Reclaimed orphaned slot lock",
                date=scheduled_date.isoformat(),
                time=scheduled_time,
            )

    async def sweep_expired(self, ttl_minutes: int) -> int:
        """Delete every orphaned lock older than ttl_minutes. Returns the number removed."""
        removed = await execute_query(
            f"DELETE FROM slot_locks WHERE {_ORPHAN_CONDITION}",
            (ttl_minutes, list(ACTIVE_BOOKING_STATUSES)),
        )
        logger.info("Slot lock sweep finished", removed=removed, ttl_minutes=ttl_minutes)
        return removed
