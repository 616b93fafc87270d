"""
Slot Lock Sweep Job - reclaims orphaned slot locks.

A lock is orphaned when the request that took it died between acquire and
persist: it is older than SLOT_LOCK_TTL_MINUTES and no pending/confirmed
booking owns it. Acquire already reclaims an orphan on the exact slot it
wants; this job clears the rest so they stop hiding slots from browsers.

Usage:
    python -m app.jobs.worker slot_lock_sweep
"""

import asyncio
import time

from app.config import settings
from app.db.helpers import DatabaseError
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger
from app.services.scheduling.slot_lock_store import SlotLockStore

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 60


async def run_slot_lock_sweep(store: SlotLockStore | None = None) -> dict:
    """Run one sweep and return its metrics."""
    store = store or SlotLockStore()
    started = time.perf_counter()
    ttl = settings.SLOT_LOCK_TTL_MINUTES

    removed = await store.sweep_expired(ttl)

    metrics = {
        "removed": removed,
        "ttl_minutes": ttl,
        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
    }
    if removed:
        logger.warning("Orphaned slot locks removed", **metrics)
    return metrics


async def start_slot_lock_sweep_scheduler():
    """Sweep every SLOT_LOCK_SWEEP_INTERVAL_MINUTES until cancelled."""
    interval = settings.SLOT_LOCK_SWEEP_INTERVAL_MINUTES
    logger.info("Starting slot lock sweep scheduler", interval_minutes=interval)

    await db_pool.initialize()
    try:
        while True:
            try:
                metrics = await run_slot_lock_sweep()
                logger.info("Slot lock sweep cycle completed", **metrics)
                await asyncio.sleep(interval * 60)

            except DatabaseError as e:
                logger.error("Error in slot lock sweep scheduler", error=str(e), error_type=type(e).__name__)
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
    finally:
        await db_pool.close()
