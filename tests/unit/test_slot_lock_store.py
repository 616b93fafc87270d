"""
Tests for the slot lock store's single-statement writes.
"""

from unittest.mock import AsyncMock, patch

import pytest

from app.db.helpers import UniqueViolationError
from app.services.scheduling.slot_lock_store import SlotLockStore
from tests.conftest import THURSDAY, TUESDAY

MODULE = "app.services.scheduling.slot_lock_store"


@pytest.mark.asyncio
async def test_acquire_is_insert_on_conflict_do_nothing():
    with patch(f"{MODULE}.execute_query", new=AsyncMock(return_value=1)) as execute:
        acquired = await SlotLockStore().acquire("b-1", TUESDAY, "14:00")

    assert acquired is True
    query, params = execute.await_args.args
    assert "ON CONFLICT DO NOTHING" in query
    assert params == ("b-1", TUESDAY, "14:00")


@pytest.mark.asyncio
async def test_acquire_conflict_when_no_row_inserted():
    with patch(f"{MODULE}.execute_query", new=AsyncMock(return_value=0)):
        assert await SlotLockStore().acquire("b-2", TUESDAY, "14:00") is False


@pytest.mark.asyncio
async def test_acquire_reclaims_orphan_first_when_ttl_set():
    with patch(f"{MODULE}.execute_query", new=AsyncMock(side_effect=[1, 1])) as execute:
        assert await SlotLockStore(orphan_ttl_minutes=15).acquire("b-3", TUESDAY, "14:00") is True

    reclaim_query, reclaim_params = execute.await_args_list[0].args
    assert reclaim_query.strip().startswith("DELETE FROM slot_locks")
    assert "NOT EXISTS" in reclaim_query
    assert reclaim_params == (TUESDAY, "14:00", 15, ["pending", "confirmed"])


@pytest.mark.asyncio
async def test_move_is_upsert_on_id():
    with patch(f"{MODULE}.execute_query", new=AsyncMock(return_value=1)) as execute:
        assert await SlotLockStore().move("b-1", THURSDAY, "10:00") is True

    query, params = execute.await_args.args
    assert "ON CONFLICT (id) DO UPDATE" in query
    assert params == ("b-1", THURSDAY, "10:00")


@pytest.mark.asyncio
async def test_move_conflict_on_unique_violation():
    violation = UniqueViolationError("duplicate key", constraint="uidx_slot_locks_date_time")
    with patch(f"{MODULE}.execute_query", new=AsyncMock(side_effect=violation)):
        assert await SlotLockStore().move("b-1", THURSDAY, "10:00") is False


@pytest.mark.asyncio
async def test_release_is_idempotent():
    with patch(f"{MODULE}.execute_query", new=AsyncMock(return_value=0)):
        await SlotLockStore().release("missing")


@pytest.mark.asyncio
async def test_list_locked_returns_times():
    rows = [{"scheduled_time": "09:00"}, {"scheduled_time": "14:30"}]
    with patch(f"{MODULE}.fetch_all", new=AsyncMock(return_value=rows)):
        assert await SlotLockStore().list_locked(TUESDAY) == {"09:00", "14:30"}


@pytest.mark.asyncio
async def test_sweep_expired_returns_removed_count():
    with patch(f"{MODULE}.execute_query", new=AsyncMock(return_value=3)) as execute:
        assert await SlotLockStore().sweep_expired(15) == 3

    assert execute.await_args.args[1] == (15, ["pending", "confirmed"])
