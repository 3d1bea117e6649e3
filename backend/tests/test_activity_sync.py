import sys
from pathlib import Path
from unittest.mock import AsyncMock

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import httpx
import pytest

from conftest import TRADER, build_session_factory
from models.activity import Activity
from services.activity_store import ActivityStore
from services.activity_sync import ActivitySynchronizer
from services.working_set import WorkingSet


def _data_api(activities=None, positions=None):
    data_api = AsyncMock()
    data_api.get_activities = AsyncMock(return_value=activities if activities is not None else [])
    data_api.get_positions = AsyncMock(return_value=positions if positions is not None else [])
    return data_api


class TestWorkingSet:
    def test_prune_keeps_fresh_or_still_reported_entries(self):
        working_set = WorkingSet(
            [
                Activity(transaction_hash="0xnew", timestamp=1_000),
                Activity(transaction_hash="0xold", timestamp=10),
                Activity(transaction_hash="0xold-reported", timestamp=10),
            ]
        )

        evicted = working_set.prune(cutoff=500, fresh_hashes={"0xold-reported"})

        assert evicted == 1
        assert "0xnew" in working_set
        assert "0xold-reported" in working_set
        assert "0xold" not in working_set
        assert len(working_set) == 2


@pytest.mark.asyncio
async def test_cycle_persists_fresh_trades_and_positions(tmp_path, make_raw_activity, make_raw_position, now_ts):
    engine, session_factory = await build_session_factory(tmp_path)
    try:
        store = ActivityStore(session_factory)
        data_api = _data_api(
            activities={
                "data": [
                    make_raw_activity(),
                    make_raw_activity(transactionHash="0xreward", type="REWARD"),
                    make_raw_activity(transactionHash="0xstale", timestamp=now_ts - 48 * 3600),
                ]
            },
            positions=[make_raw_position(), make_raw_position(conditionId="")],
        )
        synchronizer = ActivitySynchronizer(store, data_api, user_address=TRADER, freshness_hours=24)
        await synchronizer.init()

        new_count = await synchronizer.run_cycle(now=now_ts)

        assert new_count == 1
        data_api.get_activities.assert_awaited_once_with(TRADER)
        data_api.get_positions.assert_awaited_once_with(TRADER)
        stored = await store.load_all()
        assert [a.transaction_hash for a in stored] == ["0x1"]
        assert synchronizer.working_set.get("0x1").id == stored[0].id
        positions = await store.get_positions(TRADER)
        assert len(positions) == 1
        assert positions[0].condition_id == "c1"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_repeated_cycles_do_not_reset_attempts(tmp_path, make_raw_activity, now_ts):
    engine, session_factory = await build_session_factory(tmp_path)
    try:
        store = ActivityStore(session_factory)
        data_api = _data_api(activities=[make_raw_activity()])
        synchronizer = ActivitySynchronizer(store, data_api, user_address=TRADER, freshness_hours=24)
        await synchronizer.init()

        assert await synchronizer.run_cycle(now=now_ts) == 1
        stored = await store.get_by_hash("0x1")
        await store.increment_attempts(stored.id, retry_limit=3)
        await store.increment_attempts(stored.id, retry_limit=3)

        assert await synchronizer.run_cycle(now=now_ts) == 0
        assert await synchronizer.run_cycle(now=now_ts) == 0

        after = await store.get_by_hash("0x1")
        assert after.bot_executed_time == 2
        assert after.bot_executed is False
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_restart_recovers_working_set_from_store(tmp_path, make_raw_activity, now_ts):
    engine, session_factory = await build_session_factory(tmp_path)
    try:
        store = ActivityStore(session_factory)
        first = ActivitySynchronizer(store, _data_api(activities=[make_raw_activity()]), user_address=TRADER)
        await first.init()
        await first.run_cycle(now=now_ts)

        restarted = ActivitySynchronizer(store, _data_api(activities=[make_raw_activity()]), user_address=TRADER)
        await restarted.init()

        assert "0x1" in restarted.working_set
        assert await restarted.run_cycle(now=now_ts) == 0
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_evicted_trade_stays_pending_in_store(tmp_path, make_raw_activity, now_ts):
    engine, session_factory = await build_session_factory(tmp_path)
    try:
        store = ActivityStore(session_factory)
        raw = make_raw_activity()
        synchronizer = ActivitySynchronizer(store, _data_api(activities=[raw]), user_address=TRADER, freshness_hours=1)
        await synchronizer.init()
        await synchronizer.run_cycle(now=now_ts)
        assert "0x1" in synchronizer.working_set

        # Two hours later the trade is past the window and no longer fresh.
        synchronizer.data_api = _data_api(activities=[raw])
        await synchronizer.run_cycle(now=now_ts + 2 * 3600)

        assert "0x1" not in synchronizer.working_set
        assert [a.transaction_hash for a in await store.find_pending(3)] == ["0x1"]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_fetch_failure_propagates_without_writes(tmp_path, now_ts):
    engine, session_factory = await build_session_factory(tmp_path)
    try:
        store = ActivityStore(session_factory)
        data_api = _data_api()
        data_api.get_activities = AsyncMock(side_effect=httpx.ConnectError("boom"))
        synchronizer = ActivitySynchronizer(store, data_api, user_address=TRADER)

        with pytest.raises(httpx.ConnectError):
            await synchronizer.run_cycle(now=now_ts)

        assert await store.load_all() == []
    finally:
        await engine.dispose()
