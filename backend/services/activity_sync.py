"""
Activity Synchronizer.

Each cycle pulls the tracked trader's activity and position feeds, keeps the
fresh well-formed trades, and writes them through to the store. Execution
state is never touched here: the upsert only initializes it on first insert.
"""

import asyncio
from typing import Optional

from config import settings
from services.activity_store import ActivityStore
from services.data_api import DataApiClient
from services.normalizer import parse_activities, parse_positions
from services.working_set import WorkingSet
from utils.logger import sync_logger as logger
from utils.utcnow import unix_hours_ago


class ActivitySynchronizer:
    def __init__(
        self,
        store: ActivityStore,
        data_api: DataApiClient,
        user_address: Optional[str] = None,
        freshness_hours: Optional[float] = None,
    ):
        self.store = store
        self.data_api = data_api
        self.user_address = user_address or settings.USER_ADDRESS
        self.freshness_hours = freshness_hours or settings.TOO_OLD_TIMESTAMP
        self.working_set = WorkingSet()

    async def init(self) -> None:
        """Seed the working set from every persisted activity."""
        self.working_set.load(await self.store.load_all())
        logger.info("Working set loaded", activities=len(self.working_set))

    async def run_cycle(self, now: Optional[int] = None) -> int:
        """One ingestion pass. Returns how many activities were newly cached.

        Fetch or store failures propagate; the caller's loop logs them and
        retries on the next interval.
        """
        cutoff = unix_hours_ago(self.freshness_hours, now)

        raw_activities, raw_positions = await asyncio.gather(
            self.data_api.get_activities(self.user_address),
            self.data_api.get_positions(self.user_address),
        )

        activities = parse_activities(raw_activities, cutoff, default_wallet=self.user_address)
        fresh_hashes = {activity.transaction_hash for activity in activities}

        evicted = self.working_set.prune(cutoff, fresh_hashes)
        if evicted:
            logger.debug("Pruned working set", evicted=evicted, remaining=len(self.working_set))

        new_count = 0
        for activity in activities:
            await self.store.upsert_activity(activity)
            if activity.transaction_hash in self.working_set:
                continue

            stored = await self.store.get_by_hash(activity.transaction_hash)
            if stored is None:
                continue
            self.working_set.add(stored)
            new_count += 1

        if new_count:
            logger.info("New trades detected", count=new_count, trader=self.user_address)

        positions = parse_positions(raw_positions, default_wallet=self.user_address)
        await self.store.upsert_positions(positions)

        return new_count
