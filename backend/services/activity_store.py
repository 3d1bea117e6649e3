"""
Durable store for tracked activities and position snapshots.

Both service loops share state only through this module. Every write is a
single statement (conditional upsert, atomic increment, flag set), so the
synchronizer and the executor can run in separate processes against the
same SQLite file without any extra locking.
"""

from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_upsert

from models.activity import Activity, Position
from models.database import AsyncSessionLocal, UserActivity, UserPosition
from utils.logger import store_logger as logger
from utils.utcnow import utcnow

_POSITION_KEY = ("proxy_wallet", "asset", "condition_id")


class ActivityStore:
    """Async access to ``user_activities`` and ``user_positions``."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or AsyncSessionLocal

    # ==================== ACTIVITIES ====================

    async def load_all(self) -> list[Activity]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserActivity).order_by(UserActivity.id))
            return [Activity.model_validate(row) for row in result.scalars().all()]

    async def find_pending(self, retry_limit: int) -> list[Activity]:
        """Trades that are neither terminal nor out of attempts, oldest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserActivity)
                .where(
                    UserActivity.type == "TRADE",
                    UserActivity.bot_executed == False,  # noqa: E712
                    UserActivity.bot_executed_time < retry_limit,
                )
                .order_by(UserActivity.id)
            )
            return [Activity.model_validate(row) for row in result.scalars().all()]

    async def get_by_hash(self, transaction_hash: str) -> Optional[Activity]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserActivity).where(UserActivity.transaction_hash == transaction_hash)
            )
            row = result.scalar_one_or_none()
            return Activity.model_validate(row) if row is not None else None

    async def upsert_activity(self, activity: Activity) -> None:
        """Insert or refresh an activity by transaction hash.

        Execution state is only written when the row is first inserted; a
        re-observed trade keeps its attempt counter and terminal flag.
        """
        now = utcnow()
        trade_fields = activity.trade_fields()

        async with self._session_factory() as session:
            stmt = sqlite_upsert(UserActivity).values(
                **trade_fields,
                **activity.execution_fields(),
                created_at=now,
                updated_at=now,
            )
            set_ = {name: stmt.excluded[name] for name in trade_fields if name != "transaction_hash"}
            set_["updated_at"] = now
            stmt = stmt.on_conflict_do_update(
                index_elements=["transaction_hash"],
                set_=set_,
            )
            await session.execute(stmt)
            await session.commit()

    async def increment_attempts(self, activity_id: int, retry_limit: int) -> Optional[Activity]:
        """Atomically bump the attempt counter; reaching ``retry_limit`` makes the row terminal."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(UserActivity)
                .where(UserActivity.id == activity_id)
                .values(
                    bot_executed_time=UserActivity.bot_executed_time + 1,
                    bot_executed=or_(
                        UserActivity.bot_executed,
                        UserActivity.bot_executed_time + 1 >= retry_limit,
                    ),
                    updated_at=utcnow(),
                )
                .returning(UserActivity.id)
                .execution_options(synchronize_session=False)
            )
            updated_id = result.scalar_one_or_none()
            await session.commit()

            if updated_id is None:
                logger.warning("Attempt increment matched no activity", activity_id=activity_id)
                return None

            row = await session.get(UserActivity, updated_id, populate_existing=True)
            updated = Activity.model_validate(row)

        if updated.bot_executed:
            logger.warning(
                "Retry limit reached, activity is now terminal",
                activity_id=activity_id,
                transaction_hash=updated.transaction_hash,
                attempts=updated.bot_executed_time,
            )
        return updated

    async def mark_executed(self, activity_id: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(UserActivity)
                .where(UserActivity.id == activity_id)
                .values(bot_executed=True, updated_at=utcnow())
            )
            await session.commit()

    # ==================== POSITIONS ====================

    async def upsert_positions(self, positions: list[Position]) -> int:
        """Overwrite the stored snapshot for each position key."""
        if not positions:
            return 0

        now = utcnow()
        async with self._session_factory() as session:
            for position in positions:
                values = position.model_dump()
                stmt = sqlite_upsert(UserPosition).values(**values, updated_at=now)
                set_ = {name: stmt.excluded[name] for name in values if name not in _POSITION_KEY}
                set_["updated_at"] = now
                stmt = stmt.on_conflict_do_update(
                    index_elements=list(_POSITION_KEY),
                    set_=set_,
                )
                await session.execute(stmt)
            await session.commit()

        return len(positions)

    async def get_positions(self, proxy_wallet: str) -> list[Position]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserPosition)
                .where(UserPosition.proxy_wallet == proxy_wallet)
                .order_by(UserPosition.id)
            )
            return [Position.model_validate(row) for row in result.scalars().all()]
