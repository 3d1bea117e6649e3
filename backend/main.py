"""Copy-trading service entry point.

Runs the activity synchronizer and the copy-execution engine side by side
in one event loop. They share state only through the database, so either can
also run on its own (see ``workers/``).

Run from backend/ with:
    python main.py
"""

import asyncio

from config import settings
from models.database import init_database
from services.activity_store import ActivityStore
from services.activity_sync import ActivitySynchronizer
from services.copy_executor import CopyExecutionEngine
from services.data_api import DataApiClient
from services.order_client import OrderClient
from utils.cycle_runner import CycleRunner
from utils.logger import get_logger, setup_logging

logger = get_logger("main")


def build_sync_runner(store: ActivityStore, data_api: DataApiClient) -> tuple[ActivitySynchronizer, CycleRunner]:
    synchronizer = ActivitySynchronizer(store, data_api)
    runner = CycleRunner("activity_sync", synchronizer.run_cycle, settings.FETCH_INTERVAL)
    return synchronizer, runner


def build_executor_runner(store: ActivityStore, data_api: DataApiClient) -> tuple[CopyExecutionEngine, CycleRunner]:
    engine = CopyExecutionEngine(store, data_api, OrderClient())
    runner = CycleRunner(
        "copy_executor",
        engine.run_cycle,
        settings.EXECUTOR_IDLE_INTERVAL,
        idle_only=True,
    )
    return engine, runner


async def main() -> None:
    setup_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.LOG_JSON,
        log_file=settings.LOG_FILE_PATH,
    )
    settings.require_copy_targets()

    await init_database()
    logger.info(
        "Copy trader starting",
        trader=settings.USER_ADDRESS,
        follower=settings.PROXY_WALLET,
        retry_limit=settings.RETRY_LIMIT,
        freshness_hours=settings.TOO_OLD_TIMESTAMP,
    )

    store = ActivityStore()
    data_api = DataApiClient()
    synchronizer, sync_runner = build_sync_runner(store, data_api)
    _, executor_runner = build_executor_runner(store, data_api)

    await synchronizer.init()
    try:
        await asyncio.gather(
            sync_runner.run_forever(),
            executor_runner.run_forever(),
        )
    except asyncio.CancelledError:
        logger.info("Copy trader shutting down")
    finally:
        await data_api.close()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
