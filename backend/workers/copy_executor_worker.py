"""Copy executor worker: mirrors pending trades from the database."""

from __future__ import annotations

import asyncio
import os
import sys

_BACKEND = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND not in sys.path:
    sys.path.insert(0, _BACKEND)
if os.getcwd() != _BACKEND:
    os.chdir(_BACKEND)

from config import settings
from main import build_executor_runner
from models.database import init_database
from services.activity_store import ActivityStore
from services.data_api import DataApiClient
from utils.logger import get_logger, setup_logging

logger = get_logger("copy_executor_worker")


async def main() -> None:
    setup_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.LOG_JSON,
        log_file=settings.LOG_FILE_PATH,
    )
    settings.require_copy_targets()
    await init_database()
    logger.info("Database initialized")

    data_api = DataApiClient()
    _, runner = build_executor_runner(ActivityStore(), data_api)
    try:
        await runner.run_forever()
    except asyncio.CancelledError:
        logger.info("Copy executor worker shutting down")
    finally:
        await data_api.close()


if __name__ == "__main__":
    asyncio.run(main())
