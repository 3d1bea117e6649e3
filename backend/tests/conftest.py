"""Shared fixtures for copy-trader tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import time

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from models.database import Base

TRADER = "0x1111111111111111111111111111111111111111"
FOLLOWER = "0x2222222222222222222222222222222222222222"


async def build_session_factory(tmp_path: Path, name: str = "copytrader_test.db"):
    """Fresh on-disk SQLite database with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / name}")
    session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, session_factory


# ---------------------------------------------------------------------------
# Raw Data API payload fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now_ts() -> int:
    return int(time.time())


@pytest.fixture
def make_raw_activity(now_ts):
    """Factory for Data API /activity rows (camelCase, as the feed sends them)."""

    def _make(**overrides):
        row = {
            "proxyWallet": TRADER,
            "timestamp": now_ts,
            "conditionId": "c1",
            "type": "TRADE",
            "size": 20,
            "usdcSize": 10.0,
            "transactionHash": "0x1",
            "price": 0.5,
            "asset": "token-yes-1",
            "side": "BUY",
            "outcomeIndex": 0,
            "title": "Will it rain in Paris tomorrow?",
            "slug": "rain-paris",
            "icon": "https://example.invalid/icon.png",
            "eventSlug": "paris-weather",
            "outcome": "Yes",
            "name": "whale",
            "pseudonym": "Quiet-Whale",
            "bio": "",
            "profileImage": "",
            "profileImageOptimized": "",
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_raw_position():
    """Factory for Data API /positions rows."""

    def _make(**overrides):
        row = {
            "proxyWallet": TRADER,
            "asset": "token-yes-1",
            "conditionId": "c1",
            "size": 100.0,
            "avgPrice": 0.45,
            "initialValue": 45.0,
            "currentValue": 50.0,
            "cashPnl": 5.0,
            "percentPnl": 11.1,
            "totalBought": 45.0,
            "realizedPnl": 0.0,
            "percentRealizedPnl": 0.0,
            "curPrice": 0.5,
            "redeemable": False,
            "mergeable": False,
            "negativeRisk": False,
            "title": "Will it rain in Paris tomorrow?",
            "slug": "rain-paris",
            "icon": "",
            "eventSlug": "paris-weather",
            "outcome": "Yes",
            "outcomeIndex": 0,
            "oppositeOutcome": "No",
            "oppositeAsset": "token-no-1",
            "endDate": "2030-01-01",
        }
        row.update(overrides)
        return row

    return _make
