from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    Boolean,
    DateTime,
    Text,
    Index,
    UniqueConstraint,
    event,
)
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from utils.utcnow import utcnow
from pathlib import Path
import logging

from config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


# ==================== TRACKED ACTIVITY ====================


class UserActivity(Base):
    """One observed trade/merge event of the tracked wallet, keyed by tx hash.

    ``bot_executed`` / ``bot_executed_time`` are the copy-execution state:
    they are written on first insert only and afterwards changed solely by
    the executor (atomic increment, terminal flag).
    """

    __tablename__ = "user_activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_hash = Column(String, nullable=False)

    # Trade facts
    proxy_wallet = Column(String, nullable=False, default="")
    timestamp = Column(Integer, nullable=False, default=0)  # unix seconds
    condition_id = Column(String, nullable=False, default="")
    type = Column(String, nullable=False, default="TRADE")  # TRADE, MERGE, ...
    size = Column(Float, nullable=False, default=0.0)
    usdc_size = Column(Float, nullable=False, default=0.0)
    price = Column(Float, nullable=False, default=0.0)
    asset = Column(String, nullable=False, default="")  # CLOB token id
    side = Column(String, nullable=False, default="")  # BUY, SELL, MERGE or empty
    outcome_index = Column(Integer, nullable=False, default=0)

    # Presentation metadata
    title = Column(Text, default="")
    slug = Column(String, default="")
    icon = Column(String, default="")
    event_slug = Column(String, default="")
    outcome = Column(String, default="")
    name = Column(String, default="")
    pseudonym = Column(String, default="")
    bio = Column(Text, default="")
    profile_image = Column(String, default="")
    profile_image_optimized = Column(String, default="")

    # Copy-execution state
    bot_executed = Column(Boolean, nullable=False, default=False)
    bot_executed_time = Column(Integer, nullable=False, default=0)  # attempt counter

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("transaction_hash", name="uq_activity_tx_hash"),
        Index("idx_activity_pending", "type", "bot_executed", "bot_executed_time"),
        Index("idx_activity_timestamp", "timestamp"),
    )


class UserPosition(Base):
    """Latest position snapshot for one wallet and outcome token."""

    __tablename__ = "user_positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    proxy_wallet = Column(String, nullable=False)
    asset = Column(String, nullable=False)
    condition_id = Column(String, nullable=False)

    size = Column(Float, default=0.0)
    avg_price = Column(Float, default=0.0)
    initial_value = Column(Float, default=0.0)
    current_value = Column(Float, default=0.0)
    cash_pnl = Column(Float, default=0.0)
    percent_pnl = Column(Float, default=0.0)
    total_bought = Column(Float, default=0.0)
    realized_pnl = Column(Float, default=0.0)
    percent_realized_pnl = Column(Float, default=0.0)
    cur_price = Column(Float, default=0.0)
    redeemable = Column(Boolean, default=False)
    mergeable = Column(Boolean, default=False)
    negative_risk = Column(Boolean, default=False)

    title = Column(Text, default="")
    slug = Column(String, default="")
    icon = Column(String, default="")
    event_slug = Column(String, default="")
    outcome = Column(String, default="")
    outcome_index = Column(Integer, default=0)
    opposite_outcome = Column(String, default="")
    opposite_asset = Column(String, default="")
    end_date = Column(String, default="")

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("proxy_wallet", "asset", "condition_id", name="uq_position_key"),
        Index("idx_position_condition", "condition_id"),
    )


# ==================== DATABASE SETUP ====================

# SQLite-specific: improve concurrency (WAL + busy_timeout applied in _set_sqlite_pragma)
_engine_kw: dict = {"echo": False}
if "sqlite" in settings.DATABASE_URL:
    _engine_kw["connect_args"] = {"timeout": 30}  # Wait up to 30s when DB is locked

async_engine = create_async_engine(settings.DATABASE_URL, **_engine_kw)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite for concurrent access from both loops (WAL mode, busy timeout)."""
    if "sqlite" not in settings.DATABASE_URL:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")  # Allow concurrent reads during writes
    cursor.execute("PRAGMA busy_timeout=30000")  # Wait up to 30s when locked (ms)
    cursor.close()


# Apply pragmas on each new SQLite connection
event.listens_for(async_engine.sync_engine, "connect")(_set_sqlite_pragma)

AsyncSessionLocal = sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


def _ensure_sqlite_directory(url: str) -> None:
    for prefix in ("sqlite+aiosqlite:///", "sqlite:///"):
        if url.startswith(prefix):
            path_part = url[len(prefix) :]
            if path_part and path_part != ":memory:":
                Path(path_part).parent.mkdir(parents=True, exist_ok=True)
            return


async def init_database():
    """Create the activity and position tables if they do not exist yet."""
    _ensure_sqlite_directory(str(async_engine.url))
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready (%s)", async_engine.url.render_as_string(hide_password=True))
