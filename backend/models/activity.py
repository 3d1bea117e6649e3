from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from utils.validation import coerce_bool, coerce_float, coerce_int, coerce_str


class TradeCondition(str, Enum):
    """Action derived from an activity's type/side at execution time."""

    MERGE = "merge"
    BUY = "buy"
    SELL = "sell"


class Activity(BaseModel):
    """A tracked-wallet trade as persisted in ``user_activities``.

    ``id`` is only known once the record has been read back from the store.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    transaction_hash: str
    proxy_wallet: str = ""
    timestamp: int = 0
    condition_id: str = ""
    type: str = "TRADE"
    size: float = 0.0
    usdc_size: float = 0.0
    price: float = 0.0
    asset: str = ""
    side: str = ""
    outcome_index: int = 0
    title: str = ""
    slug: str = ""
    icon: str = ""
    event_slug: str = ""
    outcome: str = ""
    name: str = ""
    pseudonym: str = ""
    bio: str = ""
    profile_image: str = ""
    profile_image_optimized: str = ""
    bot_executed: bool = False
    bot_executed_time: int = 0

    @classmethod
    def from_data_api_response(
        cls, data: dict, *, timestamp: int, default_wallet: str = ""
    ) -> "Activity":
        """Map a camelCase Data API activity row onto a fresh, unexecuted Activity.

        ``timestamp`` is passed in already normalized to seconds.
        """
        return cls(
            transaction_hash=coerce_str(data.get("transactionHash")),
            proxy_wallet=coerce_str(data.get("proxyWallet"), default_wallet) or default_wallet,
            timestamp=timestamp,
            condition_id=coerce_str(data.get("conditionId")),
            type=coerce_str(data.get("type"), "TRADE") or "TRADE",
            size=coerce_float(data.get("size")),
            usdc_size=coerce_float(data.get("usdcSize")),
            price=coerce_float(data.get("price")),
            asset=coerce_str(data.get("asset")),
            side=coerce_str(data.get("side")),
            outcome_index=coerce_int(data.get("outcomeIndex")),
            title=coerce_str(data.get("title")),
            slug=coerce_str(data.get("slug")),
            icon=coerce_str(data.get("icon")),
            event_slug=coerce_str(data.get("eventSlug")),
            outcome=coerce_str(data.get("outcome")),
            name=coerce_str(data.get("name")),
            pseudonym=coerce_str(data.get("pseudonym")),
            bio=coerce_str(data.get("bio")),
            profile_image=coerce_str(data.get("profileImage")),
            profile_image_optimized=coerce_str(data.get("profileImageOptimized")),
            bot_executed=False,
            bot_executed_time=0,
        )

    def trade_fields(self) -> dict:
        """Columns refreshed on every ingestion (everything but id and execution state)."""
        return self.model_dump(exclude={"id", "bot_executed", "bot_executed_time"})

    def execution_fields(self) -> dict:
        return {
            "bot_executed": self.bot_executed,
            "bot_executed_time": self.bot_executed_time,
        }


class Position(BaseModel):
    """Latest position snapshot for one (wallet, asset, condition) key."""

    model_config = ConfigDict(from_attributes=True)

    proxy_wallet: str = ""
    asset: str
    condition_id: str
    size: float = 0.0
    avg_price: float = 0.0
    initial_value: float = 0.0
    current_value: float = 0.0
    cash_pnl: float = 0.0
    percent_pnl: float = 0.0
    total_bought: float = 0.0
    realized_pnl: float = 0.0
    percent_realized_pnl: float = 0.0
    cur_price: float = 0.0
    redeemable: bool = False
    mergeable: bool = False
    negative_risk: bool = False
    title: str = ""
    slug: str = ""
    icon: str = ""
    event_slug: str = ""
    outcome: str = ""
    outcome_index: int = 0
    opposite_outcome: str = ""
    opposite_asset: str = ""
    end_date: str = ""

    @classmethod
    def from_data_api_response(cls, data: dict, default_wallet: str = "") -> "Position":
        """Parse a Data API ``/positions`` row"""
        return cls(
            proxy_wallet=coerce_str(data.get("proxyWallet"), default_wallet) or default_wallet,
            asset=coerce_str(data.get("asset")),
            condition_id=coerce_str(data.get("conditionId")),
            size=coerce_float(data.get("size")),
            avg_price=coerce_float(data.get("avgPrice")),
            initial_value=coerce_float(data.get("initialValue")),
            current_value=coerce_float(data.get("currentValue")),
            cash_pnl=coerce_float(data.get("cashPnl")),
            percent_pnl=coerce_float(data.get("percentPnl")),
            total_bought=coerce_float(data.get("totalBought")),
            realized_pnl=coerce_float(data.get("realizedPnl")),
            percent_realized_pnl=coerce_float(data.get("percentRealizedPnl")),
            cur_price=coerce_float(data.get("curPrice")),
            redeemable=coerce_bool(data.get("redeemable")),
            mergeable=coerce_bool(data.get("mergeable")),
            negative_risk=coerce_bool(data.get("negativeRisk")),
            title=coerce_str(data.get("title")),
            slug=coerce_str(data.get("slug")),
            icon=coerce_str(data.get("icon")),
            event_slug=coerce_str(data.get("eventSlug")),
            outcome=coerce_str(data.get("outcome")),
            outcome_index=coerce_int(data.get("outcomeIndex")),
            opposite_outcome=coerce_str(data.get("oppositeOutcome")),
            opposite_asset=coerce_str(data.get("oppositeAsset")),
            end_date=coerce_str(data.get("endDate")),
        )
