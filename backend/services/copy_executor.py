"""
Copy-Execution Engine.

Polls the store for pending trades and mirrors each one for the follower.
Every outcome ends in exactly one store write: ``mark_executed`` when the
trade is done (filled, partially filled, skipped or unsupported) or
``increment_attempts`` when it should be retried, which turns terminal once
the retry limit is reached.
"""

import asyncio
from typing import Optional

from config import settings
from models.activity import Activity, Position, TradeCondition
from services.activity_store import ActivityStore
from services.data_api import DataApiClient
from services.normalizer import classify_trade, parse_positions
from services.order_client import OrderClient
from utils.logger import executor_logger as logger


def _find_position(positions: list[Position], trade: Activity) -> Optional[Position]:
    """Position in the traded outcome token, else any position in the same market."""
    for position in positions:
        if trade.asset and position.asset == trade.asset:
            return position
    for position in positions:
        if position.condition_id == trade.condition_id:
            return position
    return None


class CopyExecutionEngine:
    def __init__(
        self,
        store: ActivityStore,
        data_api: DataApiClient,
        order_client: OrderClient,
        user_address: Optional[str] = None,
        proxy_wallet: Optional[str] = None,
        retry_limit: Optional[int] = None,
    ):
        self.store = store
        self.data_api = data_api
        self.order_client = order_client
        self.user_address = user_address or settings.USER_ADDRESS
        self.proxy_wallet = proxy_wallet or settings.PROXY_WALLET
        self.retry_limit = retry_limit or settings.RETRY_LIMIT

    async def run_cycle(self) -> int:
        """Process every pending trade once. Returns the batch size (0 means idle)."""
        pending = await self.store.find_pending(self.retry_limit)
        if not pending:
            logger.debug("Waiting for new transactions")
            return 0

        logger.info("Trades to copy", count=len(pending))
        for trade in pending:
            await self._process_trade(trade)
        return len(pending)

    async def _process_trade(self, trade: Activity) -> None:
        log = logger.with_context(
            transaction_hash=trade.transaction_hash,
            activity_id=trade.id,
        )
        log.info(
            "Copying trade",
            type=trade.type,
            side=trade.side,
            condition_id=trade.condition_id,
            usdc_size=trade.usdc_size,
            price=trade.price,
        )

        try:
            raw_my_positions, raw_user_positions, my_balance, user_balance = await asyncio.gather(
                self.data_api.get_positions(self.proxy_wallet),
                self.data_api.get_positions(self.user_address),
                self.data_api.get_usdc_balance(self.proxy_wallet),
                self.data_api.get_usdc_balance(self.user_address),
            )
            my_positions = parse_positions(raw_my_positions, default_wallet=self.proxy_wallet)
            user_positions = parse_positions(raw_user_positions, default_wallet=self.user_address)
            await self.store.upsert_positions(my_positions)

            my_position = _find_position(my_positions, trade)
            user_position = _find_position(user_positions, trade)
            log.info("Balances", my_balance=my_balance, user_balance=user_balance)

            condition = classify_trade(trade)
            if condition is None:
                log.warning("Unsupported trade, marking executed", type=trade.type, side=trade.side)
                await self.store.mark_executed(trade.id)
                return

            if condition == TradeCondition.BUY and my_balance <= 0:
                log.warning("Insufficient balance, deferring buy", my_balance=my_balance)
                await self.store.increment_attempts(trade.id, self.retry_limit)
                return

            result = await self.order_client.submit_order(
                condition,
                my_position,
                user_position,
                trade,
                my_balance,
                user_balance,
            )
            await self.store.mark_executed(trade.id)
            log.info(
                "Trade copied",
                condition=condition.value,
                status=result.status,
                filled=result.filled,
                reason=result.reason or None,
            )
        except Exception as e:
            log.exception("Trade copy failed", error=str(e), error_type=type(e).__name__)
            await self.store.increment_attempts(trade.id, self.retry_limit)
