"""
Mirrored order placement on the Polymarket CLOB.

Sizing follows the tracked trader proportionally: a buy spends the same share
of the follower's cash as the trade spent of the trader's, a sell sheds the
same share of the follower's position as the trader shed of theirs. Orders
are FOK market orders walked level by level against the live book.

py-clob-client is synchronous, so every SDK call runs in a worker thread.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from config import settings
from models.activity import Activity, Position, TradeCondition
from utils.logger import order_logger as logger
from utils.validation import coerce_float

# Remaining quantity below this is treated as fully filled.
_DUST = 1e-6


class TradingNotConfiguredError(RuntimeError):
    """Raised when an order must be placed but signing credentials are missing."""


class OrderSubmissionError(RuntimeError):
    """Raised when the exchange keeps rejecting a mirrored order."""


@dataclass
class OrderResult:
    status: str  # filled | partial | skipped
    filled: float = 0.0
    reason: str = ""
    order_ids: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"


def _skipped(reason: str) -> OrderResult:
    return OrderResult(status="skipped", reason=reason)


def _level(entry: Any) -> tuple[float, float]:
    """(price, size) of an order book level; SDK objects and plain dicts both work."""
    if isinstance(entry, dict):
        return coerce_float(entry.get("price")), coerce_float(entry.get("size"))
    return coerce_float(getattr(entry, "price", None)), coerce_float(getattr(entry, "size", None))


def _book_side(book: Any, name: str) -> list:
    if isinstance(book, dict):
        return list(book.get(name) or [])
    return list(getattr(book, name, None) or [])


class OrderClient:
    """Places the follower's copy of a classified trade."""

    def __init__(
        self,
        clob_client: Any = None,
        slippage_tolerance: Optional[float] = None,
        retry_limit: Optional[int] = None,
    ):
        self._client = clob_client
        self.slippage_tolerance = (
            settings.PRICE_SLIPPAGE_TOLERANCE if slippage_tolerance is None else slippage_tolerance
        )
        self.retry_limit = retry_limit or settings.order_retry_limit
        self._init_lock = asyncio.Lock()

    async def _get_client(self):
        if self._client is not None:
            return self._client

        async with self._init_lock:
            if self._client is None:
                self._client = await asyncio.to_thread(self._build_client)
        return self._client

    def _build_client(self):
        if not settings.PRIVATE_KEY:
            raise TradingNotConfiguredError("PRIVATE_KEY is not set; cannot sign orders")

        from py_clob_client.client import ClobClient
        from py_clob_client.clob_types import ApiCreds

        creds = None
        if settings.CLOB_API_KEY and settings.CLOB_API_SECRET and settings.CLOB_API_PASSPHRASE:
            creds = ApiCreds(
                api_key=settings.CLOB_API_KEY,
                api_secret=settings.CLOB_API_SECRET,
                api_passphrase=settings.CLOB_API_PASSPHRASE,
            )

        client = ClobClient(
            host=settings.CLOB_API_URL,
            key=settings.PRIVATE_KEY,
            chain_id=settings.CHAIN_ID,
            creds=creds,
            signature_type=settings.SIGNATURE_TYPE,
            funder=settings.PROXY_WALLET or None,
        )
        if creds is None:
            # No stored L2 credentials: derive them from the signing key.
            client.set_api_creds(client.create_or_derive_api_creds())

        logger.info(
            "CLOB client initialized",
            host=settings.CLOB_API_URL,
            funder=settings.PROXY_WALLET,
            signature_type=settings.SIGNATURE_TYPE,
        )
        return client

    async def submit_order(
        self,
        condition: TradeCondition,
        my_position: Optional[Position],
        user_position: Optional[Position],
        trade: Activity,
        my_balance: float,
        user_balance: float,
    ) -> OrderResult:
        """Mirror ``trade`` for the follower.

        Returns a filled, partial or skipped result. Raises OrderSubmissionError
        when the exchange rejects ``retry_limit`` consecutive posts before any
        fill; after a fill the remainder is abandoned as ``partial``.
        """
        if condition == TradeCondition.BUY:
            return await self._mirror_buy(trade, my_balance, user_balance)
        if condition == TradeCondition.SELL:
            return await self._mirror_sell(trade, my_position, user_position)
        if condition == TradeCondition.MERGE:
            return await self._mirror_merge(trade, my_position)
        raise ValueError(f"Unsupported trade condition: {condition!r}")

    # ==================== SIZING ====================

    async def _mirror_buy(self, trade: Activity, my_balance: float, user_balance: float) -> OrderResult:
        denominator = user_balance + trade.usdc_size
        if denominator <= 0:
            return _skipped("trader balance unknown")

        ratio = my_balance / denominator
        amount = trade.usdc_size * ratio
        logger.info(
            "Mirroring buy",
            transaction_hash=trade.transaction_hash,
            ratio=round(ratio, 6),
            usdc_amount=round(amount, 6),
        )
        return await self._walk_book(trade, TradeCondition.BUY, amount)

    async def _mirror_sell(
        self,
        trade: Activity,
        my_position: Optional[Position],
        user_position: Optional[Position],
    ) -> OrderResult:
        if my_position is None or my_position.size <= 0:
            return _skipped("no follower position to sell")

        if user_position is None or user_position.size <= 0:
            amount = my_position.size
        else:
            ratio = trade.size / (user_position.size + trade.size)
            amount = my_position.size * ratio

        logger.info(
            "Mirroring sell",
            transaction_hash=trade.transaction_hash,
            shares=round(amount, 6),
            position_size=my_position.size,
        )
        return await self._walk_book(trade, TradeCondition.SELL, amount)

    async def _mirror_merge(self, trade: Activity, my_position: Optional[Position]) -> OrderResult:
        if my_position is None or my_position.size <= 0:
            return _skipped("no follower position to merge")

        logger.info(
            "Mirroring merge by closing position",
            transaction_hash=trade.transaction_hash,
            shares=my_position.size,
        )
        return await self._walk_book(trade, TradeCondition.MERGE, my_position.size)

    # ==================== EXECUTION ====================

    async def _walk_book(self, trade: Activity, condition: TradeCondition, amount: float) -> OrderResult:
        """Post FOK orders against the best level until ``amount`` is filled.

        For buys ``amount`` is USDC, for sells and merges it is shares.
        """
        if amount <= _DUST:
            return _skipped("mirrored size rounds to zero")

        client = await self._get_client()
        is_buy = condition == TradeCondition.BUY
        remaining = amount
        filled = 0.0
        retry = 0
        order_ids: list[str] = []

        while remaining > _DUST and retry < self.retry_limit:
            book = await asyncio.to_thread(client.get_order_book, trade.asset)

            levels = [_level(entry) for entry in _book_side(book, "asks" if is_buy else "bids")]
            levels = [(price, size) for price, size in levels if price > 0 and size > 0]
            if not levels:
                logger.info(
                    "Order book side empty, skipping",
                    asset=trade.asset,
                    side="asks" if is_buy else "bids",
                )
                return OrderResult(status="skipped", filled=filled, reason="empty order book", order_ids=order_ids)

            if is_buy:
                price, size = min(levels, key=lambda level: level[0])
                if price - self.slippage_tolerance > trade.price:
                    logger.info(
                        "Best ask too far above source price, skipping",
                        best_ask=price,
                        source_price=trade.price,
                        tolerance=self.slippage_tolerance,
                    )
                    return OrderResult(status="skipped", filled=filled, reason="price moved", order_ids=order_ids)
                order_amount = min(remaining, size * price)
            else:
                price, size = max(levels, key=lambda level: level[0])
                order_amount = min(remaining, size)

            order_id = await self._post_market_order(trade.asset, is_buy, order_amount, price)
            if order_id is None:
                retry += 1
                logger.warning(
                    "Order rejected",
                    asset=trade.asset,
                    amount=order_amount,
                    price=price,
                    retry=retry,
                    retry_limit=self.retry_limit,
                )
                continue

            retry = 0
            remaining -= order_amount
            filled += order_amount
            if order_id:
                order_ids.append(order_id)
            logger.info(
                "Order filled",
                asset=trade.asset,
                amount=order_amount,
                price=price,
                remaining=round(remaining, 6),
            )

        if remaining > _DUST:
            if filled <= _DUST:
                raise OrderSubmissionError(
                    f"{condition.value} for {trade.transaction_hash} rejected {retry} times "
                    f"with nothing filled"
                )
            # Filled quantity must never be mirrored twice; drop the remainder.
            logger.warning(
                "Order partially filled, giving up on remainder",
                transaction_hash=trade.transaction_hash,
                filled=round(filled, 6),
                remaining=round(remaining, 6),
                retry=retry,
            )
            return OrderResult(
                status="partial",
                filled=filled,
                reason=f"rejected {retry} times with {remaining:.6f} unfilled",
                order_ids=order_ids,
            )

        return OrderResult(status="filled", filled=filled, order_ids=order_ids)

    async def _post_market_order(self, token_id: str, is_buy: bool, amount: float, price: float) -> Optional[str]:
        """Sign and post one FOK order. Returns the order id ("" if none) or None when rejected."""
        from py_clob_client.clob_types import MarketOrderArgs, OrderType
        from py_clob_client.order_builder.constants import BUY, SELL

        client = await self._get_client()
        order_args = MarketOrderArgs(
            token_id=token_id,
            amount=amount,
            side=BUY if is_buy else SELL,
            price=price,
        )
        try:
            signed_order = await asyncio.to_thread(client.create_market_order, order_args)
            response = await asyncio.to_thread(client.post_order, signed_order, OrderType.FOK)
        except Exception as e:
            logger.error("Order post failed", token_id=token_id, error=str(e))
            return None

        if isinstance(response, dict) and response.get("success"):
            return str(response.get("orderID") or "")

        error = response.get("errorMsg") if isinstance(response, dict) else response
        logger.error("Order not accepted", token_id=token_id, error=error)
        return None
