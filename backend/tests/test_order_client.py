import sys
import types
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import pytest

from config import settings
from models.activity import Activity, Position, TradeCondition
from services.order_client import (
    OrderClient,
    OrderSubmissionError,
    TradingNotConfiguredError,
)


class _FakeClobClient:
    """Synchronous stand-in for py_clob_client.client.ClobClient."""

    def __init__(self, books: list[dict], outcomes: list[bool] | None = None):
        self._books = list(books)
        self._outcomes = list(outcomes or [])
        self.posted: list = []

    def get_order_book(self, token_id):
        return self._books.pop(0) if len(self._books) > 1 else self._books[0]

    def create_market_order(self, order_args):
        return {"order_args": order_args}

    def post_order(self, signed_order, order_type):
        success = self._outcomes.pop(0) if self._outcomes else True
        if success:
            self.posted.append((signed_order["order_args"], order_type))
            return {"success": True, "orderID": f"oid-{len(self.posted)}"}
        return {"success": False, "errorMsg": "simulated failure"}


def _install_fake_clob_modules(monkeypatch) -> None:
    py_clob_client = types.ModuleType("py_clob_client")
    clob_types = types.ModuleType("py_clob_client.clob_types")
    order_builder = types.ModuleType("py_clob_client.order_builder")
    constants = types.ModuleType("py_clob_client.order_builder.constants")

    class MarketOrderArgs:
        def __init__(self, token_id, amount, side, price):
            self.token_id = token_id
            self.amount = amount
            self.side = side
            self.price = price

    class OrderType:
        FOK = "FOK"

    clob_types.MarketOrderArgs = MarketOrderArgs
    clob_types.OrderType = OrderType
    constants.BUY = "BUY"
    constants.SELL = "SELL"

    monkeypatch.setitem(sys.modules, "py_clob_client", py_clob_client)
    monkeypatch.setitem(sys.modules, "py_clob_client.clob_types", clob_types)
    monkeypatch.setitem(sys.modules, "py_clob_client.order_builder", order_builder)
    monkeypatch.setitem(sys.modules, "py_clob_client.order_builder.constants", constants)


def _trade(**overrides) -> Activity:
    values = {
        "id": 1,
        "transaction_hash": "0x1",
        "condition_id": "c1",
        "asset": "token-yes-1",
        "type": "TRADE",
        "side": "BUY",
        "size": 20.0,
        "usdc_size": 100.0,
        "price": 0.5,
    }
    values.update(overrides)
    return Activity(**values)


def _position(size: float) -> Position:
    return Position(asset="token-yes-1", condition_id="c1", size=size)


@pytest.mark.asyncio
async def test_buy_is_scaled_by_balance_ratio(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient([{"asks": [{"price": "0.52", "size": "1000"}, {"price": "0.60", "size": "5"}], "bids": []}])
    client = OrderClient(clob_client=clob, slippage_tolerance=0.05, retry_limit=3)

    # follower holds 90, trader held 900 before spending 100 -> ratio 0.09
    result = await client.submit_order(TradeCondition.BUY, None, None, _trade(), 90.0, 900.0)

    assert result.status == "filled"
    assert result.filled == pytest.approx(9.0)
    assert len(clob.posted) == 1
    order_args, order_type = clob.posted[0]
    assert order_args.side == "BUY"
    assert order_args.price == pytest.approx(0.52)
    assert order_args.amount == pytest.approx(9.0)
    assert order_type == "FOK"


@pytest.mark.asyncio
async def test_buy_walks_multiple_levels(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient(
        [
            {"asks": [{"price": "0.5", "size": "10"}]},
            {"asks": [{"price": "0.51", "size": "100"}]},
        ]
    )
    client = OrderClient(clob_client=clob, slippage_tolerance=0.05, retry_limit=3)

    result = await client.submit_order(TradeCondition.BUY, None, None, _trade(), 100.0, 900.0)

    assert result.status == "filled"
    assert [args.amount for args, _ in clob.posted] == [pytest.approx(5.0), pytest.approx(5.0)]


@pytest.mark.asyncio
async def test_buy_skips_when_price_moved_too_far(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient([{"asks": [{"price": "0.70", "size": "1000"}]}])
    client = OrderClient(clob_client=clob, slippage_tolerance=0.05, retry_limit=3)

    result = await client.submit_order(TradeCondition.BUY, None, None, _trade(price=0.5), 90.0, 900.0)

    assert result.skipped
    assert result.reason == "price moved"
    assert clob.posted == []


@pytest.mark.asyncio
async def test_empty_book_is_skipped(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient([{"asks": [], "bids": []}])
    client = OrderClient(clob_client=clob, retry_limit=3)

    result = await client.submit_order(TradeCondition.BUY, None, None, _trade(), 90.0, 900.0)

    assert result.skipped
    assert result.reason == "empty order book"


@pytest.mark.asyncio
async def test_sell_is_scaled_by_trader_position_ratio(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient([{"bids": [{"price": "0.40", "size": "3"}, {"price": "0.45", "size": "1000"}]}])
    client = OrderClient(clob_client=clob, retry_limit=3)

    # trader sold 20 of 100 -> 80 left, follower sells 20% of 50 shares
    result = await client.submit_order(
        TradeCondition.SELL, _position(50.0), _position(80.0), _trade(side="SELL", size=20.0), 0.0, 0.0
    )

    assert result.status == "filled"
    order_args, _ = clob.posted[0]
    assert order_args.side == "SELL"
    assert order_args.price == pytest.approx(0.45)
    assert order_args.amount == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_sell_everything_when_trader_fully_exited(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient([{"bids": [{"price": "0.45", "size": "1000"}]}])
    client = OrderClient(clob_client=clob, retry_limit=3)

    result = await client.submit_order(TradeCondition.SELL, _position(50.0), None, _trade(side="SELL"), 0.0, 0.0)

    assert result.filled == pytest.approx(50.0)


@pytest.mark.asyncio
async def test_sell_and_merge_without_follower_position_are_skipped(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient([{"bids": [{"price": "0.45", "size": "1000"}]}])
    client = OrderClient(clob_client=clob, retry_limit=3)

    sell = await client.submit_order(TradeCondition.SELL, None, _position(10.0), _trade(side="SELL"), 0.0, 0.0)
    merge = await client.submit_order(TradeCondition.MERGE, None, None, _trade(type="MERGE", side=""), 0.0, 0.0)

    assert sell.skipped and merge.skipped
    assert clob.posted == []


@pytest.mark.asyncio
async def test_merge_closes_whole_position(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient([{"bids": [{"price": "0.30", "size": "4"}]}, {"bids": [{"price": "0.29", "size": "100"}]}])
    client = OrderClient(clob_client=clob, retry_limit=3)

    result = await client.submit_order(TradeCondition.MERGE, _position(10.0), None, _trade(type="MERGE"), 0.0, 0.0)

    assert result.status == "filled"
    assert [args.amount for args, _ in clob.posted] == [pytest.approx(4.0), pytest.approx(6.0)]


@pytest.mark.asyncio
async def test_rejections_reset_on_success(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient(
        [{"bids": [{"price": "0.45", "size": "5"}]}],
        outcomes=[False, False, True, False, False, True],
    )
    client = OrderClient(clob_client=clob, retry_limit=3)

    result = await client.submit_order(TradeCondition.SELL, _position(10.0), None, _trade(side="SELL"), 0.0, 0.0)

    assert result.status == "filled"
    assert len(clob.posted) == 2


@pytest.mark.asyncio
async def test_exhausted_rejections_raise(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient([{"asks": [{"price": "0.5", "size": "1000"}]}], outcomes=[False, False, False])
    client = OrderClient(clob_client=clob, retry_limit=3)

    with pytest.raises(OrderSubmissionError):
        await client.submit_order(TradeCondition.BUY, None, None, _trade(), 90.0, 900.0)


@pytest.mark.asyncio
async def test_missing_private_key_raises_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "PRIVATE_KEY", None)
    client = OrderClient(retry_limit=3)

    with pytest.raises(TradingNotConfiguredError):
        await client.submit_order(TradeCondition.BUY, None, None, _trade(), 90.0, 900.0)


@pytest.mark.asyncio
async def test_rejections_after_a_fill_return_partial(monkeypatch):
    _install_fake_clob_modules(monkeypatch)
    clob = _FakeClobClient(
        [{"asks": [{"price": "0.5", "size": "10"}]}],
        outcomes=[True, False, False, False],
    )
    client = OrderClient(clob_client=clob, slippage_tolerance=0.05, retry_limit=3)

    # target is 10 USDC, each level only takes 5
    result = await client.submit_order(TradeCondition.BUY, None, None, _trade(), 100.0, 900.0)

    assert result.status == "partial"
    assert result.filled == pytest.approx(5.0)
    assert result.order_ids == ["oid-1"]
    assert len(clob.posted) == 1
