"""Shared fixtures: an in-memory venue and a fully wired engine."""

import asyncio
from decimal import Decimal

import pytest

from config import ExecutionConfig
from exchange.models import MarginMode
from storage.database import Database
from trading.asset_catalog import AssetCatalog
from trading.execution_supervisor import ExecutionSupervisor
from trading.leverage import LeverageConfigurator
from trading.order_submitter import OrderSubmitter
from trading.price_oracle import PriceOracle
from trading.tick_negotiator import TickSizeNegotiator


def filled_reply(oid=1001, avg_px="98941.0", total_sz="0.01"):
    return {
        "status": "ok",
        "response": {"type": "order", "data": {"statuses": [
            {"filled": {"totalSz": total_sz, "avgPx": avg_px, "oid": oid}},
        ]}},
    }


def resting_reply(oid=1002):
    return {
        "status": "ok",
        "response": {"type": "order", "data": {"statuses": [{"resting": {"oid": oid}}]}},
    }


def error_reply(message):
    return {
        "status": "ok",
        "response": {"type": "order", "data": {"statuses": [{"error": message}]}},
    }


TICK_ERROR = "Price must be divisible by tick size. asset=0"
OK_LEVERAGE = {"status": "ok", "response": {"type": "default"}}


class FakeVenue:
    """In-memory stand-in for HyperliquidRestClient."""

    def __init__(self, universe=None, prices=None):
        self.universe = universe if universe is not None else [
            {"name": "BTC", "szDecimals": 5},
            {"name": "ETH", "szDecimals": 4},
            {"name": "SOL", "szDecimals": 2},
        ]
        self.prices = prices if prices is not None else [
            Decimal("97000.23"), Decimal("3500.5"), Decimal("150.25"),
        ]
        self.can_sign = True
        self.address = "0x00000000000000000000000000000000000000aa"

        self.meta_error = None
        self.price_error = None
        self.leverage_reply = OK_LEVERAGE
        self.order_replies = []
        self.order_delay = None
        self.hang_on = None

        self.meta_calls = 0
        self.price_calls = 0
        self.leverage_calls = []
        self.orders = []
        self.events = []
        self.order_cancelled = False

    async def _maybe_hang(self, step):
        if self.hang_on == step:
            await asyncio.sleep(3600)

    async def get_meta_and_asset_ctxs(self):
        self.meta_calls += 1
        if self.meta_error is not None:
            raise self.meta_error
        ctxs = [{"markPx": str(p)} if p is not None else {} for p in self.prices]
        return list(self.universe), ctxs

    async def get_asset_prices(self):
        self.price_calls += 1
        self.events.append("price")
        await self._maybe_hang("price")
        if self.price_error is not None:
            raise self.price_error
        return list(self.prices)

    async def set_leverage(self, asset_index, leverage, is_cross):
        self.events.append("leverage")
        self.leverage_calls.append((asset_index, leverage, is_cross))
        await self._maybe_hang("leverage")
        if isinstance(self.leverage_reply, Exception):
            raise self.leverage_reply
        return self.leverage_reply

    async def place_order(self, request):
        self.events.append("order")
        self.orders.append(request)
        if self.order_delay is not None:
            try:
                await asyncio.sleep(self.order_delay)
            except asyncio.CancelledError:
                self.order_cancelled = True
                raise
        reply = self.order_replies.pop(0) if self.order_replies else filled_reply()
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def get_account_positions(self, address):
        return [
            {"type": "oneWay", "position": {"coin": "BTC", "szi": "0.01", "entryPx": "97000.0"}},
            {"type": "oneWay", "position": {"coin": "ETH", "szi": "0.0", "entryPx": None}},
        ]

    async def get_account_margin(self, address):
        return {"marginSummary": {"accountValue": "1000.0"}, "withdrawable": "900.0"}


class FailingSink:
    def append(self, record):
        raise RuntimeError("database is locked")


@pytest.fixture
def venue():
    return FakeVenue()


@pytest.fixture
def db():
    database = Database(":memory:")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def exec_config():
    return ExecutionConfig(
        deadline_sec=2.0,
        call_timeout_sec=1.0,
        tick_size_candidates=[Decimal("0.5"), Decimal("0.1"), Decimal("1.0")],
        trading_enabled=True,
    )


def build_supervisor(venue, trade_log, config, thresholds=None, notifier=None):
    catalog = AssetCatalog(venue, thresholds)
    submitter = OrderSubmitter(venue)
    return ExecutionSupervisor(
        client=venue,
        catalog=catalog,
        oracle=PriceOracle(venue),
        leverage=LeverageConfigurator(venue, MarginMode.CROSS),
        negotiator=TickSizeNegotiator(submitter, config.tick_size_candidates, max_sig_figs=config.max_sig_figs),
        trade_log=trade_log,
        config=config,
        notifier=notifier,
    )


@pytest.fixture
def supervisor(venue, db, exec_config):
    return build_supervisor(venue, db, exec_config)
