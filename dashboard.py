"""
Dashboard API — the request-handling layer in front of the execution engine.
Uses aiohttp.web to serve a small JSON API:

  GET  /api/account          positions + margin summary
  GET  /api/price/{symbol}   current mark price
  GET  /api/trades           trade log (newest first, ?limit=N)
  POST /api/trades/preview   margin / liquidation / limit price estimates
  POST /api/trades           confirmed execution with tick-size negotiation
  POST /api/trades/direct    manual single-tick fallback
"""

from __future__ import annotations
import json
from decimal import Decimal, InvalidOperation
from datetime import datetime
from enum import Enum
from typing import Any, Dict, TYPE_CHECKING
from aiohttp import web
from exchange.models import Direction, TradeIntent
from trading.errors import (
    CatalogUnavailable,
    ExecutionInProgress,
    InvalidTradeIntent,
    InvariantViolation,
    NoPriceAvailable,
    SigningUnavailable,
    TickNotViable,
    UnknownAsset,
    VenueTransportError,
)
import logging

if TYPE_CHECKING:
    from config import AppConfig
    from exchange.hyperliquid_rest import HyperliquidRestClient
    from storage.database import Database
    from trading.execution_supervisor import ExecutionResult, ExecutionSupervisor

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, datetime and Enum types."""
    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        return super().default(o)


def json_response(data, status=200):
    return web.Response(
        text=json.dumps(data, cls=DecimalEncoder),
        content_type="application/json",
        status=status,
    )


def error_response(message: str, status: int):
    return json_response({"isSuccess": False, "message": message}, status=status)


def parse_intent(body: Dict[str, Any], default_slippage_bps: int) -> TradeIntent:
    """Build a TradeIntent from a request body. Raises ValueError on bad input."""
    try:
        return TradeIntent(
            asset_symbol=str(body["symbol"]),
            direction=Direction(str(body["direction"]).lower()),
            size=Decimal(str(body["size"])),
            leverage=Decimal(str(body["leverage"])),
            slippage_bps=int(body.get("slippageBps", default_slippage_bps)),
            client_order_id=body.get("clientOrderId"),
        )
    except KeyError as e:
        raise ValueError(f"missing field {e.args[0]}") from e
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"invalid number: {e}") from e


def serialize_result(result: "ExecutionResult") -> Dict[str, Any]:
    outcome = result.outcome
    return {
        "isSuccess": bool(outcome and outcome.is_success),
        "status": outcome.status if outcome else None,
        "treatment": result.treatment,
        "message": result.user_message,
        "orderId": outcome.order_id if outcome else None,
        "errorCode": outcome.error_code if outcome else None,
        "symbol": result.asset.symbol if result.asset else result.intent.asset_symbol,
        "assetIndex": result.asset.exchange_index if result.asset else None,
        "ambiguousAsset": result.asset.ambiguous if result.asset else False,
        "referencePrice": result.reference_price,
        "priceStale": result.price_stale,
        "attempts": [
            {"tickSize": a.candidate_tick_size, "limitPrice": a.limit_price}
            for a in result.attempts
        ],
        "direct": result.direct,
        "logWarning": result.log_warning,
    }


class Dashboard:
    """Web API server."""

    def __init__(
        self,
        supervisor: "ExecutionSupervisor",
        client: "HyperliquidRestClient",
        db: "Database",
        config: "AppConfig",
    ):
        self.supervisor = supervisor
        self.client = client
        self.db = db
        self.config = config
        self.app = web.Application()
        self._runner = None
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_get("/api/account", self._api_account)
        self.app.router.add_get("/api/price/{symbol}", self._api_price)
        self.app.router.add_get("/api/trades", self._api_trades)
        self.app.router.add_post("/api/trades/preview", self._api_preview)
        self.app.router.add_post("/api/trades", self._api_execute)
        self.app.router.add_post("/api/trades/direct", self._api_execute_direct)

    async def start(self):
        """Start the web server."""
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.dashboard.host, self.config.dashboard.port)
        await site.start()
        logger.info(f"[DASHBOARD] Running on http://{self.config.dashboard.host}:{self.config.dashboard.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()

    # ─── Routes ───

    async def _api_account(self, request: web.Request) -> web.Response:
        address = self.config.exchange.account_address or self.client.address
        if not address:
            return error_response("Hyperliquid API secret not configured or invalid.", 503)
        try:
            positions = await self.client.get_account_positions(address)
            margin = await self.client.get_account_margin(address)
        except VenueTransportError as e:
            return error_response(f"Failed to fetch account information: {e}", 502)

        open_positions = [
            p for p in positions
            if Decimal(str((p.get("position") or {}).get("szi", "0"))) != 0
        ]
        return json_response({
            "isSuccess": True,
            "address": address,
            "positions": open_positions,
            "margin": margin,
        })

    async def _api_price(self, request: web.Request) -> web.Response:
        symbol = request.match_info["symbol"]
        try:
            asset = await self.supervisor.catalog.resolve(symbol)
            quote = await self.supervisor.oracle.get_quote(asset.exchange_index)
        except UnknownAsset as e:
            return error_response(str(e), 404)
        except (CatalogUnavailable, NoPriceAvailable) as e:
            return error_response(str(e), 502)
        return json_response({
            "isSuccess": True,
            "symbol": asset.symbol,
            "assetIndex": asset.exchange_index,
            "ambiguousAsset": asset.ambiguous,
            "markPrice": quote.mark_price,
            "stale": quote.stale,
            "observedAt": quote.observed_at,
        })

    async def _api_trades(self, request: web.Request) -> web.Response:
        try:
            limit = int(request.query.get("limit", "50"))
        except ValueError:
            limit = 50
        records = self.db.recent(limit)
        return json_response({
            "isSuccess": True,
            "trades": [
                {
                    "id": r.id,
                    "timestamp": r.timestamp,
                    "symbol": r.symbol,
                    "direction": r.direction,
                    "size": r.size,
                    "entryPrice": r.entry_price,
                    "status": r.status,
                    "exchangeOrderId": r.exchange_order_id,
                    "errorMessage": r.error_message,
                }
                for r in records
            ],
        })

    async def _api_preview(self, request: web.Request) -> web.Response:
        try:
            intent = parse_intent(await request.json(), self.config.execution.default_slippage_bps)
        except ValueError as e:
            return error_response(str(e), 400)
        try:
            preview = await self.supervisor.preview(intent)
        except UnknownAsset as e:
            return error_response(str(e), 404)
        except (InvalidTradeIntent, TickNotViable) as e:
            return error_response(str(e), 400)
        except (CatalogUnavailable, NoPriceAvailable) as e:
            return error_response(str(e), 502)
        return json_response({
            "isSuccess": True,
            "symbol": preview.asset.symbol,
            "markPrice": preview.mark_price,
            "priceStale": preview.price_stale,
            "tickSize": preview.tick_size,
            "limitPrice": preview.limit_price,
            "estimatedMargin": preview.estimated_margin,
            "estimatedLiquidationPrice": preview.estimated_liquidation_price,
        })

    async def _api_execute(self, request: web.Request) -> web.Response:
        return await self._execute(request, direct=False)

    async def _api_execute_direct(self, request: web.Request) -> web.Response:
        return await self._execute(request, direct=True)

    async def _execute(self, request: web.Request, direct: bool) -> web.Response:
        if not self.config.execution.trading_enabled:
            return error_response("Trading is disabled. Enable the master trade switch.", 403)
        try:
            body = await request.json()
            intent = parse_intent(body, self.config.execution.default_slippage_bps)
            tick_size = Decimal(str(body["tickSize"])) if direct and body.get("tickSize") else None
        except (ValueError, InvalidOperation) as e:
            return error_response(str(e), 400)

        try:
            if direct:
                result = await self.supervisor.execute_direct(intent, tick_size)
            else:
                result = await self.supervisor.execute(intent)
        except SigningUnavailable as e:
            return error_response(str(e), 503)
        except ExecutionInProgress as e:
            return error_response(str(e), 409)
        except InvalidTradeIntent as e:
            return error_response(str(e), 400)
        except InvariantViolation as e:
            return error_response(f"Internal error: {e}. Check your positions before retrying.", 500)

        return json_response(serialize_result(result))
