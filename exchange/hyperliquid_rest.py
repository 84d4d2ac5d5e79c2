"""
Hyperliquid REST API Client.
Handles the public info endpoint and signed exchange actions.
"""

from __future__ import annotations
import asyncio
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING
import aiohttp
import logging

from exchange.models import OrderRequest
from trading.errors import SigningUnavailable, VenueTransportError
from trading.pricing import format_decimal

if TYPE_CHECKING:
    from exchange.signing import Signer

logger = logging.getLogger(__name__)


class HyperliquidRestClient:
    """Async Hyperliquid REST wrapper."""

    def __init__(
        self,
        base_url: str,
        signer: Optional["Signer"] = None,
        call_timeout_sec: float = 10.0,
    ):
        self.base_url = base_url
        self.signer = signer
        self._timeout = aiohttp.ClientTimeout(total=call_timeout_sec)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def can_sign(self) -> bool:
        return self.signer is not None

    @property
    def address(self) -> Optional[str]:
        return self.signer.address if self.signer else None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _post(self, endpoint: str, body: Dict[str, Any]) -> Any:
        """POST a JSON body. Any network or decoding failure becomes VenueTransportError."""
        session = await self._get_session()
        url = f"{self.base_url}{endpoint}"
        try:
            async with session.post(url, json=body) as resp:
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            logger.error(f"[REST] POST {endpoint} timed out after {self._timeout.total}s")
            raise VenueTransportError(f"{endpoint} timed out") from e
        except aiohttp.ClientError as e:
            logger.error(f"[REST] POST {endpoint} Exception: {e}")
            raise VenueTransportError(f"{endpoint} failed: {e}") from e
        except ValueError as e:
            logger.error(f"[REST] POST {endpoint} returned a non-JSON body: {e}")
            raise VenueTransportError(f"{endpoint} returned a malformed response") from e

        if isinstance(data, dict) and data.get("status") == "err":
            logger.error(f"[REST] POST {endpoint} Error: {data.get('response')}")
        return data

    # ==================== Info Endpoints ====================

    async def info(self, request_type: str, **params) -> Any:
        return await self._post("/info", {"type": request_type, **params})

    async def get_meta_and_asset_ctxs(self) -> Tuple[List[Dict], List[Dict]]:
        """Asset universe plus per-asset contexts (mark price etc.), index-aligned."""
        data = await self.info("metaAndAssetCtxs")
        try:
            meta, ctxs = data
            return meta.get("universe", []), ctxs
        except (TypeError, ValueError, AttributeError) as e:
            raise VenueTransportError(f"unexpected metaAndAssetCtxs reply: {data!r}") from e

    async def get_asset_universe(self) -> List[Dict]:
        """[{name, szDecimals, ...}] in venue index order."""
        universe, _ = await self.get_meta_and_asset_ctxs()
        return universe

    async def get_asset_prices(self) -> List[Optional[Decimal]]:
        """Mark prices indexed like the universe. None where the venue omits one."""
        _, ctxs = await self.get_meta_and_asset_ctxs()
        prices: List[Optional[Decimal]] = []
        for ctx in ctxs:
            mark = ctx.get("markPx") if isinstance(ctx, dict) else None
            prices.append(Decimal(str(mark)) if mark is not None else None)
        return prices

    async def get_clearinghouse_state(self, address: str) -> Dict:
        return await self.info("clearinghouseState", user=address)

    async def get_account_positions(self, address: str) -> List[Dict]:
        state = await self.get_clearinghouse_state(address)
        return state.get("assetPositions", []) if isinstance(state, dict) else []

    async def get_account_margin(self, address: str) -> Dict:
        state = await self.get_clearinghouse_state(address)
        if not isinstance(state, dict):
            return {}
        return {
            "marginSummary": state.get("marginSummary", {}),
            "crossMarginSummary": state.get("crossMarginSummary", {}),
            "withdrawable": state.get("withdrawable"),
        }

    # ==================== Exchange Endpoints ====================

    async def _exchange(self, action: Dict[str, Any]) -> Any:
        if self.signer is None:
            raise SigningUnavailable("no signing credentials configured")
        nonce = int(time.time() * 1000)
        signature = self.signer.sign_action(action, nonce)
        payload = {
            "action": action,
            "nonce": nonce,
            "signature": signature,
            "vaultAddress": None,
        }
        return await self._post("/exchange", payload)

    async def set_leverage(self, asset_index: int, leverage: int, is_cross: bool) -> Dict:
        """Set the standing leverage for an asset."""
        action = {
            "type": "updateLeverage",
            "asset": asset_index,
            "isCross": is_cross,
            "leverage": leverage,
        }
        logger.info(f"[LEVERAGE] Setting asset {asset_index} to {leverage}x (cross={is_cross})")
        return await self._exchange(action)

    async def place_order(self, request: OrderRequest) -> Any:
        """Submit a single limit order. Returns the raw venue reply."""
        order: Dict[str, Any] = {
            "a": request.asset_index,
            "b": request.is_buy,
            "p": format_decimal(request.limit_price),
            "s": format_decimal(request.size),
            "r": request.reduce_only,
            "t": {"limit": {"tif": request.time_in_force}},
        }
        if request.client_order_id:
            order["c"] = request.client_order_id
        action = {"type": "order", "orders": [order], "grouping": "na"}

        side = "Buy" if request.is_buy else "Sell"
        logger.info(
            f"[ORDER] Placing: {side} {order['s']} asset={request.asset_index} "
            f"@ {order['p']} ({request.time_in_force})"
        )
        return await self._exchange(action)
