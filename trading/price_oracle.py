"""
Price Oracle — current mark price with last-known-good fallback.
Every call tries a fresh fetch; a fallback quote is returned flagged stale.
"""

from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional, TYPE_CHECKING
from exchange.models import PriceQuote
from trading.errors import NoPriceAvailable, VenueTransportError
import logging

if TYPE_CHECKING:
    from exchange.hyperliquid_rest import HyperliquidRestClient

logger = logging.getLogger(__name__)


class PriceOracle:
    """Owns the last successful quote per asset index."""

    def __init__(self, client: "HyperliquidRestClient"):
        self.client = client
        self._last_good: Dict[int, PriceQuote] = {}

    def last_quote(self, asset_index: int) -> Optional[PriceQuote]:
        return self._last_good.get(asset_index)

    def invalidate(self, asset_index: Optional[int] = None):
        if asset_index is None:
            self._last_good = {}
        else:
            self._last_good.pop(asset_index, None)

    async def get_quote(self, asset_index: int) -> PriceQuote:
        """
        Fresh quote, or the last good one flagged stale.
        Raises NoPriceAvailable only when nothing has ever succeeded.
        """
        try:
            prices = await self.client.get_asset_prices()
            mark = prices[asset_index] if asset_index < len(prices) else None
            if mark is None or mark <= 0:
                raise NoPriceAvailable(f"no mark price for asset {asset_index}")
        except (VenueTransportError, NoPriceAvailable) as e:
            fallback = self._last_good.get(asset_index)
            if fallback is None:
                logger.error(f"[ORACLE] Asset {asset_index}: price fetch failed, no fallback: {e}")
                raise NoPriceAvailable(f"no price available for asset {asset_index}: {e}") from e
            logger.warning(
                f"[ORACLE] Asset {asset_index}: price fetch failed ({e}). "
                f"Using stale {fallback.mark_price} from {fallback.observed_at.isoformat()}"
            )
            return PriceQuote(
                asset_index=asset_index,
                mark_price=fallback.mark_price,
                observed_at=fallback.observed_at,
                stale=True,
            )

        quote = PriceQuote(asset_index=asset_index, mark_price=mark, observed_at=datetime.now(timezone.utc))
        self._last_good = {**self._last_good, asset_index: quote}
        return quote

    async def current_price(self, asset_index: int) -> Decimal:
        return (await self.get_quote(asset_index)).mark_price
