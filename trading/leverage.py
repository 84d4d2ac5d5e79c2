"""
Leverage Configurator — sets the standing per-asset leverage before any order.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN
from typing import Optional, TYPE_CHECKING
from exchange.models import MarginMode
from trading.errors import LeverageConfigFailed, VenueTransportError
from trading.response_classifier import error_text, is_ok_response
import logging

if TYPE_CHECKING:
    from exchange.hyperliquid_rest import HyperliquidRestClient

logger = logging.getLogger(__name__)


def venue_leverage(leverage: Decimal) -> int:
    """The venue takes whole-number leverage. Fractions round down, minimum 1x."""
    return max(1, int(leverage.to_integral_value(rounding=ROUND_DOWN)))


class LeverageConfigurator:

    def __init__(self, client: "HyperliquidRestClient", margin_mode: MarginMode = MarginMode.CROSS):
        self.client = client
        self.margin_mode = margin_mode

    async def set_leverage(self, asset_index: int, leverage: Decimal, margin_mode: Optional[MarginMode] = None):
        """Raises LeverageConfigFailed on any failure. No order may follow a failure."""
        mode = margin_mode or self.margin_mode
        lev = venue_leverage(leverage)
        try:
            result = await self.client.set_leverage(
                asset_index=asset_index,
                leverage=lev,
                is_cross=mode is MarginMode.CROSS,
            )
        except VenueTransportError as e:
            raise LeverageConfigFailed(f"leverage call failed: {e}") from e

        if not is_ok_response(result):
            reason = error_text(result)
            logger.error(f"[LEVERAGE] Asset {asset_index}: rejected: {reason}")
            raise LeverageConfigFailed(f"leverage rejected: {reason}")

        logger.info(f"[LEVERAGE] Asset {asset_index}: {lev}x {mode.value} confirmed")
