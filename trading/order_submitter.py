"""
Order Submitter — sends one order and returns exactly one classified outcome.
"""

from __future__ import annotations
from typing import TYPE_CHECKING
from exchange.models import OrderOutcome, OrderRequest, TransportError
from trading.errors import VenueTransportError
from trading.response_classifier import classify_order_response
import logging

if TYPE_CHECKING:
    from exchange.hyperliquid_rest import HyperliquidRestClient

logger = logging.getLogger(__name__)


class OrderSubmitter:

    def __init__(self, client: "HyperliquidRestClient"):
        self.client = client
        self.submissions = 0

    async def submit(self, request: OrderRequest) -> OrderOutcome:
        self.submissions += 1
        try:
            raw = await self.client.place_order(request)
        except VenueTransportError as e:
            logger.error(f"[ORDER] Transport failure: {e}")
            return TransportError(detail=str(e))

        outcome = classify_order_response(raw)
        if outcome.is_success:
            logger.info(f"[ORDER] {outcome.status.upper()}: {outcome.message}")
        else:
            logger.warning(f"[ORDER] {outcome.status.upper()} ({outcome.error_code.value}): {outcome.message}")
        return outcome
