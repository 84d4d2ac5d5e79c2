"""
Tick-Size Negotiator — discovers a venue-acceptable tick size empirically.

Candidates are tried strictly one after another, never concurrently, so at
most one live order exists per intent at any time. A TICK_SIZE rejection
moves on to the next candidate, as does a candidate that cannot price the
intent positively (skipped without submitting). Any other outcome ends the
loop as-is.
"""

from __future__ import annotations
from decimal import Decimal
from typing import List, Optional, Sequence, TYPE_CHECKING
from exchange.models import (
    AssetDescriptor,
    ErrorCode,
    OrderAttempt,
    OrderOutcome,
    OrderRequest,
    Rejected,
    TradeIntent,
)
from trading.errors import TickNotViable
from trading.pricing import DEFAULT_MAX_SIG_FIGS, compute_limit_price, quantize_size
import logging

if TYPE_CHECKING:
    from trading.order_submitter import OrderSubmitter

logger = logging.getLogger(__name__)

NO_VALID_TICK = "no valid tick size found"


class TickSizeNegotiator:

    def __init__(
        self,
        submitter: "OrderSubmitter",
        candidates: Sequence[Decimal],
        max_sig_figs: Optional[int] = DEFAULT_MAX_SIG_FIGS,
    ):
        if not candidates:
            raise ValueError("at least one tick size candidate is required")
        self.submitter = submitter
        self.candidates = [Decimal(str(c)) for c in candidates]
        self.max_sig_figs = max_sig_figs

    def candidates_for(self, asset: AssetDescriptor) -> List[Decimal]:
        """Configured candidates, with the asset's own hint (if any) tried first."""
        ordered = list(self.candidates)
        if asset.tick_size_hint is not None:
            ordered = [asset.tick_size_hint] + [c for c in ordered if c != asset.tick_size_hint]
        return ordered

    def build_attempt(
        self,
        intent: TradeIntent,
        asset: AssetDescriptor,
        reference: Decimal,
        tick_size: Decimal,
    ) -> OrderAttempt:
        limit_price = compute_limit_price(
            reference, intent.direction, intent.slippage_bps, tick_size, self.max_sig_figs,
        )
        return OrderAttempt(
            intent=intent,
            candidate_tick_size=tick_size,
            limit_price=limit_price,
            resolved_asset=asset,
        )

    @staticmethod
    def build_request(attempt: OrderAttempt) -> OrderRequest:
        intent = attempt.intent
        return OrderRequest(
            asset_index=attempt.resolved_asset.exchange_index,
            is_buy=intent.direction.is_buy,
            size=quantize_size(intent.size, attempt.resolved_asset.size_decimals),
            limit_price=attempt.limit_price,
            time_in_force="Ioc",
            reduce_only=False,
            client_order_id=intent.client_order_id,
        )

    def first_viable_attempt(
        self,
        intent: TradeIntent,
        asset: AssetDescriptor,
        reference: Decimal,
    ) -> OrderAttempt:
        """First candidate, in try order, that prices the intent positively."""
        last: Optional[TickNotViable] = None
        for tick_size in self.candidates_for(asset):
            try:
                return self.build_attempt(intent, asset, reference, tick_size)
            except TickNotViable as e:
                last = e
        raise TickNotViable(f"no tick size candidate can price {asset.symbol}: {last}")

    async def submit_attempt(
        self,
        attempt: OrderAttempt,
        attempts: Optional[List[OrderAttempt]] = None,
    ) -> OrderOutcome:
        if attempts is not None:
            attempts.append(attempt)
        logger.info(
            f"[TICK] {attempt.resolved_asset.symbol}: trying tick {attempt.candidate_tick_size} "
            f"-> limit {attempt.limit_price}"
        )
        return await self.submitter.submit(self.build_request(attempt))

    async def submit_once(
        self,
        intent: TradeIntent,
        asset: AssetDescriptor,
        reference: Decimal,
        tick_size: Decimal,
        attempts: Optional[List[OrderAttempt]] = None,
    ) -> OrderOutcome:
        """
        Single submission at one tick size, used by direct execution.
        Raises TickNotViable, without submitting, if the tick cannot price the intent.
        """
        attempt = self.build_attempt(intent, asset, reference, tick_size)
        return await self.submit_attempt(attempt, attempts)

    async def submit_with_tick_negotiation(
        self,
        intent: TradeIntent,
        asset: AssetDescriptor,
        reference: Decimal,
        attempts: Optional[List[OrderAttempt]] = None,
    ) -> OrderOutcome:
        last_error: Optional[str] = None
        candidates = self.candidates_for(asset)

        for tick_size in candidates:
            try:
                attempt = self.build_attempt(intent, asset, reference, tick_size)
            except TickNotViable as e:
                # Not submitted
                last_error = str(e)
                logger.warning(f"[TICK] {asset.symbol}: tick {tick_size} skipped: {e}")
                continue

            outcome = await self.submit_attempt(attempt, attempts)

            if isinstance(outcome, Rejected) and outcome.code is ErrorCode.TICK_SIZE:
                last_error = outcome.reason
                logger.warning(f"[TICK] {asset.symbol}: tick {tick_size} rejected: {outcome.reason}")
                continue

            if outcome.is_success:
                logger.info(f"[TICK] {asset.symbol}: accepted with tick {tick_size}")
            return outcome

        logger.error(
            f"[TICK] {asset.symbol}: all {len(candidates)} tick sizes rejected. Last: {last_error}"
        )
        return Rejected(
            reason=NO_VALID_TICK,
            code=ErrorCode.TICK_SIZE_EXHAUSTED,
            last_error=last_error,
        )
