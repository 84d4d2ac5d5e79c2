"""
Execution Supervisor — runs one user-confirmed attempt end to end.

IDLE → RESOLVING → PRICING_AND_LEVERAGE → NEGOTIATING → TERMINAL

Resolution is bounded by the per-call timeout only. Pricing, leverage and
negotiation together run under one wall-clock deadline; on expiry the
attempt ends TimedOut and whatever was in flight is abandoned. An order
already sent may still rest or fill on the venue, so TimedOut tells the
user to check positions.

Every terminal state writes exactly one trade log record. A failing sink
is a warning on the result, never a change of outcome.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING
from exchange.models import (
    AssetDescriptor,
    ExecutionState,
    MarginMode,
    OrderAttempt,
    OrderOutcome,
    Rejected,
    TimedOut,
    TradeIntent,
    TradeLogRecord,
    TransportError,
    Treatment,
)
from trading.errors import (
    CatalogUnavailable,
    ExecutionInProgress,
    InvalidTradeIntent,
    InvariantViolation,
    LeverageConfigFailed,
    NoPriceAvailable,
    SigningUnavailable,
    TickNotViable,
    UnknownAsset,
)
from trading.pricing import quantize_size
from trading.risk_checks import estimate_liquidation_price, estimate_margin, validate_intent
import logging

if TYPE_CHECKING:
    from config import ExecutionConfig
    from exchange.hyperliquid_rest import HyperliquidRestClient
    from notifications.telegram import TelegramNotifier
    from storage.database import Database
    from trading.asset_catalog import AssetCatalog
    from trading.leverage import LeverageConfigurator
    from trading.price_oracle import PriceOracle
    from trading.tick_negotiator import TickSizeNegotiator

logger = logging.getLogger(__name__)

INVARIANT_STATUS = "invariant_violation"
ERROR_STATUS = "error"


@dataclass
class ExecutionResult:
    intent: TradeIntent
    outcome: Optional[OrderOutcome] = None
    direct: bool = False
    asset: Optional[AssetDescriptor] = None
    reference_price: Optional[Decimal] = None
    price_stale: bool = False
    attempts: List[OrderAttempt] = field(default_factory=list)
    states: List[ExecutionState] = field(default_factory=lambda: [ExecutionState.IDLE])
    log_record: Optional[TradeLogRecord] = None
    log_warning: Optional[str] = None

    @property
    def state(self) -> ExecutionState:
        return self.states[-1]

    @property
    def treatment(self) -> Treatment:
        return self.outcome.treatment if self.outcome else Treatment.REJECTED

    @property
    def user_message(self) -> str:
        if self.outcome is None:
            return "Internal error. Check your positions before retrying."
        return self.outcome.message


@dataclass
class TradePreview:
    asset: AssetDescriptor
    mark_price: Decimal
    price_stale: bool
    tick_size: Decimal
    limit_price: Decimal
    estimated_margin: Decimal
    estimated_liquidation_price: Decimal


def build_log_record(
    result: ExecutionResult,
    status: Optional[str] = None,
    error_message: Optional[str] = None,
) -> TradeLogRecord:
    """Derive the single log record for an attempt from its outcome."""
    outcome = result.outcome
    intent = result.intent

    if outcome is not None and outcome.status == "filled":
        entry_price = outcome.avg_price
    elif result.attempts:
        entry_price = result.attempts[-1].limit_price
    else:
        entry_price = Decimal("0")

    if error_message is None and outcome is not None and not outcome.is_success:
        error_message = outcome.message

    return TradeLogRecord(
        symbol=result.asset.symbol if result.asset else intent.asset_symbol,
        direction=intent.direction,
        size=intent.size,
        entry_price=entry_price,
        status=status or (outcome.status if outcome else INVARIANT_STATUS),
        exchange_order_id=outcome.order_id if outcome else None,
        error_message=error_message,
    )


class ExecutionSupervisor:
    """One attempt at a time. Owns the deadline and the logging contract."""

    def __init__(
        self,
        client: "HyperliquidRestClient",
        catalog: "AssetCatalog",
        oracle: "PriceOracle",
        leverage: "LeverageConfigurator",
        negotiator: "TickSizeNegotiator",
        trade_log: "Database",
        config: "ExecutionConfig",
        notifier: Optional["TelegramNotifier"] = None,
    ):
        self.client = client
        self.catalog = catalog
        self.oracle = oracle
        self.leverage = leverage
        self.negotiator = negotiator
        self.trade_log = trade_log
        self.config = config
        self.notifier = notifier
        self._in_flight = False

    @property
    def busy(self) -> bool:
        return self._in_flight

    # ==================== Public API ====================

    async def execute(self, intent: TradeIntent) -> ExecutionResult:
        """Full flow with tick-size negotiation."""
        return await self._run(intent, direct=False)

    async def execute_direct(
        self,
        intent: TradeIntent,
        tick_size: Optional[Decimal] = None,
    ) -> ExecutionResult:
        """
        Manual fallback after a timeout or exhausted negotiation: one
        submission at a single tick size (default: the first candidate that
        prices the intent).
        """
        return await self._run(intent, direct=True, tick_size=tick_size)

    async def preview(self, intent: TradeIntent) -> TradePreview:
        """Estimates for the confirmation step. No leverage call, no order."""
        asset = await self.catalog.resolve(intent.asset_symbol)
        quote = await self.oracle.get_quote(asset.exchange_index)
        attempt = self.negotiator.first_viable_attempt(intent, asset, quote.mark_price)
        return TradePreview(
            asset=asset,
            mark_price=quote.mark_price,
            price_stale=quote.stale,
            tick_size=attempt.candidate_tick_size,
            limit_price=attempt.limit_price,
            estimated_margin=estimate_margin(quote.mark_price, intent.size, intent.leverage),
            estimated_liquidation_price=estimate_liquidation_price(
                quote.mark_price, intent.leverage, intent.direction,
            ),
        )

    # ==================== Flow ====================

    async def _run(
        self,
        intent: TradeIntent,
        direct: bool,
        tick_size: Optional[Decimal] = None,
    ) -> ExecutionResult:
        if not self.client.can_sign:
            raise SigningUnavailable(
                "Hyperliquid API secret not configured. Trading is unavailable."
            )
        if self._in_flight:
            raise ExecutionInProgress("another execution attempt is still in flight")
        validate_intent(intent, self.config.max_leverage)

        self._in_flight = True
        result = ExecutionResult(intent=intent, direct=direct)
        logger.info(
            f"[EXEC] {'Direct' if direct else 'Negotiated'} attempt: "
            f"{intent.direction.value} {intent.size} {intent.asset_symbol} @ {intent.leverage}x"
        )
        try:
            try:
                result.outcome = await self._attempt(result, tick_size)
            except InvariantViolation as e:
                logger.critical(f"[EXEC] INVARIANT VIOLATION: {e}", exc_info=True)
                self._transition(result, ExecutionState.TERMINAL)
                self._record(result, status=INVARIANT_STATUS, error_message=f"invariant violation: {e}")
                raise
            except Exception as e:
                logger.critical(f"[EXEC] Unexpected failure: {e}", exc_info=True)
                self._transition(result, ExecutionState.TERMINAL)
                self._record(result, status=ERROR_STATUS, error_message=f"unexpected error: {e}")
                raise

            self._transition(result, ExecutionState.TERMINAL)
            logger.info(
                f"[EXEC] Terminal: {result.outcome.status} ({result.treatment.value}) "
                f"{result.user_message}"
            )
            self._record(result)
            if self.notifier is not None:
                await self.notifier.send_execution_result(result)
            return result
        finally:
            self._in_flight = False

    async def _attempt(self, result: ExecutionResult, tick_size: Optional[Decimal]) -> OrderOutcome:
        intent = result.intent

        self._transition(result, ExecutionState.RESOLVING)
        try:
            asset = await self.catalog.resolve(intent.asset_symbol)
        except CatalogUnavailable as e:
            logger.error(f"[EXEC] Resolution failed: {e}")
            return TransportError(detail=str(e), code=e.code)
        except UnknownAsset as e:
            logger.error(f"[EXEC] Resolution failed: {e}")
            return Rejected(reason=str(e), code=e.code)
        result.asset = asset

        try:
            quantize_size(intent.size, asset.size_decimals)
        except InvalidTradeIntent as e:
            return Rejected(reason=str(e), code=e.code)

        try:
            return await asyncio.wait_for(
                self._price_leverage_submit(result, asset, tick_size),
                timeout=self.config.deadline_sec,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"[EXEC] {asset.symbol}: deadline of {self.config.deadline_sec}s expired "
                f"in {result.state.value}. Outcome unknown."
            )
            return TimedOut(deadline_sec=self.config.deadline_sec)

    async def _price_leverage_submit(
        self,
        result: ExecutionResult,
        asset: AssetDescriptor,
        tick_size: Optional[Decimal],
    ) -> OrderOutcome:
        intent = result.intent

        # Price first (limit baseline), then leverage. Never concurrently.
        self._transition(result, ExecutionState.PRICING_AND_LEVERAGE)
        try:
            quote = await self.oracle.get_quote(asset.exchange_index)
        except NoPriceAvailable as e:
            return TransportError(detail=str(e), code=e.code)
        result.reference_price = quote.mark_price
        result.price_stale = quote.stale

        try:
            await self.leverage.set_leverage(
                asset.exchange_index, intent.leverage, MarginMode(self.config.margin_mode),
            )
        except LeverageConfigFailed as e:
            logger.error(f"[EXEC] {asset.symbol}: {e}. No order submitted.")
            return Rejected(reason=str(e), code=e.code)

        self._transition(result, ExecutionState.NEGOTIATING)
        if not result.direct:
            return await self.negotiator.submit_with_tick_negotiation(
                intent, asset, quote.mark_price, result.attempts,
            )

        try:
            if tick_size is not None:
                return await self.negotiator.submit_once(
                    intent, asset, quote.mark_price, tick_size, result.attempts,
                )
            attempt = self.negotiator.first_viable_attempt(intent, asset, quote.mark_price)
            return await self.negotiator.submit_attempt(attempt, result.attempts)
        except TickNotViable as e:
            logger.error(f"[EXEC] {asset.symbol}: {e}. No order submitted.")
            return Rejected(reason=str(e), code=e.code)

    # ==================== Helpers ====================

    @staticmethod
    def _transition(result: ExecutionResult, state: ExecutionState):
        result.states.append(state)
        logger.debug(f"[EXEC] -> {state.value}")

    def _record(
        self,
        result: ExecutionResult,
        status: Optional[str] = None,
        error_message: Optional[str] = None,
    ):
        record = build_log_record(result, status=status, error_message=error_message)
        result.log_record = record
        try:
            record.id = self.trade_log.append(record)
        except Exception as e:
            result.log_warning = f"Failed to save trade log entry: {e}"
            logger.warning(f"[EXEC] {result.log_warning}")
