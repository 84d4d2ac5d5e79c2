"""
Order Price Calculator — slippage-bounded IOC limit prices snapped to a tick.

Buy:  reference * (1 + bps/10000), rounded UP to the next valid step
Sell: reference * (1 - bps/10000), rounded DOWN to the previous valid step

The valid step is the candidate tick size, widened to the venue's
significant-figure step when that is coarser (max 5 sig figs; integer
prices are always allowed). Rounding always keeps the limit at least as
marketable as the unrounded value.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR
from typing import Optional
from exchange.models import Direction, ErrorCode
from trading.errors import InvalidTradeIntent, InvariantViolation, NoPriceAvailable, TickNotViable
import logging

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = Decimal("10000")
TICK_EPSILON = Decimal("1e-9")
DEFAULT_MAX_SIG_FIGS = 5


def apply_slippage(reference: Decimal, direction: Direction, slippage_bps: int) -> Decimal:
    factor = Decimal(slippage_bps) / BPS_DENOMINATOR
    if direction.is_buy:
        return reference * (Decimal("1") + factor)
    return reference * (Decimal("1") - factor)


def sig_fig_step(price: Decimal, max_sig_figs: int) -> Decimal:
    """Smallest increment that keeps `price` within max_sig_figs (never above 1)."""
    step = Decimal(1).scaleb(price.adjusted() - max_sig_figs + 1)
    return min(step, Decimal("1"))


def price_step(price: Decimal, tick_size: Decimal, max_sig_figs: Optional[int]) -> Decimal:
    if max_sig_figs is None:
        return tick_size
    step = sig_fig_step(price, max_sig_figs)
    if step <= tick_size:
        return tick_size
    if step % tick_size != 0:
        raise TickNotViable(
            f"significant-figure step {step} is not a multiple of tick size {tick_size}"
        )
    return step


def snap_to_tick(price: Decimal, tick_size: Decimal, direction: Direction) -> Decimal:
    rounding = ROUND_CEILING if direction.is_buy else ROUND_FLOOR
    return (price / tick_size).to_integral_value(rounding=rounding) * tick_size


def is_tick_multiple(price: Decimal, tick_size: Decimal) -> bool:
    remainder = price % tick_size
    return abs(remainder) <= TICK_EPSILON or abs(tick_size - abs(remainder)) <= TICK_EPSILON


def compute_limit_price(
    reference: Decimal,
    direction: Direction,
    slippage_bps: int,
    tick_size: Decimal,
    max_sig_figs: Optional[int] = DEFAULT_MAX_SIG_FIGS,
) -> Decimal:
    """
    Compute a marketable IOC limit price for the given tick size.

    Raises TickNotViable when this tick size cannot give a positive price
    (e.g. a sell below one tick floors to zero); the caller moves on to the
    next candidate. Raises InvariantViolation only if the snapped price is
    still off-tick after one corrective re-snap.
    """
    if tick_size <= 0:
        raise TickNotViable(f"tick size must be positive, got {tick_size}")
    if reference <= 0:
        raise NoPriceAvailable(f"reference price must be positive, got {reference}")

    raw = apply_slippage(reference, direction, slippage_bps)
    if raw <= 0:
        raise InvalidTradeIntent(
            f"slippage of {slippage_bps} bps leaves no positive limit price (reference={reference})"
        )

    price = snap_to_tick(raw, price_step(raw, tick_size, max_sig_figs), direction)

    if not is_tick_multiple(price, tick_size):
        logger.warning(f"[PRICE] {price} drifted off tick {tick_size}. Re-snapping...")
        price = snap_to_tick(price, tick_size, direction)
        if not is_tick_multiple(price, tick_size):
            raise InvariantViolation(
                f"limit price {price} is not a multiple of tick size {tick_size}"
            )

    if price <= 0:
        raise TickNotViable(
            f"tick {tick_size} floors the limit price to {price} (reference={reference}, bps={slippage_bps})"
        )

    return price


def quantize_size(size: Decimal, size_decimals: int) -> Decimal:
    """Round order quantity down to the asset's size decimals."""
    step = Decimal(1).scaleb(-size_decimals)
    qty = size.quantize(step, rounding=ROUND_DOWN)
    if qty <= 0:
        raise InvalidTradeIntent(
            f"size {size} rounds to zero at {size_decimals} decimals",
            code=ErrorCode.MIN_SIZE,
        )
    return qty


def format_decimal(value: Decimal) -> str:
    """Wire format: plain notation, no trailing zeros."""
    text = format(value.normalize(), "f")
    return text if text != "-0" else "0"
