"""
Pre-trade bound checks and estimates.

Margin and liquidation figures are simplified estimates: they ignore fees,
funding and maintenance margin. Liquidation uses the cross-margin
approximation:
  Long  ≈ entry * (1 - 1/leverage)
  Short ≈ entry * (1 + 1/leverage)
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional
from exchange.models import Direction, MAX_LEVERAGE, TradeIntent
from trading.errors import InvalidTradeIntent

ZERO = Decimal("0")


def estimate_margin(price: Decimal, size: Decimal, leverage: Decimal) -> Decimal:
    """(size * price) / leverage, or 0 for invalid inputs."""
    if price is None or size is None or leverage is None:
        return ZERO
    if price <= 0 or size <= 0 or leverage <= 0:
        return ZERO
    return size * price / leverage


def estimate_liquidation_price(
    entry_price: Decimal,
    leverage: Decimal,
    direction: Optional[Direction],
) -> Decimal:
    if entry_price is None or leverage is None or direction is None:
        return ZERO
    if entry_price <= 0 or leverage <= 0:
        return ZERO

    inverse = Decimal("1") / leverage
    if direction is Direction.LONG:
        liq = entry_price * (Decimal("1") - inverse)
    else:
        liq = entry_price * (Decimal("1") + inverse)
    return max(ZERO, liq)


def suggest_direction(
    prediction_price: Optional[Decimal],
    current_price: Optional[Decimal],
) -> Optional[Direction]:
    """LONG if the prediction is above the market, SHORT if below, else None."""
    if prediction_price is None or current_price is None:
        return None
    if prediction_price <= 0 or current_price <= 0:
        return None
    if prediction_price > current_price:
        return Direction.LONG
    if prediction_price < current_price:
        return Direction.SHORT
    return None


def validate_intent(intent: TradeIntent, max_leverage: Decimal = MAX_LEVERAGE):
    """Bounds tighter than the model's own (e.g. a lower configured max leverage)."""
    if intent.size <= 0:
        raise InvalidTradeIntent(f"size must be positive, got {intent.size}")
    if not (ZERO < intent.leverage <= max_leverage):
        raise InvalidTradeIntent(f"leverage {intent.leverage} outside (0, {max_leverage}]")
    if intent.slippage_bps < 0:
        raise InvalidTradeIntent(f"slippage {intent.slippage_bps} bps is negative")
    if not intent.direction.is_buy and intent.slippage_bps >= 10000:
        raise InvalidTradeIntent(f"sell slippage {intent.slippage_bps} bps leaves no positive limit price")
