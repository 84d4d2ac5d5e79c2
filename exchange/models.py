"""
Data models for the execution engine.
Prices, sizes and leverage are Decimal throughout.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional
from datetime import datetime, timezone


class Direction(Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def is_buy(self) -> bool:
        return self is Direction.LONG


class MarginMode(Enum):
    CROSS = "cross"
    ISOLATED = "isolated"


class ErrorCode(Enum):
    CATALOG_UNAVAILABLE = "CATALOG_UNAVAILABLE"
    UNKNOWN_ASSET = "UNKNOWN_ASSET"
    NO_PRICE_AVAILABLE = "NO_PRICE_AVAILABLE"
    LEVERAGE_CONFIG_FAILED = "LEVERAGE_CONFIG_FAILED"
    TICK_SIZE = "TICK_SIZE"
    TICK_SIZE_EXHAUSTED = "TICK_SIZE_EXHAUSTED"
    INSUFFICIENT_MARGIN = "INSUFFICIENT_MARGIN"
    MIN_SIZE = "MIN_SIZE"
    LEVERAGE_LIMIT = "LEVERAGE_LIMIT"
    AUTHENTICATION = "AUTHENTICATION"
    ORDER_REJECTED = "ORDER_REJECTED"
    TRANSPORT = "TRANSPORT"
    TIMED_OUT = "TIMED_OUT"
    INVALID_INTENT = "INVALID_INTENT"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"


class ExecutionState(Enum):
    IDLE = "IDLE"
    RESOLVING = "RESOLVING"
    PRICING_AND_LEVERAGE = "PRICING_AND_LEVERAGE"
    NEGOTIATING = "NEGOTIATING"
    TERMINAL = "TERMINAL"


class Treatment(Enum):
    """How a terminal outcome is presented to the user."""
    SUCCESS = "success"
    REJECTED = "rejected"
    AMBIGUOUS = "ambiguous"


MAX_LEVERAGE = Decimal("40")


@dataclass(frozen=True)
class AssetDescriptor:
    """Resolved venue asset. Immutable once cached."""
    symbol: str
    exchange_index: int
    size_decimals: int
    ambiguous: bool = False
    tick_size_hint: Optional[Decimal] = None


@dataclass(frozen=True)
class PriceQuote:
    asset_index: int
    mark_price: Decimal
    observed_at: datetime
    stale: bool = False     # True when served from the last-known-good fallback


@dataclass(frozen=True)
class TradeIntent:
    """User-confirmed trade request. Never mutated."""
    asset_symbol: str
    direction: Direction
    size: Decimal
    leverage: Decimal
    slippage_bps: int = 200
    client_order_id: Optional[str] = None

    def __post_init__(self):
        if not self.asset_symbol:
            raise ValueError("asset_symbol is required")
        if self.size <= 0:
            raise ValueError(f"size must be positive, got {self.size}")
        if not (Decimal("0") < self.leverage <= MAX_LEVERAGE):
            raise ValueError(f"leverage must be in (0, {MAX_LEVERAGE}], got {self.leverage}")
        if self.slippage_bps < 0:
            raise ValueError(f"slippage_bps must be >= 0, got {self.slippage_bps}")


@dataclass(frozen=True)
class OrderRequest:
    """Wire-ready IOC order."""
    asset_index: int
    is_buy: bool
    size: Decimal
    limit_price: Decimal
    time_in_force: str = "Ioc"
    reduce_only: bool = False
    client_order_id: Optional[str] = None


@dataclass(frozen=True)
class OrderAttempt:
    """One tick-size candidate tried by the negotiation loop."""
    intent: TradeIntent
    candidate_tick_size: Decimal
    limit_price: Decimal
    resolved_asset: AssetDescriptor


# ==================== Outcomes ====================

@dataclass(frozen=True)
class OrderOutcome:
    """Base of the closed outcome variant. Use the subclasses below."""

    status = "unknown"
    is_success = False
    treatment = Treatment.REJECTED

    @property
    def order_id(self) -> Optional[str]:
        return None

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return None

    @property
    def message(self) -> str:
        return ""


@dataclass(frozen=True)
class Filled(OrderOutcome):
    oid: str
    avg_price: Decimal
    filled_size: Decimal

    status = "filled"
    is_success = True
    treatment = Treatment.SUCCESS

    @property
    def order_id(self) -> Optional[str]:
        return self.oid

    @property
    def message(self) -> str:
        return f"Filled {self.filled_size} @ {self.avg_price} (order {self.oid})"


@dataclass(frozen=True)
class Resting(OrderOutcome):
    oid: str

    status = "resting"
    is_success = True
    treatment = Treatment.SUCCESS

    @property
    def order_id(self) -> Optional[str]:
        return self.oid

    @property
    def message(self) -> str:
        return f"Order {self.oid} accepted but not immediately filled"


@dataclass(frozen=True)
class Rejected(OrderOutcome):
    reason: str
    code: ErrorCode = ErrorCode.ORDER_REJECTED
    last_error: Optional[str] = None

    status = "rejected"

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return self.code

    @property
    def message(self) -> str:
        if self.last_error:
            return f"{self.reason}: {self.last_error}"
        return self.reason


@dataclass(frozen=True)
class TransportError(OrderOutcome):
    detail: str
    code: ErrorCode = ErrorCode.TRANSPORT

    status = "transport_error"

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return self.code

    @property
    def message(self) -> str:
        return self.detail


@dataclass(frozen=True)
class TimedOut(OrderOutcome):
    deadline_sec: float = 0.0

    status = "timed_out"
    treatment = Treatment.AMBIGUOUS

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return ErrorCode.TIMED_OUT

    @property
    def message(self) -> str:
        return (
            f"No venue response within {self.deadline_sec:g}s. The order may still "
            f"rest or fill. Check your positions before retrying."
        )


@dataclass
class TradeLogRecord:
    """Append-only record of one execution attempt."""
    symbol: str
    direction: Direction
    size: Decimal
    entry_price: Decimal
    status: str
    exchange_order_id: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None
