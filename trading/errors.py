"""
Execution error taxonomy.
Every exception carries an ErrorCode so the supervisor can map it to an outcome.
"""

from __future__ import annotations
from typing import Optional
from exchange.models import ErrorCode


class ExecutionError(Exception):
    code = ErrorCode.ORDER_REJECTED

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class CatalogUnavailable(ExecutionError):
    code = ErrorCode.CATALOG_UNAVAILABLE


class UnknownAsset(ExecutionError):
    code = ErrorCode.UNKNOWN_ASSET


class NoPriceAvailable(ExecutionError):
    code = ErrorCode.NO_PRICE_AVAILABLE


class LeverageConfigFailed(ExecutionError):
    code = ErrorCode.LEVERAGE_CONFIG_FAILED


class InvalidTradeIntent(ExecutionError):
    code = ErrorCode.INVALID_INTENT


class TickNotViable(ExecutionError):
    """A tick size that cannot produce a positive marketable limit price for this intent."""
    code = ErrorCode.TICK_SIZE


class VenueTransportError(ExecutionError):
    """Connection refused, per-call timeout, or a body that is not JSON."""
    code = ErrorCode.TRANSPORT


class InvariantViolation(ExecutionError):
    """A logic or data-contract bug. Always fatal, never downgraded."""
    code = ErrorCode.INVARIANT_VIOLATION


class SigningUnavailable(Exception):
    """Pre-flight configuration error: no signing credentials are configured."""


class ExecutionInProgress(Exception):
    """A confirmation arrived while another attempt is still in flight."""
