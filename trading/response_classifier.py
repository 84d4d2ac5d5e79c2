"""
Response Classifier — the only place venue replies are interpreted.

Raw order reply shapes:
  {"status": "ok",  "response": {"type": "order", "data": {"statuses": [
      {"filled": {"totalSz": "0.02", "avgPx": "1891.4", "oid": 77738308}}
    | {"resting": {"oid": 77738308}}
    | {"error": "Price must be divisible by tick size. asset=0"}
  ]}}}
  {"status": "err", "response": "User or API Wallet 0x... does not exist."}

Priority: per-order error → filled → resting. Anything else is an
InvariantViolation. Transport failures never reach this module; the
submitter maps them to TransportError before classification.
"""

from __future__ import annotations
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from exchange.models import ErrorCode, Filled, OrderOutcome, Rejected, Resting
from trading.errors import InvariantViolation

# Lowercased substrings -> code. First match wins.
_ERROR_PATTERNS = (
    (("tick size", "tick_size", "divisible by tick", "price increment"), ErrorCode.TICK_SIZE),
    (("insufficient margin", "not enough margin"), ErrorCode.INSUFFICIENT_MARGIN),
    (("minimum value", "size too small", "invalid size", "min size"), ErrorCode.MIN_SIZE),
    (("leverage",), ErrorCode.LEVERAGE_LIMIT),
    (("does not exist", "signature", "unauthorized", "api wallet", "not authorized"),
     ErrorCode.AUTHENTICATION),
)


def classify_error_message(message: str) -> ErrorCode:
    """Map a venue error string to the closed error taxonomy."""
    text = message.lower()
    for needles, code in _ERROR_PATTERNS:
        if any(n in text for n in needles):
            return code
    return ErrorCode.ORDER_REJECTED


def _first_status(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    response = raw.get("response")
    if not isinstance(response, dict):
        return None
    data = response.get("data")
    if not isinstance(data, dict):
        return None
    statuses = data.get("statuses")
    if not isinstance(statuses, list) or not statuses:
        return None
    status = statuses[0]
    return status if isinstance(status, dict) else None


def _decimal(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvariantViolation(f"unparseable {field_name} in order reply: {value!r}") from e


def classify_order_response(raw: Any) -> OrderOutcome:
    """Deterministically map a raw order reply to exactly one outcome."""
    if not isinstance(raw, dict):
        raise InvariantViolation(f"unrecognized order reply shape: {raw!r}")

    if raw.get("status") == "err":
        reason = str(raw.get("response", "unknown venue error"))
        return Rejected(reason=reason, code=classify_error_message(reason))

    status = _first_status(raw)
    if status is None:
        raise InvariantViolation(f"unrecognized order reply shape: {raw!r}")

    # 1. explicit per-order error
    error = status.get("error")
    if error:
        reason = str(error)
        return Rejected(reason=reason, code=classify_error_message(reason))

    # 2. filled
    filled = status.get("filled")
    if isinstance(filled, dict) and "avgPx" in filled and "totalSz" in filled:
        return Filled(
            oid=str(filled.get("oid", "")),
            avg_price=_decimal(filled["avgPx"], "avgPx"),
            filled_size=_decimal(filled["totalSz"], "totalSz"),
        )

    # 3. resting
    resting = status.get("resting")
    if isinstance(resting, dict) and "oid" in resting:
        return Resting(oid=str(resting["oid"]))

    raise InvariantViolation(f"unrecognized order status: {status!r}")


def is_ok_response(raw: Any) -> bool:
    """True for a non-order action reply (e.g. updateLeverage) that succeeded."""
    return isinstance(raw, dict) and raw.get("status") == "ok"


def error_text(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get("response", raw))
    return str(raw)
