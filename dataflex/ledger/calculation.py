"""
DataFlex — Commission Calculation
──────────────────────────────────
  commission = round_half_up(rate × order_amount, 2dp)
  0 < commission < 0.01  →  0.01   (smallest amount the DB accepts)

Rates are fractions in [0, 1]; amounts are GH₵.

Library API for the order pipeline that creates commission rows; the
HTTP service never calculates or writes commissions itself.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from dataflex.ledger.models import MONEY_QUANT, ZERO, money, to_decimal

log = logging.getLogger("dfx.ledger.calculation")

MIN_COMMISSION     = MONEY_QUANT
MATCH_TOLERANCE    = Decimal("0.001")
CURRENCY_PREFIX    = "GH₵"


@dataclass(frozen=True)
class CommissionCalculation:
    raw:             Decimal
    rounded:         Decimal
    capped:          Decimal
    applied_minimum: bool


def calculate_commission(order_amount: Any, rate: Any) -> CommissionCalculation:
    amount = to_decimal(order_amount)
    if amount is None or amount < 0:
        raise ValueError(f"Invalid order amount: {order_amount}. Must be a non-negative number.")
    r = to_decimal(rate)
    if r is None or r < 0 or r > 1:
        raise ValueError(f"Invalid commission rate: {rate}. Must be between 0 and 1.")

    raw     = amount * r
    rounded = money(raw)
    capped  = rounded
    applied_minimum = False
    # Sub-cent commissions round to 0.00 but were still earned.
    if raw > ZERO and rounded < MIN_COMMISSION:
        capped = MIN_COMMISSION
        applied_minimum = True

    return CommissionCalculation(raw=raw, rounded=rounded, capped=capped, applied_minimum=applied_minimum)


def batch_calculate(orders: Iterable[dict]) -> Dict[str, CommissionCalculation]:
    """orders: [{"id"?, "amount", "rate"}]. Invalid rows are logged and skipped."""
    results: Dict[str, CommissionCalculation] = {}
    for i, order in enumerate(orders):
        order_id = order.get("id") or f"order_{i}"
        try:
            results[order_id] = calculate_commission(order.get("amount"), order.get("rate"))
        except ValueError as e:
            log.error(f"Error calculating commission for {order_id}: {e}")
    return results


def verify_stored_commission(stored: Any, order_amount: Any, rate: Any) -> dict:
    expected   = calculate_commission(order_amount, rate).capped
    stored_d   = to_decimal(stored) or ZERO
    difference = abs(stored_d - expected)
    is_valid   = difference < MATCH_TOLERANCE
    return {
        "is_valid":   is_valid,
        "expected":   expected,
        "difference": difference,
        "message": (
            f"Commission amount is correct ({stored_d})" if is_valid
            else f"Commission mismatch: stored {stored_d}, expected {expected}, difference {difference}"
        ),
    }


def format_commission(amount: Optional[Any]) -> str:
    d = to_decimal(amount)
    if d is None:
        return "0.00"
    return f"{money(max(ZERO, d)):.2f}"


def format_cedi(amount: Optional[Any]) -> str:
    return f"{CURRENCY_PREFIX} {format_commission(amount)}"
