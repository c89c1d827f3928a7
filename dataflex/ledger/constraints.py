"""
DataFlex — Commission Constraints
──────────────────────────────────
Every commission record must satisfy 0 <= amount <= 0.4 (GH₵).

Two enforcement points:
  - write path: validate_for_insert() raises, the row never reaches the DB
  - read path:  clamp() pulls a non-conformant stored value into range

This service only reads commissions, so only the read path runs here.
validate_for_insert() is library API for whichever job inserts rows.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from dataflex.errors import CommissionConstraintError
from dataflex.ledger.models import to_decimal

log = logging.getLogger("dfx.ledger.constraints")

COMMISSION_MIN   = Decimal("0")
COMMISSION_MAX   = Decimal("0.4")
CLAMP_FLOOR      = Decimal("0.01")


@dataclass(frozen=True)
class ConstraintResult:
    valid: bool
    error: Optional[str] = None


def meets_constraints(amount: Any) -> ConstraintResult:
    d = to_decimal(amount)
    if d is None:
        return ConstraintResult(False, f"Commission {amount!r} is not a valid number")
    if d < COMMISSION_MIN:
        return ConstraintResult(False, f"Commission {d} is below minimum {COMMISSION_MIN}")
    if d > COMMISSION_MAX:
        return ConstraintResult(False, f"Commission {d} exceeds maximum {COMMISSION_MAX}")
    return ConstraintResult(True)


def clamp(amount: Decimal) -> Decimal:
    return max(CLAMP_FLOOR, min(COMMISSION_MAX, amount))


def validate_for_insert(amount: Any) -> Decimal:
    """Return the amount as Decimal, or raise CommissionConstraintError."""
    result = meets_constraints(amount)
    if not result.valid:
        log.warning(f"Rejected commission insert: {result.error}")
        raise CommissionConstraintError(result.error)
    return to_decimal(amount)
