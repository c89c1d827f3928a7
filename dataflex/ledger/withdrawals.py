"""
DataFlex — Withdrawal Arithmetic
─────────────────────────────────
Pure helpers behind the withdrawal flow:

  1. check_withdrawal_eligibility()  — is there enough available balance?
  2. select_commissions_to_lock()    — oldest earned rows first
  3. transition()                    — the only legal status moves

    earned ──lock──▶ pending_withdrawal ──complete──▶ withdrawn
       ▲                    │
       └──────cancel────────┘
    pending ──confirm──▶ earned
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Tuple

from dataflex.errors import InvalidTransitionError
from dataflex.ledger.aggregation import effective_amount
from dataflex.ledger.calculation import format_commission
from dataflex.ledger.models import (
    EARNED, PENDING, PENDING_WITHDRAWAL, WITHDRAWN, ZERO,
    CommissionRecord, CommissionSummary, to_decimal,
)

log = logging.getLogger("dfx.ledger.withdrawals")

LOCK     = "lock"
COMPLETE = "complete"
CANCEL   = "cancel"
CONFIRM  = "confirm"

# (from_status, event) -> to_status
TRANSITIONS: Dict[Tuple[str, str], str] = {
    (EARNED,             LOCK):     PENDING_WITHDRAWAL,
    (PENDING_WITHDRAWAL, COMPLETE): WITHDRAWN,
    (EARNED,             COMPLETE): WITHDRAWN,
    (PENDING_WITHDRAWAL, CANCEL):   EARNED,
    (PENDING,            CONFIRM):  EARNED,
}


def transition(status: str, event: str) -> str:
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransitionError(status, event) from None


def can_transition(status: str, event: str) -> bool:
    return (status, event) in TRANSITIONS


@dataclass(frozen=True)
class Eligibility:
    eligible:  bool
    available: Decimal
    shortfall: Decimal
    message:   str

    def to_dict(self) -> dict:
        return {
            "eligible":        self.eligible,
            "availableAmount": float(self.available),
            "shortfall":       float(self.shortfall),
            "message":         self.message,
        }


def check_withdrawal_eligibility(summary: CommissionSummary, requested: Any) -> Eligibility:
    amount = to_decimal(requested)
    if amount is None or amount <= ZERO:
        return Eligibility(False, ZERO, ZERO, "Invalid parameters")

    available = summary.available_balance
    if available >= amount:
        return Eligibility(True, available, ZERO, "Sufficient commission balance for withdrawal")

    shortfall = amount - available
    return Eligibility(
        False, available, shortfall,
        f"Insufficient commission balance. Need GH₵{format_commission(shortfall)} more",
    )


def select_commissions_to_lock(records: Sequence[CommissionRecord], amount: Any) -> List[CommissionRecord]:
    """
    Oldest earned commissions first, until their sum covers `amount`.
    The last row may overshoot; commissions are never split.
    """
    remaining = to_decimal(amount) or ZERO
    if remaining <= ZERO:
        return []

    earned = sorted(
        (r for r in records if r.status == EARNED),
        key=lambda r: r.created_at or "",
    )
    selected: List[CommissionRecord] = []
    for record in earned:
        if remaining <= ZERO:
            break
        selected.append(record)
        remaining -= effective_amount(record)[0]

    if remaining > ZERO:
        log.info(f"Earned commissions fall {remaining} short of the requested amount")
    return selected
