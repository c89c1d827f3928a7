"""
DataFlex — Ledger Models
─────────────────────────
Row shapes read from the hosted database, plus the aggregated summary
served to dashboards.

Commission lifecycle:
  pending → earned → pending_withdrawal → withdrawn
Records are never deleted, only status-updated.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

MONEY_QUANT = Decimal("0.01")
ZERO        = Decimal("0")

# ── Statuses ──────────────────────────────────────────────────
PENDING            = "pending"
EARNED             = "earned"
PENDING_WITHDRAWAL = "pending_withdrawal"
WITHDRAWN          = "withdrawn"

STATUSES = (PENDING, EARNED, PENDING_WITHDRAWAL, WITHDRAWN)

# ── Source types ──────────────────────────────────────────────
REFERRAL        = "referral"
DATA_ORDER      = "data_order"
WHOLESALE_ORDER = "wholesale_order"

SOURCE_TYPES = (REFERRAL, DATA_ORDER, WHOLESALE_ORDER)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a numeric column value. None for missing, NaN, infinite or garbage."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))
    if isinstance(value, int):
        return Decimal(value)
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


@dataclass
class CommissionRecord:
    id:              str
    agent_id:        str
    source_type:     str                 # referral | data_order | wholesale_order
    source_id:       Optional[str]
    amount:          Optional[Decimal]   # None when the stored value is not a number
    status:          str                 # pending | earned | pending_withdrawal | withdrawn
    commission_rate: Optional[Decimal] = None
    created_at:      Optional[str] = None
    withdrawal_id:   Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "CommissionRecord":
        return cls(
            id=str(row.get("id", "")),
            agent_id=str(row.get("agent_id", "")),
            source_type=row.get("source_type") or "unknown",
            source_id=row.get("source_id"),
            amount=to_decimal(row.get("amount")),
            status=row.get("status") or PENDING,
            commission_rate=to_decimal(row.get("commission_rate")),
            created_at=row.get("created_at"),
            withdrawal_id=row.get("withdrawal_id"),
        )


@dataclass
class LegacyAgentTotals:
    """Pre-commissions-table aggregates kept on the agents row."""
    totalcommissions: Decimal = ZERO
    totalpaidout:     Decimal = ZERO

    @classmethod
    def from_row(cls, row: Optional[dict]) -> Optional["LegacyAgentTotals"]:
        if not row:
            return None
        return cls(
            totalcommissions=to_decimal(row.get("totalcommissions")) or ZERO,
            totalpaidout=to_decimal(row.get("totalpaidout")) or ZERO,
        )


@dataclass
class CommissionSummary:
    total_earned:      Decimal = ZERO
    total_pending:     Decimal = ZERO
    total_withdrawn:   Decimal = ZERO
    available_balance: Decimal = ZERO
    total_commissions: Decimal = ZERO
    pending_payout:    Decimal = ZERO
    breakdown:         Dict[str, Decimal] = field(
        default_factory=lambda: {s: ZERO for s in SOURCE_TYPES}
    )
    anomalies:         List[str] = field(default_factory=list)   # ids of clamped records
    source:            str = "commissions"                       # commissions | legacy

    @classmethod
    def empty(cls) -> "CommissionSummary":
        return cls()

    def to_dict(self) -> dict:
        return {
            "totalEarned":      float(money(self.total_earned)),
            "totalPending":     float(money(self.total_pending)),
            "totalWithdrawn":   float(money(self.total_withdrawn)),
            "availableBalance": float(money(self.available_balance)),
            "totalCommissions": float(money(self.total_commissions)),
            "pendingPayout":    float(money(self.pending_payout)),
            "breakdown":        {k: float(money(v)) for k, v in self.breakdown.items()},
            "anomalies":        list(self.anomalies),
            "source":           self.source,
        }
