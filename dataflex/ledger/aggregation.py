"""
DataFlex — Commission Aggregation
──────────────────────────────────
Turns one agent's commission rows into the balances the dashboards show.

  total_earned      = Σ amount  where status ∈ {earned, pending_withdrawal, withdrawn}
  total_pending     = Σ amount  where status = pending
  total_withdrawn   = Σ amount  where status = withdrawn
  available_balance = Σ amount  where status = earned

Out-of-range amounts are logged, clamped into [0.01, 0.4] and listed in
summary.anomalies. Unparseable amounts count as 0 and are listed too.

When the rows add up to zero the agent predates the commissions table,
so the legacy agents.totalcommissions / totalpaidout pair is used
instead, minus any withdrawal still in flight.

This never raises: a broken row set yields a zero summary and an error
log, so a dashboard always renders.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from dataflex.ledger.constraints import clamp, meets_constraints
from dataflex.ledger.models import (
    EARNED, PENDING, PENDING_WITHDRAWAL, SOURCE_TYPES, WITHDRAWN, ZERO,
    CommissionRecord, CommissionSummary, LegacyAgentTotals, to_decimal,
)

log = logging.getLogger("dfx.ledger")

EARNED_STATUSES = {EARNED, PENDING_WITHDRAWAL, WITHDRAWN}


def effective_amount(record: CommissionRecord) -> Tuple[Decimal, bool]:
    """Amount to use in sums, and whether it had to be corrected."""
    if record.amount is None:
        log.warning(f"Commission {record.id} has a non-numeric amount, counting it as 0")
        return ZERO, True
    result = meets_constraints(record.amount)
    if result.valid:
        return record.amount, False
    corrected = clamp(record.amount)
    log.warning(f"Commission {record.id} constraint violation: {result.error} (using {corrected})")
    return corrected, True


def commission_total(records: Iterable[CommissionRecord]) -> Decimal:
    return sum((effective_amount(r)[0] for r in records), ZERO)


def breakdown_by_source(records: Iterable[CommissionRecord]) -> Dict[str, Decimal]:
    """Effective amount per source type. Unknown source types get their own key."""
    totals: Dict[str, Decimal] = {s: ZERO for s in SOURCE_TYPES}
    for record in records:
        totals[record.source_type] = totals.get(record.source_type, ZERO) + effective_amount(record)[0]
    return totals


def _sum_withdrawals(pending_withdrawals: Iterable) -> Decimal:
    total = ZERO
    for w in pending_withdrawals:
        raw = w.get("amount") if isinstance(w, dict) else w
        total += to_decimal(raw) or ZERO
    return total


def _legacy_summary(legacy: LegacyAgentTotals, pending_payout: Decimal) -> CommissionSummary:
    available = legacy.totalcommissions - legacy.totalpaidout - pending_payout
    return CommissionSummary(
        total_earned=legacy.totalcommissions,
        total_pending=ZERO,
        total_withdrawn=legacy.totalpaidout,
        available_balance=max(ZERO, available),
        total_commissions=legacy.totalcommissions,
        pending_payout=pending_payout,
        source="legacy",
    )


def apply_legacy_fallback(
    summary: CommissionSummary,
    legacy: Optional[LegacyAgentTotals],
    pending_withdrawals: Iterable = (),
) -> CommissionSummary:
    """Swap a zero summary for the legacy agents-row totals. Anomalies are kept."""
    if summary.total_commissions != ZERO or legacy is None:
        return summary
    log.info("No commissions found in commissions table, falling back to legacy totals")
    fallback = _legacy_summary(legacy, _sum_withdrawals(pending_withdrawals))
    fallback.anomalies = list(summary.anomalies)
    return fallback


def summarize_commissions(
    records: Sequence[CommissionRecord],
    legacy: Optional[LegacyAgentTotals] = None,
    pending_withdrawals: Iterable = (),
) -> CommissionSummary:
    """
    Aggregate one agent's commission records.

    `pending_withdrawals` is only consulted for the legacy fallback; it may
    hold withdrawal rows ({"amount": ...}) or bare amounts.
    """
    try:
        summary = CommissionSummary()
        for record in records:
            amount, corrected = effective_amount(record)
            if corrected:
                summary.anomalies.append(record.id)

            summary.total_commissions += amount
            if record.status in EARNED_STATUSES:
                summary.total_earned += amount
            if record.status == PENDING:
                summary.total_pending += amount
            if record.status == WITHDRAWN:
                summary.total_withdrawn += amount
            if record.status == EARNED:
                summary.available_balance += amount
            if record.status == PENDING_WITHDRAWAL:
                summary.pending_payout += amount
            if record.source_type in summary.breakdown:
                summary.breakdown[record.source_type] += amount

        return apply_legacy_fallback(summary, legacy, pending_withdrawals)

    except Exception as e:
        log.error(f"Commission aggregation failed: {e}")
        return CommissionSummary.empty()


def recent_commissions(records: Sequence[CommissionRecord], limit: int = 10) -> List[dict]:
    """Newest first; rows without created_at sort last."""
    ordered = sorted(records, key=lambda r: r.created_at or "", reverse=True)
    return [
        {
            "id":        r.id,
            "amount":    float(r.amount or ZERO),
            "type":      r.source_type,
            "status":    r.status,
            "createdAt": r.created_at,
            "sourceId":  r.source_id,
        }
        for r in ordered[:limit]
    ]
