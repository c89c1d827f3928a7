"""
Commission/wallet ledger arithmetic. Pure functions only, no I/O.

    from dataflex.ledger import CommissionRecord, summarize_commissions
    summary = summarize_commissions([CommissionRecord.from_row(r) for r in rows])
"""

from .aggregation import (
    apply_legacy_fallback, breakdown_by_source, commission_total, recent_commissions, summarize_commissions,
)
from .calculation import (
    CommissionCalculation, batch_calculate, calculate_commission,
    format_cedi, format_commission, verify_stored_commission,
)
from .constraints import ConstraintResult, clamp, meets_constraints, validate_for_insert
from .models import CommissionRecord, CommissionSummary, LegacyAgentTotals
from .withdrawals import (
    Eligibility, check_withdrawal_eligibility, select_commissions_to_lock, transition,
)

__all__ = [
    "CommissionCalculation", "CommissionRecord", "CommissionSummary", "ConstraintResult",
    "Eligibility", "LegacyAgentTotals", "apply_legacy_fallback",
    "batch_calculate", "breakdown_by_source", "calculate_commission", "check_withdrawal_eligibility", "clamp",
    "commission_total", "format_cedi", "format_commission", "meets_constraints",
    "recent_commissions", "select_commissions_to_lock", "summarize_commissions",
    "transition", "validate_for_insert", "verify_stored_commission",
]
