"""
DataFlex — Commission Service
──────────────────────────────
Glue between the gateway, the ledger arithmetic and the request cache.

Reads go through RequestCache.get_or_fetch(), so a burst of dashboard
loads for one agent costs one set of gateway calls. Every mutation
drops the agent's cached views before returning.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from dataflex.cache import RequestCache, TTL
from dataflex.cache.ttl_config import agent_prefix, key_commission_summary
from dataflex.errors import GatewayError
from dataflex.gateway import GatewayClient
from dataflex.ledger import (
    CommissionRecord, CommissionSummary, Eligibility, LegacyAgentTotals, apply_legacy_fallback,
    check_withdrawal_eligibility, recent_commissions,
    select_commissions_to_lock, summarize_commissions, transition,
)
from dataflex.ledger.models import EARNED, PENDING_WITHDRAWAL, ZERO, to_decimal
from dataflex.ledger.withdrawals import CANCEL, COMPLETE, LOCK, can_transition

log = logging.getLogger("dfx.services.commissions")

IN_FLIGHT_WITHDRAWAL_STATUSES = ["requested", "processing"]


@dataclass
class AgentCommissions:
    summary: CommissionSummary
    recent:  List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = self.summary.to_dict()
        d["recentCommissions"] = self.recent
        return d


@dataclass
class WithdrawalResult:
    success: bool
    message: str
    commission_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message, "commissionIds": self.commission_ids}


class CommissionService:

    def __init__(self, gateway: GatewayClient, cache: RequestCache):
        self._gateway = gateway
        self._cache   = cache

    # ── Reads ─────────────────────────────────────────────────

    async def _load(self, agent_id: str) -> AgentCommissions:
        rows = await self._gateway.fetch_commissions(agent_id)
        records = [CommissionRecord.from_row(r) for r in rows]

        summary = summarize_commissions(records)
        if summary.total_commissions == ZERO:
            legacy = LegacyAgentTotals.from_row(
                await self._gateway.fetch_agent(agent_id, "totalcommissions,totalpaidout")
            )
            if legacy is not None:
                pending_withdrawals = await self._gateway.fetch_withdrawals(
                    agent_id, IN_FLIGHT_WITHDRAWAL_STATUSES
                )
                summary = apply_legacy_fallback(summary, legacy, pending_withdrawals)
        if summary.anomalies:
            log.warning(f"Agent {agent_id}: {len(summary.anomalies)} commission(s) clamped into range")
        return AgentCommissions(summary=summary, recent=recent_commissions(records))

    async def load_commissions(self, agent_id: str) -> AgentCommissions:
        """Cached commission view for one agent. GatewayError propagates."""
        return await self._cache.get_or_fetch(
            key_commission_summary(agent_id),
            lambda: self._load(agent_id),
            TTL["commission_summary"],
        )

    async def agent_commissions(self, agent_id: str) -> AgentCommissions:
        """
        Like load_commissions(), but a gateway failure degrades to a zero
        summary (logged, not cached) so the summary endpoint still answers.
        """
        try:
            return await self.load_commissions(agent_id)
        except GatewayError as e:
            log.error(f"Error getting commission summary for agent {agent_id}: {e}")
            return AgentCommissions(summary=CommissionSummary.empty())

    async def summary(self, agent_id: str) -> CommissionSummary:
        return (await self.agent_commissions(agent_id)).summary

    async def withdrawal_eligibility(self, agent_id: str, amount: Any) -> Eligibility:
        return check_withdrawal_eligibility(await self.summary(agent_id), amount)

    # ── Mutations ─────────────────────────────────────────────

    async def request_withdrawal(self, agent_id: str, withdrawal_id: str, amount: Any) -> WithdrawalResult:
        """Lock the oldest earned commissions covering `amount` against a withdrawal."""
        requested = to_decimal(amount)
        if not agent_id or not withdrawal_id or requested is None or requested <= ZERO:
            return WithdrawalResult(False, "Invalid parameters")

        rows = await self._gateway.fetch_commissions(agent_id, status=EARNED)
        selected = select_commissions_to_lock([CommissionRecord.from_row(r) for r in rows], requested)
        if not selected:
            return WithdrawalResult(False, "No earned commissions available for withdrawal")

        ids = [r.id for r in selected]
        locked = await self._gateway.set_commission_status(
            ids, {"status": transition(EARNED, LOCK), "withdrawal_id": withdrawal_id},
            expected_statuses=[EARNED],
        )
        self._cache.invalidate_prefix(agent_prefix(agent_id))

        # Another request locked some of these rows between our read and our write.
        if len(locked) < len(ids):
            locked_ids = [row["id"] for row in locked]
            if locked_ids:
                await self._gateway.set_commission_status(
                    locked_ids,
                    {"status": transition(PENDING_WITHDRAWAL, CANCEL), "withdrawal_id": None},
                    expected_statuses=[PENDING_WITHDRAWAL],
                )
            log.warning(f"Withdrawal {withdrawal_id}: only {len(locked_ids)} of {len(ids)} commissions "
                        f"could be locked, released them")
            return WithdrawalResult(False, "Commissions changed while locking, please retry")

        log.info(f"Locked {len(ids)} commissions for withdrawal {withdrawal_id}")
        return WithdrawalResult(True, f"Successfully locked {len(ids)} commissions for withdrawal", ids)

    async def _settle_withdrawal(self, withdrawal_id: str, event: str, extra: dict) -> WithdrawalResult:
        if not withdrawal_id:
            return WithdrawalResult(False, "Withdrawal ID is required")

        records = [CommissionRecord.from_row(r)
                   for r in await self._gateway.fetch_commissions_for_withdrawal(withdrawal_id)]
        movable = [r for r in records if can_transition(r.status, event)]
        if not movable:
            return WithdrawalResult(False, f"No commissions to {event} for withdrawal {withdrawal_id}")

        # All movable rows share a target status for a given event.
        values = {"status": transition(movable[0].status, event), **extra}
        moved = await self._gateway.set_commission_status(
            [r.id for r in movable], values,
            expected_statuses=sorted({r.status for r in movable}),
        )
        ids = [row["id"] for row in moved]
        if not ids:
            return WithdrawalResult(False, f"No commissions to {event} for withdrawal {withdrawal_id}")

        for agent_id in {r.agent_id for r in movable}:
            self._cache.invalidate_prefix(agent_prefix(agent_id))
        log.info(f"{event}: moved {len(ids)} commissions for withdrawal {withdrawal_id}")
        return WithdrawalResult(True, f"Withdrawal {event} applied to {len(ids)} commissions", ids)

    async def complete_withdrawal(self, withdrawal_id: str, now_iso: Optional[str] = None) -> WithdrawalResult:
        extra = {"withdrawn_at": now_iso} if now_iso else {}
        return await self._settle_withdrawal(withdrawal_id, COMPLETE, extra)

    async def cancel_withdrawal(self, withdrawal_id: str) -> WithdrawalResult:
        return await self._settle_withdrawal(withdrawal_id, CANCEL, {"withdrawal_id": None})
