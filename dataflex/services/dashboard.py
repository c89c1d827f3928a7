"""
DataFlex — Dashboard Loader
────────────────────────────
Agent dashboard: one parallel gateway fan-out, cached per agent. Any
gateway failure in the fan-out fails the whole load, so a zero balance
is never cached into a dashboard.
Admin dashboard: a page of agents with per-agent commission totals,
cached per (limit, offset).

Joined relations are explicit: an agent with no orders yet has empty
lists and a missing agents row is None, never an absent key.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dataflex.cache import RequestCache, TTL
from dataflex.cache.ttl_config import key_admin_dashboard, key_agent_dashboard, key_agent_ranking
from dataflex.gateway import GatewayClient
from dataflex.ledger import CommissionRecord, CommissionSummary, summarize_commissions
from dataflex.ledger.models import money
from dataflex.services.commissions import AgentCommissions, CommissionService

log = logging.getLogger("dfx.services.dashboard")

RECENT_LIMIT      = 5
PAID_LIMIT        = 10
MAX_PAGE_SIZE     = 100


@dataclass
class AgentDashboard:
    agent_id:         str
    commissions:      AgentCommissions
    agent:            Optional[dict] = None
    referrals:        List[dict] = field(default_factory=list)
    data_orders:      List[dict] = field(default_factory=list)
    wholesale_orders: List[dict] = field(default_factory=list)
    withdrawals:      List[dict] = field(default_factory=list)
    paid_withdrawals: List[dict] = field(default_factory=list)

    @property
    def wallet_balance(self) -> Optional[float]:
        if self.agent is None or self.agent.get("wallet_balance") is None:
            return None
        return float(self.agent["wallet_balance"])

    def to_dict(self) -> dict:
        return {
            "agentId":           self.agent_id,
            "commissionSummary": self.commissions.to_dict(),
            "walletBalance":     self.wallet_balance,
            "referrals":         self.referrals,
            "dataOrders":        self.data_orders,
            "wholesaleOrders":   self.wholesale_orders,
            "withdrawals":       self.withdrawals,
            "paidWithdrawals":   self.paid_withdrawals,
        }


@dataclass
class AgentRow:
    agent:   dict
    summary: CommissionSummary

    def to_dict(self) -> dict:
        return {**self.agent, "commissions": self.summary.to_dict()}


@dataclass
class AdminDashboard:
    limit:  int
    offset: int
    agents: List[AgentRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        earned    = sum(a.summary.total_earned for a in self.agents)
        available = sum(a.summary.available_balance for a in self.agents)
        anomalies = sum(len(a.summary.anomalies) for a in self.agents)
        return {
            "limit":  self.limit,
            "offset": self.offset,
            "count":  len(self.agents),
            "totals": {
                "totalEarned":      float(money(earned)) if self.agents else 0.0,
                "availableBalance": float(money(available)) if self.agents else 0.0,
                "anomalies":        anomalies,
            },
            "agents": [a.to_dict() for a in self.agents],
        }


def _clamp_page(limit: int, offset: int):
    return max(1, min(MAX_PAGE_SIZE, limit)), max(0, offset)


class DashboardService:

    def __init__(self, gateway: GatewayClient, cache: RequestCache,
                 commissions: Optional[CommissionService] = None):
        self._gateway     = gateway
        self._cache       = cache
        self._commissions = commissions or CommissionService(gateway, cache)

    # ── Agent ─────────────────────────────────────────────────

    async def _load_agent(self, agent_id: str) -> AgentDashboard:
        g = self._gateway
        (commissions, agent, referrals, data_orders,
         wholesale_orders, withdrawals, paid) = await asyncio.gather(
            self._commissions.load_commissions(agent_id),
            g.fetch_agent(agent_id, "id,wallet_balance"),
            g.fetch_recent("referrals", agent_id, "*,services(title,commission_amount)", RECENT_LIMIT),
            g.fetch_recent("data_orders", agent_id, "*,data_bundles(name,provider,size_gb)", RECENT_LIMIT),
            g.fetch_recent("wholesale_orders", agent_id, "*,wholesale_products(name,price)", RECENT_LIMIT),
            g.fetch_withdrawals(agent_id, limit=RECENT_LIMIT),
            g.fetch_withdrawals(agent_id, ["paid"], order="paid_at.desc", limit=PAID_LIMIT),
        )
        return AgentDashboard(
            agent_id=agent_id,
            commissions=commissions,
            agent=agent,
            referrals=referrals,
            data_orders=data_orders,
            wholesale_orders=wholesale_orders,
            withdrawals=withdrawals,
            paid_withdrawals=paid,
        )

    async def agent_dashboard(self, agent_id: str) -> AgentDashboard:
        return await self._cache.get_or_fetch(
            key_agent_dashboard(agent_id),
            lambda: self._load_agent(agent_id),
            TTL["agent_dashboard"],
        )

    # ── Admin ─────────────────────────────────────────────────

    async def _load_admin(self, limit: int, offset: int) -> AdminDashboard:
        agents = await self._gateway.fetch_agents(limit, offset)
        ids = [str(a["id"]) for a in agents if a.get("id") is not None]
        rows = await self._gateway.fetch_commissions_for_agents(ids)

        by_agent: Dict[str, List[CommissionRecord]] = {i: [] for i in ids}
        for row in rows:
            record = CommissionRecord.from_row(row)
            by_agent.setdefault(record.agent_id, []).append(record)

        return AdminDashboard(
            limit=limit, offset=offset,
            agents=[
                AgentRow(agent=a, summary=summarize_commissions(by_agent.get(str(a.get("id")), [])))
                for a in agents
            ],
        )

    async def admin_dashboard(self, limit: int = 100, offset: int = 0) -> AdminDashboard:
        limit, offset = _clamp_page(limit, offset)
        return await self._cache.get_or_fetch(
            key_admin_dashboard(limit, offset),
            lambda: self._load_admin(limit, offset),
            TTL["admin_dashboard"],
        )

    async def agent_ranking(self, limit: int = 5) -> List[dict]:
        """Top agents by total earned commission, from the first admin page."""
        async def _rank() -> List[dict]:
            page = await self.admin_dashboard(MAX_PAGE_SIZE, 0)
            ranked = sorted(page.agents, key=lambda a: a.summary.total_earned, reverse=True)
            return [
                {"rank": i + 1, "agentId": a.agent.get("id"), "name": a.agent.get("full_name"),
                 "totalEarned": float(money(a.summary.total_earned))}
                for i, a in enumerate(ranked[:limit])
            ]

        return await self._cache.get_or_fetch(key_agent_ranking(limit), _rank, TTL["agent_ranking"])
