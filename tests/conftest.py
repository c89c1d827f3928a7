"""Shared fixtures: a controllable clock and an in-memory fake gateway."""

import asyncio
from typing import Callable, Dict, List, Optional

import pytest

from dataflex.cache import RequestCache
from dataflex.errors import GatewayError


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """Implements the GatewayClient methods the services use, over plain lists."""

    def __init__(self):
        self.commissions: List[dict] = []
        self.agents: Dict[str, dict] = {}
        self.withdrawals: List[dict] = []
        self.tables: Dict[str, List[dict]] = {"referrals": [], "data_orders": [], "wholesale_orders": []}
        self.calls: Dict[str, int] = {}
        self.updates: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.fail_once: Dict[str, Exception] = {}
        self.before: Dict[str, Callable[[], None]] = {}
        self.delay: float = 0.0
        self.reachable = True

    async def _track(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if name in self.fail_once:
            raise self.fail_once.pop(name)
        if name in self.before:
            self.before.pop(name)()

    async def ping(self) -> bool:
        return self.reachable

    async def fetch_commissions(self, agent_id, status=None):
        await self._track("fetch_commissions")
        rows = [c for c in self.commissions if c["agent_id"] == agent_id]
        if status:
            rows = [c for c in rows if c.get("status") == status]
        return sorted(rows, key=lambda c: c.get("created_at") or "")

    async def fetch_commissions_for_agents(self, agent_ids):
        await self._track("fetch_commissions_for_agents")
        return [c for c in self.commissions if c["agent_id"] in agent_ids]

    async def fetch_commissions_for_withdrawal(self, withdrawal_id):
        await self._track("fetch_commissions_for_withdrawal")
        return [c for c in self.commissions if c.get("withdrawal_id") == withdrawal_id]

    async def set_commission_status(self, ids, values, expected_statuses=None):
        await self._track("set_commission_status")
        self.updates.append((list(ids), dict(values)))
        changed = []
        for c in self.commissions:
            if c["id"] in ids and (not expected_statuses or c.get("status") in expected_statuses):
                c.update(values)
                changed.append(c)
        return changed

    async def fetch_agent(self, agent_id, columns="*"):
        await self._track("fetch_agent")
        return self.agents.get(agent_id)

    async def fetch_agents(self, limit, offset):
        await self._track("fetch_agents")
        return list(self.agents.values())[offset:offset + limit]

    async def fetch_withdrawals(self, agent_id, statuses=None, order="requested_at.desc", limit=None):
        await self._track("fetch_withdrawals")
        rows = [w for w in self.withdrawals if w["agent_id"] == agent_id]
        if statuses:
            rows = [w for w in rows if w.get("status") in statuses]
        return rows[:limit] if limit else rows

    async def fetch_recent(self, table, agent_id, columns="*", limit=5):
        await self._track(f"fetch_recent:{table}")
        return [r for r in self.tables.get(table, []) if r["agent_id"] == agent_id][:limit]


def commission(id, amount, status="earned", agent_id="a1", source_type="data_order",
               created_at="2025-01-01T00:00:00Z", withdrawal_id=None) -> dict:
    return {
        "id": id, "agent_id": agent_id, "source_type": source_type, "source_id": f"src-{id}",
        "amount": amount, "status": status, "created_at": created_at, "withdrawal_id": withdrawal_id,
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> RequestCache:
    return RequestCache(clock=clock)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def gateway_error() -> GatewayError:
    return GatewayError("boom", status=500)
