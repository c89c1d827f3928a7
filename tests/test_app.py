import pytest
from fastapi.testclient import TestClient

from app import app, get_cache, get_gateway
from conftest import commission
from dataflex.cache import RequestCache
from dataflex.errors import GatewayError


@pytest.fixture
def client(gateway, cache):
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_cache] = lambda: cache
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client, gateway):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["cache"] == {"size": 0, "pending": 0}

    gateway.reachable = False
    assert client.get("/health").json()["gateway"] == "unavailable"


class TestCommissionSummary:

    def test_requires_agent_id(self, client):
        r = client.get("/api/agent/commission-summary")
        assert r.status_code == 400
        assert r.json()["detail"] == "Agent ID is required"

    def test_returns_summary(self, client, gateway):
        gateway.commissions = [
            commission("c1", 0.2, source_type="referral"),
            commission("c2", 0.9),
        ]
        body = client.get("/api/agent/commission-summary", params={"agentId": "a1"}).json()
        assert body["availableBalance"] == 0.6
        assert body["breakdown"]["referral"] == 0.2
        assert body["anomalies"] == ["c2"]
        assert len(body["recentCommissions"]) == 2

    def test_gateway_failure_still_answers(self, client, gateway, gateway_error):
        gateway.fail_with = gateway_error
        r = client.get("/api/agent/commission-summary", params={"agentId": "a1"})
        assert r.status_code == 200
        assert r.json()["totalEarned"] == 0.0


def test_dashboard_gateway_error_maps_to_502(client, gateway):
    gateway.fail_with = GatewayError("relation does not exist", status=404)
    r = client.get("/api/agent/a1/dashboard")
    assert r.status_code == 502
    assert r.json()["error"] == "Upstream database error"


class TestWithdrawals:

    def test_eligibility(self, client, gateway):
        gateway.commissions = [commission("c1", 0.3)]
        body = client.get("/api/agent/a1/withdrawal-eligibility", params={"amount": 1}).json()
        assert body == {
            "eligible": False,
            "availableAmount": 0.3,
            "shortfall": 0.7,
            "message": "Insufficient commission balance. Need GH₵0.70 more",
        }

    def test_request_then_complete(self, client, gateway):
        gateway.commissions = [commission("c1", 0.3), commission("c2", 0.2, created_at="2025-01-05T00:00:00Z")]
        r = client.post("/api/agent/a1/withdrawals", json={"withdrawal_id": "w1", "amount": 0.25})
        assert r.status_code == 200
        assert r.json()["commissionIds"] == ["c1"]

        r = client.post("/api/withdrawals/w1/complete")
        assert r.status_code == 200
        assert gateway.commissions[0]["status"] == "withdrawn"
        assert "withdrawn_at" in gateway.commissions[0]

    def test_request_refused_when_short(self, client, gateway):
        gateway.commissions = [commission("c1", 0.1)]
        r = client.post("/api/agent/a1/withdrawals", json={"withdrawal_id": "w1", "amount": 5})
        assert r.status_code == 400
        assert gateway.updates == []

    def test_cancel_unknown_withdrawal(self, client):
        assert client.post("/api/withdrawals/nope/cancel").status_code == 404


def test_admin_dashboard_and_ranking(client, gateway):
    gateway.agents = {"a1": {"id": "a1", "full_name": "Ama"}, "a2": {"id": "a2", "full_name": "Kofi"}}
    gateway.commissions = [commission("c1", 0.1, agent_id="a1"), commission("c2", 0.3, agent_id="a2")]

    body = client.get("/api/admin/agents/dashboard", params={"limit": 10}).json()
    assert body["count"] == 2
    assert body["totals"]["totalEarned"] == 0.4

    ranking = client.get("/api/admin/agents/ranking").json()
    assert [r["agentId"] for r in ranking["ranking"]] == ["a2", "a1"]

    assert client.get("/api/admin/agents/dashboard", params={"limit": 500}).status_code == 422


class TestBulkOrders:

    def test_validates_each_row(self, client):
        text = "0241234567 5\n0611234567 2\n0201234567,1GB"
        body = client.post("/api/bulk-orders/validate", json={"text": text}).json()
        assert (body["count"], body["valid"], body["invalid"]) == (3, 2, 1)
        assert body["orders"][0]["network"] == "MTN"
        assert body["orders"][2]["network"] == "Telecel"
        assert body["orders"][1]["raw"] == "0611234567 2"

    def test_rejects_empty_input(self, client):
        assert client.post("/api/bulk-orders/validate", json={"text": "\n\n"}).status_code == 400

    def test_rejects_oversized_batch(self, client):
        text = "\n".join("0241234567 1" for _ in range(501))
        assert client.post("/api/bulk-orders/validate", json={"text": text}).status_code == 400


class TestCacheEndpoints:

    def test_stats_and_invalidate(self, client, gateway, cache: RequestCache):
        gateway.commissions = [commission("c1", 0.2)]
        client.get("/api/agent/commission-summary", params={"agentId": "a1"})
        stats = client.get("/api/cache/stats").json()
        assert stats["cache_size"] == 1
        assert stats["entries"][0]["key"] == "agent:a1:commission-summary"

        r = client.post("/api/cache/invalidate", json={"prefix": "agent:a1:"})
        assert r.json() == {"invalidated": 1}
        assert len(cache) == 0

    def test_invalidate_everything(self, client, cache):
        cache.set("x", 1)
        assert client.post("/api/cache/invalidate", json={}).json() == {"invalidated": "all"}
        assert len(cache) == 0
