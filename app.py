import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dataflex import __version__
from dataflex.cache import RequestCache
from dataflex.config import load_settings
from dataflex.errors import GatewayError
from dataflex.gateway import GatewayClient
from dataflex.phone import parse_bulk_orders, validate_bulk_order_row
from dataflex.services import CommissionService, DashboardService

settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
log = logging.getLogger("dfx.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    http_client = httpx.AsyncClient(
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        timeout=settings.request_timeout,
    )
    app.state.settings = settings
    app.state.gateway  = GatewayClient(http_client, settings)
    app.state.cache    = RequestCache()
    log.info(f"Gateway: {settings.gateway_url}")
    yield
    app.state.cache.clear()
    await http_client.aclose()


app = FastAPI(
    title="DataFlex Ghana Earnings API",
    description="Agent commission summaries, dashboards and withdrawal checks.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Dependencies ───────────────────────────────────────────────

def get_cache(request: Request) -> RequestCache:
    return request.app.state.cache


def get_gateway(request: Request) -> GatewayClient:
    return request.app.state.gateway


def get_commission_service(
    gateway: GatewayClient = Depends(get_gateway),
    cache: RequestCache = Depends(get_cache),
) -> CommissionService:
    return CommissionService(gateway, cache)


def get_dashboard_service(
    gateway: GatewayClient = Depends(get_gateway),
    cache: RequestCache = Depends(get_cache),
    commissions: CommissionService = Depends(get_commission_service),
) -> DashboardService:
    return DashboardService(gateway, cache, commissions)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    log.error(f"Gateway error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=502, content={"error": "Upstream database error", "detail": exc.message})


# ── Request bodies ─────────────────────────────────────────────

class WithdrawalRequest(BaseModel):
    withdrawal_id: str
    amount: float


class InvalidateRequest(BaseModel):
    key: Optional[str] = None
    prefix: Optional[str] = None


class BulkOrdersRequest(BaseModel):
    text: str
    network: Optional[str] = None
    skip_header: bool = False


# ── Routes ─────────────────────────────────────────────────────

@app.get("/")
async def root():
    return {"status": "ok", "docs": "/docs", "api": "/api/agent/commission-summary?agentId=<id>"}


@app.get("/health")
async def health(
    gateway: GatewayClient = Depends(get_gateway),
    cache: RequestCache = Depends(get_cache),
):
    reachable = await gateway.ping()
    return {
        "status":    "healthy" if reachable else "degraded",
        "gateway":   "connected" if reachable else "unavailable",
        "cache":     {"size": len(cache), "pending": cache.pending_count()},
        "timestamp": int(time.time()),
    }


@app.get("/api/agent/commission-summary", tags=["Commissions"])
async def commission_summary(
    agent_id: Optional[str] = Query(None, alias="agentId"),
    service: CommissionService = Depends(get_commission_service),
):
    if not agent_id:
        raise HTTPException(400, "Agent ID is required")
    result = await service.agent_commissions(agent_id)
    return result.to_dict()


@app.get("/api/agent/{agent_id}/dashboard", tags=["Dashboards"])
async def agent_dashboard(agent_id: str, service: DashboardService = Depends(get_dashboard_service)):
    dashboard = await service.agent_dashboard(agent_id)
    return dashboard.to_dict()


@app.get("/api/agent/{agent_id}/withdrawal-eligibility", tags=["Withdrawals"])
async def withdrawal_eligibility(
    agent_id: str,
    amount: float = Query(..., description="Requested withdrawal amount in GH₵"),
    service: CommissionService = Depends(get_commission_service),
):
    eligibility = await service.withdrawal_eligibility(agent_id, amount)
    return eligibility.to_dict()


@app.post("/api/agent/{agent_id}/withdrawals", tags=["Withdrawals"])
async def request_withdrawal(
    agent_id: str,
    body: WithdrawalRequest,
    service: CommissionService = Depends(get_commission_service),
):
    eligibility = await service.withdrawal_eligibility(agent_id, body.amount)
    if not eligibility.eligible:
        raise HTTPException(400, eligibility.message)
    result = await service.request_withdrawal(agent_id, body.withdrawal_id, body.amount)
    if not result.success:
        raise HTTPException(409, result.message)
    return result.to_dict()


@app.post("/api/withdrawals/{withdrawal_id}/complete", tags=["Withdrawals"])
async def complete_withdrawal(withdrawal_id: str, service: CommissionService = Depends(get_commission_service)):
    result = await service.complete_withdrawal(withdrawal_id, datetime.now(timezone.utc).isoformat())
    if not result.success:
        raise HTTPException(404, result.message)
    return result.to_dict()


@app.post("/api/withdrawals/{withdrawal_id}/cancel", tags=["Withdrawals"])
async def cancel_withdrawal(withdrawal_id: str, service: CommissionService = Depends(get_commission_service)):
    result = await service.cancel_withdrawal(withdrawal_id)
    if not result.success:
        raise HTTPException(404, result.message)
    return result.to_dict()


@app.get("/api/admin/agents/dashboard", tags=["Dashboards"])
async def admin_dashboard(
    limit: int = Query(100, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: DashboardService = Depends(get_dashboard_service),
):
    dashboard = await service.admin_dashboard(limit, offset)
    return dashboard.to_dict()


@app.get("/api/admin/agents/ranking", tags=["Dashboards"])
async def agent_ranking(
    limit: int = Query(5, ge=1, le=50),
    service: DashboardService = Depends(get_dashboard_service),
):
    ranking = await service.agent_ranking(limit)
    return {"count": len(ranking), "ranking": ranking}


@app.post("/api/bulk-orders/validate", tags=["Orders"])
async def validate_bulk_orders(body: BulkOrdersRequest):
    rows = parse_bulk_orders(body.text, skip_header=body.skip_header)
    if not rows:
        raise HTTPException(400, "No orders provided")
    if len(rows) > 500:
        raise HTTPException(400, "Maximum 500 orders per request")
    results: List[dict] = []
    for row in rows:
        checked = validate_bulk_order_row(row["phone"], row["capacity"], body.network)
        checked["raw"] = row["raw"]
        results.append(checked)
    valid = sum(1 for r in results if r["valid"])
    return {"count": len(results), "valid": valid, "invalid": len(results) - valid, "orders": results}


@app.get("/api/cache/stats", tags=["Cache"])
async def cache_stats(cache: RequestCache = Depends(get_cache)):
    return cache.stats()


@app.post("/api/cache/invalidate", tags=["Cache"])
async def cache_invalidate(body: InvalidateRequest, cache: RequestCache = Depends(get_cache)):
    if body.key:
        cache.invalidate(body.key)
        return {"invalidated": 1}
    if body.prefix:
        return {"invalidated": cache.invalidate_prefix(body.prefix)}
    cache.clear()
    return {"invalidated": "all"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=settings.port, reload=False, log_level="info")
