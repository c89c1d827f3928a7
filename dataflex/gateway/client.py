"""
DataFlex — Database Gateway Client
───────────────────────────────────
Thin async client for the hosted database's REST gateway
(PostgREST dialect: ?agent_id=eq.X&status=in.(a,b)&order=created_at.desc).

Owns no state beyond the httpx client handed to it. Transport errors and
timeouts are retried with backoff; HTTP errors are raised as GatewayError
straight away.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from dataflex.config import Settings
from dataflex.errors import GatewayError
from dataflex.retry import is_connection_error, retry_with_backoff

log = logging.getLogger("dfx.gateway")

REST_PATH = "/rest/v1"


def eq(value: Any) -> str:
    return f"eq.{value}"


def in_(values: Iterable[Any]) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"


class GatewayClient:

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self._client   = client
        self._settings = settings
        self._base     = f"{settings.gateway_url}{REST_PATH}"
        self._headers  = {
            "apikey":        settings.gateway_key,
            "Authorization": f"Bearer {settings.gateway_key}",
            "Accept":        "application/json",
        }

    # ══════════════════════════════════════════════════════════
    # HTTP
    # ══════════════════════════════════════════════════════════
    async def _request(self, method: str, table: str, params: dict,
                       json: Optional[dict] = None, prefer: Optional[str] = None) -> List[dict]:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        url = f"{self._base}/{table}"

        async def _once() -> List[dict]:
            r = await self._client.request(
                method, url, params=params, json=json, headers=headers,
                timeout=self._settings.request_timeout,
            )
            if r.status_code >= 400:
                log.warning(f"HTTP {r.status_code} from {method} {table}: {r.text[:200]}")
                raise GatewayError(f"{method} {table} failed: {r.text[:200]}", status=r.status_code)
            if not r.content:
                return []
            data = r.json()
            return data if isinstance(data, list) else [data]

        try:
            return await retry_with_backoff(
                _once,
                max_retries=self._settings.retry_attempts,
                base_delay=self._settings.retry_delay,
                should_retry=lambda e: not isinstance(e, GatewayError) and is_connection_error(e),
            )
        except httpx.HTTPError as e:
            log.error(f"{method} {table} unreachable: {e}")
            raise GatewayError(f"{method} {table} unreachable: {e}") from e

    async def select(self, table: str, columns: str = "*", **filters: Any) -> List[dict]:
        params: Dict[str, Any] = {"select": columns}
        params.update({k: v for k, v in filters.items() if v is not None})
        return await self._request("GET", table, params)

    async def update(self, table: str, values: dict, **filters: Any) -> List[dict]:
        if not filters:
            raise ValueError("Refusing to update without a filter")
        return await self._request("PATCH", table, dict(filters), json=values,
                                   prefer="return=representation")

    async def ping(self) -> bool:
        try:
            await self.select("agents", "id", limit=1)
            return True
        except GatewayError as e:
            log.warning(f"Gateway ping failed: {e}")
            return False

    # ══════════════════════════════════════════════════════════
    # COMMISSIONS
    # ══════════════════════════════════════════════════════════
    async def fetch_commissions(self, agent_id: str, status: Optional[str] = None) -> List[dict]:
        return await self.select(
            "commissions", agent_id=eq(agent_id),
            status=eq(status) if status else None,
            order="created_at.asc",
        )

    async def fetch_commissions_for_agents(self, agent_ids: List[str]) -> List[dict]:
        if not agent_ids:
            return []
        return await self.select("commissions", agent_id=in_(agent_ids))

    async def fetch_commissions_for_withdrawal(self, withdrawal_id: str) -> List[dict]:
        return await self.select("commissions", withdrawal_id=eq(withdrawal_id))

    async def set_commission_status(self, ids: List[str], values: dict,
                                    expected_statuses: Optional[List[str]] = None) -> List[dict]:
        """
        PATCH the given rows and return those actually changed. With
        `expected_statuses`, rows whose status moved on in the meantime are
        left alone and missing from the result.
        """
        if not ids:
            return []
        filters = {"id": in_(ids)}
        if expected_statuses:
            filters["status"] = in_(expected_statuses)
        return await self.update("commissions", values, **filters)

    # ══════════════════════════════════════════════════════════
    # AGENTS & WITHDRAWALS
    # ══════════════════════════════════════════════════════════
    async def fetch_agent(self, agent_id: str, columns: str = "*") -> Optional[dict]:
        rows = await self.select("agents", columns, id=eq(agent_id), limit=1)
        return rows[0] if rows else None

    async def fetch_agents(self, limit: int, offset: int) -> List[dict]:
        return await self.select(
            "agents", "id,full_name,phone_number,wallet_balance,isapproved,created_at",
            order="created_at.desc", limit=limit, offset=offset,
        )

    async def fetch_withdrawals(self, agent_id: str, statuses: Optional[List[str]] = None,
                                order: str = "requested_at.desc", limit: Optional[int] = None) -> List[dict]:
        return await self.select(
            "withdrawals", agent_id=eq(agent_id),
            status=in_(statuses) if statuses else None,
            order=order, limit=limit,
        )

    async def fetch_recent(self, table: str, agent_id: str, columns: str = "*", limit: int = 5) -> List[dict]:
        return await self.select(table, columns, agent_id=eq(agent_id),
                                 order="created_at.desc", limit=limit)
