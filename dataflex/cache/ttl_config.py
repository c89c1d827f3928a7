"""
DataFlex — TTL Configuration
─────────────────────────────
Single source of truth for all cache durations (seconds).
Organised by view — how often the underlying rows change and how
expensive the view is to rebuild.
"""

# ── Per view TTL (seconds) ────────────────────────────────────

TTL = {
    # Agent-facing: must reflect a new order or withdrawal quickly
    "commission_summary": 60,         # 1 minute
    "agent_dashboard":    2 * 60,     # 2 minutes

    # Admin-facing aggregates, heavy joins
    "admin_dashboard":    5 * 60,     # 5 minutes
    "agent_ranking":      5 * 60,     # 5 minutes
}

DEFAULT_TTL = 5 * 60

# ── Key builders ──────────────────────────────────────────────
# Every agent-scoped key starts with agent_prefix() so a mutation can
# drop all of them with one invalidate_prefix() call.


def agent_prefix(agent_id: str) -> str:
    return f"agent:{agent_id}:"


def key_commission_summary(agent_id: str) -> str:
    return f"{agent_prefix(agent_id)}commission-summary"


def key_agent_dashboard(agent_id: str) -> str:
    return f"{agent_prefix(agent_id)}dashboard"


def key_admin_dashboard(limit: int, offset: int) -> str:
    return f"agents:dashboard:{limit}:{offset}"


def key_agent_ranking(limit: int) -> str:
    return f"agents:ranking:{limit}"
