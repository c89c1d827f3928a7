from .commissions import AgentCommissions, CommissionService, WithdrawalResult
from .dashboard import AdminDashboard, AgentDashboard, DashboardService

__all__ = [
    "AdminDashboard", "AgentCommissions", "AgentDashboard",
    "CommissionService", "DashboardService", "WithdrawalResult",
]
