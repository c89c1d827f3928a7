from .client import GatewayClient

__all__ = ["GatewayClient"]
