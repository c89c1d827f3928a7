"""
DataFlex — Errors
──────────────────
Every exception raised by the package derives from DataFlexError.
"""

from typing import Optional


class DataFlexError(Exception):
    pass


class GatewayError(DataFlexError):
    """Non-2xx response (or exhausted retries) from the hosted database gateway."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status  = status
        self.message = message


class CommissionConstraintError(DataFlexError):
    """Commission amount rejected before it reaches persistence."""


class InvalidTransitionError(DataFlexError):
    def __init__(self, status: str, event: str):
        super().__init__(f"Cannot apply '{event}' to a commission in status '{status}'")
        self.status = status
        self.event  = event
