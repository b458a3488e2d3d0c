"""
Relay integration.

Order submission to the 1inch orderbook, lifecycle tracking and status polling.
"""

from .client import RelayClient, RelayOrderState, classify_rejection, parse_order_state
from .manager import OrderLifecycleManager, StatusPoller

__all__ = [
    "RelayClient",
    "RelayOrderState",
    "classify_rejection",
    "parse_order_state",
    "OrderLifecycleManager",
    "StatusPoller",
]
