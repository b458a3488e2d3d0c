"""Chain access: JSON-RPC client, request gate and contract ABI."""

from .gate import RequestGate
from .rpc import JsonRpcClient

__all__ = [
    "RequestGate",
    "JsonRpcClient",
]
