"""
Controller-side connectors for the gateway.

- gateway_client.py: httpx client for the HTTP surface
- result_bus.py: correlates callback-handle replies with waiting callers
"""

from .gateway_client import GatewayAsyncClient, GatewayClient
from .result_bus import PendingResult, ResultBus, ResultBusHandle, ResultPayload

__all__ = [
    "GatewayClient",
    "GatewayAsyncClient",
    "ResultBus",
    "ResultBusHandle",
    "ResultPayload",
    "PendingResult",
]
