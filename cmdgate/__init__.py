"""
CMDGATE - Command gateway for LLM-driven capability calls

An external controller invokes named capabilities inside this process and
gets a structured result back, over any of four invocation shapes:
- fire-and-forget signal (reply discarded)
- flat extras + opaque callback handle
- synchronous call-and-return with a timeout
- addressed message + caller-supplied reply mailbox

Components:
- models.py: canonical Request/Response envelope and its JSON codec
- state.py: persistent per-day clock-in ledger (SQLite)
- capabilities.py: the three clock-in handlers and their registry
- trace.py: append-only JSONL latency trace
- dispatcher.py: parse, route, handle, notify, encode, reply; traced per step
- transports/: one binding per invocation shape
- gateway.py: process wiring shared by every binding
- api_server.py: FastAPI surface
- cli.py: operator CLI (invoke, status, bench, trace)
"""

__version__ = "0.1.0"

# Lazy imports - only import what's needed when used
def __getattr__(name):
    if name == "Request":
        from .models import Request
        return Request
    elif name == "Response":
        from .models import Response
        return Response
    elif name == "Status":
        from .models import Status
        return Status
    elif name == "ClockStore":
        from .state import ClockStore
        return ClockStore
    elif name == "TraceLogger":
        from .trace import TraceLogger
        return TraceLogger
    elif name == "Dispatcher":
        from .dispatcher import Dispatcher
        return Dispatcher
    elif name == "Gateway":
        from .gateway import Gateway
        return Gateway
    elif name == "GatewaySettings":
        from .config import GatewaySettings
        return GatewaySettings
    elif name == "load_settings":
        from .config import load_settings
        return load_settings
    elif name == "GatewayError":
        from .errors import GatewayError
        return GatewayError
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "__version__",
    # Protocol
    "Request",
    "Response",
    "Status",
    # Stores
    "ClockStore",
    "TraceLogger",
    # Dispatch
    "Dispatcher",
    "Gateway",
    # Config
    "GatewaySettings",
    "load_settings",
    # Errors
    "GatewayError",
]
