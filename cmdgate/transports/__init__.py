"""
Transport bindings: one adapter per invocation mechanism.

- base.py: reply sinks shared by every binding
- oneway.py: fire-and-forget signal, reply discarded
- extras.py: flat extras + opaque callback handle
- sync.py: blocking call-and-return with a timeout
- messenger.py: addressed inbox + caller-supplied reply mailbox
"""


# Lazy imports: the bindings import the dispatcher, which imports base.
def __getattr__(name):
    if name == "OneWayBinding":
        from .oneway import OneWayBinding
        return OneWayBinding
    elif name == "ExtrasBinding":
        from .extras import ExtrasBinding
        return ExtrasBinding
    elif name == "SyncBinding":
        from .sync import SyncBinding
        return SyncBinding
    elif name == "MessengerBinding":
        from .messenger import MessengerBinding
        return MessengerBinding
    elif name == "MessageRouter":
        from .messenger import MessageRouter
        return MessageRouter
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "OneWayBinding",
    "ExtrasBinding",
    "SyncBinding",
    "MessengerBinding",
    "MessageRouter",
]
