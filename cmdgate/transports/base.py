"""
Reply sinks: how a binding hands an encoded Response back to its caller.

The dispatcher calls ``sink.send(encoded)`` once per request that has a
correlatable id. A sink signals a lost reply by raising
``ReplyDeliveryFailed`` (or a subclass); the dispatcher traces and swallows it.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol

from ..errors import ReplyDeliveryFailed


class ReplySink(Protocol):
    def send(self, encoded: str) -> None: ...


class DiscardSink:
    """Used by one-way bindings: the Response is traced, then dropped."""

    def send(self, encoded: str) -> None:
        return None


class CallableSink:
    """Adapts a plain callable to the sink interface."""

    def __init__(self, fn: Callable[[str], None]):
        self._fn = fn

    def send(self, encoded: str) -> None:
        try:
            self._fn(encoded)
        except ReplyDeliveryFailed:
            raise
        except Exception as exc:
            raise ReplyDeliveryFailed(f"reply callback failed: {exc}") from exc


class SlotSink:
    """Holds a single reply for a caller that is waiting on it."""

    def __init__(self):
        self._event = threading.Event()
        self._value: Optional[str] = None
        self._abandoned = False
        self._lock = threading.Lock()

    def send(self, encoded: str) -> None:
        with self._lock:
            if self._abandoned:
                raise ReplyDeliveryFailed("caller stopped waiting for the reply")
            self._value = encoded
        self._event.set()

    def wait(self, timeout: float) -> Optional[str]:
        """Return the reply, or None after marking the slot abandoned on timeout."""
        if self._event.wait(timeout):
            return self._value
        with self._lock:
            if self._value is not None:
                return self._value
            self._abandoned = True
        return None
