"""
Client-side correlation of asynchronous gateway replies.

The controller registers a callback per request id before starting a command;
the reply that comes back through the callback handle is routed to it exactly
once. Replies for ids nobody registered (or already delivered) are dropped.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from cmdgate.errors import HandleCanceled
from cmdgate.models import Response, decode_response
from cmdgate.transports.extras import EXTRA_REQUEST_ID, EXTRA_RESULT_JSON

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultPayload:
    request_id: str
    result_json: str
    receive_ns: int

    def response(self) -> Response:
        return decode_response(self.result_json)


Callback = Callable[[ResultPayload], None]


class ResultBus:
    def __init__(self):
        self._callbacks: Dict[str, Callback] = {}
        self._lock = threading.Lock()

    def register(self, request_id: str, callback: Callback) -> None:
        if not request_id:
            raise ValueError("request_id must be non-empty")
        with self._lock:
            self._callbacks[request_id] = callback

    def deliver(self, payload: ResultPayload) -> bool:
        """Pop and invoke the callback for ``payload.request_id``.

        Returns False when no callback was waiting.
        """
        with self._lock:
            callback = self._callbacks.pop(payload.request_id, None)
        if callback is None:
            logger.debug("no waiter for reply %s", payload.request_id)
            return False
        callback(payload)
        return True

    def discard(self, request_id: str) -> None:
        with self._lock:
            self._callbacks.pop(request_id, None)

    def pending(self) -> int:
        with self._lock:
            return len(self._callbacks)


class ResultBusHandle:
    """Callback handle for the extras binding that feeds a ResultBus.

    ``cancel()`` invalidates the handle; later sends raise HandleCanceled.
    """

    def __init__(self, bus: ResultBus, clock: Callable[[], int] = time.monotonic_ns):
        self.bus = bus
        self._clock = clock
        self._canceled = False

    def cancel(self) -> None:
        self._canceled = True

    @property
    def canceled(self) -> bool:
        return self._canceled

    def send(self, extras: Dict[str, Any]) -> None:
        if self._canceled:
            raise HandleCanceled("callback handle was canceled")
        receive_ns = self._clock()
        request_id = extras.get(EXTRA_REQUEST_ID)
        result_json = extras.get(EXTRA_RESULT_JSON)
        if not isinstance(request_id, str) or not isinstance(result_json, str):
            logger.warning("ignoring reply without request id or result")
            return
        self.bus.deliver(ResultPayload(request_id, result_json, receive_ns))


class PendingResult:
    """Registers for one request id up front; ``wait`` blocks for its reply.

    Create it before starting the command so a fast reply is not missed.
    """

    def __init__(self, bus: ResultBus, request_id: str):
        self.bus = bus
        self.request_id = request_id
        self._done = threading.Event()
        self._payload: Optional[ResultPayload] = None
        bus.register(request_id, self._on_result)

    def _on_result(self, payload: ResultPayload) -> None:
        self._payload = payload
        self._done.set()

    def wait(self, timeout_s: float) -> Optional[ResultPayload]:
        if not self._done.wait(timeout_s):
            self.bus.discard(self.request_id)
            return None
        return self._payload
