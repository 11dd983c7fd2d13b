"""
Synchronous call-and-return binding.

The request and the reply share one call frame: ``invoke`` blocks until the
dispatcher has produced a Response and returns it encoded. The wait is bounded
by the configured timeout; past it the caller gets a "gateway unavailable"
failure and the still-running dispatch's late reply is dropped.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ..dispatcher import UNAVAILABLE_MESSAGE, Dispatcher
from ..models import Payload, Response, decode_response, encode_response, recover_request_id
from .base import DiscardSink, SlotSink

logger = logging.getLogger(__name__)

TRANSPORT = "sync"


class SyncBinding:
    def __init__(self, dispatcher: Dispatcher, executor: ThreadPoolExecutor, timeout_s: float = 5.0):
        self.dispatcher = dispatcher
        self._executor = executor
        self.timeout_s = timeout_s

    def invoke(self, payload: Payload, timeout_s: Optional[float] = None) -> str:
        """Dispatch and wait for the encoded Response."""
        timeout = self.timeout_s if timeout_s is None else timeout_s
        request_id = recover_request_id(payload) or ""
        sink = SlotSink()
        try:
            self._executor.submit(
                self.dispatcher.dispatch, payload, sink, correlated=True, transport=TRANSPORT
            )
        except RuntimeError as exc:
            # Executor already shut down.
            logger.warning("sync invoke rejected: %s", exc)
            response = self.dispatcher.reject(payload, DiscardSink(), correlated=True, transport=TRANSPORT)
            return encode_response(response or Response.failure(request_id, UNAVAILABLE_MESSAGE))

        encoded = sink.wait(timeout)
        if encoded is None:
            logger.warning("sync invoke %s timed out after %.2fs", request_id or "<no id>", timeout)
            return encode_response(Response.failure(request_id, UNAVAILABLE_MESSAGE))
        return encoded

    def call(self, payload: Payload, timeout_s: Optional[float] = None) -> Response:
        return decode_response(self.invoke(payload, timeout_s))
