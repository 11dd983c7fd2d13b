"""
One-way signal binding.

The caller names a capability and walks away: there is no reply channel, so
the Response is traced and discarded. Used for trigger-only commands such as
``clock_in_today``.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

from ..dispatcher import Dispatcher
from ..models import UNTRACKED_RUN, Request
from .base import DiscardSink

logger = logging.getLogger(__name__)

TRANSPORT = "oneway"


class OneWayBinding:
    def __init__(self, dispatcher: Dispatcher, executor: ThreadPoolExecutor):
        self.dispatcher = dispatcher
        self._executor = executor
        self._sink = DiscardSink()

    def signal(
        self,
        capability_id: str,
        args: Optional[Dict[str, Any]] = None,
        *,
        run_index: int = UNTRACKED_RUN,
        request_id: Optional[str] = None,
    ) -> Tuple[str, Optional[Future]]:
        """Fire a capability. Returns the request id and the dispatch future.

        The future is None when the gateway is already closed; the request is
        then traced as a "gateway unavailable" failure and nothing runs.
        """
        if not capability_id:
            raise ValueError("capability id must not be empty")
        rid = request_id or uuid.uuid4().hex
        payload = Request(rid, capability_id, dict(args or {}), run_index).to_dict()
        logger.debug("one-way signal %s for %s", rid, capability_id)
        try:
            future = self._executor.submit(self.dispatcher.dispatch, payload, self._sink, transport=TRANSPORT)
        except RuntimeError as exc:
            logger.warning("one-way signal %s rejected: %s", rid, exc)
            self.dispatcher.reject(payload, self._sink, transport=TRANSPORT)
            return rid, None
        return rid, future
