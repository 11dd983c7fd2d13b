"""
Extras + callback-handle binding.

The caller starts the gateway with a flat bag of extras:

    mcp_command_json   flat command, {"capability": "<id>", "<arg>": <value>, ...}
    mcp_request_id     correlation id chosen by the caller
    mcp_callback       opaque handle; the reply goes back through it
    trace_run_index    optional benchmark run index

The reply is a second bag, ``{"mcp_request_id", "result_json"}``, sent through
the exact handle that came in. A handle may be invalidated at any time; that
is traced as a reply fault and otherwise ignored. Extras without a handle are
still run and traced, with the reply recorded as undelivered.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Mapping, Optional, Protocol

from ..dispatcher import Dispatcher
from ..errors import ReplyDeliveryFailed
from ..models import UNTRACKED_RUN, Payload
from .base import ReplySink

logger = logging.getLogger(__name__)

TRANSPORT = "extras"

EXTRA_COMMAND_JSON = "mcp_command_json"
EXTRA_REQUEST_ID = "mcp_request_id"
EXTRA_CALLBACK = "mcp_callback"
EXTRA_TRACE_CAPABILITY = "trace_capability"
EXTRA_TRACE_RUN_INDEX = "trace_run_index"
EXTRA_RESULT_JSON = "result_json"


class CallbackHandle(Protocol):
    def send(self, extras: Dict[str, Any]) -> None: ...


class HandleSink:
    def __init__(self, handle: CallbackHandle, request_id: str):
        self.handle = handle
        self.request_id = request_id

    def send(self, encoded: str) -> None:
        try:
            self.handle.send({EXTRA_REQUEST_ID: self.request_id, EXTRA_RESULT_JSON: encoded})
        except ReplyDeliveryFailed:
            raise
        except Exception as exc:
            raise ReplyDeliveryFailed(f"callback handle rejected reply: {exc}") from exc


class MissingHandleSink:
    """Stands in for a callback handle the caller never supplied."""

    def send(self, encoded: str) -> None:
        raise ReplyDeliveryFailed("no callback handle to reply through")


def _run_index(raw: Any) -> int:
    if isinstance(raw, bool):
        return UNTRACKED_RUN
    try:
        return int(raw)
    except (TypeError, ValueError):
        return UNTRACKED_RUN


def adapt_flat_command(command_json: str, request_id: str, run_index: int = UNTRACKED_RUN) -> Payload:
    """Rewrite a flat command into the canonical envelope.

    Anything that does not decode to an object is returned unchanged so the
    dispatcher reports it as a malformed payload.
    """
    try:
        command = json.loads(command_json)
    except (TypeError, ValueError):
        return command_json
    if not isinstance(command, dict):
        return command_json

    capability = command.get("capability")
    if isinstance(capability, dict):
        # Already enveloped; only the correlation id is imposed.
        envelope = dict(command)
        envelope["id"] = request_id
        envelope.setdefault("run_index", run_index)
        return envelope

    args = {k: v for k, v in command.items() if k != "capability"}
    return {
        "id": request_id,
        "capability": {"id": capability if isinstance(capability, str) else "", "args": args},
        "run_index": run_index,
    }


class ExtrasBinding:
    def __init__(self, dispatcher: Dispatcher, executor: ThreadPoolExecutor):
        self.dispatcher = dispatcher
        self._executor = executor

    def start_command(self, extras: Mapping[str, Any]) -> Optional[Future]:
        """Accept one invocation; returns the dispatch future.

        Incomplete extras still go through the dispatcher so every request
        leaves a terminal trace record: without a request id it ends as
        ``parse_failed``, without a callback handle its reply is traced as
        undelivered. Returns None only when the gateway is already closed.
        """
        command_json = extras.get(EXTRA_COMMAND_JSON)
        request_id = str(extras.get(EXTRA_REQUEST_ID) or "")
        handle = extras.get(EXTRA_CALLBACK)
        if not command_json or not request_id or handle is None:
            logger.error("extras invocation %s is missing its command, request id or callback",
                         request_id or "<no id>")

        run_index = _run_index(extras.get(EXTRA_TRACE_RUN_INDEX, UNTRACKED_RUN))
        payload = adapt_flat_command(command_json, request_id, run_index)
        sink: ReplySink = HandleSink(handle, request_id) if handle is not None else MissingHandleSink()
        fallback = request_id or None
        logger.debug("extras command %s (%s): %s", request_id, extras.get(EXTRA_TRACE_CAPABILITY, "?"), command_json)
        try:
            return self._executor.submit(
                self.dispatcher.dispatch,
                payload,
                sink,
                fallback_request_id=fallback,
                transport=TRANSPORT,
            )
        except RuntimeError as exc:
            logger.warning("extras command %s rejected: %s", request_id or "<no id>", exc)
            self.dispatcher.reject(payload, sink, fallback_request_id=fallback, transport=TRANSPORT)
            return None
