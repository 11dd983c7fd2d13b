"""
Gateway Dispatcher

Turns one raw invocation into one Response:

    RECEIVED -> PARSED -> ROUTED -> EXECUTED -> REPLIED
                   \\________\\_________\\-> FAILED -> REPLIED

A request whose id cannot be recovered from the payload or from the binding's
own channel terminates as PARSE_FAILED and is dropped.

Every phase is a trace span (``parse``, ``route``, ``handler``, ``notify``,
``encode``, ``reply``), bracketed by a ``received`` mark and exactly one
terminal span (``replied`` or ``parse_failed``). This is the only place
faults become protocol failures; nothing raised by a handler, notifier or
sink leaves ``dispatch``.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from .capabilities import CapabilityRegistry, HandlerContext, default_registry
from .config import GatewaySettings
from .errors import GatewayError, ReplyDeliveryFailed, UnknownCapability
from .models import (
    UNTRACKED_RUN,
    Payload,
    Request,
    Response,
    decode_request,
    encode_response,
    recover_request_id,
)
from .notifier import Notice, Notifier, NullNotifier, deliver_notice
from .observability import dispatch_span
from .state import ClockStore
from .trace import TraceLogger, now_ns
from .transports.base import ReplySink

logger = logging.getLogger(__name__)

STEP_RECEIVED = "received"
STEP_PARSE = "parse"
STEP_ROUTE = "route"
STEP_HANDLER = "handler"
STEP_NOTIFY = "notify"
STEP_ENCODE = "encode"
STEP_REPLY = "reply"
STEP_REPLIED = "replied"
STEP_PARSE_FAILED = "parse_failed"

TERMINAL_STEPS = frozenset({STEP_REPLIED, STEP_PARSE_FAILED})

UNAVAILABLE_MESSAGE = "gateway unavailable"


class Stage(str, Enum):
    RECEIVED = "received"
    PARSED = "parsed"
    ROUTED = "routed"
    EXECUTED = "executed"
    FAILED = "failed"
    REPLIED = "replied"
    PARSE_FAILED = "parse_failed"


class _RequestTrace:
    """Per-dispatch trace identity; every write is best-effort."""

    def __init__(self, tracer: TraceLogger, request_id: str, transport: str):
        self.tracer = tracer
        self.request_id = request_id
        self.capability = "unknown"
        self.run_index = UNTRACKED_RUN
        self.transport = transport
        self.stage = Stage.RECEIVED

    def adopt(self, request: Request) -> None:
        self.request_id = request.request_id
        self.capability = request.capability_id
        self.run_index = request.run_index

    def _extra(self, extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"transport": self.transport}
        if extra:
            fields.update(extra)
        return fields

    def mark(self, step: str, ts: int, success: bool = True, error: Optional[str] = None,
             extra: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.tracer.mark(self.request_id, self.capability, self.run_index, step, ts,
                             success=success, error=error, extra=self._extra(extra))
        except Exception:
            logger.warning("trace mark %s failed", step, exc_info=True)

    def span(self, step: str, start_ns: int, end_ns: int, success: bool = True,
             error: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.tracer.span(self.request_id, self.capability, self.run_index, step, start_ns, end_ns,
                             success=success, error=error, extra=self._extra(extra))
        except Exception:
            logger.warning("trace span %s failed", step, exc_info=True)


def _fault_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _tag_otel_span(span: Any, response: Optional[Response]) -> None:
    if response is None:
        span.set_attribute("cmdgate.status", Stage.PARSE_FAILED.value)
        return
    span.set_attribute("cmdgate.request_id", response.request_id)
    span.set_attribute("cmdgate.capability", response.capability_id)
    span.set_attribute("cmdgate.status", response.status.value)


class Dispatcher:
    """Routes canonical requests to capability handlers."""

    def __init__(
        self,
        store: ClockStore,
        tracer: TraceLogger,
        notifier: Optional[Notifier] = None,
        registry: Optional[CapabilityRegistry] = None,
        settings: Optional[GatewaySettings] = None,
    ):
        self.store = store
        self.tracer = tracer
        self.notifier = notifier or NullNotifier()
        self.registry = registry or default_registry()
        self.settings = settings
        self._context = HandlerContext.from_settings(store, settings)

    def dispatch(
        self,
        payload: Payload,
        sink: ReplySink,
        *,
        fallback_request_id: Optional[str] = None,
        correlated: bool = False,
        transport: str = "direct",
    ) -> Optional[Response]:
        """Run one invocation end to end and deliver its Response to ``sink``.

        ``fallback_request_id`` is the correlation the binding already has from
        its own channel; it is used only when the payload's id is unusable.
        ``correlated`` says the channel itself pairs the reply with the caller
        (a blocked call frame), so a failure is delivered even with no id at all.
        Returns the Response, or None when the request was dropped.
        """
        with dispatch_span(transport) as otel_span:
            response = self._dispatch(payload, sink, fallback_request_id, correlated, transport)
            if otel_span is not None:
                _tag_otel_span(otel_span, response)
            return response

    def reject(
        self,
        payload: Payload,
        sink: ReplySink,
        *,
        fallback_request_id: Optional[str] = None,
        correlated: bool = False,
        transport: str = "direct",
        message: str = UNAVAILABLE_MESSAGE,
    ) -> Optional[Response]:
        """Answer an invocation the gateway could not schedule, without running it.

        The request still gets its ``received`` mark and one terminal span; a
        correlatable request also gets a failure Response through ``sink``.
        """
        trace = _RequestTrace(self.tracer, fallback_request_id or "", transport)
        received_ns = now_ns()
        try:
            request = decode_request(payload)
        except GatewayError as exc:
            trace.request_id = (
                getattr(exc, "request_id", None)
                or recover_request_id(payload)
                or fallback_request_id
                or ""
            )
        else:
            trace.adopt(request)
        trace.mark(STEP_RECEIVED, received_ns)
        trace.stage = Stage.FAILED
        if not trace.request_id and not correlated:
            trace.stage = Stage.PARSE_FAILED
            trace.span(STEP_PARSE_FAILED, received_ns, now_ns(), success=False, error=message,
                       extra={"error_code": "unavailable"})
            return None
        capability = "" if trace.capability == "unknown" else trace.capability
        return self._reply(Response.failure(trace.request_id, message, capability), sink, trace, received_ns)

    def _dispatch(
        self,
        payload: Payload,
        sink: ReplySink,
        fallback_request_id: Optional[str],
        correlated: bool,
        transport: str,
    ) -> Optional[Response]:
        trace = _RequestTrace(self.tracer, fallback_request_id or "", transport)
        received_ns = now_ns()
        start = now_ns()
        try:
            request = decode_request(payload)
        except GatewayError as exc:
            parsed_ns = now_ns()
            request_id = (
                getattr(exc, "request_id", None)
                or recover_request_id(payload)
                or fallback_request_id
            )
            trace.request_id = request_id or ""
            trace.mark(STEP_RECEIVED, received_ns)
            trace.stage = Stage.FAILED
            trace.span(STEP_PARSE, start, parsed_ns, success=False, error=exc.message,
                       extra={"error_code": exc.code})
            if not request_id and not correlated:
                logger.warning("dropping %s request without a correlatable id: %s", transport, exc.message)
                trace.stage = Stage.PARSE_FAILED
                trace.span(STEP_PARSE_FAILED, received_ns, now_ns(), success=False, error=exc.message,
                           extra={"error_code": exc.code})
                return None
            response = Response.failure(request_id or "", exc.message)
        else:
            parsed_ns = now_ns()
            trace.adopt(request)
            trace.mark(STEP_RECEIVED, received_ns)
            trace.stage = Stage.PARSED
            trace.span(STEP_PARSE, start, parsed_ns)
            response = self._execute(request, trace)

        return self._reply(response, sink, trace, received_ns)

    def _execute(self, request: Request, trace: _RequestTrace) -> Response:
        start = now_ns()
        try:
            handler = self.registry.resolve(request.capability_id)
        except UnknownCapability as exc:
            logger.info("unknown capability %r for request %s", request.capability_id, request.request_id)
            trace.stage = Stage.FAILED
            trace.span(STEP_ROUTE, start, now_ns(), success=False, error=exc.message,
                       extra={"error_code": exc.code})
            return Response.failure(request.request_id, exc.message, request.capability_id)
        trace.stage = Stage.ROUTED
        trace.span(STEP_ROUTE, start, now_ns())

        start = now_ns()
        try:
            result = handler(request.args, self._context)
        except GatewayError as exc:
            trace.stage = Stage.FAILED
            trace.span(STEP_HANDLER, start, now_ns(), success=False, error=exc.message,
                       extra={"error_code": exc.code})
            return Response.failure(request.request_id, exc.message, request.capability_id)
        except Exception as exc:
            logger.exception("capability %s raised for request %s", request.capability_id, request.request_id)
            message = _fault_text(exc)
            trace.stage = Stage.FAILED
            trace.span(STEP_HANDLER, start, now_ns(), success=False, error=message,
                       extra={"error_code": "handler_fault"})
            return Response.failure(request.request_id, message, request.capability_id)
        trace.stage = Stage.EXECUTED
        trace.span(STEP_HANDLER, start, now_ns())

        if result.notices:
            self._notify(result.notices, trace)

        return Response.success(request.request_id, request.capability_id, result.message, result.output)

    def _notify(self, notices: List[Notice], trace: _RequestTrace) -> None:
        start = now_ns()
        try:
            for notice in notices:
                deliver_notice(self.notifier, notice)
        except Exception as exc:
            # The capability already ran; a lost UI notification does not undo it.
            logger.exception("notifier failed for request %s", trace.request_id)
            trace.span(STEP_NOTIFY, start, now_ns(), success=False, error=_fault_text(exc))
            return
        trace.span(STEP_NOTIFY, start, now_ns(),
                   extra={"notices": [n.kind.value for n in notices]})

    def _reply(self, response: Response, sink: ReplySink, trace: _RequestTrace, received_ns: int) -> Response:
        start = now_ns()
        try:
            encoded = encode_response(response)
        except (TypeError, ValueError) as exc:
            trace.span(STEP_ENCODE, start, now_ns(), success=False, error=_fault_text(exc))
            trace.stage = Stage.FAILED
            response = Response.failure(response.request_id, f"could not encode response: {exc}",
                                        response.capability_id)
            encoded = encode_response(response)
        else:
            trace.span(STEP_ENCODE, start, now_ns(), extra={"bytes": len(encoded)})

        start = now_ns()
        delivery_error: Optional[str] = None
        try:
            sink.send(encoded)
        except ReplyDeliveryFailed as exc:
            delivery_error = exc.message
        except Exception as exc:
            delivery_error = _fault_text(exc)
        if delivery_error is not None:
            logger.warning("reply for %s not delivered over %s: %s",
                           response.request_id, trace.transport, delivery_error)
        trace.span(STEP_REPLY, start, now_ns(), success=delivery_error is None, error=delivery_error)

        last_stage = trace.stage
        trace.stage = Stage.REPLIED
        ok = response.succeeded and delivery_error is None
        error = None
        if not response.succeeded:
            error = response.message
        elif delivery_error is not None:
            error = delivery_error
        trace.span(STEP_REPLIED, received_ns, now_ns(), success=ok, error=error,
                   extra={"status": response.status.value, "last_stage": last_stage.value,
                          "delivered": delivery_error is None})
        return response
