"""
Gateway logging and optional OpenTelemetry wiring.

Logging is plain ``logging`` with one module logger per file; this module only
installs the root handler. OpenTelemetry is enabled via environment variables:
- CMDGATE_OTEL_ENABLED=true
- CMDGATE_OTEL_SERVICE_NAME=cmdgate
- CMDGATE_OTEL_EXPORTER=console|otlp
- CMDGATE_OTEL_OTLP_ENDPOINT=https://... (only if exporter=otlp)

With tracing on, every dispatch is a ``cmdgate.dispatch`` span tagged with the
request id, capability, transport and reply status.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from .config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"

# Set by configure_observability; None keeps dispatch_span a no-op.
_dispatch_tracer: Any = None


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(level: Optional[str] = None) -> None:
    """Install a single stream handler on the root logger (idempotent)."""
    resolved = (level or LOG_LEVEL).upper()
    root = logging.getLogger()
    if not any(getattr(h, "_cmdgate", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._cmdgate = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(getattr(logging, resolved, logging.INFO))


def configure_observability() -> bool:
    if not _bool_env("CMDGATE_OTEL_ENABLED", False):
        return False

    service_name = os.environ.get("CMDGATE_OTEL_SERVICE_NAME", "cmdgate")
    exporter = os.environ.get("CMDGATE_OTEL_EXPORTER", "console").lower()

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
    except ImportError:
        logging.getLogger(__name__).warning("CMDGATE_OTEL_ENABLED set but opentelemetry-sdk is not installed")
        return False

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    if exporter == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
            endpoint = os.environ.get("CMDGATE_OTEL_OTLP_ENDPOINT")
            span_exporter = OTLPSpanExporter(endpoint=endpoint) if endpoint else OTLPSpanExporter()
            provider.add_span_processor(BatchSpanProcessor(span_exporter))
        except ImportError:
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    else:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    global _dispatch_tracer
    _dispatch_tracer = trace.get_tracer("cmdgate.dispatcher")
    return True


@contextmanager
def dispatch_span(transport: str) -> Iterator[Any]:
    """Wrap one dispatch in an OpenTelemetry span.

    Yields the live span so the dispatcher can attach the request id,
    capability and reply status once they are known, or None when tracing
    is not configured.
    """
    tracer = _dispatch_tracer
    if tracer is None:
        yield None
        return
    with tracer.start_as_current_span("cmdgate.dispatch", attributes={"cmdgate.transport": transport}) as span:
        yield span


def instrument_app(app) -> bool:
    if not _bool_env("CMDGATE_OTEL_ENABLED", False):
        return False
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.logging import LoggingInstrumentor
    except ImportError:
        return False

    LoggingInstrumentor().instrument(set_logging_format=True)
    FastAPIInstrumentor.instrument_app(app)
    return True
