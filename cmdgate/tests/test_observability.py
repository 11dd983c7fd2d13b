"""Tests for logging setup and the optional OpenTelemetry switch."""
import logging
from contextlib import contextmanager

from cmdgate import observability
from cmdgate.capabilities import QUERY_CLOCK_IN
from cmdgate.models import Request
from cmdgate.observability import configure_logging, configure_observability, dispatch_span, instrument_app


class _RecordedSpan:
    def __init__(self, name, attributes):
        self.name = name
        self.attributes = dict(attributes or {})

    def set_attribute(self, key, value):
        self.attributes[key] = value


class _RecordingTracer:
    """Stands in for an OpenTelemetry tracer; keeps every span it starts."""

    def __init__(self):
        self.spans = []

    @contextmanager
    def start_as_current_span(self, name, attributes=None):
        span = _RecordedSpan(name, attributes)
        self.spans.append(span)
        yield span


def test_configure_logging_is_idempotent(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    configure_logging("debug")
    configure_logging("warning")
    assert len([h for h in root.handlers if getattr(h, "_cmdgate", False)]) == 1
    assert root.level == logging.WARNING


def test_otel_disabled_by_default(monkeypatch):
    monkeypatch.delenv("CMDGATE_OTEL_ENABLED", raising=False)
    assert configure_observability() is False
    assert instrument_app(object()) is False


def test_dispatch_span_is_a_noop_without_tracing(monkeypatch):
    monkeypatch.setattr(observability, "_dispatch_tracer", None)
    with dispatch_span("sync") as span:
        assert span is None


def test_dispatch_is_tagged_when_tracing(monkeypatch, dispatcher, replies):
    otel = _RecordingTracer()
    monkeypatch.setattr(observability, "_dispatch_tracer", otel)
    sink, _ = replies
    dispatcher.dispatch(Request("o1", QUERY_CLOCK_IN, {"date": "2024-03-05"}).to_dict(), sink, transport="sync")
    dispatcher.dispatch("{garbage", sink, transport="oneway")

    tagged, dropped = otel.spans
    assert tagged.name == "cmdgate.dispatch"
    assert tagged.attributes == {
        "cmdgate.transport": "sync",
        "cmdgate.request_id": "o1",
        "cmdgate.capability": QUERY_CLOCK_IN,
        "cmdgate.status": "success",
    }
    assert dropped.attributes == {"cmdgate.transport": "oneway", "cmdgate.status": "parse_failed"}
