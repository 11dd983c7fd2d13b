"""
cmdgate test configuration: isolated stores, trace files and gateways.
"""
import sys
import time
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from cmdgate.config import GatewaySettings
from cmdgate.dispatcher import Dispatcher
from cmdgate.gateway import Gateway
from cmdgate.notifier import RecordingNotifier
from cmdgate.state import ClockStore
from cmdgate.trace import TraceLogger
from cmdgate.transports.base import CallableSink

FIXED_TODAY = date(2024, 3, 5)


@pytest.fixture
def store(tmp_path):
    return ClockStore(tmp_path / "clock_log.db", today=lambda: FIXED_TODAY)


@pytest.fixture
def tracer(tmp_path):
    return TraceLogger(tmp_path / "latency_trace.jsonl")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(store, tracer, notifier):
    return Dispatcher(store=store, tracer=tracer, notifier=notifier)


@pytest.fixture
def settings(tmp_path):
    return GatewaySettings(
        state_path=tmp_path / "clock_log.db",
        trace_path=tmp_path / "latency_trace.jsonl",
        sync_timeout_s=5.0,
        worker_threads=4,
    )


@pytest.fixture
def gateway(settings, store, tracer, notifier):
    """Started gateway sharing the store/tracer/notifier fixtures."""
    gw = Gateway(settings, notifier=notifier, store=store, tracer=tracer)
    gw.start()
    yield gw
    gw.close()


@pytest.fixture
def replies():
    """A sink that keeps every encoded reply; returns (sink, list)."""
    received = []
    return CallableSink(received.append), received


def steps_of(tracer, request_id):
    """Step names for one request, in start order."""
    return [r["step"] for r in tracer.waterfall(request_id)]


def wait_until(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
