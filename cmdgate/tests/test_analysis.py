"""Tests for the offline latency summary."""
from cmdgate.analysis import _percentile, summarize


def _step(rid, cap, step, ms, success=True):
    return {
        "record_type": "step", "request_id": rid, "capability": cap, "step": step,
        "duration_ms": ms, "success": success,
    }


def test_percentile_nearest_rank():
    values = [float(v) for v in range(1, 21)]
    assert _percentile(values, 50) == 10.0
    assert _percentile(values, 95) == 19.0
    assert _percentile([], 50) == 0.0


def test_summarize_groups_by_capability_and_step():
    records = [
        _step("a", "query_clock_in", "handler", 1.0),
        _step("b", "query_clock_in", "handler", 3.0),
        _step("c", "query_clock_in", "handler", 2.0, success=False),
        _step("a", "query_clock_in", "parse", 0.5),
        {"record_type": "meta", "runs": 5},
        _step("d", "clock_in_today", "handler", 4.0),
    ]
    rows = summarize(records)
    assert [(r["capability"], r["step"]) for r in rows] == [
        ("clock_in_today", "handler"),
        ("query_clock_in", "handler"),
        ("query_clock_in", "parse"),
    ]
    handler = rows[1]
    assert handler["count"] == 3
    assert handler["requests"] == 3
    assert handler["failures"] == 1
    assert handler["mean_ms"] == 2.0
    assert handler["p50_ms"] == 2.0
    assert handler["max_ms"] == 3.0


def test_summarize_from_real_dispatch(dispatcher, tracer):
    from cmdgate.transports.base import DiscardSink

    for i in range(3):
        dispatcher.dispatch({"id": f"r{i}", "capability": {"id": "clock_in_today"}}, DiscardSink())
    rows = {(r["capability"], r["step"]): r for r in summarize(tracer.iter_records())}
    assert rows[("clock_in_today", "replied")]["count"] == 3
    assert rows[("clock_in_today", "notify")]["failures"] == 0
