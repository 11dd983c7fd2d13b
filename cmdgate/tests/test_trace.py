"""Tests for the JSONL latency trace."""
import json
import threading

from cmdgate.trace import TraceLogger


def _lines(path):
    return path.read_text(encoding="utf-8").splitlines()


class TestWriters:
    def test_mark_is_zero_width(self, tracer):
        tracer.mark("r1", "query_clock_in", 2, "received", 1000)
        (record,) = tracer.records()
        assert record["record_type"] == "step"
        assert record["source"] == "tool-app"
        assert record["start_ns"] == record["end_ns"] == 1000
        assert record["duration_ms"] == 0.0
        assert record["run_index"] == 2
        assert record["success"] is True
        assert record["error"] is None
        assert isinstance(record["wall_time_ms"], int)

    def test_span_clamps_inverted_bounds(self, tracer):
        tracer.span("r1", "cap", -1, "handler", 500, 100)
        (record,) = tracer.records()
        assert record["end_ns"] == record["start_ns"] == 500
        assert record["clamped"] is True

    def test_span_failure_fields(self, tracer):
        tracer.span("r1", "cap", -1, "route", 1, 5, success=False, error="nope", extra={"error_code": "x"})
        (record,) = tracer.records()
        assert record["success"] is False
        assert record["error"] == "nope"
        assert record["error_code"] == "x"

    def test_meta_cannot_override_record_type(self, tracer):
        tracer.meta({"record_type": "step", "runs": 5})
        (record,) = tracer.records()
        assert record["record_type"] == "meta"
        assert record["runs"] == 5

    def test_custom_source(self, tmp_path):
        tracer = TraceLogger(tmp_path / "t.jsonl", source="llm-app", fsync=True)
        tracer.mark("r1", "cap", -1, "send", 1)
        assert tracer.records()[0]["source"] == "llm-app"

    def test_reset_truncates(self, tracer):
        tracer.mark("r1", "cap", -1, "received", 1)
        tracer.reset()
        assert tracer.path.read_text(encoding="utf-8") == ""
        assert tracer.records() == []

    def test_unwritable_path_is_swallowed(self, tmp_path):
        # The "file" is a directory, so every append fails.
        tracer = TraceLogger(tmp_path)
        tracer.mark("r1", "cap", -1, "received", 1)


class TestReaders:
    def test_missing_file_reads_empty(self, tmp_path):
        assert TraceLogger(tmp_path / "absent.jsonl").records() == []

    def test_corrupt_lines_skipped(self, tracer):
        tracer.mark("r1", "cap", -1, "received", 1)
        with tracer.path.open("a", encoding="utf-8") as f:
            f.write("{truncated\n\n")
        tracer.mark("r1", "cap", -1, "parse", 2)
        assert [r["step"] for r in tracer.records()] == ["received", "parse"]

    def test_waterfall_orders_by_start(self, tracer):
        tracer.span("r1", "cap", -1, "handler", 30, 40)
        tracer.span("r2", "cap", -1, "parse", 5, 6)
        tracer.span("r1", "cap", -1, "parse", 10, 20)
        tracer.meta({"request_id": "r1"})
        assert [r["step"] for r in tracer.waterfall("r1")] == ["parse", "handler"]


def test_concurrent_appends_never_interleave(tracer):
    threads = []

    def writer(n):
        for i in range(100):
            tracer.span(f"r{n}-{i}", "cap", n, "handler", i, i + 1, extra={"pad": "x" * 200})

    for n in range(8):
        t = threading.Thread(target=writer, args=(n,))
        threads.append(t)
        t.start()
    for t in threads:
        t.join()

    lines = _lines(tracer.path)
    assert len(lines) == 800
    for line in lines:
        assert json.loads(line)["step"] == "handler"
