"""Tests for the canonical envelope and its codec."""
import json

import pytest

from cmdgate.errors import MalformedPayload, MissingRequestId
from cmdgate.models import (
    UNTRACKED_RUN,
    OutputType,
    OutputValue,
    Request,
    Response,
    Status,
    TraceSpan,
    decode_request,
    decode_response,
    encode_request,
    encode_response,
    recover_request_id,
)


class TestRequestCodec:
    def test_round_trip(self):
        req = Request("r1", "query_clock_in", {"date": "2024-03-05"}, run_index=3)
        decoded = decode_request(encode_request(req))
        assert decoded == req

    def test_untracked_run_index_is_omitted(self):
        data = json.loads(encode_request(Request("r1", "clock_in_today")))
        assert "run_index" not in data
        assert decode_request(data).run_index == UNTRACKED_RUN

    def test_accepts_bytes(self):
        raw = b'{"id":"r2","capability":{"id":"clock_in_today"}}'
        req = decode_request(raw)
        assert req.request_id == "r2"
        assert req.args == {}

    @pytest.mark.parametrize("payload", [
        '{"capability":{"id":"clock_in_today"}}',
        '{"id":"","capability":{"id":"clock_in_today"}}',
        {"id": None, "capability": {"id": "clock_in_today"}},
    ])
    def test_missing_id(self, payload):
        with pytest.raises(MissingRequestId):
            decode_request(payload)

    @pytest.mark.parametrize("payload", ["{not json", "[1, 2]", "42", 42, b"\xff\xfe"])
    def test_undecodable(self, payload):
        with pytest.raises(MalformedPayload) as info:
            decode_request(payload)
        assert info.value.request_id is None

    def test_bad_capability_keeps_request_id(self):
        with pytest.raises(MalformedPayload) as info:
            decode_request({"id": "r9", "capability": "query_clock_in"})
        assert info.value.request_id == "r9"

    def test_bad_args_keeps_request_id(self):
        with pytest.raises(MalformedPayload) as info:
            decode_request({"id": "r9", "capability": {"id": "x", "args": [1]}})
        assert info.value.request_id == "r9"

    def test_boolean_run_index_rejected(self):
        with pytest.raises(MalformedPayload):
            decode_request({"id": "r9", "capability": {"id": "x"}, "run_index": True})

    def test_non_string_id_rejected(self):
        with pytest.raises(MalformedPayload):
            decode_request({"id": 7, "capability": {"id": "x"}})

    def test_recover_request_id(self):
        assert recover_request_id('{"id":"r5","capability":7}') == "r5"
        assert recover_request_id("{garbage") is None
        assert recover_request_id({"id": ""}) is None


class TestResponse:
    def test_output_type_inference(self):
        assert OutputValue.of("a", True).type is OutputType.BOOLEAN
        assert OutputValue.of("b", 3).type is OutputType.NUMBER
        assert OutputValue.of("c", 2.5).type is OutputType.NUMBER
        assert OutputValue.of("d", "x").type is OutputType.STRING
        assert OutputValue.of("e", None).value == ""

    def test_failure_requires_message(self):
        with pytest.raises(ValueError):
            Response("r1", Status.FAILURE, "")
        assert Response.failure("r1", "").message == "request failed"

    def test_encode_decode_preserves_output(self):
        resp = Response.success(
            "r1", "query_clock_in", "Has clocked in.",
            [OutputValue.of("date", "2024-03-05"), OutputValue.of("has_clocked_in", True)],
        )
        back = decode_response(encode_response(resp))
        assert back == resp
        assert back.output_value("has_clocked_in") is True
        assert back.output_value("missing", "default") == "default"

    def test_wire_shape(self):
        resp = Response.failure("r2", "Unknown capability ID: bogus", "bogus")
        assert json.loads(encode_response(resp)) == {
            "id": "r2",
            "status": "failure",
            "message": "Unknown capability ID: bogus",
            "capability": {"id": "bogus", "output": []},
        }

    def test_unknown_status_rejected(self):
        with pytest.raises(MalformedPayload):
            decode_response({"id": "r1", "status": "maybe"})


def test_span_extras_never_shadow_fixed_fields():
    span = TraceSpan("r1", "cap", 1, "parse", 10, 2_000_010, extra={"step": "evil", "bytes": 12})
    record = span.to_record("tool-app", 0)
    assert record["step"] == "parse"
    assert record["bytes"] == 12
    assert record["duration_ms"] == 2.0
