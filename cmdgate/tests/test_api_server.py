"""Tests for the gateway HTTP surface."""
import json

import pytest
from fastapi.testclient import TestClient

from cmdgate.api_server import create_app

from conftest import wait_until


@pytest.fixture
def client(gateway):
    with TestClient(create_app(gateway)) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["capabilities"] == ["clock_in_today", "make_up_clock_in", "query_clock_in"]


class TestInvoke:
    def test_success(self, client):
        payload = {"id": "h1", "capability": {"id": "query_clock_in", "args": {"date": "2024-03-05"}}}
        r = client.post("/v1/invoke", content=json.dumps(payload))
        assert r.status_code == 200
        body = r.json()
        assert body["id"] == "h1"
        assert body["status"] == "success"
        assert body["capability"]["output"][1] == {"name": "has_clocked_in", "type": "boolean", "value": False}

    def test_protocol_failure_is_still_200(self, client):
        r = client.post("/v1/invoke", content='{"id":"h2","capability":{"id":"bogus"}}')
        assert r.status_code == 200
        assert r.json()["status"] == "failure"
        assert r.json()["message"] == "Unknown capability ID: bogus"

    def test_garbage_body(self, client):
        r = client.post("/v1/invoke", content=b"\x00not json")
        assert r.status_code == 200
        assert r.json()["status"] == "failure"


class TestSignal:
    def test_accepted_and_applied(self, client, gateway):
        r = client.post("/v1/signal/make_up_clock_in", json={"date": "2024-03-03"}, params={"run_index": 2})
        assert r.status_code == 202
        body = r.json()
        assert body["capability"] == "make_up_clock_in"
        assert body["status"] == "accepted"
        assert wait_until(lambda: gateway.store.is_done("2024-03-03"))

    def test_without_body(self, client, notifier):
        r = client.post("/v1/signal/clock_in_today")
        assert r.status_code == 202
        assert wait_until(lambda: notifier.events == [("primary_action", None)])

    def test_unavailable_after_shutdown(self, client, gateway, notifier, tracer):
        gateway.executor.shutdown(wait=True)
        r = client.post("/v1/signal/clock_in_today")
        assert r.status_code == 503
        assert "Gateway unavailable" in r.json()["detail"]
        assert notifier.events == []
        (replied,) = [rec for rec in tracer.records() if rec.get("step") == "replied"]
        assert replied["error"] == "gateway unavailable"


class TestState:
    def test_day(self, client, store):
        store.mark_done("2024-03-01")
        assert client.get("/v1/state/2024-03-01").json() == {"date": "2024-03-01", "has_clocked_in": True}
        assert client.get("/v1/state/2024-03-02").json()["has_clocked_in"] is False

    def test_bad_day(self, client):
        r = client.get("/v1/state/2024-3-1")
        assert r.status_code == 400

    def test_month(self, client, store):
        store.mark_done("2024-02-29")
        body = client.get("/v1/state/month/2024/2").json()
        assert len(body["days"]) == 29
        assert body["days"]["29"] is True
        assert body["days"]["1"] is False

    def test_bad_month(self, client):
        assert client.get("/v1/state/month/2024/13").status_code == 400

    def test_streak(self, client, store):
        for d in ["2024-03-03", "2024-03-04", "2024-03-05"]:
            store.mark_done(d)
        assert client.get("/v1/state/streak").json() == {"as_of": "2024-03-05", "streak": 3}
        assert client.get("/v1/state/streak", params={"as_of": "2024-03-04"}).json()["streak"] == 2


class TestTrace:
    def test_waterfall(self, client, tracer):
        client.post("/v1/invoke", content='{"id":"h3","capability":{"id":"clock_in_today"}}')
        # The reply is handed back before the terminal span is written.
        assert wait_until(lambda: any(r["step"] == "replied" for r in tracer.waterfall("h3")))
        body = client.get("/v1/trace/h3").json()
        steps = [s["step"] for s in body["steps"]]
        assert "handler" in steps
        assert steps.count("replied") == 1

    def test_unknown_request(self, client):
        assert client.get("/v1/trace/nope").status_code == 404
