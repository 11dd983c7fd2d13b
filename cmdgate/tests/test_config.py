"""Tests for settings loading (defaults, YAML overlay, environment)."""
from pathlib import Path

import pytest

from cmdgate.config import GatewaySettings, load_settings

ENV_VARS = [
    "CMDGATE_DATA_DIR", "CMDGATE_STATE_PATH", "CMDGATE_TRACE_PATH", "CMDGATE_TRACE_SOURCE",
    "CMDGATE_TRACE_FSYNC", "CMDGATE_SYNC_TIMEOUT_S", "CMDGATE_WORKER_THREADS",
    "CMDGATE_CLOCK_IN_WRITES_STATE", "CMDGATE_CONFIG",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CMDGATE_DATA_DIR", str(tmp_path / "data"))


def test_defaults(tmp_path):
    settings = load_settings()
    assert settings == GatewaySettings(
        state_path=tmp_path / "data" / "clock_log.db",
        trace_path=tmp_path / "data" / "latency_trace.jsonl",
    )
    assert settings.clock_in_writes_state is False
    assert settings.trace_source == "tool-app"


def test_yaml_overlay(tmp_path):
    cfg = tmp_path / "gateway.yaml"
    cfg.write_text(
        """
trace_path: /var/tmp/trace.jsonl
sync_timeout_s: 1.5
worker_threads: 2
clock_in_writes_state: true
""".strip()
        + "\n",
        encoding="utf-8",
    )
    settings = load_settings(cfg)
    # CMDGATE_DATA_DIR is set, so the environment still wins for both paths.
    assert settings.trace_path == tmp_path / "data" / "latency_trace.jsonl"
    assert settings.sync_timeout_s == 1.5
    assert settings.worker_threads == 2
    assert settings.clock_in_writes_state is True


def test_yaml_from_env_var(tmp_path, monkeypatch):
    monkeypatch.delenv("CMDGATE_DATA_DIR")
    cfg = tmp_path / "gateway.yaml"
    cfg.write_text(f"state_path: {tmp_path / 'x.db'}\ntrace_source: bench\n", encoding="utf-8")
    monkeypatch.setenv("CMDGATE_CONFIG", str(cfg))
    settings = load_settings()
    assert settings.state_path == tmp_path / "x.db"
    assert settings.trace_source == "bench"


def test_env_wins_over_yaml(tmp_path, monkeypatch):
    cfg = tmp_path / "gateway.yaml"
    cfg.write_text("worker_threads: 2\ntrace_fsync: false\n", encoding="utf-8")
    monkeypatch.setenv("CMDGATE_WORKER_THREADS", "6")
    monkeypatch.setenv("CMDGATE_TRACE_FSYNC", "yes")
    monkeypatch.setenv("CMDGATE_STATE_PATH", str(tmp_path / "custom.db"))
    settings = load_settings(cfg)
    assert settings.worker_threads == 6
    assert settings.trace_fsync is True
    assert settings.state_path == tmp_path / "custom.db"


def test_unknown_yaml_key(tmp_path):
    cfg = tmp_path / "gateway.yaml"
    cfg.write_text("worker_thread: 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="worker_thread"):
        load_settings(cfg)


def test_yaml_must_be_mapping(tmp_path):
    cfg = tmp_path / "gateway.yaml"
    cfg.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        load_settings(cfg)


def test_empty_yaml_is_defaults(tmp_path):
    cfg = tmp_path / "gateway.yaml"
    cfg.write_text("", encoding="utf-8")
    assert load_settings(cfg).worker_threads == 4


@pytest.mark.parametrize("name,value", [
    ("CMDGATE_WORKER_THREADS", "0"),
    ("CMDGATE_SYNC_TIMEOUT_S", "-1"),
])
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        load_settings()


def test_settings_are_paths(tmp_path):
    settings = load_settings()
    assert isinstance(settings.state_path, Path)
    assert isinstance(settings.trace_path, Path)


def test_malformed_yaml(tmp_path):
    cfg = tmp_path / "gateway.yaml"
    cfg.write_text("worker_threads: [1, 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="not valid YAML"):
        load_settings(cfg)
