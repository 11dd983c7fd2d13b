"""
Gateway configuration: all environment-driven settings in one place.

An optional YAML file (``CMDGATE_CONFIG``) supplies defaults; environment
variables win over the file.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

GATEWAY_VERSION = "0.1.0"

# --- Storage ---
DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def get_data_dir() -> Path:
    raw = os.environ.get("CMDGATE_DATA_DIR")
    return Path(raw) if raw else DEFAULT_DATA_DIR


def get_state_path() -> Path:
    raw = os.environ.get("CMDGATE_STATE_PATH")
    return Path(raw) if raw else get_data_dir() / "clock_log.db"


def get_trace_path() -> Path:
    raw = os.environ.get("CMDGATE_TRACE_PATH")
    return Path(raw) if raw else get_data_dir() / "latency_trace.jsonl"


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class GatewaySettings:
    state_path: Path
    trace_path: Path
    trace_source: str = "tool-app"
    trace_fsync: bool = False
    sync_timeout_s: float = 5.0
    worker_threads: int = 4
    # Whether clock_in_today records the date itself or leaves it to the UI.
    clock_in_writes_state: bool = False


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"gateway config {path} is not valid YAML: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"gateway config {path} must be a mapping")
    return raw


def _settings_from_mapping(raw: Dict[str, Any], base: GatewaySettings) -> GatewaySettings:
    known = {
        "state_path", "trace_path", "trace_source", "trace_fsync",
        "sync_timeout_s", "worker_threads", "clock_in_writes_state",
    }
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"unknown gateway config keys: {', '.join(unknown)}")

    updates: Dict[str, Any] = {}
    if "state_path" in raw:
        updates["state_path"] = Path(str(raw["state_path"]))
    if "trace_path" in raw:
        updates["trace_path"] = Path(str(raw["trace_path"]))
    if "trace_source" in raw:
        updates["trace_source"] = str(raw["trace_source"]).strip()
    if "trace_fsync" in raw:
        updates["trace_fsync"] = bool(raw["trace_fsync"])
    if "sync_timeout_s" in raw:
        updates["sync_timeout_s"] = float(raw["sync_timeout_s"])
    if "worker_threads" in raw:
        updates["worker_threads"] = int(raw["worker_threads"])
    if "clock_in_writes_state" in raw:
        updates["clock_in_writes_state"] = bool(raw["clock_in_writes_state"])
    return replace(base, **updates)


def load_settings(config_path: Optional[Path] = None) -> GatewaySettings:
    """Build settings from defaults, an optional YAML file, then the environment."""
    settings = GatewaySettings(
        state_path=get_data_dir() / "clock_log.db",
        trace_path=get_data_dir() / "latency_trace.jsonl",
    )

    if config_path is None and os.environ.get("CMDGATE_CONFIG"):
        config_path = Path(os.environ["CMDGATE_CONFIG"])
    if config_path is not None:
        settings = _settings_from_mapping(_load_yaml(config_path), settings)

    env: Dict[str, Any] = {}
    if os.environ.get("CMDGATE_STATE_PATH") or os.environ.get("CMDGATE_DATA_DIR"):
        env["state_path"] = get_state_path()
    if os.environ.get("CMDGATE_TRACE_PATH") or os.environ.get("CMDGATE_DATA_DIR"):
        env["trace_path"] = get_trace_path()
    if os.environ.get("CMDGATE_TRACE_SOURCE"):
        env["trace_source"] = os.environ["CMDGATE_TRACE_SOURCE"].strip()
    if os.environ.get("CMDGATE_TRACE_FSYNC") is not None:
        env["trace_fsync"] = _bool_env("CMDGATE_TRACE_FSYNC")
    if os.environ.get("CMDGATE_SYNC_TIMEOUT_S"):
        env["sync_timeout_s"] = float(os.environ["CMDGATE_SYNC_TIMEOUT_S"])
    if os.environ.get("CMDGATE_WORKER_THREADS"):
        env["worker_threads"] = int(os.environ["CMDGATE_WORKER_THREADS"])
    if os.environ.get("CMDGATE_CLOCK_IN_WRITES_STATE") is not None:
        env["clock_in_writes_state"] = _bool_env("CMDGATE_CLOCK_IN_WRITES_STATE")
    settings = replace(settings, **env)

    if settings.sync_timeout_s <= 0:
        raise ValueError("sync_timeout_s must be positive")
    if settings.worker_threads < 1:
        raise ValueError("worker_threads must be at least 1")
    if not settings.trace_source:
        raise ValueError("trace_source must not be empty")
    return settings


# --- Logging ---
LOG_LEVEL = os.environ.get("CMDGATE_LOG_LEVEL", "INFO").upper()

# --- HTTP surface ---
HTTP_HOST = os.environ.get("CMDGATE_HTTP_HOST", "127.0.0.1")
HTTP_PORT = int(os.environ.get("CMDGATE_HTTP_PORT", "8765"))
