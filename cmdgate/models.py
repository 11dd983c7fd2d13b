"""
Canonical protocol model.

Request/Response/TraceSpan types shared by every transport binding, plus the
JSON envelope codec. The enveloped shape is the only one the dispatcher
understands; bindings with other wire shapes adapt to it first.

    Request:  {"id": str, "capability": {"id": str, "args": {...}}, "run_index"?: int}
    Response: {"id": str, "status": "success"|"failure", "message": str,
               "capability": {"id": str, "output": [{"name", "type", "value"}, ...]}}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import MalformedPayload, MissingRequestId

Payload = Union[str, bytes, bytearray, Dict[str, Any]]

UNTRACKED_RUN = -1


class Status(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class OutputType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"


@dataclass(frozen=True)
class OutputValue:
    """One typed, named value in a Response's output list."""
    name: str
    type: OutputType
    value: Any

    @classmethod
    def of(cls, name: str, value: Any) -> "OutputValue":
        # bool is checked first: it is an int subclass.
        if isinstance(value, bool):
            return cls(name, OutputType.BOOLEAN, value)
        if isinstance(value, (int, float)):
            return cls(name, OutputType.NUMBER, value)
        return cls(name, OutputType.STRING, "" if value is None else str(value))

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type.value, "value": self.value}


@dataclass(frozen=True)
class Request:
    request_id: str
    capability_id: str
    args: Dict[str, Any] = field(default_factory=dict)
    run_index: int = UNTRACKED_RUN

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "id": self.request_id,
            "capability": {"id": self.capability_id, "args": dict(self.args)},
        }
        if self.run_index != UNTRACKED_RUN:
            data["run_index"] = self.run_index
        return data


@dataclass(frozen=True)
class Response:
    request_id: str
    status: Status
    message: str
    capability_id: str = ""
    output: List[OutputValue] = field(default_factory=list)

    def __post_init__(self):
        if self.status is Status.FAILURE and not self.message:
            raise ValueError("failure responses must carry a message")

    @property
    def succeeded(self) -> bool:
        return self.status is Status.SUCCESS

    @classmethod
    def success(
        cls,
        request_id: str,
        capability_id: str,
        message: str,
        output: Optional[List[OutputValue]] = None,
    ) -> "Response":
        return cls(request_id, Status.SUCCESS, message, capability_id, list(output or []))

    @classmethod
    def failure(cls, request_id: str, message: str, capability_id: str = "") -> "Response":
        return cls(request_id, Status.FAILURE, message or "request failed", capability_id, [])

    def output_value(self, name: str, default: Any = None) -> Any:
        for item in self.output:
            if item.name == name:
                return item.value
        return default

    def to_dict(self) -> dict:
        return {
            "id": self.request_id,
            "status": self.status.value,
            "message": self.message,
            "capability": {
                "id": self.capability_id,
                "output": [item.to_dict() for item in self.output],
            },
        }


@dataclass
class TraceSpan:
    """A timed, named record of one dispatch phase for one request."""
    request_id: str
    capability: str
    run_index: int
    step: str
    start_ns: int
    end_ns: int
    success: bool = True
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        return (self.end_ns - self.start_ns) / 1_000_000.0

    def to_record(self, source: str, wall_time_ms: int) -> dict:
        record: Dict[str, Any] = {
            "record_type": "step",
            "source": source,
            "request_id": self.request_id,
            "capability": self.capability,
            "run_index": self.run_index,
            "step": self.step,
            "start_ns": self.start_ns,
            "end_ns": self.end_ns,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "wall_time_ms": wall_time_ms,
        }
        for key, value in self.extra.items():
            # Extras never shadow the fixed record fields.
            record.setdefault(key, value)
        return record


# =============================================================================
# CODEC
# =============================================================================

def _load_object(payload: Payload, what: str) -> Dict[str, Any]:
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPayload(f"{what} is not valid UTF-8: {exc}") from exc
    if not isinstance(payload, str):
        raise MalformedPayload(f"{what} must be a JSON object, got {type(payload).__name__}")
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedPayload(f"{what} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedPayload(f"{what} must be a JSON object")
    return data


def recover_request_id(payload: Any) -> Optional[str]:
    """Best-effort request id from a payload that may not decode cleanly."""
    try:
        data = _load_object(payload, "payload")
    except MalformedPayload:
        return None
    rid = data.get("id")
    if isinstance(rid, str) and rid:
        return rid
    return None


def decode_request(payload: Payload) -> Request:
    """Decode a canonical request envelope.

    Raises MissingRequestId when the id is absent or empty and
    MalformedPayload for every other structural problem.
    """
    data = _load_object(payload, "request")

    rid = data.get("id")
    if rid is None or rid == "":
        raise MissingRequestId()
    if not isinstance(rid, str):
        raise MalformedPayload("request id must be a string")

    capability = data.get("capability")
    if not isinstance(capability, dict):
        raise MalformedPayload("request capability must be an object", request_id=rid)
    cap_id = capability.get("id")
    if not isinstance(cap_id, str) or not cap_id.strip():
        raise MalformedPayload("request capability id must be a non-empty string", request_id=rid)

    args = capability.get("args", {})
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise MalformedPayload("request capability args must be an object", request_id=rid)

    run_index = data.get("run_index", UNTRACKED_RUN)
    if run_index is None:
        run_index = UNTRACKED_RUN
    if isinstance(run_index, bool) or not isinstance(run_index, int):
        raise MalformedPayload("request run_index must be an integer", request_id=rid)

    return Request(request_id=rid, capability_id=cap_id.strip(), args=dict(args), run_index=run_index)


def encode_request(request: Request) -> str:
    return json.dumps(request.to_dict(), separators=(",", ":"))


def encode_response(response: Response) -> str:
    return json.dumps(response.to_dict(), separators=(",", ":"))


def decode_response(payload: Payload) -> Response:
    data = _load_object(payload, "response")
    try:
        status = Status(data.get("status"))
    except ValueError as exc:
        raise MalformedPayload(f"unknown response status: {data.get('status')!r}") from exc

    capability = data.get("capability") or {}
    if not isinstance(capability, dict):
        raise MalformedPayload("response capability must be an object")
    output: List[OutputValue] = []
    for item in capability.get("output") or []:
        if not isinstance(item, dict) or "name" not in item:
            raise MalformedPayload("response output entries must be objects with a name")
        try:
            out_type = OutputType(item.get("type", "string"))
        except ValueError as exc:
            raise MalformedPayload(f"unknown output type: {item.get('type')!r}") from exc
        output.append(OutputValue(str(item["name"]), out_type, item.get("value")))

    return Response(
        request_id=str(data.get("id") or ""),
        status=status,
        message=str(data.get("message") or ("request failed" if status is Status.FAILURE else "")),
        capability_id=str(capability.get("id") or ""),
        output=output,
    )
