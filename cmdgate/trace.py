"""
Latency trace log.

Append-only JSONL file of timing records, one self-contained JSON object per
line. Every logger in the process writes through the same lock, so records
from concurrent dispatches never interleave. Each append is flushed before
the lock is released; a crash loses at most the record being written.

Tracing is best-effort: a failed write is logged and swallowed, never raised
into the request path.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .models import TraceSpan

logger = logging.getLogger(__name__)

_APPEND_LOCK = threading.Lock()


def now_ns() -> int:
    """Monotonic clock used for every span bound."""
    return time.monotonic_ns()


def _wall_time_ms() -> int:
    return int(time.time() * 1000)


class TraceLogger:
    """Writes step and meta records to a JSONL trace file."""

    def __init__(self, path: Path, source: str = "tool-app", fsync: bool = False):
        self.path = Path(path)
        self.source = source
        self.fsync = fsync

    # -------------------------------------------------------------------------
    # Writers
    # -------------------------------------------------------------------------

    def mark(
        self,
        request_id: str,
        capability: str,
        run_index: int,
        step: str,
        timestamp_ns: int,
        success: bool = True,
        error: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a zero-width span."""
        self.record(TraceSpan(
            request_id=request_id,
            capability=capability,
            run_index=run_index,
            step=step,
            start_ns=timestamp_ns,
            end_ns=timestamp_ns,
            success=success,
            error=error,
            extra=dict(extra or {}),
        ))

    def span(
        self,
        request_id: str,
        capability: str,
        run_index: int,
        step: str,
        start_ns: int,
        end_ns: int,
        success: bool = True,
        error: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record an interval span."""
        fields = dict(extra or {})
        if end_ns < start_ns:
            fields["clamped"] = True
            end_ns = start_ns
        self.record(TraceSpan(
            request_id=request_id,
            capability=capability,
            run_index=run_index,
            step=step,
            start_ns=start_ns,
            end_ns=end_ns,
            success=success,
            error=error,
            extra=fields,
        ))

    def record(self, span: TraceSpan) -> None:
        self._append(span.to_record(self.source, _wall_time_ms()))

    def meta(self, fields: Dict[str, Any]) -> None:
        obj: Dict[str, Any] = {
            "record_type": "meta",
            "source": self.source,
            "wall_time_ms": _wall_time_ms(),
        }
        for key, value in fields.items():
            obj.setdefault(key, value)
        self._append(obj)

    def reset(self) -> None:
        """Truncate the log to empty."""
        with _APPEND_LOCK:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("w", encoding="utf-8"):
                    pass
            except OSError:
                logger.warning("could not reset trace log %s", self.path, exc_info=True)

    def _append(self, obj: Dict[str, Any]) -> None:
        try:
            line = json.dumps(obj, separators=(",", ":"), default=str)
        except (TypeError, ValueError):
            logger.warning("dropping unserialisable trace record for step %s", obj.get("step"), exc_info=True)
            return
        with _APPEND_LOCK:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
                    f.flush()
                    if self.fsync:
                        os.fsync(f.fileno())
            except OSError:
                logger.warning("trace append failed for %s", self.path, exc_info=True)
                return
        logger.debug("trace %s", line)

    # -------------------------------------------------------------------------
    # Readers
    # -------------------------------------------------------------------------

    def iter_records(self) -> Iterator[Dict[str, Any]]:
        """Yield every parseable record; unparseable lines are skipped."""
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                text = line.strip()
                if not text:
                    continue
                try:
                    item = json.loads(text)
                except json.JSONDecodeError:
                    logger.warning("skipping corrupt trace line %d in %s", lineno, self.path)
                    continue
                if isinstance(item, dict):
                    yield item

    def records(self) -> List[Dict[str, Any]]:
        return list(self.iter_records())

    def waterfall(self, request_id: str) -> List[Dict[str, Any]]:
        """Step records for one request, ordered by start time."""
        steps = [
            r for r in self.iter_records()
            if r.get("record_type") == "step" and r.get("request_id") == request_id
        ]
        return sorted(steps, key=lambda r: (r.get("start_ns", 0), r.get("end_ns", 0)))
