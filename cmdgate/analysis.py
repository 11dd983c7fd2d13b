"""
Offline latency summary over a trace log.

Groups step records by (capability, step) and reports count, mean, p50, p95
and max duration in milliseconds, plus how many of the spans failed.
"""

from __future__ import annotations

import math
from statistics import mean
from typing import Any, Dict, Iterable, List, Tuple


def _percentile(sorted_values: List[float], pct: float) -> float:
    """Nearest-rank percentile of an ascending list."""
    if not sorted_values:
        return 0.0
    rank = max(1, math.ceil(pct / 100.0 * len(sorted_values)))
    return sorted_values[min(rank, len(sorted_values)) - 1]


def summarize(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    groups: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for r in records:
        if r.get("record_type") != "step":
            continue
        key = (str(r.get("capability", "unknown")), str(r.get("step", "")))
        g = groups.setdefault(key, {"durations": [], "failures": 0, "requests": set()})
        try:
            g["durations"].append(float(r.get("duration_ms", 0.0)))
        except (TypeError, ValueError):
            continue
        if not r.get("success", True):
            g["failures"] += 1
        g["requests"].add(r.get("request_id"))

    out: List[Dict[str, Any]] = []
    for (capability, step), g in sorted(groups.items()):
        durations = sorted(g["durations"])
        out.append({
            "capability": capability,
            "step": step,
            "count": len(durations),
            "requests": len(g["requests"]),
            "failures": g["failures"],
            "mean_ms": round(mean(durations), 4) if durations else 0.0,
            "p50_ms": round(_percentile(durations, 50), 4),
            "p95_ms": round(_percentile(durations, 95), 4),
            "max_ms": round(durations[-1], 4) if durations else 0.0,
        })
    return out
