"""
cmdgate CLI: operate a gateway in-process.

Usage:
    python -m cmdgate.cli serve                       # Start the HTTP surface
    python -m cmdgate.cli invoke query_clock_in --arg date=2024-03-05
    python -m cmdgate.cli status --year 2024 --month 3
    python -m cmdgate.cli bench --runs 5              # Traced benchmark suite
    python -m cmdgate.cli trace summary               # Per-step latency table
    python -m cmdgate.cli trace show <request_id>     # One request's waterfall
    python -m cmdgate.cli trace reset
    python -m cmdgate.cli reset-state
"""
from __future__ import annotations

import argparse
import json
import platform
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from cmdgate.analysis import summarize
from cmdgate.capabilities import CLOCK_IN_TODAY, MAKE_UP_CLOCK_IN, QUERY_CLOCK_IN
from cmdgate.config import GATEWAY_VERSION, HTTP_HOST, HTTP_PORT
from cmdgate.gateway import Gateway
from cmdgate.models import UNTRACKED_RUN, Request
from cmdgate.observability import configure_logging
from cmdgate.state import format_date


def _emit(payload: Any, output_format: str) -> None:
    if output_format == "json":
        print(json.dumps(payload, sort_keys=True))
        return
    if isinstance(payload, list):
        for item in payload:
            print(item)
        return
    print(payload)


def _fail(message: str, output_format: str, *, code: int = 1) -> None:
    payload = {"status": "error", "error": message, "exit_code": code}
    _emit(payload if output_format == "json" else message, output_format)
    raise SystemExit(code)


def _parse_args_kv(pairs: List[str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"expected key=value, got {pair!r}")
        out[key] = value
    return out


def cmd_invoke(gw: Gateway, args) -> Dict[str, Any]:
    request = Request(
        request_id=args.id or uuid.uuid4().hex,
        capability_id=args.capability,
        args=_parse_args_kv(args.arg),
        run_index=args.run_index,
    )
    return gw.sync.call(request.to_dict()).to_dict()


def cmd_status(gw: Gateway, args) -> Dict[str, Any]:
    today = gw.store.today()
    year = args.year or today.year
    month = args.month or today.month
    days = gw.store.month_view(year, month)
    return {
        "year": year,
        "month": month,
        "days": {str(d): v for d, v in days.items()},
        "done_count": sum(1 for v in days.values() if v),
        "today": format_date(today),
        "streak": gw.store.consecutive_streak(),
    }


def benchmark_cases(gw: Gateway, runs: int) -> List[Request]:
    today = gw.store.today()
    today_str = format_date(today)
    yesterday_str = format_date(today - timedelta(days=1))
    cases: List[Request] = []
    for i in range(1, runs + 1):
        cases.append(Request(uuid.uuid4().hex, CLOCK_IN_TODAY, {}, i))
        cases.append(Request(uuid.uuid4().hex, QUERY_CLOCK_IN, {"date": today_str}, i))
        cases.append(Request(uuid.uuid4().hex, MAKE_UP_CLOCK_IN, {"date": yesterday_str}, i))
    return cases


def cmd_bench(gw: Gateway, args) -> Dict[str, Any]:
    if args.runs < 1:
        raise ValueError("--runs must be at least 1")
    if args.fresh:
        gw.tracer.reset()
    gw.tracer.meta({
        "meta": True,
        "gateway_version": GATEWAY_VERSION,
        "python_version": platform.python_version(),
        "platform": platform.platform(),
        "runs": args.runs,
    })
    cases = benchmark_cases(gw, args.runs)
    failures = 0
    for case in cases:
        response = gw.sync.call(case.to_dict())
        if not response.succeeded:
            failures += 1
    gw.tracer.meta({"event": "benchmark_done", "total_runs": len(cases), "failures": failures})
    return {"total_runs": len(cases), "failures": failures, "trace_path": str(gw.tracer.path)}


def cmd_trace(gw: Gateway, args) -> Any:
    if args.trace_cmd == "summary":
        return summarize(gw.tracer.iter_records())
    if args.trace_cmd == "show":
        return gw.tracer.waterfall(args.request_id)
    if args.trace_cmd == "reset":
        gw.tracer.reset()
        return {"status": "ok", "trace_path": str(gw.tracer.path)}
    raise ValueError(f"unknown trace command: {args.trace_cmd}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="cmdgate operator CLI")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    parser.add_argument("--format", choices=["json", "text"], default="json")
    parser.add_argument("--log-level", default=None)

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_serve = sub.add_parser("serve", help="Start the HTTP surface")
    p_serve.add_argument("--host", default=HTTP_HOST)
    p_serve.add_argument("--port", type=int, default=HTTP_PORT)

    p_invoke = sub.add_parser("invoke", help="Dispatch one capability and print the Response")
    p_invoke.add_argument("capability")
    p_invoke.add_argument("--arg", action="append", default=[], help="key=value, repeatable")
    p_invoke.add_argument("--id", default=None)
    p_invoke.add_argument("--run-index", type=int, default=UNTRACKED_RUN)

    p_status = sub.add_parser("status", help="Month view and current streak")
    p_status.add_argument("--year", type=int, default=None)
    p_status.add_argument("--month", type=int, default=None)

    p_bench = sub.add_parser("bench", help="Run the traced benchmark suite")
    p_bench.add_argument("--runs", type=int, default=5)
    p_bench.add_argument("--fresh", action="store_true", help="Truncate the trace log first")

    p_trace = sub.add_parser("trace", help="Inspect the latency trace log")
    trace_sub = p_trace.add_subparsers(dest="trace_cmd", required=True)
    trace_sub.add_parser("summary")
    p_show = trace_sub.add_parser("show")
    p_show.add_argument("request_id")
    trace_sub.add_parser("reset")

    sub.add_parser("reset-state", help="Clear every clock-in entry")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    if args.cmd == "serve":
        from cmdgate.api_server import main as server_main
        server_main(host=args.host, port=args.port, config_path=args.config)
        return

    gw = Gateway.from_env(args.config)
    try:
        try:
            if args.cmd == "invoke":
                _emit(cmd_invoke(gw, args), args.format)
            elif args.cmd == "status":
                _emit(cmd_status(gw, args), args.format)
            elif args.cmd == "bench":
                _emit(cmd_bench(gw, args), args.format)
            elif args.cmd == "trace":
                _emit(cmd_trace(gw, args), args.format)
            elif args.cmd == "reset-state":
                gw.store.reset()
                _emit({"status": "ok", "state_path": str(gw.store.db_path)}, args.format)
            else:
                _fail(f"unknown cmd: {args.cmd}", args.format, code=2)
        except SystemExit:
            raise
        except ValueError as exc:
            _fail(str(exc), args.format, code=2)
    finally:
        gw.close()


if __name__ == "__main__":
    main()
